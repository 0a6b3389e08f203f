"""Integration tests for balance replay and reconciliation"""

import pytest
from datetime import datetime
from coop_ledger.domain.exceptions import BalanceMismatchError, MemberNotFoundError
from coop_ledger.domain.models import Balances
from coop_ledger.infrastructure.database.models import Member
from coop_ledger.services.accounts import AccountService
from coop_ledger.services.balances import BalanceProjector


def test_replay_matches_cache_after_mixed_activity(db, make_member, disbursed_loan, admin):
    member = make_member()
    accounts = AccountService(db)
    accounts.deposit_shares(admin, member.id, 40_000, now=datetime(2025, 1, 2))
    accounts.deposit_savings(admin, member.id, 25_000, now=datetime(2025, 1, 3))
    accounts.withdraw_shares(admin, member.id, 10_000, now=datetime(2025, 1, 4))
    disbursed_loan(member, 100_000, start=datetime(2025, 1, 15))
    accounts.record_loan_payment(admin, member.id, 30_000, now=datetime(2025, 2, 1))
    accounts.pay_dues(admin, member.id, 2_000, now=datetime(2025, 2, 2))

    projector = BalanceProjector(db)
    replayed = projector.verify(member.id)

    assert replayed == Balances(shares=30_000, savings=25_000, loan=70_000, interest=0, dues=2_000)
    assert projector.cached_balances(member.id) == replayed
    assert projector.current_balances(member.id) == replayed


def test_tampered_cache_detected(db, make_member, admin):
    member = make_member()
    AccountService(db).deposit_shares(admin, member.id, 40_000, now=datetime(2025, 1, 2))

    db.execute(Member.__table__.update().where(Member.__table__.c.id == member.id).values(shares_balance=1))
    db.commit()

    with pytest.raises(BalanceMismatchError) as exc_info:
        BalanceProjector(db).verify(member.id)

    assert exc_info.value.member_id == member.id
    assert "shares: cached 1, ledger 40000" in exc_info.value.mismatches


def test_member_without_entries_has_zero_balances(db, make_member):
    member = make_member()
    assert BalanceProjector(db).verify(member.id) == Balances()


def test_unknown_member(db):
    with pytest.raises(MemberNotFoundError):
        BalanceProjector(db).current_balances("missing")
