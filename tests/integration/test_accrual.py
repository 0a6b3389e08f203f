"""Integration tests for the monthly interest accrual engine"""

import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.exc import OperationalError
from coop_ledger.domain.models import TransactionType
from coop_ledger.infrastructure.database.repositories import LedgerRepository
from coop_ledger.services.accounts import AccountService
from coop_ledger.services.accrual import InterestAccrualEngine
from coop_ledger.services.balances import BalanceProjector
from coop_ledger.services.ledger import LedgerStore


@pytest.fixture
def accrual_engine(session_factory):
    return InterestAccrualEngine(session_factory=session_factory, max_retries=1, backoff_base=0)


def _interest_charges(db, member_id):
    return [
        e for e in LedgerRepository(db).list_by_member(member_id)
        if e.type == TransactionType.INTEREST_CHARGE.value
    ]


def test_first_run_charges_each_elapsed_month(db, make_member, disbursed_loan, accrual_engine):
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))

    report = accrual_engine.run(as_of=datetime(2025, 4, 10))
    db.expire_all()

    assert report.processed_members == 1
    assert report.total_interest_charged == 450_000
    assert [p.month_number for p in report.members[0].periods] == [1, 2, 3]

    charges = _interest_charges(db, member.id)
    assert [c.reference_number for c in charges] == ["INT-2025-02", "INT-2025-03", "INT-2025-04"]
    assert all(c.amount == 150_000 for c in charges)
    assert all(c.date == datetime(2025, 4, 10) for c in charges)
    assert member.interest_balance == 450_000
    assert member.last_interest_calculation_date == datetime(2025, 4, 1)


def test_second_run_is_idempotent(db, make_member, disbursed_loan, accrual_engine):
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))

    accrual_engine.run(as_of=datetime(2025, 4, 10))
    report = accrual_engine.run(as_of=datetime(2025, 4, 25))
    db.expire_all()

    assert report.processed_members == 0
    assert report.total_interest_charged == 0
    assert len(_interest_charges(db, member.id)) == 3
    assert member.interest_balance == 450_000


def test_rate_doubles_from_month_13(db, make_member, disbursed_loan, accrual_engine):
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))

    report = accrual_engine.run(as_of=datetime(2026, 2, 10))
    db.expire_all()

    # 12 months at 1.5%, then month 13 at 3.0%
    assert report.total_interest_charged == 12 * 150_000 + 300_000
    charges = _interest_charges(db, member.id)
    assert charges[-1].reference_number == "INT-2026-02"
    assert charges[-1].amount == 300_000
    assert member.loan_interest_rate == Decimal("3.0")
    assert member.rate_escalated_at == datetime(2026, 2, 1)


def test_partial_repayment_does_not_reset_escalation(db, make_member, disbursed_loan, accrual_engine, admin):
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))

    accrual_engine.run(as_of=datetime(2025, 6, 10))  # Feb..Jun at 1.5% on 10M
    db.expire_all()
    AccountService(db).record_loan_payment(admin, member.id, 750_000 + 5_000_000, now=datetime(2025, 6, 20))
    assert member.loan_balance == 5_000_000

    report = accrual_engine.run(as_of=datetime(2026, 2, 10))
    db.expire_all()

    # Jul..Jan (months 6-12) at 1.5% on 5M, Feb (month 13) at 3.0%
    assert report.total_interest_charged == 7 * 75_000 + 150_000
    assert member.loan_interest_rate == Decimal("3.0")


def test_charge_uses_balance_at_month_start(db, make_member, disbursed_loan, accrual_engine, admin):
    """A repayment mid-month lowers the next month's charge, not the current one"""
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))
    AccountService(db).record_loan_payment(admin, member.id, 4_000_000, now=datetime(2025, 2, 15))

    accrual_engine.run(as_of=datetime(2025, 3, 5))
    db.expire_all()

    amounts = [c.amount for c in _interest_charges(db, member.id)]
    assert amounts == [150_000, 90_000]


def test_integrity_fault_skips_member_only(db, make_member, disbursed_loan, accrual_engine):
    healthy = disbursed_loan(make_member(), 1_000_000, start=datetime(2025, 1, 15))
    broken = make_member()
    LedgerStore(db).append(
        broken.id, TransactionType.LOAN_DISBURSEMENT, 500_000, date=datetime(2025, 1, 15), reference_number="LN-legacy"
    )

    report = accrual_engine.run(as_of=datetime(2025, 3, 10))
    db.expire_all()

    assert len(report.faults) == 1
    assert "no loan start date" in report.faults[0]
    assert report.processed_members == 1
    assert healthy.interest_balance == 2 * 15_000
    assert broken.interest_balance == 0
    assert _interest_charges(db, broken.id) == []


def test_members_without_loans_are_not_charged(db, make_member, accrual_engine):
    member = make_member()

    report = accrual_engine.run(as_of=datetime(2025, 3, 10))

    assert report.processed_members == 0
    assert _interest_charges(db, member.id) == []


def test_accrued_balances_reconcile(db, make_member, disbursed_loan, accrual_engine):
    member = disbursed_loan(make_member(), 10_000_000, start=datetime(2025, 1, 15))
    accrual_engine.run(as_of=datetime(2025, 5, 2))
    db.expire_all()

    balances = BalanceProjector(db).verify(member.id)
    assert balances.interest == 4 * 150_000


def test_database_error_for_one_member_does_not_stop_run(
    db, make_member, disbursed_loan, accrual_engine, monkeypatch
):
    healthy = disbursed_loan(make_member(), 1_000_000, start=datetime(2025, 1, 15))
    failing = disbursed_loan(make_member(), 2_000_000, start=datetime(2025, 1, 15))
    failing_id = failing.id
    balance_before = LedgerRepository.balance_before

    def locked_for_one_member(self, member_id, kind, moment):
        if member_id == failing_id:
            raise OperationalError("SELECT balance_after", {}, Exception("database is locked"))
        return balance_before(self, member_id, kind, moment)

    monkeypatch.setattr(LedgerRepository, "balance_before", locked_for_one_member)

    report = accrual_engine.run(as_of=datetime(2025, 3, 10))
    db.expire_all()

    assert report.processed_members == 1
    assert report.faults == []
    assert len(report.failures) == 1
    assert failing_id in report.failures[0]
    assert "OperationalError" in report.failures[0]
    assert healthy.interest_balance == 2 * 15_000
    assert failing.interest_balance == 0
