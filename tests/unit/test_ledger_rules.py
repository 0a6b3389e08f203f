"""Unit tests for ledger posting rules and replay"""

import pytest
from datetime import datetime
from coop_ledger.domain.exceptions import InsufficientBalanceError, InvalidAmountError, ValidationError
from coop_ledger.domain.ledger import apply_transaction, replay, types_for_balance, validate_amount
from coop_ledger.domain.models import Balances, BalanceKind, LedgerEntry, TransactionType


def _entry(id, txn_type, amount, balance_after):
    return LedgerEntry(
        id=id,
        member_id="m-1",
        type=txn_type,
        amount=amount,
        date=datetime(2025, 1, id),
        balance_after=balance_after,
    )


def test_deposit_increases_shares():
    balances, after = apply_transaction(Balances(), TransactionType.SHARES_DEPOSIT, 50_000)

    assert after == 50_000
    assert balances.shares == 50_000
    assert balances.savings == 0


def test_withdrawal_below_zero_rejected():
    """Withdrawing more than the balance must fail and change nothing"""
    start = Balances(savings=10_000)

    with pytest.raises(InsufficientBalanceError):
        apply_transaction(start, TransactionType.SAVINGS_WITHDRAWAL, 10_001)

    assert start.savings == 10_000


def test_withdrawal_to_exactly_zero_allowed():
    balances, after = apply_transaction(Balances(savings=10_000), TransactionType.SAVINGS_WITHDRAWAL, 10_000)
    assert after == 0
    assert balances.savings == 0


@pytest.mark.parametrize("amount", [0, -100])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(InvalidAmountError):
        validate_amount(TransactionType.SAVINGS_DEPOSIT, amount)


def test_invalid_amount_is_a_validation_error():
    """Callers catching ValidationError also see amount problems"""
    with pytest.raises(ValidationError):
        validate_amount(TransactionType.SHARES_DEPOSIT, 0)


@pytest.mark.parametrize("amount", [10.5, "100", True])
def test_non_integer_amount_rejected(amount):
    with pytest.raises(InvalidAmountError):
        validate_amount(TransactionType.SHARES_DEPOSIT, amount)


def test_profile_update_has_no_balance_effect():
    start = Balances(shares=100, loan=200)
    balances, after = apply_transaction(start, TransactionType.PROFILE_UPDATE, 0)

    assert after is None
    assert balances == start


def test_profile_update_must_carry_zero():
    with pytest.raises(InvalidAmountError):
        validate_amount(TransactionType.PROFILE_UPDATE, 100)


def test_dues_payment_accumulates():
    balances, after = apply_transaction(Balances(dues=2_000), TransactionType.DUES_PAYMENT, 1_000)
    assert after == 3_000
    assert balances.dues == 3_000


def test_types_for_loan_balance():
    assert set(types_for_balance(BalanceKind.LOAN)) == {
        TransactionType.LOAN_DISBURSEMENT,
        TransactionType.LOAN_PAYMENT,
    }


def test_replay_folds_entries():
    entries = [
        _entry(1, TransactionType.SHARES_DEPOSIT, 10_000, 10_000),
        _entry(2, TransactionType.SAVINGS_DEPOSIT, 5_000, 5_000),
        _entry(3, TransactionType.LOAN_DISBURSEMENT, 20_000, 20_000),
        _entry(4, TransactionType.INTEREST_CHARGE, 300, 300),
        _entry(5, TransactionType.INTEREST_PAYMENT, 300, 0),
        _entry(6, TransactionType.LOAN_PAYMENT, 5_000, 15_000),
        _entry(7, TransactionType.PROFILE_UPDATE, 0, None),
    ]

    balances, problems = replay(entries)

    assert problems == []
    assert balances == Balances(shares=10_000, savings=5_000, loan=15_000, interest=0, dues=0)


def test_replay_reports_broken_balance_chain():
    entries = [
        _entry(1, TransactionType.SHARES_DEPOSIT, 10_000, 10_000),
        _entry(2, TransactionType.SHARES_DEPOSIT, 5_000, 14_000),  # should be 15_000
    ]

    balances, problems = replay(entries)

    assert balances.shares == 15_000
    assert len(problems) == 1
    assert "transaction 2" in problems[0]


def test_collateral_is_shares_plus_savings():
    assert Balances(shares=3_000, savings=2_000, loan=9_999).collateral == 5_000
