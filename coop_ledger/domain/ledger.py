"""Ledger posting rules - how each transaction type moves a member's balances"""

from typing import Dict, Iterable, List, Optional, Tuple
from coop_ledger.domain.models import Balances, BalanceKind, LedgerEntry, TransactionType
from coop_ledger.domain.exceptions import InvalidAmountError, InsufficientBalanceError

# (balance affected, sign); profile_update is an audit entry with no balance effect
TRANSACTION_EFFECTS: Dict[TransactionType, Optional[Tuple[BalanceKind, int]]] = {
    TransactionType.SHARES_DEPOSIT: (BalanceKind.SHARES, 1),
    TransactionType.SHARES_WITHDRAWAL: (BalanceKind.SHARES, -1),
    TransactionType.SAVINGS_DEPOSIT: (BalanceKind.SAVINGS, 1),
    TransactionType.SAVINGS_WITHDRAWAL: (BalanceKind.SAVINGS, -1),
    TransactionType.LOAN_DISBURSEMENT: (BalanceKind.LOAN, 1),
    TransactionType.LOAN_PAYMENT: (BalanceKind.LOAN, -1),
    TransactionType.INTEREST_CHARGE: (BalanceKind.INTEREST, 1),
    TransactionType.INTEREST_PAYMENT: (BalanceKind.INTEREST, -1),
    TransactionType.DUES_PAYMENT: (BalanceKind.DUES, 1),
    TransactionType.PROFILE_UPDATE: None,
}


def affected_balance(txn_type: TransactionType) -> Optional[BalanceKind]:
    """Balance kind a transaction type moves, or None for audit-only entries"""
    effect = TRANSACTION_EFFECTS[txn_type]
    return effect[0] if effect else None


def types_for_balance(kind: BalanceKind) -> List[TransactionType]:
    """Transaction types that move the given balance"""
    return [t for t, effect in TRANSACTION_EFFECTS.items() if effect and effect[0] == kind]


def signed_amount(txn_type: TransactionType, amount: int) -> int:
    effect = TRANSACTION_EFFECTS[txn_type]
    return effect[1] * amount if effect else 0


def validate_amount(txn_type: TransactionType, amount: int) -> None:
    """
    Reject amounts a transaction type cannot carry.

    Raises:
        InvalidAmountError: non-integer amount, non-positive amount on a money
            movement, or non-zero amount on an audit entry
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Amount must be an integer number of minor units, got {amount!r}")

    if TRANSACTION_EFFECTS[txn_type] is None:
        if amount != 0:
            raise InvalidAmountError(f"{txn_type.value} entries carry no amount")
        return

    if amount <= 0:
        raise InvalidAmountError(f"{txn_type.value} amount must be greater than 0")


def apply_transaction(
    balances: Balances, txn_type: TransactionType, amount: int
) -> Tuple[Balances, Optional[int]]:
    """
    Apply one posting to a set of balances.

    Returns:
        (new balances, balance_after for the affected kind or None)

    Raises:
        InvalidAmountError: amount not valid for the type
        InsufficientBalanceError: the posting would take a balance below zero
    """
    validate_amount(txn_type, amount)

    kind = affected_balance(txn_type)
    if kind is None:
        return balances, None

    new_value = balances.get(kind) + signed_amount(txn_type, amount)
    if new_value < 0:
        raise InsufficientBalanceError(
            f"{txn_type.value} of {amount} exceeds {kind.value} balance of {balances.get(kind)}"
        )

    return balances.with_value(kind, new_value), new_value


def replay(entries: Iterable[LedgerEntry]) -> Tuple[Balances, List[str]]:
    """
    Fold ledger entries (already in ledger order) into balances.

    Returns the final balances and a list of audit problems: entries whose
    stored balance_after disagrees with the running fold.
    """
    balances = Balances()
    problems: List[str] = []

    for entry in entries:
        kind = affected_balance(entry.type)
        if kind is None:
            continue

        expected = balances.get(kind) + signed_amount(entry.type, entry.amount)
        balances = balances.with_value(kind, expected)

        if expected < 0:
            problems.append(f"transaction {entry.id} takes {kind.value} below zero")
        if entry.balance_after != expected:
            problems.append(
                f"transaction {entry.id} ({entry.type.value}) balance_after={entry.balance_after}, expected {expected}"
            )

    return balances, problems
