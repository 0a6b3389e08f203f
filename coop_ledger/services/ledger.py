"""Ledger store - the only way balances change"""

from datetime import datetime
from typing import List, Optional, Union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coop_ledger.domain.exceptions import (
    DuplicateReferenceError, InvalidAmountError, InsufficientBalanceError, MemberNotFoundError, ValidationError,
)
from coop_ledger.domain.ledger import affected_balance, apply_transaction
from coop_ledger.domain.models import TransactionType
from coop_ledger.infrastructure.database.models import LedgerTransaction
from coop_ledger.infrastructure.database.repositories import (
    BALANCE_COLUMNS, LedgerRepository, MemberRepository, member_balances,
)
from coop_ledger.infrastructure.database.session import atomic
from coop_ledger.infrastructure.observability.logging import log_posting
from coop_ledger.infrastructure.observability.metrics import ledger_rejection_counter, ledger_transaction_counter
from coop_ledger.utils.date_utils import utcnow


class LedgerStore:
    """Append-only store of member transactions"""

    def __init__(self, db: Session):
        self.db = db
        self.members = MemberRepository(db)
        self.transactions = LedgerRepository(db)

    def append(
        self,
        member_id: str,
        txn_type: Union[TransactionType, str],
        amount: int,
        *,
        date: Optional[datetime] = None,
        description: str = "",
        reference_number: Optional[str] = None,
        processed_by: Optional[str] = None,
    ) -> LedgerTransaction:
        """
        Append one transaction and move the member's cached balance with it.

        Both writes happen in one unit of work: a standalone call commits,
        a call inside an enclosing `atomic` block joins it.

        Raises:
            ValidationError: unknown type or member, back-dated entry
            InvalidAmountError: amount not valid for the type
            InsufficientBalanceError: the posting would take a balance below zero
            DuplicateReferenceError: reference already used for this member and type
        """
        txn_type = coerce_transaction_type(txn_type)
        date = date or utcnow()

        with atomic(self.db):
            member = self.members.get_for_update(member_id)
            if member is None:
                raise MemberNotFoundError(f"Member {member_id} not found")

            latest = self.transactions.latest_for_member(member_id)
            if latest is not None and date < latest.date:
                ledger_rejection_counter.labels(reason="backdated").inc()
                raise ValidationError(
                    f"Transaction dated {date.isoformat()} precedes the latest entry ({latest.date.isoformat()})"
                )

            if reference_number and self.transactions.reference_exists(member_id, txn_type, reference_number):
                ledger_rejection_counter.labels(reason="duplicate_reference").inc()
                raise DuplicateReferenceError(
                    f"Reference {reference_number} already used for {txn_type.value} on member {member_id}"
                )

            try:
                new_balances, balance_after = apply_transaction(member_balances(member), txn_type, amount)
            except InsufficientBalanceError:
                ledger_rejection_counter.labels(reason="insufficient_balance").inc()
                raise
            except InvalidAmountError:
                ledger_rejection_counter.labels(reason="invalid_amount").inc()
                raise

            txn = LedgerTransaction(
                member_id=member_id,
                type=txn_type.value,
                amount=amount,
                description=description,
                date=date,
                balance_after=balance_after,
                reference_number=reference_number,
                processed_by=processed_by,
            )

            kind = affected_balance(txn_type)
            if kind is not None:
                setattr(member, BALANCE_COLUMNS[kind], new_balances.get(kind))

            try:
                self.transactions.add(txn)
                self.db.flush()
            except IntegrityError as e:
                raise DuplicateReferenceError(
                    f"Reference {reference_number} already used for {txn_type.value} on member {member_id}"
                ) from e

        ledger_transaction_counter.labels(type=txn_type.value).inc()
        log_posting(member_id, txn_type.value, amount, balance_after, processed_by)
        return txn

    def list_by_member(
        self,
        member_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerTransaction]:
        """Transactions for a member in ledger order, optionally within [start, end]"""
        return self.transactions.list_by_member(member_id, start, end)


def coerce_transaction_type(txn_type: Union[TransactionType, str]) -> TransactionType:
    """Accept an enum member or its string value; unknown types are a ValidationError"""
    try:
        return TransactionType(txn_type)
    except ValueError as e:
        raise ValidationError(f"Unknown transaction type {txn_type!r}") from e
