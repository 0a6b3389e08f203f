"""Member account postings made by society officers"""

from datetime import datetime
from typing import List, Optional, Union
from sqlalchemy.orm import Session

from coop_ledger.domain.exceptions import MemberNotFoundError, ValidationError
from coop_ledger.domain.lifecycle import require_reviewer
from coop_ledger.domain.models import Actor, PaymentAllocation, TransactionType
from coop_ledger.domain.payments import allocate_loan_payment
from coop_ledger.infrastructure.database.models import LedgerTransaction
from coop_ledger.infrastructure.database.repositories import MemberRepository, member_balances
from coop_ledger.infrastructure.database.session import atomic
from coop_ledger.services.ledger import LedgerStore, coerce_transaction_type
from coop_ledger.utils.date_utils import utcnow

# Types an officer may post directly; loan and interest entries come from workflows
DIRECT_POSTING_TYPES = (
    TransactionType.SHARES_DEPOSIT,
    TransactionType.SHARES_WITHDRAWAL,
    TransactionType.SAVINGS_DEPOSIT,
    TransactionType.SAVINGS_WITHDRAWAL,
    TransactionType.DUES_PAYMENT,
)


class AccountService:
    """Deposits, withdrawals, dues and loan repayments"""

    def __init__(self, db: Session):
        self.db = db
        self.members = MemberRepository(db)
        self.ledger = LedgerStore(db)

    def post(
        self,
        actor: Actor,
        member_id: str,
        txn_type: Union[TransactionType, str],
        amount: int,
        description: str = "",
        reference_number: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LedgerTransaction:
        """Post a shares, savings or dues movement on behalf of a member"""
        require_reviewer(actor)
        txn_type = coerce_transaction_type(txn_type)
        if txn_type not in DIRECT_POSTING_TYPES:
            raise ValidationError(f"{txn_type.value} cannot be posted directly")

        return self.ledger.append(
            member_id,
            txn_type,
            amount,
            date=now or utcnow(),
            description=description or txn_type.value.replace("_", " ").capitalize(),
            reference_number=reference_number,
            processed_by=actor.user_id,
        )

    def deposit_shares(self, actor: Actor, member_id: str, amount: int, **kwargs) -> LedgerTransaction:
        return self.post(actor, member_id, TransactionType.SHARES_DEPOSIT, amount, **kwargs)

    def withdraw_shares(self, actor: Actor, member_id: str, amount: int, **kwargs) -> LedgerTransaction:
        return self.post(actor, member_id, TransactionType.SHARES_WITHDRAWAL, amount, **kwargs)

    def deposit_savings(self, actor: Actor, member_id: str, amount: int, **kwargs) -> LedgerTransaction:
        return self.post(actor, member_id, TransactionType.SAVINGS_DEPOSIT, amount, **kwargs)

    def withdraw_savings(self, actor: Actor, member_id: str, amount: int, **kwargs) -> LedgerTransaction:
        return self.post(actor, member_id, TransactionType.SAVINGS_WITHDRAWAL, amount, **kwargs)

    def pay_dues(self, actor: Actor, member_id: str, amount: int, **kwargs) -> LedgerTransaction:
        return self.post(actor, member_id, TransactionType.DUES_PAYMENT, amount, **kwargs)

    def record_loan_payment(
        self,
        actor: Actor,
        member_id: str,
        amount: int,
        note: str = "",
        now: Optional[datetime] = None,
    ) -> PaymentAllocation:
        """
        Apply a repayment: outstanding interest first, then principal.

        Posts an interest_payment and/or a loan_payment in one unit of work.
        Next month's interest is charged on the reduced principal.
        """
        require_reviewer(actor)
        now = now or utcnow()
        suffix = f": {note}" if note else ""

        with atomic(self.db):
            member = self.members.get_for_update(member_id)
            if member is None:
                raise MemberNotFoundError(f"Member {member_id} not found")

            allocation = allocate_loan_payment(member_balances(member), amount)
            postings: List[tuple] = [
                (TransactionType.INTEREST_PAYMENT, allocation.interest_paid, f"Interest payment{suffix}"),
                (TransactionType.LOAN_PAYMENT, allocation.principal_paid, f"Loan payment{suffix}"),
            ]
            for txn_type, paid, description in postings:
                if paid > 0:
                    self.ledger.append(
                        member_id,
                        txn_type,
                        paid,
                        date=now,
                        description=description,
                        processed_by=actor.user_id,
                    )

        return allocation
