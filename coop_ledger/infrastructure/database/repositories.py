"""Data access layer for society, member, application, ledger and settings records"""

from datetime import datetime
from typing import List, Optional, Sequence
from sqlalchemy import func
from sqlalchemy.orm import Session

from coop_ledger.infrastructure.database.models import (
    Society, Member, MembershipApplication, LoanApplication, LedgerTransaction, SettingsVersion,
)
from coop_ledger.domain.models import (
    Balances, BalanceKind, LedgerEntry, LoanStatus, MemberSnapshot, MemberStatus, TransactionType,
)
from coop_ledger.domain.ledger import types_for_balance

BALANCE_COLUMNS = {
    BalanceKind.SHARES: "shares_balance",
    BalanceKind.SAVINGS: "savings_balance",
    BalanceKind.LOAN: "loan_balance",
    BalanceKind.INTEREST: "interest_balance",
    BalanceKind.DUES: "society_dues",
}


def member_balances(member: Member) -> Balances:
    """Cached balances stored on the member row"""
    return Balances(**{kind.value: getattr(member, column) or 0 for kind, column in BALANCE_COLUMNS.items()})


def to_snapshot(member: Member) -> MemberSnapshot:
    """Convert a member row to the read-only domain view"""
    return MemberSnapshot(
        id=member.id,
        status=MemberStatus(member.status),
        date_joined=member.date_joined,
        balances=member_balances(member),
        loan_eligibility_override=bool(member.loan_eligibility_override),
        loan_start_date=member.loan_start_date,
        loan_duration_months=member.loan_duration_months,
        loan_interest_rate=member.loan_interest_rate,
        loan_standard_term_months=member.loan_standard_term_months,
        rate_escalated_at=member.rate_escalated_at,
        last_interest_calculation_date=member.last_interest_calculation_date,
    )


def to_entry(txn: LedgerTransaction) -> LedgerEntry:
    return LedgerEntry(
        id=txn.id,
        member_id=txn.member_id,
        type=TransactionType(txn.type),
        amount=txn.amount,
        date=txn.date,
        balance_after=txn.balance_after,
        description=txn.description,
        reference_number=txn.reference_number,
        processed_by=txn.processed_by,
    )


class SocietyRepository:
    """Repository for societies"""

    def __init__(self, db: Session):
        self.db = db

    def create_society(self, name: str, code: str) -> Society:
        society = Society(name=name, code=code, next_member_seq=0)
        self.db.add(society)
        self.db.flush()
        return society

    def get(self, society_id: str) -> Optional[Society]:
        return self.db.get(Society, society_id)

    def get_for_update(self, society_id: str) -> Optional[Society]:
        """Fetch society with a row lock; member numbering is serialized on it"""
        return (
            self.db.query(Society)
            .filter(Society.id == society_id)
            .with_for_update()
            .first()
        )


class MemberRepository:
    """Repository for members"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, member_id: str) -> Optional[Member]:
        return self.db.get(Member, member_id)

    def get_for_update(self, member_id: str) -> Optional[Member]:
        """Fetch member with a row lock (serializes writers on PostgreSQL)"""
        return (
            self.db.query(Member)
            .filter(Member.id == member_id)
            .with_for_update()
            .first()
        )

    def create_member(self, society: Society, date_joined: datetime, **fields) -> Member:
        """Create a member with zero balances and the society's next member number"""
        member = Member(
            society_id=society.id,
            member_number=self.allocate_member_number(society),
            status=MemberStatus.ACTIVE.value,
            date_joined=date_joined,
            shares_balance=0,
            savings_balance=0,
            loan_balance=0,
            interest_balance=0,
            society_dues=0,
            loan_eligibility_override=False,
            **fields,
        )
        self.db.add(member)
        self.db.flush()
        return member

    def allocate_member_number(self, society: Society) -> str:
        """
        Take the society's next member number (<code><NNN>).

        Bumps the counter on the society row, so two approvals racing for the
        same number fail the society's version check at flush.
        """
        society.next_member_seq = (society.next_member_seq or 0) + 1
        return f"{society.code}{society.next_member_seq:03d}"

    def ids_with_open_loans(self) -> List[str]:
        """Members with outstanding principal, in stable order"""
        rows = (
            self.db.query(Member.id)
            .filter(Member.loan_balance > 0)
            .order_by(Member.member_number)
            .all()
        )
        return [row[0] for row in rows]


class LedgerRepository:
    """Repository for ledger transactions (insert and read only)"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, txn: LedgerTransaction) -> LedgerTransaction:
        self.db.add(txn)
        self.db.flush()  # Get ID without committing
        return txn

    def list_by_member(
        self,
        member_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerTransaction]:
        """Entries in ledger order: date, then insertion order"""
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.member_id == member_id)
        if start is not None:
            query = query.filter(LedgerTransaction.date >= start)
        if end is not None:
            query = query.filter(LedgerTransaction.date <= end)
        return query.order_by(LedgerTransaction.date, LedgerTransaction.id).all()

    def count_by_member(self, member_id: str) -> int:
        return (
            self.db.query(func.count(LedgerTransaction.id))
            .filter(LedgerTransaction.member_id == member_id)
            .scalar()
        ) or 0

    def latest_for_member(self, member_id: str) -> Optional[LedgerTransaction]:
        return (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.member_id == member_id)
            .order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
            .first()
        )

    def reference_exists(self, member_id: str, txn_type: TransactionType, reference_number: str) -> bool:
        return (
            self.db.query(LedgerTransaction.id)
            .filter(
                LedgerTransaction.member_id == member_id,
                LedgerTransaction.type == txn_type.value,
                LedgerTransaction.reference_number == reference_number,
            )
            .first()
        ) is not None

    def balance_before(self, member_id: str, kind: BalanceKind, moment: datetime) -> int:
        """Balance of one kind from the last entry dated strictly before moment"""
        types: Sequence[str] = [t.value for t in types_for_balance(kind)]
        latest = (
            self.db.query(LedgerTransaction.balance_after)
            .filter(
                LedgerTransaction.member_id == member_id,
                LedgerTransaction.type.in_(types),
                LedgerTransaction.date < moment,
            )
            .order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
            .first()
        )
        return latest[0] if latest else 0


class LoanApplicationRepository:
    """Repository for loan applications"""

    def __init__(self, db: Session):
        self.db = db

    def create_application(
        self, member_id: str, amount: int, purpose: str, duration_months: int, applied_at: datetime
    ) -> LoanApplication:
        application = LoanApplication(
            member_id=member_id,
            amount=amount,
            purpose=purpose,
            duration_months=duration_months,
            status=LoanStatus.PENDING.value,
            applied_at=applied_at,
        )
        self.db.add(application)
        self.db.flush()
        return application

    def get(self, application_id: str) -> Optional[LoanApplication]:
        return self.db.get(LoanApplication, application_id)

    def get_for_update(self, application_id: str) -> Optional[LoanApplication]:
        return (
            self.db.query(LoanApplication)
            .filter(LoanApplication.id == application_id)
            .with_for_update()
            .first()
        )

    def count_in_flight(self, member_id: str, exclude_id: Optional[str] = None) -> int:
        """Applications for the member still pending or approved"""
        query = self.db.query(func.count(LoanApplication.id)).filter(
            LoanApplication.member_id == member_id,
            LoanApplication.status.in_([LoanStatus.PENDING.value, LoanStatus.APPROVED.value]),
        )
        if exclude_id is not None:
            query = query.filter(LoanApplication.id != exclude_id)
        return query.scalar() or 0

    def list_by_status(self, status: LoanStatus) -> List[LoanApplication]:
        return (
            self.db.query(LoanApplication)
            .filter(LoanApplication.status == status.value)
            .order_by(LoanApplication.applied_at)
            .all()
        )


class MembershipApplicationRepository:
    """Repository for membership applications"""

    def __init__(self, db: Session):
        self.db = db

    def create_application(self, applied_at: datetime, **fields) -> MembershipApplication:
        application = MembershipApplication(status="pending", applied_at=applied_at, **fields)
        self.db.add(application)
        self.db.flush()
        return application

    def get(self, application_id: str) -> Optional[MembershipApplication]:
        return self.db.get(MembershipApplication, application_id)

    def get_for_update(self, application_id: str) -> Optional[MembershipApplication]:
        return (
            self.db.query(MembershipApplication)
            .filter(MembershipApplication.id == application_id)
            .with_for_update()
            .first()
        )

    def list_pending(self) -> List[MembershipApplication]:
        return (
            self.db.query(MembershipApplication)
            .filter(MembershipApplication.status == "pending")
            .order_by(MembershipApplication.applied_at)
            .all()
        )


class SettingsRepository:
    """Repository for settings versions"""

    def __init__(self, db: Session):
        self.db = db

    def latest(self) -> Optional[SettingsVersion]:
        return self.db.query(SettingsVersion).order_by(SettingsVersion.id.desc()).first()

    def append(self, version: SettingsVersion) -> SettingsVersion:
        self.db.add(version)
        self.db.flush()
        return version
