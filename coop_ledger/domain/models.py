"""Domain models - pure Python dataclasses representing business entities"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


class Role(str, enum.Enum):
    MEMBER = "member"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"


class BalanceKind(str, enum.Enum):
    SHARES = "shares"
    SAVINGS = "savings"
    LOAN = "loan"
    INTEREST = "interest"
    DUES = "dues"


class TransactionType(str, enum.Enum):
    SHARES_DEPOSIT = "shares_deposit"
    SHARES_WITHDRAWAL = "shares_withdrawal"
    SAVINGS_DEPOSIT = "savings_deposit"
    SAVINGS_WITHDRAWAL = "savings_withdrawal"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_PAYMENT = "loan_payment"
    INTEREST_CHARGE = "interest_charge"
    INTEREST_PAYMENT = "interest_payment"
    DUES_PAYMENT = "dues_payment"
    PROFILE_UPDATE = "profile_update"


@dataclass(frozen=True)
class Actor:
    """Identity supplied by the auth collaborator; trusted as given"""

    user_id: str
    role: Role

    @property
    def is_reviewer(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)


@dataclass(frozen=True)
class Balances:
    """Per-member balances in minor currency units"""

    shares: int = 0
    savings: int = 0
    loan: int = 0
    interest: int = 0
    dues: int = 0

    def get(self, kind: BalanceKind) -> int:
        return getattr(self, kind.value)

    def with_value(self, kind: BalanceKind, value: int) -> "Balances":
        return replace(self, **{kind.value: value})

    @property
    def collateral(self) -> int:
        """Shares plus savings, the base for the loan cap"""
        return self.shares + self.savings


@dataclass
class LedgerEntry:
    """Posted transaction as seen by the domain layer"""

    id: int
    member_id: str
    type: TransactionType
    amount: int
    date: datetime
    balance_after: Optional[int]
    description: str = ""
    reference_number: Optional[str] = None
    processed_by: Optional[str] = None


@dataclass
class MemberSnapshot:
    """Read-only view of a member used by pure rules"""

    id: str
    status: MemberStatus
    date_joined: datetime
    balances: Balances
    loan_eligibility_override: bool = False
    loan_start_date: Optional[datetime] = None
    loan_duration_months: Optional[int] = None
    loan_interest_rate: Optional[Decimal] = None
    loan_standard_term_months: Optional[int] = None
    rate_escalated_at: Optional[datetime] = None
    last_interest_calculation_date: Optional[datetime] = None


@dataclass
class EligibilityResult:
    """Outcome of the loan eligibility rules; reasons lists every failed rule"""

    eligible: bool
    reasons: List[str] = field(default_factory=list)


@dataclass
class AccrualPeriod:
    """One calendar month of interest for a loan"""

    period_start: datetime
    month_number: int
    rate: Decimal
    escalates: bool


@dataclass
class PaymentAllocation:
    """Split of a loan repayment: outstanding interest first, then principal"""

    interest_paid: int
    principal_paid: int
    new_interest_balance: int
    new_loan_balance: int


@dataclass
class MemberAccrual:
    """Interest posted for one member in an accrual run"""

    member_id: str
    loan_balance: int
    previous_interest_balance: int
    new_interest_balance: int
    interest_charged: int
    periods: List[AccrualPeriod] = field(default_factory=list)


@dataclass
class AccrualReport:
    """Outcome of an accrual run across all members with open loans"""

    as_of: datetime
    processed_members: int = 0
    total_interest_charged: int = 0
    members: List[MemberAccrual] = field(default_factory=list)
    faults: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


@dataclass
class LoanSummary:
    """Status of an active loan for display by the presentation layer"""

    loan_balance: int
    interest_balance: int
    total_owed: int
    months_since_disbursement: int
    current_monthly_rate: Decimal
    is_penalty_rate: bool
    next_interest_due_date: datetime
    next_month_interest: int
    months_remaining: int
    months_overdue: int
    loan_end_date: datetime

    @property
    def is_overdue(self) -> bool:
        return self.months_overdue > 0
