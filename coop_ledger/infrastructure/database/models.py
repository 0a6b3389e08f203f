"""SQLAlchemy ORM models for the society ledger"""

import uuid
from sqlalchemy import (
    Column, String, BigInteger, Boolean, DateTime, Integer, ForeignKey, Numeric, Text,
    UniqueConstraint, Index, event,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from coop_ledger.domain.exceptions import InvariantViolation

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Society(Base):
    """Cooperative society owning members"""

    __tablename__ = "society"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    code = Column(String(16), nullable=False, unique=True)
    next_member_seq = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    members = relationship("Member", back_populates="society")


class Member(Base):
    """Society member with cached balances kept in step with the ledger"""

    __tablename__ = "member"

    id = Column(String(36), primary_key=True, default=_new_id)
    society_id = Column(String(36), ForeignKey("society.id"), nullable=False, index=True)
    member_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(Text, nullable=True, index=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    address = Column(Text, nullable=False)
    occupation = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    status_reason = Column(Text, nullable=True)
    date_joined = Column(DateTime, nullable=False)

    # Cached balances in minor units; written only by the ledger store
    shares_balance = Column(BigInteger, nullable=False, default=0)
    savings_balance = Column(BigInteger, nullable=False, default=0)
    loan_balance = Column(BigInteger, nullable=False, default=0)
    interest_balance = Column(BigInteger, nullable=False, default=0)
    society_dues = Column(BigInteger, nullable=False, default=0)

    # Terms frozen at disbursement
    loan_start_date = Column(DateTime, nullable=True)
    loan_duration_months = Column(Integer, nullable=True)
    loan_interest_rate = Column(Numeric(8, 4), nullable=True)
    loan_standard_term_months = Column(Integer, nullable=True)
    rate_escalated_at = Column(DateTime, nullable=True)
    monthly_loan_payment = Column(BigInteger, nullable=True)
    last_interest_calculation_date = Column(DateTime, nullable=True)

    loan_eligibility_override = Column(Boolean, nullable=False, default=False)
    loan_eligibility_override_reason = Column(Text, nullable=True)
    loan_eligibility_override_set_by = Column(Text, nullable=True)
    loan_eligibility_override_set_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    society = relationship("Society", back_populates="members")


class MembershipApplication(Base):
    """Application to join a society, vouched for by two members"""

    __tablename__ = "membership_application"

    id = Column(String(36), primary_key=True, default=_new_id)
    society_id = Column(String(36), ForeignKey("society.id"), nullable=False, index=True)
    user_id = Column(Text, nullable=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    address = Column(Text, nullable=False)
    occupation = Column(Text, nullable=False)
    monthly_income = Column(BigInteger, nullable=False)
    guarantor1_member_id = Column(String(36), nullable=False)
    guarantor2_member_id = Column(String(36), nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    applied_at = Column(DateTime, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    review_notes = Column(Text, nullable=True)
    member_id = Column(String(36), ForeignKey("member.id"), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class LoanApplication(Base):
    """Loan request moving through pending -> approved -> disbursed"""

    __tablename__ = "loan_application"

    id = Column(String(36), primary_key=True, default=_new_id)
    member_id = Column(String(36), ForeignKey("member.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    purpose = Column(Text, nullable=False)
    duration_months = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    applied_at = Column(DateTime, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    review_notes = Column(Text, nullable=True)
    disbursed_at = Column(DateTime, nullable=True)
    disbursed_by = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class LedgerTransaction(Base):
    """Append-only ledger entry; id gives insertion order within a date"""

    __tablename__ = "ledger_transaction"
    __table_args__ = (
        UniqueConstraint("member_id", "type", "reference_number", name="uq_ledger_member_type_reference"),
        Index("ix_ledger_member_date", "member_id", "date", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(String(36), ForeignKey("member.id"), nullable=False)
    type = Column(String(32), nullable=False)
    amount = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(DateTime, nullable=False)
    balance_after = Column(BigInteger, nullable=True)
    reference_number = Column(String(64), nullable=True)
    processed_by = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class SettingsVersion(Base):
    """One saved version of the society settings; the highest id is current"""

    __tablename__ = "settings_version"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_interest_rate = Column(Numeric(8, 4), nullable=False)
    standard_loan_term_months = Column(Integer, nullable=False)
    new_member_loan_eligibility_months = Column(Integer, nullable=False)
    loan_to_shares_savings_ratio = Column(Numeric(8, 4), nullable=False)
    last_updated = Column(DateTime, nullable=False)
    updated_by = Column(Text, nullable=False)


@event.listens_for(LedgerTransaction, "before_update")
@event.listens_for(SettingsVersion, "before_update")
def _refuse_update(mapper, connection, target):
    raise InvariantViolation(f"{target.__tablename__} rows are append-only")


@event.listens_for(LedgerTransaction, "before_delete")
@event.listens_for(SettingsVersion, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise InvariantViolation(f"{target.__tablename__} rows are append-only")
