"""Pytest fixtures for testing"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Callable, Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from coop_ledger.domain.models import Actor, Role, TransactionType
from coop_ledger.infrastructure.database.models import Base, Member, Society
from coop_ledger.infrastructure.database.repositories import MemberRepository, SocietyRepository
from coop_ledger.schemas import SettingsSnapshot
from coop_ledger.services.ledger import LedgerStore


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
# Writers from parallel sessions wait for the file lock instead of failing
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> Callable[[], Session]:
    """Session factory bound to the test database (tables created by `db`)"""
    return TestingSessionLocal


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(user_id="root-1", role=Role.SUPER_ADMIN)


@pytest.fixture
def member_actor() -> Actor:
    return Actor(user_id="user-1", role=Role.MEMBER)


@pytest.fixture
def society_settings() -> SettingsSnapshot:
    """1.5% monthly, 12 month term, 6 month window, 2x collateral"""
    return SettingsSnapshot(
        version=1,
        loan_interest_rate=Decimal("1.5"),
        standard_loan_term_months=12,
        new_member_loan_eligibility_months=6,
        loan_to_shares_savings_ratio=Decimal("2"),
    )


@pytest.fixture
def society(db: Session) -> Society:
    society = SocietyRepository(db).create_society(name="Ikeja Traders Cooperative", code="IKJ")
    db.commit()
    return society


@pytest.fixture
def make_member(db: Session, society: Society) -> Callable[..., Member]:
    """Factory for active members joined on a given date"""
    counter = {"n": 0}

    def _make(date_joined: datetime = datetime(2024, 1, 10), **fields) -> Member:
        counter["n"] += 1
        n = counter["n"]
        values = dict(
            user_id=f"user-{n}",
            first_name="Ada",
            last_name=f"Member{n}",
            email=f"member{n}@example.com",
            phone="08030000000",
            address="12 Market Road, Ikeja",
            occupation="Trader",
        )
        values.update(fields)
        member = MemberRepository(db).create_member(society, date_joined=date_joined, **values)
        db.commit()
        return member

    return _make


@pytest.fixture
def disbursed_loan(db: Session) -> Callable[..., Member]:
    """Put a member into an outstanding-loan state with frozen terms"""

    def _disburse(
        member: Member,
        amount: int,
        start: datetime,
        rate: Decimal = Decimal("1.5"),
        term: int = 12,
        duration: int = 12,
    ) -> Member:
        LedgerStore(db).append(
            member.id,
            TransactionType.LOAN_DISBURSEMENT,
            amount,
            date=start,
            description="Loan disbursed",
            reference_number=f"LN-test-{member.id}",
            processed_by="admin-1",
        )
        member.loan_start_date = start
        member.loan_duration_months = duration
        member.loan_interest_rate = rate
        member.loan_standard_term_months = term
        member.rate_escalated_at = None
        member.last_interest_calculation_date = start
        db.commit()
        return member

    return _disburse
