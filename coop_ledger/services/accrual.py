"""Monthly interest accrual across all members with open loans"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coop_ledger.config import settings as config
from coop_ledger.domain.exceptions import ConcurrencyConflict, DataIntegrityFault, DomainException
from coop_ledger.domain.interest import compute_interest_charge, due_periods
from coop_ledger.domain.models import AccrualReport, BalanceKind, MemberAccrual, TransactionType
from coop_ledger.infrastructure.database.repositories import LedgerRepository, MemberRepository
from coop_ledger.infrastructure.database.session import SessionLocal, atomic
from coop_ledger.infrastructure.observability.logging import log_accrual_run, log_integrity_fault
from coop_ledger.infrastructure.observability.metrics import (
    accrual_duration_histogram, accrual_fault_counter, interest_charged_counter,
)
from coop_ledger.services.ledger import LedgerStore
from coop_ledger.services.retry import run_with_retries
from coop_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class InterestAccrualEngine:
    """
    Posts one interest_charge per member per elapsed calendar month.

    Each member is an independent unit of work in its own session, so members
    can run in parallel while writes to one member stay serialized by its row
    lock and version counter. The watermark advances in the same transaction
    as the charges, which makes a re-run after a crash safe.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        max_workers: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.max_workers = max_workers or config.accrual_max_workers
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    def run(self, as_of: Optional[datetime] = None, processed_by: Optional[str] = None) -> AccrualReport:
        """Accrue interest for every member with outstanding principal up to as_of"""
        as_of = as_of or utcnow()
        processed_by = processed_by or config.system_actor_id
        start_time = time.time()

        with self.session_factory() as db:
            member_ids = MemberRepository(db).ids_with_open_loans()

        if self.max_workers > 1 and len(member_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda m: self._process(m, as_of, processed_by), member_ids))
        else:
            outcomes = [self._process(m, as_of, processed_by) for m in member_ids]

        report = AccrualReport(as_of=as_of)
        for member_id, accrual, fault, failure in outcomes:
            if fault:
                report.faults.append(fault)
            elif failure:
                report.failures.append(failure)
            elif accrual and accrual.interest_charged > 0:
                report.members.append(accrual)
                report.processed_members += 1
                report.total_interest_charged += accrual.interest_charged

        duration = time.time() - start_time
        accrual_duration_histogram.observe(duration)
        log_accrual_run(
            as_of.isoformat(),
            report.processed_members,
            report.total_interest_charged,
            len(report.faults),
            len(report.failures),
            duration * 1000,
        )
        return report

    def accrue_member(
        self, db: Session, member_id: str, as_of: datetime, processed_by: Optional[str] = None
    ) -> MemberAccrual:
        """
        Charge every due month for one member inside a single unit of work.

        Charge per month = loan balance at the month's start x effective rate,
        rounded half up. Months already covered by the watermark are skipped.

        Raises:
            DataIntegrityFault: outstanding principal without a loan start date
        """
        processed_by = processed_by or config.system_actor_id
        members = MemberRepository(db)
        transactions = LedgerRepository(db)
        ledger = LedgerStore(db)

        with atomic(db):
            member = members.get_for_update(member_id)
            previous_interest = member.interest_balance if member else 0
            accrual = MemberAccrual(
                member_id=member_id,
                loan_balance=member.loan_balance if member else 0,
                previous_interest_balance=previous_interest,
                new_interest_balance=previous_interest,
                interest_charged=0,
            )
            if member is None or member.loan_balance <= 0:
                return accrual

            if member.loan_start_date is None:
                raise DataIntegrityFault(f"Member {member_id} has a loan balance but no loan start date")
            if member.loan_interest_rate is None or member.loan_standard_term_months is None:
                raise DataIntegrityFault(f"Member {member_id} has a loan balance but no frozen loan terms")

            periods = due_periods(
                loan_start=member.loan_start_date,
                watermark=member.last_interest_calculation_date,
                as_of=as_of,
                current_rate=member.loan_interest_rate,
                standard_term_months=member.loan_standard_term_months,
                already_escalated=member.rate_escalated_at is not None,
            )

            for period in periods:
                if period.escalates:
                    member.loan_interest_rate = period.rate
                    member.rate_escalated_at = period.period_start

                balance = transactions.balance_before(member_id, BalanceKind.LOAN, period.period_start)
                charge = compute_interest_charge(balance, period.rate)
                if charge > 0:
                    ledger.append(
                        member_id,
                        TransactionType.INTEREST_CHARGE,
                        charge,
                        date=as_of,
                        description=(
                            f"Monthly interest for {period.period_start:%Y-%m} "
                            f"({period.rate}% on {balance})"
                        ),
                        reference_number=f"INT-{period.period_start:%Y-%m}",
                        processed_by=processed_by,
                    )
                    accrual.interest_charged += charge
                    accrual.periods.append(period)

                member.last_interest_calculation_date = period.period_start

            db.flush()
            accrual.new_interest_balance = member.interest_balance

        if accrual.interest_charged:
            interest_charged_counter.inc(accrual.interest_charged)
        return accrual

    def _process(self, member_id: str, as_of: datetime, processed_by: str):
        """Run one member's unit of work with conflict retries; returns (id, accrual, fault, failure)"""

        def attempt() -> MemberAccrual:
            with self.session_factory() as db:
                return self.accrue_member(db, member_id, as_of, processed_by)

        try:
            accrual = run_with_retries(attempt, max_retries=self.max_retries, backoff_base=self.backoff_base)
            return member_id, accrual, None, None
        except DataIntegrityFault as e:
            accrual_fault_counter.labels(kind="data_integrity").inc()
            log_integrity_fault(member_id, str(e))
            return member_id, None, str(e), None
        except ConcurrencyConflict as e:
            accrual_fault_counter.labels(kind="conflict").inc()
            logger.error("Accrual gave up after conflicts", extra={"member_id": member_id, "step": "accrual"})
            return member_id, None, None, f"{member_id}: {e}"
        except DomainException as e:
            logger.error("Accrual failed", extra={"member_id": member_id, "step": "accrual", "detail": str(e)})
            return member_id, None, None, f"{member_id}: {e}"
        except SQLAlchemyError as e:
            accrual_fault_counter.labels(kind="database").inc()
            logger.exception("Accrual failed on database error", extra={"member_id": member_id, "step": "accrual"})
            return member_id, None, None, f"{member_id}: {type(e).__name__}: {e}"
