"""Loan lifecycle - application, review and disbursement"""

from datetime import datetime
from typing import Any, List, Mapping, Optional, Union
from sqlalchemy.orm import Session

from coop_ledger.domain.eligibility import evaluate_loan_eligibility
from coop_ledger.domain.exceptions import (
    ApplicationNotFoundError, AuthorizationError, IneligibleError, MemberNotFoundError, ValidationError,
)
from coop_ledger.domain.interest import loan_summary
from coop_ledger.domain.lifecycle import ensure_transition, require_reviewer
from coop_ledger.domain.models import Actor, EligibilityResult, LoanStatus, LoanSummary, TransactionType
from coop_ledger.domain.payments import monthly_installment
from coop_ledger.infrastructure.database.models import LoanApplication, Member
from coop_ledger.infrastructure.database.repositories import (
    LoanApplicationRepository, MemberRepository, to_snapshot,
)
from coop_ledger.infrastructure.database.session import atomic
from coop_ledger.infrastructure.observability.logging import log_transition
from coop_ledger.infrastructure.observability.metrics import record_eligibility, record_transition
from coop_ledger.schemas import LoanApplicationRequest, SettingsSnapshot, parse_input
from coop_ledger.services.ledger import LedgerStore
from coop_ledger.utils.date_utils import utcnow


class LoanService:
    """Loan state machine: pending -> approved -> disbursed, pending -> rejected"""

    def __init__(self, db: Session):
        self.db = db
        self.members = MemberRepository(db)
        self.applications = LoanApplicationRepository(db)
        self.ledger = LedgerStore(db)

    def evaluate(
        self,
        member_id: str,
        draft: Union[LoanApplicationRequest, Mapping[str, Any]],
        settings: SettingsSnapshot,
        now: Optional[datetime] = None,
        exclude_application_id: Optional[str] = None,
    ) -> EligibilityResult:
        """Read-only eligibility check against the member's current state"""
        draft = parse_input(LoanApplicationRequest, draft)
        member = self._require_member(member_id)
        return self._evaluate(member, draft, settings, now or utcnow(), exclude_application_id)

    def submit(
        self,
        actor: Actor,
        request: Union[LoanApplicationRequest, Mapping[str, Any]],
        settings: SettingsSnapshot,
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        """
        File a loan application for a member.

        Raises:
            ValidationError: malformed request or unknown member
            AuthorizationError: actor is neither the member nor a reviewer
            IneligibleError: eligibility rules failed (all reasons included)
        """
        request = parse_input(LoanApplicationRequest, request)
        now = now or utcnow()

        with atomic(self.db):
            member = self.members.get_for_update(request.member_id)
            if member is None:
                raise MemberNotFoundError(f"Member {request.member_id} not found")
            if not actor.is_reviewer and member.user_id != actor.user_id:
                raise AuthorizationError("Members may only apply for their own loans")

            result = self._evaluate(member, request, settings, now, None)
            if not result.eligible:
                raise IneligibleError(result.reasons)

            application = self.applications.create_application(
                member_id=member.id,
                amount=request.amount,
                purpose=request.purpose,
                duration_months=request.duration_months,
                applied_at=now,
            )

        record_transition("loan", LoanStatus.PENDING.value)
        log_transition("loan", application.id, "new", LoanStatus.PENDING.value, actor.user_id)
        return application

    def approve(
        self,
        actor: Actor,
        application_id: str,
        settings: SettingsSnapshot,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        """Approve a pending application after re-checking eligibility on current balances"""
        require_reviewer(actor)
        now = now or utcnow()

        with atomic(self.db):
            application = self._require_application(application_id)
            ensure_transition(LoanStatus(application.status), LoanStatus.APPROVED)

            member = self.members.get_for_update(application.member_id)
            draft = LoanApplicationRequest(
                member_id=application.member_id,
                amount=application.amount,
                purpose=application.purpose,
                duration_months=application.duration_months,
            )
            result = self._evaluate(member, draft, settings, now, application.id)
            if not result.eligible:
                raise IneligibleError(result.reasons)

            application.status = LoanStatus.APPROVED.value
            application.reviewed_at = now
            application.reviewed_by = actor.user_id
            application.review_notes = notes
            self.db.flush()

        self._after_transition(application, LoanStatus.PENDING, LoanStatus.APPROVED, actor)
        return application

    def reject(
        self,
        actor: Actor,
        application_id: str,
        notes: str,
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        """Reject a pending application; review notes are mandatory"""
        require_reviewer(actor)
        if not notes or not notes.strip():
            raise ValidationError("Review notes are required to reject a loan application")
        now = now or utcnow()

        with atomic(self.db):
            application = self._require_application(application_id)
            ensure_transition(LoanStatus(application.status), LoanStatus.REJECTED)

            application.status = LoanStatus.REJECTED.value
            application.reviewed_at = now
            application.reviewed_by = actor.user_id
            application.review_notes = notes.strip()
            self.db.flush()

        self._after_transition(application, LoanStatus.PENDING, LoanStatus.REJECTED, actor)
        return application

    def disburse(
        self,
        actor: Actor,
        application_id: str,
        settings: SettingsSnapshot,
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        """
        Pay out an approved loan.

        Posts exactly one loan_disbursement (reference LN-<application id>) and
        freezes the loan's own terms: start date, duration, monthly rate and
        standard term from the settings snapshot, installment, and the accrual
        watermark at the disbursement time.
        """
        require_reviewer(actor)
        now = now or utcnow()

        with atomic(self.db):
            application = self._require_application(application_id)
            ensure_transition(LoanStatus(application.status), LoanStatus.DISBURSED)

            self.ledger.append(
                application.member_id,
                TransactionType.LOAN_DISBURSEMENT,
                application.amount,
                date=now,
                description=f"Loan disbursed - {application.purpose}",
                reference_number=f"LN-{application.id}",
                processed_by=actor.user_id,
            )

            member = self.members.get_for_update(application.member_id)
            member.loan_start_date = now
            member.loan_duration_months = application.duration_months
            member.loan_interest_rate = settings.loan_interest_rate
            member.loan_standard_term_months = settings.standard_loan_term_months
            member.rate_escalated_at = None
            member.monthly_loan_payment = monthly_installment(application.amount, application.duration_months)
            member.last_interest_calculation_date = now

            application.status = LoanStatus.DISBURSED.value
            application.disbursed_at = now
            application.disbursed_by = actor.user_id
            self.db.flush()

        self._after_transition(application, LoanStatus.APPROVED, LoanStatus.DISBURSED, actor)
        return application

    def review_queue(
        self, actor: Actor, status: Union[LoanStatus, str] = LoanStatus.PENDING
    ) -> List[LoanApplication]:
        """Review queue: applications in one status, oldest first"""
        require_reviewer(actor)
        try:
            status = LoanStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown loan status {status!r}") from e
        return self.applications.list_by_status(status)

    def summary(self, member_id: str, now: Optional[datetime] = None) -> Optional[LoanSummary]:
        """Active-loan summary, or None when nothing is outstanding"""
        member = self._require_member(member_id)
        return loan_summary(to_snapshot(member), now or utcnow())

    def _evaluate(
        self,
        member: Member,
        draft: LoanApplicationRequest,
        settings: SettingsSnapshot,
        as_of: datetime,
        exclude_application_id: Optional[str],
    ) -> EligibilityResult:
        in_flight = self.applications.count_in_flight(member.id, exclude_id=exclude_application_id)
        result = evaluate_loan_eligibility(
            to_snapshot(member), settings, draft, in_flight_loans=in_flight, as_of=as_of
        )
        record_eligibility(result.eligible)
        return result

    def _require_member(self, member_id: str) -> Member:
        member = self.members.get(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return member

    def _require_application(self, application_id: str) -> LoanApplication:
        application = self.applications.get_for_update(application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Loan application {application_id} not found")
        return application

    def _after_transition(
        self, application: LoanApplication, from_status: LoanStatus, to_status: LoanStatus, actor: Actor
    ) -> None:
        record_transition("loan", to_status.value)
        log_transition("loan", application.id, from_status.value, to_status.value, actor.user_id)
