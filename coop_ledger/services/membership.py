"""Membership applications and member administration"""

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coop_ledger.domain.exceptions import (
    ApplicationNotFoundError, ConcurrencyConflict, MemberNotFoundError, ValidationError,
)
from coop_ledger.domain.lifecycle import ensure_transition, require_reviewer, require_super_admin
from coop_ledger.domain.models import Actor, ApplicationStatus, MemberStatus, TransactionType
from coop_ledger.infrastructure.database.models import Member, MembershipApplication
from coop_ledger.infrastructure.database.repositories import (
    MemberRepository, MembershipApplicationRepository, SocietyRepository,
)
from coop_ledger.infrastructure.database.session import atomic
from coop_ledger.infrastructure.observability.logging import log_transition
from coop_ledger.infrastructure.observability.metrics import record_transition
from coop_ledger.schemas import MembershipApplicationRequest, parse_input
from coop_ledger.services.ledger import LedgerStore
from coop_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class MembershipService:
    """Membership state machine (pending -> approved | rejected) and member status changes"""

    def __init__(self, db: Session):
        self.db = db
        self.societies = SocietyRepository(db)
        self.members = MemberRepository(db)
        self.applications = MembershipApplicationRepository(db)
        self.ledger = LedgerStore(db)

    def submit(
        self,
        request: Union[MembershipApplicationRequest, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> MembershipApplication:
        """
        File a membership application.

        Guarantor standing is checked at approval, not here: a guarantor's
        status can change between submission and review.
        """
        request = parse_input(MembershipApplicationRequest, request)
        now = now or utcnow()

        with atomic(self.db):
            if self.societies.get(request.society_id) is None:
                raise ValidationError(f"Society {request.society_id} not found")
            application = self.applications.create_application(applied_at=now, **request.model_dump())

        record_transition("membership", ApplicationStatus.PENDING.value)
        log_transition("membership", application.id, "new", ApplicationStatus.PENDING.value, request.user_id or "applicant")
        return application

    def approve(
        self,
        actor: Actor,
        application_id: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Member:
        """
        Approve an application, creating the member and its ledger head.

        Raises:
            ValidationError: a guarantor is missing, inactive, or belongs to
                another society
            ConcurrencyConflict: another approval took the same member number
        """
        require_reviewer(actor)
        now = now or utcnow()

        with atomic(self.db):
            application = self._require_application(application_id)
            ensure_transition(ApplicationStatus(application.status), ApplicationStatus.APPROVED)

            problems = self._guarantor_problems(application)
            if problems:
                raise ValidationError("; ".join(problems))

            society = self.societies.get_for_update(application.society_id)
            try:
                member = self.members.create_member(
                    society,
                    date_joined=now,
                    user_id=application.user_id,
                    first_name=application.first_name,
                    last_name=application.last_name,
                    email=application.email,
                    phone=application.phone,
                    address=application.address,
                    occupation=application.occupation,
                )
            except IntegrityError as e:
                raise ConcurrencyConflict(
                    f"Member number in society {application.society_id} was taken by a concurrent approval"
                ) from e
            self.ledger.append(
                member.id,
                TransactionType.PROFILE_UPDATE,
                0,
                date=now,
                description=f"Membership opened ({member.member_number})",
                processed_by=actor.user_id,
            )

            application.status = ApplicationStatus.APPROVED.value
            application.reviewed_at = now
            application.reviewed_by = actor.user_id
            application.review_notes = notes
            application.member_id = member.id
            self.db.flush()

        self._after_transition(application, ApplicationStatus.APPROVED, actor)
        return member

    def reject(
        self,
        actor: Actor,
        application_id: str,
        notes: str,
        now: Optional[datetime] = None,
    ) -> MembershipApplication:
        """Reject an application; review notes are mandatory"""
        require_reviewer(actor)
        if not notes or not notes.strip():
            raise ValidationError("Review notes are required to reject a membership application")
        now = now or utcnow()

        with atomic(self.db):
            application = self._require_application(application_id)
            ensure_transition(ApplicationStatus(application.status), ApplicationStatus.REJECTED)

            application.status = ApplicationStatus.REJECTED.value
            application.reviewed_at = now
            application.reviewed_by = actor.user_id
            application.review_notes = notes.strip()
            self.db.flush()

        self._after_transition(application, ApplicationStatus.REJECTED, actor)
        return application

    def review_queue(self, actor: Actor) -> List[MembershipApplication]:
        """Review queue: applications awaiting a decision, oldest first"""
        require_reviewer(actor)
        return self.applications.list_pending()

    def change_status(
        self,
        actor: Actor,
        member_id: str,
        status: Union[MemberStatus, str],
        reason: str,
        now: Optional[datetime] = None,
    ) -> Member:
        """Activate, deactivate or suspend a member; members are never deleted"""
        require_reviewer(actor)
        try:
            status = MemberStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown member status {status!r}") from e
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to change member status")
        now = now or utcnow()

        with atomic(self.db):
            member = self._require_member(member_id)
            previous = member.status
            member.status = status.value
            member.status_reason = reason.strip()
            self.ledger.append(
                member.id,
                TransactionType.PROFILE_UPDATE,
                0,
                date=now,
                description=f"Status changed from {previous} to {status.value}: {reason.strip()}",
                processed_by=actor.user_id,
            )

        logger.info(
            "Member status changed",
            extra={"member_id": member_id, "step": "member_status", "status": status.value, "actor_id": actor.user_id},
        )
        return member

    def set_loan_eligibility_override(
        self,
        actor: Actor,
        member_id: str,
        enabled: bool,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Member:
        """Grant or withdraw the bypass of the minimum-membership-age loan rule"""
        require_super_admin(actor)
        if enabled and (not reason or not reason.strip()):
            raise ValidationError("A reason is required to grant a loan eligibility override")
        now = now or utcnow()

        with atomic(self.db):
            member = self._require_member(member_id)
            member.loan_eligibility_override = enabled
            member.loan_eligibility_override_reason = reason.strip() if reason else None
            member.loan_eligibility_override_set_by = actor.user_id
            member.loan_eligibility_override_set_at = now
            action = "granted" if enabled else "withdrawn"
            self.ledger.append(
                member.id,
                TransactionType.PROFILE_UPDATE,
                0,
                date=now,
                description=f"Loan eligibility override {action}" + (f": {reason.strip()}" if reason else ""),
                processed_by=actor.user_id,
            )

        return member

    def _guarantor_problems(self, application: MembershipApplication) -> List[str]:
        problems: List[str] = []
        if application.guarantor1_member_id == application.guarantor2_member_id:
            problems.append("Guarantors must be two different members")

        for label, guarantor_id in (
            ("Guarantor 1", application.guarantor1_member_id),
            ("Guarantor 2", application.guarantor2_member_id),
        ):
            guarantor = self.members.get(guarantor_id)
            if guarantor is None:
                problems.append(f"{label} ({guarantor_id}) is not a member")
            elif guarantor.society_id != application.society_id:
                problems.append(f"{label} ({guarantor.member_number}) belongs to another society")
            elif guarantor.status != MemberStatus.ACTIVE.value:
                problems.append(f"{label} ({guarantor.member_number}) is {guarantor.status}, not active")

        return problems

    def _require_member(self, member_id: str) -> Member:
        member = self.members.get_for_update(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return member

    def _require_application(self, application_id: str) -> MembershipApplication:
        application = self.applications.get_for_update(application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Membership application {application_id} not found")
        return application

    def _after_transition(self, application: MembershipApplication, to_status: ApplicationStatus, actor: Actor) -> None:
        record_transition("membership", to_status.value)
        log_transition("membership", application.id, ApplicationStatus.PENDING.value, to_status.value, actor.user_id)
