"""Workflow state machines for loan and membership applications"""

from typing import Dict, FrozenSet, Union
from coop_ledger.domain.models import Actor, ApplicationStatus, LoanStatus, Role
from coop_ledger.domain.exceptions import AuthorizationError, InvalidTransitionError

LOAN_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.DISBURSED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.DISBURSED: frozenset(),
}

MEMBERSHIP_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}),
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}

IN_FLIGHT_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.APPROVED)

Status = Union[LoanStatus, ApplicationStatus]


def can_transition(current: Status, target: Status) -> bool:
    table = LOAN_TRANSITIONS if isinstance(current, LoanStatus) else MEMBERSHIP_TRANSITIONS
    return target in table.get(current, frozenset())


def ensure_transition(current: Status, target: Status) -> None:
    """Raise InvalidTransitionError unless current -> target is an allowed edge"""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move application from {current.value} to {target.value}")


def require_reviewer(actor: Actor) -> None:
    """Only admins and super admins may review, approve, disburse or post"""
    if not actor.is_reviewer:
        raise AuthorizationError(f"Role {actor.role.value} may not perform this operation")


def require_super_admin(actor: Actor) -> None:
    if actor.role != Role.SUPER_ADMIN:
        raise AuthorizationError("Only a super admin may perform this operation")
