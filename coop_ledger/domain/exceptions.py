"""Domain-specific exceptions"""

from typing import List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Malformed or out-of-range input, rejected before any write"""

    pass


class InvalidAmountError(ValidationError):
    """Amount is not acceptable for the transaction type"""

    pass


class MemberNotFoundError(ValidationError):
    """Referenced member does not exist"""

    pass


class ApplicationNotFoundError(ValidationError):
    """Referenced membership or loan application does not exist"""

    pass


class IneligibleError(ValidationError):
    """Eligibility rules rejected a loan application"""

    def __init__(self, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__("; ".join(self.reasons))


class InvariantViolation(DomainException):
    """Operation would break a ledger or workflow invariant; nothing is applied"""

    pass


class InsufficientBalanceError(InvariantViolation):
    """Posting would drive a balance below zero"""

    pass


class DuplicateReferenceError(InvariantViolation):
    """Reference number already used for this member and transaction type"""

    pass


class BalanceMismatchError(InvariantViolation):
    """Cached balances diverge from the ledger replay"""

    def __init__(self, member_id: str, mismatches: Optional[List[str]] = None):
        self.member_id = member_id
        self.mismatches = list(mismatches or [])
        super().__init__(f"Balance mismatch for member {member_id}: {', '.join(self.mismatches)}")


class InvalidTransitionError(InvariantViolation):
    """Workflow status change not allowed by the state machine"""

    pass


class DataIntegrityFault(DomainException):
    """Stored record is missing a field the operation depends on"""

    pass


class ConcurrencyConflict(DomainException):
    """Lost a race on a member or application row; the whole unit can be retried"""

    pass


class AuthorizationError(DomainException):
    """Acting user's role does not permit the operation"""

    pass
