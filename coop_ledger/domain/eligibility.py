"""Loan eligibility rules - pure evaluation, no side effects"""

from datetime import datetime
from decimal import Decimal
from typing import List
from coop_ledger.domain.models import EligibilityResult, MemberSnapshot, MemberStatus
from coop_ledger.schemas import LoanApplicationRequest, SettingsSnapshot
from coop_ledger.utils.date_utils import full_months_between


def loan_cap(member: MemberSnapshot, settings: SettingsSnapshot) -> int:
    """Largest loan the member may request: ratio x (shares + savings)"""
    cap = Decimal(member.balances.collateral) * settings.loan_to_shares_savings_ratio
    return int(cap)


def evaluate_loan_eligibility(
    member: MemberSnapshot,
    settings: SettingsSnapshot,
    draft: LoanApplicationRequest,
    *,
    in_flight_loans: int,
    as_of: datetime,
) -> EligibilityResult:
    """
    Decide whether a member may take the requested loan.

    Rules (every failing rule is reported, not just the first):
    - Membership age ≥ new_member_loan_eligibility_months, unless the member
      carries an admin eligibility override (it bypasses only this rule)
    - Requested amount ≤ loan_to_shares_savings_ratio x (shares + savings)
    - Member status is active
    - No other loan application pending or approved
    - No outstanding loan principal

    Args:
        in_flight_loans: other applications for this member in pending or
            approved status, excluding the one being evaluated
        as_of: application or approval date
    """
    reasons: List[str] = []

    months_member = full_months_between(member.date_joined, as_of)
    required_months = settings.new_member_loan_eligibility_months
    if months_member < required_months and not member.loan_eligibility_override:
        reasons.append(
            f"Membership age is {months_member} months; {required_months} months required before applying for a loan"
        )

    cap = loan_cap(member, settings)
    if draft.amount > cap:
        reasons.append(
            f"Requested amount {draft.amount} exceeds {settings.loan_to_shares_savings_ratio}x "
            f"shares and savings (limit {cap})"
        )

    if member.status != MemberStatus.ACTIVE:
        reasons.append(f"Member status is {member.status.value}; only active members may borrow")

    if in_flight_loans > 0:
        reasons.append("Member already has a loan application pending or approved")

    if member.balances.loan > 0:
        reasons.append(f"Outstanding loan balance of {member.balances.loan} must be repaid first")

    return EligibilityResult(eligible=not reasons, reasons=reasons)
