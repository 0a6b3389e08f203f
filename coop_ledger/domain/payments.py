"""Loan repayment allocation"""

from decimal import Decimal
from coop_ledger.domain.models import Balances, PaymentAllocation
from coop_ledger.domain.exceptions import InvalidAmountError
from coop_ledger.domain.interest import round_half_up


def allocate_loan_payment(balances: Balances, amount: int) -> PaymentAllocation:
    """
    Split a repayment between outstanding interest and principal.

    Requirements:
    - Outstanding interest is settled first, the remainder reduces principal
    - Paying more than interest + principal is rejected (no credit balance)

    Example:
        interest 1_500, loan 100_000, payment 11_500 → interest 1_500, principal 10_000
    """
    if amount <= 0:
        raise InvalidAmountError("Payment amount must be greater than 0")

    total_owed = balances.interest + balances.loan
    if amount > total_owed:
        raise InvalidAmountError(f"Payment of {amount} exceeds total owed of {total_owed}")

    interest_paid = min(amount, balances.interest)
    principal_paid = amount - interest_paid

    return PaymentAllocation(
        interest_paid=interest_paid,
        principal_paid=principal_paid,
        new_interest_balance=balances.interest - interest_paid,
        new_loan_balance=balances.loan - principal_paid,
    )


def monthly_installment(amount: int, duration_months: int) -> int:
    """Principal due per month, amount / duration rounded half up"""
    if duration_months <= 0:
        return amount
    return round_half_up(Decimal(amount) / Decimal(duration_months))
