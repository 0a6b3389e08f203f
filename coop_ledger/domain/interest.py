"""Interest engine rules - monthly accrual periods, rate escalation and rounding"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from coop_ledger.domain.models import AccrualPeriod, LoanSummary, MemberSnapshot
from coop_ledger.utils.date_utils import add_months, calendar_months_between, month_starts_between

ESCALATION_FACTOR = Decimal("2")


def round_half_up(value: Decimal) -> int:
    """Round to the currency's minor unit (0.5 always rounds away from zero)"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_interest_charge(balance: int, monthly_rate: Decimal) -> int:
    """
    Interest for one month on a loan balance.

    Example:
        ₦100,000.00 at 1.5% → 10_000_000 kobo * 1.5 / 100 = 150_000 kobo
    """
    if balance <= 0:
        return 0
    return round_half_up(Decimal(balance) * Decimal(monthly_rate) / Decimal(100))


def effective_rate(
    current_rate: Decimal,
    month_number: int,
    standard_term_months: int,
    already_escalated: bool,
) -> Tuple[Decimal, bool]:
    """
    Monthly rate for the given month of a loan.

    Requirements:
    - Loan's fixed rate for months 1..standard_term_months
    - From the first month past the term the rate doubles, once and permanently
    - Partial repayments never reset the escalation

    Returns: (rate, escalates_now) where escalates_now marks the month that
    triggers the doubling. Once escalated, current_rate is already the doubled
    rate and is returned unchanged.
    """
    if already_escalated:
        return current_rate, False
    if month_number > standard_term_months:
        return current_rate * ESCALATION_FACTOR, True
    return current_rate, False


def due_periods(
    loan_start: datetime,
    watermark: Optional[datetime],
    as_of: datetime,
    current_rate: Decimal,
    standard_term_months: int,
    already_escalated: bool,
) -> List[AccrualPeriod]:
    """
    List the calendar months that still need an interest charge.

    A month is due on its first day. Months already covered by the watermark
    (the start of the last charged month, or the disbursement time before the
    first charge) are skipped, which makes repeated runs idempotent.

    Example:
        Disbursed Dec 25, first run Mar 10 → periods Jan 1, Feb 1, Mar 1
        Second run Mar 20 → no periods
    """
    periods: List[AccrualPeriod] = []
    rate = current_rate
    escalated = already_escalated

    for period_start in month_starts_between(watermark or loan_start, as_of):
        month_number = calendar_months_between(loan_start, period_start)
        if month_number < 1:
            continue

        rate, escalates = effective_rate(rate, month_number, standard_term_months, escalated)
        escalated = escalated or escalates

        periods.append(
            AccrualPeriod(
                period_start=period_start,
                month_number=month_number,
                rate=rate,
                escalates=escalates,
            )
        )

    return periods


def loan_summary(member: MemberSnapshot, as_of: datetime) -> Optional[LoanSummary]:
    """
    Summarize an active loan for the presentation layer.

    Returns None when the member has no outstanding principal or the loan is
    missing its start date.
    """
    balances = member.balances
    if balances.loan <= 0 or member.loan_start_date is None:
        return None

    start = member.loan_start_date
    duration = member.loan_duration_months or member.loan_standard_term_months or 0
    term = member.loan_standard_term_months or duration
    months_since = calendar_months_between(start, as_of)

    # Next charge lands on the first day of the next month
    next_due = add_months(as_of, 1)
    next_month_number = calendar_months_between(start, next_due)
    escalated = member.rate_escalated_at is not None
    current_rate = member.loan_interest_rate or Decimal("0")
    next_rate, _ = effective_rate(current_rate, next_month_number, term, escalated)
    is_penalty = escalated or months_since > term

    return LoanSummary(
        loan_balance=balances.loan,
        interest_balance=balances.interest,
        total_owed=balances.loan + balances.interest,
        months_since_disbursement=months_since,
        current_monthly_rate=current_rate * ESCALATION_FACTOR if is_penalty and not escalated else current_rate,
        is_penalty_rate=is_penalty,
        next_interest_due_date=next_due,
        next_month_interest=compute_interest_charge(balances.loan, next_rate),
        months_remaining=max(0, duration - months_since),
        months_overdue=max(0, months_since - duration),
        loan_end_date=_add_months_keep_day(start, duration),
    )


def _add_months_keep_day(value: datetime, months: int) -> datetime:
    target = add_months(value, months)
    day = value.day
    while True:
        try:
            return target.replace(day=day, hour=value.hour, minute=value.minute, second=value.second)
        except ValueError:
            day -= 1
