"""
Amortization Module

Fixed-rate amortization math: the level monthly payment and the full
installment schedule of a loan. Pure functions over Decimal; nothing here
touches storage.

Rounding policy: the running balance is carried at full Decimal precision.
Only the stored installment figures are rounded to cents, and the final
installment takes whatever principal the earlier rounded installments left
uncovered, so the rounded principals always sum to the loan principal. When
the rounded level payment overshoots on tiny loans, an installment's principal
is capped at what is still unscheduled, so no installment is ever negative.
"""

from decimal import Decimal
from datetime import datetime, timedelta
from dataclasses import dataclass
from typing import Callable, List, Optional, Union
import uuid

from .errors import InvalidRequestError
from .models import Payment, PaymentStatus, round_money, to_decimal, utcnow


Number = Union[Decimal, int, float, str]

DEFAULT_PAYMENT_INTERVAL_DAYS = 30


@dataclass
class ScheduleSummary:
    """Totals over an installment schedule"""
    installments: int
    total_amount: Decimal
    total_principal: Decimal
    total_interest: Decimal


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual percentage rate (12.5) to a monthly fraction"""
    return annual_rate_percent / Decimal('100') / Decimal('12')


def _validate_terms(principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> None:
    if principal <= 0:
        raise InvalidRequestError(f"Principal must be positive, got {principal}")
    if annual_rate_percent < 0:
        raise InvalidRequestError(f"Interest rate cannot be negative, got {annual_rate_percent}")
    if isinstance(term_months, bool) or not isinstance(term_months, int) or term_months < 1:
        raise InvalidRequestError(f"Term must be a positive number of months, got {term_months!r}")


def compute_monthly_payment(
    principal: Number,
    annual_rate_percent: Number,
    term_months: int
) -> Decimal:
    """
    Calculate the level monthly payment of a fixed-rate loan

    Uses P * r(1+r)^n / ((1+r)^n - 1) with r the monthly rate. A zero rate
    has no interest, so the payment is exactly principal / term.

    Args:
        principal: Loan principal
        annual_rate_percent: Annual interest rate in percent
        term_months: Number of monthly installments

    Returns:
        Unrounded monthly payment
    """
    principal = to_decimal(principal)
    annual_rate_percent = to_decimal(annual_rate_percent)
    _validate_terms(principal, annual_rate_percent, term_months)

    rate = monthly_rate(annual_rate_percent)
    if rate == 0:
        return principal / Decimal(term_months)

    factor = (Decimal('1') + rate) ** term_months
    return principal * rate * factor / (factor - Decimal('1'))


def build_schedule(
    loan_id: str,
    principal: Number,
    annual_rate_percent: Number,
    term_months: int,
    start: Optional[datetime] = None,
    interval_days: int = DEFAULT_PAYMENT_INTERVAL_DAYS,
    id_factory: Optional[Callable[[], str]] = None
) -> List[Payment]:
    """
    Generate the equal installment schedule of a loan

    Installment i is due interval_days * i days after start; due dates are
    not aligned to calendar months.

    Args:
        loan_id: Owning loan
        principal: Loan principal
        annual_rate_percent: Annual interest rate in percent
        term_months: Number of installments
        start: Schedule start (defaults to now)
        interval_days: Days between installments
        id_factory: Generates payment ids (defaults to UUID4)

    Returns:
        Exactly term_months pending payments in due-date order
    """
    principal = to_decimal(principal)
    annual_rate_percent = to_decimal(annual_rate_percent)
    payment_amount = compute_monthly_payment(principal, annual_rate_percent, term_months)

    if start is None:
        start = utcnow()
    if id_factory is None:
        id_factory = lambda: str(uuid.uuid4())

    rate = monthly_rate(annual_rate_percent)
    rounded_payment = round_money(payment_amount)
    remaining_balance = principal
    scheduled_principal = Decimal('0')
    schedule = []

    for installment in range(1, term_months + 1):
        interest = remaining_balance * rate
        principal_portion = payment_amount - interest
        rounded_interest = round_money(interest)

        unscheduled = principal - scheduled_principal
        if installment == term_months:
            # Final installment closes out the rounded principal exactly
            rounded_principal = unscheduled
            amount = rounded_principal + rounded_interest
        else:
            amount = rounded_payment
            rounded_principal = amount - rounded_interest
            if rounded_principal > unscheduled:
                # Rounding up the level payment must never schedule more than the loan
                rounded_principal = unscheduled
                amount = rounded_principal + rounded_interest

        schedule.append(Payment(
            id=id_factory(),
            loan_id=loan_id,
            installment=installment,
            amount=amount,
            due_date=(start + timedelta(days=interval_days * installment)).date(),
            principal=rounded_principal,
            interest=rounded_interest,
            status=PaymentStatus.PENDING
        ))

        scheduled_principal += rounded_principal
        remaining_balance -= principal_portion

    return schedule


def summarize_schedule(payments: List[Payment]) -> ScheduleSummary:
    """Sum amount, principal and interest over a schedule"""
    return ScheduleSummary(
        installments=len(payments),
        total_amount=sum((p.amount for p in payments), Decimal('0')),
        total_principal=sum((p.principal for p in payments), Decimal('0')),
        total_interest=sum((p.interest for p in payments), Decimal('0'))
    )
