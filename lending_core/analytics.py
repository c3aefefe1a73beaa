"""
Analytics Module

Read-only rollups over the lending aggregate for the analyst, admin, lender
and borrower views. Everything is computed on demand from one snapshot;
nothing is cached. Every ratio is zero-safe and returns 0 when its
denominator is 0.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from .models import (
    CENT, ApplicationStatus, ApprovedLoan, LoanStatus, Payment, PaymentStatus,
    UserRole, UserStatus, round_money, to_camel, utcnow
)
from .store import EntityStore, LendingState


ZERO = Decimal('0')

# Loan amount distribution buckets: (label, inclusive upper bound)
AMOUNT_BUCKETS = [
    ("0-5000", Decimal('5000')),
    ("5001-10000", Decimal('10000')),
    ("10001-20000", Decimal('20000')),
    ("20001+", None),
]

# Share of principal still outstanding above which an active loan counts as at risk
AT_RISK_OUTSTANDING_SHARE = Decimal('0.8')


def percentage(part: Any, whole: Any) -> Decimal:
    """part / whole * 100 rounded to 2 places, 0 when whole is 0"""
    whole = Decimal(str(whole))
    if whole == 0:
        return Decimal('0.00')
    return (Decimal(str(part)) * Decimal('100') / whole).quantize(CENT)


def average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return Decimal('0.00')
    return (total / Decimal(count)).quantize(CENT)


def _serialize(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Payment):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class AnalyticsResult:
    """Mixin giving result dataclasses a camelCase JSON-ready dictionary"""

    def to_dict(self) -> Dict[str, Any]:
        return {to_camel(f.name): _serialize(getattr(self, f.name)) for f in fields(self)}


@dataclass
class PlatformAnalytics(AnalyticsResult):
    """Portfolio metrics for the analyst view"""
    total_loans: int = 0
    total_loan_amount: Decimal = ZERO
    active_loans: int = 0
    completed_loans: int = 0
    defaulted_loans: int = 0
    default_rate: Decimal = ZERO
    completion_rate: Decimal = ZERO
    outstanding_balance: Decimal = ZERO
    total_repayments: Decimal = ZERO
    total_interest: Decimal = ZERO
    avg_loan_size: Decimal = ZERO
    avg_interest_rate: Decimal = ZERO
    total_applications: int = 0
    pending_applications: int = 0
    approved_applications: int = 0
    rejected_applications: int = 0
    approval_rate: Decimal = ZERO
    loan_amount_distribution: Dict[str, int] = field(default_factory=dict)
    monthly_revenue: Dict[str, Decimal] = field(default_factory=dict)
    at_risk_loans: int = 0
    loans_per_user: Decimal = ZERO


@dataclass
class AdminAnalytics(AnalyticsResult):
    """User and platform growth metrics for the admin view"""
    total_users: int = 0
    active_users: int = 0
    suspended_users: int = 0
    user_distribution: Dict[str, int] = field(default_factory=dict)
    user_distribution_percent: Dict[str, Decimal] = field(default_factory=dict)
    new_users_this_month: int = 0
    new_loans_this_month: int = 0
    total_loans: int = 0
    total_applications: int = 0
    total_revenue: Decimal = ZERO


@dataclass
class LenderSummary(AnalyticsResult):
    lender_id: str
    active_offers: int = 0
    active_loans: int = 0
    total_amount_lent: Decimal = ZERO
    outstanding_balance: Decimal = ZERO
    pending_applications: int = 0
    total_interest_earned: Decimal = ZERO


@dataclass
class BorrowerSummary(AnalyticsResult):
    borrower_id: str
    active_loans: int = 0
    total_borrowed: Decimal = ZERO
    outstanding_balance: Decimal = ZERO
    pending_applications: int = 0
    next_payment: Optional[Payment] = None


def _paid(payments: List[Payment]) -> List[Payment]:
    return [p for p in payments if p.status == PaymentStatus.PAID]


def _same_month(moment: datetime, now: datetime) -> bool:
    return moment.year == now.year and moment.month == now.month


def _amount_bucket(amount: Decimal) -> str:
    for label, upper in AMOUNT_BUCKETS:
        if upper is None or amount <= upper:
            return label
    return AMOUNT_BUCKETS[-1][0]


def _is_at_risk(loan: ApprovedLoan) -> bool:
    if loan.status == LoanStatus.DEFAULTED:
        return True
    return (loan.status == LoanStatus.ACTIVE
            and loan.remaining_balance > loan.amount * AT_RISK_OUTSTANDING_SHARE)


class AnalyticsAggregator:
    """
    Computes reporting rollups from the current store contents
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def get_analytics(self, state: Optional[LendingState] = None) -> PlatformAnalytics:
        """Platform-wide loan, application and revenue metrics"""
        state = state or self.store.snapshot()
        loans = state.approved_loans
        applications = state.loan_applications
        paid = _paid(state.payments)

        result = PlatformAnalytics()
        result.total_loans = len(loans)
        result.total_loan_amount = sum((loan.amount for loan in loans), ZERO)
        result.active_loans = sum(1 for loan in loans if loan.status == LoanStatus.ACTIVE)
        result.completed_loans = sum(1 for loan in loans if loan.status == LoanStatus.COMPLETED)
        result.defaulted_loans = sum(1 for loan in loans if loan.status == LoanStatus.DEFAULTED)
        result.default_rate = percentage(result.defaulted_loans, result.total_loans)
        result.completion_rate = percentage(result.completed_loans, result.total_loans)
        result.outstanding_balance = sum(
            (loan.remaining_balance for loan in loans if loan.status == LoanStatus.ACTIVE), ZERO
        )

        result.total_repayments = sum((p.amount for p in paid), ZERO)
        result.total_interest = sum((p.interest for p in paid), ZERO)
        result.avg_loan_size = average(result.total_loan_amount, result.total_loans)
        result.avg_interest_rate = average(
            sum((loan.interest_rate for loan in loans), ZERO), result.total_loans
        )

        result.total_applications = len(applications)
        result.pending_applications = sum(
            1 for app in applications if app.status == ApplicationStatus.PENDING)
        result.approved_applications = sum(
            1 for app in applications if app.status == ApplicationStatus.APPROVED)
        result.rejected_applications = sum(
            1 for app in applications if app.status == ApplicationStatus.REJECTED)
        result.approval_rate = percentage(result.approved_applications, result.total_applications)

        distribution = {label: 0 for label, _ in AMOUNT_BUCKETS}
        for loan in loans:
            distribution[_amount_bucket(loan.amount)] += 1
        result.loan_amount_distribution = distribution

        revenue: Dict[str, Decimal] = {}
        for payment in sorted(paid, key=lambda p: p.paid_at):
            month = payment.paid_at.strftime("%Y-%m")
            revenue[month] = revenue.get(month, ZERO) + payment.interest
        result.monthly_revenue = revenue

        result.at_risk_loans = sum(1 for loan in loans if _is_at_risk(loan))
        result.loans_per_user = average(Decimal(len(loans)), len(state.users))
        return result

    def get_admin_analytics(self, now: Optional[datetime] = None,
                            state: Optional[LendingState] = None) -> AdminAnalytics:
        """
        User distribution and platform growth

        "This month" is the calendar month of now, not a rolling window.
        """
        now = now or utcnow()
        state = state or self.store.snapshot()
        users = state.users

        result = AdminAnalytics()
        result.total_users = len(users)
        result.active_users = sum(1 for u in users if u.status == UserStatus.ACTIVE)
        result.suspended_users = sum(1 for u in users if u.status == UserStatus.SUSPENDED)

        distribution = {
            "borrowers": sum(1 for u in users if u.role == UserRole.BORROWER),
            "lenders": sum(1 for u in users if u.role == UserRole.LENDER),
            "analysts": sum(1 for u in users if u.role == UserRole.ANALYST),
            "admins": sum(1 for u in users if u.role == UserRole.ADMIN),
        }
        result.user_distribution = distribution
        result.user_distribution_percent = {
            key: percentage(count, result.total_users) for key, count in distribution.items()
        }

        result.new_users_this_month = sum(1 for u in users if _same_month(u.created_at, now))
        result.new_loans_this_month = sum(
            1 for loan in state.approved_loans if _same_month(loan.start_date, now)
        )
        result.total_loans = len(state.approved_loans)
        result.total_applications = len(state.loan_applications)
        result.total_revenue = sum((p.interest for p in _paid(state.payments)), ZERO)
        return result

    def get_lender_summary(self, lender_id: str) -> LenderSummary:
        """Dashboard numbers for one lender"""
        state = self.store.snapshot()
        state.require_user(lender_id)
        loans = [loan for loan in state.approved_loans if loan.lender_id == lender_id]
        loan_ids = {loan.id for loan in loans}
        offer_ids = {offer.id for offer in state.loan_offers if offer.lender_id == lender_id}

        return LenderSummary(
            lender_id=lender_id,
            active_offers=sum(1 for offer in state.loan_offers
                              if offer.id in offer_ids and offer.is_active),
            active_loans=sum(1 for loan in loans if loan.is_active),
            total_amount_lent=sum((loan.amount for loan in loans), ZERO),
            outstanding_balance=sum((loan.remaining_balance for loan in loans if loan.is_active), ZERO),
            pending_applications=sum(
                1 for app in state.loan_applications
                if app.loan_offer_id in offer_ids and app.is_pending
            ),
            total_interest_earned=round_money(sum(
                (p.interest for p in _paid(state.payments) if p.loan_id in loan_ids), ZERO
            ))
        )

    def get_borrower_summary(self, borrower_id: str) -> BorrowerSummary:
        """Dashboard numbers for one borrower, including the next installment due"""
        state = self.store.snapshot()
        state.require_user(borrower_id)
        loans = [loan for loan in state.approved_loans if loan.borrower_id == borrower_id]
        loan_ids = {loan.id for loan in loans}

        pending_payments = sorted(
            (p for p in state.payments
             if p.loan_id in loan_ids and p.status == PaymentStatus.PENDING),
            key=lambda p: (p.due_date, p.installment)
        )

        return BorrowerSummary(
            borrower_id=borrower_id,
            active_loans=sum(1 for loan in loans if loan.is_active),
            total_borrowed=sum((loan.amount for loan in loans), ZERO),
            outstanding_balance=sum((loan.remaining_balance for loan in loans if loan.is_active), ZERO),
            pending_applications=sum(
                1 for app in state.loan_applications
                if app.borrower_id == borrower_id and app.is_pending
            ),
            next_payment=pending_payments[0] if pending_payments else None
        )
