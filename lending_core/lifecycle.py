"""
Loan Lifecycle Module

Handles loan offers, application submission, approval (amortization schedule
and disbursement), rejection and payment settlement.

Application states: pending -> approved | rejected, both terminal.
Loan states: active -> completed once the remaining balance reaches zero and
no installment is left pending.

Every operation validates before it mutates and runs as one unit of work on
the EntityStore, so a failing call leaves the persisted state untouched.
"""

from decimal import Decimal
from datetime import datetime
from typing import Callable, List, Optional, Union
import random

from .amortization import build_schedule, compute_monthly_payment, summarize_schedule
from .config import LendingConfig, get_config
from .errors import (
    AlreadySettledError, InvalidRequestError, InvalidTransitionError,
    OfferNotFoundError, OutOfRangeError, PermissionDeniedError
)
from .filters import ApplicationFilter, LoanFilter, OfferFilter, PaymentFilter
from .logging_config import get_logger, log_action
from .models import (
    ApplicationStatus, ApprovedLoan, LoanApplication, LoanOffer, LoanStatus,
    OfferStatus, Payment, PaymentStatus, Transaction, TransactionType, User,
    UserRole, round_money, to_decimal, utcnow
)
from .store import EntityStore, LendingState


ApplicationRef = Union[str, LoanApplication]


def _application_id(application: ApplicationRef) -> str:
    if isinstance(application, LoanApplication):
        return application.id
    return application


def require_actor(state: LendingState, user_id: str, role: UserRole) -> User:
    """Resolve the calling user and check role and status"""
    user = state.require_user(user_id)
    if user.role != role:
        raise PermissionDeniedError(
            f"User {user_id} is a {user.role.value}, operation requires a {role.value}"
        )
    if not user.is_active:
        raise PermissionDeniedError(f"User {user_id} is suspended")
    return user


class LoanLifecycleEngine:
    """
    Manages offers, applications and loans from submission through payoff
    """

    def __init__(
        self,
        store: EntityStore,
        config: Optional[LendingConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.config = config or get_config()
        self.rng = rng or random.Random()
        self.clock = clock or utcnow
        self.logger = get_logger("lending.lifecycle")

    # Offers

    def create_loan_offer(
        self,
        lender_id: str,
        title: str,
        min_amount: Union[Decimal, int, str],
        max_amount: Union[Decimal, int, str],
        interest_rate: Union[Decimal, int, str],
        term: int,
        description: str = ""
    ) -> LoanOffer:
        """
        Publish a loan offer

        Args:
            lender_id: Lender publishing the offer
            title: Product name
            min_amount: Smallest amount a borrower may request
            max_amount: Largest amount a borrower may request
            interest_rate: Annual interest rate in percent
            term: Repayment term in months
            description: Free text shown to borrowers

        Returns:
            Created LoanOffer
        """
        min_amount = round_money(to_decimal(min_amount))
        max_amount = round_money(to_decimal(max_amount))
        interest_rate = to_decimal(interest_rate)

        if not title or not title.strip():
            raise InvalidRequestError("Offer title is required")
        if min_amount <= 0:
            raise InvalidRequestError(f"Minimum amount must be positive, got {min_amount}")
        if min_amount > max_amount:
            raise InvalidRequestError(
                f"Minimum amount {min_amount} exceeds maximum amount {max_amount}"
            )
        if interest_rate < 0:
            raise InvalidRequestError(f"Interest rate cannot be negative, got {interest_rate}")
        if isinstance(term, bool) or not isinstance(term, int) or term < 1:
            raise InvalidRequestError(f"Term must be a positive number of months, got {term!r}")

        with self.store.transaction() as state:
            require_actor(state, lender_id, UserRole.LENDER)

            offer = LoanOffer(
                id=self.store.new_id(),
                lender_id=lender_id,
                title=title.strip(),
                description=description,
                min_amount=min_amount,
                max_amount=max_amount,
                interest_rate=interest_rate,
                term=term,
                status=OfferStatus.ACTIVE,
                created_at=self.clock()
            )
            state.add(offer)

        log_action(self.logger, "info", "Loan offer created",
                   user_id=lender_id, action="create_offer", resource=offer.id)
        return offer

    def withdraw_offer(self, offer_id: str, lender_id: str) -> LoanOffer:
        """
        Withdraw an active offer; its pending applications are rejected
        in the same unit of work
        """
        with self.store.transaction() as state:
            offer = state.require_offer(offer_id)
            require_actor(state, lender_id, UserRole.LENDER)
            if offer.lender_id != lender_id:
                raise PermissionDeniedError(f"Offer {offer_id} belongs to another lender")
            if not offer.is_active:
                raise InvalidTransitionError(f"Offer {offer_id} is already {offer.status.value}")

            now = self.clock()
            offer.status = OfferStatus.WITHDRAWN
            offer.withdrawn_at = now

            pending = state.find_applications(
                ApplicationFilter(offer_id=offer_id, status=ApplicationStatus.PENDING)
            )
            for application in pending:
                application.status = ApplicationStatus.REJECTED
                application.decided_at = now
                application.decided_by = lender_id

        log_action(self.logger, "info", "Loan offer withdrawn",
                   user_id=lender_id, action="withdraw_offer", resource=offer_id,
                   extra={"rejected_applications": len(pending)})
        return offer

    # Applications

    def submit_application(
        self,
        borrower_id: str,
        offer_id: str,
        amount: Union[Decimal, int, str],
        purpose: str,
        credit_score: Optional[int] = None,
        income: Optional[Union[Decimal, int, str]] = None
    ) -> LoanApplication:
        """
        Apply for a loan against an offer

        Credit score and income are declared by the applicant and never
        verified; when omitted they are synthesized from the configured ranges.

        Raises:
            OfferNotFoundError: offer does not exist
            InvalidTransitionError: offer is withdrawn
            OutOfRangeError: amount outside the offer bounds
        """
        amount = round_money(to_decimal(amount))
        if amount <= 0:
            raise InvalidRequestError(f"Requested amount must be positive, got {amount}")

        with self.store.transaction() as state:
            require_actor(state, borrower_id, UserRole.BORROWER)

            offer = state.get_offer(offer_id)
            if not offer:
                raise OfferNotFoundError(f"Loan offer {offer_id} not found")
            if not offer.is_active:
                raise InvalidTransitionError(f"Loan offer {offer_id} is {offer.status.value}")
            if not offer.accepts_amount(amount):
                raise OutOfRangeError(
                    f"Requested amount {amount} is outside the offer range "
                    f"[{offer.min_amount}, {offer.max_amount}]"
                )

            if credit_score is None:
                credit_score = self.rng.randint(self.config.credit_score_min,
                                                self.config.credit_score_max)
            if income is None:
                income = self.rng.randint(self.config.income_min, self.config.income_max)

            application = LoanApplication(
                id=self.store.new_id(),
                borrower_id=borrower_id,
                loan_offer_id=offer_id,
                amount=amount,
                purpose=purpose,
                credit_score=int(credit_score),
                income=to_decimal(income),
                status=ApplicationStatus.PENDING,
                applied_at=self.clock()
            )
            state.add(application)

        log_action(self.logger, "info", "Loan application submitted",
                   user_id=borrower_id, action="submit_application", resource=application.id,
                   extra={"offer_id": offer_id, "amount": str(amount)})
        return application

    def approve_application(self, application: ApplicationRef, approver_id: str) -> ApprovedLoan:
        """
        Approve a pending application and disburse the loan

        Creates the ApprovedLoan, its full installment schedule and a
        disbursement transaction, and marks the application approved.

        Args:
            application: Application or its id
            approver_id: Lender owning the offer

        Returns:
            Created ApprovedLoan
        """
        application_id = _application_id(application)

        with self.store.transaction() as state:
            application = state.require_application(application_id)
            if not application.is_pending:
                raise InvalidTransitionError(
                    f"Application {application_id} is already {application.status.value}"
                )
            offer = state.require_offer(application.loan_offer_id)
            require_actor(state, approver_id, UserRole.LENDER)
            if offer.lender_id != approver_id:
                raise PermissionDeniedError(
                    f"Lender {approver_id} does not own offer {offer.id}"
                )

            now = self.clock()
            loan_id = self.store.new_id()
            schedule = build_schedule(
                loan_id,
                application.amount,
                offer.interest_rate,
                offer.term,
                start=now,
                interval_days=self.config.payment_interval_days,
                id_factory=self.store.new_id
            )
            monthly_payment = compute_monthly_payment(application.amount, offer.interest_rate, offer.term)

            loan = ApprovedLoan(
                id=loan_id,
                application_id=application.id,
                borrower_id=application.borrower_id,
                lender_id=approver_id,
                loan_offer_id=offer.id,
                amount=application.amount,
                interest_rate=offer.interest_rate,
                term=offer.term,
                monthly_payment=round_money(monthly_payment),
                total_repayment=summarize_schedule(schedule).total_amount,
                remaining_balance=application.amount,
                status=LoanStatus.ACTIVE,
                start_date=now
            )
            state.add(loan)
            state.payments.extend(schedule)
            state.add(Transaction(
                id=self.store.new_id(),
                loan_id=loan.id,
                user_id=loan.borrower_id,
                type=TransactionType.DISBURSEMENT,
                amount=loan.amount,
                description="Loan amount disbursed",
                timestamp=now
            ))

            application.status = ApplicationStatus.APPROVED
            application.decided_at = now
            application.decided_by = approver_id

        log_action(self.logger, "info", "Loan application approved",
                   user_id=approver_id, action="approve_application", resource=application_id,
                   extra={"loan_id": loan.id, "monthly_payment": str(loan.monthly_payment),
                          "installments": len(schedule)})
        return loan

    def reject_application(self, application: ApplicationRef,
                           approver_id: Optional[str] = None) -> LoanApplication:
        """Reject a pending application; an approver, when given, must own the offer"""
        application_id = _application_id(application)

        with self.store.transaction() as state:
            application = state.require_application(application_id)
            if not application.is_pending:
                raise InvalidTransitionError(
                    f"Application {application_id} is already {application.status.value}"
                )
            if approver_id is not None:
                offer = state.require_offer(application.loan_offer_id)
                require_actor(state, approver_id, UserRole.LENDER)
                if offer.lender_id != approver_id:
                    raise PermissionDeniedError(
                        f"Lender {approver_id} does not own offer {offer.id}"
                    )

            application.status = ApplicationStatus.REJECTED
            application.decided_at = self.clock()
            application.decided_by = approver_id

        log_action(self.logger, "info", "Loan application rejected",
                   user_id=approver_id, action="reject_application", resource=application_id)
        return application

    # Payments

    def settle_payment(self, payment_id: str, payer_id: Optional[str] = None) -> Payment:
        """
        Settle a scheduled installment

        Marks the payment paid, retires its principal from the loan balance,
        completes the loan when nothing is outstanding and records a payment
        transaction.

        Args:
            payment_id: Installment to settle
            payer_id: Paying borrower; when given it must own the loan

        Returns:
            Updated Payment
        """
        with self.store.transaction() as state:
            payment = state.require_payment(payment_id)
            if not payment.is_pending:
                raise AlreadySettledError(f"Payment {payment_id} is already {payment.status.value}")
            loan = state.require_loan(payment.loan_id)
            if not loan.is_active:
                raise InvalidTransitionError(f"Loan {loan.id} is {loan.status.value}")
            if payer_id is not None and payer_id != loan.borrower_id:
                raise PermissionDeniedError(f"User {payer_id} is not the borrower of loan {loan.id}")

            now = self.clock()
            payment.status = PaymentStatus.PAID
            payment.paid_at = now

            loan.remaining_balance -= payment.principal
            # Zero-principal installments can remain once the balance is retired
            outstanding = [p for p in state.payments_for_loan(loan.id) if p.is_pending]
            if loan.remaining_balance <= 0 and not outstanding:
                loan.status = LoanStatus.COMPLETED
                loan.completed_at = now

            state.add(Transaction(
                id=self.store.new_id(),
                loan_id=loan.id,
                user_id=loan.borrower_id,
                type=TransactionType.PAYMENT,
                amount=payment.amount,
                description=(f"Monthly payment - Principal: ${payment.principal}, "
                             f"Interest: ${payment.interest}"),
                timestamp=now
            ))

        log_action(self.logger, "info", "Payment settled",
                   user_id=loan.borrower_id, action="settle_payment", resource=payment_id,
                   extra={"loan_id": loan.id, "remaining_balance": str(loan.remaining_balance),
                          "loan_status": loan.status.value})
        return payment

    # Read accessors

    def get_offer(self, offer_id: str) -> LoanOffer:
        return self.store.snapshot().require_offer(offer_id)

    def get_application(self, application_id: str) -> LoanApplication:
        return self.store.snapshot().require_application(application_id)

    def get_loan(self, loan_id: str) -> ApprovedLoan:
        return self.store.snapshot().require_loan(loan_id)

    def get_payment(self, payment_id: str) -> Payment:
        return self.store.snapshot().require_payment(payment_id)

    def list_offers(self, query: Optional[OfferFilter] = None) -> List[LoanOffer]:
        return self.store.snapshot().find_offers(query)

    def list_applications(self, query: Optional[ApplicationFilter] = None) -> List[LoanApplication]:
        return self.store.snapshot().find_applications(query)

    def list_loans(self, query: Optional[LoanFilter] = None) -> List[ApprovedLoan]:
        return self.store.snapshot().find_loans(query)

    def list_payments(self, loan_id: Optional[str] = None,
                      status: Optional[Union[str, PaymentStatus]] = None) -> List[Payment]:
        """Payments, optionally of one loan (which must exist) and one status"""
        state = self.store.snapshot()
        if loan_id is not None:
            state.require_loan(loan_id)
        payments = state.find_payments(PaymentFilter(loan_id=loan_id, status=status))
        return sorted(payments, key=lambda p: (p.loan_id, p.installment))

    def list_transactions(self, loan_id: Optional[str] = None) -> List[Transaction]:
        return self.store.snapshot().find_transactions(loan_id)

    def next_payment(self, loan_id: str) -> Optional[Payment]:
        """Earliest pending installment of a loan, or None when fully paid"""
        pending = self.list_payments(loan_id, status=PaymentStatus.PENDING)
        return pending[0] if pending else None
