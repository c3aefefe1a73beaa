"""
Test suite for the loan lifecycle engine

Tests offer publication, application submission, approval with schedule
generation and disbursement, rejection, and payment settlement through payoff.
"""

import pytest
import random
from decimal import Decimal
from datetime import datetime, timezone

from lending_core.config import LendingConfig
from lending_core.errors import (
    AlreadySettledError, InvalidRequestError, InvalidTransitionError, NotFoundError,
    OfferNotFoundError, OutOfRangeError, PermissionDeniedError
)
from lending_core.filters import ApplicationFilter, LoanFilter, OfferFilter
from lending_core.models import (
    ApplicationStatus, LoanStatus, OfferStatus, PaymentStatus, TransactionType, UserRole
)
from lending_core.system import LendingSystem


FIXED_NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


def make_system():
    return LendingSystem(
        config=LendingConfig(storage_backend="memory"),
        rng=random.Random(42),
        clock=lambda: FIXED_NOW
    )


class LifecycleTestBase:
    """Marketplace with one lender, one borrower and one personal loan offer"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = make_system()
        self.engine = self.system.engine
        self.lender = self.system.users.register_user(
            "lender@test.com", "Jane Lender", UserRole.LENDER, company="Quick Loans Inc.")
        self.other_lender = self.system.users.register_user(
            "other@test.com", "Other Lender", UserRole.LENDER)
        self.borrower = self.system.users.register_user(
            "borrower@test.com", "John Borrower", UserRole.BORROWER)
        self.offer = self.engine.create_loan_offer(
            lender_id=self.lender.id,
            title="Personal Loan",
            description="Quick personal loans",
            min_amount=1000,
            max_amount=10000,
            interest_rate="12.5",
            term=24
        )

    def teardown_method(self):
        self.system.close()

    def apply(self, amount=5000, **kwargs):
        return self.engine.submit_application(
            borrower_id=self.borrower.id,
            offer_id=self.offer.id,
            amount=amount,
            purpose="Home renovation",
            **kwargs
        )

    def approved_loan(self, amount=5000):
        application = self.apply(amount)
        return self.engine.approve_application(application.id, self.lender.id)


class TestLoanOffers(LifecycleTestBase):
    """Test offer publication and withdrawal"""

    def test_create_offer(self):
        """Test offer is stored active with cent amounts"""
        offer = self.engine.get_offer(self.offer.id)

        assert offer.status == OfferStatus.ACTIVE
        assert offer.lender_id == self.lender.id
        assert offer.min_amount == Decimal('1000.00')
        assert offer.max_amount == Decimal('10000.00')
        assert offer.interest_rate == Decimal('12.5')
        assert offer.term == 24
        assert offer.created_at == FIXED_NOW

    def test_borrower_cannot_create_offer(self):
        """Test only lenders publish offers"""
        with pytest.raises(PermissionDeniedError):
            self.engine.create_loan_offer(self.borrower.id, "Nope", 100, 200, 5, 12)

    def test_invalid_offer_bounds(self):
        """Test minimum above maximum is rejected"""
        with pytest.raises(InvalidRequestError):
            self.engine.create_loan_offer(self.lender.id, "Bad", 5000, 1000, 5, 12)

    def test_invalid_offer_term(self):
        """Test a zero month term is rejected"""
        with pytest.raises(InvalidRequestError):
            self.engine.create_loan_offer(self.lender.id, "Bad", 1000, 5000, 5, 0)

    def test_suspended_lender_cannot_publish(self):
        """Test suspended users cannot act"""
        admin = self.system.users.register_user("admin@test.com", "Admin", UserRole.ADMIN)
        self.system.users.update_user_status(self.lender.id, "suspended", admin_id=admin.id)

        with pytest.raises(PermissionDeniedError):
            self.engine.create_loan_offer(self.lender.id, "Later", 1000, 5000, 5, 12)

    def test_list_offers_by_lender(self):
        """Test offers filtered by owning lender"""
        self.engine.create_loan_offer(self.other_lender.id, "Other", 1000, 5000, 5, 12)

        offers = self.engine.list_offers(OfferFilter(lender_id=self.lender.id))
        assert [o.id for o in offers] == [self.offer.id]
        assert len(self.engine.list_offers()) == 2

    def test_withdraw_offer_rejects_pending_applications(self):
        """Test withdrawal closes the offer and its pending applications"""
        application = self.apply()

        offer = self.engine.withdraw_offer(self.offer.id, self.lender.id)

        assert offer.status == OfferStatus.WITHDRAWN
        assert offer.withdrawn_at == FIXED_NOW
        rejected = self.engine.get_application(application.id)
        assert rejected.status == ApplicationStatus.REJECTED
        assert rejected.decided_by == self.lender.id

    def test_withdraw_offer_twice(self):
        """Test withdrawing a withdrawn offer is an invalid transition"""
        self.engine.withdraw_offer(self.offer.id, self.lender.id)
        with pytest.raises(InvalidTransitionError):
            self.engine.withdraw_offer(self.offer.id, self.lender.id)

    def test_withdraw_other_lenders_offer(self):
        """Test only the owner may withdraw"""
        with pytest.raises(PermissionDeniedError):
            self.engine.withdraw_offer(self.offer.id, self.other_lender.id)


class TestApplications(LifecycleTestBase):
    """Test application submission"""

    def test_submit_application(self):
        """Test application is pending with declared data synthesized"""
        application = self.apply()

        assert application.status == ApplicationStatus.PENDING
        assert application.amount == Decimal('5000.00')
        assert application.loan_offer_id == self.offer.id
        assert application.applied_at == FIXED_NOW
        assert 500 <= application.credit_score <= 699
        assert Decimal('30000') <= application.income <= Decimal('79999')

    def test_declared_values_kept(self):
        """Test caller-supplied credit score and income are stored as given"""
        application = self.apply(credit_score=720, income=50000)

        assert application.credit_score == 720
        assert application.income == Decimal('50000')

    def test_bounds_are_inclusive(self):
        """Test the offer minimum and maximum are themselves acceptable"""
        assert self.apply(1000).status == ApplicationStatus.PENDING
        assert self.apply(10000).status == ApplicationStatus.PENDING

    def test_amount_out_of_range(self):
        """Test out-of-range amounts are rejected without state change"""
        with pytest.raises(OutOfRangeError):
            self.apply(999)
        with pytest.raises(OutOfRangeError):
            self.apply(10001)

        assert self.engine.list_applications() == []

    def test_unknown_offer(self):
        """Test applying to a missing offer"""
        with pytest.raises(OfferNotFoundError):
            self.engine.submit_application(self.borrower.id, "missing", 5000, "Car")

    def test_offer_not_found_is_not_found(self):
        """Test the specific error is still a NotFoundError"""
        assert issubclass(OfferNotFoundError, NotFoundError)

    def test_withdrawn_offer(self):
        """Test applying to a withdrawn offer is an invalid transition"""
        self.engine.withdraw_offer(self.offer.id, self.lender.id)
        with pytest.raises(InvalidTransitionError):
            self.apply()

    def test_lender_cannot_apply(self):
        """Test only borrowers apply"""
        with pytest.raises(PermissionDeniedError):
            self.engine.submit_application(self.lender.id, self.offer.id, 5000, "Car")

    def test_list_applications_by_lender(self):
        """Test lender filter returns applications on that lender's offers"""
        application = self.apply()

        mine = self.engine.list_applications(ApplicationFilter(lender_id=self.lender.id))
        theirs = self.engine.list_applications(ApplicationFilter(lender_id=self.other_lender.id))
        assert [a.id for a in mine] == [application.id]
        assert theirs == []


class TestApproval(LifecycleTestBase):
    """Test approval, schedule generation and disbursement"""

    def test_approve_creates_loan(self):
        """Test approved loan carries the offer terms and full balance"""
        application = self.apply()
        loan = self.engine.approve_application(application.id, self.lender.id)

        assert loan.status == LoanStatus.ACTIVE
        assert loan.application_id == application.id
        assert loan.borrower_id == self.borrower.id
        assert loan.lender_id == self.lender.id
        assert loan.amount == Decimal('5000.00')
        assert loan.remaining_balance == Decimal('5000.00')
        assert loan.interest_rate == Decimal('12.5')
        assert loan.term == 24
        assert loan.monthly_payment == Decimal('236.54')
        assert loan.start_date == FIXED_NOW

        assert self.engine.get_application(application.id).status == ApplicationStatus.APPROVED

    def test_approve_accepts_application_object(self):
        """Test approval by application record as well as id"""
        application = self.apply()
        loan = self.engine.approve_application(application, self.lender.id)
        assert loan.application_id == application.id

    def test_schedule_created(self):
        """Test the full schedule is stored with the loan"""
        loan = self.approved_loan()
        payments = self.engine.list_payments(loan.id)

        assert len(payments) == 24
        assert all(p.status == PaymentStatus.PENDING for p in payments)
        assert sum(p.principal for p in payments) == loan.amount
        assert sum(p.amount for p in payments) == loan.total_repayment
        assert payments[0].interest == Decimal('52.08')

    def test_disbursement_recorded(self):
        """Test one disbursement transaction for the loan amount"""
        loan = self.approved_loan()
        transactions = self.engine.list_transactions(loan.id)

        assert len(transactions) == 1
        assert transactions[0].type == TransactionType.DISBURSEMENT
        assert transactions[0].amount == Decimal('5000.00')
        assert transactions[0].user_id == self.borrower.id

    def test_approve_twice(self):
        """Test a decided application cannot be approved again"""
        application = self.apply()
        self.engine.approve_application(application.id, self.lender.id)

        with pytest.raises(InvalidTransitionError):
            self.engine.approve_application(application.id, self.lender.id)
        assert len(self.engine.list_loans()) == 1

    def test_approve_by_other_lender(self):
        """Test only the offer owner approves"""
        application = self.apply()
        with pytest.raises(PermissionDeniedError):
            self.engine.approve_application(application.id, self.other_lender.id)

        assert self.engine.list_loans() == []
        assert self.engine.list_payments() == []

    def test_approve_unknown_application(self):
        """Test approving a missing application"""
        with pytest.raises(NotFoundError):
            self.engine.approve_application("missing", self.lender.id)

    def test_reject_application(self):
        """Test rejection is terminal"""
        application = self.apply()
        rejected = self.engine.reject_application(application.id, self.lender.id)

        assert rejected.status == ApplicationStatus.REJECTED
        assert rejected.decided_at == FIXED_NOW
        with pytest.raises(InvalidTransitionError):
            self.engine.approve_application(application.id, self.lender.id)

    def test_reject_without_approver(self):
        """Test rejection without a named approver"""
        application = self.apply()
        rejected = self.engine.reject_application(application)

        assert rejected.status == ApplicationStatus.REJECTED
        assert rejected.decided_by is None

    def test_reject_by_other_lender(self):
        """Test a named approver must own the offer"""
        application = self.apply()
        with pytest.raises(PermissionDeniedError):
            self.engine.reject_application(application.id, self.other_lender.id)

    def test_list_loans_by_borrower(self):
        """Test loans filtered by borrower and status"""
        loan = self.approved_loan()

        assert [l.id for l in self.engine.list_loans(LoanFilter(borrower_id=self.borrower.id))] == [loan.id]
        assert self.engine.list_loans(LoanFilter(status="completed")) == []


class TestSettlement(LifecycleTestBase):
    """Test payment settlement through payoff"""

    def test_settle_first_payment(self):
        """Test settling retires the principal portion from the balance"""
        loan = self.approved_loan()
        first = self.engine.next_payment(loan.id)

        paid = self.engine.settle_payment(first.id, payer_id=self.borrower.id)

        assert paid.status == PaymentStatus.PAID
        assert paid.paid_at == FIXED_NOW
        updated = self.engine.get_loan(loan.id)
        assert updated.remaining_balance == Decimal('4815.54')
        assert updated.status == LoanStatus.ACTIVE
        assert updated.principal_paid == Decimal('184.46')

    def test_payment_transaction_recorded(self):
        """Test settlement appends a payment transaction"""
        loan = self.approved_loan()
        first = self.engine.next_payment(loan.id)
        self.engine.settle_payment(first.id)

        transactions = self.engine.list_transactions(loan.id)
        payment_tx = [t for t in transactions if t.type == TransactionType.PAYMENT]
        assert len(payment_tx) == 1
        assert payment_tx[0].amount == Decimal('236.54')
        assert payment_tx[0].description == "Monthly payment - Principal: $184.46, Interest: $52.08"

    def test_next_payment_advances(self):
        """Test next payment moves to the following installment"""
        loan = self.approved_loan()
        self.engine.settle_payment(self.engine.next_payment(loan.id).id)

        assert self.engine.next_payment(loan.id).installment == 2

    def test_settle_twice(self):
        """Test a paid installment cannot be settled again"""
        loan = self.approved_loan()
        first = self.engine.next_payment(loan.id)
        self.engine.settle_payment(first.id)

        with pytest.raises(AlreadySettledError):
            self.engine.settle_payment(first.id)
        assert self.engine.get_loan(loan.id).remaining_balance == Decimal('4815.54')

    def test_settle_by_other_user(self):
        """Test a named payer must be the borrower"""
        loan = self.approved_loan()
        first = self.engine.next_payment(loan.id)

        with pytest.raises(PermissionDeniedError):
            self.engine.settle_payment(first.id, payer_id=self.lender.id)
        assert self.engine.get_payment(first.id).status == PaymentStatus.PENDING

    def test_settle_unknown_payment(self):
        """Test settling a missing payment"""
        with pytest.raises(NotFoundError):
            self.engine.settle_payment("missing")

    def test_full_payoff_completes_loan(self):
        """Test settling every installment completes the loan at exactly zero"""
        loan = self.approved_loan()

        for payment in self.engine.list_payments(loan.id):
            self.engine.settle_payment(payment.id, payer_id=self.borrower.id)

        completed = self.engine.get_loan(loan.id)
        assert completed.status == LoanStatus.COMPLETED
        assert completed.remaining_balance == Decimal('0')
        assert completed.completed_at == FIXED_NOW
        assert self.engine.next_payment(loan.id) is None
        assert len(self.engine.list_payments(loan.id, status="paid")) == 24

    def test_tiny_loan_completes_after_last_installment(self):
        """Test a loan whose balance is retired early stays active until every installment is paid"""
        micro = self.engine.create_loan_offer(
            lender_id=self.lender.id, title="Micro Loan",
            min_amount="0.01", max_amount="1", interest_rate="0", term=12)
        application = self.engine.submit_application(
            self.borrower.id, micro.id, "0.06", "Bus fare")
        loan = self.engine.approve_application(application.id, self.lender.id)
        payments = self.engine.list_payments(loan.id)

        assert all(p.amount >= 0 for p in payments)
        for payment in payments[:6]:
            self.engine.settle_payment(payment.id)
        halfway = self.engine.get_loan(loan.id)
        assert halfway.remaining_balance == Decimal('0')
        assert halfway.status == LoanStatus.ACTIVE

        for payment in payments[6:]:
            self.engine.settle_payment(payment.id)

        completed = self.engine.get_loan(loan.id)
        assert completed.status == LoanStatus.COMPLETED
        assert completed.remaining_balance == Decimal('0')
        assert self.engine.next_payment(loan.id) is None

    def test_out_of_order_settlement(self):
        """Test installments may be settled in any order"""
        loan = self.approved_loan()
        payments = self.engine.list_payments(loan.id)

        self.engine.settle_payment(payments[5].id)

        assert self.engine.next_payment(loan.id).installment == 1
        expected = Decimal('5000.00') - payments[5].principal
        assert self.engine.get_loan(loan.id).remaining_balance == expected

    def test_list_payments_unknown_loan(self):
        """Test listing payments of a missing loan"""
        with pytest.raises(NotFoundError):
            self.engine.list_payments("missing")
