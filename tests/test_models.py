"""
Tests for domain records and their serialized form
"""

import pytest
from decimal import Decimal
from datetime import datetime, date, timezone

from lending_core.errors import InvalidRequestError
from lending_core.models import (
    ApprovedLoan, LoanApplication, LoanOffer, LoanStatus, OfferStatus, Payment,
    User, UserRole, UserStatus, round_money, to_camel, to_decimal
)


class TestHelpers:
    """Test money and naming helpers"""

    def test_round_money_half_up(self):
        """Test cents rounding uses half-up"""
        assert round_money(Decimal('1.005')) == Decimal('1.01')
        assert round_money(Decimal('1.004')) == Decimal('1.00')

    def test_to_decimal(self):
        """Test conversion goes through str to avoid float artefacts"""
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal("12.5") == Decimal('12.5')

    def test_to_decimal_rejects_garbage(self):
        """Test non-numeric input raises InvalidRequestError"""
        with pytest.raises(InvalidRequestError):
            to_decimal("twelve")

    def test_to_camel(self):
        """Test snake_case to camelCase conversion"""
        assert to_camel("loan_offer_id") == "loanOfferId"
        assert to_camel("id") == "id"


class TestRecordSerialization:
    """Test camelCase dictionaries in both directions"""

    def test_user_to_dict(self):
        """Test user serializes enums and timestamps"""
        user = User(id="u1", email="a@b.com", name="A", role=UserRole.LENDER,
                    company="Quick Loans Inc.",
                    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        data = user.to_dict()

        assert data["role"] == "lender"
        assert data["status"] == "active"
        assert data["createdAt"] == "2024-01-01T00:00:00+00:00"
        assert data["company"] == "Quick Loans Inc."

    def test_offer_from_dict_with_browser_timestamp(self):
        """Test trailing Z timestamps and numeric strings are parsed"""
        offer = LoanOffer.from_dict({
            "id": "o1",
            "lenderId": "u1",
            "title": "Personal Loan",
            "minAmount": "1000",
            "maxAmount": 10000,
            "interestRate": "12.5",
            "term": "24",
            "status": "active",
            "createdAt": "2024-01-01T10:00:00.000Z",
            "unknownField": "ignored",
        })

        assert offer.min_amount == Decimal('1000')
        assert offer.max_amount == Decimal('10000')
        assert offer.term == 24
        assert offer.status == OfferStatus.ACTIVE
        assert offer.created_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert offer.withdrawn_at is None

    def test_naive_timestamp_assumed_utc(self):
        """Test timestamps without offset are read as UTC"""
        user = User.from_dict({"id": "u1", "email": "a@b.com", "name": "A",
                               "role": "borrower", "createdAt": "2024-05-01T08:30:00"})
        assert user.created_at.tzinfo is not None
        assert user.status == UserStatus.ACTIVE

    def test_loan_round_trip(self):
        """Test a loan survives serialization unchanged"""
        loan = ApprovedLoan(
            id="l1", application_id="a1", borrower_id="b1", lender_id="le1",
            loan_offer_id="o1", amount=Decimal('5000.00'), interest_rate=Decimal('12.5'),
            term=24, monthly_payment=Decimal('236.54'), total_repayment=Decimal('5676.86'),
            remaining_balance=Decimal('5000.00'),
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        data = loan.to_dict()
        assert data["remainingBalance"] == "5000.00"
        assert data["loanOfferId"] == "o1"
        assert ApprovedLoan.from_dict(data) == loan
        assert loan.principal_paid == Decimal('0')

    def test_application_defaults(self):
        """Test new applications start pending and undecided"""
        application = LoanApplication(id="a1", borrower_id="b1", loan_offer_id="o1",
                                      amount=Decimal('5000'), purpose="Car")
        assert application.is_pending
        assert application.decided_at is None


class TestPaymentInvariant:
    """Test payment amount consistency"""

    def test_consistent_payment(self):
        """Test amount equal to principal plus interest is accepted"""
        payment = Payment(id="p1", loan_id="l1", installment=1, amount=Decimal('236.54'),
                          due_date=date(2024, 1, 31), principal=Decimal('184.46'),
                          interest=Decimal('52.08'))
        assert payment.is_pending

    def test_inconsistent_payment_rejected(self):
        """Test amount off by more than a cent is rejected"""
        with pytest.raises(InvalidRequestError):
            Payment(id="p1", loan_id="l1", installment=1, amount=Decimal('300.00'),
                    due_date=date(2024, 1, 31), principal=Decimal('184.46'),
                    interest=Decimal('52.08'))

    def test_loan_status_values(self):
        """Test loan statuses serialize to lowercase strings"""
        assert [s.value for s in LoanStatus] == ["active", "completed", "defaulted"]
