"""
Query Filters Module

Validated value types for the optional equality filters accepted by the read
accessors. Each field left as None matches everything.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Type, TypeVar, Union

from .errors import InvalidRequestError
from .models import (
    ApplicationStatus, ApprovedLoan, LoanApplication, LoanOffer, LoanStatus,
    OfferStatus, Payment, PaymentStatus
)


E = TypeVar('E', bound=Enum)


def coerce_status(value: Union[str, E, None], enum_type: Type[E]) -> Optional[E]:
    """Accept an enum member or its string value"""
    if value is None or isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise InvalidRequestError(f"Invalid status {value!r}, expected one of: {allowed}")


def _check_id(name: str, value: Optional[str]) -> None:
    if value is not None and (not isinstance(value, str) or not value):
        raise InvalidRequestError(f"{name} must be a non-empty string")


@dataclass(frozen=True)
class OfferFilter:
    lender_id: Optional[str] = None
    status: Optional[OfferStatus] = None

    def __post_init__(self):
        _check_id("lender_id", self.lender_id)
        object.__setattr__(self, 'status', coerce_status(self.status, OfferStatus))

    def matches(self, offer: LoanOffer) -> bool:
        if self.lender_id is not None and offer.lender_id != self.lender_id:
            return False
        if self.status is not None and offer.status != self.status:
            return False
        return True


@dataclass(frozen=True)
class ApplicationFilter:
    """
    Filter applications

    lender_id matches applications whose offer belongs to that lender, so
    evaluating it needs the offer-to-lender mapping of the aggregate.
    """
    borrower_id: Optional[str] = None
    lender_id: Optional[str] = None
    offer_id: Optional[str] = None
    status: Optional[ApplicationStatus] = None

    def __post_init__(self):
        _check_id("borrower_id", self.borrower_id)
        _check_id("lender_id", self.lender_id)
        _check_id("offer_id", self.offer_id)
        object.__setattr__(self, 'status', coerce_status(self.status, ApplicationStatus))

    def matches(self, application: LoanApplication, offer_lender_id: Optional[str] = None) -> bool:
        if self.borrower_id is not None and application.borrower_id != self.borrower_id:
            return False
        if self.lender_id is not None and offer_lender_id != self.lender_id:
            return False
        if self.offer_id is not None and application.loan_offer_id != self.offer_id:
            return False
        if self.status is not None and application.status != self.status:
            return False
        return True


@dataclass(frozen=True)
class LoanFilter:
    borrower_id: Optional[str] = None
    lender_id: Optional[str] = None
    status: Optional[LoanStatus] = None

    def __post_init__(self):
        _check_id("borrower_id", self.borrower_id)
        _check_id("lender_id", self.lender_id)
        object.__setattr__(self, 'status', coerce_status(self.status, LoanStatus))

    def matches(self, loan: ApprovedLoan) -> bool:
        if self.borrower_id is not None and loan.borrower_id != self.borrower_id:
            return False
        if self.lender_id is not None and loan.lender_id != self.lender_id:
            return False
        if self.status is not None and loan.status != self.status:
            return False
        return True


@dataclass(frozen=True)
class PaymentFilter:
    loan_id: Optional[str] = None
    status: Optional[PaymentStatus] = None

    def __post_init__(self):
        _check_id("loan_id", self.loan_id)
        object.__setattr__(self, 'status', coerce_status(self.status, PaymentStatus))

    def matches(self, payment: Payment) -> bool:
        if self.loan_id is not None and payment.loan_id != self.loan_id:
            return False
        if self.status is not None and payment.status != self.status:
            return False
        return True
