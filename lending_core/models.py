"""
Domain Records Module

Dataclass records for the six collections of the lending aggregate and the
enums for their lifecycle states. All monetary values are Decimal and are
serialized as strings; record keys are serialized in camelCase.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from datetime import datetime, date, timezone
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Union, get_type_hints, get_origin, get_args
from enum import Enum

from .errors import InvalidRequestError


CENT = Decimal('0.01')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert a caller-supplied number to Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidRequestError(f"Invalid numeric value: {value!r}")


def round_money(value: Decimal) -> Decimal:
    """Round a Decimal amount to cents"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class UserRole(Enum):
    """Marketplace roles"""
    BORROWER = "borrower"
    LENDER = "lender"
    ANALYST = "analyst"
    ADMIN = "admin"


class UserStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class OfferStatus(Enum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class ApplicationStatus(Enum):
    """Application states; approved and rejected are terminal"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LoanStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"  # No operation moves a loan here


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    LATE = "late"  # No operation moves a payment here


class TransactionType(Enum):
    DISBURSEMENT = "disbursement"
    PAYMENT = "payment"
    FEE = "fee"


def to_camel(name: str) -> str:
    head, *tail = name.split('_')
    return head + ''.join(part.title() for part in tail)


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _parse_datetime(value: str) -> datetime:
    # Browser-produced timestamps end in "Z"
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _deserialize(value: Any, hint: Any) -> Any:
    if value is None:
        return None
    if get_origin(hint) is Union:
        hint = next(arg for arg in get_args(hint) if arg is not type(None))
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    if hint is Decimal:
        return Decimal(str(value))
    if hint is datetime:
        return _parse_datetime(value) if isinstance(value, str) else value
    if hint is date:
        if isinstance(value, str):
            return date.fromisoformat(value[:10])
        return value
    if hint is int:
        return int(value)
    if hint is str and not isinstance(value, str):
        return str(value)
    return value


@dataclass
class Record:
    """Base class for all records in the aggregate"""
    id: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase dictionary stored in the aggregate"""
        return {to_camel(f.name): _serialize(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Record':
        """Create instance from a stored dictionary, ignoring unknown keys"""
        hints = get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            key = to_camel(f.name)
            if key in data:
                kwargs[f.name] = _deserialize(data[key], hints[f.name])
        return cls(**kwargs)


@dataclass
class User(Record):
    email: str
    name: str
    role: UserRole
    status: UserStatus = UserStatus.ACTIVE
    company: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


@dataclass
class LoanOffer(Record):
    """Lender-published loan product template"""
    lender_id: str
    title: str
    min_amount: Decimal
    max_amount: Decimal
    interest_rate: Decimal  # Annual percent, e.g. 12.5
    term: int               # Months
    description: str = ""
    status: OfferStatus = OfferStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)
    withdrawn_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == OfferStatus.ACTIVE

    def accepts_amount(self, amount: Decimal) -> bool:
        return self.min_amount <= amount <= self.max_amount


@dataclass
class LoanApplication(Record):
    """Borrower's request against one offer"""
    borrower_id: str
    loan_offer_id: str
    amount: Decimal
    purpose: str
    credit_score: Optional[int] = None  # Declared, never verified
    income: Optional[Decimal] = None    # Declared annual income, never verified
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: datetime = field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApplicationStatus.PENDING


@dataclass
class ApprovedLoan(Record):
    """Loan created from an approved application"""
    application_id: str
    borrower_id: str
    lender_id: str
    loan_offer_id: str
    amount: Decimal
    interest_rate: Decimal
    term: int
    monthly_payment: Decimal
    total_repayment: Decimal
    remaining_balance: Decimal
    status: LoanStatus = LoanStatus.ACTIVE
    start_date: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def principal_paid(self) -> Decimal:
        return self.amount - self.remaining_balance


@dataclass
class Payment(Record):
    """One scheduled installment of an approved loan"""
    loan_id: str
    installment: int
    amount: Decimal
    due_date: date
    principal: Decimal
    interest: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        # Amount must equal principal + interest
        if abs(self.principal + self.interest - self.amount) > CENT:
            raise InvalidRequestError(
                f"Payment amount {self.amount} does not equal principal "
                f"{self.principal} + interest {self.interest}"
            )

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING


@dataclass
class Transaction(Record):
    """Append-only record of a disbursement or payment"""
    loan_id: str
    user_id: str
    type: TransactionType
    amount: Decimal
    description: str
    timestamp: datetime = field(default_factory=utcnow)
