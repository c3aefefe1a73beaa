"""
Entity Store Module

Typed in-memory view of the lending aggregate (users, offers, applications,
approved loans, payments and transactions) with lookup and filter operations,
and the EntityStore that loads, mutates and saves it as one unit of work.

At most one logical writer may operate between a load and its matching save.
Within a process the store lock serialises units of work; across processes the
persisted version number turns a lost update into ConcurrentModificationError.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar
import threading
import uuid

from .errors import ConcurrentModificationError, NotFoundError, StateFormatError
from .filters import ApplicationFilter, LoanFilter, OfferFilter, PaymentFilter
from .logging_config import get_logger
from .models import (
    ApprovedLoan, LoanApplication, LoanOffer, Payment, Record, Transaction,
    User, UserRole, UserStatus
)
from .storage import StateStorage, VERSION_KEY


T = TypeVar('T')

# Serialized collection key -> (state attribute, record type)
COLLECTIONS = {
    "users": ("users", User),
    "loanOffers": ("loan_offers", LoanOffer),
    "loanApplications": ("loan_applications", LoanApplication),
    "approvedLoans": ("approved_loans", ApprovedLoan),
    "payments": ("payments", Payment),
    "transactions": ("transactions", Transaction),
}

_ATTRIBUTE_BY_TYPE = {record_type: attr for attr, record_type in COLLECTIONS.values()}


def _number_installments(payments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fill in missing installment numbers by due date within each loan"""
    if all("installment" in payment for payment in payments):
        return payments
    numbered = [dict(payment) for payment in payments]
    by_loan: Dict[Any, List[Dict[str, Any]]] = {}
    for payment in numbered:
        by_loan.setdefault(payment.get("loanId"), []).append(payment)
    for loan_payments in by_loan.values():
        ordered = sorted(loan_payments, key=lambda p: str(p.get("dueDate", "")))
        for installment, payment in enumerate(ordered, start=1):
            payment.setdefault("installment", installment)
    return numbered


@dataclass
class LendingState:
    """One loaded copy of the aggregate"""
    users: List[User] = field(default_factory=list)
    loan_offers: List[LoanOffer] = field(default_factory=list)
    loan_applications: List[LoanApplication] = field(default_factory=list)
    approved_loans: List[ApprovedLoan] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    version: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LendingState':
        """
        Build from the serialized aggregate; missing collections load empty

        Payments stored without an installment number are numbered by due
        date within their loan.

        Raises:
            StateFormatError: a stored record is missing fields or has bad values
        """
        state = cls(version=int(data.get(VERSION_KEY, 0)))
        for key, (attr, record_type) in COLLECTIONS.items():
            items = data.get(key, [])
            try:
                if record_type is Payment:
                    items = _number_installments(items)
                records = [record_type.from_dict(item) for item in items]
            except (TypeError, KeyError, ValueError, ArithmeticError) as e:
                raise StateFormatError(f"Malformed {key} record in stored state: {e}") from e
            setattr(state, attr, records)
        return state

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {VERSION_KEY: self.version}
        for key, (attr, _) in COLLECTIONS.items():
            result[key] = [record.to_dict() for record in getattr(self, attr)]
        return result

    def add(self, record: Record) -> Record:
        """Append a record to the collection for its type"""
        getattr(self, _ATTRIBUTE_BY_TYPE[type(record)]).append(record)
        return record

    # Lookups by id

    @staticmethod
    def _by_id(records: List[T], record_id: str) -> Optional[T]:
        for record in records:
            if record.id == record_id:
                return record
        return None

    def get_user(self, user_id: str) -> Optional[User]:
        return self._by_id(self.users, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in self.users:
            if user.email.lower() == email:
                return user
        return None

    def get_offer(self, offer_id: str) -> Optional[LoanOffer]:
        return self._by_id(self.loan_offers, offer_id)

    def get_application(self, application_id: str) -> Optional[LoanApplication]:
        return self._by_id(self.loan_applications, application_id)

    def get_loan(self, loan_id: str) -> Optional[ApprovedLoan]:
        return self._by_id(self.approved_loans, loan_id)

    def get_loan_for_application(self, application_id: str) -> Optional[ApprovedLoan]:
        for loan in self.approved_loans:
            if loan.application_id == application_id:
                return loan
        return None

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        return self._by_id(self.payments, payment_id)

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def require_offer(self, offer_id: str) -> LoanOffer:
        offer = self.get_offer(offer_id)
        if not offer:
            raise NotFoundError(f"Loan offer {offer_id} not found")
        return offer

    def require_application(self, application_id: str) -> LoanApplication:
        application = self.get_application(application_id)
        if not application:
            raise NotFoundError(f"Loan application {application_id} not found")
        return application

    def require_loan(self, loan_id: str) -> ApprovedLoan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def require_payment(self, payment_id: str) -> Payment:
        payment = self.get_payment(payment_id)
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    # Filtered listings

    def find_users(self, role: Optional[UserRole] = None,
                   status: Optional[UserStatus] = None) -> List[User]:
        return [
            user for user in self.users
            if (role is None or user.role == role)
            and (status is None or user.status == status)
        ]

    def find_offers(self, query: Optional[OfferFilter] = None) -> List[LoanOffer]:
        query = query or OfferFilter()
        return [offer for offer in self.loan_offers if query.matches(offer)]

    def find_applications(self, query: Optional[ApplicationFilter] = None) -> List[LoanApplication]:
        query = query or ApplicationFilter()
        lender_by_offer = {offer.id: offer.lender_id for offer in self.loan_offers}
        return [
            application for application in self.loan_applications
            if query.matches(application, lender_by_offer.get(application.loan_offer_id))
        ]

    def find_loans(self, query: Optional[LoanFilter] = None) -> List[ApprovedLoan]:
        query = query or LoanFilter()
        return [loan for loan in self.approved_loans if query.matches(loan)]

    def find_payments(self, query: Optional[PaymentFilter] = None) -> List[Payment]:
        query = query or PaymentFilter()
        return [payment for payment in self.payments if query.matches(payment)]

    def payments_for_loan(self, loan_id: str) -> List[Payment]:
        """Installments of a loan in schedule order"""
        return sorted(
            (p for p in self.payments if p.loan_id == loan_id),
            key=lambda p: p.installment
        )

    def find_transactions(self, loan_id: Optional[str] = None) -> List[Transaction]:
        return [t for t in self.transactions if loan_id is None or t.loan_id == loan_id]


class EntityStore:
    """
    Owns the storage backend and the id generator, and runs every compound
    operation as a single load-mutate-save unit of work.
    """

    def __init__(self, storage: StateStorage, id_factory: Optional[Callable[[], str]] = None):
        self.storage = storage
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._lock = threading.RLock()
        self.logger = get_logger("lending.store")

    def new_id(self) -> str:
        """Generate a collision-free record id"""
        return self.id_factory()

    def snapshot(self) -> LendingState:
        """Load the current aggregate for reading"""
        data = self.storage.load_state()
        return LendingState.from_dict(data or {})

    @contextmanager
    def transaction(self) -> Iterator[LendingState]:
        """
        Unit of work over a fresh copy of the aggregate

        The state is saved only when the block exits normally; an exception
        discards every mutation made inside the block.
        """
        with self._lock:
            state = self.snapshot()
            yield state
            try:
                state.version = self.storage.save_state(state.to_dict(), expected_version=state.version)
            except ConcurrentModificationError:
                self.logger.warning("Discarded unit of work: aggregate changed since version %s",
                                    state.version)
                raise

    def apply(self, mutation: Callable[[LendingState], T]) -> T:
        """Run mutation(state) as one unit of work and return its result"""
        with self.transaction() as state:
            return mutation(state)

    def ensure_initialized(self) -> None:
        """Persist an empty aggregate if nothing has been saved yet"""
        with self._lock:
            if self.storage.load_state() is None:
                self.storage.save_state(LendingState().to_dict(), expected_version=0)

    def close(self) -> None:
        self.storage.close()
