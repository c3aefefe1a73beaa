"""
User Directory Module

Registration and lookup of marketplace users, admin status updates, and user
deletion under the referential-integrity rules of the loan engine.
"""

from typing import List, Optional, Union
import re

from .errors import DuplicateUserError, InvalidRequestError, ReferentialIntegrityError
from .filters import coerce_status
from .lifecycle import require_actor
from .logging_config import get_logger, log_action
from .models import (
    ApplicationStatus, LoanStatus, OfferStatus, User, UserRole, UserStatus, utcnow
)
from .store import EntityStore


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


class UserDirectory:
    """
    Manages marketplace users
    """

    def __init__(self, store: EntityStore):
        self.store = store
        self.logger = get_logger("lending.users")

    def register_user(
        self,
        email: str,
        name: str,
        role: Union[str, UserRole],
        company: Optional[str] = None
    ) -> User:
        """
        Register a new user

        Args:
            email: Unique login email
            name: Display name
            role: borrower, lender, analyst or admin; fixed for the user's lifetime
            company: Company name, typically for lenders

        Returns:
            Created User
        """
        email = (email or "").strip().lower()
        if not re.match(EMAIL_PATTERN, email):
            raise InvalidRequestError("Invalid email format")
        if not name or not name.strip():
            raise InvalidRequestError("Name is required")
        role = coerce_status(role, UserRole)
        if role is None:
            raise InvalidRequestError("Role is required")

        with self.store.transaction() as state:
            if state.get_user_by_email(email):
                raise DuplicateUserError("User with this email already exists")

            user = User(
                id=self.store.new_id(),
                email=email,
                name=name.strip(),
                role=role,
                status=UserStatus.ACTIVE,
                company=company,
                created_at=utcnow()
            )
            state.add(user)

        log_action(self.logger, "info", "User registered",
                   user_id=user.id, action="register_user", resource=user.id,
                   extra={"role": role.value})
        return user

    def get_user(self, user_id: str) -> User:
        return self.store.snapshot().require_user(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.store.snapshot().get_user_by_email(email)

    def email_exists(self, email: str) -> bool:
        return self.get_user_by_email(email) is not None

    def list_users(self, role: Optional[Union[str, UserRole]] = None,
                   status: Optional[Union[str, UserStatus]] = None) -> List[User]:
        return self.store.snapshot().find_users(
            role=coerce_status(role, UserRole),
            status=coerce_status(status, UserStatus)
        )

    def update_user_status(self, user_id: str, status: Union[str, UserStatus],
                           admin_id: str) -> User:
        """Suspend or reactivate a user (admin only)"""
        status = coerce_status(status, UserStatus)
        if status is None:
            raise InvalidRequestError("Status is required")

        with self.store.transaction() as state:
            require_actor(state, admin_id, UserRole.ADMIN)
            user = state.require_user(user_id)
            previous = user.status
            user.status = status

        log_action(self.logger, "info", "User status updated",
                   user_id=admin_id, action="update_user_status", resource=user_id,
                   extra={"from": previous.value, "to": status.value})
        return user

    def delete_user(self, user_id: str, admin_id: str) -> None:
        """
        Delete a user (admin only)

        Borrowers with active loans or pending applications and lenders with
        active offers or active loans cannot be deleted. A deleted borrower's
        applications, loans and those loans' payments and transactions are
        removed; a deleted lender's offers are removed.

        Raises:
            ReferentialIntegrityError: user still has dependent records
        """
        with self.store.transaction() as state:
            require_actor(state, admin_id, UserRole.ADMIN)
            user = state.require_user(user_id)

            if user.role == UserRole.BORROWER:
                if any(loan.borrower_id == user_id and loan.status == LoanStatus.ACTIVE
                       for loan in state.approved_loans):
                    raise ReferentialIntegrityError("Cannot delete borrower with active loans")
                if any(app.borrower_id == user_id and app.status == ApplicationStatus.PENDING
                       for app in state.loan_applications):
                    raise ReferentialIntegrityError("Cannot delete borrower with pending applications")
            elif user.role == UserRole.LENDER:
                if any(offer.lender_id == user_id and offer.status == OfferStatus.ACTIVE
                       for offer in state.loan_offers):
                    raise ReferentialIntegrityError("Cannot delete lender with active loan offers")
                if any(loan.lender_id == user_id and loan.status == LoanStatus.ACTIVE
                       for loan in state.approved_loans):
                    raise ReferentialIntegrityError("Cannot delete lender with active loans")

            state.users = [u for u in state.users if u.id != user_id]

            if user.role == UserRole.BORROWER:
                removed_loans = {loan.id for loan in state.approved_loans if loan.borrower_id == user_id}
                state.loan_applications = [
                    app for app in state.loan_applications if app.borrower_id != user_id
                ]
                state.approved_loans = [
                    loan for loan in state.approved_loans if loan.id not in removed_loans
                ]
                state.payments = [p for p in state.payments if p.loan_id not in removed_loans]
                state.transactions = [
                    t for t in state.transactions if t.loan_id not in removed_loans
                ]
            elif user.role == UserRole.LENDER:
                state.loan_offers = [
                    offer for offer in state.loan_offers if offer.lender_id != user_id
                ]

        log_action(self.logger, "info", "User deleted",
                   user_id=admin_id, action="delete_user", resource=user_id,
                   extra={"role": user.role.value})
