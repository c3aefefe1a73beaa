"""Exception hierarchy for the lending core.

Every error is caller-recoverable. They subclass ValueError so callers that
only know about ValueError keep working.
"""


class LendingError(ValueError):
    """Base exception for all lending core errors."""

    code = "lending_error"


class NotFoundError(LendingError):
    """Raised when a referenced user, offer, application, loan or payment does not exist."""

    code = "not_found"


class OfferNotFoundError(NotFoundError):
    """Raised when an application references a missing loan offer."""

    code = "offer_not_found"


class InvalidTransitionError(LendingError):
    """Raised when an entity is already terminal or the transition is out of sequence."""

    code = "invalid_transition"


class OutOfRangeError(LendingError):
    """Raised when a requested amount falls outside the offer bounds."""

    code = "out_of_range"


class AlreadySettledError(LendingError):
    """Raised when settling a payment that is not pending."""

    code = "already_settled"


class ReferentialIntegrityError(LendingError):
    """Raised when deleting a user that still has dependent loans, offers or applications."""

    code = "referential_integrity_violation"


class PermissionDeniedError(LendingError):
    """Raised when the caller's role or ownership does not allow the operation."""

    code = "permission_denied"


class InvalidRequestError(LendingError):
    """Raised when input values are malformed."""

    code = "invalid_request"


class DuplicateUserError(InvalidRequestError):
    """Raised when registering an email that is already taken."""

    code = "duplicate_user"


class ConcurrentModificationError(LendingError):
    """Raised when the persisted state changed between load and save."""

    code = "concurrent_modification"


class StateFormatError(LendingError):
    """Raised when the stored aggregate contains a record that cannot be loaded."""

    code = "state_format_error"
