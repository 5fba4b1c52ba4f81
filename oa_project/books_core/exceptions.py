class BookkeepingError(Exception):
    """Base class for every error the bookkeeping core raises.

    Carries a human-readable ``message``; the concrete class is the error kind
    the request layer maps to a response.
    """

    def __init__(self, message=""):
        super().__init__(message)
        self.message = message


class ValidationError(BookkeepingError):
    """Malformed input: empty lines, non-positive amounts, bad references."""


class NotFoundError(BookkeepingError):
    """Referenced row does not exist in the tenant's partition."""


class InvalidStateTransitionError(BookkeepingError):
    """Lifecycle transition not allowed from the current status."""


class ImbalancedEntryError(BookkeepingError):
    """Raised when a JournalEntry fails double-entry balance check."""


class InvalidLineError(BookkeepingError):
    """Journal line with both/neither side set, or a non-positive amount."""


class OverpaymentError(BookkeepingError):
    """Allocation would push an invoice's amount_paid above its total."""


class InsufficientPaymentBalanceError(BookkeepingError):
    """Allocation exceeds the payment's unallocated amount."""


class ConflictError(BookkeepingError):
    """Concurrent mutation of the same row. Safe to retry from the top."""


class AlreadyVoidedError(BookkeepingError):
    """Entry or invoice was already voided."""


class AlreadyPostedDifferentPayload(BookkeepingError):
    """Raised when a JournalEntry already posted with different payload"""
