"""Error taxonomy for the rent ledger core."""


class LedgerError(Exception):
    """Base class for rent ledger errors."""


class NotAuthenticated(LedgerError):
    """No tenant identity is available for a fetch or write."""

    def __init__(self, message: str = "No tenant identity available"):
        super().__init__(message)


class FetchFailed(LedgerError):
    """The store could not answer a read."""


class ValidationFailed(LedgerError):
    """Workflow preconditions are not met; the store is never contacted."""


class WriteRejected(LedgerError):
    """The store declined or failed an insert.

    Attributes:
        reason: Store-provided failure reason, surfaced to the tenant verbatim
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotificationLost(LedgerError):
    """The change feed connection dropped; no further signals will arrive."""


__all__ = [
    "LedgerError",
    "NotAuthenticated",
    "FetchFailed",
    "ValidationFailed",
    "WriteRejected",
    "NotificationLost",
]
