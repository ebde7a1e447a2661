"""Rent ledger services: store, change feed, status derivation, workflow and view bindings."""

from pgportal.services.change_feed import ChangeFeed, Subscription
from pgportal.services.errors import (
    FetchFailed,
    LedgerError,
    NotAuthenticated,
    NotificationLost,
    ValidationFailed,
    WriteRejected,
)
from pgportal.services.identity import SessionIdentity
from pgportal.services.ledger_binding import (
    PAYMENTS_PAGE,
    QUICK_STATS,
    RENT_STATUS_CARD,
    LedgerView,
    LedgerViewBinding,
)
from pgportal.services.ledger_store import LedgerStore, PaymentDraft
from pgportal.services.payment_workflow import PaymentWorkflow, WorkflowState
from pgportal.services.status_resolver import LedgerStatus, derive

__all__ = [
    "ChangeFeed",
    "Subscription",
    "LedgerError",
    "NotAuthenticated",
    "FetchFailed",
    "ValidationFailed",
    "WriteRejected",
    "NotificationLost",
    "SessionIdentity",
    "LedgerView",
    "LedgerViewBinding",
    "RENT_STATUS_CARD",
    "PAYMENTS_PAGE",
    "QUICK_STATS",
    "LedgerStore",
    "PaymentDraft",
    "PaymentWorkflow",
    "WorkflowState",
    "LedgerStatus",
    "derive",
]
