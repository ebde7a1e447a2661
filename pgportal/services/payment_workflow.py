"""Manual rent payment workflow.

State machine::

    idle -> method_selected -> processing -> succeeded
                                          -> failed

Processing generates a transaction reference, waits out the simulated payment
gateway round trip, then writes one completed record for the current period.
Settlement is never flipped locally: views learn about the new record from
the change feed like any other observer.
"""

import asyncio
import enum
import functools
import logging
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable

from pgportal.models import PaymentRecord, PaymentStatus
from pgportal.services.errors import ValidationFailed, WriteRejected
from pgportal.services.ledger_store import LedgerStore, PaymentDraft
from pgportal.services.locale_service import format_amount, format_period_label
from pgportal.services.notification_service import Feedback, FeedbackSink, Severity
from pgportal.services.period_service import current_period_key

logger = logging.getLogger(__name__)

DEFAULT_PROCESSING_DELAY = 2.0
CANCELLED_REASON = "cancelled"


class WorkflowState(str, enum.Enum):
    IDLE = "idle"
    METHOD_SELECTED = "method_selected"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def generate_transaction_reference(now: float | None = None) -> str:
    """Unique reference for one submission attempt, e.g. 'TXN1731234567890A1B2C3'."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"TXN{millis}{uuid.uuid4().hex[:6].upper()}"


class PaymentWorkflow:
    """Orchestrates one tenant's manual rent payment."""

    def __init__(
        self,
        store: LedgerStore,
        feedback: FeedbackSink | None = None,
        processing_delay: float = DEFAULT_PROCESSING_DELAY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize workflow.

        Args:
            store: Ledger store receiving the payment record
            feedback: Optional sink for success/failure notices
            processing_delay: Simulated gateway round trip in seconds
            clock: Local-time clock used for the billing period
        """
        self.store = store
        self.feedback = feedback
        self.processing_delay = processing_delay
        self.clock = clock

        self.state = WorkflowState.IDLE
        self.payment_method: str | None = None
        self.record: PaymentRecord | None = None
        self.error: str | None = None
        self._task: asyncio.Task | None = None
        self._writing = False
        self._feedback_task: asyncio.Task | None = None

    def select_method(self, payment_method: str) -> None:
        """Choose how to pay (UPI, Card, Net Banking, ...).

        Raises:
            ValidationFailed: If a payment is in flight or finished (reset first)
        """
        if self.state not in (WorkflowState.IDLE, WorkflowState.METHOD_SELECTED):
            raise ValidationFailed(f"Cannot select a payment method while {self.state.value}")
        self.payment_method = (payment_method or "").strip() or None
        self.state = WorkflowState.METHOD_SELECTED

    def reset(self) -> None:
        """Return a finished workflow to idle so the tenant can try again."""
        if self.state == WorkflowState.PROCESSING:
            raise ValidationFailed("Cannot reset while a payment is processing")
        self.state = WorkflowState.IDLE
        self.payment_method = None
        self.record = None
        self.error = None
        self._task = None

    def _validate(self, tenant_id: str | None, rent_amount: Decimal | None) -> None:
        if self.state != WorkflowState.METHOD_SELECTED:
            raise ValidationFailed("Select a payment method first")
        if not tenant_id:
            raise ValidationFailed("Sign in to pay rent")
        if rent_amount is None or Decimal(rent_amount) <= 0:
            raise ValidationFailed("Monthly rent has not been assigned yet")
        if not self.payment_method:
            raise ValidationFailed("Select a payment method first")

    async def submit(self, tenant_id: str | None, rent_amount: Decimal | None) -> PaymentRecord:
        """Run the payment to completion.

        Args:
            tenant_id: Paying tenant
            rent_amount: Amount to pay (the tenant's monthly rent)

        Returns:
            The stored PaymentRecord

        Raises:
            ValidationFailed: Preconditions not met; state stays method_selected
            WriteRejected: Store declined the write; state is failed
            asyncio.CancelledError: Cancelled during the gateway delay (state is failed)
                or during the write (the write finishes and settles the state)
        """
        self._validate(tenant_id, rent_amount)

        amount = Decimal(rent_amount)
        method = self.payment_method
        self.state = WorkflowState.PROCESSING
        reference = generate_transaction_reference()
        logger.info(
            "payment_workflow.processing: tenant_id=%s amount=%s method=%s ref=%s",
            tenant_id,
            amount,
            method,
            reference,
        )

        try:
            await asyncio.sleep(self.processing_delay)
        except asyncio.CancelledError:
            self.state = WorkflowState.FAILED
            self.error = CANCELLED_REASON
            logger.info("payment_workflow.cancelled: tenant_id=%s ref=%s", tenant_id, reference)
            raise

        draft = PaymentDraft(
            tenant_id=tenant_id,
            amount=amount,
            payment_method=method,
            period_key=current_period_key(self.clock()),
            transaction_reference=reference,
            status=PaymentStatus.COMPLETED,
        )

        # Once the write starts it runs to completion even if the caller goes away
        self._writing = True
        insert = asyncio.ensure_future(self.store.insert(draft))
        try:
            record = await asyncio.shield(insert)
        except asyncio.CancelledError:
            logger.info("payment_workflow.detached: tenant_id=%s ref=%s", tenant_id, reference)
            insert.add_done_callback(functools.partial(self._on_detached_write, draft))
            raise
        except Exception as e:
            self._writing = False
            await self._notify(self._mark_failed(draft, e))
            raise

        self._writing = False
        await self._notify(self._mark_succeeded(draft, record))
        return record

    def _mark_failed(self, draft: PaymentDraft, error: Exception) -> Feedback:
        reason = error.reason if isinstance(error, WriteRejected) else str(error)
        self.state = WorkflowState.FAILED
        self.error = reason
        logger.warning(
            "payment_workflow.failed: tenant_id=%s ref=%s reason=%s",
            draft.tenant_id,
            draft.transaction_reference,
            reason,
        )
        return Feedback("Payment Failed", reason, Severity.ERROR)

    def _mark_succeeded(self, draft: PaymentDraft, record: PaymentRecord) -> Feedback:
        self.state = WorkflowState.SUCCEEDED
        self.record = record
        logger.info(
            "payment_workflow.succeeded: tenant_id=%s id=%s ref=%s",
            draft.tenant_id,
            record.id,
            draft.transaction_reference,
        )
        return Feedback(
            "Payment Successful!",
            f"{format_amount(draft.amount)} paid via {draft.payment_method} "
            f"for {format_period_label(draft.period_key)}",
            Severity.SUCCESS,
        )

    def _on_detached_write(self, draft: PaymentDraft, insert: asyncio.Future) -> None:
        """Settle state once a write outlives its cancelled submit() task."""
        self._writing = False
        if insert.cancelled():
            self.state = WorkflowState.FAILED
            self.error = CANCELLED_REASON
            return
        error = insert.exception()
        if error is not None:
            feedback = self._mark_failed(draft, error)
        else:
            feedback = self._mark_succeeded(draft, insert.result())
        self._feedback_task = asyncio.ensure_future(self._notify(feedback))

    def start(self, tenant_id: str | None, rent_amount: Decimal | None) -> asyncio.Task:
        """Run submit() as a cancellable task.

        Validation happens immediately, so precondition errors are raised here
        rather than from the task.
        """
        self._validate(tenant_id, rent_amount)
        self._task = asyncio.ensure_future(self.submit(tenant_id, rent_amount))
        return self._task

    def cancel(self) -> bool:
        """Abandon a started payment.

        Only effective while waiting on the gateway delay; a write already in
        progress completes and still notifies the change feed.

        Returns:
            True if the attempt was abandoned before writing
        """
        if self._task is None or self._task.done() or self._writing:
            return False
        if not self._task.cancel():
            return False
        self.state = WorkflowState.FAILED
        self.error = CANCELLED_REASON
        return True

    async def _notify(self, feedback: Feedback) -> None:
        if self.feedback is None:
            return
        try:
            await self.feedback.publish(feedback)
        except Exception as e:
            logger.warning("payment_workflow: feedback delivery failed: %s", e)


__all__ = [
    "PaymentWorkflow",
    "WorkflowState",
    "generate_transaction_reference",
    "DEFAULT_PROCESSING_DELAY",
    "CANCELLED_REASON",
]
