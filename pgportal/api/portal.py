"""Tenant portal API endpoints: rent status, payments, quick stats and live views."""

import logging
import time
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, HTTPException, Request, WebSocket
from pydantic import BaseModel, ConfigDict, Field
from telegram import Bot

from pgportal.models import PaymentRecord
from pgportal.services.change_feed import ChangeFeed
from pgportal.services.errors import FetchFailed, ValidationFailed, WriteRejected
from pgportal.services.identity import SessionIdentity
from pgportal.services.ledger_binding import (
    PAYMENTS_PAGE,
    QUICK_STATS,
    RENT_STATUS_CARD,
    SCREENS,
    LedgerView,
    LedgerViewBinding,
    ScreenProfile,
    load_view,
)
from pgportal.services.ledger_store import LedgerStore
from pgportal.services.notification_service import (
    Feedback,
    FeedbackSink,
    LogFeedbackSink,
    TelegramFeedbackSink,
)
from pgportal.services.payment_workflow import PaymentWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portal", tags=["portal"])

TENANT_HEADER = "X-Tenant-Id"


class PaymentResponse(BaseModel):
    """One ledger entry."""

    id: int
    amount: Decimal
    payment_date: datetime
    payment_method: str
    period_key: str
    status: str
    transaction_reference: str

    model_config = ConfigDict(from_attributes=True)


class LedgerViewResponse(BaseModel):
    """Screen view; only the fields the screen displays are present."""

    screen: str
    period_key: str | None = None
    monthly_rent: Decimal | None = None
    rent_assigned: bool | None = None
    settled: bool | None = None
    lifetime_total: Decimal | None = None
    pending_count: int | None = None
    payments: list[PaymentResponse] | None = None
    room: str | None = None
    joining_date: date | None = None
    days_stayed: int | None = None


class PaymentRequest(BaseModel):
    payment_method: str = Field(min_length=1, max_length=50)


class FeedbackResponse(BaseModel):
    title: str
    description: str
    severity: str


class PaymentResultResponse(BaseModel):
    payment: PaymentResponse
    feedback: FeedbackResponse | None = None


def serialize_view(view: LedgerView | None, screen: ScreenProfile) -> dict:
    """JSON-ready payload for a view; None (no tenant) yields only the screen name."""
    if view is None:
        return {"screen": screen.name}
    fields = view.as_dict()
    if "payments" in fields:
        fields["payments"] = [PaymentResponse.model_validate(p) for p in fields["payments"]]
    response = LedgerViewResponse(screen=screen.name, **fields)
    return response.model_dump(mode="json", exclude_unset=True)


def get_store(request: Request) -> LedgerStore:
    return request.app.state.ledger_store


def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias=TENANT_HEADER)) -> str:
    """Resolve the signed-in tenant.

    Raises:
        HTTPException 401: No tenant identity on the request
    """
    if not x_tenant_id or not x_tenant_id.strip():
        logger.warning("No tenant identity provided")
        raise HTTPException(status_code=401, detail="NOT_AUTHORIZED")
    return x_tenant_id.strip()


async def _view_response(store: LedgerStore, tenant_id: str, screen: ScreenProfile) -> dict:
    start_time = time.time()
    try:
        view = await load_view(store, tenant_id, screen)
    except FetchFailed as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    logger.debug(
        "portal.%s: tenant_id=%s duration_ms=%d",
        screen.name,
        tenant_id,
        int((time.time() - start_time) * 1000),
    )
    return serialize_view(view, screen)


@router.get("/rent-status")
async def rent_status(
    tenant_id: str = Depends(get_tenant_id), store: LedgerStore = Depends(get_store)
) -> dict:
    """Current month's rent and whether it is paid."""
    return await _view_response(store, tenant_id, RENT_STATUS_CARD)


@router.get("/payments")
async def payments(
    tenant_id: str = Depends(get_tenant_id), store: LedgerStore = Depends(get_store)
) -> dict:
    """Payment history with totals and current month status."""
    return await _view_response(store, tenant_id, PAYMENTS_PAGE)


@router.get("/quick-stats")
async def quick_stats(
    tenant_id: str = Depends(get_tenant_id), store: LedgerStore = Depends(get_store)
) -> dict:
    """Room, stay length and total paid."""
    return await _view_response(store, tenant_id, QUICK_STATS)


def _feedback_sink(request: Request, telegram_id: str | None) -> FeedbackSink:
    bot: Bot | None = getattr(request.app.state, "bot", None)
    if bot is not None and telegram_id:
        return TelegramFeedbackSink(bot, telegram_id)
    return LogFeedbackSink()


class _RecordingSink:
    """Forwards feedback and remembers the last notice for the response."""

    def __init__(self, inner: FeedbackSink):
        self.inner = inner
        self.last: Feedback | None = None

    async def publish(self, feedback: Feedback) -> None:
        self.last = feedback
        await self.inner.publish(feedback)


@router.post("/payments", status_code=201, response_model=PaymentResultResponse)
async def pay_rent(
    body: PaymentRequest,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    store: LedgerStore = Depends(get_store),
) -> PaymentResultResponse:
    """Pay this month's rent with the chosen method.

    Raises:
        HTTPException 422: Rent not assigned or no method chosen
        HTTPException 409: Store rejected the payment record
        HTTPException 503: Rent profile could not be loaded
    """
    try:
        profile = await store.fetch_profile(tenant_id)
    except FetchFailed as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    sink = _RecordingSink(_feedback_sink(request, profile.telegram_id if profile else None))
    workflow = PaymentWorkflow(
        store,
        feedback=sink,
        processing_delay=request.app.state.config.payment_processing_delay,
    )

    try:
        workflow.select_method(body.payment_method)
        record: PaymentRecord = await workflow.submit(
            tenant_id, profile.monthly_rent if profile else None
        )
    except ValidationFailed as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except WriteRejected as e:
        raise HTTPException(status_code=409, detail=e.reason) from e

    feedback = None
    if sink.last is not None:
        feedback = FeedbackResponse(
            title=sink.last.title,
            description=sink.last.description,
            severity=sink.last.severity.value,
        )
    return PaymentResultResponse(payment=PaymentResponse.model_validate(record), feedback=feedback)


@router.websocket("/ws/{screen_name}")
async def live_view(websocket: WebSocket, screen_name: str) -> None:
    """Push the screen's view on connect and after every ledger change.

    The tenant comes from the X-Tenant-Id header or the `tenant` query parameter.
    """
    screen = SCREENS.get(screen_name)
    tenant_id = websocket.headers.get(TENANT_HEADER) or websocket.query_params.get("tenant")
    if screen is None:
        await websocket.close(code=4404)
        return
    if not tenant_id:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    feed: ChangeFeed = websocket.app.state.change_feed

    async def push(view: LedgerView | None) -> None:
        await websocket.send_json(serialize_view(view, screen))

    binding = LedgerViewBinding(
        websocket.app.state.ledger_store,
        feed,
        SessionIdentity(tenant_id),
        screen=screen,
        on_publish=push,
    )
    await binding.activate()
    try:
        while True:
            # Client frames, text or binary, are only keep-alives
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("portal.ws: disconnected screen=%s tenant_id=%s", screen.name, tenant_id)
                break
    finally:
        binding.deactivate()


__all__ = ["router", "serialize_view", "get_tenant_id", "TENANT_HEADER"]
