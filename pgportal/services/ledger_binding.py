"""Live ledger views kept in sync through the change feed.

One LedgerViewBinding backs each screen that shows rent status: the rent
status card, the payments page and the quick-stats widget. A binding owns a
private snapshot, re-fetches it in full whenever the payments feed or the
tenant identity signals a change, and publishes the derived view.

Bindings share nothing; they agree eventually because they all listen to
the same feed and read the same store.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable

from pgportal.models import PaymentRecord, PaymentStatus
from pgportal.services.change_feed import ChangeFeed, Subscription
from pgportal.services.errors import FetchFailed, LedgerError, NotificationLost
from pgportal.services.identity import IdentityProvider
from pgportal.services.ledger_store import LedgerStore
from pgportal.services.period_service import current_period_key, days_since
from pgportal.services.status_resolver import derive

logger = logging.getLogger(__name__)

PAYMENTS_RESOURCE = "payments"


@dataclass(frozen=True)
class ScreenProfile:
    """What a screen shows and which records it needs to derive it.

    Attributes:
        name: Screen identifier
        fields: View fields the screen displays
        period_scoped: Fetch only records of the current period
        completed_only: Fetch only completed records
    """

    name: str
    fields: frozenset[str]
    period_scoped: bool = False
    completed_only: bool = False


RENT_STATUS_CARD = ScreenProfile(
    name="rent_status",
    fields=frozenset({"period_key", "monthly_rent", "rent_assigned", "settled"}),
    period_scoped=True,
    completed_only=True,
)
PAYMENTS_PAGE = ScreenProfile(
    name="payments",
    fields=frozenset(
        {
            "period_key",
            "monthly_rent",
            "rent_assigned",
            "settled",
            "lifetime_total",
            "pending_count",
            "payments",
        }
    ),
)
QUICK_STATS = ScreenProfile(
    name="quick_stats",
    fields=frozenset({"room", "joining_date", "days_stayed", "lifetime_total"}),
    completed_only=True,
)

SCREENS: dict[str, ScreenProfile] = {
    screen.name: screen for screen in (RENT_STATUS_CARD, PAYMENTS_PAGE, QUICK_STATS)
}


@dataclass(frozen=True)
class LedgerView:
    """Published state of one binding."""

    tenant_id: str
    screen: ScreenProfile
    period_key: str
    monthly_rent: Decimal
    rent_assigned: bool
    settled: bool
    lifetime_total: Decimal
    pending_count: int
    payments: tuple[PaymentRecord, ...] = ()
    room: str | None = None
    joining_date: date | None = None
    days_stayed: int = 0
    loaded_at: datetime = field(default_factory=datetime.now)

    def as_dict(self) -> dict[str, Any]:
        """Fields the screen displays, keyed by name."""
        return {name: getattr(self, name) for name in sorted(self.screen.fields)}


def _room_label(room_number: str | None, bed_number: str | None) -> str | None:
    if not room_number:
        return None
    return f"{room_number}-{bed_number or 'A'}"


async def load_view(
    store: LedgerStore,
    tenant_id: str,
    screen: ScreenProfile,
    now: datetime | None = None,
) -> LedgerView:
    """Fetch a tenant's ledger and derive the view a screen needs.

    Raises:
        NotAuthenticated: If tenant_id is missing
        FetchFailed: On store errors
    """
    if now is None:
        now = datetime.now()
    period_key = current_period_key(now)

    profile = await store.fetch_profile(tenant_id)
    payments = await store.fetch_payments(
        tenant_id,
        period_key=period_key if screen.period_scoped else None,
        status=PaymentStatus.COMPLETED if screen.completed_only else None,
    )
    status = derive(profile.monthly_rent if profile else None, payments, period_key)
    joining_date = profile.joining_date if profile else None

    return LedgerView(
        tenant_id=tenant_id,
        screen=screen,
        period_key=period_key,
        monthly_rent=status.monthly_rent if status.monthly_rent is not None else Decimal(0),
        rent_assigned=status.monthly_rent is not None,
        settled=status.settled,
        lifetime_total=status.lifetime_total,
        pending_count=status.pending_count,
        payments=tuple(payments),
        room=_room_label(profile.room_number, profile.bed_number) if profile else None,
        joining_date=joining_date,
        days_stayed=days_since(joining_date, now),
        loaded_at=now,
    )


PublishCallback = Callable[[LedgerView | None], Awaitable[None] | None]


class LedgerViewBinding:
    """Keeps one screen's ledger view current.

    Lifecycle: activate() subscribes and loads; every feed or identity signal
    triggers a full re-fetch; deactivate() unsubscribes. Refreshes of one
    binding never overlap, and results that land after deactivation are
    dropped instead of published.
    """

    def __init__(
        self,
        store: LedgerStore,
        feed: ChangeFeed,
        identity: IdentityProvider,
        screen: ScreenProfile = PAYMENTS_PAGE,
        on_publish: PublishCallback | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.feed = feed
        self.identity = identity
        self.screen = screen
        self.on_publish = on_publish
        self.clock = clock

        self.view: LedgerView | None = None
        self.last_error: LedgerError | None = None
        self.active = False
        self.refresh_count = 0

        self._generation = 0
        self._dirty = False
        self._subscription: Subscription | None = None
        self._identity_unsubscribe: Callable[[], None] | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def feed_error(self) -> NotificationLost | None:
        """Set once the feed connection behind this binding dropped."""
        return self._subscription.lost if self._subscription is not None else None

    async def activate(self) -> None:
        """Subscribe and load the initial view. No-op if already active."""
        if self.active:
            return
        self.active = True
        self._generation += 1
        self._subscription = self.feed.subscribe(PAYMENTS_RESOURCE, self.request_refresh)
        self._identity_unsubscribe = self.identity.on_identity_change(self._on_identity_change)
        logger.debug("ledger_binding.activate: screen=%s", self.screen.name)
        self.request_refresh()
        await self.wait_idle()

    def deactivate(self) -> None:
        """Unsubscribe from feed and identity. Safe to call repeatedly."""
        if not self.active:
            return
        self.active = False
        self._generation += 1
        self._dirty = False
        self.feed.unsubscribe(self._subscription)
        self._subscription = None
        if self._identity_unsubscribe is not None:
            self._identity_unsubscribe()
            self._identity_unsubscribe = None
        logger.debug("ledger_binding.deactivate: screen=%s", self.screen.name)

    def request_refresh(self) -> None:
        """Schedule a full re-fetch; coalesces with a refresh already queued."""
        if not self.active:
            return
        self._dirty = True
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._drain())

    async def wait_idle(self) -> None:
        """Wait until no refresh is running or queued."""
        while self._refresh_task is not None and not self._refresh_task.done():
            await self._refresh_task

    def _on_identity_change(self, tenant_id: str | None) -> None:
        self.request_refresh()

    async def _drain(self) -> None:
        while self._dirty and self.active:
            self._dirty = False
            await self._refresh_once(self._generation)

    async def _refresh_once(self, generation: int) -> None:
        tenant_id = self.identity.current_tenant_id()
        if tenant_id is None:
            await self._publish(None, generation)
            return

        try:
            view = await load_view(self.store, tenant_id, self.screen, self.clock())
        except FetchFailed as e:
            logger.warning(
                "ledger_binding.refresh failed, keeping last snapshot: screen=%s tenant_id=%s error=%s",
                self.screen.name,
                tenant_id,
                e,
            )
            if generation == self._generation:
                self.last_error = e
            return

        await self._publish(view, generation)

    async def _publish(self, view: LedgerView | None, generation: int) -> None:
        if generation != self._generation or not self.active:
            logger.debug("ledger_binding: discarding result of inactive binding screen=%s", self.screen.name)
            return

        self.view = view
        self.last_error = None
        self.refresh_count += 1
        if self.on_publish is None:
            return
        try:
            result = self.on_publish(view)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("ledger_binding: publish callback failed for screen=%s", self.screen.name)


__all__ = [
    "LedgerView",
    "LedgerViewBinding",
    "ScreenProfile",
    "RENT_STATUS_CARD",
    "PAYMENTS_PAGE",
    "QUICK_STATS",
    "SCREENS",
    "PAYMENTS_RESOURCE",
    "load_view",
]
