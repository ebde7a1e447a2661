"""Integration tests: ledger view bindings over a real store and change feed."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from pgportal.models import PaymentStatus
from pgportal.services.errors import FetchFailed
from pgportal.services.identity import SessionIdentity
from pgportal.services.ledger_binding import (
    PAYMENTS_PAGE,
    PAYMENTS_RESOURCE,
    QUICK_STATS,
    RENT_STATUS_CARD,
    LedgerViewBinding,
)
from pgportal.services.payment_workflow import PaymentWorkflow

TENANT = "tenant-001"
OTHER_TENANT = "tenant-002"


@pytest.fixture
def identity():
    return SessionIdentity(TENANT)


@pytest.fixture
def make_binding(store, feed, identity):
    created = []

    def _make(screen=PAYMENTS_PAGE, on_publish=None, **kwargs):
        binding = LedgerViewBinding(store, feed, identity, screen=screen, on_publish=on_publish, **kwargs)
        created.append(binding)
        return binding

    yield _make
    for binding in created:
        binding.deactivate()


def break_store(store, monkeypatch):
    def broken_factory():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "session_factory", broken_factory)


@pytest.mark.integration
class TestActivation:
    async def test_activate_publishes_initial_view(self, make_binding, add_profile, add_payment):
        await add_profile()
        await add_payment(period_key="2025-01")
        published = []
        binding = make_binding(on_publish=published.append)

        await binding.activate()

        assert binding.view is not None
        assert binding.view.settled is False
        assert binding.view.lifetime_total == Decimal("5000")
        assert published == [binding.view]

    async def test_unassigned_rent_shows_zero(self, make_binding, add_profile):
        await add_profile(monthly_rent=None)
        binding = make_binding(screen=RENT_STATUS_CARD)

        await binding.activate()

        assert binding.view.monthly_rent == Decimal(0)
        assert binding.view.rent_assigned is False

    async def test_no_identity_publishes_empty(self, store, feed, add_profile):
        await add_profile()
        published = []
        binding = LedgerViewBinding(store, feed, SessionIdentity(None), on_publish=published.append)

        await binding.activate()

        assert published == [None]
        assert binding.view is None
        binding.deactivate()

    async def test_async_publish_callback_is_awaited(self, make_binding, add_profile):
        await add_profile()
        received = []

        async def on_publish(view):
            await asyncio.sleep(0)
            received.append(view)

        binding = make_binding(on_publish=on_publish)
        await binding.activate()

        assert received == [binding.view]

    async def test_failing_publish_callback_keeps_binding_alive(self, make_binding, add_profile, add_payment, settle):
        await add_profile()

        def on_publish(view):
            raise RuntimeError("socket gone")

        binding = make_binding(on_publish=on_publish)
        await binding.activate()
        await add_payment()
        await settle(binding)

        assert binding.view.settled is True
        assert binding.refresh_count == 2


@pytest.mark.integration
class TestConsistency:
    async def test_all_screens_agree_after_workflow_payment(self, store, make_binding, add_profile, settle):
        await add_profile(monthly_rent=Decimal("5000"))
        card = make_binding(screen=RENT_STATUS_CARD)
        page = make_binding(screen=PAYMENTS_PAGE)
        stats = make_binding(screen=QUICK_STATS)
        for binding in (card, page, stats):
            await binding.activate()
        assert card.view.settled is False and page.view.settled is False

        workflow = PaymentWorkflow(store, processing_delay=0)
        workflow.select_method("UPI")
        record = await workflow.submit(TENANT, card.view.monthly_rent)
        await settle(card, page, stats)

        assert card.view.settled is True
        assert page.view.settled is True
        assert page.view.lifetime_total == Decimal("5000")
        assert stats.view.lifetime_total == Decimal("5000")
        assert [p.id for p in page.view.payments] == [record.id]

    async def test_unrelated_tenant_write_still_refreshes(self, make_binding, add_profile, add_payment, settle):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        await add_payment(tenant_id=OTHER_TENANT)
        await settle(binding)

        assert binding.refresh_count == 2
        assert binding.view.lifetime_total == Decimal(0)

    async def test_pending_payment_does_not_settle(self, make_binding, add_profile, add_payment, settle):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        await add_payment(status=PaymentStatus.PENDING)
        await settle(binding)

        assert binding.view.settled is False
        assert binding.view.pending_count == 1

    async def test_burst_of_writes_converges(self, make_binding, add_profile, add_payment, settle):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        for i in range(5):
            await add_payment(period_key=f"2025-0{i + 1}")
        await settle(binding)

        assert binding.view.lifetime_total == Decimal("25000")
        assert binding.refresh_count <= 6


@pytest.mark.integration
class TestLifecycle:
    async def test_reactivation_does_not_leak_subscriptions(self, make_binding, feed, identity, add_profile):
        await add_profile()
        binding = make_binding()

        for _ in range(3):
            await binding.activate()
            binding.deactivate()
            binding.deactivate()

        assert feed.subscriber_count(PAYMENTS_RESOURCE) == 0
        assert identity.listener_count == 0

    async def test_activate_twice_subscribes_once(self, make_binding, feed, add_profile):
        await add_profile()
        binding = make_binding()

        await binding.activate()
        await binding.activate()

        assert feed.subscriber_count(PAYMENTS_RESOURCE) == 1

    async def test_result_after_deactivate_is_discarded(self, store, make_binding, add_profile, monkeypatch):
        await add_profile()
        binding = make_binding()
        await binding.activate()
        first_view = binding.view

        release = asyncio.Event()
        original = store.fetch_payments

        async def slow_fetch(*args, **kwargs):
            await release.wait()
            return await original(*args, **kwargs)

        monkeypatch.setattr(store, "fetch_payments", slow_fetch)
        binding.request_refresh()
        await asyncio.sleep(0)
        binding.deactivate()
        release.set()
        await binding.wait_idle()

        assert binding.view is first_view
        assert binding.refresh_count == 1

    async def test_deactivated_binding_ignores_feed(self, make_binding, add_profile, add_payment, settle):
        await add_profile()
        binding = make_binding()
        await binding.activate()
        binding.deactivate()

        await add_payment()
        await settle(binding)

        assert binding.refresh_count == 1
        assert binding.view.settled is False


@pytest.mark.integration
class TestFailures:
    async def test_failed_refresh_keeps_last_snapshot(self, store, feed, make_binding, add_profile, settle, monkeypatch):
        await add_profile()
        binding = make_binding()
        await binding.activate()
        snapshot = binding.view

        break_store(store, monkeypatch)
        feed.publish(PAYMENTS_RESOURCE)
        await settle(binding)

        assert binding.view is snapshot
        assert isinstance(binding.last_error, FetchFailed)

    async def test_recovers_on_next_signal(self, store, feed, make_binding, add_profile, add_payment, settle, monkeypatch):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        break_store(store, monkeypatch)
        feed.publish(PAYMENTS_RESOURCE)
        await settle(binding)
        monkeypatch.undo()

        await add_payment()
        await settle(binding)

        assert binding.last_error is None
        assert binding.view.settled is True

    async def test_dropped_feed_stops_refresh_until_reactivated(
        self, feed, make_binding, add_profile, add_payment, settle
    ):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        feed.drop_connection("websocket closed")
        await add_payment()
        await settle(binding)

        assert binding.feed_error is not None
        assert binding.view.settled is False

        binding.deactivate()
        await binding.activate()

        assert binding.feed_error is None
        assert binding.view.settled is True


@pytest.mark.integration
class TestIdentity:
    async def test_identity_switch_reloads_for_new_tenant(
        self, make_binding, identity, add_profile, add_payment, settle
    ):
        await add_profile()
        await add_profile(tenant_id=OTHER_TENANT, monthly_rent=Decimal("7000"))
        await add_payment(tenant_id=OTHER_TENANT, amount=Decimal("7000"))
        binding = make_binding(screen=RENT_STATUS_CARD)
        await binding.activate()
        assert binding.view.settled is False

        identity.set_tenant(OTHER_TENANT)
        await settle(binding)

        assert binding.view.tenant_id == OTHER_TENANT
        assert binding.view.monthly_rent == Decimal("7000")
        assert binding.view.settled is True

    async def test_sign_out_clears_view(self, make_binding, identity, add_profile, settle):
        await add_profile()
        binding = make_binding()
        await binding.activate()

        identity.set_tenant(None)
        await settle(binding)

        assert binding.view is None


@pytest.mark.integration
class TestScreens:
    async def test_each_screen_exposes_its_fields(self, make_binding, add_profile):
        await add_profile(joining_date=date(2025, 10, 1))
        now = datetime(2025, 11, 15, 12, 0)
        card = make_binding(screen=RENT_STATUS_CARD, clock=lambda: now)
        stats = make_binding(screen=QUICK_STATS, clock=lambda: now)
        await card.activate()
        await stats.activate()

        assert set(card.view.as_dict()) == {"period_key", "monthly_rent", "rent_assigned", "settled"}
        assert stats.view.as_dict() == {
            "days_stayed": 45,
            "joining_date": date(2025, 10, 1),
            "lifetime_total": Decimal(0),
            "room": "101-B",
        }

    async def test_status_card_reads_only_current_period(self, make_binding, add_profile, add_payment):
        await add_profile()
        await add_payment(period_key="2024-12")
        await add_payment()
        card = make_binding(screen=RENT_STATUS_CARD)
        page = make_binding(screen=PAYMENTS_PAGE)

        await card.activate()
        await page.activate()

        assert len(card.view.payments) == 1
        assert len(page.view.payments) == 2
        assert card.view.settled is page.view.settled is True
