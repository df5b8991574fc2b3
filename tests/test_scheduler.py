"""
Tests for the Reconciliation Scheduler.

These tests verify the scheduler's guarantees:

1. One refresh cycle at a time, however many triggers arrive
2. A cycle replaces the whole snapshot at once
3. A read failure degrades one field, not the cycle
4. Ledger events are logged with the labels current at the time
5. Teardown releases the timer, the cycle and every subscription
"""

import asyncio
from decimal import Decimal

import pytest

from ledger_sync.activity import LogCategory
from ledger_sync.core.bus import event_key
from ledger_sync.errors import LedgerOperationContext, SessionLost, TransientReadFailure
from ledger_sync.gateway.client import TokenLabels
from ledger_sync.scheduler import ReconciliationScheduler
from tests.constants import ACCOUNT, BADGE, OTHER, ROYALTY


@pytest.fixture
async def scheduler(gateway, session, activity):
    """A started scheduler with a quiet timer, stopped after the test."""
    scheduler = ReconciliationScheduler(gateway, session, activity, poll_interval=3600)
    await scheduler.start()
    yield scheduler
    await scheduler.stop()


def transient(operation: str) -> TransientReadFailure:
    return TransientReadFailure(context=LedgerOperationContext(operation=operation))


# =============================================================================
# REFRESH CYCLE
# =============================================================================


class TestRefreshCycle:
    """The initial and subsequent refresh cycles."""

    @pytest.mark.asyncio
    async def test_start_runs_initial_refresh(self, scheduler, session):
        snap = session.snapshot

        assert snap.price == Decimal("2.50")
        assert snap.token_balance == 10
        assert snap.payment_balance == Decimal("100.00")
        assert snap.total_value == Decimal("25.00")
        assert snap.vesting is None
        assert snap.refreshed_at is not None
        assert scheduler.state == "idle"

    @pytest.mark.asyncio
    async def test_refresh_replaces_snapshot_object(self, scheduler, session, ledger):
        before = session.snapshot
        ledger.tokens[ACCOUNT.lower()] = 3

        assert await scheduler.refresh() is True

        assert session.snapshot is not before
        assert session.snapshot.token_balance == 3
        assert before.token_balance == 10

    @pytest.mark.asyncio
    async def test_badges_and_vesting_loaded(self, scheduler, session, ledger):
        ledger.add_badge_type("Holder", 5, 100)
        ledger.mint_badge(ACCOUNT, 1)
        ledger.vesting = (100, 1, 40, 4, 1, 10, 25, 75, 21)

        await scheduler.refresh()

        snap = session.snapshot
        assert [t.name for t in snap.badge_types] == ["Holder"]
        assert snap.owns_token(1)
        assert snap.vesting.tranche_label == "1/4"

    @pytest.mark.asyncio
    async def test_read_failure_zeroes_one_field(self, scheduler, session, ledger, activity):
        ledger.fail("viewPricePerToken", transient("royalty.viewPricePerToken"), times=1)

        await scheduler.refresh()

        snap = session.snapshot
        assert snap.price == Decimal("0.00")
        assert snap.token_balance == 10
        assert activity.entries()[0].message == "Could not load price"
        assert activity.entries()[0].category is LogCategory.WARNING

    @pytest.mark.asyncio
    async def test_vesting_failure_is_isolated(self, scheduler, session, ledger):
        ledger.fail("getVestingInfo", transient("royalty.getVestingInfo"), times=1)

        await scheduler.refresh()

        assert session.snapshot.vesting is None
        assert session.snapshot.token_balance == 10

    @pytest.mark.asyncio
    async def test_malformed_vesting_tuple_is_isolated(
        self, scheduler, session, ledger, activity
    ):
        ledger.vesting = (1, 2, 3)

        await scheduler.refresh()

        assert session.snapshot.vesting is None
        assert session.snapshot.token_balance == 10
        assert session.snapshot.refreshed_at is not None
        assert "Could not load vesting" in [e.message for e in activity.entries()]

    @pytest.mark.asyncio
    async def test_session_lost_aborts_cycle(self, gateway, session, activity, ledger):
        lost = []
        scheduler = ReconciliationScheduler(
            gateway, session, activity, poll_interval=3600, on_session_lost=lost.append
        )
        await scheduler.start()
        before = session.snapshot
        ledger.fail("balanceOf", SessionLost("expired"))

        await scheduler.refresh()

        assert len(lost) == 1
        assert session.snapshot is before
        assert scheduler.running is False
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(self, scheduler, ledger, activity):
        ledger.fail("paused", RuntimeError("boom"), times=1)

        await scheduler.refresh()

        assert activity.entries()[0].category is LogCategory.ERROR


# =============================================================================
# SINGLE FLIGHT
# =============================================================================


class TestSingleFlight:
    """At most one cycle in flight."""

    @pytest.mark.asyncio
    async def test_concurrent_triggers_run_one_cycle(self, scheduler, ledger, session):
        started = scheduler.cycles_started
        gate = ledger.hold_reads()

        tasks = [scheduler.request_refresh() for _ in range(5)]
        ledger.emit("royalty", "Transfer", {"from": OTHER, "to": ACCOUNT, "amount": 1})
        manual = await scheduler.refresh()

        assert tasks[0] is not None
        assert tasks[1:] == [None] * 4
        assert manual is False
        assert scheduler.state == "refreshing"

        ledger.tokens[ACCOUNT.lower()] = 11
        gate.set()
        await scheduler.wait_idle()

        assert scheduler.cycles_started == started + 1
        assert session.snapshot.token_balance == 11

    @pytest.mark.asyncio
    async def test_refresh_after_write_runs_a_fresh_cycle(self, scheduler, ledger, session):
        started = scheduler.cycles_started
        gate = ledger.hold_reads()
        scheduler.request_refresh()

        waiter = asyncio.create_task(scheduler.refresh_after_write())
        await asyncio.sleep(0)
        ledger.tokens[ACCOUNT.lower()] = 42
        gate.set()
        await waiter

        assert scheduler.cycles_started == started + 2
        assert session.snapshot.token_balance == 42

    @pytest.mark.asyncio
    async def test_refresh_after_write_when_idle(self, scheduler):
        started = scheduler.cycles_started

        await scheduler.refresh_after_write()

        assert scheduler.cycles_started == started + 1


# =============================================================================
# EVENTS
# =============================================================================


class TestEvents:
    """Each ledger event adds a log entry and triggers a refresh."""

    @pytest.mark.asyncio
    async def test_transfer_event(self, scheduler, ledger, activity):
        started = scheduler.cycles_started

        ledger.emit("royalty", "Transfer", {"from": OTHER, "to": ACCOUNT, "amount": 2})
        await scheduler.wait_idle()

        entry = activity.entries()[0]
        assert entry.message == f"Transfer: 2 RYT from {OTHER} to {ACCOUNT}"
        assert entry.category is LogCategory.TRANSFER
        assert scheduler.cycles_started == started + 1

    @pytest.mark.asyncio
    async def test_royalties_event_scales_amount(self, scheduler, ledger, activity):
        ledger.emit("royalty", "RoyaltiesDistributed", {"by": OTHER, "amount": 1250})
        await scheduler.wait_idle()

        entry = activity.entries()[0]
        assert entry.message == f"Royalties distributed: 12.50 MCK by {OTHER}"
        assert entry.category is LogCategory.ROYALTY

    @pytest.mark.asyncio
    async def test_vesting_and_badge_events(self, scheduler, ledger, activity):
        ledger.emit("royalty", "VestingReleased", {"amount": 2500, "tranche": 1})
        ledger.emit("badge", "BadgeClaimed", {"badgeTypeId": 1, "user": ACCOUNT, "tokenId": 4})
        ledger.emit("badge", "BadgeAwardedByAdmin", {"badgeTypeId": 2, "user": OTHER, "tokenId": 5})
        ledger.emit("badge", "BadgeRevoked", {"tokenId": 5, "user": OTHER})
        await scheduler.wait_idle()

        messages = [e.message for e in activity.entries()[:4]]
        assert messages == [
            f"Badge revoked: token 5 from {OTHER}",
            f"Badge awarded: type 2 to {OTHER} (token 5)",
            f"Badge claimed: type 1 by {ACCOUNT} (token 4)",
            "Vesting released: 2500 RYT (tranche 1)",
        ]
        assert activity.entries()[0].category is LogCategory.WARNING

    @pytest.mark.asyncio
    async def test_labels_captured_at_event_time(self, scheduler, ledger, activity, session):
        ledger.emit("royalty", "Transfer", {"from": OTHER, "to": ACCOUNT, "amount": 1})
        session.labels = TokenLabels(royalty_symbol="NEW")
        ledger.emit("royalty", "Transfer", {"from": OTHER, "to": ACCOUNT, "amount": 1})
        await scheduler.wait_idle()

        newest, older = activity.entries()[:2]
        assert "NEW" in newest.message
        assert "RYT" in older.message


# =============================================================================
# TEARDOWN
# =============================================================================


class TestTeardown:
    """stop() releases everything and no snapshot lands afterwards."""

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_all_events(self, gateway, session, activity, ledger):
        scheduler = ReconciliationScheduler(gateway, session, activity, poll_interval=3600)
        await scheduler.start()
        assert ledger.bus.get_handler_count() == 6

        await scheduler.stop()

        assert ledger.bus.get_handler_count() == 0
        ledger.emit("royalty", "Transfer", {"from": OTHER, "to": ACCOUNT, "amount": 1})
        assert activity.entries() == []

    @pytest.mark.asyncio
    async def test_stopped_scheduler_never_applies_snapshot(
        self, gateway, session, activity, ledger
    ):
        scheduler = ReconciliationScheduler(gateway, session, activity, poll_interval=3600)
        await scheduler.start()
        before = session.snapshot
        gate = ledger.hold_reads()
        scheduler.request_refresh()

        await scheduler.stop()
        gate.set()
        await asyncio.sleep(0)

        assert session.snapshot is before
        assert scheduler.request_refresh() is None
        assert await scheduler.refresh() is False

    @pytest.mark.asyncio
    async def test_timer_triggers_refresh(self, gateway, session, activity):
        scheduler = ReconciliationScheduler(gateway, session, activity, poll_interval=0.01)
        await scheduler.start()

        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert scheduler.cycles_started >= 2

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, scheduler):
        await scheduler.stop()
        await scheduler.stop()

        assert scheduler.running is False


@pytest.mark.unit
def test_event_keys_cover_both_contracts():
    assert event_key(ROYALTY, "Transfer").startswith(ROYALTY.lower())
    assert event_key(BADGE, "BadgeRevoked").startswith(BADGE.lower())
