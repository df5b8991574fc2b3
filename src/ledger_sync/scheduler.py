"""
Reconciliation Scheduler

Keeps a session's snapshot in step with the ledger. Three things trigger a
refresh: ledger events, a fixed-interval timer, and explicit requests
(manual refresh, or the orchestrator after a confirmed write). They all go
through one entry point, and at most one refresh cycle runs at a time.

=============================================================================
LIFECYCLE
=============================================================================

    scheduler = ReconciliationScheduler(gateway, session, activity)
    await scheduler.start()     # subscribe, initial refresh, start timer
    ...
    await scheduler.stop()      # cancel timer and cycle, unsubscribe

A stopped scheduler never applies a snapshot, even if a cycle that was in
flight at stop time completes its reads.

=============================================================================
SINGLE FLIGHT
=============================================================================

``request_refresh()`` starts a cycle unless one is already running, in
which case the trigger is dropped: the running cycle will read state at
least as new as whatever prompted the trigger.

A confirmed write is different. A cycle that started before the write may
have read pre-write state, so ``refresh_after_write()`` waits for it and
then makes sure one more cycle runs.

=============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Literal, TypeVar

from ledger_sync.activity import ActivityLog, LogCategory
from ledger_sync.badges import BadgeEligibilityTracker
from ledger_sync.core.bus import LedgerEvent, Unsubscribe
from ledger_sync.core.events import Events
from ledger_sync.errors import SessionLost, TransientReadFailure
from ledger_sync.gateway.client import LedgerGateway
from ledger_sync.session import LedgerSnapshot, Session, now_utc
from ledger_sync.units import format_amount, to_display
from ledger_sync.vesting import VestingSchedule, derive_vesting_schedule

logger = logging.getLogger(__name__)

T = TypeVar("T")

SchedulerState = Literal["idle", "refreshing"]


class ReconciliationScheduler:
    """
    Single-flight refresh loop for one session.

    Attributes:
        gateway: Ledger access.
        session: Session whose snapshot is replaced on every cycle.
        activity: Log receiving event entries and absorbed failures.
        poll_interval: Seconds between timer-driven refreshes.
        on_session_lost: Called once when a cycle hits SessionLost.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        session: Session,
        activity: ActivityLog,
        *,
        poll_interval: float = 30.0,
        on_session_lost: Callable[[SessionLost], None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.activity = activity
        self.poll_interval = poll_interval
        self.on_session_lost = on_session_lost
        self.tracker = BadgeEligibilityTracker(gateway, session.account)

        self.cycles_started = 0
        self._running = False
        self._current: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._unsubscribes: list[Unsubscribe] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> SchedulerState:
        return "refreshing" if self.in_flight else "idle"

    @property
    def in_flight(self) -> bool:
        return self._current is not None and not self._current.done()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Subscribe to ledger events, run the initial refresh, start the timer."""
        if self._running:
            return
        self._running = True
        self._subscribe()
        await self.refresh()
        self._timer = asyncio.get_running_loop().create_task(self._timer_loop())

    async def stop(self) -> None:
        """Release timer, in-flight cycle and subscriptions. Safe to call twice."""
        self._running = False

        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

        for task in (self._timer, self._current):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._timer = None
        self._current = None

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.poll_interval)
            self.request_refresh()

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def request_refresh(self) -> asyncio.Task[None] | None:
        """
        Start a cycle unless one is already running.

        Returns:
            The new cycle's task, or None if the trigger was dropped.
        """
        if not self._running:
            return None
        if self.in_flight:
            logger.debug("Refresh already in flight, trigger dropped")
            return None
        self.cycles_started += 1
        self._current = asyncio.get_running_loop().create_task(self._run_cycle())
        return self._current

    async def refresh(self) -> bool:
        """Run a cycle and wait for it. Returns False if one was already running."""
        task = self.request_refresh()
        if task is None:
            return False
        await asyncio.shield(task)
        return True

    async def wait_idle(self) -> None:
        """Wait for the running cycle, if any, to finish."""
        task = self._current
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def refresh_after_write(self) -> None:
        """Wait for any running cycle, then make sure a fresh one completes."""
        stale = self._current
        if stale is not None and not stale.done():
            await asyncio.shield(stale)
        current = self._current
        if current is not None and current is not stale and not current.done():
            # Started after the write confirmed
            await asyncio.shield(current)
            return
        await self.refresh()

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _subscribe(self) -> None:
        handlers: dict[str, Callable[[LedgerEvent], None]] = {
            Events.TRANSFERRED: self._on_transfer,
            Events.ROYALTIES_DISTRIBUTED: self._on_royalties,
            Events.VESTING_RELEASED: self._on_vesting_released,
            Events.BADGE_CLAIMED: self._on_badge_claimed,
            Events.BADGE_AWARDED: self._on_badge_awarded,
            Events.BADGE_REVOKED: self._on_badge_revoked,
        }
        for event_type, handler in handlers.items():
            self._unsubscribes.append(self.gateway.subscribe(event_type, handler))

    def _record_event(self, message: str, category: LogCategory) -> None:
        if not self._running:
            return
        self.activity.append(message, category)
        self.request_refresh()

    def _on_transfer(self, event: LedgerEvent) -> None:
        d = event.detail
        symbol = self.session.labels.royalty_symbol
        self._record_event(
            f"Transfer: {int(d['amount'])} {symbol} from {d['from']} to {d['to']}",
            LogCategory.TRANSFER,
        )

    def _on_royalties(self, event: LedgerEvent) -> None:
        d = event.detail
        amount = format_amount(to_display(int(d["amount"])))
        symbol = self.session.labels.payment_symbol
        self._record_event(
            f"Royalties distributed: {amount} {symbol} by {d['by']}", LogCategory.ROYALTY
        )

    def _on_vesting_released(self, event: LedgerEvent) -> None:
        d = event.detail
        symbol = self.session.labels.royalty_symbol
        self._record_event(
            f"Vesting released: {int(d['amount'])} {symbol} (tranche {int(d['tranche'])})",
            LogCategory.VESTING,
        )

    def _on_badge_claimed(self, event: LedgerEvent) -> None:
        d = event.detail
        self._record_event(
            f"Badge claimed: type {d['badgeTypeId']} by {d['user']} (token {d['tokenId']})",
            LogCategory.SUCCESS,
        )

    def _on_badge_awarded(self, event: LedgerEvent) -> None:
        d = event.detail
        self._record_event(
            f"Badge awarded: type {d['badgeTypeId']} to {d['user']} (token {d['tokenId']})",
            LogCategory.SUCCESS,
        )

    def _on_badge_revoked(self, event: LedgerEvent) -> None:
        d = event.detail
        self._record_event(
            f"Badge revoked: token {d['tokenId']} from {d['user']}", LogCategory.WARNING
        )

    # =========================================================================
    # REFRESH CYCLE
    # =========================================================================

    async def _run_cycle(self) -> None:
        try:
            snapshot = await self._build_snapshot()
        except SessionLost as e:
            logger.warning("Session lost during refresh: %s", e)
            self._running = False
            if self.on_session_lost is not None:
                self.on_session_lost(e)
            return
        except Exception:
            logger.exception("Refresh cycle failed")
            self.activity.append("Error refreshing ledger state", LogCategory.ERROR)
            return

        if not self._running:
            logger.debug("Scheduler stopped, discarding snapshot")
            return
        self.session.apply(snapshot)

    async def _read(self, label: str, read: Callable[[], Awaitable[T]], default: T) -> T:
        """Run one read; a transient failure degrades to ``default``."""
        try:
            return await read()
        except TransientReadFailure as e:
            logger.warning("Read failed for %s: %s", label, e)
            self.activity.append(f"Could not load {label}", LogCategory.WARNING)
            return default

    async def _build_snapshot(self) -> LedgerSnapshot:
        account = self.session.account
        previous = self.session.snapshot
        zero = LedgerSnapshot()

        price = await self._read("price", self.gateway.get_price_per_token, zero.price)
        token_balance = await self._read(
            "token balance", lambda: self.gateway.get_balance(account), 0
        )
        payment_balance = await self._read(
            "payment balance",
            lambda: self.gateway.get_payment_balance(account),
            zero.payment_balance,
        )
        paused = await self._read("pause state", self.gateway.is_paused, previous.paused)
        vesting = await self._read("vesting", self._load_vesting, None)

        badge_types = await self._read("badge types", self.tracker.load_badge_types, [])
        user_badges = await self._read("user badges", self.tracker.load_user_badges, [])
        progress = await self.tracker.load_progress(badge_types)

        return LedgerSnapshot(
            price=price,
            token_balance=token_balance,
            payment_balance=payment_balance,
            paused=paused,
            vesting=vesting,
            badge_types=tuple(badge_types),
            user_badges=tuple(user_badges),
            progress=progress,
            refreshed_at=now_utc(),
        )

    async def _load_vesting(self) -> VestingSchedule | None:
        raw = await self.gateway.get_vesting_info()
        try:
            return derive_vesting_schedule(raw)
        except ValueError as e:
            logger.warning("Ignoring inconsistent vesting info %s: %s", raw, e)
            return None

    async def read_vesting(self) -> VestingSchedule | None:
        """Read the current vesting schedule without touching the snapshot."""
        return await self._load_vesting()
