"""
Ledger Event Bus

Every ledger event a transport receives (a token transfer, a royalty
distribution, a badge claim) is emitted on a bus. The reconciliation
scheduler subscribes to the bus; it never talks to the transport's event
feed directly.

=============================================================================
PRINCIPLES
=============================================================================

1. THE BUS RECORDS FACTS
   - Events describe things that already happened on the ledger
   - The bus does not decide outcomes, it delivers them

2. EVENTS ARE FROZEN
   - LedgerEvent is a frozen dataclass
   - Handlers read the decoded arguments; they never write back

3. EMIT RETURNS AFTER DELIVERY
   - The event is numbered and logged before any handler sees it
   - Sync handlers have all run by the time emit() returns

4. COROUTINE HANDLERS ARE SCHEDULED
   - A coroutine handler becomes a task on the running loop
   - wait_for() lets a caller await the next event with a given key

5. ONE BUS PER TRANSPORT
   - Each transport owns its bus, so tearing a session down and dropping
     its subscriptions can never leak handlers into the next session

=============================================================================
USAGE
=============================================================================

    from ledger_sync.core.bus import LedgerEventBus

    bus = LedgerEventBus()

    def on_transfer(event):
        print(event.detail["amount"])

    unsubscribe = bus.on("0xroyalty:Transfer", on_transfer)
    bus.emit("0xroyalty:Transfer", {"from": "0xa", "to": "0xb", "amount": 5})

    # Later: stop listening
    unsubscribe()

=============================================================================
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

SyncHandler = Callable[["LedgerEvent"], None]
AsyncHandler = Callable[["LedgerEvent"], Coroutine[Any, Any, None]]
EventHandler = SyncHandler | AsyncHandler

# Returned by on(); safe to call more than once
Unsubscribe = Callable[[], None]


# =============================================================================
# EVENT METADATA
# =============================================================================


@dataclass(frozen=True)
class EventMetadata:
    """
    Metadata attached to every event.

    Attributes:
        timestamp: Unix epoch milliseconds (UTC) at which the bus received
                   the event. Used for display, NOT for ordering.
        source: Name of the component that emitted this event
                (e.g. "http-poller", "fake-ledger").
        sequence: Monotonically increasing integer. Use this, not the timestamp, to
                  order events on this bus.
    """

    timestamp: int
    source: str
    sequence: int

    @staticmethod
    def create(source: str, sequence: int) -> EventMetadata:
        """Create metadata stamped with the current UTC time."""
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return EventMetadata(timestamp=now_ms, source=source, sequence=sequence)


# =============================================================================
# LEDGER EVENT
# =============================================================================


@dataclass(frozen=True)
class LedgerEvent:
    """
    A single ledger event on the bus.

    Attributes:
        type: The event key. Transports use "<contract address>:<EventName>",
              lowercased address, e.g. "0xabc...:Transfer".
        detail: The decoded event arguments.
        _meta: Event metadata (timestamp, source, sequence).
    """

    type: str
    detail: dict = field(default_factory=dict)
    _meta: EventMetadata | None = field(default=None)

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        if self._meta:
            return (
                f"LedgerEvent(type='{self.type}', "
                f"source='{self._meta.source}', "
                f"seq={self._meta.sequence})"
            )
        return f"LedgerEvent(type='{self.type}')"

    @property
    def meta(self) -> EventMetadata | None:
        """Public accessor for event metadata."""
        return self._meta


def event_key(address: str, event_name: str) -> str:
    """Build the bus key for a contract event."""
    return f"{address.lower()}:{event_name}"


# =============================================================================
# LEDGER EVENT BUS
# =============================================================================


class LedgerEventBus:
    """
    Pub/sub for ledger events.

    Thread Safety:
    - NOT thread-safe. The engine runs on a single asyncio event loop.

    Key Methods:
    - emit(): Record an event and notify handlers
    - on(): Subscribe to an event key (returns unsubscribe function)
    - wait_for(): Async wait for an event (for coordination)
    - get_event_log(): Recent event history (bounded)
    """

    def __init__(self, history: int = 1000) -> None:
        # event key -> handlers, in registration order
        self._handlers: dict[str, list[EventHandler]] = {}

        # Bounded history for debugging
        self._event_log: deque[LedgerEvent] = deque(maxlen=history)

        self._sequence: int = 0

        # event key -> futures waiting for that event
        self._wait_promises: dict[str, list[asyncio.Future[LedgerEvent]]] = {}

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "transport"
    ) -> LedgerEvent:
        """
        Emit an event to the bus.

        When this returns, the event has a sequence number, is in the log,
        every sync handler has run and every async handler is scheduled.

        Args:
            event_type: Event key, see :func:`event_key`.
            detail: Decoded event arguments.
            source: Which component is emitting.

        Returns:
            The committed LedgerEvent.
        """
        self._sequence += 1
        event = LedgerEvent(
            type=event_type,
            detail=detail if detail is not None else {},
            _meta=EventMetadata.create(source, self._sequence),
        )
        self._event_log.append(event)
        logger.debug("EMIT [%d]: %s from %s", self._sequence, event_type, source)

        self._notify_handlers(event)
        self._resolve_wait_promises(event)
        return event

    def _notify_handlers(self, event: LedgerEvent) -> None:
        """
        Notify all handlers subscribed to this event key.

        Handler errors are logged and do not affect other handlers.
        """
        # Copy: a handler may unsubscribe itself while we iterate
        for handler in list(self._handlers.get(event.type, ())):
            try:
                if inspect.iscoroutinefunction(handler):
                    self._schedule_async_handler(handler, event)
                else:
                    handler(event)
            except Exception as e:
                logger.error(f"Handler error for '{event.type}': {e}", exc_info=True)

    def _schedule_async_handler(self, handler: AsyncHandler, event: LedgerEvent) -> None:
        """Schedule an async handler on the running loop, or run it inline."""
        try:
            loop = asyncio.get_running_loop()
            loop.create_task(handler(event))
        except RuntimeError:
            # No running event loop (scripts, sync tests)
            asyncio.run(handler(event))

    def _resolve_wait_promises(self, event: LedgerEvent) -> None:
        """Resolve any futures waiting for this event key."""
        for future in self._wait_promises.pop(event.type, ()):
            if not future.done():
                future.set_result(event)

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe to an event key.

        Args:
            event_type: The event key to listen for.
            handler: Sync or async callable receiving the LedgerEvent.

        Returns:
            An unsubscribe function. Calling it twice is harmless.
        """
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            """Remove this handler from the subscription list."""
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def wait_for(self, event_type: str, timeout: float | None = None) -> LedgerEvent:
        """
        Wait for the next event with this key.

        Raises:
            asyncio.TimeoutError: If timeout is reached before the event.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[LedgerEvent] = loop.create_future()
        self._wait_promises.setdefault(event_type, []).append(future)
        return await asyncio.wait_for(future, timeout=timeout)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def get_event_log(self, limit: int | None = None) -> list[LedgerEvent]:
        """Return logged events oldest first, optionally only the last N."""
        if limit is not None:
            return list(self._event_log)[-limit:]
        return list(self._event_log)

    def get_handler_count(self, event_type: str | None = None) -> int:
        """Number of handlers for one key, or across all keys when None."""
        if event_type is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(event_type, ()))
