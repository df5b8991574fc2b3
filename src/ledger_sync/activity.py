"""
Activity log and transient feedback.

The activity log is an append-only, newest-first record of what happened in
the session: ledger events, write outcomes, absorbed read failures. It keeps
only the most recent ``capacity`` entries.

The feedback slot holds at most one short notice for the user. Showing a new
notice replaces the old one and restarts its clear timer.

Neither structure feeds back into state decisions; they are side outputs.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

logger = logging.getLogger(__name__)


class LogCategory(Enum):
    """Kind of activity entry, used by renderers to pick an icon or colour."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    TRANSFER = "transfer"
    ROYALTY = "royalty"
    VESTING = "vesting"


class FeedbackKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class LogEntry:
    """One immutable activity log line."""

    id: int
    timestamp: datetime
    message: str
    category: LogCategory


@dataclass(frozen=True)
class Feedback:
    text: str
    kind: FeedbackKind


class ActivityLog:
    """
    Bounded newest-first log.

    Example:
        log = ActivityLog(capacity=20)
        log.append("Bought 5 RYT", LogCategory.SUCCESS)
        latest = log.entries()[0]
    """

    def __init__(self, capacity: int = 20) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def append(self, message: str, category: LogCategory | str = LogCategory.INFO) -> LogEntry:
        """Record a message now; the oldest entry falls off past capacity."""
        entry = LogEntry(
            id=next(self._ids),
            timestamp=datetime.now(UTC),
            message=message,
            category=LogCategory(category),
        )
        self._entries.appendleft(entry)
        return entry

    def entries(self) -> list[LogEntry]:
        """Entries newest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FeedbackSlot:
    """
    Single transient notice that clears itself after ``delay`` seconds.

    Outside a running event loop the notice is kept until replaced or
    cleared explicitly.
    """

    def __init__(self, delay: float = 3.0) -> None:
        self.delay = delay
        self._current: Feedback | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def current(self) -> Feedback | None:
        return self._current

    def show(self, text: str, kind: FeedbackKind | str = FeedbackKind.INFO) -> Feedback:
        self._cancel_timer()
        self._current = Feedback(text=text, kind=FeedbackKind(kind))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, feedback will not auto-clear")
        else:
            self._timer = loop.call_later(self.delay, self.clear)
        return self._current

    def clear(self) -> None:
        self._cancel_timer()
        self._current = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
