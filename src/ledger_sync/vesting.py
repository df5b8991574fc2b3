"""
Vesting schedule derivation and countdown formatting.

The royalty ledger reports vesting as a raw 9-tuple; this module turns it
into a :class:`VestingSchedule` with the display fields the session shows
(tranche label, released fraction, time to next release).

All times are Unix seconds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from ledger_sync.gateway.client import RawVestingInfo

_DAY = 86400
_HOUR = 3600
_MINUTE = 60


@dataclass(frozen=True)
class VestingSchedule:
    """
    A tranche-based release schedule.

    Attributes:
        total_amount: Tokens under vesting (whole tokens).
        start_time: Schedule start.
        total_duration: Full vesting period in seconds.
        total_tranches: Number of equal releases, at least 1.
        current_tranche: Tranches released so far.
        tranche_duration: Seconds between releases.
        already_released: Tokens released so far.
        remaining_amount: Tokens still locked. Always 0 once complete.
        next_release_time: When the next tranche becomes releasable.
    """

    total_amount: int
    start_time: int
    total_duration: int
    total_tranches: int
    current_tranche: int
    tranche_duration: int
    already_released: int
    remaining_amount: int
    next_release_time: int

    @property
    def is_complete(self) -> bool:
        return self.current_tranche >= self.total_tranches

    @property
    def tranche_label(self) -> str:
        return f"{self.current_tranche}/{self.total_tranches}"

    @property
    def tranche_fraction(self) -> float:
        return self.current_tranche / self.total_tranches

    @property
    def released_fraction(self) -> float:
        return self.already_released / self.total_amount

    def time_remaining(self, now: float | None = None) -> int:
        """Seconds until the next release, never negative; 0 when complete."""
        if self.is_complete:
            return 0
        now = time.time() if now is None else now
        return max(0, int(self.next_release_time - now))

    def can_release(self, now: float | None = None) -> bool:
        if self.is_complete:
            return False
        now = time.time() if now is None else now
        return now >= self.next_release_time


def derive_vesting_schedule(raw: RawVestingInfo) -> VestingSchedule | None:
    """
    Build a schedule from the ledger's vesting tuple.

    Returns:
        The schedule, or None when no vesting applies (total amount 0).

    Raises:
        ValueError: If the tuple is internally inconsistent.
    """
    (
        total,
        start,
        duration,
        tranches,
        current,
        tranche_duration,
        released,
        _remaining,
        next_release,
    ) = raw
    if total == 0:
        return None
    if tranches < 1:
        raise ValueError(f"vesting must have at least one tranche, got {tranches}")
    if not 0 <= current <= tranches:
        raise ValueError(f"current tranche {current} outside 0..{tranches}")
    if not 0 <= released <= total:
        raise ValueError(f"released amount {released} outside 0..{total}")

    complete = current == tranches
    return VestingSchedule(
        total_amount=total,
        start_time=start,
        total_duration=duration,
        total_tranches=tranches,
        current_tranche=current,
        tranche_duration=tranche_duration,
        already_released=released,
        # Derived locally; the ledger's figure can lag a final release
        remaining_amount=0 if complete else total - released,
        next_release_time=next_release,
    )


def format_duration(seconds: float) -> str:
    """
    Render a duration as ``"1d 2h 3m 4s"``.

    Leading zero units are omitted; seconds are always shown.

        >>> format_duration(93784)
        '1d 2h 3m 4s'
        >>> format_duration(59)
        '59s'
    """
    remaining = max(0, int(seconds))
    days, remaining = divmod(remaining, _DAY)
    hours, remaining = divmod(remaining, _HOUR)
    minutes, secs = divmod(remaining, _MINUTE)

    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def format_time_remaining(target: float, now: float | None = None) -> str:
    """Countdown to ``target``, or ``"ready"`` once it has passed."""
    now = time.time() if now is None else now
    delta = int(target - now)
    if delta <= 0:
        return "ready"
    return format_duration(delta)
