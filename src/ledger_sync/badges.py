"""
Badge Eligibility Tracker

Soulbound badges are earned by holding at least ``min_holding`` royalty
tokens for ``holding_duration`` seconds. The badge ledger accrues held time
only when asked to (``updateHoldingProgress``), so the tracker nudges it once
per refresh for every active type the account currently qualifies for, then
reads the accrued seconds back.

=============================================================================
REFRESH STEPS
=============================================================================

1. load_badge_types()  - types 1..badgeTypeCount
2. load_user_badges()  - scan token ids 1, 2, 3 ... until TokenNotFound
3. load_progress()     - per active type: balance check, accrue, read back
4. badge_status()      - pure classification over the loaded data

Token ids are assumed dense. A burned id in the middle of the range stops
the scan early and hides later badges; there is no ledger-side enumeration
to do better.

=============================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ledger_sync.errors import TokenNotFound, TransientReadFailure, WriteRejected
from ledger_sync.gateway.client import LedgerGateway

logger = logging.getLogger(__name__)


class BadgeStatus(Enum):
    OWNED = "owned"
    CLAIMABLE = "claimable"
    ACCRUING = "accruing"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class BadgeType:
    """
    An achievement definition.

    Attributes:
        id: 1-based, dense.
        name: Display name.
        min_holding: Whole royalty tokens that must be held.
        holding_duration: Seconds the holding must be kept.
        active: Inactive types cannot be claimed and accrue nothing.
    """

    id: int
    name: str
    min_holding: int
    holding_duration: int
    active: bool


@dataclass(frozen=True)
class UserBadge:
    token_id: int
    badge_type_id: int


def owns_badge_type(badges: tuple[UserBadge, ...] | list[UserBadge], badge_type_id: int) -> bool:
    return any(badge.badge_type_id == badge_type_id for badge in badges)


def badge_status(
    badge_type: BadgeType,
    progress: dict[int, int],
    user_badges: tuple[UserBadge, ...] | list[UserBadge],
) -> BadgeStatus:
    """Classify one badge type for the account."""
    if owns_badge_type(user_badges, badge_type.id):
        return BadgeStatus.OWNED
    if not badge_type.active:
        return BadgeStatus.INACTIVE
    if progress.get(badge_type.id, 0) >= badge_type.holding_duration:
        return BadgeStatus.CLAIMABLE
    return BadgeStatus.ACCRUING


def progress_fraction(badge_type: BadgeType, progress: dict[int, int]) -> float:
    """Accrued share of the holding duration, clamped to [0, 1]."""
    if badge_type.holding_duration <= 0:
        return 1.0
    held = progress.get(badge_type.id, 0)
    return max(0.0, min(1.0, held / badge_type.holding_duration))


class BadgeEligibilityTracker:
    """
    Loads badge data for one account through the gateway.

    The tracker keeps no state between cycles; the scheduler stores what it
    returns in the session snapshot.
    """

    def __init__(self, gateway: LedgerGateway, account: str) -> None:
        self.gateway = gateway
        self.account = account

    async def load_badge_types(self) -> list[BadgeType]:
        count = await self.gateway.get_badge_type_count()
        badge_types: list[BadgeType] = []
        for badge_type_id in range(1, count + 1):
            record = await self.gateway.get_badge_type(badge_type_id)
            badge_types.append(
                BadgeType(
                    id=record.id,
                    name=record.name,
                    min_holding=record.min_holding,
                    holding_duration=record.holding_duration,
                    active=record.active,
                )
            )
        return badge_types

    async def load_user_badges(self) -> list[UserBadge]:
        """Badges owned by the account, found by scanning ids until the first gap."""
        account = self.account.lower()
        owned: list[UserBadge] = []
        token_id = 1
        while True:
            try:
                owner = await self.gateway.owner_of_badge(token_id)
            except TokenNotFound:
                break
            if owner.lower() == account:
                badge_type_id = await self.gateway.get_badge_type_of(token_id)
                owned.append(UserBadge(token_id=token_id, badge_type_id=badge_type_id))
            token_id += 1
        return owned

    async def load_progress(self, badge_types: list[BadgeType]) -> dict[int, int]:
        """
        Accrued seconds per badge type.

        A failure for one type zeroes that type only.
        """
        progress: dict[int, int] = {}
        for badge_type in badge_types:
            if not badge_type.active:
                progress[badge_type.id] = 0
                continue
            try:
                progress[badge_type.id] = await self._progress_for(badge_type)
            except (TransientReadFailure, WriteRejected) as e:
                logger.warning("Badge progress unavailable for type %d: %s", badge_type.id, e)
                progress[badge_type.id] = 0
        return progress

    async def _progress_for(self, badge_type: BadgeType) -> int:
        balance = await self.gateway.get_balance(self.account)
        if balance < badge_type.min_holding:
            return 0
        await self.gateway.update_holding_progress(badge_type.id, self.account)
        return await self.gateway.get_seconds_held(badge_type.id, self.account)


def is_claimable(
    badge_type: BadgeType,
    progress: dict[int, int],
    user_badges: tuple[UserBadge, ...] | list[UserBadge],
) -> bool:
    return badge_status(badge_type, progress, user_badges) is BadgeStatus.CLAIMABLE
