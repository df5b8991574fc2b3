"""
Session state.

A :class:`Session` exists between a successful connect and the next
disconnect or account change. Its role flags and labels are fixed at
connect time. The ledger-derived view lives in one frozen
:class:`LedgerSnapshot` that the refresh cycle replaces wholesale, so a
reader always sees values from a single cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal

from ledger_sync.badges import BadgeStatus, BadgeType, UserBadge, badge_status
from ledger_sync.gateway.client import TokenLabels
from ledger_sync.vesting import VestingSchedule


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Everything one refresh cycle read from the ledger.

    Attributes:
        price: Payment coin per royalty token.
        token_balance: Royalty tokens held (whole tokens).
        payment_balance: Payment coin held.
        paused: Royalty ledger pause flag.
        vesting: Current schedule, None when no vesting applies.
        badge_types: All badge types, by ascending id.
        user_badges: Badges owned by the account.
        progress: Badge type id -> accrued seconds.
        refreshed_at: When the cycle that built this snapshot finished.
    """

    price: Decimal = Decimal("0.00")
    token_balance: int = 0
    payment_balance: Decimal = Decimal("0.00")
    paused: bool = False
    vesting: VestingSchedule | None = None
    badge_types: tuple[BadgeType, ...] = ()
    user_badges: tuple[UserBadge, ...] = ()
    progress: dict[int, int] = field(default_factory=dict)
    refreshed_at: datetime | None = None

    @property
    def total_value(self) -> Decimal:
        return self.token_balance * self.price

    def badge_status(self, badge_type_id: int) -> BadgeStatus:
        badge_type = self.badge_type(badge_type_id)
        if badge_type is None:
            raise KeyError(badge_type_id)
        return badge_status(badge_type, self.progress, self.user_badges)

    def badge_type(self, badge_type_id: int) -> BadgeType | None:
        for badge_type in self.badge_types:
            if badge_type.id == badge_type_id:
                return badge_type
        return None

    def owns_token(self, token_id: int) -> bool:
        return any(badge.token_id == token_id for badge in self.user_badges)


@dataclass
class Session:
    """
    One authenticated account and its local view of the ledger.

    Attributes:
        account: Authenticated account address.
        is_owner: Account owns the royalty ledger.
        is_distributor: Account is the configured royalty distributor.
        labels: Contract names and symbols read at connect.
        snapshot: Latest consistent ledger view.
    """

    account: str
    is_owner: bool = False
    is_distributor: bool = False
    labels: TokenLabels = field(default_factory=TokenLabels)
    snapshot: LedgerSnapshot = field(default_factory=LedgerSnapshot)

    @property
    def paused(self) -> bool:
        return self.snapshot.paused

    def apply(self, snapshot: LedgerSnapshot) -> None:
        """Swap in a new snapshot."""
        self.snapshot = snapshot

    def mark_paused(self, paused: bool) -> None:
        """Reflect a confirmed pause or unpause before the next refresh lands."""
        self.snapshot = replace(self.snapshot, paused=paused)


def now_utc() -> datetime:
    return datetime.now(UTC)
