"""
Ledger Event Type Constants

This module names the six ledger events the engine reacts to and maps each
one to the contract that emits it and the event name on that contract.

=============================================================================
NAMING CONVENTION
=============================================================================

Events use "domain:action" format in PAST TENSE, because they record facts
the ledger has already committed:

    Good: "royalty:transferred", "badge:claimed"
    Bad:  "transfer", "claim_badge"

=============================================================================
USAGE
=============================================================================

    from ledger_sync.core.events import Events

    unsubscribe = gateway.subscribe(Events.BADGE_CLAIMED, handle_claim)

=============================================================================
"""

from __future__ import annotations

from typing import Literal

# Which of the three contracts emits an event
ContractRole = Literal["royalty", "payment", "badge"]


class Events:
    """All ledger event types the engine subscribes to."""

    # =========================================================================
    # ROYALTY LEDGER
    # =========================================================================

    TRANSFERRED = "royalty:transferred"
    """
    A royalty token balance moved.

    Detail: {"from": str, "to": str, "amount": int}  # whole tokens
    """

    ROYALTIES_DISTRIBUTED = "royalty:distributed"
    """
    Royalties were paid out to holders.

    Detail: {"by": str, "amount": int}  # payment ledger units (x100)
    """

    VESTING_RELEASED = "vesting:released"
    """
    A vesting tranche was released.

    Detail: {"amount": int, "tranche": int}
    """

    # =========================================================================
    # BADGE LEDGER
    # =========================================================================

    BADGE_CLAIMED = "badge:claimed"
    """
    An account claimed a badge it earned.

    Detail: {"badgeTypeId": int, "user": str, "tokenId": int}
    """

    BADGE_AWARDED = "badge:awarded"
    """
    The badge admin awarded a badge directly.

    Detail: {"badgeTypeId": int, "user": str, "tokenId": int}
    """

    BADGE_REVOKED = "badge:revoked"
    """
    The badge admin revoked a badge.

    Detail: {"tokenId": int, "user": str}
    """


# Event type -> (emitting contract, event name on that contract)
LEDGER_EVENT_SOURCES: dict[str, tuple[ContractRole, str]] = {
    Events.TRANSFERRED: ("royalty", "Transfer"),
    Events.ROYALTIES_DISTRIBUTED: ("royalty", "RoyaltiesDistributed"),
    Events.VESTING_RELEASED: ("royalty", "VestingReleased"),
    Events.BADGE_CLAIMED: ("badge", "BadgeClaimed"),
    Events.BADGE_AWARDED: ("badge", "BadgeAwardedByAdmin"),
    Events.BADGE_REVOKED: ("badge", "BadgeRevoked"),
}


def get_all_event_types() -> list[str]:
    """Every event type the engine subscribes to, in a stable order."""
    return list(LEDGER_EVENT_SOURCES)
