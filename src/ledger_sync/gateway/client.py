"""
Typed gateway over the three ledger contracts.

The gateway is pure request/response: it holds contract addresses and a
transport, never balances or badges. Every read reflects the ledger at call
time; every write returns only after the ledger confirmed it.

Amounts are converted here and nowhere else:

    - payment-coin values (balances, allowances, price, royalty amounts,
      transfers) leave the ledger as integers x100 and are exposed as
      ``Decimal`` display values, except allowance and approval which stay
      in ledger units because the orchestrator compares them exactly;
    - royalty token quantities are whole tokens and pass through as ``int``.

Example:
    gateway = LedgerGateway(transport, LedgerAddresses.from_settings(config.contracts))
    price = await gateway.get_price_per_token()          # Decimal("12.50")
    await gateway.approve(gateway.addresses.royalty_ledger, 500)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_sync.config import ContractSettings
from ledger_sync.core.bus import EventHandler, Unsubscribe
from ledger_sync.core.events import LEDGER_EVENT_SOURCES
from ledger_sync.errors import LedgerOperationContext, TransientReadFailure
from ledger_sync.gateway.transport import LedgerTransport, TxReceipt
from ledger_sync.units import to_display

# Raw vesting tuple as returned by getVestingInfo():
# (total, start, duration, tranches, current, tranche duration,
#  released, remaining, next release)
RawVestingInfo = tuple[int, int, int, int, int, int, int, int, int]


@dataclass(frozen=True)
class LedgerAddresses:
    """Contract references plus the distinguished distributor identity."""

    royalty_ledger: str
    payment_ledger: str
    badge_ledger: str
    distributor: str

    @classmethod
    def from_settings(cls, settings: ContractSettings) -> LedgerAddresses:
        return cls(
            royalty_ledger=settings.royalty_ledger,
            payment_ledger=settings.payment_ledger,
            badge_ledger=settings.badge_ledger,
            distributor=settings.distributor,
        )

    def for_role(self, role: str) -> str:
        return {
            "royalty": self.royalty_ledger,
            "payment": self.payment_ledger,
            "badge": self.badge_ledger,
        }[role]


@dataclass(frozen=True)
class TokenLabels:
    """Names and symbols of the three contracts, read once per session."""

    royalty_name: str = ""
    royalty_symbol: str = ""
    payment_name: str = ""
    payment_symbol: str = ""
    badge_name: str = ""
    badge_symbol: str = ""


@dataclass(frozen=True)
class BadgeTypeRecord:
    """A badge type exactly as stored on the badge ledger."""

    id: int
    name: str
    min_holding: int
    holding_duration: int
    active: bool


def _malformed_vesting(details: str, cause: Exception | None = None) -> TransientReadFailure:
    return TransientReadFailure(
        context=LedgerOperationContext(operation="royalty.getVestingInfo", details=details),
        cause=cause,
    )


class LedgerGateway:
    """Typed read/write operations on the royalty, payment and badge ledgers."""

    def __init__(self, transport: LedgerTransport, addresses: LedgerAddresses) -> None:
        self.transport = transport
        self.addresses = addresses

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _royalty(self, method: str, *args: Any) -> Any:
        return await self.transport.call(self.addresses.royalty_ledger, method, *args)

    async def _payment(self, method: str, *args: Any) -> Any:
        return await self.transport.call(self.addresses.payment_ledger, method, *args)

    async def _badge(self, method: str, *args: Any) -> Any:
        return await self.transport.call(self.addresses.badge_ledger, method, *args)

    # -------------------------------------------------------------------------
    # Reads: royalty ledger
    # -------------------------------------------------------------------------

    async def get_balance(self, account: str) -> int:
        """Royalty tokens held by ``account`` (whole tokens)."""
        return int(await self._royalty("balanceOf", account))

    async def get_price_per_token(self) -> Decimal:
        """Price of one royalty token in payment coin."""
        return to_display(int(await self._royalty("viewPricePerToken")))

    async def get_price_units(self) -> int:
        """Price of one royalty token in payment ledger units."""
        return int(await self._royalty("viewPricePerToken"))

    async def is_paused(self) -> bool:
        return bool(await self._royalty("paused"))

    async def get_owner(self) -> str:
        return str(await self._royalty("owner"))

    async def get_vesting_info(self) -> RawVestingInfo:
        """
        Read the raw vesting tuple.

        Raises:
            TransientReadFailure: If the ledger answers with something other
                than nine integers.
        """
        raw = await self._royalty("getVestingInfo")
        try:
            values = tuple(int(v) for v in raw)
        except (TypeError, ValueError) as e:
            raise _malformed_vesting(f"non-integer vesting fields: {raw!r}", e) from e
        if len(values) != 9:
            raise _malformed_vesting(f"{len(values)} vesting fields, expected 9")
        return values  # type: ignore[return-value]

    async def get_token_labels(self) -> TokenLabels:
        """Read name() and symbol() of every contract."""
        return TokenLabels(
            royalty_name=str(await self._royalty("name")),
            royalty_symbol=str(await self._royalty("symbol")),
            payment_name=str(await self._payment("name")),
            payment_symbol=str(await self._payment("symbol")),
            badge_name=str(await self._badge("name")),
            badge_symbol=str(await self._badge("symbol")),
        )

    # -------------------------------------------------------------------------
    # Reads: payment ledger
    # -------------------------------------------------------------------------

    async def get_payment_balance(self, account: str) -> Decimal:
        return to_display(int(await self._payment("balanceOf", account)))

    async def get_allowance(self, owner: str, spender: str) -> int:
        """Allowance granted by ``owner`` to ``spender``, in ledger units."""
        return int(await self._payment("allowance", owner, spender))

    # -------------------------------------------------------------------------
    # Reads: badge ledger
    # -------------------------------------------------------------------------

    async def get_badge_type_count(self) -> int:
        return int(await self._badge("badgeTypeCount"))

    async def get_badge_type(self, badge_type_id: int) -> BadgeTypeRecord:
        raw = await self._badge("getBadgeType", badge_type_id)
        return BadgeTypeRecord(
            id=badge_type_id,
            name=str(raw["name"]),
            min_holding=int(raw["minHolding"]),
            holding_duration=int(raw["holdingDuration"]),
            active=bool(raw["active"]),
        )

    async def owner_of_badge(self, token_id: int) -> str:
        """Owner of a badge token. Raises TokenNotFound past the last id."""
        return str(await self._badge("ownerOf", token_id))

    async def get_badge_type_of(self, token_id: int) -> int:
        return int(await self._badge("tokenIdToBadgeType", token_id))

    async def get_seconds_held(self, badge_type_id: int, account: str) -> int:
        return int(await self._badge("secondsHeldSoFar", badge_type_id, account))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def approve(self, spender: str, units: int) -> TxReceipt:
        return await self.transport.send(self.addresses.payment_ledger, "approve", spender, units)

    async def transfer(self, to: str, units: int) -> TxReceipt:
        return await self.transport.send(self.addresses.payment_ledger, "transfer", to, units)

    async def buy(self, amount: int) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "buyFromContract", amount)

    async def sell(self, amount: int) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "sellToContract", amount)

    async def distribute_royalties(self, units: int) -> TxReceipt:
        return await self.transport.send(
            self.addresses.royalty_ledger, "distributeRoyalties", units
        )

    async def update_price(self, units: int) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "updatePrice", units)

    async def mint(self, to: str, amount: int) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "mint", to, amount)

    async def pause(self) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "pause")

    async def unpause(self) -> TxReceipt:
        return await self.transport.send(self.addresses.royalty_ledger, "unpause")

    async def release_vesting(self) -> TxReceipt:
        """Release the due tranche. Raises NothingToRelease when none is due."""
        return await self.transport.send(self.addresses.royalty_ledger, "releaseVesting")

    async def create_badge_type(self, name: str, min_holding: int, duration: int) -> TxReceipt:
        return await self.transport.send(
            self.addresses.badge_ledger, "createBadgeType", name, min_holding, duration
        )

    async def claim_badge(self, badge_type_id: int) -> TxReceipt:
        """Claim an earned badge. Raises NotEligible when the ledger refuses."""
        return await self.transport.send(self.addresses.badge_ledger, "claimBadge", badge_type_id)

    async def award_badge(self, badge_type_id: int, to: str) -> TxReceipt:
        return await self.transport.send(
            self.addresses.badge_ledger, "awardBadgeByAdmin", badge_type_id, to
        )

    async def revoke_badge(self, token_id: int) -> TxReceipt:
        return await self.transport.send(self.addresses.badge_ledger, "revokeBadge", token_id)

    async def burn_badge(self, token_id: int) -> TxReceipt:
        return await self.transport.send(self.addresses.badge_ledger, "burn", token_id)

    async def update_holding_progress(self, badge_type_id: int, account: str) -> TxReceipt:
        """Ask the badge ledger to accrue held time for ``account``."""
        return await self.transport.send(
            self.addresses.badge_ledger, "updateHoldingProgress", badge_type_id, account
        )

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def subscribe(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Subscribe to one of :class:`~ledger_sync.core.events.Events`."""
        role, event_name = LEDGER_EVENT_SOURCES[event_type]
        return self.transport.subscribe(self.addresses.for_role(role), event_name, handler)
