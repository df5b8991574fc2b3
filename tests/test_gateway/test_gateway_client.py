"""
Tests for LedgerGateway.

The gateway is exercised over the in-memory fake ledger; these tests check
amount conversion at the boundary, contract routing and event wiring.
"""

from decimal import Decimal

import pytest

from ledger_sync.config import ContractSettings
from ledger_sync.core.events import Events
from ledger_sync.errors import TokenNotFound, TransientReadFailure
from ledger_sync.gateway.client import LedgerAddresses
from tests.constants import ACCOUNT, BADGE, OTHER, PAYMENT, ROYALTY


class TestAddresses:
    @pytest.mark.unit
    def test_from_settings(self):
        addresses = LedgerAddresses.from_settings(ContractSettings())

        assert addresses.royalty_ledger == ROYALTY
        assert addresses.for_role("payment") == PAYMENT
        assert addresses.for_role("badge") == BADGE


class TestReads:
    """Reads convert payment amounts and leave token counts alone."""

    @pytest.mark.asyncio
    async def test_balances(self, gateway):
        assert await gateway.get_balance(ACCOUNT) == 10
        assert await gateway.get_payment_balance(ACCOUNT) == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_price_in_display_and_units(self, gateway, ledger):
        ledger.price_units = 1250

        assert await gateway.get_price_per_token() == Decimal("12.50")
        assert await gateway.get_price_units() == 1250

    @pytest.mark.asyncio
    async def test_allowance_stays_in_ledger_units(self, gateway, ledger):
        ledger.allowances[(ACCOUNT.lower(), ROYALTY.lower())] = 500

        assert await gateway.get_allowance(ACCOUNT, ROYALTY) == 500

    @pytest.mark.asyncio
    async def test_token_labels(self, gateway):
        labels = await gateway.get_token_labels()

        assert labels.royalty_symbol == "RYT"
        assert labels.payment_symbol == "MCK"
        assert labels.badge_name == "Soulbound Badge"

    @pytest.mark.asyncio
    async def test_vesting_info_is_a_nine_tuple(self, gateway, ledger):
        ledger.vesting = (10000, 1, 2, 4, 0, 3, 0, 10000, 4)

        assert await gateway.get_vesting_info() == (10000, 1, 2, 4, 0, 3, 0, 10000, 4)

    @pytest.mark.asyncio
    async def test_malformed_vesting_info_is_a_read_failure(self, gateway, ledger):
        ledger.vesting = (1, 2, 3)

        with pytest.raises(TransientReadFailure, match="expected 9"):
            await gateway.get_vesting_info()

    @pytest.mark.asyncio
    async def test_non_integer_vesting_field_is_a_read_failure(self, gateway, ledger):
        ledger.vesting = (1, 2, 3, 4, 5, 6, 7, 8, "soon")

        with pytest.raises(TransientReadFailure, match="non-integer"):
            await gateway.get_vesting_info()

    @pytest.mark.asyncio
    async def test_badge_reads(self, gateway, ledger):
        type_id = ledger.add_badge_type("Holder", 5, 60)
        token_id = ledger.mint_badge(ACCOUNT, type_id)

        record = await gateway.get_badge_type(type_id)
        assert (record.name, record.min_holding, record.holding_duration) == ("Holder", 5, 60)
        assert record.active is True
        assert await gateway.get_badge_type_count() == 1
        assert await gateway.owner_of_badge(token_id) == ACCOUNT
        assert await gateway.get_badge_type_of(token_id) == type_id

    @pytest.mark.asyncio
    async def test_owner_of_missing_token_raises(self, gateway):
        with pytest.raises(TokenNotFound):
            await gateway.owner_of_badge(1)


class TestWrites:
    """Writes are routed to the right contract and method."""

    @pytest.mark.asyncio
    async def test_write_routing(self, gateway, ledger):
        ledger.accounts = [ACCOUNT]
        await gateway.approve(ROYALTY, 500)
        await gateway.buy(2)
        await gateway.transfer(OTHER, 150)

        assert ledger.sent_methods() == ["approve", "buyFromContract", "transfer"]
        assert ledger.tokens[ACCOUNT.lower()] == 12
        assert ledger.payment[OTHER.lower()] == 150

    @pytest.mark.asyncio
    async def test_receipt_returned(self, gateway):
        receipt = await gateway.pause()

        assert receipt.status == 1
        assert receipt.tx_hash.startswith("0x")


class TestSubscribe:
    """subscribe() resolves the emitting contract from the event type."""

    @pytest.mark.asyncio
    async def test_badge_event_routed_to_badge_ledger(self, gateway, ledger):
        received = []
        unsubscribe = gateway.subscribe(Events.BADGE_CLAIMED, received.append)

        ledger.emit("badge", "BadgeClaimed", {"badgeTypeId": 1, "user": ACCOUNT, "tokenId": 1})
        ledger.emit("royalty", "BadgeClaimed", {"badgeTypeId": 9, "user": ACCOUNT, "tokenId": 9})
        unsubscribe()
        ledger.emit("badge", "BadgeClaimed", {"badgeTypeId": 2, "user": ACCOUNT, "tokenId": 2})

        assert [e.detail["badgeTypeId"] for e in received] == [1]

    @pytest.mark.unit
    def test_unknown_event_type_raises(self, gateway):
        with pytest.raises(KeyError):
            gateway.subscribe("royalty:unknown", lambda e: None)
