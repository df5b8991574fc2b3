"""
Transaction Orchestrator

Runs user-initiated writes one at a time. Every named action (buy, sell,
claim a badge, release vesting ...) is described as a :class:`WriteAction`
and executed by the same routine:

    1. refuse if another write is in progress
    2. local preflight (role, pause flag, amounts, eligibility)
    3. for spends: read the allowance and, when it is short, approve
       exactly the required amount and wait for that approval to confirm
    4. submit the primary write and wait for confirmation
    5. success: log, feedback, local effects, refresh, clear the input
       failure: error log and feedback, input left alone
    6. release the busy flag, whatever happened

Writes that can be shown to fail locally are never submitted. A confirmed
approval is never rolled back if the primary write then fails.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from ledger_sync.activity import ActivityLog, FeedbackKind, FeedbackSlot, LogCategory
from ledger_sync.badges import BadgeStatus
from ledger_sync.errors import (
    LedgerOperationContext,
    NotEligible,
    NothingToRelease,
    SessionLost,
    WriteRejected,
)
from ledger_sync.gateway.client import LedgerGateway
from ledger_sync.gateway.transport import TxReceipt
from ledger_sync.scheduler import ReconciliationScheduler
from ledger_sync.session import Session
from ledger_sync.units import format_amount, to_display, to_ledger_units
from ledger_sync.vesting import format_time_remaining

logger = logging.getLogger(__name__)

Amount = Decimal | str | int


class WriteState(Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingWrite:
    """Progress of the most recent orchestrated write."""

    action: str = ""
    state: WriteState = WriteState.IDLE
    approved_units: int = 0
    receipt: TxReceipt | None = None
    error: Exception | None = None
    # Outcome text shown to the user once the write settles
    message: str = ""


@dataclass
class WriteAction:
    """
    One orchestrated write.

    Attributes:
        name: Stable action id, used in logs and error context.
        submit: Performs the primary write and returns its receipt.
        success_message: Activity entry and feedback text on success.
        failure_message: Activity entry and feedback text on failure.
        category: Log category of the success entry.
        preflight: Local checks. Raises WriteRejected to refuse the write;
                   for spends returns the required payment ledger units.
        approve_message: Builds the log text for an approval of N units.
        apply_locally: Local effect of a confirmed write, applied before
                       the follow-up refresh.
        on_success: Caller hook, typically clears the input form.
    """

    name: str
    submit: Callable[[], Awaitable[TxReceipt]]
    success_message: str
    failure_message: str
    category: LogCategory = LogCategory.SUCCESS
    preflight: Callable[[], Awaitable[int | None]] | None = None
    approve_message: Callable[[int], str] | None = None
    apply_locally: Callable[[], None] | None = None
    on_success: Callable[[], None] | None = field(default=None, repr=False)


def _refuse(action: str, reason: str, error: type[WriteRejected] = WriteRejected) -> WriteRejected:
    return error(context=LedgerOperationContext(operation=action, details=reason))


class TransactionOrchestrator:
    """Serializes writes for one session."""

    def __init__(
        self,
        gateway: LedgerGateway,
        session: Session,
        activity: ActivityLog,
        feedback: FeedbackSlot,
        scheduler: ReconciliationScheduler | None = None,
        *,
        on_session_lost: Callable[[SessionLost], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.activity = activity
        self.feedback = feedback
        self.scheduler = scheduler
        self.on_session_lost = on_session_lost
        self.clock = clock
        self.pending = PendingWrite()
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self, action: WriteAction) -> bool:
        """
        Run one write end to end.

        Returns:
            True if the primary write was confirmed.
        """
        if self._busy:
            logger.info("Write %s refused: another write is in progress", action.name)
            self.feedback.show("Another transaction is in progress", FeedbackKind.WARNING)
            return False

        self._busy = True
        self.pending = PendingWrite(action=action.name)
        try:
            required = await action.preflight() if action.preflight else None
            if required:
                await self._ensure_allowance(action, required)

            self.pending.state = WriteState.SUBMITTED
            self.pending.receipt = await action.submit()
            self.pending.state = WriteState.CONFIRMED
        except SessionLost as e:
            self._fail(action, e)
            if self.on_session_lost is not None:
                self.on_session_lost(e)
            return False
        except WriteRejected as e:
            self._fail(action, e, e.context.details)
            return False
        except Exception as e:
            logger.exception("Unexpected error in write %s", action.name)
            self._fail(action, e)
            return False
        else:
            await self._succeed(action)
            return True
        finally:
            self._busy = False

    async def _ensure_allowance(self, action: WriteAction, required: int) -> None:
        """Approve exactly ``required`` units when the current allowance is short."""
        spender = self.gateway.addresses.royalty_ledger
        allowance = await self.gateway.get_allowance(self.session.account, spender)
        if allowance >= required:
            return
        await self.gateway.approve(spender, required)
        self.pending.approved_units = required
        if action.approve_message is not None:
            self.activity.append(action.approve_message(required), LogCategory.INFO)

    async def _succeed(self, action: WriteAction) -> None:
        logger.info("Write %s confirmed", action.name)
        self.pending.message = action.success_message
        self.activity.append(action.success_message, action.category)
        self.feedback.show(action.success_message, FeedbackKind.SUCCESS)
        if action.apply_locally is not None:
            action.apply_locally()
        if self.scheduler is not None:
            await self.scheduler.refresh_after_write()
        if action.on_success is not None:
            action.on_success()

    def _fail(self, action: WriteAction, error: Exception, reason: str | None = None) -> None:
        self.pending.state = WriteState.FAILED
        self.pending.error = error
        logger.warning("Write %s failed: %s", action.name, error)
        message = f"{action.failure_message}: {reason}" if reason else action.failure_message
        self.pending.message = message
        self.activity.append(message, LogCategory.ERROR)
        self.feedback.show(message, FeedbackKind.ERROR)

    # =========================================================================
    # LOCAL CHECKS
    # =========================================================================

    def _require_owner(self, action: str) -> None:
        if not self.session.is_owner:
            raise _refuse(action, "owner role required")

    def _require_unpaused(self, action: str) -> None:
        if self.session.paused:
            raise _refuse(action, "ledger is paused")

    @staticmethod
    def _whole_tokens(action: str, amount: int) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise _refuse(action, f"amount must be a positive whole number, got {amount!r}")
        return amount

    @staticmethod
    def _payment_units(action: str, amount: Amount) -> int:
        try:
            units = to_ledger_units(amount)
        except ValueError as e:
            raise _refuse(action, str(e)) from e
        if units <= 0:
            raise _refuse(action, f"amount must be positive, got {amount!r}")
        return units

    @staticmethod
    def _require_address(action: str, address: str) -> None:
        if not address or not address.strip():
            raise _refuse(action, "recipient address required")

    # =========================================================================
    # ROYALTY LEDGER ACTIONS
    # =========================================================================

    async def buy_tokens(self, amount: int, on_success: Callable[[], None] | None = None) -> bool:
        labels = self.session.labels

        async def preflight() -> int:
            self._require_unpaused("buy_tokens")
            tokens = self._whole_tokens("buy_tokens", amount)
            return tokens * await self.gateway.get_price_units()

        return await self.execute(
            WriteAction(
                name="buy_tokens",
                submit=lambda: self.gateway.buy(amount),
                success_message=f"Bought {amount} {labels.royalty_symbol}",
                failure_message="Error buying tokens",
                preflight=preflight,
                approve_message=lambda units: (
                    f"Approved {format_amount(to_display(units))} "
                    f"{labels.payment_symbol} for purchase"
                ),
                on_success=on_success,
            )
        )

    async def sell_tokens(self, amount: int, on_success: Callable[[], None] | None = None) -> bool:
        async def preflight() -> None:
            self._require_unpaused("sell_tokens")
            tokens = self._whole_tokens("sell_tokens", amount)
            if tokens > self.session.snapshot.token_balance:
                raise _refuse(
                    "sell_tokens",
                    f"cannot sell {tokens}, balance is {self.session.snapshot.token_balance}",
                )

        return await self.execute(
            WriteAction(
                name="sell_tokens",
                submit=lambda: self.gateway.sell(amount),
                success_message=f"Sold {amount} {self.session.labels.royalty_symbol}",
                failure_message="Error selling tokens",
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def distribute_royalties(
        self, amount: Amount, on_success: Callable[[], None] | None = None
    ) -> bool:
        symbol = self.session.labels.payment_symbol

        async def preflight() -> int:
            if not self.session.is_distributor:
                raise _refuse("distribute_royalties", "royalty distributor role required")
            return self._payment_units("distribute_royalties", amount)

        return await self.execute(
            WriteAction(
                name="distribute_royalties",
                submit=lambda: self.gateway.distribute_royalties(to_ledger_units(amount)),
                success_message=f"Royalties added: {amount} {symbol}",
                failure_message="Error distributing royalties",
                category=LogCategory.ROYALTY,
                preflight=preflight,
                approve_message=lambda units: (
                    f"Approved {format_amount(to_display(units))} {symbol} for royalties"
                ),
                on_success=on_success,
            )
        )

    async def update_price(
        self, price: Amount, on_success: Callable[[], None] | None = None
    ) -> bool:
        async def preflight() -> None:
            self._require_owner("update_price")
            self._payment_units("update_price", price)

        return await self.execute(
            WriteAction(
                name="update_price",
                submit=lambda: self.gateway.update_price(to_ledger_units(price)),
                success_message=f"Price updated to {price} {self.session.labels.payment_symbol}",
                failure_message="Error updating price",
                category=LogCategory.INFO,
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def mint_tokens(
        self, to: str, amount: int, on_success: Callable[[], None] | None = None
    ) -> bool:
        async def preflight() -> None:
            self._require_owner("mint_tokens")
            self._require_address("mint_tokens", to)
            self._whole_tokens("mint_tokens", amount)

        return await self.execute(
            WriteAction(
                name="mint_tokens",
                submit=lambda: self.gateway.mint(to, amount),
                success_message=f"Minted {amount} {self.session.labels.royalty_symbol} to {to}",
                failure_message="Error minting tokens",
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def pause_ledger(self) -> bool:
        async def preflight() -> None:
            self._require_owner("pause_ledger")

        return await self.execute(
            WriteAction(
                name="pause_ledger",
                submit=self.gateway.pause,
                success_message="Ledger paused",
                failure_message="Error pausing ledger",
                category=LogCategory.WARNING,
                preflight=preflight,
                apply_locally=lambda: self.session.mark_paused(True),
            )
        )

    async def unpause_ledger(self) -> bool:
        async def preflight() -> None:
            self._require_owner("unpause_ledger")

        return await self.execute(
            WriteAction(
                name="unpause_ledger",
                submit=self.gateway.unpause,
                success_message="Ledger resumed",
                failure_message="Error resuming ledger",
                preflight=preflight,
                apply_locally=lambda: self.session.mark_paused(False),
            )
        )

    async def release_vesting(self) -> bool:
        async def preflight() -> None:
            if self.scheduler is not None:
                vesting = await self.scheduler.read_vesting()
            else:
                vesting = self.session.snapshot.vesting
            if vesting is None:
                raise _refuse("release_vesting", "no vesting schedule", NothingToRelease)
            if vesting.is_complete:
                raise _refuse("release_vesting", "vesting is complete", NothingToRelease)
            now = self.clock()
            if not vesting.can_release(now):
                wait = format_time_remaining(vesting.next_release_time, now)
                raise _refuse("release_vesting", f"next release in {wait}", NothingToRelease)

        return await self.execute(
            WriteAction(
                name="release_vesting",
                submit=self.gateway.release_vesting,
                success_message="Vesting released",
                failure_message="Error releasing vesting",
                category=LogCategory.VESTING,
                preflight=preflight,
            )
        )

    # =========================================================================
    # PAYMENT LEDGER ACTIONS
    # =========================================================================

    async def transfer_payment(
        self, to: str, amount: Amount, on_success: Callable[[], None] | None = None
    ) -> bool:
        async def preflight() -> None:
            self._require_address("transfer_payment", to)
            self._payment_units("transfer_payment", amount)

        return await self.execute(
            WriteAction(
                name="transfer_payment",
                submit=lambda: self.gateway.transfer(to, to_ledger_units(amount)),
                success_message=(
                    f"Transferred {amount} {self.session.labels.payment_symbol} to {to}"
                ),
                failure_message=f"Error transferring to {to}",
                category=LogCategory.TRANSFER,
                preflight=preflight,
                on_success=on_success,
            )
        )

    # =========================================================================
    # BADGE LEDGER ACTIONS
    # =========================================================================

    async def create_badge_type(
        self,
        name: str,
        min_holding: int,
        holding_duration: int,
        on_success: Callable[[], None] | None = None,
    ) -> bool:
        async def preflight() -> None:
            self._require_owner("create_badge_type")
            if not name.strip():
                raise _refuse("create_badge_type", "badge name required")
            if min_holding < 0 or holding_duration < 0:
                raise _refuse("create_badge_type", "holding and duration must not be negative")

        return await self.execute(
            WriteAction(
                name="create_badge_type",
                submit=lambda: self.gateway.create_badge_type(name, min_holding, holding_duration),
                success_message=f"Badge type created: {name}",
                failure_message="Error creating badge type",
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def claim_badge(self, badge_type_id: int) -> bool:
        async def preflight() -> None:
            snapshot = self.session.snapshot
            badge_type = snapshot.badge_type(badge_type_id)
            if badge_type is None:
                raise _refuse("claim_badge", f"unknown badge type {badge_type_id}", NotEligible)
            status = snapshot.badge_status(badge_type_id)
            if status is not BadgeStatus.CLAIMABLE:
                raise _refuse("claim_badge", f"badge is {status.value}", NotEligible)

        return await self.execute(
            WriteAction(
                name="claim_badge",
                submit=lambda: self.gateway.claim_badge(badge_type_id),
                success_message=f"Badge claimed: type {badge_type_id}",
                failure_message="Error claiming badge",
                preflight=preflight,
            )
        )

    async def award_badge(
        self, badge_type_id: int, to: str, on_success: Callable[[], None] | None = None
    ) -> bool:
        async def preflight() -> None:
            self._require_owner("award_badge")
            self._require_address("award_badge", to)

        return await self.execute(
            WriteAction(
                name="award_badge",
                submit=lambda: self.gateway.award_badge(badge_type_id, to),
                success_message=f"Badge awarded: type {badge_type_id} to {to}",
                failure_message="Error awarding badge",
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def revoke_badge(
        self, token_id: int, on_success: Callable[[], None] | None = None
    ) -> bool:
        async def preflight() -> None:
            self._require_owner("revoke_badge")

        return await self.execute(
            WriteAction(
                name="revoke_badge",
                submit=lambda: self.gateway.revoke_badge(token_id),
                success_message=f"Badge revoked: token {token_id}",
                failure_message="Error revoking badge",
                category=LogCategory.WARNING,
                preflight=preflight,
                on_success=on_success,
            )
        )

    async def burn_badge(self, token_id: int) -> bool:
        async def preflight() -> None:
            if not self.session.snapshot.owns_token(token_id):
                raise _refuse("burn_badge", f"token {token_id} is not held by this account")

        return await self.execute(
            WriteAction(
                name="burn_badge",
                submit=lambda: self.gateway.burn_badge(token_id),
                success_message=f"Badge burned: token {token_id}",
                failure_message="Error burning badge",
                category=LogCategory.WARNING,
                preflight=preflight,
            )
        )
