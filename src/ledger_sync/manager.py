"""
Session Manager

Owns the whole engine for one user: transport, gateway, the current
session, its scheduler and orchestrator, the activity log and the feedback
slot.

    async with SessionManager(transport) as manager:
        session = await manager.connect()
        if session is not None:
            await manager.orchestrator.claim_badge(1)

A failed connect leaves the manager unauthenticated and returns None.
SessionLost raised anywhere during a session tears it down the same way a
disconnect does.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from ledger_sync.activity import ActivityLog, FeedbackKind, FeedbackSlot, LogCategory
from ledger_sync.config import EngineConfig
from ledger_sync.config import config as default_config
from ledger_sync.errors import SessionLost
from ledger_sync.gateway.client import LedgerAddresses, LedgerGateway
from ledger_sync.gateway.transport import LedgerTransport
from ledger_sync.orchestrator import TransactionOrchestrator
from ledger_sync.scheduler import ReconciliationScheduler
from ledger_sync.session import LedgerSnapshot, Session

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Connect, disconnect and account switching.

    Attributes:
        transport: Wire to the ledger node.
        settings: Engine configuration (addresses, cadence, log capacity).
        activity: Activity log, kept across sessions.
        feedback: Transient notice slot.
        session: Current session, None while unauthenticated.
    """

    def __init__(
        self,
        transport: LedgerTransport,
        settings: EngineConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.transport = transport
        self.clock = clock
        self.settings = settings or default_config
        self.activity = ActivityLog(capacity=self.settings.sync.log_capacity)
        self.feedback = FeedbackSlot(delay=self.settings.sync.feedback_seconds)
        self.gateway = LedgerGateway(
            transport, LedgerAddresses.from_settings(self.settings.contracts)
        )

        self.session: Session | None = None
        self.scheduler: ReconciliationScheduler | None = None
        self._orchestrator: TransactionOrchestrator | None = None
        self._teardown: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> SessionManager:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Disconnect and close the transport."""
        await self.disconnect()
        await self.transport.aclose()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.session is not None

    @property
    def orchestrator(self) -> TransactionOrchestrator:
        """
        Write orchestrator for the current session.

        Raises:
            RuntimeError: If no session is connected.
        """
        if self._orchestrator is None:
            raise RuntimeError("No session connected. Call 'await manager.connect()' first.")
        return self._orchestrator

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, account: str | None = None) -> Session | None:
        """
        Establish a session and run its initial refresh.

        Args:
            account: Bind to this account instead of the first one the
                     transport reports. Used by account switching.

        Returns:
            The new session, or None if connecting failed.
        """
        await self.disconnect()
        try:
            accounts = await self.transport.request_accounts()
            if account is None:
                account = accounts[0]
            elif account.lower() not in {a.lower() for a in accounts}:
                raise SessionLost(f"account {account} is not authenticated")

            labels = await self.gateway.get_token_labels()
            owner = await self.gateway.get_owner()
            paused = await self.gateway.is_paused()

            session = Session(
                account=account,
                is_owner=owner.lower() == account.lower(),
                is_distributor=account.lower() == self.settings.contracts.distributor.lower(),
                labels=labels,
                snapshot=LedgerSnapshot(paused=paused),
            )
            self.session = session
            if session.is_owner:
                self.activity.append("Admin access enabled", LogCategory.SUCCESS)
            if session.is_distributor:
                self.activity.append("Royalty distributor access enabled", LogCategory.SUCCESS)

            self.scheduler = ReconciliationScheduler(
                self.gateway,
                session,
                self.activity,
                poll_interval=self.settings.sync.poll_interval_seconds,
                on_session_lost=self._handle_session_lost,
            )
            self._orchestrator = TransactionOrchestrator(
                self.gateway,
                session,
                self.activity,
                self.feedback,
                self.scheduler,
                on_session_lost=self._handle_session_lost,
                clock=self.clock,
            )
            await self.scheduler.start()
        except SessionLost as e:
            logger.warning("Wallet connection refused: %s", e)
            return await self._connect_failed()
        except Exception:
            logger.exception("Wallet connection failed")
            return await self._connect_failed()

        if self.session is not session:
            # Session was lost during the initial refresh
            await self.wait_closed()
            return None
        logger.info("Wallet connected: %s", account)
        self.activity.append(f"Wallet connected: {account}", LogCategory.SUCCESS)
        self.feedback.show("Wallet connected successfully", FeedbackKind.SUCCESS)
        return session

    async def _connect_failed(self) -> None:
        await self.disconnect()
        self.activity.append("Error connecting wallet", LogCategory.ERROR)
        self.feedback.show("Error connecting wallet", FeedbackKind.ERROR)
        return None

    async def disconnect(self) -> None:
        """Stop the scheduler and drop the session. No-op when unauthenticated."""
        await self.wait_closed()
        scheduler, self.scheduler = self.scheduler, None
        self._orchestrator = None
        if scheduler is not None:
            await scheduler.stop()
        if self.session is not None:
            logger.info("Session closed for %s", self.session.account)
        self.session = None

    async def switch_account(self, account: str) -> Session | None:
        """Tear the current session down and reconnect bound to ``account``."""
        logger.info("Switching account to %s", account)
        return await self.connect(account)

    async def refresh(self) -> bool:
        """Manual refresh. Returns False when unauthenticated or already refreshing."""
        if self.scheduler is None:
            return False
        return await self.scheduler.refresh()

    # -------------------------------------------------------------------------
    # Session loss
    # -------------------------------------------------------------------------

    def _handle_session_lost(self, error: SessionLost) -> None:
        """Drop the session now; release its resources in a separate task."""
        if self.session is None:
            return
        logger.warning("Session lost for %s: %s", self.session.account, error)
        self.activity.append("Session lost, wallet disconnected", LogCategory.ERROR)
        self.feedback.show("Session lost", FeedbackKind.ERROR)
        self.session = None
        self._orchestrator = None
        scheduler, self.scheduler = self.scheduler, None
        if scheduler is not None:
            self._teardown = asyncio.get_running_loop().create_task(scheduler.stop())

    async def wait_closed(self) -> None:
        """Wait for a teardown scheduled by session loss to finish."""
        if self._teardown is not None:
            await self._teardown
            self._teardown = None
