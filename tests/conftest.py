"""
Shared pytest fixtures for the ledger-sync test suite.

This module provides fixtures that are automatically available to all test files:
- An in-memory fake ledger implementing the transport protocol
- A gateway, session and activity log wired to that ledger
- A test configuration with fast timers

Async tests run under pytest-asyncio in auto mode (see pyproject.toml).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest

from ledger_sync.activity import ActivityLog, FeedbackSlot
from ledger_sync.config import ContractSettings, EngineConfig, SyncSettings
from ledger_sync.gateway.client import LedgerAddresses, LedgerGateway, TokenLabels
from ledger_sync.manager import SessionManager
from ledger_sync.session import Session
from tests.constants import ACCOUNT, BADGE, DISTRIBUTOR, PAYMENT, ROYALTY
from tests.fake_ledger import FakeLedger

# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def addresses() -> LedgerAddresses:
    """Contract addresses used by every fake ledger."""
    return LedgerAddresses(
        royalty_ledger=ROYALTY,
        payment_ledger=PAYMENT,
        badge_ledger=BADGE,
        distributor=DISTRIBUTOR,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    """
    Fake ledger with one funded account.

    ACCOUNT holds 10 royalty tokens and 100.00 payment coin; the price is
    2.50 per token.
    """
    fake = FakeLedger()
    fake.tokens[ACCOUNT.lower()] = 10
    fake.payment[ACCOUNT.lower()] = 10_000
    return fake


@pytest.fixture
def gateway(ledger: FakeLedger, addresses: LedgerAddresses) -> LedgerGateway:
    return LedgerGateway(ledger, addresses)


@pytest.fixture
def session() -> Session:
    """A plain holder session with the fake ledger's labels."""
    return Session(
        account=ACCOUNT,
        labels=TokenLabels(
            royalty_name="Royalty Token",
            royalty_symbol="RYT",
            payment_name="Mock Coin",
            payment_symbol="MCK",
            badge_name="Soulbound Badge",
            badge_symbol="SBB",
        ),
    )


@pytest.fixture
def activity() -> ActivityLog:
    return ActivityLog(capacity=20)


@pytest.fixture
def feedback() -> FeedbackSlot:
    return FeedbackSlot(delay=3.0)


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture
def engine_config() -> EngineConfig:
    """Default configuration with a long poll interval so the timer stays quiet."""
    return EngineConfig(
        contracts=ContractSettings(
            royalty_ledger=ROYALTY,
            payment_ledger=PAYMENT,
            badge_ledger=BADGE,
            distributor=DISTRIBUTOR.lower(),
        ),
        sync=SyncSettings(poll_interval_seconds=3600.0, feedback_seconds=3.0, log_capacity=20),
    )


@pytest.fixture
async def manager(
    ledger: FakeLedger, engine_config: EngineConfig
) -> AsyncGenerator[SessionManager, None]:
    """Session manager over the fake ledger, closed after the test."""
    mgr = SessionManager(ledger, engine_config, clock=lambda: ledger.now)
    yield mgr
    await mgr.aclose()
