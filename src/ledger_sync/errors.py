"""Typed ledger exceptions.

This module defines a small, explicit exception hierarchy used by the
gateway and transport to signal ledger failures without collapsing them into
boolean return values.

Design intent:
    - ``TransientReadFailure`` is isolated per derived field by the refresh
      cycle: one bad read zeroes one field, the cycle continues.
    - ``WriteRejected`` is surfaced as an error log entry and a transient
      notice; it never ends the session.
    - ``SessionLost`` is fatal to the current session only: the session
      manager tears down timers and subscriptions and returns to the
      unauthenticated state.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class LedgerOperationContext:
    """Structured operation metadata carried by ledger exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"royalty.balanceOf"`` or ``"badge.claimBadge"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class LedgerError(RuntimeError):
    """Base exception for ledger failures."""


class LedgerOperationError(LedgerError):
    """Base exception for a single failed ledger operation.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: LedgerOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause

    @property
    def operation(self) -> str:
        return self.context.operation


class TransientReadFailure(LedgerOperationError):
    """A single state query failed."""


class TokenNotFound(TransientReadFailure):
    """The queried badge token id does not exist on the ledger."""


class WriteRejected(LedgerOperationError):
    """The ledger (or a local preflight check) declined a write."""


class NotEligible(WriteRejected):
    """Badge claim refused: progress is insufficient or the badge is owned."""


class NothingToRelease(WriteRejected):
    """Vesting release refused: the current tranche is not yet due."""


class SessionLost(LedgerError):
    """The authenticated identity is no longer valid."""
