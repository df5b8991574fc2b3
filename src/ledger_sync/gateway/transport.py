"""
JSON-RPC transport to a ledger node.

This module is the wire boundary of the engine. It defines the
:class:`LedgerTransport` protocol the gateway depends on, and the
:class:`HttpLedgerTransport` implementation that talks JSON-RPC 2.0 to a
ledger node over HTTP.

The transport is designed to be used as an async context manager to ensure
proper resource cleanup:

    async with HttpLedgerTransport(settings) as transport:
        accounts = await transport.request_accounts()
        balance = await transport.call(royalty, "balanceOf", accounts[0])

Remote methods:
    ledger_accounts          -> list of authenticated account addresses
    ledger_call              -> read-only contract call
    ledger_sendTransaction   -> submit a write, returns the transaction hash
    ledger_waitForReceipt    -> block until the write is final, returns receipt
    ledger_eventCursor       -> current head of the event feed
    ledger_getEvents         -> contract events after a cursor

Error mapping:
    data.reason "NotFound"          -> TokenNotFound
    data.reason "NotEligible"       -> NotEligible
    data.reason "NothingToRelease"  -> NothingToRelease
    HTTP 401/403                    -> SessionLost
    "Unauthorized" on a read        -> SessionLost
    "Unauthorized" on a write       -> WriteRejected (the caller lacks a role)
    any other failure on a read     -> TransientReadFailure
    any other failure on a write    -> WriteRejected

A write never raises a read error type: a typed reason that is not a
WriteRejected subclass (e.g. "NotFound") is reported as WriteRejected.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Protocol

import httpx

from ledger_sync.config import NodeSettings
from ledger_sync.core.bus import EventHandler, LedgerEventBus, Unsubscribe, event_key
from ledger_sync.errors import (
    LedgerOperationContext,
    LedgerOperationError,
    NotEligible,
    NothingToRelease,
    SessionLost,
    TokenNotFound,
    TransientReadFailure,
    WriteRejected,
)

logger = logging.getLogger(__name__)

# Ledger-side revert reasons with a dedicated exception type
_REASON_ERRORS: dict[str, type[LedgerOperationError]] = {
    "NotFound": TokenNotFound,
    "NotEligible": NotEligible,
    "NothingToRelease": NothingToRelease,
}


def _typed_error(
    reason: str, failure: type[LedgerOperationError]
) -> type[LedgerOperationError]:
    """Exception type for ``reason``; writes only ever raise WriteRejected types."""
    error_type = _REASON_ERRORS.get(reason, failure)
    if issubclass(failure, WriteRejected) and not issubclass(error_type, WriteRejected):
        return failure
    return error_type


# =============================================================================
# RECEIPT
# =============================================================================


@dataclass(frozen=True)
class TxReceipt:
    """
    Confirmation that the ledger durably accepted a write.

    Attributes:
        tx_hash: Transaction identifier returned on submission.
        block: Block (or ledger sequence) that included the write.
        status: 1 when the write succeeded. Receipts with status 0 never
                leave the transport; they raise WriteRejected instead.
    """

    tx_hash: str
    block: int = 0
    status: int = 1


# =============================================================================
# TRANSPORT PROTOCOL
# =============================================================================


class LedgerTransport(Protocol):
    """What the gateway needs from the wire. Implementations hold no state
    about balances or badges; every call goes to the ledger."""

    async def request_accounts(self) -> list[str]: ...

    async def call(self, address: str, method: str, *args: Any) -> Any: ...

    async def send(self, address: str, method: str, *args: Any) -> TxReceipt: ...

    def subscribe(self, address: str, event_name: str, handler: EventHandler) -> Unsubscribe: ...

    async def aclose(self) -> None: ...


def _operation(address: str, method: str) -> str:
    return f"{address}.{method}"


# =============================================================================
# HTTP TRANSPORT
# =============================================================================


@dataclass
class HttpLedgerTransport:
    """
    JSON-RPC 2.0 transport over httpx.

    Attributes:
        settings: Node URL, request timeout and event poll cadence.
        bus: Bus on which polled events are emitted.

    Example:
        async with HttpLedgerTransport(config.node) as transport:
            receipt = await transport.send(payment, "approve", spender, 500)
    """

    settings: NodeSettings
    bus: LedgerEventBus = field(default_factory=LedgerEventBus)

    _http_client: httpx.AsyncClient | None = field(default=None, repr=False)
    _poller: asyncio.Task[None] | None = field(default=None, repr=False)
    _cursor: int | None = field(default=None, repr=False)
    _watched: set[str] = field(default_factory=set, repr=False)
    _ids: count = field(default_factory=lambda: count(1), repr=False)

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> HttpLedgerTransport:
        """Create the underlying httpx.AsyncClient."""
        self._http_client = httpx.AsyncClient(
            base_url=self.settings.url,
            timeout=self.settings.timeout_seconds,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the event poller and close the connection pool."""
        poller, self._poller = self._poller, None
        if poller is not None:
            poller.cancel()
            try:
                await poller
            except asyncio.CancelledError:
                pass
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        Get the HTTP client, ensuring it's been initialized.

        Raises:
            RuntimeError: If accessed outside of async context manager.
        """
        if self._http_client is None:
            raise RuntimeError(
                "HttpLedgerTransport must be used as an async context manager. "
                "Use 'async with HttpLedgerTransport(settings) as transport:'"
            )
        return self._http_client

    # -------------------------------------------------------------------------
    # JSON-RPC plumbing
    # -------------------------------------------------------------------------

    async def _rpc(
        self,
        method: str,
        params: list[Any],
        *,
        operation: str,
        failure: type[LedgerOperationError],
    ) -> Any:
        """
        Perform one JSON-RPC request and return its ``result``.

        Args:
            method: Remote method name.
            params: Positional parameters.
            operation: Stable operation id for error context.
            failure: Exception type for failures without a dedicated type.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self.http_client.post("/", json=payload)
        except httpx.HTTPError as e:
            raise failure(
                context=LedgerOperationContext(
                    operation=operation,
                    details=f"Cannot reach ledger node at {self.settings.url}: {e}",
                ),
                cause=e,
            ) from e

        if response.status_code in (401, 403):
            raise SessionLost(f"{operation}: node refused the session ({response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            raise failure(
                context=LedgerOperationContext(
                    operation=operation,
                    details=f"Node returned invalid response (status {response.status_code})",
                ),
                cause=e,
            ) from e

        if response.status_code != 200 and "error" not in data:
            raise failure(
                context=LedgerOperationContext(
                    operation=operation, details=f"HTTP {response.status_code}"
                )
            )

        error = data.get("error")
        if error:
            raise self._map_error(error, operation=operation, failure=failure)
        return data.get("result")

    @staticmethod
    def _map_error(
        error: dict[str, Any], *, operation: str, failure: type[LedgerOperationError]
    ) -> Exception:
        """
        Translate a JSON-RPC error object into a typed ledger exception.

        ``failure`` tells reads from writes. On a write, "Unauthorized" is
        the ledger refusing the caller's role, not the node refusing the
        session, and read-only error types are reported as ``failure``.
        """
        detail = error.get("data") or {}
        reason = detail.get("reason", "") if isinstance(detail, dict) else ""
        message = error.get("message", "ledger error")
        write = issubclass(failure, WriteRejected)
        if reason == "SessionExpired" or (reason == "Unauthorized" and not write):
            return SessionLost(f"{operation}: {message}")
        return _typed_error(reason, failure)(
            context=LedgerOperationContext(operation=operation, details=reason or message)
        )

    # -------------------------------------------------------------------------
    # LedgerTransport
    # -------------------------------------------------------------------------

    async def request_accounts(self) -> list[str]:
        """Return the accounts the node has authenticated for this client."""
        result = await self._rpc(
            "ledger_accounts", [], operation="node.accounts", failure=TransientReadFailure
        )
        accounts = list(result or [])
        if not accounts:
            raise SessionLost("node.accounts: no authenticated account")
        return accounts

    async def call(self, address: str, method: str, *args: Any) -> Any:
        """Read-only contract call."""
        return await self._rpc(
            "ledger_call",
            [{"to": address, "method": method, "args": list(args)}],
            operation=_operation(address, method),
            failure=TransientReadFailure,
        )

    async def send(self, address: str, method: str, *args: Any) -> TxReceipt:
        """Submit a write and wait until the ledger has made it final."""
        operation = _operation(address, method)
        tx_hash = await self._rpc(
            "ledger_sendTransaction",
            [{"to": address, "method": method, "args": list(args)}],
            operation=operation,
            failure=WriteRejected,
        )
        receipt = await self._rpc(
            "ledger_waitForReceipt",
            [tx_hash, self.settings.timeout_seconds],
            operation=operation,
            failure=WriteRejected,
        )
        if not receipt or int(receipt.get("status", 0)) != 1:
            reason = (receipt or {}).get("reason") or "reverted"
            raise _typed_error(reason, WriteRejected)(
                context=LedgerOperationContext(operation=operation, details=reason)
            )
        return TxReceipt(tx_hash=str(tx_hash), block=int(receipt.get("block", 0)), status=1)

    def subscribe(self, address: str, event_name: str, handler: EventHandler) -> Unsubscribe:
        """Deliver ``event_name`` from ``address`` to ``handler``.

        Starts the background poller if it is not running, including after
        a previous poller stopped on a refused session.
        """
        self._watched.add(address.lower())
        unsubscribe = self.bus.on(event_key(address, event_name), handler)
        if self._poller is None or self._poller.done():
            self._poller = asyncio.get_running_loop().create_task(self._poll_events())
        return unsubscribe

    # -------------------------------------------------------------------------
    # Event polling
    # -------------------------------------------------------------------------

    async def poll_once(self) -> int:
        """
        Fetch events after the cursor and emit them on the bus.

        The first poll starts from the feed's current head, so history from
        before the first subscription is never replayed as new activity.
        Malformed events are logged and skipped.

        Returns:
            Number of events emitted.
        """
        if self._cursor is None:
            head = await self._rpc(
                "ledger_eventCursor", [], operation="node.eventCursor", failure=TransientReadFailure
            )
            self._cursor = self._parse_cursor(head, "node.eventCursor")

        result = await self._rpc(
            "ledger_getEvents",
            [{"fromCursor": self._cursor, "addresses": sorted(self._watched)}],
            operation="node.getEvents",
            failure=TransientReadFailure,
        )
        result = result or {}
        emitted = 0
        for raw in result.get("events", []):
            try:
                key, args = event_key(raw["address"], raw["event"]), dict(raw.get("args", {}))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed ledger event %r: %s", raw, e)
                continue
            self.bus.emit(key, args, source="http-poller")
            emitted += 1
        self._cursor = self._parse_cursor(result.get("cursor", self._cursor), "node.getEvents")
        return emitted

    @staticmethod
    def _parse_cursor(value: Any, operation: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise TransientReadFailure(
                context=LedgerOperationContext(
                    operation=operation, details=f"invalid event cursor {value!r}"
                ),
                cause=e,
            ) from e

    async def _poll_events(self) -> None:
        """Poll for events until cancelled; a failed poll is retried next tick."""
        while True:
            try:
                await self.poll_once()
            except TransientReadFailure as e:
                logger.warning("Event poll failed, retrying: %s", e)
            except SessionLost as e:
                logger.warning("Event poll stopped, session refused: %s", e)
                return
            await asyncio.sleep(self.settings.event_poll_seconds)
