"""
Ledger gateway: typed access to the royalty, payment and badge ledgers.

Public surface:
    LedgerGateway         - stateless reads, confirmed writes, event subscriptions
    LedgerAddresses       - the three contract addresses plus the distributor
    TokenLabels           - contract names and symbols
    LedgerTransport       - protocol the gateway needs from the wire
    HttpLedgerTransport   - JSON-RPC over httpx implementation
    TxReceipt             - confirmation of a durable write
"""

from ledger_sync.gateway.client import (
    BadgeTypeRecord,
    LedgerAddresses,
    LedgerGateway,
    RawVestingInfo,
    TokenLabels,
)
from ledger_sync.gateway.transport import HttpLedgerTransport, LedgerTransport, TxReceipt

__all__ = [
    "BadgeTypeRecord",
    "HttpLedgerTransport",
    "LedgerAddresses",
    "LedgerGateway",
    "LedgerTransport",
    "RawVestingInfo",
    "TokenLabels",
    "TxReceipt",
]
