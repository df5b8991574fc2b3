"""Ledger Sync: client-side reconciliation for the royalty token ledger.

Keeps a local view of three external contracts (royalty token, payment coin,
soulbound badges) consistent with the ledger, and serializes user writes
against it with the approve-then-spend pattern.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed (for example straight
# from a source checkout), fall back to the version pinned below.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("ledger-sync")
except PackageNotFoundError:
    __version__ = "0.3.0"
