"""Tests for dynamic version management.

Verifies that ``ledger_sync.__version__`` is resolved from the installed
package metadata (``pyproject.toml``) and looks like a release version.
"""

from __future__ import annotations

import re
from importlib.metadata import version

import pytest

import ledger_sync

# Matches semver-ish strings: major.minor.patch with optional pre-release
# suffix (e.g. "0.3.0", "1.0.0-rc.1").
_SEMVER_RE = re.compile(
    r"^\d+\.\d+\.\d+"  # major.minor.patch
    r"(-[A-Za-z0-9]+(\.[A-Za-z0-9]+)*)?$"  # optional pre-release
)


@pytest.mark.unit
class TestVersionAttribute:
    """Verify the ``ledger_sync.__version__`` package attribute."""

    def test_version_is_a_string(self) -> None:
        assert isinstance(ledger_sync.__version__, str)
        assert len(ledger_sync.__version__) > 0

    def test_version_matches_semver(self) -> None:
        assert _SEMVER_RE.match(ledger_sync.__version__), (
            f"__version__ {ledger_sync.__version__!r} does not match "
            f"expected semver pattern (major.minor.patch[-prerelease])"
        )

    def test_version_matches_metadata(self) -> None:
        """In an installed environment the attribute mirrors pyproject.toml."""
        assert ledger_sync.__version__ == version("ledger-sync")
