"""
Command-line interface for Ledger Sync.

Provides CLI commands against a ledger node:
- config: Show the effective configuration
- status: Connect, refresh once and print balances, vesting and badges
- watch: Stay connected and print activity entries as they arrive
- claim-badge: Claim an earned badge
- release-vesting: Release the currently due vesting tranche

Usage:
    ledger-sync config
    ledger-sync status
    ledger-sync watch [--interval SECONDS]
    ledger-sync claim-badge BADGE_TYPE_ID
    ledger-sync release-vesting

Environment Variables:
    LEDGER_NODE_URL: Ledger node JSON-RPC endpoint
    LEDGER_LOG_LEVEL: Log level (default: INFO)
    See ledger_sync.config for the full list.
"""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable

from ledger_sync.badges import progress_fraction
from ledger_sync.manager import SessionManager
from ledger_sync.session import Session
from ledger_sync.units import format_amount
from ledger_sync.vesting import format_time_remaining

ManagerCommand = Callable[[SessionManager, Session], Awaitable[int]]


def _run_connected(command: ManagerCommand) -> int:
    """Connect with the configured transport, run ``command``, always clean up."""
    from ledger_sync.config import config
    from ledger_sync.gateway.transport import HttpLedgerTransport
    from ledger_sync.logging_config import configure_logging

    configure_logging(config.logging)

    async def runner() -> int:
        async with HttpLedgerTransport(config.node) as transport:
            async with SessionManager(transport, config) as manager:
                session = await manager.connect()
                if session is None:
                    print(f"Error connecting to ledger node at {config.node.url}", file=sys.stderr)
                    return 1
                return await command(manager, session)

    try:
        return asyncio.run(runner())
    except KeyboardInterrupt:
        return 0


def render_status(session: Session) -> str:
    """Plain-text summary of a session snapshot."""
    snap = session.snapshot
    labels = session.labels
    roles = [
        name
        for name, held in (("owner", session.is_owner), ("distributor", session.is_distributor))
        if held
    ]
    lines = [
        f"Account:   {session.account}",
        f"Roles:     {', '.join(roles) or 'none'}",
        f"Paused:    {'yes' if snap.paused else 'no'}",
        f"Price:     {format_amount(snap.price)} {labels.payment_symbol}",
        f"Tokens:    {snap.token_balance} {labels.royalty_symbol}",
        f"Value:     {format_amount(snap.total_value)} {labels.payment_symbol}",
        f"Balance:   {format_amount(snap.payment_balance)} {labels.payment_symbol}",
    ]

    vesting = snap.vesting
    if vesting is None:
        lines.append("Vesting:   none")
    else:
        lines.append(
            f"Vesting:   {vesting.already_released}/{vesting.total_amount} released, "
            f"tranche {vesting.tranche_label}"
        )
        if not vesting.is_complete:
            lines.append(f"Next:      {format_time_remaining(vesting.next_release_time)}")

    if snap.badge_types:
        lines.append("Badges:")
    for badge_type in snap.badge_types:
        status = snap.badge_status(badge_type.id)
        percent = int(progress_fraction(badge_type, snap.progress) * 100)
        lines.append(f"  #{badge_type.id} {badge_type.name}: {status.value} ({percent}%)")
    return "\n".join(lines)


def cmd_config(args: argparse.Namespace) -> int:
    """
    Print the effective configuration.

    Returns:
        0 always
    """
    from ledger_sync.config import print_config_summary

    print_config_summary()
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """
    Connect, refresh once and print the snapshot.

    Returns:
        0 on success, 1 if the connection failed
    """

    async def status(manager: SessionManager, session: Session) -> int:
        print(render_status(session))
        return 0

    return _run_connected(status)


def cmd_watch(args: argparse.Namespace) -> int:
    """
    Stay connected and stream new activity entries until interrupted.

    Returns:
        0 on interrupt, 1 if the connection failed or the session was lost
    """

    async def watch(manager: SessionManager, session: Session) -> int:
        seen = 0
        while manager.connected:
            for entry in reversed(manager.activity.entries()):
                if entry.id > seen:
                    print(f"{entry.timestamp:%H:%M:%S} [{entry.category.value}] {entry.message}")
                    seen = entry.id
            await asyncio.sleep(args.interval)
        print("Session lost", file=sys.stderr)
        return 1

    return _run_connected(watch)


def cmd_claim_badge(args: argparse.Namespace) -> int:
    """
    Claim an earned badge.

    Returns:
        0 on success, 1 if the claim was refused or failed
    """

    async def claim(manager: SessionManager, session: Session) -> int:
        orchestrator = manager.orchestrator
        ok = await orchestrator.claim_badge(args.badge_type_id)
        print(orchestrator.pending.message)
        return 0 if ok else 1

    return _run_connected(claim)


def cmd_release_vesting(args: argparse.Namespace) -> int:
    """
    Release the due vesting tranche.

    Returns:
        0 on success, 1 if nothing was due or the release failed
    """

    async def release(manager: SessionManager, session: Session) -> int:
        orchestrator = manager.orchestrator
        ok = await orchestrator.release_vesting()
        print(orchestrator.pending.message)
        return 0 if ok else 1

    return _run_connected(release)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ledger-sync",
        description="Ledger Sync - royalty token ledger client",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show the effective configuration",
        description="Print configuration loaded from config/ledger.ini and LEDGER_* variables.",
    )
    config_parser.set_defaults(func=cmd_config)

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Print balances, vesting and badges",
        description="Connect to the ledger node, refresh once and print the snapshot.",
    )
    status_parser.set_defaults(func=cmd_status)

    # watch command
    watch_parser = subparsers.add_parser(
        "watch",
        help="Stream activity until interrupted",
        description=(
            "Stay connected, reconcile on ledger events and the poll timer, "
            "and print activity entries as they are recorded."
        ),
    )
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between activity checks (default: 1.0)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    # claim-badge command
    claim_parser = subparsers.add_parser(
        "claim-badge",
        help="Claim an earned badge",
        description="Claim a badge whose holding requirement has been met.",
    )
    claim_parser.add_argument("badge_type_id", type=int, help="Badge type id")
    claim_parser.set_defaults(func=cmd_claim_badge)

    # release-vesting command
    release_parser = subparsers.add_parser(
        "release-vesting",
        help="Release the due vesting tranche",
        description="Release vesting if the next tranche is due.",
    )
    release_parser.set_defaults(func=cmd_release_vesting)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
