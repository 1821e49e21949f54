#!/usr/bin/env python3
"""
Operator commands for the cash-drawer ledger.

Each command runs in its own transaction (``session_scope``) against the
database named by the settings (``CAJA_DATABASE_URL`` / ``CAJA_SETTINGS``)
or by ``--db-url``.

Usage:
    python3 scripts/caja_cli.py init-db [--counter-start N]
    python3 scripts/caja_cli.py open [--date YYYY-MM-DD] [--opening-balance AMOUNT]
    python3 scripts/caja_cli.py close [--date YYYY-MM-DD] [--closing-balance AMOUNT]
    python3 scripts/caja_cli.py summary [--date YYYY-MM-DD] [--page N --limit N]
    python3 scripts/caja_cli.py pending
    python3 scripts/caja_cli.py auto-close

Exit codes: 0 on success, 1 on a ledger error, 2 on bad arguments.
"""

import argparse
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from caja_config import get_settings  # noqa: E402
from caja_config.bridges import build_clock, init_engine_from_settings  # noqa: E402
from caja_kernel.db.engine import create_tables, session_scope  # noqa: E402
from caja_kernel.db.types import format_money  # noqa: E402
from caja_kernel.domain.dtos import DrawerInfo, DrawerSummary  # noqa: E402
from caja_kernel.exceptions import CajaKernelError  # noqa: E402
from caja_kernel.services import AuditorService, DocumentCounter, DrawerService  # noqa: E402


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Cash-drawer ledger operator commands")
    p.add_argument("--db-url", default=None, help="Database URL (overrides settings)")
    p.add_argument("--actor-id", type=int, default=None, help="Operator user id")
    sub = p.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Create tables and the receipt counter")
    init.add_argument("--counter-start", type=int, default=0,
                      help="Last receipt number already issued (default: 0)")

    op = sub.add_parser("open", help="Open a drawer")
    op.add_argument("--date", type=date.fromisoformat, default=None)
    op.add_argument("--opening-balance", default=None)

    cl = sub.add_parser("close", help="Close a drawer")
    cl.add_argument("--date", type=date.fromisoformat, default=None)
    cl.add_argument("--closing-balance", default=None)

    sm = sub.add_parser("summary", help="Print a drawer with its movements")
    sm.add_argument("--date", type=date.fromisoformat, default=None)
    sm.add_argument("--page", type=int, default=None)
    sm.add_argument("--limit", type=int, default=None)

    sub.add_parser("pending", help="List drawers from earlier days left open")
    sub.add_parser("auto-close", help="Close every drawer from earlier days left open")
    return p.parse_args(argv)


def _print_drawer(info: DrawerInfo) -> None:
    state = "CLOSED" if info.is_closed else "OPEN"
    closing = format_money(info.closing_balance) if info.closing_balance is not None else "-"
    print(f"  {info.drawer_date}  {state:<6}  opening {format_money(info.opening_balance):>12}"
          f"  closing {closing:>12}")


def _print_summary(summary: DrawerSummary) -> None:
    _print_drawer(summary.drawer)
    print()
    for line in summary.movements:
        sign = "+" if line.kind == "inflow" else "-"
        print(f"  {line.occurred_at:%Y-%m-%d %H:%M}  {line.label:<40.40}"
              f"  {sign}{format_money(line.amount):>11}  {format_money(line.running_balance):>12}")
    print()
    print(f"  inflow  {format_money(summary.total_inflow):>12}")
    print(f"  outflow {format_money(summary.total_outflow):>12}")
    print(f"  balance {format_money(summary.closing_balance):>12}")
    if summary.page is not None:
        print(f"  page {summary.page}/{summary.last_page} ({summary.total} movements)")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = get_settings()
    if args.db_url:
        settings = replace(settings, database_url=args.db_url)
    init_engine_from_settings(settings)
    clock = build_clock(settings)
    day = getattr(args, "date", None) or clock.today()

    try:
        if args.command == "init-db":
            create_tables()
            with session_scope() as session:
                counter = DocumentCounter(session, settings.receipt_counter_key)
                counter.initialize(args.counter_start)
                print(f"  Tables ready; last receipt number {counter.current_value()}")
            return 0

        with session_scope() as session:
            drawers = DrawerService(
                session,
                clock,
                auditor=AuditorService(session, clock),
                default_opening_balance=settings.default_opening_balance,
            )
            if args.command == "open":
                _print_drawer(drawers.open(day, args.opening_balance, args.actor_id))
            elif args.command == "close":
                _print_drawer(drawers.close(day, args.closing_balance, args.actor_id))
            elif args.command == "summary":
                _print_summary(drawers.get_summary(day, args.page, args.limit))
            elif args.command == "pending":
                pending = drawers.list_open_before()
                if not pending:
                    print("  No drawers pending close")
                for info in pending:
                    _print_drawer(info)
            elif args.command == "auto-close":
                closed = drawers.auto_close_stale()
                print(f"  Closed {len(closed)} drawer(s)")
                for info in closed:
                    _print_drawer(info)
    except CajaKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
