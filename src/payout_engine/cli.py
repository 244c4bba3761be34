"""Payout engine command line interface.

Operational tools for:
- Settlement calendar lookups
- Running the bi-weekly settlement by hand
- Running an auto-approval pass
- Pending payout dashboards

Usage:
    python -m payout_engine.cli next-settlement-date --from 2024-01-08
    python -m payout_engine.cli run-settlement [--force] [--as-of 2024-01-19]
    python -m payout_engine.cli run-auto-approvals
    python -m payout_engine.cli pending --payee EMPLOYEE_ID
    python -m payout_engine.cli pending --payer BUSINESS_OWNER_ID
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime, time, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

from payout_engine.clock import Clock, FixedClock, SystemClock
from payout_engine.config import Settings, get_settings
from payout_engine.container import PayoutServices, build_services
from payout_engine.database import dispose_db, init_db
from payout_engine.money import format_amount
from payout_engine.services import PayoutLedger, SettlementCalendar

ServicesFactory = Callable[[Clock], PayoutServices]


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayoutCli:
    """Payout engine command line interface."""

    def __init__(
        self,
        settings: Settings | None = None,
        services_factory: ServicesFactory | None = None,
    ) -> None:
        self._settings = settings
        self._services_factory = services_factory
        self.parser = self._build_parser()

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="python -m payout_engine.cli",
            description="Payout engine operational tools",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print machine-readable JSON",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        nsd = subparsers.add_parser(
            "next-settlement-date",
            help="Show upcoming settlement Fridays",
        )
        nsd.add_argument(
            "--from",
            dest="from_date",
            type=parse_date,
            help="Start date (default: today, UTC)",
        )
        nsd.add_argument(
            "--count",
            type=int,
            default=1,
            help="How many settlement dates to list (default: 1)",
        )

        run = subparsers.add_parser(
            "run-settlement",
            help="Settle due pending payouts",
        )
        run.add_argument(
            "--force",
            action="store_true",
            help="Run even if the date is not a settlement Friday",
        )
        run.add_argument(
            "--as-of",
            type=parse_date,
            help="Run as if today were this date",
        )

        subparsers.add_parser(
            "run-auto-approvals",
            help="Auto-approve submitted completions whose window expired",
        )

        pending = subparsers.add_parser(
            "pending",
            help="Show pending payouts for an employee or a business",
        )
        who = pending.add_mutually_exclusive_group(required=True)
        who.add_argument("--payee", type=parse_uuid, help="Business employee ID")
        who.add_argument("--payer", type=parse_uuid, help="Business owner ID")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "next-settlement-date": self._cmd_next_settlement_date,
            "run-settlement": self._cmd_run_settlement,
            "run-auto-approvals": self._cmd_run_auto_approvals,
            "pending": self._cmd_pending,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _cmd_next_settlement_date(self, args: argparse.Namespace) -> int:
        calendar = SettlementCalendar(self.settings.settlement_anchor_date)
        start = args.from_date or SystemClock().today()
        dates = calendar.upcoming(start, max(args.count, 1))

        if args.json:
            self._print_json({"from": start.isoformat(), "dates": [d.isoformat() for d in dates]})
        else:
            for d in dates:
                print(d.isoformat())
        return 0

    def _cmd_run_settlement(self, args: argparse.Namespace) -> int:
        clock = self._clock(args.as_of)

        async def go(services: PayoutServices) -> dict[str, Any]:
            if args.force:
                summary = await services.settlement.run(clock.today())
            else:
                summary = await services.settlement.run_scheduled()
            return summary.to_dict()

        result = self._run_async(go, clock)

        if args.json:
            self._print_json(result)
        elif not result["ran"]:
            print(f"{result['run_date']} is not a settlement date; use --force to run anyway")
        else:
            print(f"Settlement run {result['batch_id']} for {result['run_date']}")
            print(f"  processed: {result['processed']}")
            print(f"  succeeded: {result['success']}")
            print(f"  failed:    {result['failed']} ({result['payees_failed']} payee(s))")
            print(f"  paid:      {result['formatted_total_paid']}")
            for r in result["results"]:
                mark = "ok" if r["success"] else f"FAILED ({r.get('error')})"
                print(f"    {r['business_employee_id']}: {r['formatted_amount']} {mark}")
        return 0 if result["payees_failed"] == 0 else 2

    def _cmd_run_auto_approvals(self, args: argparse.Namespace) -> int:
        async def go(services: PayoutServices) -> dict[str, Any]:
            summary = await services.auto_approval.run()
            return summary.to_dict()

        result = self._run_async(go, SystemClock())

        if args.json:
            self._print_json(result)
        else:
            print(f"Auto-approved: {result['processed']}")
            print(f"Errors:        {result['errors']}")
        return 0 if result["errors"] == 0 else 2

    def _cmd_pending(self, args: argparse.Namespace) -> int:
        async def go(services: PayoutServices) -> dict[str, Any]:
            async with services.session_factory() as session:
                ledger = PayoutLedger(session, calendar=services.calendar, clock=services.clock)
                if args.payee:
                    return (await ledger.pending_for_payee(args.payee)).to_dict()
                return (await ledger.pending_for_payer(args.payer)).to_dict()

        result = self._run_async(go, SystemClock())

        if args.json:
            self._print_json(result)
            return 0

        print(f"Pending:          {result['formatted_total']} ({result['job_count']} job(s))")
        print(f"Next settlement:  {result['next_settlement_date']}")
        for group in result.get("by_employee", []):
            print(f"  {group['employee_name']}: {group['formatted_total']} ({group['job_count']} job(s))")
        failed = result["failed"]
        if failed["count"]:
            print(f"Failed:           {format_amount(failed['total'])} ({failed['count']} row(s))")
        processing = result["processing"]
        if processing["count"]:
            print(
                f"Processing:       {format_amount(processing['total'])} "
                f"({processing['count']} row(s), awaiting reconciliation)"
            )
        return 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clock(self, as_of: date | None) -> Clock:
        if as_of is None:
            return SystemClock()
        return FixedClock(
            datetime.combine(as_of, time(self.settings.settlement_run_hour), tzinfo=timezone.utc)
        )

    def _run_async(
        self,
        fn: Callable[[PayoutServices], Awaitable[dict[str, Any]]],
        clock: Clock,
    ) -> dict[str, Any]:
        async def main() -> dict[str, Any]:
            if self._services_factory is not None:
                return await fn(self._services_factory(clock))
            _, session_factory = init_db()
            try:
                return await fn(build_services(self.settings, session_factory, clock=clock))
            finally:
                await dispose_db()

        return asyncio.run(main())

    @staticmethod
    def _print_json(data: Any) -> None:
        print(json.dumps(data, indent=2, default=str))


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = PayoutCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
