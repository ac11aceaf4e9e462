"""Payroll Command Line Interface.

Operator tools for:
- Schema creation
- Run creation and finalization
- Run summaries
- Effective company configuration

Usage:
    python -m mypayroll init-db
    python -m mypayroll create-run --company-id X --month 1 --year 2026
    python -m mypayroll finalize-run --company-id X --run-id Y
    python -m mypayroll summary --company-id X --run-id Y
    python -m mypayroll show-config --company-id X
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable
from uuid import UUID

from mypayroll.config import get_settings
from mypayroll.database import create_schema, init_db
from mypayroll.errors import NotFound, PayrollError
from mypayroll.models import Company
from mypayroll.payroll_config import config_for_company
from mypayroll.services import PayRunService, ReportingService


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayrollCli:
    """Payroll Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m mypayroll",
            description="Payroll operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Override DATABASE_URL",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create all payroll tables")

        create = subparsers.add_parser("create-run", help="Create a draft payroll run")
        self._add_company(create)
        create.add_argument("--month", type=int, required=True, help="Payroll month (1-12)")
        create.add_argument("--year", type=int, required=True, help="Payroll year")
        create.add_argument("--department-id", type=parse_uuid, help="Restrict to one department")
        create.add_argument("--outlet-id", type=parse_uuid, help="Restrict to one outlet")
        create.add_argument("--notes", type=str, help="Free-text notes")
        create.add_argument(
            "--all-groupings",
            action="store_true",
            help="Create one run per outlet or department that has none",
        )

        finalize = subparsers.add_parser("finalize-run", help="Finalize a payroll run")
        self._add_company(finalize)
        finalize.add_argument("--run-id", type=parse_uuid, required=True, help="Run to finalize")

        summary = subparsers.add_parser("summary", help="Print run totals")
        self._add_company(summary)
        summary.add_argument("--run-id", type=parse_uuid, required=True, help="Run to summarize")

        show = subparsers.add_parser("show-config", help="Print effective payroll config")
        self._add_company(show)

        for sub in (create, finalize, summary, show):
            sub.add_argument("--actor", type=str, default="cli", help="Recorded as performed_by")

        return parser

    @staticmethod
    def _add_company(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--company-id",
            type=parse_uuid,
            required=True,
            help="Company (tenant) to operate on",
        )

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "create-run": self._cmd_create_run,
            "finalize-run": self._cmd_finalize_run,
            "summary": self._cmd_summary,
            "show-config": self._cmd_show_config,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(handler(parsed))
        except PayrollError as e:
            print(f"ERROR [{e.kind}]: {e.message}", file=sys.stderr)
            return 1

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema."""
        engine, _ = init_db(args.database_url)
        await create_schema(engine)
        await engine.dispose()
        print("Schema created.")
        return 0

    async def _cmd_create_run(self, args: argparse.Namespace) -> int:
        """Create one run, or one per grouping."""
        engine, factory = init_db(args.database_url)
        async with factory() as session:
            service = PayRunService(session, args.company_id, actor=args.actor)
            if args.all_groupings:
                config = config_for_company(await self._company(session, args.company_id))
                if config.is_outlet_grouped:
                    outcomes = await service.generate_all_outlets(args.month, args.year, args.notes)
                else:
                    outcomes = await service.generate_all_departments(args.month, args.year, args.notes)
                for outcome in outcomes:
                    detail = f" ({outcome.message})" if outcome.message else ""
                    print(f"  {outcome.name:<30} {outcome.status:<8} {outcome.run_id or ''}{detail}")
            else:
                run = await service.create_run(
                    args.month,
                    args.year,
                    department_id=args.department_id,
                    outlet_id=args.outlet_id,
                    notes=args.notes,
                )
                print(f"Created run {run.run_id} for {run.period_label}")
                print(f"  Employees: {run.employee_count}")
                print(f"  Net total: {run.total_net:>15,.2f}")
                for warning in run.warnings:
                    print(f"  WARNING: {warning}")
        await engine.dispose()
        return 0

    async def _cmd_finalize_run(self, args: argparse.Namespace) -> int:
        """Finalize a run."""
        engine, factory = init_db(args.database_url)
        async with factory() as session:
            run = await PayRunService(session, args.company_id, actor=args.actor).finalize(args.run_id)
            print(f"Run {run.run_id} finalized at {run.finalized_at.isoformat()}")
        await engine.dispose()
        return 0

    async def _cmd_summary(self, args: argparse.Namespace) -> int:
        """Print run totals."""
        engine, factory = init_db(args.database_url)
        async with factory() as session:
            summary = await ReportingService(session, args.company_id).run_summary(args.run_id)
        await engine.dispose()

        print(f"Payroll run {summary.run_id} ({summary.period_label}, {summary.status})")
        print("=" * 60)
        print(f"  Employees: {summary.employee_count}")
        for name, value in summary.totals.items():
            if value:
                print(f"  {name:<28} {value:>15,.2f}")
        if summary.by_department:
            print("\n  By department:")
            for dept in summary.by_department:
                print(f"    {dept['name']:<26} {dept['employee_count']:>4}  {dept['total_net']:>15,.2f}")
        return 0

    async def _cmd_show_config(self, args: argparse.Namespace) -> int:
        """Print the merged payroll config as JSON."""
        engine, factory = init_db(args.database_url)
        async with factory() as session:
            config = config_for_company(await self._company(session, args.company_id))
        await engine.dispose()
        data: dict[str, Any] = config.model_dump(mode="json")
        print(json.dumps(data, indent=2))
        return 0

    @staticmethod
    async def _company(session: Any, company_id: UUID) -> Company:
        company = await session.get(Company, company_id)
        if company is None:
            raise NotFound(f"Company {company_id} not found", company_id)
        return company


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
