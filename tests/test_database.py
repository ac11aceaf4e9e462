"""Tests for transactions, locks and error kinds."""

from uuid import uuid4

import pytest
from sqlalchemy import select, text

from mypayroll.__main__ import PayrollCli
from mypayroll.database import try_period_lock, unit_of_work
from mypayroll.errors import Conflict, DependencyUnavailable, InputInvalid, InternalError
from mypayroll.models import Company
from mypayroll.services.locking_service import period_lock_key


class TestUnitOfWork:
    """One transaction per operation."""

    async def test_commits_on_success(self, session):
        company_id = uuid4()
        async with unit_of_work(session):
            session.add(Company(company_id=company_id, name="Baru", grouping_type="department",
                                settings={}, payroll_config={}))

        await session.rollback()
        result = await session.execute(select(Company.name).where(Company.company_id == company_id))
        assert result.scalar_one() == "Baru"

    async def test_payroll_error_rolls_back(self, session):
        """Domain errors propagate unchanged."""
        company_id = uuid4()
        with pytest.raises(InputInvalid):
            async with unit_of_work(session):
                session.add(Company(company_id=company_id, name="Baru", grouping_type="department",
                                    settings={}, payroll_config={}))
                await session.flush()
                raise InputInvalid("bad month")

        result = await session.execute(select(Company.company_id).where(Company.company_id == company_id))
        assert result.scalar_one_or_none() is None

    async def test_database_error_becomes_internal(self, session):
        with pytest.raises(InternalError) as exc_info:
            async with unit_of_work(session):
                await session.execute(text("SELECT * FROM no_such_table"))

        assert exc_info.value.kind == "internal"
        assert exc_info.value.__cause__ is not None


class TestPeriodLock:
    async def test_sqlite_always_acquires(self, session):
        """Without advisory locks the unique constraint guards duplicates."""
        assert await try_period_lock(session, "payroll_run:x") is True

    def test_lock_key(self):
        company_id = uuid4()

        assert period_lock_key(company_id, 1, 2026, "company") == f"payroll_run:{company_id}:2026:01:company"


class TestErrors:
    def test_to_dict(self):
        entity = uuid4()

        assert Conflict("exists", entity).to_dict() == {
            "kind": "conflict",
            "message": "exists",
            "entity_id": str(entity),
        }
        assert InputInvalid("bad").to_dict() == {"kind": "input_invalid", "message": "bad"}
        assert DependencyUnavailable("no schedules").kind == "dependency_unavailable"


class TestCli:
    """Argument parsing."""

    def test_create_run_arguments(self):
        company_id = uuid4()

        args = PayrollCli().parser.parse_args(
            ["create-run", "--company-id", str(company_id), "--month", "1", "--year", "2026", "--all-groupings"]
        )

        assert args.company_id == company_id
        assert args.month == 1
        assert args.all_groupings is True
        assert args.actor == "cli"

    def test_no_command_prints_help(self, capsys):
        assert PayrollCli().run([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_bad_uuid_rejected(self):
        with pytest.raises(SystemExit):
            PayrollCli().parser.parse_args(["summary", "--company-id", "nope", "--run-id", str(uuid4())])
