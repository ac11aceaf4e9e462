"""Tests for payroll reporting."""

from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest

from mypayroll.errors import Forbidden, NotFound
from mypayroll.services import PayRunService, ReportingService


class TestRunSummary:
    """Column totals and the department breakdown."""

    async def test_totals(self, session, company, department, make_employee):
        await make_employee(company, "E001", "Aminah", department_id=department.department_id)
        await make_employee(company, "E002", "Ben", basic="4000")
        run = await PayRunService(session, company.company_id).create_run(1, 2026)

        summary = await ReportingService(session, company.company_id).run_summary(run.run_id)

        assert summary.employee_count == 2
        assert summary.period_label == "January 2026"
        assert summary.status == "draft"
        assert summary.totals["basic_salary"] == Decimal("7000.00")
        assert summary.totals["gross_salary"] == run.total_gross
        assert summary.totals["net_pay"] == run.total_net
        assert summary.totals["bonus"] == Decimal("0.00")

    async def test_by_department(self, session, company, department, make_employee):
        """Employees without a department are grouped as Unassigned."""
        await make_employee(company, "E001", "Aminah", department_id=department.department_id)
        await make_employee(company, "E002", "Ben", basic="4000")
        run = await PayRunService(session, company.company_id).create_run(1, 2026)

        summary = await ReportingService(session, company.company_id).run_summary(run.run_id)

        assert [d["name"] for d in summary.by_department] == ["Operations", "Unassigned"]
        operations, unassigned = summary.by_department
        assert operations["department_id"] == department.department_id
        assert operations["employee_count"] == 1
        assert operations["total_gross"] == Decimal("3000.00")
        assert operations["total_net"] == Decimal("2649.35")
        assert unassigned["department_id"] is None
        assert unassigned["total_gross"] == Decimal("4000.00")

    async def test_other_company_forbidden(self, session, company, make_employee):
        await make_employee(company, "E001", "Aminah")
        run = await PayRunService(session, company.company_id).create_run(1, 2026)

        with pytest.raises(Forbidden):
            await ReportingService(session, uuid4()).run_summary(run.run_id)

    async def test_unknown_run(self, session, company):
        with pytest.raises(NotFound):
            await ReportingService(session, company.company_id).run_summary(uuid4())

    def test_company_context_required(self):
        with pytest.raises(Forbidden):
            ReportingService(None, None)


class TestOTSummary:
    """OT hours by approval state."""

    async def test_hours_by_state(self, session, company, make_employee, make_shift):
        """Estimated pay prices approved hours at basic / 22 / 8 x 1.5."""
        employee = await make_employee(company, "E001", "Aminah", basic="3520")
        await make_shift(company, employee, date(2026, 1, 5), clock_out=time(20, 0), ot_minutes=120,
                         ot_approved=True)
        await make_shift(company, employee, date(2026, 1, 6), clock_out=time(19, 30), ot_minutes=90)
        await make_shift(company, employee, date(2026, 1, 7), clock_out=time(19, 0), ot_minutes=60,
                         ot_approved=False)
        await make_shift(company, employee, date(2026, 2, 2), clock_out=time(20, 0), ot_minutes=120,
                         ot_approved=True)

        rows = await ReportingService(session, company.company_id).ot_summary(1, 2026)

        assert len(rows) == 1
        row = rows[0]
        assert row.employee_code == "E001"
        assert row.approved_hours == Decimal("2.00")
        assert row.pending_hours == Decimal("1.50")
        assert row.rejected_hours == Decimal("1.00")
        assert row.estimated_pay == Decimal("60.00")

    async def test_follows_company_period(self, session, company, make_employee, make_shift):
        """Mid-month payroll: OT on 20 January is paid in February."""
        company.payroll_config = {"period": {"type": "mid_month", "end_day": 14}}
        await session.commit()
        employee = await make_employee(company, "E001", "Aminah")
        await make_shift(company, employee, date(2026, 1, 20), clock_out=time(20, 0), ot_minutes=120,
                         ot_approved=True)
        service = ReportingService(session, company.company_id)

        february = await service.ot_summary(2, 2026)
        january = await service.ot_summary(1, 2026)

        assert [row.approved_hours for row in february] == [Decimal("2.00")]
        assert january == []

    async def test_only_active_with_overtime(self, session, company, department, make_employee, make_shift):
        """Resigned staff, zero-OT days and other departments are left out."""
        worker = await make_employee(company, "E001", "Aminah", department_id=department.department_id)
        leaver = await make_employee(company, "E002", "Ben", status="resigned", resign_date=date(2026, 1, 20),
                                     department_id=department.department_id)
        elsewhere = await make_employee(company, "E003", "Chong")
        await make_shift(company, worker, date(2026, 1, 5), ot_minutes=0)
        await make_shift(company, leaver, date(2026, 1, 5), clock_out=time(20, 0), ot_minutes=120)
        await make_shift(company, elsewhere, date(2026, 1, 5), clock_out=time(20, 0), ot_minutes=120)

        rows = await ReportingService(session, company.company_id).ot_summary(
            1, 2026, department_id=department.department_id
        )

        assert rows == []


class TestYearToDate:
    """YTD figures from finalized runs."""

    async def test_only_finalized_earlier_months(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")
        employee_id = employee.employee_id
        service = PayRunService(session, company.company_id)
        january = await service.create_run(1, 2026)
        await service.finalize(january.run_id)
        await service.create_run(2, 2026)
        march = await service.create_run(3, 2026)
        await service.finalize(march.run_id)

        ytd = await ReportingService(session, company.company_id).ytd_for_employee(employee_id, 3, 2026)

        assert ytd.gross == Decimal("3000.00")
        assert ytd.epf == Decimal("330.00")
        assert ytd.statutory_base == Decimal("3000.00")

    async def test_no_history(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")

        ytd = await ReportingService(session, company.company_id).ytd_for_employee(employee.employee_id, 1, 2026)

        assert ytd.gross == Decimal("0")
        assert ytd.pcb == Decimal("0")

    async def test_other_company_employee(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")

        with pytest.raises(Forbidden):
            await ReportingService(session, uuid4()).ytd_for_employee(employee.employee_id, 3, 2026)


class TestMonthlyOverview:
    async def test_runs_in_month_order(self, session, company, make_employee):
        await make_employee(company, "E001", "Aminah")
        service = PayRunService(session, company.company_id)
        await service.create_run(2, 2026)
        january = await service.create_run(1, 2026)
        await service.finalize(january.run_id)
        await service.create_run(12, 2025)

        overview = await ReportingService(session, company.company_id).monthly_overview(2026)

        assert [(row["month"], row["status"]) for row in overview] == [(1, "finalized"), (2, "draft")]
        assert overview[0]["total_gross"] == Decimal("3000.00")
        assert overview[0]["employee_count"] == 1
