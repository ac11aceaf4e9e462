"""Read-only projections over persisted payroll runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.money import minutes_to_hours, round_to_cents, to_decimal
from mypayroll.calculators.period import compute_period
from mypayroll.calculators.types import YTDSnapshot
from mypayroll.errors import Forbidden, NotFound
from mypayroll.models import ClockRecord, Company, Department, Employee, PayItem, PayrollRun
from mypayroll.payroll_config import PayrollConfig, config_for_company
from mypayroll.services.inputs_resolver import InputsResolver

# Fixed divisors for the OT estimate, independent of company config.
OT_ESTIMATE_DAYS = Decimal("22")
OT_ESTIMATE_HOURS = Decimal("8")
OT_ESTIMATE_MULTIPLIER = Decimal("1.5")

SUMMARY_COLUMNS = (
    "basic_salary",
    "wages",
    "fixed_allowance",
    "flexible_allowance",
    "ot_amount",
    "ph_pay",
    "commission_amount",
    "incentive_amount",
    "trade_commission_amount",
    "outstation_amount",
    "bonus",
    "claims_amount",
    "attendance_bonus",
    "unpaid_leave_deduction",
    "absent_day_deduction",
    "short_hours_deduction",
    "advance_deduction",
    "other_deductions",
    "gross_salary",
    "statutory_base",
    "epf_employee",
    "epf_employer",
    "socso_employee",
    "socso_employer",
    "eis_employee",
    "eis_employer",
    "pcb",
    "total_deductions",
    "net_pay",
    "employer_total_cost",
)


@dataclass
class RunSummary:
    run_id: UUID
    period_label: str
    status: str
    employee_count: int
    totals: dict[str, Decimal]
    by_department: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class OTSummaryRow:
    employee_id: UUID
    employee_code: str
    name: str
    approved_hours: Decimal
    pending_hours: Decimal
    rejected_hours: Decimal
    estimated_pay: Decimal


class ReportingService:
    """Tenant-scoped summaries of runs, OT and year-to-date figures.

    Nothing here writes to the database.
    """

    def __init__(self, session: AsyncSession, company_id: UUID | None):
        if company_id is None:
            raise Forbidden("Company context required")
        self.session = session
        self.company_id = company_id

    async def _load_config(self) -> PayrollConfig:
        company = await self.session.get(Company, self.company_id)
        if company is None:
            raise NotFound(f"Company {self.company_id} not found", self.company_id)
        return config_for_company(company)

    async def _get_run(self, run_id: UUID) -> PayrollRun:
        run = await self.session.get(PayrollRun, run_id)
        if run is None:
            raise NotFound(f"Payroll run {run_id} not found", run_id)
        if run.company_id != self.company_id:
            raise Forbidden("Access denied: payroll run belongs to another company", run_id)
        return run

    async def run_summary(self, run_id: UUID) -> RunSummary:
        """Totals of every earning, deduction and statutory line plus net by department."""
        run = await self._get_run(run_id)

        sums = [func.coalesce(func.sum(getattr(PayItem, name)), 0).label(name) for name in SUMMARY_COLUMNS]
        result = await self.session.execute(
            select(func.count(PayItem.item_id).label("item_count"), *sums).where(PayItem.run_id == run_id)
        )
        row = result.one()
        totals = {name: round_to_cents(to_decimal(getattr(row, name))) for name in SUMMARY_COLUMNS}

        by_dept = await self.session.execute(
            select(
                PayItem.department_id,
                Department.name,
                func.count(PayItem.item_id).label("item_count"),
                func.coalesce(func.sum(PayItem.gross_salary), 0).label("gross"),
                func.coalesce(func.sum(PayItem.net_pay), 0).label("net"),
            )
            .outerjoin(Department, Department.department_id == PayItem.department_id)
            .where(PayItem.run_id == run_id)
            .group_by(PayItem.department_id, Department.name)
        )
        departments = [
            {
                "department_id": dept.department_id,
                "name": dept.name or "Unassigned",
                "employee_count": dept.item_count,
                "total_gross": round_to_cents(to_decimal(dept.gross)),
                "total_net": round_to_cents(to_decimal(dept.net)),
            }
            for dept in by_dept
        ]
        departments.sort(key=lambda d: d["name"])

        return RunSummary(
            run_id=run.run_id,
            period_label=run.period_label or f"{run.month:02d}/{run.year}",
            status=run.status,
            employee_count=row.item_count,
            totals=totals,
            by_department=departments,
        )

    async def ot_summary(
        self,
        month: int,
        year: int,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
    ) -> list[OTSummaryRow]:
        """Approved, pending and rejected OT hours per active employee.

        Estimated pay prices approved hours at basic / 22 / 8 x 1.5.
        """
        config = await self._load_config()
        period = compute_period(config.period, month, year)
        ot = func.coalesce(ClockRecord.ot_minutes, 0)
        stmt = (
            select(
                Employee.employee_id,
                Employee.employee_code,
                Employee.name,
                Employee.default_basic_salary,
                func.sum(case((ClockRecord.ot_approved.is_(True), ot), else_=0)).label("approved"),
                func.sum(case((ClockRecord.ot_approved.is_(None), ot), else_=0)).label("pending"),
                func.sum(case((ClockRecord.ot_approved.is_(False), ot), else_=0)).label("rejected"),
            )
            .join(ClockRecord, ClockRecord.employee_id == Employee.employee_id)
            .where(
                Employee.company_id == self.company_id,
                Employee.status == "active",
                ClockRecord.work_date >= period.start,
                ClockRecord.work_date <= period.end,
                ClockRecord.ot_minutes > 0,
            )
            .group_by(
                Employee.employee_id,
                Employee.employee_code,
                Employee.name,
                Employee.default_basic_salary,
            )
            .order_by(Employee.employee_code)
        )
        if department_id is not None:
            stmt = stmt.where(Employee.department_id == department_id)
        if outlet_id is not None:
            stmt = stmt.where(Employee.outlet_id == outlet_id)

        rows: list[OTSummaryRow] = []
        for row in await self.session.execute(stmt):
            approved = round_to_cents(minutes_to_hours(int(row.approved or 0)))
            hourly = to_decimal(row.default_basic_salary) / OT_ESTIMATE_DAYS / OT_ESTIMATE_HOURS
            rows.append(
                OTSummaryRow(
                    employee_id=row.employee_id,
                    employee_code=row.employee_code,
                    name=row.name,
                    approved_hours=approved,
                    pending_hours=round_to_cents(minutes_to_hours(int(row.pending or 0))),
                    rejected_hours=round_to_cents(minutes_to_hours(int(row.rejected or 0))),
                    estimated_pay=round_to_cents(approved * hourly * OT_ESTIMATE_MULTIPLIER),
                )
            )
        return rows

    async def ytd_for_employee(self, employee_id: UUID, month: int, year: int) -> YTDSnapshot:
        """YTD figures PCB would use for ``month``/``year``."""
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFound(f"Employee {employee_id} not found", employee_id)
        if employee.company_id != self.company_id:
            raise Forbidden("Access denied: employee belongs to another company", employee_id)
        config = await self._load_config()
        period = compute_period(config.period, month, year)
        resolver = InputsResolver(self.session, self.company_id, config, period)
        snapshots = await resolver.load_ytd([employee_id])
        return snapshots.get(employee_id, YTDSnapshot())

    async def monthly_overview(self, year: int) -> list[dict[str, Any]]:
        """Per-run totals for a year, ordered by month then grouping."""
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.company_id == self.company_id, PayrollRun.year == year)
            .order_by(PayrollRun.month, PayrollRun.grouping_key)
        )
        overview = []
        for run in result.scalars():
            overview.append(
                {
                    "run_id": run.run_id,
                    "month": run.month,
                    "period_label": run.period_label,
                    "grouping_key": run.grouping_key,
                    "status": run.status,
                    "employee_count": run.employee_count,
                    "total_gross": to_decimal(run.total_gross),
                    "total_deductions": to_decimal(run.total_deductions),
                    "total_net": to_decimal(run.total_net),
                    "total_employer_cost": to_decimal(run.total_employer_cost),
                }
            )
        return overview
