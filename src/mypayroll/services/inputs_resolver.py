"""Resolve the per-employee inputs of a payroll run.

Every loader returns a map keyed by employee id and runs inside the caller's
transaction, so a run sees one consistent snapshot. Supporting tables owned
by other workflows (sales, commissions, leave, claims, advances, schedules)
may be missing on a deployment; their loaders then return an empty map and
record a diagnostic instead of failing the run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.attendance import leave_overlap_weekdays
from mypayroll.calculators.money import ZERO, to_decimal
from mypayroll.calculators.period import previous_month
from mypayroll.calculators.policy import EmployeeInputs, PriorItem, build_employee_attributes
from mypayroll.calculators.types import ClockRow, OTRuleSet, Period, ScheduleRow, WorkType, YTDSnapshot
from mypayroll.database import dialect_name
from mypayroll.models import (
    AllowanceType,
    Claim,
    ClockRecord,
    CommissionType,
    Department,
    Employee,
    EmployeeAllowance,
    EmployeeCommission,
    LeaveRequest,
    LeaveType,
    OTRule,
    PayItem,
    PayrollRun,
    PublicHoliday,
    SalaryAdvance,
    SalesRecord,
    ScheduleEntry,
)
from mypayroll.payroll_config import PayrollConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVE_SCHEDULE_STATUSES = ("scheduled", "confirmed", "completed")


@dataclass(frozen=True)
class AllowanceTotals:
    """Active flexible allowances for one employee."""

    taxable: Decimal = ZERO
    non_taxable: Decimal = ZERO


@dataclass
class ResolvedInputs:
    """Materialized input maps for one company, period and cohort."""

    prior_items: dict[UUID, PriorItem] = field(default_factory=dict)
    sales: dict[UUID, Decimal] = field(default_factory=dict)
    commissions: dict[UUID, Decimal] = field(default_factory=dict)
    allowances: dict[UUID, AllowanceTotals] = field(default_factory=dict)
    unpaid_leave_days: dict[UUID, Decimal] = field(default_factory=dict)
    paid_leave_days: dict[UUID, Decimal] = field(default_factory=dict)
    claims: dict[UUID, Decimal] = field(default_factory=dict)
    advances: dict[UUID, Decimal] = field(default_factory=dict)
    holidays: set[date] = field(default_factory=set)
    schedules: dict[UUID, list[ScheduleRow]] = field(default_factory=dict)
    clocks: dict[UUID, list[ClockRow]] = field(default_factory=dict)
    ot_rules: dict[UUID | None, OTRuleSet] = field(default_factory=dict)
    ytd: dict[UUID, YTDSnapshot] = field(default_factory=dict)
    structure_codes: dict[UUID, str | None] = field(default_factory=dict)
    schedules_available: bool = True
    diagnostics: list[str] = field(default_factory=list)

    def ot_rules_for(self, department_id: UUID | None) -> OTRuleSet:
        """Department rule, else the company rule, else defaults."""
        if department_id is not None and department_id in self.ot_rules:
            return self.ot_rules[department_id]
        return self.ot_rules.get(None, OTRuleSet())

    def for_employee(self, employee: Employee, period: Period) -> EmployeeInputs:
        """Assemble the engine inputs for one employee."""
        emp_id = employee.employee_id
        attrs, assumed = build_employee_attributes(employee, period.end)
        allowances = self.allowances.get(emp_id, AllowanceTotals())
        return EmployeeInputs(
            employee_id=emp_id,
            name=employee.name,
            attrs=attrs,
            employee_code=employee.employee_code or "",
            work_type=WorkType(employee.work_type or WorkType.FULL_TIME.value),
            department_id=employee.department_id,
            outlet_id=employee.outlet_id,
            payroll_structure_code=self.structure_codes.get(employee.department_id)
            if employee.department_id
            else None,
            age_assumed=assumed,
            default_basic_salary=to_decimal(employee.default_basic_salary),
            default_allowance=to_decimal(employee.default_allowance),
            fixed_ot_amount=to_decimal(employee.fixed_ot_amount),
            hourly_rate=to_decimal(employee.hourly_rate) if employee.hourly_rate is not None else None,
            allowance_pcb=employee.allowance_pcb or "included",
            prior=self.prior_items.get(emp_id),
            sales_total=self.sales.get(emp_id, ZERO),
            commission_total=self.commissions.get(emp_id, ZERO),
            taxable_allowance=allowances.taxable,
            non_taxable_allowance=allowances.non_taxable,
            unpaid_leave_days=self.unpaid_leave_days.get(emp_id, ZERO),
            paid_leave_days=self.paid_leave_days.get(emp_id, ZERO),
            claims_total=self.claims.get(emp_id, ZERO),
            advance_deduction=self.advances.get(emp_id, ZERO),
            schedules=self.schedules.get(emp_id, []),
            clocks=self.clocks.get(emp_id, []),
            ot_rules=self.ot_rules_for(employee.department_id),
            ytd=self.ytd.get(emp_id, YTDSnapshot()),
            schedules_available=self.schedules_available,
        )


class InputsResolver:
    """Loads every input map the policy engine needs for a run."""

    def __init__(self, session: AsyncSession, company_id: UUID, config: PayrollConfig, period: Period):
        self.session = session
        self.company_id = company_id
        self.config = config
        self.period = period

    async def resolve(self, employee_ids: Iterable[UUID]) -> ResolvedInputs:
        """Resolve all maps for the given cohort.

        Maps are fully materialized before the caller starts its per-employee
        loop.
        """
        ids = list(employee_ids)
        features = self.config.features
        resolved = ResolvedInputs()
        if not ids:
            return resolved

        resolved.prior_items = await self.load_prior_items(ids)
        resolved.ytd = await self.load_ytd(ids)
        resolved.structure_codes = await self.load_structure_codes()

        if features.indoor_sales_logic:
            resolved.sales = await self._tolerant("sales_records", resolved, lambda: self.load_sales(ids))
        if features.flexible_commissions:
            resolved.commissions = await self._tolerant(
                "employee_commissions", resolved, lambda: self.load_commissions(ids)
            )
        if features.flexible_allowances:
            resolved.allowances = await self._tolerant(
                "employee_allowances", resolved, lambda: self.load_allowances(ids)
            )
        leave = await self._tolerant("leave_requests", resolved, lambda: self.load_leave_days(ids))
        resolved.unpaid_leave_days = leave.get(False, {})
        resolved.paid_leave_days = leave.get(True, {})
        if features.auto_claims_linking:
            resolved.claims = await self._tolerant("claims", resolved, lambda: self.load_claims(ids))
        resolved.advances = await self._tolerant("salary_advances", resolved, lambda: self.load_advances(ids))
        resolved.holidays = await self._tolerant("public_holidays", resolved, self.load_public_holidays, set)
        resolved.ot_rules = await self._tolerant("ot_rules", resolved, self.load_ot_rules)
        resolved.clocks = await self._tolerant("clock_in_records", resolved, lambda: self.load_clock_rows(ids))

        diagnostics_before = len(resolved.diagnostics)
        resolved.schedules = await self._tolerant("schedules", resolved, lambda: self.load_schedule_rows(ids))
        resolved.schedules_available = len(resolved.diagnostics) == diagnostics_before
        return resolved

    async def _tolerant(
        self,
        table: str,
        resolved: ResolvedInputs,
        loader: Callable[[], Awaitable[T]],
        empty: Callable[[], Any] = dict,
    ) -> T:
        """Run a loader for a supporting table, degrading to an empty result."""
        try:
            if dialect_name(self.session) == "postgresql":
                # A failed statement would abort the whole transaction.
                async with self.session.begin_nested():
                    return await loader()
            return await loader()
        except (ProgrammingError, OperationalError) as exc:
            logger.warning("Input table %s unavailable, continuing without it: %s", table, exc)
            resolved.diagnostics.append(f"{table} unavailable; treated as empty")
            return empty()

    # ===== Cohort =====

    async def load_cohort(
        self,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
        employee_ids: Iterable[UUID] | None = None,
    ) -> list[Employee]:
        """Active employees, plus those who resigned inside the period."""
        stmt = select(Employee).where(
            Employee.company_id == self.company_id,
            or_(
                Employee.status == "active",
                and_(
                    Employee.status == "resigned",
                    Employee.resign_date >= self.period.start,
                    Employee.resign_date <= self.period.end,
                ),
            ),
        )
        if department_id is not None:
            stmt = stmt.where(Employee.department_id == department_id)
        if outlet_id is not None:
            stmt = stmt.where(Employee.outlet_id == outlet_id)
        if employee_ids is not None:
            stmt = stmt.where(Employee.employee_id.in_(list(employee_ids)))
        result = await self.session.execute(stmt.order_by(Employee.employee_code, Employee.name))
        return list(result.scalars().all())

    async def employees_with_attendance(self, employee_ids: Iterable[UUID]) -> set[UUID]:
        """Employees with a schedule or a clock-in inside the period."""
        ids = list(employee_ids)
        if not ids:
            return set()
        scheduled = await self.session.execute(
            select(ScheduleEntry.employee_id)
            .where(
                ScheduleEntry.employee_id.in_(ids),
                ScheduleEntry.schedule_date >= self.period.start,
                ScheduleEntry.schedule_date <= self.period.end,
            )
            .distinct()
        )
        clocked = await self.session.execute(
            select(ClockRecord.employee_id)
            .where(
                ClockRecord.employee_id.in_(ids),
                ClockRecord.work_date >= self.period.start,
                ClockRecord.work_date <= self.period.end,
                ClockRecord.clock_in_1.is_not(None),
            )
            .distinct()
        )
        return set(scheduled.scalars().all()) | set(clocked.scalars().all())

    # ===== Payroll history =====

    async def load_prior_items(self, employee_ids: list[UUID]) -> dict[UUID, PriorItem]:
        """Last month's pay items by employee (any run of the company)."""
        prev_month, prev_year = previous_month(self.period.month, self.period.year)
        result = await self.session.execute(
            select(PayItem.employee_id, PayItem.basic_salary, PayItem.fixed_allowance, PayItem.net_pay)
            .join(PayrollRun, PayItem.run_id == PayrollRun.run_id)
            .where(
                PayrollRun.company_id == self.company_id,
                PayrollRun.month == prev_month,
                PayrollRun.year == prev_year,
                PayItem.employee_id.in_(employee_ids),
            )
        )
        return {
            row.employee_id: PriorItem(
                basic_salary=to_decimal(row.basic_salary),
                fixed_allowance=to_decimal(row.fixed_allowance),
                net_pay=to_decimal(row.net_pay),
            )
            for row in result
        }

    async def load_ytd(self, employee_ids: list[UUID]) -> dict[UUID, YTDSnapshot]:
        """Sums over finalized runs earlier in the same year."""
        result = await self.session.execute(
            select(
                PayItem.employee_id,
                func.coalesce(func.sum(PayItem.gross_salary), 0).label("gross"),
                func.coalesce(func.sum(PayItem.epf_employee), 0).label("epf"),
                func.coalesce(func.sum(PayItem.pcb), 0).label("pcb"),
                func.coalesce(func.sum(PayItem.statutory_base), 0).label("statutory_base"),
            )
            .join(PayrollRun, PayItem.run_id == PayrollRun.run_id)
            .where(
                PayrollRun.company_id == self.company_id,
                PayrollRun.year == self.period.year,
                PayrollRun.month < self.period.month,
                PayrollRun.status == "finalized",
                PayItem.employee_id.in_(employee_ids),
            )
            .group_by(PayItem.employee_id)
        )
        return {
            row.employee_id: YTDSnapshot(
                gross=to_decimal(row.gross),
                epf=to_decimal(row.epf),
                pcb=to_decimal(row.pcb),
                statutory_base=to_decimal(row.statutory_base),
            )
            for row in result
        }

    async def load_structure_codes(self) -> dict[UUID, str | None]:
        result = await self.session.execute(
            select(Department.department_id, Department.payroll_structure_code).where(
                Department.company_id == self.company_id
            )
        )
        return {row.department_id: row.payroll_structure_code for row in result}

    # ===== Earnings inputs =====

    async def load_sales(self, employee_ids: list[UUID]) -> dict[UUID, Decimal]:
        result = await self.session.execute(
            select(SalesRecord.employee_id, func.sum(SalesRecord.total_sales).label("total"))
            .where(
                SalesRecord.company_id == self.company_id,
                SalesRecord.month == self.period.month,
                SalesRecord.year == self.period.year,
                SalesRecord.employee_id.in_(employee_ids),
            )
            .group_by(SalesRecord.employee_id)
        )
        return {row.employee_id: to_decimal(row.total) for row in result}

    async def load_commissions(self, employee_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Active commissions whose commission type is also active."""
        result = await self.session.execute(
            select(EmployeeCommission.employee_id, func.sum(EmployeeCommission.amount).label("total"))
            .join(CommissionType, EmployeeCommission.commission_type_id == CommissionType.commission_type_id)
            .where(
                EmployeeCommission.is_active.is_(True),
                CommissionType.is_active.is_(True),
                EmployeeCommission.employee_id.in_(employee_ids),
            )
            .group_by(EmployeeCommission.employee_id)
        )
        return {row.employee_id: to_decimal(row.total) for row in result}

    async def load_allowances(self, employee_ids: list[UUID]) -> dict[UUID, AllowanceTotals]:
        """Active allowances split into taxable and non-taxable subtotals."""
        result = await self.session.execute(
            select(
                EmployeeAllowance.employee_id,
                AllowanceType.is_taxable,
                func.sum(EmployeeAllowance.amount).label("total"),
            )
            .join(AllowanceType, EmployeeAllowance.allowance_type_id == AllowanceType.allowance_type_id)
            .where(
                EmployeeAllowance.is_active.is_(True),
                AllowanceType.is_active.is_(True),
                EmployeeAllowance.employee_id.in_(employee_ids),
            )
            .group_by(EmployeeAllowance.employee_id, AllowanceType.is_taxable)
        )
        split: dict[UUID, dict[bool, Decimal]] = defaultdict(dict)
        for row in result:
            split[row.employee_id][bool(row.is_taxable)] = to_decimal(row.total)
        return {
            emp_id: AllowanceTotals(taxable=parts.get(True, ZERO), non_taxable=parts.get(False, ZERO))
            for emp_id, parts in split.items()
        }

    # ===== Deduction inputs =====

    async def load_leave_days(self, employee_ids: list[UUID]) -> dict[bool, dict[UUID, Decimal]]:
        """Approved leave weekdays inside the period, keyed by ``is_paid``."""
        result = await self.session.execute(
            select(LeaveRequest.employee_id, LeaveRequest.start_date, LeaveRequest.end_date, LeaveType.is_paid)
            .join(LeaveType, LeaveRequest.leave_type_id == LeaveType.leave_type_id)
            .where(
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= self.period.end,
                LeaveRequest.end_date >= self.period.start,
                LeaveRequest.employee_id.in_(employee_ids),
            )
        )
        days: dict[bool, dict[UUID, Decimal]] = {True: defaultdict(lambda: ZERO), False: defaultdict(lambda: ZERO)}
        for row in result:
            overlap = leave_overlap_weekdays(row.start_date, row.end_date, self.period)
            days[bool(row.is_paid)][row.employee_id] += Decimal(overlap)
        return {paid: dict(by_employee) for paid, by_employee in days.items()}

    async def load_claims(self, employee_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Approved claims not yet paid, dated inside the period."""
        result = await self.session.execute(
            select(Claim.employee_id, func.sum(Claim.amount).label("total"))
            .where(
                Claim.status == "approved",
                Claim.linked_pay_item_id.is_(None),
                Claim.claim_date >= self.period.start,
                Claim.claim_date <= self.period.end,
                Claim.employee_id.in_(employee_ids),
            )
            .group_by(Claim.employee_id)
        )
        return {row.employee_id: to_decimal(row.total) for row in result}

    async def load_advances(self, employee_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Salary advance deductions due this month."""
        month, year = self.period.month, self.period.year
        result = await self.session.execute(
            select(SalaryAdvance).where(
                SalaryAdvance.company_id == self.company_id,
                SalaryAdvance.status == "active",
                SalaryAdvance.remaining_balance > 0,
                SalaryAdvance.employee_id.in_(employee_ids),
                or_(
                    SalaryAdvance.expected_deduction_year.is_(None),
                    SalaryAdvance.expected_deduction_year < year,
                    and_(
                        SalaryAdvance.expected_deduction_year == year,
                        or_(
                            SalaryAdvance.expected_deduction_month.is_(None),
                            SalaryAdvance.expected_deduction_month <= month,
                        ),
                    ),
                ),
            )
        )
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for advance in result.scalars():
            totals[advance.employee_id] += advance_due(advance)
        return dict(totals)

    # ===== Calendar and attendance =====

    async def load_public_holidays(self) -> set[date]:
        result = await self.session.execute(
            select(PublicHoliday.holiday_date).where(
                PublicHoliday.company_id == self.company_id,
                PublicHoliday.holiday_date >= self.period.start,
                PublicHoliday.holiday_date <= self.period.end,
                PublicHoliday.extra_pay.is_(True),
            )
        )
        return set(result.scalars().all())

    async def load_ot_rules(self) -> dict[UUID | None, OTRuleSet]:
        """Active OT rules keyed by department id (None for the company rule)."""
        result = await self.session.execute(
            select(OTRule)
            .where(OTRule.company_id == self.company_id, OTRule.is_active.is_(True))
            .order_by(OTRule.created_at)
        )
        rules: dict[UUID | None, OTRuleSet] = {}
        for rule in result.scalars():
            rules.setdefault(rule.department_id, ot_rule_set(rule))
        return rules

    async def load_schedule_rows(self, employee_ids: list[UUID]) -> dict[UUID, list[ScheduleRow]]:
        result = await self.session.execute(
            select(ScheduleEntry)
            .where(
                ScheduleEntry.company_id == self.company_id,
                ScheduleEntry.employee_id.in_(employee_ids),
                ScheduleEntry.schedule_date >= self.period.start,
                ScheduleEntry.schedule_date <= self.period.end,
                ScheduleEntry.status.in_(ACTIVE_SCHEDULE_STATUSES),
            )
            .order_by(ScheduleEntry.schedule_date)
        )
        rows: dict[UUID, list[ScheduleRow]] = defaultdict(list)
        for entry in result.scalars():
            rows[entry.employee_id].append(
                ScheduleRow(
                    schedule_date=entry.schedule_date,
                    shift_start=entry.shift_start,
                    shift_end=entry.shift_end,
                    status=entry.status,
                )
            )
        return dict(rows)

    async def load_clock_rows(self, employee_ids: list[UUID]) -> dict[UUID, list[ClockRow]]:
        result = await self.session.execute(
            select(ClockRecord)
            .where(
                ClockRecord.company_id == self.company_id,
                ClockRecord.employee_id.in_(employee_ids),
                ClockRecord.work_date >= self.period.start,
                ClockRecord.work_date <= self.period.end,
            )
            .order_by(ClockRecord.work_date)
        )
        rows: dict[UUID, list[ClockRow]] = defaultdict(list)
        for record in result.scalars():
            rows[record.employee_id].append(clock_row(record))
        return dict(rows)


def advance_due(advance: SalaryAdvance) -> Decimal:
    """Amount of an advance to deduct this month."""
    remaining = to_decimal(advance.remaining_balance)
    if advance.deduction_method == "installment" and advance.installment_amount:
        return min(to_decimal(advance.installment_amount), remaining)
    return remaining


def ot_rule_set(rule: OTRule) -> OTRuleSet:
    return OTRuleSet(
        normal_hours_per_day=to_decimal(rule.normal_hours_per_day),
        ot_threshold_hours=to_decimal(rule.ot_threshold_hours),
        includes_break=bool(rule.includes_break),
        break_duration_minutes=rule.break_duration_minutes or 0,
        ot_normal_multiplier=to_decimal(rule.ot_normal_multiplier),
        ot_weekend_multiplier=to_decimal(rule.ot_weekend_multiplier),
        ot_ph_multiplier=to_decimal(rule.ot_ph_multiplier),
        ot_ph_after_hours_multiplier=(
            to_decimal(rule.ot_ph_after_hours_multiplier)
            if rule.ot_ph_after_hours_multiplier is not None
            else None
        ),
        min_ot_hours=to_decimal(rule.min_ot_hours),
        work_days_per_month=rule.work_days_per_month or 22,
    )


def clock_row(record: ClockRecord) -> ClockRow:
    return ClockRow(
        work_date=record.work_date,
        clock_in_1=record.clock_in_1,
        clock_out_1=record.clock_out_1,
        clock_in_2=record.clock_in_2,
        clock_out_2=record.clock_out_2,
        total_work_minutes=record.total_work_minutes,
        ot_minutes=record.ot_minutes,
        ot_approved=record.ot_approved,
        status=record.status,
    )
