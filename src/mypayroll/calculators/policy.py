"""Policy engine: one employee plus resolved inputs in, one pay item out.

Calculation pipeline (stable order per employee):
1) Resolve basic pay (carry-forward, defaults or part-time hours)
2) Commissions and allowances from the resolved maps
3) Indoor sales override
4) Overtime from clock records, falling back to the fixed OT amount
5) Public holiday pay
6) Attendance deductions (department or outlet rules)
7) Outlet attendance bonus
8) Gross
9) Statutory base
10) Statutory deductions
11) Totals
12) Variance against the prior month

Steps 1-7 vary by employee and company and are implemented as strategies
(pay basis x attendance). Steps 8-12 are shared and are also the re-entry
point for manual edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from mypayroll.calculators.attendance import (
    PART_TIME_OT_MULTIPLIER,
    clock_in_days,
    compute_absent_days,
    compute_ot_from_clock_in,
    compute_part_time_hours,
    compute_ph_days_worked,
    compute_schedule_based_attendance,
    compute_short_hours_for_non_outlet,
    hourly_rate_for,
)
from mypayroll.calculators.money import ZERO, percent, round_to_cents, to_decimal
from mypayroll.calculators.statutory import age_on, calculate_all_statutory
from mypayroll.calculators.types import (
    CalculationMethod,
    ClockRow,
    EmployeeAttributes,
    OTRuleSet,
    Period,
    RemunerationBreakdown,
    ScheduleRow,
    WorkType,
    YTDSnapshot,
)
from mypayroll.payroll_config import ItemOverrides, PayrollConfig

DEFAULT_ASSUMED_AGE = 30
INDOOR_SALES_STRUCTURE = "indoor_sales"

# Outlet attendance bonus by number of late + absent days; 4 or more pays 0.
ATTENDANCE_BONUS_STEPS: dict[int, Decimal] = {
    0: Decimal("400"),
    1: Decimal("300"),
    2: Decimal("200"),
    3: Decimal("100"),
}

# Fields kept from the stored item when it is recalculated.
PRESERVED_ON_RECALCULATE = (
    "ot_hours",
    "ot_amount",
    "absent_days",
    "absent_day_deduction",
    "incentive_amount",
    "trade_commission_amount",
    "outstation_amount",
    "bonus",
    "other_deductions",
)

STATUTORY_OVERRIDES = ("epf_employee", "socso_employee", "pcb")


@dataclass(frozen=True)
class PriorItem:
    """The employee's pay item from the previous month."""

    basic_salary: Decimal
    fixed_allowance: Decimal
    net_pay: Decimal


@dataclass
class EmployeeInputs:
    """Everything the engine needs about one employee for one period."""

    employee_id: UUID
    name: str
    attrs: EmployeeAttributes
    employee_code: str = ""
    work_type: WorkType = WorkType.FULL_TIME
    department_id: UUID | None = None
    outlet_id: UUID | None = None
    payroll_structure_code: str | None = None
    age_assumed: bool = False
    default_basic_salary: Decimal = ZERO
    default_allowance: Decimal = ZERO
    fixed_ot_amount: Decimal = ZERO
    hourly_rate: Decimal | None = None
    allowance_pcb: str = "included"
    prior: PriorItem | None = None
    sales_total: Decimal = ZERO
    commission_total: Decimal = ZERO
    taxable_allowance: Decimal = ZERO
    non_taxable_allowance: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    paid_leave_days: Decimal = ZERO
    claims_total: Decimal = ZERO
    advance_deduction: Decimal = ZERO
    schedules: list[ScheduleRow] = field(default_factory=list)
    clocks: list[ClockRow] = field(default_factory=list)
    ot_rules: OTRuleSet = field(default_factory=OTRuleSet)
    ytd: YTDSnapshot = field(default_factory=YTDSnapshot)
    schedules_available: bool = True

    @property
    def is_part_time(self) -> bool:
        return self.work_type == WorkType.PART_TIME

    @property
    def flexible_allowance(self) -> Decimal:
        return self.taxable_allowance + self.non_taxable_allowance


@dataclass(frozen=True)
class PolicyContext:
    """Company and period facts shared by every employee in a run."""

    config: PayrollConfig
    period: Period
    working_days: int
    ph_dates: frozenset[date] = frozenset()

    @property
    def standard_work_hours(self) -> Decimal:
        return self.config.rates.standard_work_hours

    def daily_rate(self, basic: Decimal) -> Decimal:
        if not self.working_days:
            return ZERO
        return basic / Decimal(self.working_days)

    def hourly_rate(self, basic: Decimal) -> Decimal:
        return hourly_rate_for(basic, self.working_days, self.standard_work_hours)


@dataclass
class PayItemComputation:
    """In-memory pay item. Field names match the ``payroll_items`` columns."""

    basic_salary: Decimal = ZERO
    wages: Decimal = ZERO
    part_time_hours: Decimal = ZERO
    part_time_ph_hours: Decimal = ZERO
    fixed_allowance: Decimal = ZERO
    flexible_allowance: Decimal = ZERO
    taxable_allowance: Decimal = ZERO
    ot_hours: Decimal = ZERO
    ot_amount: Decimal = ZERO
    ph_days_worked: Decimal = ZERO
    ph_pay: Decimal = ZERO
    commission_amount: Decimal = ZERO
    incentive_amount: Decimal = ZERO
    trade_commission_amount: Decimal = ZERO
    outstation_amount: Decimal = ZERO
    bonus: Decimal = ZERO
    claims_amount: Decimal = ZERO
    attendance_bonus: Decimal = ZERO
    sales_amount: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    unpaid_leave_deduction: Decimal = ZERO
    absent_days: Decimal = ZERO
    absent_day_deduction: Decimal = ZERO
    short_hours: Decimal = ZERO
    short_hours_deduction: Decimal = ZERO
    late_days: int = 0
    scheduled_days: int = 0
    days_not_worked: Decimal = ZERO
    advance_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO
    deduction_remarks: str | None = None
    gross_salary: Decimal = ZERO
    statutory_base: Decimal = ZERO
    epf_employee: Decimal = ZERO
    epf_employer: Decimal = ZERO
    epf_employee_normal: Decimal = ZERO
    epf_employee_additional: Decimal = ZERO
    socso_employee: Decimal = ZERO
    socso_employer: Decimal = ZERO
    eis_employee: Decimal = ZERO
    eis_employer: Decimal = ZERO
    pcb: Decimal = ZERO
    pcb_normal: Decimal = ZERO
    pcb_additional: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO
    employer_total_cost: Decimal = ZERO
    ytd_gross: Decimal = ZERO
    ytd_epf: Decimal = ZERO
    ytd_pcb: Decimal = ZERO
    ytd_statutory_base: Decimal = ZERO
    prev_month_net: Decimal | None = None
    variance_amount: Decimal | None = None
    variance_percent: Decimal | None = None
    calculation_method: str = CalculationMethod.BASIC.value
    manual_fields: list[str] = field(default_factory=list)
    calculation_details: dict[str, Any] = field(default_factory=dict)
    notes: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def attendance_deductions(self) -> Decimal:
        return self.unpaid_leave_deduction + self.absent_day_deduction + self.short_hours_deduction

    @classmethod
    def column_names(cls) -> list[str]:
        return [f.name for f in fields(cls) if f.name != "warnings"]

    def to_values(self) -> dict[str, Any]:
        """Column values for a PayItem row."""
        return {name: getattr(self, name) for name in self.column_names()}

    @classmethod
    def from_item(cls, item: Any) -> PayItemComputation:
        """Rebuild a computation from a stored PayItem row."""
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "warnings":
                continue
            value = getattr(item, f.name, None)
            if value is None:
                continue
            if f.name in ("manual_fields",):
                value = list(value)
            elif f.name == "calculation_details":
                value = dict(value)
            elif f.type in ("Decimal", "Decimal | None"):
                value = to_decimal(value)
            values[f.name] = value
        return cls(**values)


def build_employee_attributes(employee: Any, as_of: date) -> tuple[EmployeeAttributes, bool]:
    """Statutory attributes for an Employee row.

    Returns the attributes and whether the age was assumed because the date
    of birth is missing.
    """
    assumed = employee.date_of_birth is None
    age = DEFAULT_ASSUMED_AGE if assumed else age_on(employee.date_of_birth, as_of)
    attrs = EmployeeAttributes(
        age=age,
        residency_status=employee.residency_status or "malaysian",
        marital_status=employee.marital_status or "single",
        spouse_working=bool(employee.spouse_working),
        children_count=employee.children_count or 0,
        is_disabled=bool(employee.is_disabled),
        spouse_disabled=bool(employee.spouse_disabled),
    )
    return attrs, assumed


# ===== Pay basis strategies (steps 1-5) =====


class PayBasis:
    """Earnings for an employee: basic pay, commissions, OT and PH pay."""

    method = CalculationMethod.BASIC

    def resolve(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        self.resolve_basic(comp, inputs, ctx)
        self.resolve_commissions_and_allowances(comp, inputs, ctx)
        self.resolve_overtime(comp, inputs, ctx)
        self.resolve_ph_pay(comp, inputs, ctx)

    def resolve_basic(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        raise NotImplementedError

    def resolve_commissions_and_allowances(
        self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext
    ) -> None:
        features = ctx.config.features
        if features.flexible_commissions:
            comp.commission_amount = round_to_cents(inputs.commission_total)
        if features.flexible_allowances:
            comp.flexible_allowance = round_to_cents(inputs.flexible_allowance)
            comp.taxable_allowance = round_to_cents(inputs.taxable_allowance)

    def ot_rate(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> dict[str, Any]:
        """Keyword arguments for compute_ot_from_clock_in."""
        return {"basic_salary": comp.basic_salary}

    def resolve_overtime(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        features = ctx.config.features
        if features.auto_ot_from_clockin:
            try:
                result = compute_ot_from_clock_in(
                    inputs.clocks,
                    inputs.schedules,
                    ctx.period,
                    set(ctx.ph_dates),
                    inputs.ot_rules,
                    requires_approval=features.ot_requires_approval,
                    **self.ot_rate(comp, inputs, ctx),
                )
            except (ArithmeticError, ValueError, TypeError) as exc:
                comp.warnings.append(f"OT calculation failed for {inputs.name}: {exc}")
            else:
                comp.ot_hours = result.total_hours
                comp.ot_amount = round_to_cents(result.total_amount)
                if result.days:
                    comp.calculation_details["ot"] = result.summary()
                    comp.calculation_details["ot_days"] = [day.to_dict() for day in result.days]

        if comp.ot_amount == ZERO and inputs.fixed_ot_amount > ZERO:
            comp.ot_amount = round_to_cents(inputs.fixed_ot_amount)
            comp.calculation_details["ot_source"] = "fixed"

    def resolve_ph_pay(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        if not ctx.config.features.auto_ph_pay or not ctx.ph_dates:
            return
        try:
            days = compute_ph_days_worked(inputs.clocks, set(ctx.ph_dates))
            comp.ph_days_worked = Decimal(days)
            comp.ph_pay = round_to_cents(
                Decimal(days) * ctx.daily_rate(comp.basic_salary) * ctx.config.rates.ph_multiplier
            )
        except (ArithmeticError, ValueError) as exc:
            comp.warnings.append(f"PH pay calculation failed for {inputs.name}: {exc}")


class FullTimeBasis(PayBasis):
    """Monthly salaried employee."""

    def resolve_basic(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        if ctx.config.features.salary_carry_forward and inputs.prior is not None:
            comp.basic_salary = to_decimal(inputs.prior.basic_salary)
            comp.fixed_allowance = to_decimal(inputs.prior.fixed_allowance)
            comp.calculation_details["basic_source"] = "carry_forward"
        else:
            comp.basic_salary = to_decimal(inputs.default_basic_salary)
            comp.fixed_allowance = to_decimal(inputs.default_allowance)
            comp.calculation_details["basic_source"] = "employee_default"
        comp.calculation_method = self.method.value


class IndoorSalesBasis(FullTimeBasis):
    """Sales staff paid the higher of a guaranteed basic and their commission.

    The commission replaces basic pay when it is higher, so the separate
    commission line is zeroed.
    """

    def resolve_basic(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        super().resolve_basic(comp, inputs, ctx)
        rates = ctx.config.rates
        comp.sales_amount = round_to_cents(inputs.sales_total)
        commission = round_to_cents(inputs.sales_total * rates.indoor_sales_commission_rate / Decimal(100))
        if commission >= rates.indoor_sales_basic:
            comp.basic_salary = commission
            comp.calculation_method = CalculationMethod.COMMISSION.value
        else:
            comp.basic_salary = rates.indoor_sales_basic
            comp.calculation_method = CalculationMethod.BASIC.value
        comp.calculation_details["indoor_sales"] = {
            "sales": str(comp.sales_amount),
            "commission_rate": str(rates.indoor_sales_commission_rate),
            "computed_commission": str(commission),
            "guaranteed_basic": str(rates.indoor_sales_basic),
        }

    def resolve_commissions_and_allowances(
        self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext
    ) -> None:
        super().resolve_commissions_and_allowances(comp, inputs, ctx)
        comp.commission_amount = ZERO


class PartTimeBasis(PayBasis):
    """Hourly employee paid for scheduled, completed hours."""

    method = CalculationMethod.PART_TIME

    def _hourly(self, inputs: EmployeeInputs, ctx: PolicyContext) -> Decimal:
        if inputs.hourly_rate:
            return to_decimal(inputs.hourly_rate)
        return ctx.config.rates.part_time_hourly_rate

    def resolve_basic(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        hours = compute_part_time_hours(
            inputs.schedules,
            inputs.clocks,
            ctx.period,
            set(ctx.ph_dates),
            self._hourly(inputs, ctx),
            ctx.config.rates.part_time_ph_multiplier,
        )
        comp.basic_salary = ZERO
        comp.fixed_allowance = ZERO
        comp.wages = hours.normal_pay
        comp.part_time_hours = hours.normal_hours
        comp.part_time_ph_hours = hours.ph_hours
        comp.calculation_method = self.method.value
        comp.calculation_details["part_time"] = {
            "hourly_rate": str(self._hourly(inputs, ctx)),
            "normal_hours": str(hours.normal_hours),
            "ph_hours": str(hours.ph_hours),
            "normal_pay": str(hours.normal_pay),
            "ph_pay": str(hours.ph_pay),
            "days_counted": hours.days_counted,
        }
        self._ph_pay = hours.ph_pay

    def resolve_commissions_and_allowances(
        self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext
    ) -> None:
        comp.commission_amount = ZERO
        comp.flexible_allowance = ZERO
        comp.taxable_allowance = ZERO

    def ot_rate(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> dict[str, Any]:
        return {
            "basic_salary": ZERO,
            "hourly_rate": self._hourly(inputs, ctx),
            "flat_multiplier": PART_TIME_OT_MULTIPLIER,
        }

    def resolve_ph_pay(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        comp.ph_pay = self._ph_pay
        if ctx.ph_dates:
            comp.ph_days_worked = Decimal(compute_ph_days_worked(inputs.clocks, set(ctx.ph_dates)))


# ===== Attendance strategies (steps 6-7) =====


class AttendancePolicy:
    """Deductions for leave, absence and short hours."""

    def apply(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        raise NotImplementedError

    def _unpaid_leave(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        if not ctx.config.features.unpaid_leave_deduction:
            return
        comp.unpaid_leave_days = to_decimal(inputs.unpaid_leave_days)
        comp.unpaid_leave_deduction = round_to_cents(
            ctx.daily_rate(comp.basic_salary) * comp.unpaid_leave_days
        )

    def _absent_from_clock_ins(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        # Employees with no clock records at all are not on clock-in tracking.
        if not inputs.clocks:
            return
        comp.absent_days = compute_absent_days(
            ctx.working_days,
            clock_in_days(inputs.clocks, ctx.period),
            inputs.paid_leave_days,
            comp.unpaid_leave_days,
        )
        comp.absent_day_deduction = round_to_cents(ctx.daily_rate(comp.basic_salary) * comp.absent_days)


class NoAttendanceDeductions(AttendancePolicy):
    """Part-timers are only paid for hours worked."""

    def apply(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        return None


class DepartmentAttendance(AttendancePolicy):
    """Clock-in driven deductions for department-grouped companies."""

    def apply(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        self._unpaid_leave(comp, inputs, ctx)
        short = compute_short_hours_for_non_outlet(inputs.clocks, ctx.period, ctx.standard_work_hours)
        comp.short_hours = short.short_hours
        comp.short_hours_deduction = round_to_cents(ctx.hourly_rate(comp.basic_salary) * short.short_hours)
        if short.days:
            comp.calculation_details["short_hours_days"] = short.days
        self._absent_from_clock_ins(comp, inputs, ctx)


class OutletAttendance(AttendancePolicy):
    """Schedule driven pay for outlet-grouped companies.

    Basic is prorated over payable scheduled days, which replaces both the
    unpaid leave and absent day deductions. Without schedules the clock-in
    rules apply and a warning is recorded.
    """

    def apply(self, comp: PayItemComputation, inputs: EmployeeInputs, ctx: PolicyContext) -> None:
        self._unpaid_leave(comp, inputs, ctx)
        attendance = None
        if inputs.schedules_available:
            attendance = compute_schedule_based_attendance(
                inputs.schedules, inputs.clocks, ctx.period, ctx.standard_work_hours
            )

        if attendance is None or attendance.scheduled_days == 0:
            comp.warnings.append(
                f"{inputs.name} has no schedules for the period; attendance taken from clock-in records"
            )
            self._absent_from_clock_ins(comp, inputs, ctx)
            return

        basic = comp.basic_salary
        comp.scheduled_days = attendance.scheduled_days
        comp.late_days = attendance.late_days
        comp.unpaid_leave_days = Decimal(attendance.absent_days)
        comp.unpaid_leave_deduction = round_to_cents(
            basic - Decimal(attendance.payable_days) * (basic / Decimal(attendance.scheduled_days))
        )
        comp.short_hours = attendance.short_hours
        comp.short_hours_deduction = round_to_cents(ctx.hourly_rate(basic) * attendance.short_hours)
        comp.calculation_method = CalculationMethod.SCHEDULE.value
        comp.calculation_details["schedule"] = {
            "scheduled_days": attendance.scheduled_days,
            "attended_days": attendance.attended_days,
            "payable_days": attendance.payable_days,
            "absent_days": attendance.absent_days,
            "late_days": attendance.late_days,
            "short_hours": str(attendance.short_hours),
        }
        comp.attendance_bonus = attendance_bonus(attendance.late_days + attendance.absent_days)


def attendance_bonus(penalty_days: int) -> Decimal:
    """Stepped bonus for late plus absent days."""
    return ATTENDANCE_BONUS_STEPS.get(max(0, penalty_days), ZERO)


# ===== Engine =====


class PolicyEngine:
    """Computes pay items for one company and period."""

    def __init__(self, ctx: PolicyContext):
        self.ctx = ctx

    @property
    def config(self) -> PayrollConfig:
        return self.ctx.config

    def pay_basis_for(self, inputs: EmployeeInputs) -> PayBasis:
        if inputs.is_part_time:
            return PartTimeBasis()
        if self.config.features.indoor_sales_logic and inputs.payroll_structure_code == INDOOR_SALES_STRUCTURE:
            return IndoorSalesBasis()
        return FullTimeBasis()

    def attendance_for(self, inputs: EmployeeInputs) -> AttendancePolicy:
        if inputs.is_part_time:
            return NoAttendanceDeductions()
        if self.config.is_outlet_grouped:
            return OutletAttendance()
        return DepartmentAttendance()

    def compute(self, inputs: EmployeeInputs) -> PayItemComputation:
        """Full calculation for a new pay item."""
        comp = self.build(inputs)
        self.finalize(comp, inputs)
        return comp

    def build(self, inputs: EmployeeInputs) -> PayItemComputation:
        """Steps 1-7: earnings and attendance deductions."""
        comp = PayItemComputation()
        self.pay_basis_for(inputs).resolve(comp, inputs, self.ctx)
        self.attendance_for(inputs).apply(comp, inputs, self.ctx)
        comp.claims_amount = round_to_cents(inputs.claims_total)
        comp.advance_deduction = round_to_cents(inputs.advance_deduction)
        if inputs.age_assumed:
            comp.warnings.append(
                f"{inputs.name} has no date of birth; age {DEFAULT_ASSUMED_AGE} assumed for statutory contributions"
            )
        return comp

    def finalize(self, comp: PayItemComputation, inputs: EmployeeInputs) -> PayItemComputation:
        """Steps 8-12: gross, statutory, totals and variance."""
        statutory_cfg = self.config.statutory

        # 8) Gross
        earnings = (
            comp.basic_salary
            + comp.wages
            + comp.fixed_allowance
            + comp.flexible_allowance
            + comp.ot_amount
            + comp.ph_pay
            + comp.commission_amount
            + comp.incentive_amount
            + comp.trade_commission_amount
            + comp.outstation_amount
            + comp.bonus
            + comp.claims_amount
            + comp.attendance_bonus
        )
        comp.gross_salary = round_to_cents(max(ZERO, earnings - comp.attendance_deductions))

        # 9) Statutory base
        base = max(ZERO, comp.basic_salary + comp.wages - comp.attendance_deductions) + comp.bonus
        if statutory_cfg.statutory_on_commission:
            base += comp.commission_amount + comp.trade_commission_amount
        if statutory_cfg.statutory_on_ot:
            base += comp.ot_amount
        if statutory_cfg.statutory_on_ph_pay:
            base += comp.ph_pay
        if statutory_cfg.statutory_on_allowance:
            base += comp.fixed_allowance + comp.flexible_allowance
        if statutory_cfg.statutory_on_incentive:
            base += comp.incentive_amount
        comp.statutory_base = round_to_cents(base)

        # 10) Statutory deductions
        self._apply_statutory(comp, inputs)

        # 11) Totals
        comp.total_deductions = round_to_cents(
            comp.attendance_deductions
            + comp.epf_employee
            + comp.socso_employee
            + comp.eis_employee
            + comp.pcb
            + comp.advance_deduction
            + comp.other_deductions
        )
        comp.net_pay = round_to_cents(comp.gross_salary - comp.total_deductions + comp.attendance_deductions)
        comp.employer_total_cost = round_to_cents(
            comp.gross_salary + comp.epf_employer + comp.socso_employer + comp.eis_employer
        )

        # 12) Variance
        self._apply_variance(comp, inputs)

        if not inputs.is_part_time and comp.basic_salary == ZERO:
            comp.warnings.append(f"{inputs.name} has no basic salary set")
        return comp

    def _apply_statutory(self, comp: PayItemComputation, inputs: EmployeeInputs) -> None:
        statutory_cfg = self.config.statutory
        ytd = inputs.ytd if self.config.features.ytd_pcb_calculation else YTDSnapshot()
        comp.ytd_gross = ytd.gross
        comp.ytd_epf = ytd.epf
        comp.ytd_pcb = ytd.pcb
        comp.ytd_statutory_base = ytd.statutory_base

        commission = comp.commission_amount + comp.trade_commission_amount + comp.incentive_amount
        breakdown = RemunerationBreakdown(
            basic=max(ZERO, comp.basic_salary + comp.wages - comp.attendance_deductions),
            allowance=comp.fixed_allowance + comp.flexible_allowance,
            taxable_allowance=comp.taxable_allowance,
            commission=commission,
            bonus=comp.bonus,
            ot=comp.ot_amount,
            pcb_gross=comp.gross_salary,
            allowance_pcb=inputs.allowance_pcb,
        )
        # Additional remuneration inside the statutory base drives the EPF split.
        additional_in_base = comp.bonus
        if statutory_cfg.statutory_on_commission:
            additional_in_base += comp.commission_amount + comp.trade_commission_amount
        if statutory_cfg.statutory_on_ot:
            additional_in_base += comp.ot_amount
        if statutory_cfg.statutory_on_incentive:
            additional_in_base += comp.incentive_amount
        normal_wage = max(ZERO, comp.statutory_base - additional_in_base)

        result = calculate_all_statutory(
            comp.statutory_base,
            inputs.attrs,
            self.ctx.period.month,
            breakdown,
            ytd=ytd,
            normal_wage=normal_wage,
        )

        manual = set(comp.manual_fields)
        if statutory_cfg.epf_enabled:
            comp.epf_employer = result.epf.employer
            comp.epf_employee_normal = result.epf.employee_normal
            comp.epf_employee_additional = result.epf.employee_additional
            if "epf_employee" not in manual:
                comp.epf_employee = result.epf.employee
        else:
            comp.epf_employee = comp.epf_employer = ZERO
            comp.epf_employee_normal = comp.epf_employee_additional = ZERO

        if statutory_cfg.socso_enabled:
            comp.socso_employer = result.socso.employer
            if "socso_employee" not in manual:
                comp.socso_employee = result.socso.employee
        else:
            comp.socso_employee = comp.socso_employer = ZERO

        if statutory_cfg.eis_enabled:
            comp.eis_employee = result.eis.employee
            comp.eis_employer = result.eis.employer
        else:
            comp.eis_employee = comp.eis_employer = ZERO

        if statutory_cfg.pcb_enabled:
            comp.pcb_normal = result.pcb.normal_std
            comp.pcb_additional = result.pcb.additional_std
            if "pcb" not in manual:
                comp.pcb = result.pcb.total
        else:
            comp.pcb = comp.pcb_normal = comp.pcb_additional = ZERO

        comp.calculation_details["statutory"] = {
            "age": inputs.attrs.age,
            "age_assumed": inputs.age_assumed,
            "normal_wage": str(round_to_cents(normal_wage)),
            "pcb_chargeable_income": str(result.pcb.chargeable_income),
            "pcb_chargeable_income_additional": str(result.pcb.chargeable_income_additional),
            "pcb_remaining_months": result.pcb.remaining_months,
        }
        comp.calculation_details["ytd"] = ytd.to_dict()

    def _apply_variance(self, comp: PayItemComputation, inputs: EmployeeInputs) -> None:
        comp.prev_month_net = comp.variance_amount = comp.variance_percent = None
        if inputs.prior is None:
            return
        prev_net = to_decimal(inputs.prior.net_pay)
        comp.prev_month_net = prev_net
        if prev_net <= ZERO:
            return
        comp.variance_amount = round_to_cents(comp.net_pay - prev_net)
        comp.variance_percent = percent(comp.net_pay - prev_net, prev_net)
        if abs(comp.variance_percent) > self.config.features.variance_threshold:
            comp.warnings.append(variance_warning(inputs.name, comp.variance_percent))

    # ===== Re-entry points =====

    def apply_overrides(
        self,
        comp: PayItemComputation,
        overrides: ItemOverrides,
        inputs: EmployeeInputs,
    ) -> PayItemComputation:
        """Apply manual edits to a stored item and redo steps 8-12."""
        provided = overrides.provided()
        basic_changed = "basic_salary" in provided and provided["basic_salary"] is not None

        for name, value in provided.items():
            if name in ("deduction_remarks", "notes"):
                setattr(comp, name, value)
                continue
            if value is None:
                continue
            setattr(comp, name, value)
            if name not in comp.manual_fields:
                comp.manual_fields.append(name)

        if overrides.has("ot_hours") and not overrides.has("ot_amount"):
            comp.ot_amount = round_to_cents(
                overrides.ot_hours
                * self.ctx.hourly_rate(comp.basic_salary)
                * inputs.ot_rules.ot_normal_multiplier
            )
        if overrides.has("ph_days_worked") and not overrides.has("ph_pay") and not inputs.is_part_time:
            comp.ph_pay = round_to_cents(
                overrides.ph_days_worked
                * self.ctx.daily_rate(comp.basic_salary)
                * self.config.rates.ph_multiplier
            )
        if overrides.has("days_not_worked"):
            days = overrides.days_not_worked
            if not overrides.has("absent_day_deduction"):
                comp.absent_days = days
                comp.absent_day_deduction = round_to_cents(self.ctx.daily_rate(comp.basic_salary) * days)
            if not overrides.has("unpaid_leave_deduction"):
                comp.unpaid_leave_days = ZERO
                comp.unpaid_leave_deduction = ZERO
        elif basic_changed:
            self._rebase_attendance_deductions(comp)

        comp.warnings = []
        return self.finalize(comp, inputs)

    def _rebase_attendance_deductions(self, comp: PayItemComputation) -> None:
        """Day and hour rate deductions follow a new basic unless set by hand."""
        basic = comp.basic_salary
        schedule = comp.calculation_details.get("schedule")
        if comp.calculation_method == CalculationMethod.SCHEDULE.value and schedule and comp.scheduled_days:
            if "unpaid_leave_deduction" not in comp.manual_fields:
                payable = Decimal(schedule["payable_days"])
                comp.unpaid_leave_deduction = round_to_cents(
                    basic - payable * (basic / Decimal(comp.scheduled_days))
                )
        else:
            daily = self.ctx.daily_rate(basic)
            if "unpaid_leave_deduction" not in comp.manual_fields:
                comp.unpaid_leave_deduction = round_to_cents(daily * comp.unpaid_leave_days)
            if "absent_day_deduction" not in comp.manual_fields:
                comp.absent_day_deduction = round_to_cents(daily * comp.absent_days)
        if "short_hours_deduction" not in comp.manual_fields:
            comp.short_hours_deduction = round_to_cents(self.ctx.hourly_rate(basic) * comp.short_hours)

    def recalculate(self, stored: PayItemComputation, inputs: EmployeeInputs) -> PayItemComputation:
        """Recompute an item from current inputs, keeping manual OT, absence and manual-only lines."""
        comp = self.build(inputs)
        for name in PRESERVED_ON_RECALCULATE:
            setattr(comp, name, getattr(stored, name))
        for name in stored.manual_fields:
            if name in STATUTORY_OVERRIDES or not hasattr(comp, name):
                continue
            setattr(comp, name, getattr(stored, name))
        comp.manual_fields = [name for name in stored.manual_fields if name not in STATUTORY_OVERRIDES]
        comp.deduction_remarks = stored.deduction_remarks
        comp.notes = stored.notes
        return self.finalize(comp, inputs)


def variance_warning(name: str, variance_percent: Decimal) -> str:
    sign = "+" if variance_percent > 0 else ""
    return f"{name} has {sign}{variance_percent:.1f}% variance from last month"
