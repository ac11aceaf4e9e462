"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class WorkType(str, Enum):
    """Employment basis."""

    FULL_TIME = "full_time"
    PART_TIME = "part_time"


class GroupingType(str, Enum):
    """How a company partitions employees into runs."""

    DEPARTMENT = "department"
    OUTLET = "outlet"


class DayType(str, Enum):
    """Overtime day classification."""

    NORMAL = "normal"
    WEEKEND = "weekend"
    PUBLIC_HOLIDAY = "public_holiday"
    PH_AFTER_HOURS = "ph_after_hours"


class CalculationMethod(str, Enum):
    """How basic pay was derived for an item."""

    BASIC = "basic"
    COMMISSION = "commission"
    PART_TIME = "part_time"
    SCHEDULE = "schedule"


# ===== Statutory =====


@dataclass(frozen=True)
class EmployeeAttributes:
    """Employee attributes the statutory tables depend on."""

    age: int | None
    residency_status: str = "malaysian"
    marital_status: str = "single"
    spouse_working: bool = False
    children_count: int = 0
    is_disabled: bool = False
    spouse_disabled: bool = False

    @property
    def is_foreign(self) -> bool:
        return self.residency_status == "foreign"

    @property
    def has_non_working_spouse(self) -> bool:
        return self.marital_status == "married" and not self.spouse_working


@dataclass(frozen=True)
class YTDSnapshot:
    """Year-to-date figures from finalized runs before the current month."""

    gross: Decimal = ZERO
    epf: Decimal = ZERO
    pcb: Decimal = ZERO
    zakat: Decimal = ZERO
    statutory_base: Decimal = ZERO

    def to_dict(self) -> dict[str, str]:
        return {
            "gross": str(self.gross),
            "epf": str(self.epf),
            "pcb": str(self.pcb),
            "zakat": str(self.zakat),
            "statutory_base": str(self.statutory_base),
        }


@dataclass(frozen=True)
class RemunerationBreakdown:
    """Current-month remuneration split for PCB and the EPF split.

    ``commission``, ``bonus`` and ``ot`` are additional remuneration; the
    remainder of ``pcb_gross`` is normal remuneration.
    """

    basic: Decimal = ZERO
    allowance: Decimal = ZERO
    taxable_allowance: Decimal = ZERO
    commission: Decimal = ZERO
    bonus: Decimal = ZERO
    ot: Decimal = ZERO
    pcb_gross: Decimal = ZERO
    allowance_pcb: str = "included"

    @property
    def additional(self) -> Decimal:
        return self.commission + self.bonus + self.ot

    @property
    def excluded_allowance(self) -> Decimal:
        """Allowance that is not part of PCB remuneration."""
        if self.allowance_pcb == "excluded":
            return self.allowance
        return max(ZERO, self.allowance - self.taxable_allowance)

    @property
    def normal(self) -> Decimal:
        return max(ZERO, self.pcb_gross - self.additional - self.excluded_allowance)


@dataclass(frozen=True)
class Contribution:
    """Employee and employer share of a contribution."""

    employee: Decimal = ZERO
    employer: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.employee + self.employer


@dataclass(frozen=True)
class EPFContribution(Contribution):
    """EPF contribution with the employee share split for PCB."""

    employee_normal: Decimal = ZERO
    employee_additional: Decimal = ZERO


@dataclass(frozen=True)
class PCBResult:
    """Monthly tax deduction with its regular/additional split."""

    total: Decimal = ZERO
    normal_std: Decimal = ZERO
    additional_std: Decimal = ZERO
    chargeable_income: Decimal = ZERO
    chargeable_income_additional: Decimal = ZERO
    remaining_months: int = 0


@dataclass(frozen=True)
class StatutoryResult:
    """All four statutory lines for one employee-month."""

    epf: EPFContribution = field(default_factory=EPFContribution)
    socso: Contribution = field(default_factory=Contribution)
    eis: Contribution = field(default_factory=Contribution)
    pcb: PCBResult = field(default_factory=PCBResult)

    @property
    def employee_total(self) -> Decimal:
        return self.epf.employee + self.socso.employee + self.eis.employee + self.pcb.total

    @property
    def employer_total(self) -> Decimal:
        return self.epf.employer + self.socso.employer + self.eis.employer


# ===== Attendance =====


@dataclass(frozen=True)
class Period:
    """Closed date interval ``[start, end]`` for a payroll month."""

    month: int
    year: int
    start: date
    end: date
    label: str = ""
    payment_date: date | None = None

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class ScheduleRow:
    """Schedule entry as seen by the aggregator."""

    schedule_date: date
    shift_start: time | None = None
    shift_end: time | None = None
    status: str = "scheduled"


@dataclass(frozen=True)
class ClockRow:
    """Clock record as seen by the aggregator."""

    work_date: date
    clock_in_1: time | None = None
    clock_out_1: time | None = None
    clock_in_2: time | None = None
    clock_out_2: time | None = None
    total_work_minutes: int | None = None
    ot_minutes: int | None = None
    ot_approved: bool | None = None
    status: str = "completed"

    @property
    def has_clock_out(self) -> bool:
        return self.clock_out_1 is not None or self.clock_out_2 is not None

    @property
    def is_split_shift(self) -> bool:
        return self.clock_in_2 is not None


@dataclass(frozen=True)
class OTRuleSet:
    """Resolved overtime rules for an employee."""

    normal_hours_per_day: Decimal = Decimal("8")
    ot_threshold_hours: Decimal = Decimal("8")
    includes_break: bool = True
    break_duration_minutes: int = 60
    ot_normal_multiplier: Decimal = Decimal("1.5")
    ot_weekend_multiplier: Decimal = Decimal("1.5")
    ot_ph_multiplier: Decimal = Decimal("2.0")
    ot_ph_after_hours_multiplier: Decimal | None = None
    min_ot_hours: Decimal = Decimal("1.0")
    work_days_per_month: int = 22


@dataclass
class PartTimeHours:
    """Part-time hours and wages for a period."""

    normal_hours: Decimal = ZERO
    ph_hours: Decimal = ZERO
    normal_pay: Decimal = ZERO
    ph_pay: Decimal = ZERO
    gross_salary: Decimal = ZERO
    days_counted: int = 0


@dataclass
class ScheduleAttendance:
    """Schedule-driven attendance metrics."""

    scheduled_days: int = 0
    attended_days: int = 0
    payable_days: int = 0
    absent_days: int = 0
    late_days: int = 0
    short_hours: Decimal = ZERO


@dataclass
class OTDay:
    """Per-day overtime detail."""

    work_date: date
    day_type: DayType
    worked_hours: Decimal
    raw_ot_hours: Decimal
    ot_hours: Decimal
    multiplier: Decimal
    amount: Decimal
    approved: bool | None = None
    counted: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.work_date.isoformat(),
            "day_type": self.day_type.value,
            "worked_hours": str(self.worked_hours),
            "raw_ot_hours": str(self.raw_ot_hours),
            "ot_hours": str(self.ot_hours),
            "multiplier": str(self.multiplier),
            "amount": str(self.amount),
            "approved": self.approved,
            "counted": self.counted,
        }


@dataclass
class OTBucket:
    """Totals for one overtime day type."""

    hours: Decimal = ZERO
    amount: Decimal = ZERO
    multiplier: Decimal = ZERO


@dataclass
class OTResult:
    """Overtime computed from clock records."""

    days: list[OTDay] = field(default_factory=list)
    buckets: dict[DayType, OTBucket] = field(default_factory=dict)
    hourly_rate: Decimal = ZERO
    unapproved_hours: Decimal = ZERO

    @property
    def total_hours(self) -> Decimal:
        return sum((b.hours for b in self.buckets.values()), ZERO)

    @property
    def total_amount(self) -> Decimal:
        return sum((b.amount for b in self.buckets.values()), ZERO)

    def summary(self) -> dict[str, Any]:
        return {
            "hourly_rate": str(self.hourly_rate),
            "total_hours": str(self.total_hours),
            "total_amount": str(self.total_amount),
            "unapproved_hours": str(self.unapproved_hours),
            "buckets": {
                day_type.value: {
                    "hours": str(bucket.hours),
                    "amount": str(bucket.amount),
                    "multiplier": str(bucket.multiplier),
                }
                for day_type, bucket in sorted(self.buckets.items(), key=lambda kv: kv[0].value)
            },
        }


@dataclass
class ShortHoursResult:
    """Short hours derived from clock records alone."""

    short_hours: Decimal = ZERO
    days: list[dict[str, Any]] = field(default_factory=list)
