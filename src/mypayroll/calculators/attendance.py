"""Attendance aggregation over schedules and clock records.

Pure functions: the inputs resolver loads ``ScheduleRow``/``ClockRow`` lists
for one employee and period, and these functions turn them into the metrics
the policy engine consumes.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from mypayroll.calculators.money import (
    ZERO,
    floor_to_half_hour,
    minutes_to_hours,
    round_to_cents,
)
from mypayroll.calculators.types import (
    ClockRow,
    DayType,
    OTBucket,
    OTDay,
    OTResult,
    OTRuleSet,
    PartTimeHours,
    Period,
    ScheduleAttendance,
    ScheduleRow,
    ShortHoursResult,
)

ACTIVE_SCHEDULE_STATUSES = frozenset({"scheduled", "confirmed", "completed"})
PART_TIME_OT_MULTIPLIER = Decimal("1.5")


# ===== Calendar helpers =====


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def weekdays_between(start: date, end: date) -> int:
    """Count Monday-Friday dates in ``[start, end]`` (0 if start > end)."""
    if start > end:
        return 0
    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if not is_weekend(start + timedelta(days=full_weeks * 7 + offset)):
            count += 1
    return count


def leave_overlap_weekdays(leave_start: date, leave_end: date, period: Period) -> int:
    """Weekdays of a leave interval that fall inside the period."""
    return weekdays_between(max(leave_start, period.start), min(leave_end, period.end))


def _minutes_between(start: time, end: time) -> int:
    start_dt = datetime.combine(date.min, start)
    end_dt = datetime.combine(date.min, end)
    if end_dt < start_dt:
        # Shift crosses midnight
        end_dt += timedelta(days=1)
    return int((end_dt - start_dt).total_seconds() // 60)


def worked_minutes(record: ClockRow) -> int:
    """Minutes worked on a record, preferring the stored total."""
    if record.total_work_minutes is not None:
        return max(0, record.total_work_minutes)
    minutes = 0
    if record.clock_in_1 and record.clock_out_1:
        minutes += _minutes_between(record.clock_in_1, record.clock_out_1)
    if record.clock_in_2 and record.clock_out_2:
        minutes += _minutes_between(record.clock_in_2, record.clock_out_2)
    return minutes


def _active_schedule_dates(schedules: Iterable[ScheduleRow], period: Period) -> dict[date, ScheduleRow]:
    by_date: dict[date, ScheduleRow] = {}
    for row in schedules:
        if row.status in ACTIVE_SCHEDULE_STATUSES and period.contains(row.schedule_date):
            by_date.setdefault(row.schedule_date, row)
    return by_date


def _clocks_by_date(clocks: Iterable[ClockRow], period: Period) -> dict[date, ClockRow]:
    by_date: dict[date, ClockRow] = {}
    for row in clocks:
        if period.contains(row.work_date):
            by_date.setdefault(row.work_date, row)
    return by_date


# ===== Part-time =====


def compute_part_time_hours(
    schedules: Iterable[ScheduleRow],
    clocks: Iterable[ClockRow],
    period: Period,
    ph_dates: set[date],
    hourly_rate: Decimal,
    ph_multiplier: Decimal,
) -> PartTimeHours:
    """Hours and wages for a part-timer.

    Only days with both a schedule and a completed clock record count. Each
    bucket (normal, public holiday) is floored to half hours before pricing.
    """
    scheduled = _active_schedule_dates(schedules, period)
    normal_minutes = 0
    ph_minutes = 0
    days = 0
    for work_date, record in sorted(_clocks_by_date(clocks, period).items()):
        if work_date not in scheduled or record.status != "completed":
            continue
        minutes = worked_minutes(record)
        if work_date in ph_dates:
            ph_minutes += minutes
        else:
            normal_minutes += minutes
        days += 1

    normal_hours = floor_to_half_hour(minutes_to_hours(normal_minutes))
    ph_hours = floor_to_half_hour(minutes_to_hours(ph_minutes))
    normal_pay = round_to_cents(normal_hours * hourly_rate)
    ph_pay = round_to_cents(ph_hours * hourly_rate * ph_multiplier)
    return PartTimeHours(
        normal_hours=normal_hours,
        ph_hours=ph_hours,
        normal_pay=normal_pay,
        ph_pay=ph_pay,
        gross_salary=normal_pay + ph_pay,
        days_counted=days,
    )


# ===== Schedule-based attendance =====


def compute_schedule_based_attendance(
    schedules: Iterable[ScheduleRow],
    clocks: Iterable[ClockRow],
    period: Period,
    expected_hours: Decimal,
) -> ScheduleAttendance:
    """Scheduled, attended, payable, absent and late days plus short hours.

    A day is attended when it has at least one clock-out, and payable when
    attended or when its schedule was marked completed.
    """
    scheduled = _active_schedule_dates(schedules, period)
    clocks_by_date = _clocks_by_date(clocks, period)

    result = ScheduleAttendance(scheduled_days=len(scheduled))
    short_hours = ZERO
    for work_date, schedule in scheduled.items():
        record = clocks_by_date.get(work_date)
        attended = record is not None and record.has_clock_out
        if attended:
            result.attended_days += 1
            worked = minutes_to_hours(worked_minutes(record))
            short_hours += max(ZERO, expected_hours - min(worked, expected_hours))
        if attended or schedule.status == "completed":
            result.payable_days += 1
        if (
            record is not None
            and record.clock_in_1 is not None
            and schedule.shift_start is not None
            and record.clock_in_1 > schedule.shift_start
        ):
            result.late_days += 1

    result.absent_days = result.scheduled_days - result.payable_days
    result.short_hours = round_to_cents(short_hours)
    return result


# ===== Overtime =====


def hourly_rate_for(basic_salary: Decimal, work_days: int | Decimal, hours_per_day: Decimal) -> Decimal:
    """basic / work days / hours per day (unrounded)."""
    if not work_days or not hours_per_day:
        return ZERO
    return basic_salary / Decimal(work_days) / hours_per_day


def round_ot_hours(raw_hours: Decimal, min_ot_hours: Decimal = Decimal("1.0")) -> Decimal:
    """Below the minimum counts as zero; otherwise floor to half hours."""
    if raw_hours < min_ot_hours:
        return ZERO
    return floor_to_half_hour(raw_hours)


def classify_day(work_date: date, ph_dates: set[date], rules: OTRuleSet) -> tuple[DayType, Decimal]:
    """Day type and multiplier. Public holidays win over weekends."""
    if work_date in ph_dates:
        if rules.ot_ph_after_hours_multiplier:
            return DayType.PH_AFTER_HOURS, rules.ot_ph_after_hours_multiplier
        return DayType.PUBLIC_HOLIDAY, rules.ot_ph_multiplier
    if is_weekend(work_date):
        return DayType.WEEKEND, rules.ot_weekend_multiplier or rules.ot_normal_multiplier
    return DayType.NORMAL, rules.ot_normal_multiplier


def raw_ot_hours(record: ClockRow, rules: OTRuleSet) -> Decimal:
    """Unrounded OT hours for a record.

    A stored ``ot_minutes`` is used as-is. Otherwise OT is the time worked past
    the threshold, after taking the break off single-segment days (split
    shifts already exclude the break).
    """
    if record.ot_minutes is not None:
        return minutes_to_hours(max(0, record.ot_minutes))
    net_minutes = worked_minutes(record)
    if rules.includes_break and not record.is_split_shift:
        net_minutes -= rules.break_duration_minutes
    threshold_minutes = rules.ot_threshold_hours * 60
    return max(ZERO, minutes_to_hours(Decimal(net_minutes) - threshold_minutes))


def compute_ot_from_clock_in(
    clocks: Iterable[ClockRow],
    schedules: Iterable[ScheduleRow],
    period: Period,
    ph_dates: set[date],
    rules: OTRuleSet,
    basic_salary: Decimal,
    requires_approval: bool = False,
    hourly_rate: Decimal | None = None,
    flat_multiplier: Decimal | None = None,
) -> OTResult:
    """Overtime from clock records on scheduled days.

    Records on dates without a schedule are ignored. When approval is
    required, unapproved OT is listed per day but not totalled. Part-time
    callers pass their own ``hourly_rate`` and a ``flat_multiplier``.
    """
    scheduled = _active_schedule_dates(schedules, period)
    if hourly_rate is None:
        hourly_rate = hourly_rate_for(basic_salary, rules.work_days_per_month, rules.normal_hours_per_day)

    result = OTResult(hourly_rate=round_to_cents(hourly_rate))
    hours_by_type: dict[DayType, Decimal] = {}
    multiplier_by_type: dict[DayType, Decimal] = {}

    for work_date, record in sorted(_clocks_by_date(clocks, period).items()):
        if work_date not in scheduled or not record.has_clock_out:
            continue
        day_type, multiplier = classify_day(work_date, ph_dates, rules)
        if flat_multiplier is not None:
            multiplier = flat_multiplier
        raw = raw_ot_hours(record, rules)
        ot_hours = round_ot_hours(raw, rules.min_ot_hours)
        counted = not requires_approval or record.ot_approved is True
        result.days.append(
            OTDay(
                work_date=work_date,
                day_type=day_type,
                worked_hours=round_to_cents(minutes_to_hours(worked_minutes(record))),
                raw_ot_hours=round_to_cents(raw),
                ot_hours=ot_hours,
                multiplier=multiplier,
                amount=round_to_cents(ot_hours * hourly_rate * multiplier),
                approved=record.ot_approved,
                counted=counted,
            )
        )
        if ot_hours == ZERO:
            continue
        if not counted:
            result.unapproved_hours += ot_hours
            continue
        hours_by_type[day_type] = hours_by_type.get(day_type, ZERO) + ot_hours
        multiplier_by_type[day_type] = multiplier

    for day_type, hours in hours_by_type.items():
        multiplier = multiplier_by_type[day_type]
        result.buckets[day_type] = OTBucket(
            hours=hours,
            amount=round_to_cents(hours * hourly_rate * multiplier),
            multiplier=multiplier,
        )
    return result


# ===== Public holidays, short hours, absence =====


def compute_ph_days_worked(clocks: Iterable[ClockRow], ph_dates: set[date]) -> int:
    """Distinct public-holiday dates with a clock record."""
    return len({row.work_date for row in clocks if row.work_date in ph_dates and row.clock_in_1})


def compute_short_hours_for_non_outlet(
    clocks: Iterable[ClockRow],
    period: Period,
    expected_per_day: Decimal,
) -> ShortHoursResult:
    """Short hours from clock records alone, one entry per short day."""
    result = ShortHoursResult()
    total = ZERO
    for work_date, record in sorted(_clocks_by_date(clocks, period).items()):
        if not record.has_clock_out:
            continue
        worked = minutes_to_hours(worked_minutes(record))
        short = max(ZERO, expected_per_day - min(worked, expected_per_day))
        if short > ZERO:
            result.days.append(
                {
                    "date": work_date.isoformat(),
                    "worked_hours": str(round_to_cents(worked)),
                    "short_hours": str(round_to_cents(short)),
                }
            )
            total += short
    result.short_hours = round_to_cents(total)
    return result


def compute_absent_days(
    working_days: int | Decimal,
    clock_in_days: int | Decimal,
    paid_leave_days: int | Decimal = 0,
    unpaid_days: int | Decimal = 0,
) -> Decimal:
    """max(0, working days - clock-in days - paid leave - unpaid leave)."""
    absent = Decimal(working_days) - Decimal(clock_in_days) - Decimal(paid_leave_days) - Decimal(unpaid_days)
    return max(ZERO, absent)


def clock_in_days(clocks: Iterable[ClockRow], period: Period) -> int:
    """Distinct dates in the period with a clock-in."""
    return len({row.work_date for row in clocks if period.contains(row.work_date) and row.clock_in_1})


def attendance_summary(
    clocks: Iterable[ClockRow],
    schedules: Iterable[ScheduleRow],
    period: Period,
) -> dict[str, Decimal | int]:
    """Days worked, total hours and clock-ins without a schedule."""
    clocks_by_date = _clocks_by_date(clocks, period)
    scheduled = _active_schedule_dates(schedules, period)
    total_minutes = sum(worked_minutes(row) for row in clocks_by_date.values() if row.has_clock_out)
    return {
        "days_worked": sum(1 for row in clocks_by_date.values() if row.has_clock_out),
        "total_hours": round_to_cents(minutes_to_hours(total_minutes)),
        "no_schedule_days": sum(1 for day in clocks_by_date if day not in scheduled),
    }
