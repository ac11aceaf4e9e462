"""Tests for attendance aggregation."""

from datetime import date, time
from decimal import Decimal

from mypayroll.calculators import (
    compute_ot_from_clock_in,
    compute_part_time_hours,
    compute_schedule_based_attendance,
    weekdays_between,
)
from mypayroll.calculators.attendance import (
    attendance_summary,
    classify_day,
    compute_absent_days,
    compute_ph_days_worked,
    compute_short_hours_for_non_outlet,
    raw_ot_hours,
    round_ot_hours,
)
from mypayroll.calculators.money import floor_to_half_hour, round_to_cents
from mypayroll.calculators.types import ClockRow, DayType, OTRuleSet, Period, ScheduleRow

JANUARY = Period(month=1, year=2026, start=date(2026, 1, 1), end=date(2026, 1, 31))
RULES = OTRuleSet()


def shift(day: int, start: time = time(9, 0), status: str = "scheduled") -> ScheduleRow:
    return ScheduleRow(schedule_date=date(2026, 1, day), shift_start=start, shift_end=time(18, 0), status=status)


def clock(day: int, clock_in: time = time(9, 0), clock_out: time | None = time(18, 0), **kwargs) -> ClockRow:
    return ClockRow(work_date=date(2026, 1, day), clock_in_1=clock_in, clock_out_1=clock_out, **kwargs)


class TestCalendar:
    """Weekday counting."""

    def test_weekdays_in_month(self):
        """January 2026 has 22 weekdays, February 20."""
        assert weekdays_between(date(2026, 1, 1), date(2026, 1, 31)) == 22
        assert weekdays_between(date(2026, 2, 1), date(2026, 2, 28)) == 20

    def test_empty_range(self):
        """Start after end counts nothing."""
        assert weekdays_between(date(2026, 1, 10), date(2026, 1, 9)) == 0

    def test_weekend_only(self):
        """A Saturday-Sunday range has no weekdays."""
        assert weekdays_between(date(2026, 1, 10), date(2026, 1, 11)) == 0


class TestHalfHourRounding:
    """Hours floor to half-hour steps."""

    def test_floor(self):
        assert floor_to_half_hour(Decimal("1.75")) == Decimal("1.5")
        assert floor_to_half_hour(Decimal("2.0")) == Decimal("2.0")
        assert floor_to_half_hour(Decimal("0.49")) == Decimal("0")
        assert floor_to_half_hour(Decimal("-1")) == Decimal("0")


class TestPartTimeHours:
    """Part-time wages from scheduled, completed clock records."""

    def test_hours_and_pay(self):
        """4h + 4.75h = 8.75h, floored to 8.5h at RM10/h."""
        result = compute_part_time_hours(
            schedules=[shift(5), shift(6)],
            clocks=[clock(5, clock_out=time(13, 0)), clock(6, clock_out=time(13, 45))],
            period=JANUARY,
            ph_dates=set(),
            hourly_rate=Decimal("10"),
            ph_multiplier=Decimal("2"),
        )

        assert result.normal_hours == Decimal("8.5")
        assert result.normal_pay == Decimal("85.00")
        assert result.gross_salary == Decimal("85.00")
        assert result.days_counted == 2

    def test_unscheduled_and_incomplete_days_ignored(self):
        """Clock-ins without a schedule or not completed are not paid."""
        result = compute_part_time_hours(
            schedules=[shift(5), shift(6)],
            clocks=[
                clock(5, clock_out=time(13, 0)),
                clock(6, clock_out=None, status="in_progress"),
                clock(7, clock_out=time(13, 0)),
            ],
            period=JANUARY,
            ph_dates=set(),
            hourly_rate=Decimal("10"),
            ph_multiplier=Decimal("2"),
        )

        assert result.normal_hours == Decimal("4.0")
        assert result.days_counted == 1

    def test_public_holiday_hours_priced_separately(self):
        """PH hours use the PH multiplier."""
        result = compute_part_time_hours(
            schedules=[shift(5), shift(7)],
            clocks=[clock(5, clock_out=time(13, 0)), clock(7, clock_out=time(13, 0))],
            period=JANUARY,
            ph_dates={date(2026, 1, 7)},
            hourly_rate=Decimal("10"),
            ph_multiplier=Decimal("2"),
        )

        assert result.ph_hours == Decimal("4.0")
        assert result.ph_pay == Decimal("80.00")
        assert result.gross_salary == Decimal("120.00")

    def test_month_of_part_time_work(self):
        """100 normal hours plus 8 PH hours at RM8.72/h, PH at double."""
        days = [5, 6, 7, 8, 9, 12, 13, 14, 15, 16]
        result = compute_part_time_hours(
            schedules=[shift(day) for day in days] + [shift(20)],
            clocks=[clock(day, clock_out=time(19, 0)) for day in days] + [clock(20, clock_out=time(17, 0))],
            period=JANUARY,
            ph_dates={date(2026, 1, 20)},
            hourly_rate=Decimal("8.72"),
            ph_multiplier=Decimal("2.0"),
        )

        assert result.normal_hours == Decimal("100.0")
        assert result.normal_pay == Decimal("872.00")
        assert result.ph_hours == Decimal("8.0")
        assert result.ph_pay == Decimal("139.52")
        assert result.gross_salary == Decimal("1011.52")
        assert result.days_counted == 11


class TestScheduleBasedAttendance:
    """Scheduled, payable, absent and late days."""

    def test_absent_and_late(self):
        """Three shifts, one late, one missed."""
        result = compute_schedule_based_attendance(
            schedules=[shift(5), shift(6), shift(7)],
            clocks=[clock(5, clock_in=time(9, 5)), clock(6)],
            period=JANUARY,
            expected_hours=Decimal("8"),
        )

        assert result.scheduled_days == 3
        assert result.attended_days == 2
        assert result.payable_days == 2
        assert result.absent_days == 1
        assert result.late_days == 1
        assert result.short_hours == Decimal("0.00")

    def test_completed_schedule_is_payable(self):
        """A schedule marked completed is paid without a clock-out."""
        result = compute_schedule_based_attendance(
            schedules=[shift(5, status="completed")],
            clocks=[],
            period=JANUARY,
            expected_hours=Decimal("8"),
        )

        assert result.payable_days == 1
        assert result.absent_days == 0

    def test_cancelled_schedules_ignored(self):
        """Only active schedule statuses count."""
        result = compute_schedule_based_attendance(
            schedules=[shift(5, status="cancelled")],
            clocks=[],
            period=JANUARY,
            expected_hours=Decimal("8"),
        )

        assert result.scheduled_days == 0

    def test_short_hours(self):
        """Six hours against eight expected is two short."""
        result = compute_schedule_based_attendance(
            schedules=[shift(5)],
            clocks=[clock(5, clock_out=time(15, 0))],
            period=JANUARY,
            expected_hours=Decimal("8"),
        )

        assert result.short_hours == Decimal("2.00")

    def test_clock_in_without_clock_out_is_absent(self):
        """Attendance needs a clock-out."""
        result = compute_schedule_based_attendance(
            schedules=[shift(5)],
            clocks=[clock(5, clock_out=None)],
            period=JANUARY,
            expected_hours=Decimal("8"),
        )

        assert result.attended_days == 0
        assert result.absent_days == 1


class TestOvertime:
    """Overtime from clock records."""

    def test_normal_day_overtime(self):
        """11h on site, minus a 1h break, is 2h past the 8h threshold."""
        result = compute_ot_from_clock_in(
            clocks=[clock(5, clock_out=time(20, 0))],
            schedules=[shift(5)],
            period=JANUARY,
            ph_dates=set(),
            rules=RULES,
            basic_salary=Decimal("2200"),
        )

        assert result.total_hours == Decimal("2.0")
        assert result.total_amount == Decimal("37.50")
        assert result.hourly_rate == Decimal("12.50")
        assert result.buckets[DayType.NORMAL].multiplier == Decimal("1.5")

    def test_half_cent_rounds_up(self):
        """1.5h x RM12.50 x 1.5 = 28.125, paid as 28.13."""
        result = compute_ot_from_clock_in(
            clocks=[clock(5, clock_out=time(19, 30))],
            schedules=[shift(5)],
            period=JANUARY,
            ph_dates=set(),
            rules=RULES,
            basic_salary=Decimal("2200"),
        )

        assert result.total_hours == Decimal("1.5")
        assert result.total_amount == Decimal("28.13")
        assert round_to_cents(Decimal("28.125")) == Decimal("28.13")
        assert round_to_cents(Decimal("28.124")) == Decimal("28.12")

    def test_unscheduled_day_excluded(self):
        """Clock records without a schedule never produce overtime."""
        result = compute_ot_from_clock_in(
            clocks=[clock(5, clock_out=time(20, 0))],
            schedules=[],
            period=JANUARY,
            ph_dates=set(),
            rules=RULES,
            basic_salary=Decimal("2200"),
        )

        assert result.total_hours == Decimal("0")
        assert result.days == []

    def test_below_minimum_is_zero(self):
        """45 minutes of OT is under the 1h minimum."""
        row = clock(5, clock_out=time(18, 45))

        assert round_ot_hours(raw_ot_hours(row, RULES)) == Decimal("0")

    def test_stored_ot_minutes_used(self):
        """95 stored minutes floors to 1.5h."""
        row = clock(5, ot_minutes=95)

        assert round_ot_hours(raw_ot_hours(row, RULES)) == Decimal("1.5")

    def test_day_classification(self):
        """Public holidays win over weekends."""
        assert classify_day(date(2026, 1, 10), set(), RULES) == (DayType.WEEKEND, Decimal("1.5"))
        assert classify_day(date(2026, 1, 10), {date(2026, 1, 10)}, RULES) == (
            DayType.PUBLIC_HOLIDAY,
            Decimal("2.0"),
        )
        assert classify_day(date(2026, 1, 5), set(), RULES) == (DayType.NORMAL, Decimal("1.5"))

    def test_unapproved_overtime_not_totalled(self):
        """With approval required, unapproved OT is listed but not paid."""
        result = compute_ot_from_clock_in(
            clocks=[clock(5, clock_out=time(20, 0))],
            schedules=[shift(5)],
            period=JANUARY,
            ph_dates=set(),
            rules=RULES,
            basic_salary=Decimal("2200"),
            requires_approval=True,
        )

        assert result.total_amount == Decimal("0")
        assert result.unapproved_hours == Decimal("2.0")
        assert len(result.days) == 1
        assert result.days[0].counted is False

    def test_approved_overtime_totalled(self):
        """Approved OT counts when approval is required."""
        result = compute_ot_from_clock_in(
            clocks=[clock(5, clock_out=time(20, 0), ot_approved=True)],
            schedules=[shift(5)],
            period=JANUARY,
            ph_dates=set(),
            rules=RULES,
            basic_salary=Decimal("2200"),
            requires_approval=True,
        )

        assert result.total_amount == Decimal("37.50")


class TestAbsenceAndShortHours:
    """Clock-only absence and short hours."""

    def test_absent_days(self):
        """Working days less clock-ins and leave, never negative."""
        assert compute_absent_days(22, 18, 2, 1) == Decimal("1")
        assert compute_absent_days(22, 23) == Decimal("0")

    def test_short_hours_non_outlet(self):
        """Each short day is listed."""
        result = compute_short_hours_for_non_outlet(
            [clock(5, clock_out=time(15, 0)), clock(6)],
            JANUARY,
            Decimal("8"),
        )

        assert result.short_hours == Decimal("2.00")
        assert len(result.days) == 1
        assert result.days[0]["date"] == "2026-01-05"

    def test_ph_days_worked(self):
        """Distinct holiday dates with a clock-in."""
        clocks = [clock(1), clock(5)]

        assert compute_ph_days_worked(clocks, {date(2026, 1, 1)}) == 1


class TestAttendanceSummary:
    """Per-item attendance summary."""

    def test_summary(self):
        """Days, hours and unscheduled clock-ins."""
        summary = attendance_summary(
            [clock(5), clock(6, clock_out=time(13, 0))],
            [shift(5)],
            JANUARY,
        )

        assert summary["days_worked"] == 2
        assert summary["total_hours"] == Decimal("13.00")
        assert summary["no_schedule_days"] == 1
