"""Payroll period and working-day computation."""

from __future__ import annotations

import calendar
from datetime import date

from mypayroll.calculators.attendance import weekdays_between
from mypayroll.calculators.types import Period
from mypayroll.errors import InputInvalid
from mypayroll.payroll_config import PayrollConfig, PeriodSettings

DEFAULT_MID_MONTH_END_DAY = 14


def validate_month_year(month: int | None, year: int | None) -> None:
    if month is None or year is None:
        raise InputInvalid("month and year are required")
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InputInvalid(f"month must be between 1 and 12 (got {month!r})")
    if not isinstance(year, int) or not 2000 <= year <= 2100:
        raise InputInvalid(f"year out of range (got {year!r})")


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def compute_period(settings: PeriodSettings, month: int, year: int) -> Period:
    """Dates, label and payment date for payroll ``month``/``year``.

    calendar_month: 1st to last day of the month.
    mid_month: previous month's start day to this month's end day
    (default 15th to 14th).
    """
    validate_month_year(month, year)

    if settings.type == "mid_month":
        end_day = settings.end_day or DEFAULT_MID_MONTH_END_DAY
        start_day = settings.start_day if settings.start_day > 1 else end_day + 1
        prev_year, prev_month = _shift_month(year, month, -1)
        start = _clamped(prev_year, prev_month, start_day)
        end = _clamped(year, month, end_day)
        label = (
            f"{calendar.month_name[start.month]} {start.day} - "
            f"{calendar.month_name[end.month]} {end.day}, {end.year}"
        )
    else:
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])
        label = f"{calendar.month_name[month]} {year}"

    pay_year, pay_month = _shift_month(year, month, settings.payment_month_offset)
    return Period(
        month=month,
        year=year,
        start=start,
        end=end,
        label=label,
        payment_date=_clamped(pay_year, pay_month, settings.payment_day),
    )


def working_days(config: PayrollConfig, period: Period) -> int:
    """Configured standard work days, else weekdays in the period."""
    if config.rates.standard_work_days:
        return config.rates.standard_work_days
    return weekdays_between(period.start, period.end)


def previous_month(month: int, year: int) -> tuple[int, int]:
    """(month, year) of the month before."""
    prev_year, prev_month = _shift_month(year, month, -1)
    return prev_month, prev_year
