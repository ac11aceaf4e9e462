"""Pure payroll calculators: statutory tables, attendance and rounding."""

from mypayroll.calculators.attendance import (
    compute_ot_from_clock_in,
    compute_part_time_hours,
    compute_schedule_based_attendance,
    weekdays_between,
)
from mypayroll.calculators.statutory import (
    calculate_all_statutory,
    calculate_eis,
    calculate_epf,
    calculate_pcb,
    calculate_socso,
)
from mypayroll.calculators.types import EmployeeAttributes, Period, YTDSnapshot

__all__ = [
    "EmployeeAttributes",
    "Period",
    "YTDSnapshot",
    "calculate_all_statutory",
    "calculate_eis",
    "calculate_epf",
    "calculate_pcb",
    "calculate_socso",
    "compute_ot_from_clock_in",
    "compute_part_time_hours",
    "compute_schedule_based_attendance",
    "weekdays_between",
]
