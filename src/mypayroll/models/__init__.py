"""ORM models for the payroll core."""

from mypayroll.models.attendance import ClockRecord, ScheduleEntry
from mypayroll.models.base import Base, TimestampMixin
from mypayroll.models.company import Company, Department, OTRule, Outlet, PublicHoliday
from mypayroll.models.employee import Employee
from mypayroll.models.inputs import (
    AllowanceType,
    Claim,
    CommissionType,
    EmployeeAllowance,
    EmployeeCommission,
    LeaveRequest,
    LeaveType,
    SalaryAdvance,
    SalesRecord,
)
from mypayroll.models.payroll import (
    PayItem,
    PayrollAuditLog,
    PayrollRun,
    grouping_key_for,
)

__all__ = [
    "AllowanceType",
    "Base",
    "Claim",
    "ClockRecord",
    "CommissionType",
    "Company",
    "Department",
    "Employee",
    "EmployeeAllowance",
    "EmployeeCommission",
    "LeaveRequest",
    "LeaveType",
    "OTRule",
    "Outlet",
    "PayItem",
    "PayrollAuditLog",
    "PayrollRun",
    "PublicHoliday",
    "SalaryAdvance",
    "SalesRecord",
    "ScheduleEntry",
    "TimestampMixin",
    "grouping_key_for",
]
