"""Payroll run, pay item and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mypayroll.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow

if TYPE_CHECKING:
    from mypayroll.models.employee import Employee

ZERO = Decimal("0")


def grouping_key_for(department_id: UUID | None, outlet_id: UUID | None) -> str:
    """Key that makes (company, month, year, grouping) unique.

    SQL treats NULLs as distinct, so the optional grouping column cannot take
    part in a unique constraint directly.
    """
    if outlet_id is not None:
        return f"outlet:{outlet_id}"
    if department_id is not None:
        return f"department:{department_id}"
    return "company"


class PayrollRun(Base, TimestampMixin, UpdatedAtMixin):
    """Payroll batch for one (company, month, year, optional grouping)."""

    __tablename__ = "payroll_runs"

    run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("departments.department_id", ondelete="RESTRICT"),
        nullable=True,
    )
    outlet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("outlets.outlet_id", ondelete="RESTRICT"),
        nullable=True,
    )
    grouping_key: Mapped[str] = mapped_column(String, nullable=False, default="company")
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_label: Mapped[str | None] = mapped_column(String, nullable=True)
    working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=22)

    # Totals
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_employer_cost: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Diagnostics
    excluded_employees: Mapped[list[Any]] = mapped_column(nullable=False, default=list)
    warnings: Mapped[list[Any]] = mapped_column(nullable=False, default=list)
    has_variance_warning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "year",
            "month",
            "grouping_key",
            name="payroll_runs_company_period_grouping_unique",
        ),
        CheckConstraint(
            "status IN ('draft', 'approved', 'finalized')",
            name="payroll_runs_status_check",
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_runs_month_check"),
        CheckConstraint(
            "department_id IS NULL OR outlet_id IS NULL",
            name="payroll_runs_single_grouping_check",
        ),
    )

    # Relationships
    items: Mapped[list[PayItem]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="PayItem.employee_code",
    )


class PayItem(Base, TimestampMixin, UpdatedAtMixin):
    """One employee's pay record inside a run."""

    __tablename__ = "payroll_items"

    item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_runs.run_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_code: Mapped[str] = mapped_column(String, nullable=False, default="")
    employee_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    outlet_id: Mapped[UUID | None] = mapped_column(nullable=True)
    work_type: Mapped[str] = mapped_column(String, nullable=False, default="full_time")

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    wages: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    part_time_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=ZERO)
    part_time_ph_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=ZERO)
    fixed_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    flexible_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    taxable_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ot_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=ZERO)
    ot_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ph_days_worked: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False, default=ZERO)
    ph_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    commission_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    incentive_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    trade_commission_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    outstation_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    bonus: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    claims_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    attendance_bonus: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    sales_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)

    # Attendance-derived deductions
    unpaid_leave_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=ZERO)
    unpaid_leave_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    absent_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=ZERO)
    absent_day_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    short_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=ZERO)
    short_hours_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    late_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scheduled_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_not_worked: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=ZERO)

    # Other deductions
    advance_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    deduction_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Statutory
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    statutory_base: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employee_normal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employee_additional: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb_normal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb_additional: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Totals
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    employer_total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # YTD snapshot used for PCB
    ytd_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    ytd_epf: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    ytd_pcb: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    ytd_statutory_base: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)

    # Variance against the prior month
    prev_month_net: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_percent: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="basic")
    manual_fields: Mapped[list[Any]] = mapped_column(nullable=False, default=list)
    calculation_details: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="payroll_items_run_employee_unique"),
        CheckConstraint(
            "epf_employee >= 0 AND socso_employee >= 0 AND eis_employee >= 0 AND pcb >= 0",
            name="payroll_items_statutory_non_negative",
        ),
        Index("ix_payroll_items_employee", "employee_id"),
    )

    # Relationships
    run: Mapped[PayrollRun] = relationship(back_populates="items")
    employee: Mapped[Employee] = relationship()


class PayrollAuditLog(Base):
    """Append-only audit trail of run and item changes.

    Run and item ids are kept as plain columns so the trail outlives deleted
    drafts.
    """

    __tablename__ = "payroll_audit_logs"

    audit_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    employee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    field_changed: Mapped[str | None] = mapped_column(String, nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("ix_payroll_audit_logs_run", "run_id"),)
