"""Side-input models consumed by payroll: leave, claims, advances, commissions,
allowances and sales.

The workflows that create these rows live outside the payroll core; payroll
only reads them (and links claims at finalization).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mypayroll.models.base import Base, TimestampMixin


# ===== Leave =====


class LeaveType(Base, TimestampMixin):
    """Leave type with pay and entitlement rules."""

    __tablename__ = "leave_types"

    leave_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_days_per_year: Mapped[Decimal | None] = mapped_column(Numeric(5, 1), nullable=True)
    carry_forward_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_carry_forward: Mapped[Decimal | None] = mapped_column(Numeric(5, 1), nullable=True)


class LeaveRequest(Base, TimestampMixin):
    """Leave request; payroll consumes only approved requests."""

    __tablename__ = "leave_requests"

    leave_request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_types.leave_type_id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="leave_requests_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="leave_requests_dates_check"),
    )

    # Relationships
    leave_type: Mapped[LeaveType] = relationship()


# ===== Claims & advances =====


class Claim(Base, TimestampMixin):
    """Expense claim reimbursed through payroll."""

    __tablename__ = "claims"

    claim_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    linked_pay_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_items.item_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (CheckConstraint("amount >= 0", name="claims_amount_check"),)


class SalaryAdvance(Base, TimestampMixin):
    """Salary advance recovered from upcoming payrolls."""

    __tablename__ = "salary_advances"

    advance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    advance_date: Mapped[date] = mapped_column(Date, nullable=False)
    deduction_method: Mapped[str] = mapped_column(String, nullable=False, default="full")
    installment_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    expected_deduction_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expected_deduction_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "deduction_method IN ('full', 'installment')",
            name="salary_advances_method_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')",
            name="salary_advances_status_check",
        ),
    )


# ===== Commissions & allowances =====


class CommissionType(Base):
    """Commission category."""

    __tablename__ = "commission_types"

    commission_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EmployeeCommission(Base, TimestampMixin):
    """Recurring commission assigned to an employee."""

    __tablename__ = "employee_commissions"

    employee_commission_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    commission_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_types.commission_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AllowanceType(Base):
    """Allowance category; ``is_taxable`` drives the PCB split."""

    __tablename__ = "allowance_types"

    allowance_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EmployeeAllowance(Base, TimestampMixin):
    """Recurring allowance assigned to an employee."""

    __tablename__ = "employee_allowances"

    employee_allowance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    allowance_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("allowance_types.allowance_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ===== Sales =====


class SalesRecord(Base, TimestampMixin):
    """Monthly sales total used by indoor-sales commission."""

    __tablename__ = "sales_records"

    sales_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="sales_records_employee_period_unique"),
    )
