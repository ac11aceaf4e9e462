"""Company and organizational structure models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
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

if TYPE_CHECKING:
    from mypayroll.models.employee import Employee


class Company(Base, TimestampMixin):
    """Tenant employer.

    ``settings`` holds legacy flat keys (e.g. ``indoor_sales_basic``);
    ``payroll_config`` holds the explicit payroll configuration and wins over
    both defaults and legacy settings.
    """

    __tablename__ = "companies"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str | None] = mapped_column(String, nullable=True)
    grouping_type: Mapped[str] = mapped_column(String, nullable=False, default="department")
    settings: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    payroll_config: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "grouping_type IN ('department', 'outlet')",
            name="companies_grouping_type_check",
        ),
    )

    # Relationships
    departments: Mapped[list[Department]] = relationship(back_populates="company")
    outlets: Mapped[list[Outlet]] = relationship(back_populates="company")
    employees: Mapped[list[Employee]] = relationship(back_populates="company")

    @property
    def is_outlet_grouped(self) -> bool:
        return self.grouping_type == "outlet"


class Department(Base, TimestampMixin):
    """Department grouping unit."""

    __tablename__ = "departments"

    department_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    payroll_structure_code: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="departments_company_name_unique"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="departments")


class Outlet(Base, TimestampMixin):
    """Outlet (shop/branch) grouping unit."""

    __tablename__ = "outlets"

    outlet_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="outlets_company_name_unique"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="outlets")


class PublicHoliday(Base):
    """Company public holiday."""

    __tablename__ = "public_holidays"

    holiday_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    extra_pay: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("company_id", "holiday_date", name="public_holidays_company_date_unique"),
    )


class OTRule(Base, TimestampMixin):
    """Overtime rule for a company, optionally narrowed to one department."""

    __tablename__ = "ot_rules"

    ot_rule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("departments.department_id", ondelete="CASCADE"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False, default="default")
    normal_hours_per_day: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("8"))
    ot_threshold_hours: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("8"))
    includes_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    break_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    ot_normal_multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("1.5"))
    ot_weekend_multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("1.5"))
    ot_ph_multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("2.0"))
    ot_ph_after_hours_multiplier: Mapped[Decimal | None] = mapped_column(
        Numeric(4, 2), nullable=True
    )
    min_ot_hours: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("1.0"))
    work_days_per_month: Mapped[int] = mapped_column(Integer, nullable=False, default=22)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
