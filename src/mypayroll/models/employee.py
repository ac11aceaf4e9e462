"""Employee model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mypayroll.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from mypayroll.models.company import Company, Department, Outlet


class Employee(Base, TimestampMixin, UpdatedAtMixin):
    """Employee record with the attributes payroll needs."""

    __tablename__ = "employees"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("departments.department_id", ondelete="SET NULL"),
        nullable=True,
    )
    outlet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("outlets.outlet_id", ondelete="SET NULL"),
        nullable=True,
    )
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    residency_status: Mapped[str] = mapped_column(String, nullable=False, default="malaysian")
    marital_status: Mapped[str] = mapped_column(String, nullable=False, default="single")
    spouse_working: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    children_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    spouse_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    join_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    resign_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    work_type: Mapped[str] = mapped_column(String, nullable=False, default="full_time")

    # Pay defaults
    default_basic_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    default_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    fixed_ot_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    allowance_pcb: Mapped[str] = mapped_column(String, nullable=False, default="included")

    # Bank and statutory registration
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_number: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_code", name="employees_company_code_unique"),
        CheckConstraint(
            "status IN ('active', 'resigned', 'terminated')",
            name="employees_status_check",
        ),
        CheckConstraint(
            "work_type IN ('full_time', 'part_time')",
            name="employees_work_type_check",
        ),
        CheckConstraint(
            "residency_status IN ('malaysian', 'pr', 'foreign')",
            name="employees_residency_status_check",
        ),
        CheckConstraint(
            "allowance_pcb IN ('included', 'excluded')",
            name="employees_allowance_pcb_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
    department: Mapped[Department | None] = relationship()
    outlet: Mapped[Outlet | None] = relationship()

    @property
    def is_part_time(self) -> bool:
        return self.work_type == "part_time"
