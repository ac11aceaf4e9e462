"""Schedule and clock-in models."""

from __future__ import annotations

from datetime import date, time
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from mypayroll.models.base import Base, TimestampMixin


class ScheduleEntry(Base, TimestampMixin):
    """One scheduled shift for an employee."""

    __tablename__ = "schedules"

    schedule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    outlet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("outlets.outlet_id", ondelete="SET NULL"),
        nullable=True,
    )
    schedule_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    shift_end: Mapped[time | None] = mapped_column(Time, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'completed', 'cancelled')",
            name="schedules_status_check",
        ),
        Index("ix_schedules_employee_date", "employee_id", "schedule_date"),
    )


class ClockRecord(Base, TimestampMixin):
    """Daily clock-in record with up to two in/out pairs."""

    __tablename__ = "clock_in_records"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    clock_in_1: Mapped[time | None] = mapped_column(Time, nullable=True)
    clock_out_1: Mapped[time | None] = mapped_column(Time, nullable=True)
    clock_in_2: Mapped[time | None] = mapped_column(Time, nullable=True)
    clock_out_2: Mapped[time | None] = mapped_column(Time, nullable=True)
    total_work_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ot_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ot_approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")

    __table_args__ = (
        Index("ix_clock_in_records_employee_date", "employee_id", "work_date"),
    )
