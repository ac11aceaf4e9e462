"""Pytest fixtures for payroll tests."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mypayroll.models import (
    Base,
    ClockRecord,
    Company,
    Department,
    Employee,
    Outlet,
    ScheduleEntry,
)

# In-memory SQLite shared across the single pooled connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def company(session: AsyncSession) -> Company:
    """Department-grouped company with default config."""
    company = Company(
        company_id=uuid4(),
        name="Kedai Maju Sdn Bhd",
        grouping_type="department",
        settings={},
        payroll_config={},
    )
    session.add(company)
    await session.commit()
    return company


@pytest.fixture
async def department(session: AsyncSession, company: Company) -> Department:
    department = Department(
        department_id=uuid4(),
        company_id=company.company_id,
        name="Operations",
    )
    session.add(department)
    await session.commit()
    return department


@pytest.fixture
async def outlet_company(session: AsyncSession) -> Company:
    """Outlet-grouped company."""
    company = Company(
        company_id=uuid4(),
        name="Mimix Cafe Sdn Bhd",
        grouping_type="outlet",
        settings={},
        payroll_config={},
    )
    session.add(company)
    await session.commit()
    return company


@pytest.fixture
async def outlet(session: AsyncSession, outlet_company: Company) -> Outlet:
    outlet = Outlet(
        outlet_id=uuid4(),
        company_id=outlet_company.company_id,
        name="Bangsar",
    )
    session.add(outlet)
    await session.commit()
    return outlet


async def add_employee(
    session: AsyncSession,
    company: Company,
    code: str,
    name: str,
    basic: str = "3000",
    **kwargs,
) -> Employee:
    """Create and commit an employee (age 30 in 2026 unless overridden)."""
    values = {
        "employee_id": uuid4(),
        "company_id": company.company_id,
        "employee_code": code,
        "name": name,
        "date_of_birth": date(1995, 6, 1),
        "default_basic_salary": Decimal(basic),
        "default_allowance": Decimal("0"),
        "status": "active",
        "work_type": "full_time",
    }
    values.update(kwargs)
    employee = Employee(**values)
    session.add(employee)
    await session.commit()
    return employee


async def add_shift(
    session: AsyncSession,
    company: Company,
    employee: Employee,
    day: date,
    clock_in: time | None = time(9, 0),
    clock_out: time | None = time(18, 0),
    shift_start: time = time(9, 0),
    scheduled: bool = True,
    **clock_kwargs,
) -> None:
    """Schedule a shift and record the matching clock-in."""
    if scheduled:
        session.add(
            ScheduleEntry(
                schedule_id=uuid4(),
                company_id=company.company_id,
                employee_id=employee.employee_id,
                outlet_id=employee.outlet_id,
                schedule_date=day,
                shift_start=shift_start,
                shift_end=time(18, 0),
                status="scheduled",
            )
        )
    if clock_in is not None:
        session.add(
            ClockRecord(
                record_id=uuid4(),
                company_id=company.company_id,
                employee_id=employee.employee_id,
                work_date=day,
                clock_in_1=clock_in,
                clock_out_1=clock_out,
                **clock_kwargs,
            )
        )
    await session.commit()


@pytest.fixture
def make_employee(session: AsyncSession):
    """Factory fixture: ``await make_employee(company, code, name, basic, **fields)``."""

    async def _make(company: Company, code: str, name: str, basic: str = "3000", **kwargs) -> Employee:
        return await add_employee(session, company, code, name, basic, **kwargs)

    return _make


@pytest.fixture
def make_shift(session: AsyncSession):
    """Factory fixture: ``await make_shift(company, employee, day, ...)``."""

    async def _make(company: Company, employee: Employee, day: date, **kwargs) -> None:
        await add_shift(session, company, employee, day, **kwargs)

    return _make
