"""Tests for input resolution against the database."""

from datetime import date, time
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import text

from mypayroll.calculators.period import compute_period
from mypayroll.calculators.types import OTRuleSet
from mypayroll.models import (
    AllowanceType,
    Claim,
    CommissionType,
    EmployeeAllowance,
    EmployeeCommission,
    LeaveRequest,
    LeaveType,
    OTRule,
    PublicHoliday,
    SalaryAdvance,
)
from mypayroll.payroll_config import PayrollConfig
from mypayroll.services.inputs_resolver import (
    AllowanceTotals,
    InputsResolver,
    ResolvedInputs,
    advance_due,
)


def resolver_for(session, company_id, month=1, year=2026, config=None):
    config = config or PayrollConfig()
    return InputsResolver(session, company_id, config, compute_period(config.period, month, year))


class TestCohort:
    """Who is in a run."""

    async def test_explicit_ids(self, session, company, make_employee):
        """An explicit id list narrows the cohort."""
        await make_employee(company, "E001", "Aminah")
        ben = await make_employee(company, "E002", "Ben")

        cohort = await resolver_for(session, company.company_id).load_cohort(employee_ids=[ben.employee_id])

        assert [e.employee_code for e in cohort] == ["E002"]

    async def test_employees_with_attendance(self, session, company, make_employee, make_shift):
        """A schedule or a clock-in in the period counts."""
        scheduled = await make_employee(company, "E001", "Aminah")
        clocked = await make_employee(company, "E002", "Ben")
        idle = await make_employee(company, "E003", "Chong")
        await make_shift(company, scheduled, date(2026, 1, 5), clock_in=None)
        await make_shift(company, clocked, date(2026, 1, 6), scheduled=False)
        await make_shift(company, idle, date(2026, 2, 2))

        found = await resolver_for(session, company.company_id).employees_with_attendance(
            [scheduled.employee_id, clocked.employee_id, idle.employee_id]
        )

        assert found == {scheduled.employee_id, clocked.employee_id}


class TestEarningsInputs:
    """Commissions and flexible allowances."""

    async def test_commissions(self, session, company, make_employee):
        """Only active commissions of active types are summed."""
        employee = await make_employee(company, "E001", "Aminah")
        active = CommissionType(commission_type_id=uuid4(), company_id=company.company_id, name="Sales")
        retired = CommissionType(
            commission_type_id=uuid4(), company_id=company.company_id, name="Old", is_active=False
        )
        session.add_all([active, retired])
        session.add_all(
            [
                EmployeeCommission(employee_id=employee.employee_id, commission_type_id=active.commission_type_id,
                                   amount=Decimal("100")),
                EmployeeCommission(employee_id=employee.employee_id, commission_type_id=active.commission_type_id,
                                   amount=Decimal("50")),
                EmployeeCommission(employee_id=employee.employee_id, commission_type_id=active.commission_type_id,
                                   amount=Decimal("999"), is_active=False),
                EmployeeCommission(employee_id=employee.employee_id, commission_type_id=retired.commission_type_id,
                                   amount=Decimal("70")),
            ]
        )
        await session.commit()

        totals = await resolver_for(session, company.company_id).load_commissions([employee.employee_id])

        assert totals == {employee.employee_id: Decimal("150")}

    async def test_allowances_split_by_taxability(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")
        meal = AllowanceType(allowance_type_id=uuid4(), company_id=company.company_id, name="Meal", is_taxable=False)
        phone = AllowanceType(allowance_type_id=uuid4(), company_id=company.company_id, name="Phone")
        session.add_all([meal, phone])
        session.add_all(
            [
                EmployeeAllowance(employee_id=employee.employee_id, allowance_type_id=meal.allowance_type_id,
                                  amount=Decimal("80")),
                EmployeeAllowance(employee_id=employee.employee_id, allowance_type_id=phone.allowance_type_id,
                                  amount=Decimal("200")),
            ]
        )
        await session.commit()

        totals = await resolver_for(session, company.company_id).load_allowances([employee.employee_id])

        assert totals[employee.employee_id] == AllowanceTotals(taxable=Decimal("200"), non_taxable=Decimal("80"))


class TestDeductionInputs:
    """Leave, claims and advances."""

    async def test_leave_days_clipped_to_period(self, session, company, make_employee):
        """Weekdays inside the period, split by paid and unpaid."""
        employee = await make_employee(company, "E001", "Aminah")
        unpaid = LeaveType(leave_type_id=uuid4(), company_id=company.company_id, code="UL", name="Unpaid",
                           is_paid=False)
        annual = LeaveType(leave_type_id=uuid4(), company_id=company.company_id, code="AL", name="Annual")
        session.add_all([unpaid, annual])
        session.add_all(
            [
                LeaveRequest(employee_id=employee.employee_id, leave_type_id=unpaid.leave_type_id,
                             start_date=date(2026, 1, 5), end_date=date(2026, 1, 6),
                             total_days=Decimal("2"), status="approved"),
                LeaveRequest(employee_id=employee.employee_id, leave_type_id=unpaid.leave_type_id,
                             start_date=date(2026, 1, 8), end_date=date(2026, 1, 8),
                             total_days=Decimal("1"), status="pending"),
                # Wed 31 Dec to Fri 2 Jan: only 1 and 2 Jan fall in the period
                LeaveRequest(employee_id=employee.employee_id, leave_type_id=annual.leave_type_id,
                             start_date=date(2025, 12, 31), end_date=date(2026, 1, 2),
                             total_days=Decimal("3"), status="approved"),
            ]
        )
        await session.commit()

        days = await resolver_for(session, company.company_id).load_leave_days([employee.employee_id])

        assert days[False] == {employee.employee_id: Decimal("2")}
        assert days[True] == {employee.employee_id: Decimal("2")}

    async def test_claims_inside_period(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")
        session.add_all(
            [
                Claim(employee_id=employee.employee_id, claim_date=date(2026, 1, 10), amount=Decimal("120"),
                      status="approved"),
                Claim(employee_id=employee.employee_id, claim_date=date(2026, 1, 20), amount=Decimal("30"),
                      status="approved"),
                Claim(employee_id=employee.employee_id, claim_date=date(2025, 12, 28), amount=Decimal("45"),
                      status="approved"),
                Claim(employee_id=employee.employee_id, claim_date=date(2026, 1, 21), amount=Decimal("10"),
                      status="rejected"),
            ]
        )
        await session.commit()

        claims = await resolver_for(session, company.company_id).load_claims([employee.employee_id])

        assert claims == {employee.employee_id: Decimal("150")}

    async def test_advances_due(self, session, company, make_employee):
        """Full and installment advances due now; future ones wait."""
        aminah = await make_employee(company, "E001", "Aminah")
        ben = await make_employee(company, "E002", "Ben")
        session.add_all(
            [
                SalaryAdvance(employee_id=aminah.employee_id, company_id=company.company_id,
                              amount=Decimal("500"), advance_date=date(2025, 12, 10),
                              remaining_balance=Decimal("500"), status="active"),
                SalaryAdvance(employee_id=aminah.employee_id, company_id=company.company_id,
                              amount=Decimal("300"), advance_date=date(2025, 11, 10),
                              deduction_method="installment", installment_amount=Decimal("100"),
                              remaining_balance=Decimal("250"), status="active"),
                SalaryAdvance(employee_id=ben.employee_id, company_id=company.company_id,
                              amount=Decimal("400"), advance_date=date(2026, 1, 3),
                              remaining_balance=Decimal("400"), status="active",
                              expected_deduction_month=2, expected_deduction_year=2026),
            ]
        )
        await session.commit()

        advances = await resolver_for(session, company.company_id).load_advances(
            [aminah.employee_id, ben.employee_id]
        )

        assert advances == {aminah.employee_id: Decimal("600")}

    def test_installment_capped_by_balance(self):
        """The last installment is whatever is left."""
        advance = SalaryAdvance(
            deduction_method="installment",
            installment_amount=Decimal("100"),
            remaining_balance=Decimal("40"),
        )

        assert advance_due(advance) == Decimal("40")


class TestCalendarInputs:
    """Holidays, OT rules and attendance rows."""

    async def test_public_holidays(self, session, company):
        """Only extra-pay holidays inside the period."""
        session.add_all(
            [
                PublicHoliday(company_id=company.company_id, holiday_date=date(2026, 1, 1), name="New Year"),
                PublicHoliday(company_id=company.company_id, holiday_date=date(2026, 1, 29), name="Observance",
                              extra_pay=False),
                PublicHoliday(company_id=company.company_id, holiday_date=date(2026, 2, 17), name="CNY"),
            ]
        )
        await session.commit()

        holidays = await resolver_for(session, company.company_id).load_public_holidays()

        assert holidays == {date(2026, 1, 1)}

    async def test_ot_rules_by_department(self, session, company, department):
        """Department rule first, then the company rule, then defaults."""
        session.add_all(
            [
                OTRule(company_id=company.company_id, ot_normal_multiplier=Decimal("1.75")),
                OTRule(company_id=company.company_id, department_id=department.department_id,
                       ot_normal_multiplier=Decimal("2.0"), min_ot_hours=Decimal("0.5")),
            ]
        )
        await session.commit()

        resolved = ResolvedInputs(ot_rules=await resolver_for(session, company.company_id).load_ot_rules())

        assert resolved.ot_rules_for(department.department_id).ot_normal_multiplier == Decimal("2.0")
        assert resolved.ot_rules_for(department.department_id).min_ot_hours == Decimal("0.5")
        assert resolved.ot_rules_for(uuid4()).ot_normal_multiplier == Decimal("1.75")
        assert resolved.ot_rules_for(None).ot_normal_multiplier == Decimal("1.75")
        assert ResolvedInputs().ot_rules_for(None) == OTRuleSet()

    async def test_clock_and_schedule_rows(self, session, company, make_employee, make_shift):
        """Rows inside the period, in date order."""
        employee = await make_employee(company, "E001", "Aminah")
        await make_shift(company, employee, date(2026, 1, 6), clock_out=time(20, 0), ot_minutes=120)
        await make_shift(company, employee, date(2026, 1, 5))
        await make_shift(company, employee, date(2026, 2, 2))
        resolver = resolver_for(session, company.company_id)

        clocks = await resolver.load_clock_rows([employee.employee_id])
        schedules = await resolver.load_schedule_rows([employee.employee_id])

        assert [row.work_date for row in clocks[employee.employee_id]] == [date(2026, 1, 5), date(2026, 1, 6)]
        assert clocks[employee.employee_id][1].ot_minutes == 120
        assert [row.schedule_date for row in schedules[employee.employee_id]] == [
            date(2026, 1, 5),
            date(2026, 1, 6),
        ]


class TestResolve:
    """Full resolution."""

    async def test_for_employee(self, session, company, make_employee):
        """Loaded maps are assembled into engine inputs."""
        employee = await make_employee(company, "E001", "Aminah")
        session.add(
            Claim(employee_id=employee.employee_id, claim_date=date(2026, 1, 10), amount=Decimal("120"),
                  status="approved")
        )
        await session.commit()
        resolver = resolver_for(session, company.company_id)

        resolved = await resolver.resolve([employee.employee_id])
        inputs = resolved.for_employee(employee, resolver.period)

        assert resolved.diagnostics == []
        assert inputs.claims_total == Decimal("120")
        assert inputs.default_basic_salary == Decimal("3000")
        assert inputs.prior is None
        assert inputs.age_assumed is False

    async def test_claims_skipped_when_linking_disabled(self, session, company, make_employee):
        employee = await make_employee(company, "E001", "Aminah")
        session.add(
            Claim(employee_id=employee.employee_id, claim_date=date(2026, 1, 10), amount=Decimal("120"),
                  status="approved")
        )
        await session.commit()
        config = PayrollConfig.model_validate({"features": {"auto_claims_linking": False}})

        resolved = await resolver_for(session, company.company_id, config=config).resolve([employee.employee_id])

        assert resolved.claims == {}

    async def test_missing_supporting_table(self, session, company, make_employee):
        """A missing table degrades to empty with a diagnostic."""
        employee = await make_employee(company, "E001", "Aminah")
        await session.execute(text("DROP TABLE salary_advances"))

        resolved = await resolver_for(session, company.company_id).resolve([employee.employee_id])

        assert resolved.advances == {}
        assert resolved.diagnostics == ["salary_advances unavailable; treated as empty"]
        assert resolved.schedules_available is True

    async def test_missing_schedules_table(self, session, company, make_employee):
        """Schedule-driven logic is told the table is absent."""
        employee = await make_employee(company, "E001", "Aminah")
        await session.execute(text("DROP TABLE schedules"))

        resolved = await resolver_for(session, company.company_id).resolve([employee.employee_id])

        assert resolved.schedules == {}
        assert resolved.schedules_available is False

    async def test_empty_cohort(self, session, company):
        resolved = await resolver_for(session, company.company_id).resolve([])

        assert resolved == ResolvedInputs()
