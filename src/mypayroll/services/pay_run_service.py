"""Payroll run service - main orchestrator for the run lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mypayroll.calculators.attendance import attendance_summary
from mypayroll.calculators.money import ZERO, round_to_cents
from mypayroll.calculators.period import compute_period, validate_month_year, working_days
from mypayroll.calculators.policy import (
    PayItemComputation,
    PolicyContext,
    PolicyEngine,
)
from mypayroll.calculators.types import CalculationMethod, Period, WorkType
from mypayroll.database import unit_of_work
from mypayroll.errors import Conflict, Forbidden, InputInvalid, NotFound, PayrollError
from mypayroll.models import (
    Claim,
    Company,
    Department,
    Employee,
    Outlet,
    PayItem,
    PayrollAuditLog,
    PayrollRun,
    grouping_key_for,
)
from mypayroll.payroll_config import ItemOverrides, PayrollConfig, config_for_company
from mypayroll.services.inputs_resolver import InputsResolver, ResolvedInputs
from mypayroll.services.locking_service import LockingService
from mypayroll.services.state_machine import RunStateMachine, RunStatus

logger = logging.getLogger(__name__)

VARIANCE_WARNING_MARKER = "variance from last month"


@dataclass
class RunDetail:
    """A run with its items and per-item attendance aggregates."""

    run: PayrollRun
    items: list[PayItem]
    attendance: dict[UUID, dict[str, Any]] = field(default_factory=dict)


@dataclass
class GroupingOutcome:
    """Result of generating the run for one department or outlet."""

    grouping_id: UUID
    name: str
    status: str  # created, skipped or failed
    run_id: UUID | None = None
    message: str | None = None


class PayRunService:
    """Service for managing the payroll run lifecycle of one company.

    Operations:
    - create_run: Compute a draft run for a period and grouping
    - update_item / delete_item / recalculate_item / recalculate_all: Edit drafts
    - add_employees: Add missing employees to a draft
    - approve / finalize: Move through draft → approved → finalized
    - delete_run / delete_draft_runs: Remove drafts
    - generate_all_outlets / generate_all_departments: Batch creation

    Every mutating operation is one transaction: it either commits as a whole
    or leaves no trace.
    """

    def __init__(self, session: AsyncSession, company_id: UUID | None, actor: str | None = None):
        if company_id is None:
            raise Forbidden("Company context required")
        self.session = session
        self.company_id = company_id
        self.actor = actor
        self.locking_service = LockingService(session)

    # ===== Shared loaders =====

    async def _load_company(self) -> Company:
        company = await self.session.get(Company, self.company_id)
        if company is None:
            raise NotFound(f"Company {self.company_id} not found", self.company_id)
        return company

    async def _load_config(self) -> PayrollConfig:
        return config_for_company(await self._load_company())

    async def _validate_grouping(self, department_id: UUID | None, outlet_id: UUID | None) -> None:
        if department_id is not None and outlet_id is not None:
            raise InputInvalid("A run is grouped by department or by outlet, not both")
        if department_id is not None:
            department = await self.session.get(Department, department_id)
            if department is None or department.company_id != self.company_id:
                raise InputInvalid(f"Unknown department {department_id}", department_id)
        if outlet_id is not None:
            outlet = await self.session.get(Outlet, outlet_id)
            if outlet is None or outlet.company_id != self.company_id:
                raise InputInvalid(f"Unknown outlet {outlet_id}", outlet_id)

    async def _load_employees(self, employee_ids: Iterable[UUID]) -> dict[UUID, Employee]:
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id.in_(ids), Employee.company_id == self.company_id)
        )
        return {employee.employee_id: employee for employee in result.scalars()}

    @staticmethod
    def run_period(run: PayrollRun) -> Period:
        return Period(
            month=run.month,
            year=run.year,
            start=run.period_start,
            end=run.period_end,
            label=run.period_label or "",
            payment_date=run.payment_due_date,
        )

    async def _resolve_for_run(
        self, run: PayrollRun, config: PayrollConfig, employee_ids: Iterable[UUID]
    ) -> tuple[ResolvedInputs, PolicyEngine]:
        period = self.run_period(run)
        resolved = await InputsResolver(self.session, self.company_id, config, period).resolve(employee_ids)
        ctx = PolicyContext(
            config=config,
            period=period,
            working_days=run.working_days,
            ph_dates=frozenset(resolved.holidays),
        )
        return resolved, PolicyEngine(ctx)

    def _new_item(self, run: PayrollRun, employee: Employee, comp: PayItemComputation) -> PayItem:
        return PayItem(
            item_id=uuid4(),
            run_id=run.run_id,
            company_id=self.company_id,
            employee_id=employee.employee_id,
            employee_code=employee.employee_code or "",
            employee_name=employee.name,
            department_id=employee.department_id,
            outlet_id=employee.outlet_id,
            work_type=employee.work_type or WorkType.FULL_TIME.value,
            **comp.to_values(),
        )

    @staticmethod
    def _apply_computation(item: PayItem, comp: PayItemComputation) -> None:
        for name, value in comp.to_values().items():
            setattr(item, name, value)

    async def _retally(self, run: PayrollRun) -> None:
        """Recompute run totals from the stored items."""
        await self.session.flush()
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(PayItem.gross_salary), 0),
                func.coalesce(func.sum(PayItem.total_deductions), 0),
                func.coalesce(func.sum(PayItem.net_pay), 0),
                func.coalesce(func.sum(PayItem.employer_total_cost), 0),
                func.count(PayItem.item_id),
            ).where(PayItem.run_id == run.run_id)
        )
        gross, deductions, net, employer_cost, count = result.one()
        run.total_gross = round_to_cents(Decimal(str(gross)))
        run.total_deductions = round_to_cents(Decimal(str(deductions)))
        run.total_net = round_to_cents(Decimal(str(net)))
        run.total_employer_cost = round_to_cents(Decimal(str(employer_cost)))
        run.employee_count = count

    @staticmethod
    def _set_warnings(run: PayrollRun, warnings: list[str]) -> None:
        run.warnings = list(warnings)
        run.has_variance_warning = any(VARIANCE_WARNING_MARKER in warning for warning in warnings)

    async def _record_audit(
        self,
        run: PayrollRun,
        action: str,
        item: PayItem | None = None,
        field_changed: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        reason: str | None = None,
    ) -> PayrollAuditLog:
        """Record an audit row."""
        entry = PayrollAuditLog(
            audit_id=uuid4(),
            company_id=self.company_id,
            run_id=run.run_id,
            item_id=item.item_id if item is not None else None,
            employee_id=item.employee_id if item is not None else None,
            action=action,
            field_changed=field_changed,
            old_value=None if old_value is None else str(old_value),
            new_value=None if new_value is None else str(new_value),
            reason=reason,
            performed_by=self.actor,
        )
        self.session.add(entry)
        return entry

    # ===== Create =====

    async def create_run(
        self,
        month: int,
        year: int,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
        employee_ids: Iterable[UUID] | None = None,
        notes: str | None = None,
    ) -> PayrollRun:
        """Create a draft run and compute an item for every cohort member.

        Raises:
            InputInvalid: bad period, unknown grouping or an empty cohort
            Conflict: the run already exists or is being created concurrently
        """
        validate_month_year(month, year)
        requested = list(employee_ids) if employee_ids is not None else None

        async with unit_of_work(self.session):
            config = await self._load_config()
            await self._validate_grouping(department_id, outlet_id)
            grouping_key = grouping_key_for(department_id, outlet_id)

            await self.locking_service.claim_period(self.company_id, month, year, grouping_key)
            existing = await self.session.execute(
                select(PayrollRun.run_id).where(
                    PayrollRun.company_id == self.company_id,
                    PayrollRun.year == year,
                    PayrollRun.month == month,
                    PayrollRun.grouping_key == grouping_key,
                )
            )
            existing_id = existing.scalar_one_or_none()
            if existing_id is not None:
                raise Conflict("Payroll run already exists for this period", existing_id)

            period = compute_period(config.period, month, year)
            days = working_days(config, period)
            resolver = InputsResolver(self.session, self.company_id, config, period)

            cohort = await resolver.load_cohort(department_id, outlet_id, requested)
            excluded: list[dict[str, Any]] = []
            if config.is_outlet_grouped and cohort:
                with_attendance = await resolver.employees_with_attendance(e.employee_id for e in cohort)
                excluded = [
                    {"id": str(e.employee_id), "name": e.name, "code": e.employee_code}
                    for e in cohort
                    if e.employee_id not in with_attendance
                ]
                cohort = [e for e in cohort if e.employee_id in with_attendance]
            if not cohort:
                raise InputInvalid(
                    f"No eligible employees for {period.label}: nobody is active or resigned in the "
                    f"period{' with schedules or clock-ins' if excluded else ''} for this grouping"
                )

            resolved = await resolver.resolve(e.employee_id for e in cohort)
            run = PayrollRun(
                run_id=uuid4(),
                company_id=self.company_id,
                month=month,
                year=year,
                department_id=department_id,
                outlet_id=outlet_id,
                grouping_key=grouping_key,
                status=RunStatus.DRAFT.value,
                period_start=period.start,
                period_end=period.end,
                payment_due_date=period.payment_date,
                period_label=period.label,
                working_days=days,
                excluded_employees=excluded,
                warnings=[],
                created_by=self.actor,
                notes=notes,
                items=[],
            )
            self.session.add(run)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                raise Conflict("Payroll run already exists for this period") from exc

            engine = PolicyEngine(PolicyContext(config, period, days, frozenset(resolved.holidays)))
            warnings = list(resolved.diagnostics)
            for employee in cohort:
                comp = engine.compute(resolved.for_employee(employee, period))
                run.items.append(self._new_item(run, employee, comp))
                warnings.extend(comp.warnings)

            self._set_warnings(run, warnings)
            await self._retally(run)
            await self._record_audit(run, "run_created", new_value=f"{run.employee_count} employees")

        logger.info(
            "Created payroll run %s for %s (%s, %d employees, %d warnings)",
            run.run_id,
            period.label,
            grouping_key,
            run.employee_count,
            len(run.warnings),
        )
        return run

    # ===== Read =====

    async def get_run(self, run_id: UUID, with_attendance: bool = True) -> RunDetail:
        """A run, its items and attendance aggregates per item."""
        result = await self.session.execute(
            select(PayrollRun)
            .options(selectinload(PayrollRun.items))
            .where(PayrollRun.run_id == run_id)
            .execution_options(populate_existing=True)
        )
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFound(f"Payroll run {run_id} not found", run_id)
        if run.company_id != self.company_id:
            raise Forbidden("Access denied: payroll run belongs to another company", run_id)

        items = sorted(run.items, key=lambda item: (item.employee_code, item.employee_name))
        detail = RunDetail(run=run, items=items)
        if not with_attendance or not items:
            return detail

        period = self.run_period(run)
        resolver = InputsResolver(self.session, self.company_id, PayrollConfig(), period)
        employee_ids = [item.employee_id for item in items]
        clocks = await resolver.load_clock_rows(employee_ids)
        schedules = await resolver.load_schedule_rows(employee_ids)
        for item in items:
            detail.attendance[item.item_id] = attendance_summary(
                clocks.get(item.employee_id, []),
                schedules.get(item.employee_id, []),
                period,
            )
        return detail

    async def list_runs(
        self,
        year: int | None = None,
        month: int | None = None,
        status: str | None = None,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
    ) -> list[PayrollRun]:
        """Runs of the company, newest period first."""
        stmt = select(PayrollRun).where(PayrollRun.company_id == self.company_id)
        if year is not None:
            stmt = stmt.where(PayrollRun.year == year)
        if month is not None:
            stmt = stmt.where(PayrollRun.month == month)
        if status is not None:
            stmt = stmt.where(PayrollRun.status == status)
        if department_id is not None:
            stmt = stmt.where(PayrollRun.department_id == department_id)
        if outlet_id is not None:
            stmt = stmt.where(PayrollRun.outlet_id == outlet_id)
        stmt = stmt.order_by(PayrollRun.year.desc(), PayrollRun.month.desc(), PayrollRun.grouping_key)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ===== Item edits =====

    async def update_item(
        self,
        item_id: UUID,
        overrides: dict[str, Any] | ItemOverrides,
        reason: str | None = None,
    ) -> PayItem:
        """Apply manual edits to an item and recompute its totals and the run's."""
        parsed = ItemOverrides.parse(overrides)

        async with unit_of_work(self.session):
            item, run = await self.locking_service.lock_item(item_id, self.company_id)
            RunStateMachine.ensure_items_editable(run)
            config = await self._load_config()
            resolved, engine = await self._resolve_for_run(run, config, [item.employee_id])
            employee = (await self._load_employees([item.employee_id])).get(item.employee_id)
            if employee is None:
                raise NotFound(f"Employee {item.employee_id} not found", item.employee_id)

            before = PayItemComputation.from_item(item)
            inputs = resolved.for_employee(employee, engine.ctx.period)
            comp = engine.apply_overrides(PayItemComputation.from_item(item), parsed, inputs)
            self._apply_computation(item, comp)

            for name in parsed.provided():
                old, new = getattr(before, name), getattr(comp, name)
                if old != new:
                    await self._record_audit(run, "item_updated", item, name, old, new, reason)
            await self._retally(run)

        logger.info("Updated payroll item %s (%s)", item_id, ", ".join(parsed.provided()) or "no fields")
        return item

    async def delete_item(self, item_id: UUID, reason: str | None = None) -> PayrollRun:
        """Remove an item from a draft run."""
        async with unit_of_work(self.session):
            item, run = await self.locking_service.lock_item(item_id, self.company_id)
            RunStateMachine.ensure_draft(run, "delete item")
            await self._record_audit(run, "item_deleted", item, new_value=item.employee_name, reason=reason)
            await self.session.delete(item)
            await self._retally(run)
            await self.session.refresh(run, ["items"])

        logger.info("Deleted payroll item %s from run %s", item_id, run.run_id)
        return run

    async def recalculate_item(self, item_id: UUID) -> PayItem:
        """Recompute an item from current employee data, keeping manual OT and absence."""
        async with unit_of_work(self.session):
            item, run = await self.locking_service.lock_item(item_id, self.company_id)
            RunStateMachine.ensure_items_editable(run)
            config = await self._load_config()
            resolved, engine = await self._resolve_for_run(run, config, [item.employee_id])
            employee = (await self._load_employees([item.employee_id])).get(item.employee_id)
            if employee is None:
                raise NotFound(f"Employee {item.employee_id} not found", item.employee_id)

            comp = engine.recalculate(
                PayItemComputation.from_item(item),
                resolved.for_employee(employee, engine.ctx.period),
            )
            self._apply_computation(item, comp)
            await self._record_audit(run, "item_recalculated", item, "net_pay", None, comp.net_pay)
            await self._retally(run)
        return item

    async def recalculate_all(self, run_id: UUID) -> PayrollRun:
        """Recalculate every item of a run.

        Items that cannot be recalculated keep their stored values and are
        reported as run warnings.
        """
        async with unit_of_work(self.session):
            run = await self.locking_service.lock_run(run_id, self.company_id, with_items=True)
            RunStateMachine.ensure_items_editable(run)
            config = await self._load_config()
            employee_ids = [item.employee_id for item in run.items]
            resolved, engine = await self._resolve_for_run(run, config, employee_ids)
            employees = await self._load_employees(employee_ids)

            warnings = list(resolved.diagnostics)
            for item in run.items:
                employee = employees.get(item.employee_id)
                if employee is None:
                    warnings.append(f"{item.employee_name}: employee record not found; item not recalculated")
                    continue
                try:
                    comp = engine.recalculate(
                        PayItemComputation.from_item(item),
                        resolved.for_employee(employee, engine.ctx.period),
                    )
                except PayrollError as exc:
                    logger.exception("Recalculation failed for item %s", item.item_id)
                    warnings.append(f"{item.employee_name}: recalculation failed: {exc.message}")
                    continue
                self._apply_computation(item, comp)
                warnings.extend(comp.warnings)

            self._set_warnings(run, warnings)
            await self._retally(run)
            await self._record_audit(run, "item_recalculated", new_value=f"{len(run.items)} items")

        logger.info("Recalculated payroll run %s (%d warnings)", run_id, len(run.warnings))
        return run

    async def add_employees(self, run_id: UUID, employee_ids: Iterable[UUID]) -> PayrollRun:
        """Add items for employees missing from a draft run."""
        requested = list(employee_ids)
        if not requested:
            raise InputInvalid("employee_ids must not be empty")

        async with unit_of_work(self.session):
            run = await self.locking_service.lock_run(run_id, self.company_id, with_items=True)
            RunStateMachine.ensure_draft(run, "add employees")
            config = await self._load_config()
            present = {item.employee_id for item in run.items}
            missing = [emp_id for emp_id in requested if emp_id not in present]
            if not missing:
                raise InputInvalid("All requested employees are already in this run")

            period = self.run_period(run)
            resolver = InputsResolver(self.session, self.company_id, config, period)
            cohort = await resolver.load_cohort(run.department_id, run.outlet_id, missing)
            if not cohort:
                raise InputInvalid("None of the requested employees are eligible for this run")

            resolved, engine = await self._resolve_for_run(run, config, [e.employee_id for e in cohort])
            warnings = list(run.warnings or [])
            added: set[str] = set()
            for employee in cohort:
                comp = engine.compute(resolved.for_employee(employee, period))
                run.items.append(self._new_item(run, employee, comp))
                warnings.extend(comp.warnings)
                added.add(str(employee.employee_id))

            run.excluded_employees = [e for e in (run.excluded_employees or []) if e.get("id") not in added]
            self._set_warnings(run, warnings)
            await self._retally(run)
            await self._record_audit(run, "employees_added", new_value=", ".join(sorted(added)))

        logger.info("Added %d employees to payroll run %s", len(added), run_id)
        return run

    # ===== Lifecycle =====

    async def approve(self, run_id: UUID) -> PayrollRun:
        """draft → approved."""
        async with unit_of_work(self.session):
            run = await self.locking_service.lock_run(run_id, self.company_id)
            RunStateMachine.validate_transition(run.status, RunStatus.APPROVED, entity_id=run_id)
            run.status = RunStatus.APPROVED.value
            run.approved_by = self.actor
            run.approved_at = datetime.now(timezone.utc)
            await self._record_audit(run, "run_approved", field_changed="status", old_value="draft", new_value="approved")

        logger.info("Approved payroll run %s", run_id)
        return run

    async def finalize(self, run_id: UUID) -> PayrollRun:
        """Finalize a run: link claims, cement carried-forward salaries, lock it.

        Requires approval first when the company's ``require_approval`` is on.
        """
        async with unit_of_work(self.session):
            run = await self.locking_service.lock_run(run_id, self.company_id, with_items=True)
            config = await self._load_config()
            previous_status = run.status
            RunStateMachine.validate_transition(
                run.status,
                RunStatus.FINALIZED,
                require_approval=config.features.require_approval,
                entity_id=run_id,
            )

            linked = 0
            if config.features.auto_claims_linking:
                for item in run.items:
                    result = await self.session.execute(
                        update(Claim)
                        .where(
                            Claim.employee_id == item.employee_id,
                            Claim.status == "approved",
                            Claim.linked_pay_item_id.is_(None),
                            Claim.claim_date >= run.period_start,
                            Claim.claim_date <= run.period_end,
                        )
                        .values(linked_pay_item_id=item.item_id)
                        .execution_options(synchronize_session=False)
                    )
                    linked += result.rowcount or 0

            propagated = 0
            if config.features.salary_carry_forward:
                propagated = await self._propagate_salaries(run)

            run.status = RunStatus.FINALIZED.value
            run.finalized_by = self.actor
            run.finalized_at = datetime.now(timezone.utc)
            await self._record_audit(
                run,
                "run_finalized",
                field_changed="status",
                old_value=previous_status,
                new_value="finalized",
                reason=f"{linked} claims linked, {propagated} salaries updated",
            )

        logger.info(
            "Finalized payroll run %s (%d claims linked, %d employee salaries updated)",
            run_id,
            linked,
            propagated,
        )
        return run

    async def _propagate_salaries(self, run: PayrollRun) -> int:
        """Write finalized basic and fixed allowance back to employee defaults."""
        employees = await self._load_employees(item.employee_id for item in run.items)
        carried = (CalculationMethod.BASIC.value, CalculationMethod.SCHEDULE.value)
        updated = 0
        for item in run.items:
            employee = employees.get(item.employee_id)
            if employee is None or item.work_type == WorkType.PART_TIME.value:
                continue
            if item.calculation_method not in carried:
                continue
            changed = False
            if item.basic_salary != employee.default_basic_salary:
                employee.default_basic_salary = item.basic_salary
                changed = True
            if item.fixed_allowance != employee.default_allowance:
                employee.default_allowance = item.fixed_allowance
                changed = True
            updated += int(changed)
        return updated

    async def delete_run(self, run_id: UUID) -> None:
        """Delete a draft run and its items."""
        async with unit_of_work(self.session):
            run = await self.locking_service.lock_run(run_id, self.company_id, with_items=True)
            RunStateMachine.ensure_draft(run, "delete run")
            await self._record_audit(run, "run_deleted", old_value=run.period_label)
            await self.session.delete(run)
        logger.info("Deleted payroll run %s", run_id)

    async def delete_draft_runs(self, month: int, year: int) -> int:
        """Delete every draft run of the company for a period."""
        validate_month_year(month, year)
        async with unit_of_work(self.session):
            result = await self.session.execute(
                select(PayrollRun)
                .options(selectinload(PayrollRun.items))
                .where(
                    PayrollRun.company_id == self.company_id,
                    PayrollRun.month == month,
                    PayrollRun.year == year,
                    PayrollRun.status == RunStatus.DRAFT.value,
                )
                .with_for_update()
            )
            runs = list(result.scalars().all())
            for run in runs:
                await self._record_audit(run, "run_deleted", old_value=run.period_label)
                await self.session.delete(run)
        logger.info("Deleted %d draft payroll runs for %02d/%d", len(runs), month, year)
        return len(runs)

    # ===== Batch =====

    async def generate_all_outlets(self, month: int, year: int, notes: str | None = None) -> list[GroupingOutcome]:
        """Create a run for every outlet without one."""
        result = await self.session.execute(
            select(Outlet.outlet_id, Outlet.name).where(Outlet.company_id == self.company_id).order_by(Outlet.name)
        )
        groupings = [(row.outlet_id, row.name) for row in result]
        return await self._generate_all(month, year, groupings, "outlet", notes)

    async def generate_all_departments(
        self, month: int, year: int, notes: str | None = None
    ) -> list[GroupingOutcome]:
        """Create a run for every department without one."""
        result = await self.session.execute(
            select(Department.department_id, Department.name)
            .where(Department.company_id == self.company_id)
            .order_by(Department.name)
        )
        groupings = [(row.department_id, row.name) for row in result]
        return await self._generate_all(month, year, groupings, "department", notes)

    async def _generate_all(
        self,
        month: int,
        year: int,
        groupings: list[tuple[UUID, str]],
        kind: str,
        notes: str | None,
    ) -> list[GroupingOutcome]:
        validate_month_year(month, year)
        existing = await self.session.execute(
            select(PayrollRun.grouping_key, PayrollRun.run_id).where(
                PayrollRun.company_id == self.company_id,
                PayrollRun.month == month,
                PayrollRun.year == year,
            )
        )
        existing_keys = {row.grouping_key: row.run_id for row in existing}
        # End the read transaction so each grouping gets its own.
        await self.session.commit()

        outcomes: list[GroupingOutcome] = []
        for grouping_id, name in groupings:
            kwargs = {"department_id": grouping_id} if kind == "department" else {"outlet_id": grouping_id}
            key = grouping_key_for(kwargs.get("department_id"), kwargs.get("outlet_id"))
            if key in existing_keys:
                outcomes.append(
                    GroupingOutcome(grouping_id, name, "skipped", existing_keys[key], "run already exists")
                )
                continue
            try:
                run = await self.create_run(month, year, notes=notes, **kwargs)
            except Conflict as exc:
                outcomes.append(GroupingOutcome(grouping_id, name, "skipped", exc.entity_id, exc.message))
                continue
            except PayrollError as exc:
                logger.warning("Run for %s %s failed: %s", kind, name, exc.message)
                outcomes.append(GroupingOutcome(grouping_id, name, "failed", exc.entity_id, exc.message))
                continue
            outcomes.append(GroupingOutcome(grouping_id, name, "created", run.run_id))

        created = sum(1 for outcome in outcomes if outcome.status == "created")
        logger.info("Generated %d of %d %s runs for %02d/%d", created, len(outcomes), kind, month, year)
        return outcomes


def run_totals_match(run: PayrollRun, items: Iterable[PayItem]) -> bool:
    """True when the stored run totals equal the sums over its items."""
    items = list(items)
    sums = {
        "total_gross": sum((i.gross_salary for i in items), ZERO),
        "total_deductions": sum((i.total_deductions for i in items), ZERO),
        "total_net": sum((i.net_pay for i in items), ZERO),
        "total_employer_cost": sum((i.employer_total_cost for i in items), ZERO),
    }
    return all(getattr(run, name) == value for name, value in sums.items())
