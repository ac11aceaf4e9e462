"""Concurrency control for payroll runs.

Run creation is serialized per (company, month, year, grouping) with a
no-wait advisory lock; approve, finalize, delete and item edits take the run
or item row with ``SELECT ... FOR UPDATE`` for the rest of the transaction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mypayroll.database import try_period_lock
from mypayroll.errors import Conflict, Forbidden, NotFound
from mypayroll.models import PayItem, PayrollRun


def period_lock_key(company_id: UUID, month: int, year: int, grouping_key: str) -> str:
    """Advisory lock key for creating one run."""
    return f"payroll_run:{company_id}:{year}:{month:02d}:{grouping_key}"


class LockingService:
    """Acquires the locks each orchestrator operation needs.

    Every method must be called inside an open transaction; locks are
    released when it commits or rolls back.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def claim_period(self, company_id: UUID, month: int, year: int, grouping_key: str) -> None:
        """Take the creation lock for a period or fail fast with Conflict."""
        key = period_lock_key(company_id, month, year, grouping_key)
        if not await try_period_lock(self.session, key):
            raise Conflict("Another payroll run is being created for this period; try again shortly")

    async def lock_run(self, run_id: UUID, company_id: UUID, with_items: bool = False) -> PayrollRun:
        """Load a run under a row lock, checking it belongs to ``company_id``."""
        stmt = (
            select(PayrollRun)
            .where(PayrollRun.run_id == run_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if with_items:
            stmt = stmt.options(selectinload(PayrollRun.items))
        result = await self.session.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFound(f"Payroll run {run_id} not found", run_id)
        if run.company_id != company_id:
            raise Forbidden("Access denied: payroll run belongs to another company", run_id)
        return run

    async def lock_item(self, item_id: UUID, company_id: UUID) -> tuple[PayItem, PayrollRun]:
        """Load an item and its run under row locks (run first, then item)."""
        result = await self.session.execute(select(PayItem.run_id, PayItem.company_id).where(PayItem.item_id == item_id))
        row = result.one_or_none()
        if row is None:
            raise NotFound(f"Payroll item {item_id} not found", item_id)
        if row.company_id != company_id:
            raise Forbidden("Access denied: payroll item belongs to another company", item_id)
        run = await self.lock_run(row.run_id, company_id)
        result = await self.session.execute(
            select(PayItem)
            .where(PayItem.item_id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one(), run
