"""Persistence for accounting periods, scoped by organization."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeper.accounting.period_models import AccountingPeriod, PeriodState, state_columns
from bookkeeper.accounting.period_overlap import DateRange
from bookkeeper.core.pagination import PaginationParams
from bookkeeper.journal.models import NON_FINAL_STATUSES, JournalEntry


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the search term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PeriodRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, period_id: uuid.UUID) -> AccountingPeriod | None:
        return await self.db.get(AccountingPeriod, period_id, populate_existing=True)

    async def list_page(
        self,
        organization_id: uuid.UUID,
        pagination: PaginationParams,
        search: str | None = None,
        order_by: str = "start_date",
        ascending: bool = False,
    ) -> tuple[list[AccountingPeriod], int]:
        query = select(AccountingPeriod).where(AccountingPeriod.organization_id == organization_id)
        if search:
            query = query.where(AccountingPeriod.name.ilike(f"%{escape_like(search)}%", escape="\\"))

        count_query = select(func.count()).select_from(query.subquery())
        total_count = await self.db.scalar(count_query) or 0

        column = getattr(AccountingPeriod, order_by)
        query = query.order_by(column.asc() if ascending else column.desc(), AccountingPeriod.id)
        query = query.offset(pagination.offset).limit(pagination.page_size)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total_count

    async def list_ranges(self, organization_id: uuid.UUID) -> list[DateRange]:
        """Date ranges of every period in the organization, open or closed."""
        result = await self.db.execute(
            select(AccountingPeriod.id, AccountingPeriod.start_date, AccountingPeriod.end_date).where(
                AccountingPeriod.organization_id == organization_id
            )
        )
        return [DateRange(start=row.start_date, end=row.end_date, id=row.id) for row in result]

    async def find_open_containing(
        self, organization_id: uuid.UUID, day: date
    ) -> AccountingPeriod | None:
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.is_closed.is_(False),
                AccountingPeriod.start_date <= day,
                AccountingPeriod.end_date >= day,
            )
            .order_by(AccountingPeriod.start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_open_periods(
        self, organization_id: uuid.UUID, exclude_id: uuid.UUID | None = None
    ) -> int:
        query = select(func.count(AccountingPeriod.id)).where(
            AccountingPeriod.organization_id == organization_id,
            AccountingPeriod.is_closed.is_(False),
        )
        if exclude_id is not None:
            query = query.where(AccountingPeriod.id != exclude_id)
        return await self.db.scalar(query) or 0

    async def count_journal_entries(self, period_id: uuid.UUID, non_final_only: bool = False) -> int:
        query = select(func.count(JournalEntry.id)).where(JournalEntry.accounting_period_id == period_id)
        if non_final_only:
            query = query.where(JournalEntry.status.in_(NON_FINAL_STATUSES))
        return await self.db.scalar(query) or 0

    async def has_entries_outside(self, period_id: uuid.UUID, start_date: date, end_date: date) -> bool:
        count = await self.db.scalar(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.accounting_period_id == period_id,
                or_(JournalEntry.entry_date < start_date, JournalEntry.entry_date > end_date),
            )
        )
        return bool(count)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, organization_id: uuid.UUID, values: dict[str, Any]) -> AccountingPeriod:
        period = AccountingPeriod(organization_id=organization_id, is_closed=False, **values)
        self.db.add(period)
        await self.db.commit()
        await self.db.refresh(period)
        return period

    async def update_if_open(
        self, period_id: uuid.UUID, values: dict[str, Any]
    ) -> AccountingPeriod | None:
        """Apply field changes only while the period is still open.

        Returns None when no row matched (deleted or closed in the meantime).
        """
        return await self._conditional_update(period_id, values, expect_closed=False)

    async def transition(self, period_id: uuid.UUID, state: PeriodState) -> AccountingPeriod | None:
        """Move a period into ``state`` from the opposite state.

        Returns None when the period was not in the opposite state any more.
        """
        return await self._conditional_update(
            period_id, state_columns(state), expect_closed=not state.is_closed
        )

    async def delete(self, period_id: uuid.UUID) -> bool:
        result = await self.db.execute(delete(AccountingPeriod).where(AccountingPeriod.id == period_id))
        await self.db.commit()
        return result.rowcount == 1

    async def _conditional_update(
        self, period_id: uuid.UUID, values: dict[str, Any], expect_closed: bool
    ) -> AccountingPeriod | None:
        result = await self.db.execute(
            update(AccountingPeriod)
            .where(
                AccountingPeriod.id == period_id,
                AccountingPeriod.is_closed.is_(expect_closed),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return None
        await self.db.commit()
        return await self.get(period_id)
