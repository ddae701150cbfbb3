"""Business logic for the accounting period lifecycle.

Every public operation resolves the caller, checks their role in the owning
organization, validates input and business rules, and only then writes. The
operations never raise; they return an ``ActionResult``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeper.accounting.period_models import AccountingPeriod, ClosedState, OpenState
from bookkeeper.accounting.period_overlap import DateRange, has_overlap
from bookkeeper.accounting.period_policy import PeriodOperation, is_allowed
from bookkeeper.accounting.period_repository import PeriodRepository
from bookkeeper.accounting.period_schemas import (
    PeriodCreate,
    PeriodDeleted,
    PeriodListParams,
    PeriodPage,
    PeriodResponse,
    PeriodUpdate,
    add_years,
    check_date_range,
)
from bookkeeper.config import Settings
from bookkeeper.core.exceptions import (
    ForbiddenError,
    InsufficientPermissionsError,
    InternalError,
    LimitExceededError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from bookkeeper.core.pagination import PaginationParams, build_pagination_meta
from bookkeeper.core.rate_limit import RateLimiter, delete_limit
from bookkeeper.core.results import action
from bookkeeper.core.revalidation import (
    JOURNAL_ENTRIES_VIEW,
    PERIOD_SETTINGS_VIEW,
    PERIODS_VIEW,
    Revalidator,
)
from bookkeeper.organizations.models import Role
from bookkeeper.organizations.service import get_member_role

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

PERMISSION_MESSAGES = {
    PeriodOperation.DELETE: "Deleting an accounting period requires the admin role.",
    PeriodOperation.REOPEN: "Reopening an accounting period requires the admin role.",
}

OVERLAP_MESSAGE = "The date range overlaps an existing accounting period."
CONCURRENT_CHANGE_MESSAGE = (
    "The accounting period was changed by another request. Please reload and try again."
)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_id(value: uuid.UUID | str, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {label} id.") from None


class PeriodLifecycleEngine:
    def __init__(
        self,
        db: AsyncSession,
        *,
        settings: Settings,
        rate_limiter: RateLimiter,
        revalidator: Revalidator,
        today: Callable[[], date] = _utc_today,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.db = db
        self.repository = PeriodRepository(db)
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.revalidator = revalidator
        self._today = today
        self._now = now

    async def rollback(self) -> None:
        await self.db.rollback()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @action
    async def list_periods(
        self,
        actor_id: uuid.UUID | None,
        organization_id: uuid.UUID | str,
        params: Mapping[str, Any] | PeriodListParams | None = None,
    ) -> PeriodPage:
        actor_id = self._require_actor(actor_id)
        organization_id = _parse_id(organization_id, "organization")
        await self._require_role(actor_id, organization_id, PeriodOperation.LIST)

        query = self._parse(PeriodListParams, params or {})
        pagination = PaginationParams(
            page=query.page,
            page_size=query.page_size or self.settings.default_page_size,
        )
        periods, total_count = await self.repository.list_page(
            organization_id,
            pagination,
            search=query.search,
            order_by=query.order_by,
            ascending=query.order_direction == "asc",
        )
        return PeriodPage(
            items=[PeriodResponse.model_validate(p) for p in periods],
            pagination=build_pagination_meta(total_count, pagination),
        )

    @action
    async def get_period(self, actor_id: uuid.UUID | None, period_id: uuid.UUID | str) -> PeriodResponse:
        actor_id = self._require_actor(actor_id)
        period = await self._load_period(period_id)
        await self._require_role(actor_id, period.organization_id, PeriodOperation.GET)
        return PeriodResponse.model_validate(period)

    @action
    async def get_active_period(
        self, actor_id: uuid.UUID | None, organization_id: uuid.UUID | str
    ) -> PeriodResponse | None:
        """The open period containing today, or None."""
        actor_id = self._require_actor(actor_id)
        organization_id = _parse_id(organization_id, "organization")
        await self._require_role(actor_id, organization_id, PeriodOperation.GET_ACTIVE)

        period = await self.repository.find_open_containing(organization_id, self._today())
        return PeriodResponse.model_validate(period) if period is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @action
    async def create_period(
        self,
        actor_id: uuid.UUID | None,
        organization_id: uuid.UUID | str,
        data: Mapping[str, Any] | PeriodCreate,
    ) -> PeriodResponse:
        actor_id = self._require_actor(actor_id)
        organization_id = _parse_id(organization_id, "organization")
        await self._require_role(actor_id, organization_id, PeriodOperation.CREATE)

        payload = self._parse(PeriodCreate, data)
        if payload.end_date > add_years(payload.start_date, 1):
            logger.info("Accounting period '%s' spans more than one year", payload.name)

        candidate = DateRange(start=payload.start_date, end=payload.end_date)
        if has_overlap(candidate, await self.repository.list_ranges(organization_id)):
            raise ValidationError(OVERLAP_MESSAGE)

        period = await self.repository.insert(organization_id, payload.model_dump())
        logger.info(
            "Created accounting period %s in organization %s by %s",
            period.id, organization_id, actor_id,
        )
        await self._revalidate(organization_id, PERIODS_VIEW, JOURNAL_ENTRIES_VIEW)
        return PeriodResponse.model_validate(period)

    @action
    async def update_period(
        self,
        actor_id: uuid.UUID | None,
        period_id: uuid.UUID | str,
        data: Mapping[str, Any] | PeriodUpdate,
    ) -> PeriodResponse:
        actor_id = self._require_actor(actor_id)
        period = await self._load_period(period_id)
        await self._require_role(actor_id, period.organization_id, PeriodOperation.UPDATE)

        payload = self._parse(PeriodUpdate, data)
        if period.state.is_closed and payload.model_fields_set:
            raise ValidationError(
                "A closed accounting period cannot be edited. Reopen it first."
            )
        if payload.is_closed:
            raise ValidationError("Use the close action to close an accounting period.")

        changes = payload.changes
        changes.pop("is_closed", None)
        if not changes:
            return PeriodResponse.model_validate(period)

        if payload.changes_dates:
            start_date = changes.get("start_date", period.start_date)
            end_date = changes.get("end_date", period.end_date)
            try:
                check_date_range(start_date, end_date, self.settings.period_max_years)
            except ValueError as exc:
                raise ValidationError(str(exc)) from None

            candidate = DateRange(start=start_date, end=end_date, id=period.id)
            ranges = await self.repository.list_ranges(period.organization_id)
            if has_overlap(candidate, ranges, exclude_id=period.id):
                raise ValidationError(OVERLAP_MESSAGE)
            if await self.repository.has_entries_outside(period.id, start_date, end_date):
                raise ValidationError(
                    "Some journal entries of this period fall outside the new date range."
                )

        updated = await self.repository.update_if_open(period.id, changes)
        if updated is None:
            raise InternalError(CONCURRENT_CHANGE_MESSAGE, {"reason": "concurrent_modification"})

        logger.info("Updated accounting period %s (%s) by %s", period.id, ", ".join(changes), actor_id)
        await self._revalidate(period.organization_id, PERIODS_VIEW, JOURNAL_ENTRIES_VIEW)
        return PeriodResponse.model_validate(updated)

    @action
    async def close_period(self, actor_id: uuid.UUID | None, period_id: uuid.UUID | str) -> PeriodResponse:
        actor_id = self._require_actor(actor_id)
        period = await self._load_period(period_id)
        await self._require_role(actor_id, period.organization_id, PeriodOperation.CLOSE)

        if isinstance(period.state, ClosedState):
            raise ValidationError("This accounting period is already closed.")
        if await self.repository.count_journal_entries(period.id, non_final_only=True):
            raise ValidationError(
                "This accounting period has unapproved journal entries and cannot be closed."
            )

        closed = await self.repository.transition(period.id, ClosedState(at=self._now(), by=actor_id))
        if closed is None:
            raise InternalError(CONCURRENT_CHANGE_MESSAGE, {"reason": "concurrent_modification"})

        logger.info("Closed accounting period %s by %s", period.id, actor_id)
        await self._revalidate(period.organization_id, PERIODS_VIEW, JOURNAL_ENTRIES_VIEW)
        return PeriodResponse.model_validate(closed)

    @action
    async def reopen_period(self, actor_id: uuid.UUID | None, period_id: uuid.UUID | str) -> PeriodResponse:
        """Undo a close. Admin only; fails if the period is already open."""
        return await self._open_period(actor_id, period_id, PeriodOperation.REOPEN, strict=True)

    @action
    async def activate_period(
        self, actor_id: uuid.UUID | None, period_id: uuid.UUID | str
    ) -> PeriodResponse:
        """Make sure a period is open. Already-open periods are returned as they are."""
        return await self._open_period(actor_id, period_id, PeriodOperation.ACTIVATE, strict=False)

    @action
    async def delete_period(self, actor_id: uuid.UUID | None, period_id: uuid.UUID | str) -> PeriodDeleted:
        actor_id = self._require_actor(actor_id)
        period = await self._load_period(period_id)
        await self._require_role(actor_id, period.organization_id, PeriodOperation.DELETE)

        decision = await self.rate_limiter.check(delete_limit(self.settings), str(actor_id))
        if not decision.allowed:
            raise LimitExceededError(decision.retry_after_seconds)

        if await self.repository.count_journal_entries(period.id):
            raise ValidationError(
                "This accounting period has journal entries and cannot be deleted."
            )
        if not period.state.is_closed and not await self.repository.count_open_periods(
            period.organization_id, exclude_id=period.id
        ):
            raise ValidationError("The last active accounting period cannot be deleted.")

        if not await self.repository.delete(period.id):
            raise NotFoundError("Accounting period")

        logger.info("Deleted accounting period %s by %s", period.id, actor_id)
        await self._revalidate(period.organization_id, PERIODS_VIEW, JOURNAL_ENTRIES_VIEW)
        return PeriodDeleted(id=period.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _open_period(
        self,
        actor_id: uuid.UUID | None,
        period_id: uuid.UUID | str,
        operation: PeriodOperation,
        *,
        strict: bool,
    ) -> PeriodResponse:
        """Shared transition behind reopen (strict) and activate (idempotent)."""
        actor_id = self._require_actor(actor_id)
        period = await self._load_period(period_id)
        await self._require_role(actor_id, period.organization_id, operation)

        if isinstance(period.state, OpenState):
            if strict:
                raise ValidationError("This accounting period is already open.")
            return PeriodResponse.model_validate(period)

        opened = await self.repository.transition(period.id, OpenState())
        if opened is None:
            raise InternalError(CONCURRENT_CHANGE_MESSAGE, {"reason": "concurrent_modification"})

        logger.info(
            "%s accounting period %s by %s",
            "Reopened" if strict else "Activated", period.id, actor_id,
        )
        views = [PERIODS_VIEW, JOURNAL_ENTRIES_VIEW]
        if operation is PeriodOperation.ACTIVATE:
            views.append(PERIOD_SETTINGS_VIEW)
        await self._revalidate(period.organization_id, *views)
        return PeriodResponse.model_validate(opened)

    @staticmethod
    def _require_actor(actor_id: uuid.UUID | None) -> uuid.UUID:
        if actor_id is None:
            raise UnauthorizedError()
        return actor_id

    async def _require_role(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        operation: PeriodOperation,
    ) -> Role:
        role = await get_member_role(self.db, actor_id, organization_id)
        if role is None:
            raise ForbiddenError()
        if not is_allowed(role, operation):
            raise InsufficientPermissionsError(
                PERMISSION_MESSAGES.get(operation, "Your role does not permit this action.")
            )
        return role

    async def _load_period(self, period_id: uuid.UUID | str) -> AccountingPeriod:
        period_id = _parse_id(period_id, "accounting period")
        try:
            period = await self.repository.get(period_id)
        except SQLAlchemyError:
            logger.exception("Failed to load accounting period %s", period_id)
            await self.db.rollback()
            period = None
        if period is None:
            raise NotFoundError("Accounting period")
        return period

    def _parse(self, schema: type[SchemaT], data: Mapping[str, Any] | BaseModel) -> SchemaT:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        return schema.model_validate(
            data,
            context={
                "max_years": self.settings.period_max_years,
                "max_page_size": self.settings.max_page_size,
            },
        )

    async def _revalidate(self, organization_id: uuid.UUID, *paths: str) -> None:
        for path in paths:
            try:
                await self.revalidator.invalidate(path, organization_id)
            except Exception:
                logger.exception("Revalidation of %s failed", path)
