from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from bookkeeper.accounting.period_models import AccountingPeriod
from bookkeeper.accounting.period_service import PeriodLifecycleEngine
from bookkeeper.auth.models import User
from bookkeeper.config import Settings
from bookkeeper.core.rate_limit import InMemoryRateLimiter
from bookkeeper.database import build_engine, build_session_factory, create_all
from bookkeeper.journal.models import JournalEntry, JournalEntryStatus
from bookkeeper.organizations.models import Organization, OrganizationMember, Role

# Fixed "today" for every engine built by these fixtures.
TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class RecordingRevalidator:
    """Collects (path, organization_id) pairs instead of notifying clients."""

    def __init__(self):
        self.calls: list[tuple[str, uuid.UUID]] = []

    async def invalidate(self, path: str, organization_id: uuid.UUID) -> None:
        self.calls.append((path, organization_id))

    @property
    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


@dataclass
class Seed:
    organization_id: uuid.UUID
    other_organization_id: uuid.UUID
    admin_id: uuid.UUID
    accountant_id: uuid.UUID
    viewer_id: uuid.UUID
    outsider_id: uuid.UUID
    inactive_id: uuid.UUID

    def user_for(self, role: Role) -> uuid.UUID:
        return {
            Role.ADMIN: self.admin_id,
            Role.ACCOUNTANT: self.accountant_id,
            Role.VIEWER: self.viewer_id,
        }[role]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret",
    )


@pytest.fixture
async def db_engine(settings):
    engine = build_engine(settings.database_url, poolclass=StaticPool)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def seed(session_factory) -> Seed:
    """One organization with an admin, an accountant and a viewer."""
    async with session_factory() as session:
        org = Organization(name="Acme KK")
        other_org = Organization(name="Other Co")
        users = {
            key: User(email=f"{key}@example.com", full_name=key.title())
            for key in ("admin", "accountant", "viewer", "outsider")
        }
        inactive = User(email="inactive@example.com", full_name="Inactive", is_active=False)
        session.add_all([org, other_org, inactive, *users.values()])
        await session.flush()

        session.add_all(
            [
                OrganizationMember(user_id=users["admin"].id, organization_id=org.id, role=Role.ADMIN),
                OrganizationMember(
                    user_id=users["accountant"].id, organization_id=org.id, role=Role.ACCOUNTANT
                ),
                OrganizationMember(user_id=users["viewer"].id, organization_id=org.id, role=Role.VIEWER),
                OrganizationMember(user_id=inactive.id, organization_id=org.id, role=Role.ADMIN),
                OrganizationMember(
                    user_id=users["outsider"].id, organization_id=other_org.id, role=Role.ADMIN
                ),
            ]
        )
        await session.commit()

        return Seed(
            organization_id=org.id,
            other_organization_id=other_org.id,
            admin_id=users["admin"].id,
            accountant_id=users["accountant"].id,
            viewer_id=users["viewer"].id,
            outsider_id=users["outsider"].id,
            inactive_id=inactive.id,
        )


@pytest.fixture
async def db(session_factory, seed) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def revalidator() -> RecordingRevalidator:
    return RecordingRevalidator()


@pytest.fixture
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter()


@pytest.fixture
def engine(db, settings, rate_limiter, revalidator) -> PeriodLifecycleEngine:
    return PeriodLifecycleEngine(
        db,
        settings=settings,
        rate_limiter=rate_limiter,
        revalidator=revalidator,
        today=lambda: TODAY,
        now=lambda: NOW,
    )


async def make_period(
    session: AsyncSession,
    organization_id: uuid.UUID,
    start: date,
    end: date,
    name: str | None = None,
    closed: bool = False,
) -> AccountingPeriod:
    period = AccountingPeriod(
        organization_id=organization_id,
        name=name or f"FY {start.isoformat()}",
        start_date=start,
        end_date=end,
        is_closed=closed,
        closed_at=NOW if closed else None,
    )
    session.add(period)
    await session.commit()
    await session.refresh(period)
    return period


async def add_entry(
    session: AsyncSession,
    period: AccountingPeriod,
    status: JournalEntryStatus = JournalEntryStatus.APPROVED,
    entry_date: date | None = None,
) -> JournalEntry:
    entry = JournalEntry(
        organization_id=period.organization_id,
        accounting_period_id=period.id,
        entry_date=entry_date or period.start_date,
        status=status,
    )
    session.add(entry)
    await session.commit()
    return entry
