"""SQLAlchemy models for accounting periods."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeper.database import Base, TimestampMixin

# ---------------------------------------------------------------------------
# Lifecycle state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenState:
    is_closed = False


@dataclass(frozen=True)
class ClosedState:
    at: datetime
    by: uuid.UUID | None
    is_closed = True


PeriodState = Union[OpenState, ClosedState]


def state_columns(state: PeriodState) -> dict:
    """Column values that persist a lifecycle state."""
    if isinstance(state, ClosedState):
        return {"is_closed": True, "closed_at": state.at, "closed_by": state.by}
    return {"is_closed": False, "closed_at": None, "closed_by": None}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class AccountingPeriod(TimestampMixin, Base):
    __tablename__ = "accounting_periods"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_accounting_periods_date_order"),
        Index("ix_accounting_periods_org_start", "organization_id", "start_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    @property
    def state(self) -> PeriodState:
        if self.is_closed:
            return ClosedState(at=self.closed_at, by=self.closed_by)
        return OpenState()
