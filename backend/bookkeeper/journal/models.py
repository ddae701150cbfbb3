"""SQLAlchemy models for journal entries.

Only what the accounting period lifecycle needs lives here: the link to a
period, the entry date and the approval status.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date

from sqlalchemy import Date, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeper.database import Base, TimestampMixin


class JournalEntryStatus(enum.StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    POSTED = "posted"


# Entries in these statuses block closing their period.
NON_FINAL_STATUSES = (JournalEntryStatus.DRAFT, JournalEntryStatus.PENDING)


class JournalEntry(TimestampMixin, Base):
    __tablename__ = "journal_entries"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    accounting_period_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounting_periods.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[JournalEntryStatus] = mapped_column(
        Enum(JournalEntryStatus), default=JournalEntryStatus.DRAFT, nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
