"""Date-range overlap checks for accounting periods."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Iterable


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    id: uuid.UUID | None = None

    def overlaps(self, other: DateRange) -> bool:
        """Closed-interval intersection: sharing a single day counts."""
        return self.start <= other.end and self.end >= other.start


def has_overlap(
    candidate: DateRange,
    existing: Iterable[DateRange],
    exclude_id: uuid.UUID | None = None,
) -> bool:
    """True if the candidate range intersects any existing range.

    The range whose id equals ``exclude_id`` (the period being updated) is
    ignored.
    """
    return any(
        candidate.overlaps(other)
        for other in existing
        if exclude_id is None or other.id != exclude_id
    )
