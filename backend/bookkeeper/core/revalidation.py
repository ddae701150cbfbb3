"""Cache/revalidation signal fired after successful period mutations."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from bookkeeper.core.websocket import WebSocketManager

logger = logging.getLogger(__name__)

PERIODS_VIEW = "/dashboard/accounting-periods"
PERIOD_SETTINGS_VIEW = "/dashboard/settings/accounting-periods"
JOURNAL_ENTRIES_VIEW = "/dashboard/journal-entries"


class Revalidator(Protocol):
    async def invalidate(self, path: str, organization_id: uuid.UUID) -> None: ...


class WebSocketRevalidator:
    """Tells connected clients of an organization to refetch a view."""

    def __init__(self, manager: WebSocketManager):
        self._manager = manager

    async def invalidate(self, path: str, organization_id: uuid.UUID) -> None:
        logger.debug("Revalidating %s for organization %s", path, organization_id)
        await self._manager.send_to_organization(
            str(organization_id),
            {
                "type": "revalidate",
                "path": path,
                "organization_id": str(organization_id),
            },
        )
