"""Organization membership lookups."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeper.organizations.models import OrganizationMember, Role


async def get_member_role(
    db: AsyncSession,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
) -> Role | None:
    """Return the user's role in the organization, or None if they are not a member."""
    return await db.scalar(
        select(OrganizationMember.role).where(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
        )
    )
