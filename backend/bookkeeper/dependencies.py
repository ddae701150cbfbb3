import uuid
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeper.accounting.period_service import PeriodLifecycleEngine
from bookkeeper.auth.models import User
from bookkeeper.auth.utils import decode_token
from bookkeeper.config import Settings

security_optional = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncSession:
    async with request.app.state.session_factory() as session:
        yield session


async def resolve_actor_id(
    db: AsyncSession,
    raw_token: str | None,
    settings: Settings,
) -> uuid.UUID | None:
    """Map a bearer token onto an active user's id, or None."""
    if raw_token is None:
        return None

    token_data = decode_token(raw_token, settings)
    if token_data is None:
        return None

    user = await db.get(User, token_data.sub)
    if user is None or not user.is_active:
        return None
    return user.id


async def get_current_actor_id(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security_optional)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> uuid.UUID | None:
    """Authenticate via Bearer header.

    A missing or invalid token is not rejected here: the period engine reports
    it as UNAUTHORIZED so that its failure ordering holds for HTTP callers.
    """
    raw_token = credentials.credentials if credentials is not None else None
    return await resolve_actor_id(db, raw_token, request.app.state.settings)


def get_period_engine(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PeriodLifecycleEngine:
    state = request.app.state
    return PeriodLifecycleEngine(
        db,
        settings=state.settings,
        rate_limiter=state.rate_limiter,
        revalidator=state.revalidator,
    )
