import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from bookkeeper.config import Settings
from bookkeeper.core.exceptions import register_exception_handlers
from bookkeeper.core.logging import configure_logging
from bookkeeper.core.rate_limit import InMemoryRateLimiter
from bookkeeper.core.revalidation import WebSocketRevalidator
from bookkeeper.core.websocket import WebSocketManager
from bookkeeper.database import build_engine, build_session_factory, create_all

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = application.state.settings

    if settings.is_sqlite and ":memory:" not in settings.database_url:
        db_path = settings.database_url.split("///")[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = build_engine(settings.database_url, echo=settings.sql_echo)

    # Auto-create tables for SQLite in development
    if settings.is_sqlite:
        await create_all(engine)

    application.state.engine = engine
    application.state.session_factory = build_session_factory(engine)
    logger.info("Database ready")

    yield

    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    fastapi_app = FastAPI(
        title="Bookkeeper",
        description="Accounting period lifecycle service",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings
    fastapi_app.state.rate_limiter = InMemoryRateLimiter()
    fastapi_app.state.websocket_manager = WebSocketManager()
    fastapi_app.state.revalidator = WebSocketRevalidator(fastapi_app.state.websocket_manager)

    # CORS
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from bookkeeper.accounting.period_router import router as period_router

    fastapi_app.include_router(period_router, prefix="/api", tags=["accounting-periods"])

    # WebSocket endpoint: revalidation events for one organization
    @fastapi_app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: str = Query(...),
        organization_id: str = Query(...),
    ):
        from bookkeeper.dependencies import resolve_actor_id
        from bookkeeper.organizations.service import get_member_role

        try:
            org_uuid = uuid.UUID(organization_id)
        except ValueError:
            await websocket.close(code=4400, reason="Invalid organization")
            return

        async with fastapi_app.state.session_factory() as db:
            actor_id = await resolve_actor_id(db, token, settings)
            role = await get_member_role(db, actor_id, org_uuid) if actor_id else None

        if actor_id is None:
            await websocket.close(code=4001, reason="Invalid token")
            return
        if role is None:
            await websocket.close(code=4003, reason="Not a member of this organization")
            return

        manager = fastapi_app.state.websocket_manager
        await manager.connect(str(org_uuid), websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(str(org_uuid), websocket)

    # System endpoints
    @fastapi_app.get("/api/system/health")
    async def health():
        return {"data": {"status": "healthy"}}

    # Register exception handlers
    register_exception_handlers(fastapi_app)

    return fastapi_app


app = create_app()
