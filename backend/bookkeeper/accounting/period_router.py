"""FastAPI router for accounting periods."""

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bookkeeper.accounting.period_schemas import PeriodCreate, PeriodUpdate
from bookkeeper.accounting.period_service import PeriodLifecycleEngine
from bookkeeper.core.exceptions import STATUS_BY_CODE, ErrorCode, error_response
from bookkeeper.core.results import ActionResult
from bookkeeper.dependencies import get_current_actor_id, get_period_engine

router = APIRouter()

Actor = Annotated[uuid.UUID | None, Depends(get_current_actor_id)]
Engine = Annotated[PeriodLifecycleEngine, Depends(get_period_engine)]
JsonObject = Annotated[dict[str, Any], Body()]


def json_body(schema: type[BaseModel]) -> dict[str, Any]:
    """Describe a raw JSON body with its schema in the OpenAPI document.

    Bodies are validated by the engine, after the caller has been checked.
    """
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": schema.model_json_schema()}},
        }
    }


def render(result: ActionResult, status_code: int = 200) -> JSONResponse:
    """Render a tagged result as ``{"data": ...}`` or ``{"error": {...}}``."""
    if result.success:
        return JSONResponse(status_code=status_code, content={"data": jsonable_encoder(result.data)})

    error = result.error
    headers = None
    if error.code == ErrorCode.LIMIT_EXCEEDED:
        headers = {"Retry-After": str(error.details["retry_after_seconds"])}
    return error_response(error.code, error.message, STATUS_BY_CODE[error.code], error.details, headers)


# ---------------------------------------------------------------------------
# Organization-scoped endpoints
# ---------------------------------------------------------------------------


@router.get("/organizations/{organization_id}/accounting-periods")
async def list_periods(
    organization_id: str,
    engine: Engine,
    actor_id: Actor,
    page: Annotated[str | None, Query()] = None,
    page_size: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
    order_by: Annotated[str | None, Query()] = None,
    order_direction: Annotated[str | None, Query()] = None,
) -> JSONResponse:
    """Return a page of the organization's accounting periods."""
    params = {
        "page": page,
        "page_size": page_size,
        "search": search,
        "order_by": order_by,
        "order_direction": order_direction,
    }
    result = await engine.list_periods(
        actor_id, organization_id, {k: v for k, v in params.items() if v is not None}
    )
    return render(result)


@router.get("/organizations/{organization_id}/accounting-periods/active")
async def get_active_period(organization_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    """Return the open period containing today, or null."""
    return render(await engine.get_active_period(actor_id, organization_id))


@router.post(
    "/organizations/{organization_id}/accounting-periods", openapi_extra=json_body(PeriodCreate)
)
async def create_period(
    organization_id: str, data: JsonObject, engine: Engine, actor_id: Actor
) -> JSONResponse:
    return render(await engine.create_period(actor_id, organization_id, data), status_code=201)


# ---------------------------------------------------------------------------
# Period endpoints
# ---------------------------------------------------------------------------


@router.get("/accounting-periods/{period_id}")
async def get_period(period_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    return render(await engine.get_period(actor_id, period_id))


@router.patch("/accounting-periods/{period_id}", openapi_extra=json_body(PeriodUpdate))
async def update_period(
    period_id: str, data: JsonObject, engine: Engine, actor_id: Actor
) -> JSONResponse:
    return render(await engine.update_period(actor_id, period_id, data))


@router.post("/accounting-periods/{period_id}/close")
async def close_period(period_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    """Close an accounting period. Requires every journal entry to be approved."""
    return render(await engine.close_period(actor_id, period_id))


@router.post("/accounting-periods/{period_id}/reopen")
async def reopen_period(period_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    """Reopen a previously closed accounting period (admin only)."""
    return render(await engine.reopen_period(actor_id, period_id))


@router.post("/accounting-periods/{period_id}/activate")
async def activate_period(period_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    return render(await engine.activate_period(actor_id, period_id))


@router.delete("/accounting-periods/{period_id}")
async def delete_period(period_id: str, engine: Engine, actor_id: Actor) -> JSONResponse:
    return render(await engine.delete_period(actor_id, period_id))
