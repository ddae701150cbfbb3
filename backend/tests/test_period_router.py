"""HTTP tests for the accounting period endpoints."""

import uuid
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from bookkeeper.accounting.period_repository import PeriodRepository
from bookkeeper.auth.utils import create_access_token
from bookkeeper.core.revalidation import PERIOD_SETTINGS_VIEW
from bookkeeper.journal.models import JournalEntryStatus
from bookkeeper.main import create_app
from conftest import RecordingRevalidator, add_entry, make_period


@pytest.fixture
def app(settings, session_factory, seed):
    application = create_app(settings)
    application.state.session_factory = session_factory
    application.state.revalidator = RecordingRevalidator()
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth(settings):
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}

    return _headers


@pytest.fixture
async def period(session_factory, seed):
    async with session_factory() as session:
        return await make_period(session, seed.organization_id, date(2024, 1, 1), date(2024, 12, 31))


async def _load(session_factory, period_id):
    async with session_factory() as session:
        return await PeriodRepository(session).get(period_id)


async def test_health(client):
    response = await client.get("/api/system/health")

    assert response.status_code == 200
    assert response.json() == {"data": {"status": "healthy"}}


async def test_missing_token_is_unauthorized(client, seed):
    response = await client.get(f"/api/organizations/{seed.organization_id}/accounting-periods")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


async def test_invalid_token_is_unauthorized(client, seed):
    response = await client.get(
        f"/api/organizations/{seed.organization_id}/accounting-periods",
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


async def test_inactive_user_is_unauthorized(client, seed, auth):
    response = await client.get(
        f"/api/organizations/{seed.organization_id}/accounting-periods",
        headers=auth(seed.inactive_id),
    )

    assert response.status_code == 401


async def test_non_member_is_forbidden(client, seed, auth):
    response = await client.get(
        f"/api/organizations/{seed.organization_id}/accounting-periods",
        headers=auth(seed.outsider_id),
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


async def test_create_and_list(client, seed, auth, app):
    url = f"/api/organizations/{seed.organization_id}/accounting-periods"

    created = await client.post(
        url,
        json={"name": "FY2024", "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=auth(seed.accountant_id),
    )
    listed = await client.get(url, params={"page_size": "10"}, headers=auth(seed.viewer_id))

    assert created.status_code == 201
    assert created.json()["data"]["name"] == "FY2024"
    assert created.json()["data"]["start_date"] == "2024-01-01"
    assert listed.status_code == 200
    body = listed.json()["data"]
    assert [p["name"] for p in body["items"]] == ["FY2024"]
    assert body["pagination"] == {"page": 1, "page_size": 10, "total_count": 1, "total_pages": 1}
    assert len(app.state.revalidator.calls) == 2


async def test_create_overlap_is_unprocessable(client, seed, auth, period):
    response = await client.post(
        f"/api/organizations/{seed.organization_id}/accounting-periods",
        json={"name": "Overlap", "start_date": "2024-12-01", "end_date": "2025-11-30"},
        headers=auth(seed.admin_id),
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "overlaps" in error["message"]


async def test_viewer_cannot_create(client, seed, auth):
    response = await client.post(
        f"/api/organizations/{seed.organization_id}/accounting-periods",
        json={"name": "FY2024", "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=auth(seed.viewer_id),
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


async def test_active_period_may_be_null(client, seed, auth):
    response = await client.get(
        f"/api/organizations/{seed.organization_id}/accounting-periods/active",
        headers=auth(seed.viewer_id),
    )

    assert response.status_code == 200
    assert response.json() == {"data": None}


async def test_get_period(client, seed, auth, period):
    response = await client.get(f"/api/accounting-periods/{period.id}", headers=auth(seed.viewer_id))

    assert response.status_code == 200
    assert response.json()["data"]["id"] == str(period.id)


async def test_get_unknown_and_malformed_ids(client, seed, auth):
    missing = await client.get(f"/api/accounting-periods/{uuid.uuid4()}", headers=auth(seed.admin_id))
    malformed = await client.get("/api/accounting-periods/abc", headers=auth(seed.admin_id))

    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"
    assert malformed.status_code == 422


async def test_patch_period(client, seed, auth, period):
    response = await client.patch(
        f"/api/accounting-periods/{period.id}",
        json={"name": "Fiscal 2024", "description": "Calendar year"},
        headers=auth(seed.admin_id),
    )

    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Calendar year"


async def test_close_reopen_and_activate(client, seed, auth, period, session_factory, app):
    url = f"/api/accounting-periods/{period.id}"

    closed = await client.post(f"{url}/close", headers=auth(seed.accountant_id))
    assert closed.status_code == 200
    assert closed.json()["data"]["is_closed"] is True
    assert (await _load(session_factory, period.id)).is_closed is True

    denied = await client.post(f"{url}/reopen", headers=auth(seed.accountant_id))
    assert denied.status_code == 403

    activated = await client.post(f"{url}/activate", headers=auth(seed.accountant_id))
    assert activated.status_code == 200
    assert activated.json()["data"]["is_closed"] is False
    assert PERIOD_SETTINGS_VIEW in app.state.revalidator.paths

    reopened = await client.post(f"{url}/reopen", headers=auth(seed.admin_id))
    assert reopened.status_code == 422


async def test_close_with_pending_entries_fails(client, seed, auth, period, session_factory):
    async with session_factory() as session:
        stored = await PeriodRepository(session).get(period.id)
        await add_entry(session, stored, status=JournalEntryStatus.PENDING)

    response = await client.post(f"/api/accounting-periods/{period.id}/close", headers=auth(seed.admin_id))

    assert response.status_code == 422
    assert (await _load(session_factory, period.id)).is_closed is False


async def test_accountant_cannot_delete(client, seed, auth, period, session_factory):
    response = await client.delete(f"/api/accounting-periods/{period.id}", headers=auth(seed.accountant_id))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"
    assert await _load(session_factory, period.id) is not None


async def test_delete_closed_period(client, seed, auth, session_factory):
    async with session_factory() as session:
        closed = await make_period(
            session, seed.organization_id, date(2023, 1, 1), date(2023, 12, 31), closed=True
        )

    response = await client.delete(f"/api/accounting-periods/{closed.id}", headers=auth(seed.admin_id))

    assert response.status_code == 200
    assert response.json() == {"data": {"id": str(closed.id)}}
    assert await _load(session_factory, closed.id) is None


async def test_delete_rate_limit_sets_retry_after(client, seed, auth, period, settings):
    url = f"/api/accounting-periods/{period.id}"
    for _ in range(settings.delete_rate_limit_max_requests):
        response = await client.delete(url, headers=auth(seed.admin_id))
        assert response.status_code == 422

    limited = await client.delete(url, headers=auth(seed.admin_id))

    assert limited.status_code == 429
    assert limited.json()["error"]["code"] == "LIMIT_EXCEEDED"
    assert int(limited.headers["Retry-After"]) == limited.json()["error"]["details"]["retry_after_seconds"]


async def test_openapi_documents_request_bodies(client):
    paths = (await client.get("/openapi.json")).json()["paths"]

    create = paths["/api/organizations/{organization_id}/accounting-periods"]["post"]
    update = paths["/api/accounting-periods/{period_id}"]["patch"]
    create_schema = create["requestBody"]["content"]["application/json"]["schema"]
    update_schema = update["requestBody"]["content"]["application/json"]["schema"]

    assert set(create_schema["required"]) == {"name", "start_date", "end_date"}
    assert "description" in create_schema["properties"]
    assert "is_closed" in update_schema["properties"]


async def test_body_is_checked_after_the_caller(client, seed):
    response = await client.post(
        f"/api/organizations/{seed.organization_id}/accounting-periods", json={"name": ""}
    )

    assert response.status_code == 401
