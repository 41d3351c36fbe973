from typing import AsyncIterator

import pytest
import pytest_asyncio
from conftest import make_customer, make_table
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tablebook.deps import get_session
from tablebook.main import app


@pytest_asyncio.fixture
async def client(session_maker: async_sessionmaker[AsyncSession], seed) -> AsyncIterator[AsyncClient]:
    await seed(
        make_customer(1),
        make_table(1, "T1", 4),
        make_table(2, "T2", 2),
        make_table(3, "T3", 2),
    )

    async def override_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_reservation_flow_over_http(client: AsyncClient) -> None:
    created = await client.post(
        "/reservations",
        json={"customer_id": 1, "start_at": "2026-01-10T20:00:00Z", "party_size": 4, "table_ids": [1]},
    )
    assert created.status_code == 201
    reservation_id = created.json()["reservation_id"]
    assert created.json()["table_ids"] == [1]

    clash = await client.post(
        "/reservations",
        json={"customer_id": 1, "start_at": "2026-01-10T21:00:00+00:00", "party_size": 2, "table_ids": [1]},
    )
    assert clash.status_code == 409
    assert clash.json()["detail"]["code"] == "conflict"

    available = await client.get("/tables/available", params={"start": "2026-01-10T21:00:00+00:00"})
    assert [t["code"] for t in available.json()] == ["T2", "T3"]

    confirmed = await client.post(f"/reservations/{reservation_id}/confirm")
    assert confirmed.json() == {"reservation_id": reservation_id, "changed": True, "status": "CONFIRMED"}

    cancelled = await client.post(f"/reservations/{reservation_id}/cancel", json={"reason": "guest called"})
    assert cancelled.json()["status"] == "CANCELLED"

    again = await client.post(f"/reservations/{reservation_id}/confirm")
    assert again.status_code == 409

    listed = await client.get("/reservations", params={"status": "CANCELLED"})
    assert [item["reservation_id"] for item in listed.json()] == [reservation_id]
    assert listed.json()[0]["table_codes"] == ["T1"]


@pytest.mark.asyncio
async def test_auto_assign_over_http(client: AsyncClient) -> None:
    resp = await client.post(
        "/reservations/auto-assign",
        json={"customer_id": 1, "start_at": "2026-01-10T20:00:00Z", "party_size": 3},
    )
    assert resp.status_code == 201
    assert resp.json()["table_ids"] == [2, 3]

    tables = await client.get(f"/reservations/{resp.json()['reservation_id']}/tables")
    assert tables.json()["table_ids"] == [2, 3]


@pytest.mark.asyncio
async def test_http_error_statuses(client: AsyncClient) -> None:
    naive = await client.post(
        "/reservations",
        json={"customer_id": 1, "start_at": "2026-01-10T20:00:00", "party_size": 2, "table_ids": [2]},
    )
    assert naive.status_code == 400

    missing = await client.post("/reservations/999/no-show")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "not_found"

    unknown_customer = await client.post(
        "/reservations",
        json={"customer_id": 42, "start_at": "2026-01-10T20:00:00Z", "party_size": 2, "table_ids": [2]},
    )
    assert unknown_customer.status_code == 404
