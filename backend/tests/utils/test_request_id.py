import json

from tablebook.main import request_id_middleware
from tablebook.utils import audit_log
from tablebook.utils.request_id import generate_request_id, get_request_id, set_request_id
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
import pytest


def test_request_id_set_and_get() -> None:
    set_request_id("req-abc")
    assert get_request_id() == "req-abc"
    set_request_id(None)
    assert get_request_id() is None


def test_generate_request_id_is_not_empty() -> None:
    value = generate_request_id()
    assert isinstance(value, str)
    assert len(value) > 0


@pytest.mark.asyncio
async def test_request_id_middleware_generates_and_sets_header() -> None:
    app = FastAPI()

    @app.get("/check")
    async def check() -> dict[str, str]:
        return {"rid": get_request_id() or ""}

    app.middleware("http")(request_id_middleware)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/check")
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.json()["rid"] == resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_middleware_uses_incoming_header() -> None:
    app = FastAPI()

    @app.get("/check")
    async def check() -> dict[str, str]:
        return {"rid": get_request_id() or ""}

    app.middleware("http")(request_id_middleware)

    incoming = "req-custom-123"
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-Request-ID": incoming}) as client:
        resp = await client.get("/check")
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == incoming
    assert resp.json()["rid"] == incoming


@pytest.mark.asyncio
async def test_audit_lines_carry_the_request_id(monkeypatch: pytest.MonkeyPatch) -> None:
    lines: list[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            lines.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    app = FastAPI()

    @app.post("/audit")
    async def audit() -> dict[str, str]:
        audit_log.emit_audit_log(action="reservation.confirmed", reservation_id=1)
        return {}

    app.middleware("http")(request_id_middleware)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-Request-ID": "req-77"}) as client:
        resp = await client.post("/audit")
    assert resp.status_code == 200
    assert json.loads(lines[0])["request_id"] == "req-77"
