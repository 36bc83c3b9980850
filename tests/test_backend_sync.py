from __future__ import annotations

import asyncio
import json

import httpx

from adapters.backend_sync import BackendSyncClient
from core.config import RetryConfig
from core.models import SyncRecord

RECORD = SyncRecord(
    entity_number="912345678",
    agent_number="955555555",
    dni="87654321",
    cupon="1234567890",
    monto=60.5,
    driver_phone="987654321",
    descripcion="Generacion FISE",
    sn="C000123456",
)


def _submit(handler, retry: RetryConfig = RetryConfig()) -> tuple[bool, list[float]]:
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    async def run() -> bool:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="https://backend.test/api"
        ) as http:
            return await BackendSyncClient(http, retry, sleep=fake_sleep).submit(RECORD)

    return asyncio.run(run()), delays


def test_succeeds_on_third_attempt_after_two_delays() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/sl/fise/registrar-sms"
        bodies.append(json.loads(request.content))
        if len(bodies) < 3:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(201, json={"ok": True})

    ok, delays = _submit(handler)

    assert ok is True
    assert delays == [2.0, 2.0]
    assert len(bodies) == 3
    assert bodies[0] == {
        "U_fise_numero": "912345678",
        "U_usr_numero": "955555555",
        "U_usr_dni": "87654321",
        "U_fise_codigo": "1234567890",
        "U_importe": 60.5,
        "U_usr_chofer": "987654321",
        "U_descripcion": "Generacion FISE",
        "U_LLG_FISE_SN": "C000123456",
    }


def test_first_attempt_success_does_not_sleep() -> None:
    ok, delays = _submit(lambda request: httpx.Response(200, json={}))
    assert ok is True
    assert delays == []


def test_returns_false_after_all_attempts_fail() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("refused", request=request)

    ok, delays = _submit(handler)

    assert ok is False
    assert len(calls) == 3
    assert delays == [2.0, 2.0]


def test_slow_attempts_count_as_failures() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    ok, delays = _submit(handler, RetryConfig(attempts=2, delay_seconds=2.0, attempt_timeout_seconds=0.01))

    assert ok is False
    assert delays == [2.0]
