from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from adapters.sms_webhook import EMPTY_TWIML, Runtime, create_webhook_app, fragment_from_form
from core.models import Transaction, TxStatus


class FakeProcessor:
    def __init__(self) -> None:
        self.events: list[list] = []

    def submit(self, fragments):
        self.events.append(list(fragments))

    @property
    def in_flight(self) -> int:
        return 0


class FakeLedger:
    def __init__(self) -> None:
        self.limits: list[int] = []

    def recent_transactions(self, limit: int = 20) -> list[Transaction]:
        self.limits.append(limit)
        return [
            Transaction(
                id=7,
                driver_phone="+51987654321",
                entidad="912345678",
                agente_phone="955555555",
                cupon="1234567890",
                dni="87654321",
                fecha=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
                monto=60.5,
                estado=TxStatus.DELIVERED,
            )
        ]


def _client():
    processor = FakeProcessor()
    ledger = FakeLedger()
    closed: list[bool] = []

    @asynccontextmanager
    async def factory():
        yield Runtime(processor=processor, ledger=ledger)
        closed.append(True)

    return TestClient(create_webhook_app(factory)), processor, ledger, closed


def test_fragment_from_form_requires_sender() -> None:
    assert fragment_from_form({"Body": "hola"}) is None
    fragment = fragment_from_form({"From": " +51987654321 ", "Body": "CUPON: 1"})
    assert fragment is not None
    assert fragment.sender == "+51987654321"
    assert fragment.body == "CUPON: 1"


def test_inbound_sms_acknowledges_and_submits() -> None:
    client, processor, _, closed = _client()
    with client:
        response = client.post(
            "/sms/inbound",
            data={"From": "+51987654321", "Body": "CUPON: 1234567890 DNI: 87654321"},
        )

    assert response.status_code == 200
    assert response.text == EMPTY_TWIML
    assert response.headers["content-type"].startswith("application/xml")
    assert len(processor.events) == 1
    assert processor.events[0][0].body == "CUPON: 1234567890 DNI: 87654321"
    assert closed == [True]


def test_inbound_sms_without_sender_is_rejected() -> None:
    client, processor, _, _ = _client()
    with client:
        response = client.post("/sms/inbound", data={"Body": "hola"})

    assert response.status_code == 400
    assert processor.events == []


def test_fragments_endpoint_keeps_order() -> None:
    client, processor, _, _ = _client()
    payload = {
        "fragments": [
            {"sender": "+51987654321", "body": "CUPON: 1234567890 "},
            {"sender": "+51987654321", "body": "DNI: 87654321", "timestamp": "2024-01-01T12:00:00+00:00"},
        ]
    }
    with client:
        response = client.post("/sms/fragments", json=payload)
        empty = client.post("/sms/fragments", json={"fragments": []})

    assert response.status_code == 202
    assert response.json() == {"accepted": 2}
    assert [f.body for f in processor.events[0]] == ["CUPON: 1234567890 ", "DNI: 87654321"]
    assert empty.status_code == 422


def test_health_and_recent_transactions() -> None:
    client, _, ledger, _ = _client()
    with client:
        health = client.get("/healthz")
        recent = client.get("/transactions/recent", params={"limit": 1000})

    assert health.json() == {"status": "ok", "in_flight": 0}
    assert ledger.limits == [200]
    row = recent.json()[0]
    assert row["estado"] == "DELIVERED"
    assert row["monto"] == 60.5
    assert row["fecha"] == "2024-01-01T12:00:00+00:00"
