from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.messenger import OutboundMessenger
from core.errors import TransportFailure
from core.models import Direction
from core.signals import RefreshSignal


class FakeHistory:
    def __init__(self) -> None:
        self.entries: list[tuple[Direction, str, str]] = []

    def append(self, direction: Direction, address: str, body: str, timestamp: datetime) -> None:
        self.entries.append((direction, address, body))


class FakeTransport:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, to: str, text: str) -> None:
        if self.fail:
            raise TransportFailure("gateway down")
        self.sent.append((to, text))


def _messenger(transport: FakeTransport, history: FakeHistory, signal: RefreshSignal) -> OutboundMessenger:
    return OutboundMessenger(
        transport,
        history,
        signal,
        clock=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_send_records_outbound_history_and_signals() -> None:
    transport, history, signal = FakeTransport(), FakeHistory(), RefreshSignal()
    reasons: list[str] = []
    signal.subscribe(reasons.append)

    ok = asyncio.run(_messenger(transport, history, signal).send(" 912345678 ", "FISE AH02 1 2"))

    assert ok is True
    assert transport.sent == [("912345678", "FISE AH02 1 2")]
    assert history.entries == [(Direction.OUTBOUND, "912345678", "FISE AH02 1 2")]
    assert reasons == ["outbound"]


def test_blank_destination_is_rejected_without_sending() -> None:
    transport, history = FakeTransport(), FakeHistory()

    ok = asyncio.run(_messenger(transport, history, RefreshSignal()).send("   ", "hola"))

    assert ok is False
    assert transport.sent == []
    assert history.entries == []


def test_transport_failure_is_reported_not_raised() -> None:
    transport, history = FakeTransport(fail=True), FakeHistory()

    ok = asyncio.run(_messenger(transport, history, RefreshSignal()).send("912345678", "hola"))

    assert ok is False
    assert history.entries == []


def test_failing_subscriber_does_not_break_send() -> None:
    transport, history, signal = FakeTransport(), FakeHistory(), RefreshSignal()

    def broken(reason: str) -> None:
        raise RuntimeError("observer crashed")

    signal.subscribe(broken)

    assert asyncio.run(_messenger(transport, history, signal).send("912345678", "hola")) is True


class BrokenHistory(FakeHistory):
    def append(self, direction: Direction, address: str, body: str, timestamp: datetime) -> None:
        raise RuntimeError("disk full")


def test_history_failure_after_send_still_reports_sent() -> None:
    transport, signal = FakeTransport(), RefreshSignal()
    reasons: list[str] = []
    signal.subscribe(reasons.append)

    ok = asyncio.run(_messenger(transport, BrokenHistory(), signal).send("912345678", "hola"))

    assert ok is True
    assert transport.sent == [("912345678", "hola")]
    assert reasons == []
