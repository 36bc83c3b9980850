"""Outbound messenger: send, record in history, signal observers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from core.errors import TransportFailure
from core.models import Direction
from core.ports import HistoryPort, TransportPort
from core.signals import RefreshSignal

LOGGER = logging.getLogger(__name__)


class OutboundMessenger:
    """MessengerPort implementation on top of an SMS transport."""

    def __init__(
        self,
        transport: TransportPort,
        history: HistoryPort,
        signal: Optional[RefreshSignal] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._transport = transport
        self._history = history
        self._signal = signal
        self._clock = clock

    async def send(self, to: str, text: str) -> bool:
        """Send `text` to `to`; False when nothing was sent."""

        destination = to.strip()
        if not destination:
            LOGGER.error("Empty destination number, SMS not sent")
            return False

        try:
            await self._transport.send_text(destination, text)
        except TransportFailure as exc:
            LOGGER.error("Error sending SMS to %s: %s", destination, exc)
            return False

        LOGGER.info("SMS sent to %s: %s", destination, text)
        # The SMS is out; a history failure must not report it as unsent.
        try:
            self._history.append(Direction.OUTBOUND, destination, text, self._clock())
        except Exception:
            LOGGER.exception("Failed to append outbound message to %s to history", destination)
            return True
        if self._signal is not None:
            self._signal.emit("outbound")
        return True
