"""SMS transport adapters.

The Twilio REST client is blocking, so each send runs in a worker thread to
keep the event loop free for other deliveries.
"""

from __future__ import annotations

import asyncio
import logging

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from core.errors import TransportFailure
from core.phones import COUNTRY_PREFIX

LOGGER = logging.getLogger(__name__)


def to_e164(number: str, prefix: str = COUNTRY_PREFIX) -> str:
    """Add the country prefix to national numbers."""

    number = number.strip()
    if number.startswith("+"):
        return number
    return f"{prefix}{number}"


class TwilioTransport:
    """TransportPort implementation that sends through Twilio."""

    def __init__(self, client: Client, from_number: str) -> None:
        self._client = client
        self._from_number = from_number

    async def send_text(self, to: str, text: str) -> None:
        try:
            message = await asyncio.to_thread(
                self._client.messages.create,
                to=to_e164(to),
                from_=self._from_number,
                body=text,
            )
        except (TwilioException, OSError) as exc:
            raise TransportFailure(str(exc)) from exc
        LOGGER.debug("Twilio accepted message %s", getattr(message, "sid", None))


class DryRunTransport:
    """Transport that only logs, for local runs without a gateway."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, to: str, text: str) -> None:
        self.sent.append((to, text))
        LOGGER.info("[dry-run] SMS to %s: %s", to, text)
