"""Directory service adapter.

Resolves a phone number to its agent record (and the dealer/entity above it)
through the FISE directory API. Lookups share one injected semaphore so the
whole process never has more than a handful of requests in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from core.config import DirectoryConfig
from core.errors import LookupFailure
from core.models import AgentRecord
from core.phones import strip_country_code

LOGGER = logging.getLogger(__name__)

PARENT_ENDPOINT = "/sl/fise/agentParent"
AGENT_ENDPOINT = "/sl/fise/allAgent"


class DirectoryClient:
    """DirectoryPort implementation over `httpx.AsyncClient`.

    Timeouts, transport errors, non-200 responses and empty results all come
    back as None; there is no retry at this layer.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        limiter: asyncio.Semaphore,
        config: DirectoryConfig = DirectoryConfig(),
    ) -> None:
        self._http = http
        self._limiter = limiter
        self._timeout = httpx.Timeout(config.timeout_seconds)

    async def resolve_parent(self, phone: str) -> Optional[AgentRecord]:
        """Return the parent record (carrying the dealer phone) for a driver."""

        return await self._lookup(PARENT_ENDPOINT, phone)

    async def find_agent(self, phone: str) -> Optional[AgentRecord]:
        """Return the agent record registered for this phone, if any."""

        return await self._lookup(AGENT_ENDPOINT, phone)

    async def _lookup(self, endpoint: str, phone: str) -> Optional[AgentRecord]:
        number = strip_country_code(phone)
        try:
            async with self._limiter:
                record = await self._fetch(endpoint, number)
        except LookupFailure as exc:
            LOGGER.warning("Directory %s found nothing for %s: %s", endpoint, number, exc)
            return None
        except httpx.TimeoutException:
            LOGGER.error("Timeout querying directory %s for %s", endpoint, number)
            return None
        except httpx.HTTPError as exc:
            LOGGER.error("Network error querying directory %s for %s: %s", endpoint, number, exc)
            return None
        except ValueError:
            LOGGER.error("Invalid JSON from directory %s for %s", endpoint, number)
            return None
        LOGGER.info("Directory %s resolved %s (agent code %s)", endpoint, number, record.code)
        return record

    async def _fetch(self, endpoint: str, number: str) -> AgentRecord:
        response = await self._http.get(endpoint, params={"phone": number}, timeout=self._timeout)
        if response.status_code != 200:
            raise LookupFailure(f"status {response.status_code}: {response.text[:200]}")

        payload = response.json()
        values = payload.get("value") if isinstance(payload, dict) else None
        if not values or not isinstance(values[0], dict):
            raise LookupFailure("empty result")
        return AgentRecord.from_api(values[0])
