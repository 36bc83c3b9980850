"""Backend sync adapter.

Delivers finalized validation records to the system of record. Attempts are
retried with a fixed delay; the caller only learns whether one succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from core.config import RetryConfig
from core.errors import BackendSyncFailure
from core.models import SyncRecord

LOGGER = logging.getLogger(__name__)

REGISTER_ENDPOINT = "/sl/fise/registrar-sms"


class BackendSyncClient:
    """BackendSyncPort implementation over `httpx.AsyncClient`."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        retry: RetryConfig = RetryConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http
        self._retry = retry
        self._sleep = sleep

    async def submit(self, record: SyncRecord) -> bool:
        """Deliver one record; False only after every attempt failed.

        The endpoint may receive the same record more than once.
        """

        payload = record.to_payload()
        attempts = max(1, self._retry.attempts)
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.wait_for(
                    self._post(payload),
                    timeout=self._retry.attempt_timeout_seconds,
                )
            except (BackendSyncFailure, httpx.HTTPError, asyncio.TimeoutError) as exc:
                LOGGER.warning(
                    "Backend sync attempt %s/%s failed for coupon %s: %r",
                    attempt,
                    attempts,
                    record.cupon,
                    exc,
                )
            else:
                LOGGER.info("Backend sync ok for coupon %s (attempt %s)", record.cupon, attempt)
                return True

            if attempt < attempts:
                await self._sleep(self._retry.delay_seconds)

        LOGGER.error("Backend sync gave up for coupon %s after %s attempts", record.cupon, attempts)
        return False

    async def _post(self, payload: dict) -> None:
        response = await self._http.post(REGISTER_ENDPOINT, json=payload)
        if not response.is_success:
            raise BackendSyncFailure(f"status {response.status_code}: {response.text[:200]}")
