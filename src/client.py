"""Client factories for fiserelay.

We explicitly build and close the HTTP and SMS gateway clients so it is
obvious when connections are opened and when they end, instead of sharing an
implicit global handle.
"""

from __future__ import annotations

import logging
import os

import httpx
from dotenv import load_dotenv
from twilio.rest import Client

USER_AGENT = "fiserelay/0.1"


def build_http_client(base_url: str, timeout_seconds: float) -> httpx.AsyncClient:
    """Create the `httpx.AsyncClient` shared by the directory and backend adapters.

    Per-request timeouts still apply on top of this default.
    """

    if not base_url:
        raise RuntimeError("Missing API base URL (api.base_url or FISE_API_URL)")

    logging.getLogger(__name__).info("Initializing HTTP client for %s", base_url)

    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_seconds),
        headers={
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
    )


def build_twilio_client() -> tuple[Client, str]:
    """Create a Twilio REST client from environment variables.

    Returns the client and the sender number to use.
    """

    load_dotenv()

    account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    from_number = os.getenv("TWILIO_PHONE_NUMBER")

    # Fail fast on missing credentials.
    if not account_sid or not auth_token or not from_number:
        raise RuntimeError("Missing TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN or TWILIO_PHONE_NUMBER in environment")

    logging.getLogger(__name__).info("Initializing Twilio client")

    return Client(account_sid, auth_token), from_number
