"""SMS gateway webhook adapter.

Maps gateway HTTP callbacks to core inbound fragments and hands them to the
processor. This keeps FastAPI and gateway form details out of the core.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from core.models import InboundFragment
from core.processor import CouponProcessor
from core.ports import LedgerPort

LOGGER = logging.getLogger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


@dataclass
class Runtime:
    """Objects the webhook needs for the lifetime of the server."""

    processor: CouponProcessor
    ledger: LedgerPort


class FragmentIn(BaseModel):
    sender: str = Field(min_length=1)
    body: str
    timestamp: Optional[datetime] = None


class DeliveryIn(BaseModel):
    """One delivery event made of ordered fragments."""

    fragments: list[FragmentIn] = Field(min_length=1)


def fragment_from_form(form: dict, received_at: Optional[datetime] = None) -> Optional[InboundFragment]:
    """Build a fragment from a Twilio-style form (From, Body)."""

    sender = str(form.get("From") or "").strip()
    if not sender:
        return None
    return InboundFragment(
        sender=sender,
        body=str(form.get("Body") or ""),
        timestamp=received_at or datetime.now(timezone.utc),
    )


def create_webhook_app(runtime_factory: Callable[[], AsyncContextManager[Runtime]]) -> FastAPI:
    """Create the FastAPI app; the runtime lives exactly as long as the server."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with runtime_factory() as runtime:
            app.state.runtime = runtime
            yield

    app = FastAPI(title="fiserelay", lifespan=lifespan)

    @app.post("/sms/inbound")
    async def inbound_sms(request: Request) -> Response:
        form = await request.form()
        fragment = fragment_from_form(dict(form))
        if fragment is None:
            raise HTTPException(status_code=400, detail="Missing From")
        # The gateway only needs an acknowledgement; the event runs on its own.
        request.app.state.runtime.processor.submit([fragment])
        return Response(content=EMPTY_TWIML, media_type="application/xml")

    @app.post("/sms/fragments", status_code=202)
    async def inbound_fragments(delivery: DeliveryIn, request: Request) -> dict:
        now = datetime.now(timezone.utc)
        fragments = [
            InboundFragment(sender=item.sender, body=item.body, timestamp=item.timestamp or now)
            for item in delivery.fragments
        ]
        request.app.state.runtime.processor.submit(fragments)
        return {"accepted": len(fragments)}

    @app.get("/healthz")
    async def healthz(request: Request) -> dict:
        return {"status": "ok", "in_flight": request.app.state.runtime.processor.in_flight}

    @app.get("/transactions/recent")
    async def recent_transactions(request: Request, limit: int = 20) -> list[dict]:
        rows = request.app.state.runtime.ledger.recent_transactions(min(max(limit, 1), 200))
        return [
            {
                "id": tx.id,
                "driver_phone": tx.driver_phone,
                "entidad": tx.entidad,
                "agente_phone": tx.agente_phone,
                "cupon": tx.cupon,
                "dni": tx.dni,
                "fecha": tx.fecha.isoformat(),
                "monto": tx.monto,
                "estado": tx.estado.value,
                "respuesta": tx.respuesta,
                "sn": tx.sn,
            }
            for tx in rows
        ]

    return app
