"""Core coupon protocol processor.

This module is integration-agnostic. It only relies on ports for the ledger,
history, directory, backend sync and outbound messages, enabling different
gateways or adapters without changes here.

Each inbound delivery is one event, processed in a strict order:
1) Reassemble transport fragments into one message
2) Fast-exit for bodies outside the length bounds
3) Content-level dedup over (sender, body)
4) Append to history, then mark the fingerprint
5) Resolve the sender role when the body alone is ambiguous, then parse
6) Dispatch to the protocol step for the parsed kind

Events never share state other than the ledger and the dedup cache, and a
failure or timeout in one event is logged and never reaches another.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from core import replies
from core.config import ProcessingConfig
from core.dedup import DedupCache
from core.models import (
    Direction,
    InboundFragment,
    InboundMessage,
    MessageKind,
    ParsedMessage,
    SenderRole,
    SyncRecord,
    Transaction,
    TxStatus,
)
from core.parser import needs_sender_role, parse_message, within_bounds
from core.phones import national_suffix, strip_country_code
from core.ports import BackendSyncPort, DirectoryPort, HistoryPort, LedgerPort, MessengerPort
from core.roles import SenderRoleRegistry
from core.signals import RefreshSignal

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def assemble_fragments(fragments: Iterable[InboundFragment]) -> InboundMessage:
    """Concatenate ordered fragments; sender and timestamp come from the first."""

    parts = list(fragments)
    if not parts:
        raise ValueError("No fragments to assemble")
    first = parts[0]
    return InboundMessage(
        sender=first.sender,
        body="".join(part.body for part in parts),
        timestamp=first.timestamp,
    )


class CouponProcessor:
    """Drives the coupon validation protocol for every inbound message."""

    def __init__(
        self,
        ledger: LedgerPort,
        history: HistoryPort,
        directory: DirectoryPort,
        backend: BackendSyncPort,
        messenger: MessengerPort,
        roles: SenderRoleRegistry,
        dedup: DedupCache,
        processing: ProcessingConfig = ProcessingConfig(),
        signal: Optional[RefreshSignal] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ledger = ledger
        self._history = history
        self._directory = directory
        self._backend = backend
        self._messenger = messenger
        self._roles = roles
        self._dedup = dedup
        self._processing = processing
        self._signal = signal
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()
        self._handlers: dict[
            MessageKind, Callable[[InboundMessage, ParsedMessage], Awaitable[None]]
        ] = {
            MessageKind.COUPON_REQUEST: self._on_coupon_request,
            MessageKind.ENTITY_VALID: self._on_entity_valid,
            MessageKind.ENTITY_ERROR: self._on_entity_error,
            MessageKind.ENTITY_PROCESSED: self._on_entity_processed,
            MessageKind.UNRECOGNIZED: self._on_unrecognized,
        }

    # -- event lifecycle ---------------------------------------------------

    def submit(self, fragments: Iterable[InboundFragment]) -> asyncio.Task:
        """Schedule one delivery event as an owned background task."""

        task = asyncio.create_task(self.handle(list(fragments)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def aclose(self, grace_seconds: Optional[float] = None) -> None:
        """Wait for in-flight events, then cancel whatever is left."""

        if not self._tasks:
            return
        grace = self._processing.event_timeout_seconds if grace_seconds is None else grace_seconds
        pending = list(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=grace)
        for task in still_running:
            task.cancel()
        if still_running:
            LOGGER.warning("Cancelled %s unfinished event(s) on shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)

    async def handle(self, fragments: Iterable[InboundFragment]) -> None:
        """Process one delivery event. Never raises for protocol failures."""

        try:
            message = assemble_fragments(fragments)
        except ValueError:
            LOGGER.warning("Delivery event without fragments ignored")
            return

        budget = self._processing.event_timeout_seconds
        try:
            await asyncio.wait_for(self._process(message), timeout=budget)
        except asyncio.TimeoutError:
            LOGGER.error("Event from %s abandoned after %ss budget", message.sender, budget)
        except Exception:
            LOGGER.exception("Error while processing message from %s", message.sender)

    # -- pipeline ----------------------------------------------------------

    async def _process(self, message: InboundMessage) -> None:
        sender, body = message.sender, message.body
        bounds = (self._processing.min_length, self._processing.max_length)

        if not within_bounds(body, *bounds):
            LOGGER.warning("Ignoring message from %s with invalid length %s", sender, len(body))
            return

        if not self._dedup.should_process(sender, body):
            LOGGER.info("Dedup skip for %s (same message)", sender)
            return

        self._record_inbound(message)
        # Marked once side effects have started; a crash before this point
        # lets the transport redelivery run the event again.
        self._dedup.mark_processed(sender, body)

        role = SenderRole.UNKNOWN
        if needs_sender_role(body, *bounds):
            role = await self._resolve_role(sender)

        parsed = parse_message(body, role, min_length=bounds[0], max_length=bounds[1])
        LOGGER.info("Message from %s classified as %s (role=%s)", sender, parsed.kind.value, role.value)
        await self._handlers[parsed.kind](message, parsed)

    def _record_inbound(self, message: InboundMessage) -> None:
        try:
            self._history.append(Direction.INBOUND, message.sender, message.body, message.timestamp)
        except Exception:
            LOGGER.exception("Failed to append inbound message from %s to history", message.sender)
            return
        if self._signal is not None:
            self._signal.emit("inbound")

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._processing.call_timeout_seconds)

    async def _resolve_role(self, sender: str) -> SenderRole:
        try:
            return await self._bounded(self._roles.resolve(sender))
        except asyncio.TimeoutError:
            LOGGER.warning("Sender role lookup timed out for %s", sender)
            return SenderRole.UNKNOWN

    async def _send(self, to: str, text: str) -> bool:
        try:
            return await self._bounded(self._messenger.send(to, text))
        except asyncio.TimeoutError:
            LOGGER.error("Sending SMS to %s timed out", to)
            return False

    async def _notify_driver(self, transaction: Transaction, text: str) -> bool:
        if not transaction.driver_phone.strip():
            LOGGER.warning("Transaction %s has no driver phone", transaction.id)
            return False
        return await self._send(transaction.driver_phone, text)

    # -- protocol steps ----------------------------------------------------

    async def _on_coupon_request(self, message: InboundMessage, parsed: ParsedMessage) -> None:
        sender = message.sender
        try:
            dealer = await self._bounded(self._directory.resolve_parent(sender))
        except asyncio.TimeoutError:
            LOGGER.warning("Dealer lookup timed out for %s", sender)
            return
        if dealer is None:
            LOGGER.warning("No dealer found for %s", sender)
            return

        entity_phone = (dealer.dealer_phone or "").strip()
        if not entity_phone:
            LOGGER.warning("Dealer record for %s has no phone assigned", sender)
            return

        request_text = replies.validation_request(parsed.dni, parsed.cupon)
        # A failed or timed out send may still have reached the gateway, so the
        # request is recorded either way and the entity answer can match it.
        if not await self._send(entity_phone, request_text):
            LOGGER.warning("Relay of coupon %s to %s not confirmed; recording it anyway", parsed.cupon, entity_phone)

        transaction_id = self._ledger.upsert(
            Transaction(
                driver_phone=sender,
                entidad=entity_phone,
                agente_phone=(dealer.phone or "").strip() or sender,
                cupon=parsed.cupon,
                dni=parsed.dni,
                fecha=self._clock(),
                monto=None,
                estado=TxStatus.PENDING,
                sn=parsed.sn,
            )
        )
        LOGGER.info(
            "Coupon %s / DNI %s relayed to %s (transaction %s PENDING)",
            parsed.cupon,
            parsed.dni,
            entity_phone,
            transaction_id,
        )

    async def _on_entity_valid(self, message: InboundMessage, parsed: ParsedMessage) -> None:
        transaction = self._ledger.find_pending(parsed.cupon, parsed.dni)
        if transaction is None:
            transaction = self._ledger.find_pending_by_coupon(parsed.cupon)
            if transaction is not None:
                LOGGER.warning(
                    "Coupon %s matched by coupon only (stored DNI %s, reported %s)",
                    parsed.cupon,
                    transaction.dni,
                    parsed.dni,
                )
        if transaction is None:
            LOGGER.warning("No PENDING transaction for %s / %s", parsed.cupon, parsed.dni)
            return

        self._ledger.update_status(
            transaction.cupon,
            transaction.dni,
            TxStatus.DELIVERED,
            monto=parsed.monto,
            respuesta=parsed.descripcion,
        )
        LOGGER.info("Coupon %s DELIVERED (importe=%s)", transaction.cupon, parsed.monto)

        record = SyncRecord(
            entity_number=strip_country_code(message.sender),
            agent_number=strip_country_code(transaction.agente_phone),
            dni=transaction.dni,
            cupon=transaction.cupon,
            monto=parsed.monto,
            driver_phone=strip_country_code(transaction.driver_phone),
            descripcion=parsed.descripcion,
            sn=transaction.sn or parsed.sn,
        )
        # The driver reply must not wait on backend retries, and neither side
        # outlives the event when the other one fails.
        results = await asyncio.gather(
            self._sync(record),
            self._notify_driver(transaction, replies.coupon_validated(transaction.cupon, parsed.monto)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                LOGGER.error("Coupon %s follow-up failed: %s", transaction.cupon, result, exc_info=result)

    async def _sync(self, record: SyncRecord) -> None:
        if not await self._backend.submit(record):
            LOGGER.error("Backend sync failed for coupon %s; ledger keeps DELIVERED", record.cupon)

    async def _on_entity_error(self, message: InboundMessage, parsed: ParsedMessage) -> None:
        suffix = national_suffix(message.sender)
        transaction = self._ledger.find_pending_by_entity(suffix) if suffix else None
        if transaction is None:
            LOGGER.warning("ERRADO from %s with no PENDING transaction for that entity", message.sender)
            return

        self._ledger.update_status(
            transaction.cupon,
            transaction.dni,
            TxStatus.FAILED,
            respuesta=parsed.raw,
        )
        LOGGER.info("Coupon %s FAILED, relaying entity text to driver", transaction.cupon)
        await self._notify_driver(transaction, parsed.raw)

    async def _on_entity_processed(self, message: InboundMessage, parsed: ParsedMessage) -> None:
        """Handle "VALE PROCESADO": the entity already redeemed this coupon.

        A row still PENDING is closed as USED. A coupon that is already resolved
        only gets the driver notified again, with no further state change, so
        repeated notices repeat the notification and nothing else.
        """

        transaction = self._ledger.find_pending_by_coupon(parsed.cupon)
        if transaction is not None:
            self._ledger.update_status(
                transaction.cupon,
                transaction.dni,
                TxStatus.USED,
                respuesta=parsed.raw,
            )
            LOGGER.info("Coupon %s already redeemed (%s %s), marked USED", parsed.cupon, parsed.fecha, parsed.hora)
        else:
            transaction = self._ledger.find_latest_by_coupon(parsed.cupon)
            if transaction is None:
                LOGGER.warning("No transaction found for processed coupon %s", parsed.cupon)
                return
            LOGGER.info("Coupon %s is %s, re-notifying driver", parsed.cupon, transaction.estado.value)

        await self._notify_driver(transaction, replies.coupon_already_validated(parsed.cupon))

    async def _on_unrecognized(self, message: InboundMessage, parsed: ParsedMessage) -> None:
        LOGGER.info("Unrecognized message from %s kept in history only", message.sender)
