"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, lookup, sync and transport
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from core.models import AgentRecord, Direction, SyncRecord, Transaction, TxStatus


class LedgerPort(Protocol):
    """Transaction ledger operations required by the core pipeline."""

    def upsert(self, transaction: Transaction) -> int:
        ...

    def update_status(
        self,
        cupon: str,
        dni: str,
        estado: TxStatus,
        monto: Optional[float] = None,
        respuesta: Optional[str] = None,
    ) -> int:
        ...

    def find_pending(self, cupon: str, dni: str) -> Optional[Transaction]:
        ...

    def find_pending_by_coupon(self, cupon: str) -> Optional[Transaction]:
        ...

    def find_pending_by_entity(self, entity_suffix: str) -> Optional[Transaction]:
        ...

    def find_latest_by_coupon(self, cupon: str) -> Optional[Transaction]:
        ...

    def recent_transactions(self, limit: int = 20) -> list[Transaction]:
        ...


class HistoryPort(Protocol):
    """Durable message history shared by inbound and outbound traffic."""

    def append(self, direction: Direction, address: str, body: str, timestamp: datetime) -> None:
        ...


class DirectoryPort(Protocol):
    async def resolve_parent(self, phone: str) -> Optional[AgentRecord]:
        ...

    async def find_agent(self, phone: str) -> Optional[AgentRecord]:
        ...


class BackendSyncPort(Protocol):
    async def submit(self, record: SyncRecord) -> bool:
        ...


class TransportPort(Protocol):
    """Sends one plain text SMS. Raises TransportFailure on errors."""

    async def send_text(self, to: str, text: str) -> None:
        ...


class MessengerPort(Protocol):
    async def send(self, to: str, text: str) -> bool:
        ...
