"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TxStatus(str, Enum):
    """Lifecycle states of a voucher transaction."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    USED = "USED"


class MessageKind(str, Enum):
    COUPON_REQUEST = "coupon_request"
    ENTITY_ERROR = "entity_error"
    ENTITY_PROCESSED = "entity_processed"
    ENTITY_VALID = "entity_valid"
    UNRECOGNIZED = "unrecognized"


class SenderRole(str, Enum):
    ENTITY = "entity"
    DRIVER = "driver"
    UNKNOWN = "unknown"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass
class Transaction:
    """One row of the voucher ledger.

    `entidad` is the phone number of the validating entity the request was
    relayed to; `agente_phone` is the agent the driver belongs to.
    """

    driver_phone: str
    entidad: str
    agente_phone: str
    cupon: str
    dni: str
    fecha: datetime
    monto: Optional[float] = None
    estado: TxStatus = TxStatus.PENDING
    respuesta: Optional[str] = None
    sn: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class AgentRecord:
    """Directory entry for an agent, as returned by the directory service."""

    code: Optional[str]
    phone: Optional[str]
    imei: Optional[str]
    name: Optional[str]
    dealer_phone: Optional[str]
    document: Optional[str]
    hierarchy_id: Optional[str]
    parent_id: Optional[str]
    approve: Optional[str]

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "AgentRecord":
        def _field(name: str) -> Optional[str]:
            value = payload.get(name)
            return None if value is None else str(value)

        return cls(
            code=_field("Code"),
            phone=_field("U_LLG_AGENT_PHONE"),
            imei=_field("U_LLG_AGENT_IMEI"),
            name=_field("U_LLG_AGENT_NAME"),
            dealer_phone=_field("U_LLG_DEALER_PHONE"),
            document=_field("U_LLG_AGENT_DOCUMENT"),
            hierarchy_id=_field("U_LLG_ID"),
            parent_id=_field("U_LLG_ID_PARENT"),
            approve=_field("U_LLG_APPROVE"),
        )


@dataclass(frozen=True)
class ParsedMessage:
    """Fields extracted from one inbound body. Transient, never persisted."""

    kind: MessageKind
    raw: str
    cupon: Optional[str] = None
    dni: Optional[str] = None
    sn: Optional[str] = None
    monto: Optional[float] = None
    descripcion: Optional[str] = None
    fecha: Optional[str] = None
    hora: Optional[str] = None


@dataclass(frozen=True)
class InboundFragment:
    """One transport-level piece of an inbound message."""

    sender: str
    body: str
    timestamp: datetime


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    body: str
    timestamp: datetime


@dataclass(frozen=True)
class SyncRecord:
    """Finalized validation record delivered to the system of record."""

    entity_number: str
    agent_number: str
    dni: str
    cupon: str
    monto: Optional[float]
    driver_phone: str
    descripcion: Optional[str]
    sn: Optional[str]

    def to_payload(self) -> dict[str, Any]:
        return {
            "U_fise_numero": self.entity_number,
            "U_usr_numero": self.agent_number,
            "U_usr_dni": self.dni,
            "U_fise_codigo": self.cupon,
            "U_importe": self.monto,
            "U_usr_chofer": self.driver_phone,
            "U_descripcion": self.descripcion,
            "U_LLG_FISE_SN": self.sn,
        }
