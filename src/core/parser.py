"""Message classification and field extraction (core domain).

Bodies arrive as free text from three kinds of senders that share much of the
same phrasing, so classification runs in a fixed priority order:

1. "ERRADO" anywhere -> entity rejected the coupon.
2. "VALE PROCESADO" -> entity says the coupon was already redeemed.
3. A DNI + CUPON pair -> either a driver request or an entity confirmation,
   decided by the verified sender role and only then by content markers.
4. Anything else is unrecognized.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from core.models import MessageKind, ParsedMessage, SenderRole

MIN_LENGTH = 10
MAX_LENGTH = 500

# Coupon length bounds differ between message sources (6-20 vs 10-13 digits);
# the wider range is accepted here.
COUPON_MIN_DIGITS = 6
COUPON_MAX_DIGITS = 20

_ERRADO = re.compile(r"\bERRADO\b", re.IGNORECASE)
_PROCESADO = re.compile(r"\bVALE\s+PROCESADO\b", re.IGNORECASE)
_DATE_TIME = re.compile(r"\b(\d{2}/\d{2}/\d{4})\s+((?:[01]?\d|2[0-3]):[0-5]\d)\b")
_DNI = re.compile(r"\bDNI[:\s]+(\d{8})\b", re.IGNORECASE)
_CUPON = re.compile(
    rf"\bCUP[OÓ]N[:\s]+(\d{{{COUPON_MIN_DIGITS},{COUPON_MAX_DIGITS}}})\b",
    re.IGNORECASE,
)
_SN_LABELED = re.compile(r"\bS/?N\b[:\s]*(C\d{8,12})\b", re.IGNORECASE)
_SN_BARE = re.compile(r"\b(C\d{8,12})\b", re.IGNORECASE)
_AMOUNT = re.compile(
    r"\bIMPORTE\s*[:=]?\s*(?:S\s*/\s*\.?)?\s*"
    r"(\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)",
    re.IGNORECASE,
)

# Content that only the validating entity writes. Compared after accent folding.
ENTITY_MARKERS = (
    "IMPORTE:",
    "ERRADO",
    "VALE PROCESADO",
    "EL CUPON SE PROCESO CORRECTAMENTE",
)


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).upper()


def within_bounds(body: str, min_length: int = MIN_LENGTH, max_length: int = MAX_LENGTH) -> bool:
    return min_length <= len(body) <= max_length


def normalize_number(value: str) -> float:
    """Parse a locale-ambiguous number.

    The separator occurring last is the decimal separator and the other one is
    dropped as a thousands separator. Unparsable input yields 0.0.
    """

    last_dot = value.rfind(".")
    last_comma = value.rfind(",")
    if last_dot == -1 and last_comma == -1:
        cleaned = "".join(ch for ch in value if ch in "0123456789")
    else:
        decimal_sep = "." if last_dot > last_comma else ","
        thousands_sep = "," if decimal_sep == "." else "."
        kept = "".join(ch for ch in value if ch in "0123456789.,")
        cleaned = kept.replace(thousands_sep, "").replace(decimal_sep, ".")
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def extract_sn(body: str) -> Optional[str]:
    """Return the partner code, preferring one labeled with S/N."""

    labeled = _SN_LABELED.search(body)
    if labeled:
        return labeled.group(1).upper()
    bare = _SN_BARE.search(body)
    if bare:
        return bare.group(1).upper()
    return None


def extract_amount(body: str) -> Optional[float]:
    match = _AMOUNT.search(body)
    if not match:
        return None
    return normalize_number(match.group(1))


def _coupon_pair(body: str) -> tuple[Optional[str], Optional[str]]:
    dni = _DNI.search(body)
    cupon = _CUPON.search(body)
    return (
        dni.group(1) if dni else None,
        cupon.group(1) if cupon else None,
    )


def has_entity_markers(body: str) -> bool:
    folded = _fold(body)
    return any(marker in folded for marker in ENTITY_MARKERS)


def needs_sender_role(
    body: str, min_length: int = MIN_LENGTH, max_length: int = MAX_LENGTH
) -> bool:
    """True when classification of `body` depends on who sent it."""

    if not within_bounds(body, min_length, max_length):
        return False
    if _ERRADO.search(body) or _PROCESADO.search(body):
        return False
    dni, cupon = _coupon_pair(body)
    return bool(dni and cupon)


def parse_message(
    body: str,
    role: SenderRole = SenderRole.UNKNOWN,
    *,
    min_length: int = MIN_LENGTH,
    max_length: int = MAX_LENGTH,
) -> ParsedMessage:
    """Classify one reassembled body and extract its fields."""

    if not within_bounds(body, min_length, max_length):
        return ParsedMessage(kind=MessageKind.UNRECOGNIZED, raw=body)

    if _ERRADO.search(body):
        return ParsedMessage(kind=MessageKind.ENTITY_ERROR, raw=body)

    if _PROCESADO.search(body):
        date_time = _DATE_TIME.search(body)
        return ParsedMessage(
            kind=MessageKind.ENTITY_PROCESSED,
            raw=body,
            cupon=body.split()[-1],
            fecha=date_time.group(1) if date_time else None,
            hora=date_time.group(2) if date_time else None,
        )

    dni, cupon = _coupon_pair(body)
    if not dni or not cupon:
        return ParsedMessage(kind=MessageKind.UNRECOGNIZED, raw=body)

    if role is SenderRole.ENTITY:
        is_entity = True
    elif role is SenderRole.DRIVER:
        is_entity = False
    else:
        is_entity = has_entity_markers(body)

    if not is_entity:
        return ParsedMessage(
            kind=MessageKind.COUPON_REQUEST,
            raw=body,
            cupon=cupon,
            dni=dni,
            sn=extract_sn(body),
        )

    first_line = body.strip().splitlines()[0].strip()
    return ParsedMessage(
        kind=MessageKind.ENTITY_VALID,
        raw=body,
        cupon=cupon,
        dni=dni,
        sn=extract_sn(body),
        monto=extract_amount(body),
        descripcion=first_line,
    )
