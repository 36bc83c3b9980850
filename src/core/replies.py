"""Fixed-format texts exchanged with the entity and with drivers."""

from __future__ import annotations

from typing import Optional


def validation_request(dni: str, cupon: str) -> str:
    """Coupon-validation request addressed to the entity."""

    return f"FISE AH02 {dni} {cupon}"


def coupon_validated(cupon: str, monto: Optional[float]) -> str:
    if monto is not None:
        return f"Cupón {cupon} validado. Importe por S/ {monto}"
    return f"Cupón {cupon} validado correctamente."


def coupon_already_validated(cupon: str) -> str:
    return f"Cupón {cupon} ya fue validado anteriormente"
