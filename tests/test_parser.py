from __future__ import annotations

import pytest

from core.models import MessageKind, SenderRole
from core.parser import (
    extract_amount,
    extract_sn,
    needs_sender_role,
    normalize_number,
    parse_message,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,234.56", 1234.56),
        ("1.234,56", 1234.56),
        ("60", 60.0),
        ("60.50", 60.5),
        ("1.234.567,89", 1234567.89),
        ("--", 0.0),
        ("", 0.0),
    ],
)
def test_normalize_number(raw: str, expected: float) -> None:
    assert normalize_number(raw) == pytest.approx(expected)


def test_bodies_outside_length_bounds_are_unrecognized() -> None:
    assert parse_message("CUPON: 1").kind is MessageKind.UNRECOGNIZED
    too_long = "CUPON: 1234567890 DNI: 87654321 " + "x" * 480
    assert len(too_long) > 500
    assert parse_message(too_long, SenderRole.DRIVER).kind is MessageKind.UNRECOGNIZED
    assert not needs_sender_role(too_long)


def test_errado_wins_and_keeps_raw_text() -> None:
    body = "DNI 87654321 CUPON 1234567890 ERRADO, verifique los datos"
    parsed = parse_message(body, SenderRole.DRIVER)
    assert parsed.kind is MessageKind.ENTITY_ERROR
    assert parsed.raw == body


def test_errado_is_case_insensitive() -> None:
    assert parse_message("Vale errado para el dni indicado").kind is MessageKind.ENTITY_ERROR


def test_vale_procesado_extracts_coupon_date_and_time() -> None:
    parsed = parse_message("VALE PROCESADO EL 12/03/2024 14:35 CUPON 1234567890")
    assert parsed.kind is MessageKind.ENTITY_PROCESSED
    assert parsed.cupon == "1234567890"
    assert parsed.fecha == "12/03/2024"
    assert parsed.hora == "14:35"


def test_vale_procesado_without_date() -> None:
    parsed = parse_message("Vale procesado anteriormente 1234567890")
    assert parsed.kind is MessageKind.ENTITY_PROCESSED
    assert parsed.cupon == "1234567890"
    assert parsed.fecha is None
    assert parsed.hora is None


def test_driver_request_fields() -> None:
    parsed = parse_message("CUPON: 1234567890 DNI: 87654321", SenderRole.DRIVER)
    assert parsed.kind is MessageKind.COUPON_REQUEST
    assert parsed.cupon == "1234567890"
    assert parsed.dni == "87654321"
    assert parsed.sn is None


def test_sender_role_decides_over_content() -> None:
    body = "DNI: 87654321 CUPON: 1234567890 IMPORTE: S/. 60.50"
    assert parse_message(body, SenderRole.ENTITY).kind is MessageKind.ENTITY_VALID
    assert parse_message(body, SenderRole.DRIVER).kind is MessageKind.COUPON_REQUEST


def test_unknown_role_falls_back_to_entity_markers() -> None:
    plain = "DNI: 87654321 CUPON: 1234567890"
    assert parse_message(plain).kind is MessageKind.COUPON_REQUEST

    confirmed = "EL CUPÓN SE PROCESÓ CORRECTAMENTE\nDNI: 87654321 CUPON: 1234567890"
    parsed = parse_message(confirmed)
    assert parsed.kind is MessageKind.ENTITY_VALID
    assert parsed.descripcion == "EL CUPÓN SE PROCESÓ CORRECTAMENTE"
    assert parsed.monto is None


def test_entity_valid_amount_and_description() -> None:
    body = "Generacion FISE\nDNI: 87654321 CUPON: 1234567890 IMPORTE: S/. 60.50"
    parsed = parse_message(body, SenderRole.ENTITY)
    assert parsed.kind is MessageKind.ENTITY_VALID
    assert parsed.monto == pytest.approx(60.5)
    assert parsed.descripcion == "Generacion FISE"


def test_missing_pair_is_unrecognized() -> None:
    assert parse_message("Hola, buenos dias").kind is MessageKind.UNRECOGNIZED
    assert parse_message("DNI: 87654321 sin cupon").kind is MessageKind.UNRECOGNIZED
    assert parse_message("CUPON: 12345 DNI: 87654321").kind is MessageKind.UNRECOGNIZED


def test_extract_sn_prefers_labeled_token() -> None:
    assert extract_sn("DNI: 87654321 CUPON: 1234567890 S/N: C000123456") == "C000123456"
    assert extract_sn("C000000001 otro S/N C12345678901") == "C12345678901"


def test_labeled_sn_requires_business_unit_prefix() -> None:
    assert extract_sn("DNI: 87654321 S/N 12345678901") is None
    assert extract_sn("C000000001 otro S/N 12345678901") == "C000000001"


def test_extract_sn_falls_back_to_bare_token() -> None:
    assert extract_sn("DNI: 87654321 CUPON: 1234567890 socio C0001234567") == "C0001234567"
    assert extract_sn("DNI: 87654321 CUPON: 1234567890") is None


def test_extract_amount_variants() -> None:
    assert extract_amount("IMPORTE: S/. 1.234,56") == pytest.approx(1234.56)
    assert extract_amount("IMPORTE=S/ 60") == pytest.approx(60.0)
    assert extract_amount("IMPORTE 1234.5") == pytest.approx(1234.5)
    assert extract_amount("sin monto") is None


def test_needs_sender_role_only_for_coupon_pairs() -> None:
    assert needs_sender_role("CUPON: 1234567890 DNI: 87654321")
    assert not needs_sender_role("CUPON: 1234567890 DNI: 87654321 ERRADO")
    assert not needs_sender_role("VALE PROCESADO 1234567890")
    assert not needs_sender_role("Hola, buenos dias")
