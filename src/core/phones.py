"""Helpers for working with phone numbers as they arrive from the transport."""

from __future__ import annotations

import re

COUNTRY_PREFIX = "+51"
# Peruvian mobile numbers carry 9 national digits.
NATIONAL_DIGITS = 9

_NON_DIGITS = re.compile(r"\D+")


def strip_country_code(phone: str, prefix: str = COUNTRY_PREFIX) -> str:
    """Remove the leading country prefix, if present.

    Only the one configured prefix is handled; other international formats are
    passed through untouched.
    """

    phone = phone.strip()
    if phone.startswith(prefix):
        return phone[len(prefix):]
    return phone


def national_suffix(phone: str, digits: int = NATIONAL_DIGITS) -> str:
    """Return the trailing national digits used to compare numbers."""

    only_digits = _NON_DIGITS.sub("", phone)
    return only_digits[-digits:]


def same_number(left: str, right: str) -> bool:
    """Compare two numbers tolerating country-code prefix variance."""

    left_suffix = national_suffix(left)
    return bool(left_suffix) and left_suffix == national_suffix(right)
