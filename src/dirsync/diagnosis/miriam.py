"""Conversion between bare ICD-10 codes and MIRIAM URIs."""

from __future__ import annotations

MIRIAM_ICD_PREFIX = "urn:miriam:icd:"


def to_miriam(code: str | None) -> str | None:
    """Qualify ``code`` with the MIRIAM ICD prefix, leaving qualified codes alone."""

    if code is None:
        return None
    code = code.strip()
    if not code:
        return None
    if code.startswith(MIRIAM_ICD_PREFIX):
        return code
    return MIRIAM_ICD_PREFIX + code


def strip_miriam(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip()
    if code.startswith(MIRIAM_ICD_PREFIX):
        return code[len(MIRIAM_ICD_PREFIX):]
    return code


def parent_category(code: str | None) -> str | None:
    """Return the category part of a code (``C18.0`` -> ``C18``), keeping any prefix."""

    if not code:
        return None
    return code.split(".", 1)[0]
