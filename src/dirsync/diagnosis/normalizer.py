"""ICD-10 normalization of free-text diagnosis codes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from dirsync.diagnosis.miriam import strip_miriam

logger = logging.getLogger(__name__)

FALLBACK_CODE = "R69"
ICD10_PATTERN = re.compile(r"^[A-Z]\d{2}(?:\.\d{1,2})?$")

_DIGIT = re.compile(r"\d")
_DISALLOWED = re.compile(r"[^A-Z0-9.]")
_FIRST_LETTER = re.compile(r"[A-Z]")
_CATEGORY = re.compile(r"^([A-Z])(\d{2})")
_SUBCATEGORY = re.compile(r"^\.(\d{1,2})")


@dataclass
class NormalizationDiagnostics:
    """Collects the reasons for which inputs fell back to ``R69``."""

    fallbacks: list[tuple[str | None, str]] = field(default_factory=list)

    def record(self, raw: str | None, reason: str) -> None:
        self.fallbacks.append((raw, reason))


def _fallback(
    raw: str | None,
    reason: str,
    diagnostics: NormalizationDiagnostics | None,
) -> str:
    logger.warning("Diagnosis %r normalized to %s: %s", raw, FALLBACK_CODE, reason)
    if diagnostics is not None:
        diagnostics.record(raw, reason)
    return FALLBACK_CODE


def normalize(
    raw: str | None,
    diagnostics: NormalizationDiagnostics | None = None,
) -> str:
    """Turn a free-text diagnosis into an ICD-10 WHO code such as ``C18.0``.

    Separators ``,`` and ``-`` are read as decimal points, anything before the
    first letter is discarded and at most two subcategory digits are kept. A
    MIRIAM-qualified input is unwrapped first, so normalizing twice gives the
    same result as normalizing once. Inputs that cannot be interpreted map to
    ``R69`` ("Illness, unspecified"); this function never raises.
    """

    code = strip_miriam(raw)
    if code is None or not _DIGIT.search(code):
        return _fallback(raw, "no digits", diagnostics)

    code = code.upper().replace(",", ".").replace("-", ".")
    code = "".join(code.split())
    code = _DISALLOWED.sub("", code)

    letter = _FIRST_LETTER.search(code)
    if letter is None:
        return _fallback(raw, "no category letter", diagnostics)
    code = code[letter.start():]

    category = _CATEGORY.match(code)
    if category is None:
        return _fallback(raw, "category needs a letter followed by two digits", diagnostics)
    normalized = category.group(0)

    remainder = code[category.end():]
    subcategory = _SUBCATEGORY.match(remainder)
    if subcategory is not None:
        normalized = f"{normalized}.{subcategory.group(1)}"

    if not ICD10_PATTERN.match(normalized):
        return _fallback(raw, f"{normalized!r} is not a valid ICD-10 code", diagnostics)
    return normalized
