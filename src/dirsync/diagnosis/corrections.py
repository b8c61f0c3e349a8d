"""Diagnosis correction map: raw codes resolved against the registry vocabulary."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from types import MappingProxyType

from dirsync.diagnosis.miriam import parent_category, to_miriam
from dirsync.diagnosis.normalizer import NormalizationDiagnostics, normalize

logger = logging.getLogger(__name__)

DiagnosisValidator = Callable[[str], bool]


class DiagnosisCorrectionMap(Mapping[str, "str | None"]):
    """Read-only mapping of MIRIAM diagnosis code -> validated code or ``None``.

    Keys are the raw codes as qualified by :func:`to_miriam` without any other
    change. A value is either the validated full code, a validated parent
    category, or ``None`` when nothing in the fallback chain is known to the
    registry.
    """

    def __init__(
        self,
        corrections: Mapping[str, str | None],
        diagnostics: NormalizationDiagnostics | None = None,
    ) -> None:
        self._data = MappingProxyType(dict(corrections))
        self.diagnostics = diagnostics or NormalizationDiagnostics()

    def __getitem__(self, key: str) -> str | None:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def resolve(self, raw: str | None) -> str | None:
        """Corrected code for a raw diagnosis, ``None`` when unknown or unresolvable."""

        key = to_miriam(raw)
        if key is None:
            return None
        return self._data.get(key)

    @property
    def unresolved(self) -> tuple[str, ...]:
        return tuple(sorted(code for code, value in self._data.items() if value is None))

    @property
    def generalized(self) -> tuple[str, ...]:
        """Codes that were replaced by something other than themselves."""

        return tuple(
            sorted(
                code
                for code, value in self._data.items()
                if value is not None and value != code
            )
        )


class DiagnosisCorrector:
    """Resolve each distinct raw code through a fixed candidate chain.

    Candidates, first validated one wins: the code as given, the normalized
    code, the category of the normalized code, the category of the code as
    given. Validation answers are cached for the lifetime of one build.
    """

    def __init__(self, validate: DiagnosisValidator) -> None:
        self.validate = validate

    def build(self, raw_codes: Iterable[str | None]) -> DiagnosisCorrectionMap:
        diagnostics = NormalizationDiagnostics()
        cache: dict[str, bool] = {}
        corrections: dict[str, str | None] = {}

        for raw in raw_codes:
            direct = to_miriam(raw)
            if direct is None or direct in corrections:
                continue
            corrections[direct] = self._resolve(direct, raw, cache, diagnostics)

        resolved = sum(1 for value in corrections.values() if value is not None)
        logger.info(
            "Built diagnosis corrections for %s codes (%s resolved, %s validation lookups)",
            len(corrections),
            resolved,
            len(cache),
        )
        return DiagnosisCorrectionMap(corrections, diagnostics)

    def _resolve(
        self,
        direct: str,
        raw: str | None,
        cache: dict[str, bool],
        diagnostics: NormalizationDiagnostics,
    ) -> str | None:
        normalized = to_miriam(normalize(raw, diagnostics))
        candidates = (
            direct,
            normalized,
            parent_category(normalized),
            parent_category(direct),
        )
        for candidate in candidates:
            if candidate is None:
                continue
            if candidate not in cache:
                cache[candidate] = bool(self.validate(candidate))
            if cache[candidate]:
                if candidate != direct:
                    logger.info("Diagnosis %s corrected to %s", direct, candidate)
                return candidate

        logger.warning("Diagnosis %s is unknown to the registry; dropping it", direct)
        return None


def build_corrections(
    raw_codes: Iterable[str | None],
    validate: DiagnosisValidator,
) -> DiagnosisCorrectionMap:
    """Convenience wrapper around :class:`DiagnosisCorrector`."""

    return DiagnosisCorrector(validate).build(raw_codes)
