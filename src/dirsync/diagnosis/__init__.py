"""Diagnosis code normalization and correction."""

from .corrections import (
    DiagnosisCorrectionMap,
    DiagnosisCorrector,
    build_corrections,
)
from .miriam import MIRIAM_ICD_PREFIX, parent_category, strip_miriam, to_miriam
from .normalizer import (
    FALLBACK_CODE,
    NormalizationDiagnostics,
    normalize,
)

__all__ = [
    "DiagnosisCorrectionMap",
    "DiagnosisCorrector",
    "FALLBACK_CODE",
    "MIRIAM_ICD_PREFIX",
    "NormalizationDiagnostics",
    "build_corrections",
    "normalize",
    "parent_category",
    "strip_miriam",
    "to_miriam",
]
