"""Converters from clinical-store values to the registry's fact dimensions."""

from __future__ import annotations

from typing import Mapping, Sequence

from dirsync.config import (
    DEFAULT_AGE_BRACKETS,
    DEFAULT_MATERIAL_ALIASES,
    UNKNOWN_AGE_LABEL,
    AgeBracket,
)

UNKNOWN_SEX = "UNKNOWN"
OTHER_MATERIAL = "OTHER"


def age_bracket(age: int | None, brackets: Sequence[AgeBracket] = DEFAULT_AGE_BRACKETS) -> str:
    """Map an age in years onto the first bracket whose upper bound exceeds it."""

    if age is None or age < 0:
        return UNKNOWN_AGE_LABEL
    for bracket in brackets:
        if bracket.upper_bound is None or age < bracket.upper_bound:
            return bracket.label
    return UNKNOWN_AGE_LABEL


def convert_sex(sex: str | None) -> str:
    if sex is None or not sex.strip():
        return UNKNOWN_SEX
    return sex.strip().upper()


def convert_material(
    material: str | None,
    aliases: Mapping[str, str] = DEFAULT_MATERIAL_ALIASES,
) -> str:
    """Convert a clinical-store material name (``tissue-ffpe``, ``blood-plasma``) to the registry vocabulary."""

    if material is None or not material.strip():
        return OTHER_MATERIAL
    value = material.strip().upper().replace("-", "_").replace("_VITAL", "")
    if value in aliases:
        return aliases[value]
    if value.endswith("_OTHER"):
        return OTHER_MATERIAL
    return value
