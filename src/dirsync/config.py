"""Configuration contracts for Directory Sync runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class AgeBracket:
    """Ordinal age bracket; ``upper_bound`` is exclusive, ``None`` means open-ended."""

    label: str
    upper_bound: int | None = None


UNKNOWN_AGE_LABEL = "Unknown"

DEFAULT_AGE_BRACKETS: tuple[AgeBracket, ...] = (
    AgeBracket("Newborn", 1),
    AgeBracket("Infant", 2),
    AgeBracket("Child", 13),
    AgeBracket("Adolescent", 18),
    AgeBracket("Young Adult", 25),
    AgeBracket("Adult", 45),
    AgeBracket("Middle-aged", 65),
    AgeBracket("Aged (65-79 years)", 80),
    AgeBracket("Aged (>80 years)", None),
)

# Clinical store material names that do not map one-to-one onto the
# Directory material vocabulary. Keys are upper-case with ``_`` separators.
DEFAULT_MATERIAL_ALIASES: Mapping[str, str] = {
    "TISSUE": "TISSUE_PARAFFIN_EMBEDDED",
    "TISSUE_FORMALIN": "TISSUE_PARAFFIN_EMBEDDED",
    "FFPE": "TISSUE_PARAFFIN_EMBEDDED",
    "CRYOPRESERVATION": "TISSUE_FROZEN",
    "CF_DNA": "CDNA",
    "BLOOD_SERUM": "SERUM",
    "BLOOD_PLASMA": "SERUM",
    "STOOL_FAECES": "FECES",
    "DERIVATIVE": "OTHER",
    "CSF_LIQUOR": "OTHER",
    "LIQUID": "OTHER",
    "ASCITES": "OTHER",
    "BONE_MARROW": "OTHER",
    "TISSUE_PAXGENE_OR_ELSE": "OTHER",
}


@dataclass(frozen=True)
class BackendSpec:
    """Named collaborator implementation plus its constructor parameters."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncConfig:
    """Policy and connection settings for one synchronization run."""

    registry: BackendSpec = field(default_factory=lambda: BackendSpec("file"))
    clinical_store: BackendSpec = field(default_factory=lambda: BackendSpec("tabular"))
    min_donors: int = 10
    max_facts: int = -1
    retry_max: int = 3
    retry_interval: float = 20.0
    request_timeout: float = 30.0
    fact_batch_size: int = 1000
    allow_star_model: bool = True
    update_collections: bool = True
    update_biobanks: bool = True
    default_collection_id: str | None = None
    age_brackets: tuple[AgeBracket, ...] = DEFAULT_AGE_BRACKETS
    material_aliases: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_MATERIAL_ALIASES)
    )

    def __post_init__(self) -> None:
        if self.min_donors < 1:
            raise ValueError("min_donors must be at least 1")
        if self.retry_max < 1:
            raise ValueError("retry_max must be at least 1")
        if self.retry_interval < 0:
            raise ValueError("retry_interval cannot be negative")
        if self.fact_batch_size < 1:
            raise ValueError("fact_batch_size must be at least 1")

    @property
    def fact_cap(self) -> int | None:
        """``max_facts`` as an optional cap; negative values mean unlimited."""

        return self.max_facts if self.max_facts >= 0 else None
