"""Canonical in-memory data models used by Directory Sync."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Any, ClassVar, Mapping

from dirsync.identifiers import FACT_ID_PREFIX, ID_PREFIX


@dataclass(frozen=True)
class SampleRecord:
    """One patient/specimen/diagnosis combination read from the clinical store."""

    collection_id: str
    patient_id: str
    sample_material: str | None = None
    sex: str | None = None
    raw_diagnosis_code: str | None = None
    age_at_diagnosis: int | None = None


@dataclass(frozen=True, order=True)
class AggregationKey:
    """Dimension values that identify one star-model fact."""

    collection_id: str
    sex: str
    disease: str | None
    age_range: str
    sample_type: str

    def fact_id(self) -> str:
        """Deterministic, namespaced fact identifier for this key.

        The hash covers every dimension, so the same key always yields the same
        identifier and re-synchronizing unchanged data is idempotent.
        """

        local = self.collection_id
        if local.startswith(ID_PREFIX):
            local = local[len(ID_PREFIX):]
        material = "|".join(
            (self.collection_id, self.sex, self.disease or "", self.age_range, self.sample_type)
        )
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]
        return f"{FACT_ID_PREFIX}{local}:{digest}"


@dataclass(frozen=True)
class Fact:
    """A published aggregate row of the star model."""

    id: str
    collection_id: str
    sex: str
    disease: str | None
    age_range: str
    sample_type: str
    number_of_donors: int
    number_of_samples: int
    national_node: str | None = None
    last_update: date | None = field(default=None, compare=False)

    @classmethod
    def from_key(
        cls,
        key: AggregationKey,
        *,
        number_of_donors: int,
        number_of_samples: int,
        national_node: str | None = None,
    ) -> "Fact":
        return cls(
            id=key.fact_id(),
            collection_id=key.collection_id,
            sex=key.sex,
            disease=key.disease,
            age_range=key.age_range,
            sample_type=key.sample_type,
            number_of_donors=number_of_donors,
            number_of_samples=number_of_samples,
            national_node=national_node,
        )

    def key(self) -> AggregationKey:
        return AggregationKey(
            collection_id=self.collection_id,
            sex=self.sex,
            disease=self.disease,
            age_range=self.age_range,
            sample_type=self.sample_type,
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize into the Directory's fact-table attribute names.

        ``disease`` is omitted entirely for "any diagnosis" facts.
        """

        row: dict[str, Any] = {
            "id": self.id,
            "collection": self.collection_id,
            "sex": self.sex,
            "age_range": self.age_range,
            "sample_type": self.sample_type,
            "number_of_donors": self.number_of_donors,
            "number_of_samples": self.number_of_samples,
        }
        if self.disease:
            row["disease"] = self.disease
        if self.national_node:
            row["national_node"] = self.national_node
        if self.last_update is not None:
            row["last_update"] = self.last_update.isoformat()
        return row


def _unwrap_reference(value: Any) -> Any:
    """Reduce Directory reference objects (``{"id": ...}``/``{"name": ...}``) to plain values."""

    if isinstance(value, Mapping):
        for key in ("id", "name", "label"):
            if value.get(key) not in (None, ""):
                return value[key]
        return None
    return value


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (tuple, list)):
        return len(value) == 0
    return False


class EntityAttributes:
    """Shared behaviour of the registry entity records.

    Subclasses are frozen dataclasses. Scalar fields hold ``str``/``int`` or
    ``None``; fields listed in ``LIST_FIELDS`` hold tuples of strings.
    """

    LIST_FIELDS: ClassVar[frozenset[str]] = frozenset()
    INT_FIELDS: ClassVar[frozenset[str]] = frozenset()

    def to_payload(self) -> dict[str, Any]:
        """Return the non-empty attributes as a plain dict (lists for list fields)."""

        payload: dict[str, Any] = {}
        for item in fields(self):  # type: ignore[arg-type]
            value = getattr(self, item.name)
            if _is_blank(value):
                continue
            payload[item.name] = list(value) if item.name in self.LIST_FIELDS else value
        return payload

    def canonical(self) -> str:
        """Deterministic serialization used for structural change detection."""

        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))

    def updated_with(self, local: "EntityAttributes") -> "EntityAttributes":
        """Apply ``local`` onto ``self`` using fill-or-replace semantics.

        A blank local value never overwrites a remote value; list fields are
        replaced wholesale when the local list is non-empty.
        """

        changes: dict[str, Any] = {}
        for item in fields(self):  # type: ignore[arg-type]
            if item.name == "id":
                continue
            value = getattr(local, item.name)
            if _is_blank(value):
                continue
            changes[item.name] = tuple(value) if item.name in self.LIST_FIELDS else value
        return replace(self, **changes)  # type: ignore[type-var]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]):
        """Build a record from a registry payload, ignoring unknown attributes."""

        values: dict[str, Any] = {}
        for item in fields(cls):  # type: ignore[arg-type]
            if item.name not in payload:
                continue
            raw = payload[item.name]
            if item.name in cls.LIST_FIELDS:
                if raw is None:
                    continue
                if not isinstance(raw, (list, tuple)):
                    raw = [raw]
                values[item.name] = tuple(
                    str(unwrapped)
                    for unwrapped in (_unwrap_reference(element) for element in raw)
                    if unwrapped not in (None, "")
                )
            elif item.name in cls.INT_FIELDS:
                raw = _unwrap_reference(raw)
                values[item.name] = int(raw) if raw not in (None, "") else None
            else:
                raw = _unwrap_reference(raw)
                values[item.name] = str(raw) if raw is not None else None
        return cls(**values)


@dataclass(frozen=True)
class CollectionAttributes(EntityAttributes):
    """Directory attributes of a sample collection."""

    LIST_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "type",
            "data_categories",
            "network",
            "sex",
            "materials",
            "storage_temperatures",
            "diagnosis_available",
        }
    )
    INT_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "size",
            "order_of_magnitude",
            "number_of_donors",
            "order_of_magnitude_donors",
            "age_low",
            "age_high",
        }
    )

    id: str
    name: str | None = None
    description: str | None = None
    country: str | None = None
    national_node: str | None = None
    biobank: str | None = None
    contact: str | None = None
    type: tuple[str, ...] = ()
    data_categories: tuple[str, ...] = ()
    network: tuple[str, ...] = ()
    size: int | None = None
    order_of_magnitude: int | None = None
    number_of_donors: int | None = None
    order_of_magnitude_donors: int | None = None
    sex: tuple[str, ...] = ()
    age_low: int | None = None
    age_high: int | None = None
    materials: tuple[str, ...] = ()
    storage_temperatures: tuple[str, ...] = ()
    diagnosis_available: tuple[str, ...] = ()


@dataclass(frozen=True)
class BiobankAttributes(EntityAttributes):
    """Directory attributes of a biobank."""

    LIST_FIELDS: ClassVar[frozenset[str]] = frozenset({"capabilities", "network"})

    id: str
    name: str | None = None
    acronym: str | None = None
    description: str | None = None
    url: str | None = None
    juridical_person: str | None = None
    location: str | None = None
    country: str | None = None
    head: str | None = None
    contact: str | None = None
    capabilities: tuple[str, ...] = ()
    network: tuple[str, ...] = ()


@dataclass(frozen=True)
class EntityComparison:
    """Registry snapshot paired with the locally computed target state."""

    remote: EntityAttributes
    local: EntityAttributes
    working: EntityAttributes = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "working", self.remote.updated_with(self.local))

    @property
    def has_changed(self) -> bool:
        return self.working.canonical() != self.remote.canonical()
