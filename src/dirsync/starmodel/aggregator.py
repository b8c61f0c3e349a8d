"""Privacy-preserving star-model aggregation of sample rows into facts."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from dirsync.config import DEFAULT_AGE_BRACKETS, DEFAULT_MATERIAL_ALIASES, AgeBracket
from dirsync.diagnosis.corrections import DiagnosisCorrectionMap
from dirsync.diagnosis.miriam import parent_category
from dirsync.identifiers import country_code_of
from dirsync.models import AggregationKey, Fact, SampleRecord
from dirsync.starmodel.dimensions import age_bracket, convert_material, convert_sex

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    patients: set[str] = field(default_factory=set)
    samples: int = 0

    @property
    def donors(self) -> int:
        return len(self.patients)

    def absorb(self, other: "_Bucket") -> None:
        self.patients |= other.patients
        self.samples += other.samples


@dataclass(frozen=True)
class SuppressedBucket:
    """Bucket withheld because it stays below the donor floor without a diagnosis."""

    key: AggregationKey
    number_of_donors: int
    number_of_samples: int


@dataclass
class AggregationResult:
    """Facts produced by one aggregation plus what was withheld from them."""

    facts: list[Fact] = field(default_factory=list)
    suppressed: list[SuppressedBucket] = field(default_factory=list)
    truncated: dict[str, int] = field(default_factory=dict)
    skipped_rows: int = 0

    def facts_for(self, collection_id: str) -> list[Fact]:
        return [fact for fact in self.facts if fact.collection_id == collection_id]

    @property
    def collection_ids(self) -> list[str]:
        return sorted({fact.collection_id for fact in self.facts})


class StarModelAggregator:
    """Group sample rows into facts that never describe fewer than ``min_donors`` donors.

    Buckets under the floor are generalized within their collection, first to
    the parent ICD-10 category and then to "any diagnosis". A generalized
    bucket whose key matches an already publishable fact is merged into it.
    Whatever still misses the floor is suppressed and reported.
    """

    def __init__(
        self,
        *,
        min_donors: int = 10,
        max_facts: int | None = None,
        age_brackets: Sequence[AgeBracket] = DEFAULT_AGE_BRACKETS,
        material_aliases: Mapping[str, str] = DEFAULT_MATERIAL_ALIASES,
    ) -> None:
        if min_donors < 1:
            raise ValueError("min_donors must be at least 1")
        self.min_donors = min_donors
        self.max_facts = max_facts if max_facts is not None and max_facts >= 0 else None
        self.age_brackets = tuple(age_brackets)
        self.material_aliases = dict(material_aliases)

    def aggregate(
        self,
        rows: Iterable[SampleRecord],
        corrections: DiagnosisCorrectionMap,
    ) -> AggregationResult:
        result = AggregationResult()
        by_collection: dict[str, dict[AggregationKey, _Bucket]] = defaultdict(dict)

        for row in rows:
            if not row.collection_id or not row.patient_id:
                result.skipped_rows += 1
                continue
            key = self._key_for(row, corrections)
            bucket = by_collection[row.collection_id].setdefault(key, _Bucket())
            bucket.patients.add(row.patient_id)
            bucket.samples += 1

        if result.skipped_rows:
            logger.warning(
                "Skipped %s sample rows without collection or patient id", result.skipped_rows
            )

        for collection_id in sorted(by_collection):
            emitted, suppressed = self._generalize(by_collection[collection_id])
            facts = self._to_facts(collection_id, emitted)
            facts, dropped = self._truncate(facts)
            if dropped:
                result.truncated[collection_id] = dropped
                logger.warning(
                    "Collection %s produced %s facts over the cap of %s",
                    collection_id,
                    dropped,
                    self.max_facts,
                )
            result.facts.extend(facts)
            result.suppressed.extend(suppressed)
            logger.info(
                "Collection %s: %s facts, %s suppressed buckets",
                collection_id,
                len(facts),
                len(suppressed),
            )

        return result

    def _key_for(self, row: SampleRecord, corrections: DiagnosisCorrectionMap) -> AggregationKey:
        return AggregationKey(
            collection_id=row.collection_id,
            sex=convert_sex(row.sex),
            disease=corrections.resolve(row.raw_diagnosis_code),
            age_range=age_bracket(row.age_at_diagnosis, self.age_brackets),
            sample_type=convert_material(row.sample_material, self.material_aliases),
        )

    def _generalize(
        self,
        buckets: dict[AggregationKey, _Bucket],
    ) -> tuple[dict[AggregationKey, _Bucket], list[SuppressedBucket]]:
        emitted: dict[AggregationKey, _Bucket] = {}
        pending: dict[AggregationKey, _Bucket] = {}
        for key, bucket in buckets.items():
            if bucket.donors >= self.min_donors:
                emitted[key] = bucket
            else:
                pending[key] = bucket

        for level in (parent_category, lambda _disease: None):
            regrouped: dict[AggregationKey, _Bucket] = {}
            for key in sorted(pending, key=_sort_key):
                target = replace(key, disease=level(key.disease))
                regrouped.setdefault(target, _Bucket()).absorb(pending[key])

            pending = {}
            for key, bucket in regrouped.items():
                if key in emitted:
                    emitted[key].absorb(bucket)
                elif bucket.donors >= self.min_donors:
                    emitted[key] = bucket
                else:
                    pending[key] = bucket

        suppressed = [
            SuppressedBucket(key, bucket.donors, bucket.samples)
            for key, bucket in sorted(pending.items(), key=lambda item: _sort_key(item[0]))
        ]
        return emitted, suppressed

    @staticmethod
    def _to_facts(collection_id: str, emitted: dict[AggregationKey, _Bucket]) -> list[Fact]:
        national_node = country_code_of(collection_id)
        return [
            Fact.from_key(
                key,
                number_of_donors=emitted[key].donors,
                number_of_samples=emitted[key].samples,
                national_node=national_node,
            )
            for key in sorted(emitted, key=_sort_key)
        ]

    def _truncate(self, facts: list[Fact]) -> tuple[list[Fact], int]:
        if self.max_facts is None or len(facts) <= self.max_facts:
            return facts, 0
        ranked = sorted(
            facts,
            key=lambda fact: (-fact.number_of_donors, -fact.number_of_samples, fact.id),
        )
        kept = {fact.id for fact in ranked[: self.max_facts]}
        return [fact for fact in facts if fact.id in kept], len(facts) - len(kept)


def _sort_key(key: AggregationKey) -> tuple[str, str, str, str, str]:
    return (key.collection_id, key.sex, key.disease or "", key.age_range, key.sample_type)


def aggregate(
    rows: Iterable[SampleRecord],
    corrections: DiagnosisCorrectionMap,
    min_donors: int = 10,
    max_facts: int | None = None,
) -> AggregationResult:
    """Aggregate with the default dimension tables."""

    return StarModelAggregator(min_donors=min_donors, max_facts=max_facts).aggregate(
        rows, corrections
    )
