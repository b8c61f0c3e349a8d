"""Collection-level attributes and consistency checks derived from sample rows."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping

from dirsync.config import DEFAULT_MATERIAL_ALIASES
from dirsync.diagnosis.miriam import to_miriam
from dirsync.identifiers import country_code_of
from dirsync.models import CollectionAttributes, SampleRecord
from dirsync.outcome import Issue, IssueKind, Severity
from dirsync.starmodel.aggregator import AggregationResult
from dirsync.starmodel.dimensions import UNKNOWN_SEX, convert_material, convert_sex

# Fraction of source samples that facts must cover before a shortfall is a warning.
SAMPLE_COVERAGE_WARNING_RATIO = 0.8


def order_of_magnitude(count: int | None) -> int | None:
    """``floor(log10(count))``, or ``None`` for empty collections."""

    if not count or count < 1:
        return None
    return int(math.floor(math.log10(count)))


def summarize_collections(
    rows: Iterable[SampleRecord],
    material_aliases: Mapping[str, str] = DEFAULT_MATERIAL_ALIASES,
) -> dict[str, CollectionAttributes]:
    """Compute the locally known attributes of every collection present in ``rows``.

    Counts describe samples (``size``) and distinct patients
    (``number_of_donors``). Unknown sexes and unclassified materials do not
    contribute to the published vocabularies. Diagnoses are listed as found;
    they are corrected against the registry when the collection is reconciled.
    """

    samples: dict[str, int] = defaultdict(int)
    patients: dict[str, set[str]] = defaultdict(set)
    sexes: dict[str, set[str]] = defaultdict(set)
    materials: dict[str, set[str]] = defaultdict(set)
    diagnoses: dict[str, set[str]] = defaultdict(set)
    ages: dict[str, list[int]] = defaultdict(list)

    for row in rows:
        if not row.collection_id:
            continue
        collection_id = row.collection_id
        samples[collection_id] += 1
        if row.patient_id:
            patients[collection_id].add(row.patient_id)
        sex = convert_sex(row.sex)
        if sex != UNKNOWN_SEX:
            sexes[collection_id].add(sex)
        if row.sample_material:
            materials[collection_id].add(convert_material(row.sample_material, material_aliases))
        diagnosis = to_miriam(row.raw_diagnosis_code)
        if diagnosis is not None:
            diagnoses[collection_id].add(diagnosis)
        if row.age_at_diagnosis is not None and row.age_at_diagnosis >= 0:
            ages[collection_id].append(row.age_at_diagnosis)

    summaries: dict[str, CollectionAttributes] = {}
    for collection_id in sorted(samples):
        size = samples[collection_id]
        donors = len(patients[collection_id])
        country = country_code_of(collection_id)
        collection_ages = ages[collection_id]
        summaries[collection_id] = CollectionAttributes(
            id=collection_id,
            country=country,
            national_node=country,
            size=size,
            order_of_magnitude=order_of_magnitude(size),
            number_of_donors=donors or None,
            order_of_magnitude_donors=order_of_magnitude(donors),
            sex=tuple(sorted(sexes[collection_id])),
            age_low=min(collection_ages) if collection_ages else None,
            age_high=max(collection_ages) if collection_ages else None,
            materials=tuple(sorted(materials[collection_id])),
            diagnosis_available=tuple(sorted(diagnoses[collection_id])),
        )
    return summaries


def sanity_checks(
    rows: Iterable[SampleRecord],
    result: AggregationResult,
    material_aliases: Mapping[str, str] = DEFAULT_MATERIAL_ALIASES,
) -> list[Issue]:
    """Compare published facts against the rows they were built from."""

    issues: list[Issue] = []
    source_samples = 0
    source_materials: set[str] = set()
    for row in rows:
        source_samples += 1
        source_materials.add(convert_material(row.sample_material, material_aliases))

    fact_samples = sum(fact.number_of_samples for fact in result.facts)
    if fact_samples > source_samples:
        issues.append(
            Issue(
                IssueKind.CONSISTENCY,
                Severity.WARNING,
                f"Facts count {fact_samples} samples but the source holds only {source_samples}",
            )
        )
    elif fact_samples < source_samples * SAMPLE_COVERAGE_WARNING_RATIO:
        issues.append(
            Issue(
                IssueKind.CONSISTENCY,
                Severity.WARNING,
                f"Facts cover {fact_samples} of {source_samples} source samples",
            )
        )
    elif fact_samples < source_samples:
        issues.append(
            Issue(
                IssueKind.CONSISTENCY,
                Severity.INFO,
                f"Facts cover {fact_samples} of {source_samples} source samples",
            )
        )

    if result.facts:
        fact_materials = {fact.sample_type for fact in result.facts}
        missing = sorted(source_materials - fact_materials)
        if missing:
            issues.append(
                Issue(
                    IssueKind.CONSISTENCY,
                    Severity.WARNING,
                    f"Material types without any fact: {', '.join(missing)}",
                )
            )

        without_disease = sum(1 for fact in result.facts if fact.disease is None)
        if without_disease:
            issues.append(
                Issue(
                    IssueKind.CONSISTENCY,
                    Severity.INFO,
                    f"{without_disease} of {len(result.facts)} facts carry no diagnosis",
                )
            )
    return issues
