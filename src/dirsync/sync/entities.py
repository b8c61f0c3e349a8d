"""Change-aware reconciliation of collection and biobank attributes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import TypeVar

from dirsync.diagnosis.corrections import DiagnosisCorrectionMap
from dirsync.identifiers import country_code_of
from dirsync.models import BiobankAttributes, CollectionAttributes, EntityAttributes, EntityComparison
from dirsync.registry.base import DirectoryRegistry
from dirsync.sync.fallback import with_country_fallback

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=EntityAttributes)


class UpdateStatus(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityUpdateReport:
    entity_type: str
    entity_id: str
    status: UpdateStatus
    error: str | None = None


def reconcile(local: E, remote: E) -> E | None:
    """Return the updated entity, or ``None`` when applying ``local`` changes nothing.

    ``remote`` is never modified. Blank local values keep the remote value;
    non-empty local lists replace the remote list.
    """

    comparison = EntityComparison(remote=remote, local=local)
    if not comparison.has_changed:
        return None
    return comparison.working  # type: ignore[return-value]


def correct_diagnoses(
    attrs: CollectionAttributes,
    corrections: DiagnosisCorrectionMap,
) -> CollectionAttributes:
    """Replace ``diagnosis_available`` with corrected codes, dropping unresolvable ones."""

    corrected = {corrections.resolve(code) for code in attrs.diagnosis_available}
    corrected.discard(None)
    return replace(attrs, diagnosis_available=tuple(sorted(corrected)))  # type: ignore[arg-type]


class EntityReconciler:
    """Push locally computed entity attributes to the registry when they differ."""

    def __init__(self, registry: DirectoryRegistry) -> None:
        self.registry = registry

    def reconcile_collections(
        self,
        local: Mapping[str, CollectionAttributes],
        corrections: DiagnosisCorrectionMap,
    ) -> list[EntityUpdateReport]:
        return [
            self._reconcile_one(
                "collection",
                correct_diagnoses(local[collection_id], corrections),
                self.registry.get_collection,
                self.registry.put_collection,
            )
            for collection_id in sorted(local)
        ]

    def reconcile_biobanks(self, local: Iterable[BiobankAttributes]) -> list[EntityUpdateReport]:
        return [
            self._reconcile_one(
                "biobank",
                biobank,
                self.registry.get_biobank,
                self.registry.put_biobank,
            )
            for biobank in sorted(local, key=lambda item: item.id)
        ]

    def _reconcile_one(
        self,
        entity_type: str,
        local: E,
        fetch: Callable[[str, str | None], E | None],
        store: Callable[[E, str | None], bool],
    ) -> EntityUpdateReport:
        entity_id = local.id  # type: ignore[attr-defined]
        try:
            return self._update_one(entity_type, local, fetch, store)
        except Exception as exc:
            logger.exception("Reconciliation of %s %s raised", entity_type, entity_id)
            return EntityUpdateReport(entity_type, entity_id, UpdateStatus.FAILED, error=str(exc))

    def _update_one(
        self,
        entity_type: str,
        local: E,
        fetch: Callable[[str, str | None], E | None],
        store: Callable[[E, str | None], bool],
    ) -> EntityUpdateReport:
        entity_id = local.id  # type: ignore[attr-defined]
        country_code = country_code_of(entity_id)

        remote = with_country_fallback(
            lambda scope: fetch(entity_id, scope),
            country_code,
            description=f"Fetching {entity_type} {entity_id}",
        )
        if remote is None:
            logger.warning("No %s %s in the registry; skipping update", entity_type, entity_id)
            return EntityUpdateReport(entity_type, entity_id, UpdateStatus.MISSING)

        updated = reconcile(local, remote)
        if updated is None:
            logger.info("%s %s is up to date", entity_type.capitalize(), entity_id)
            return EntityUpdateReport(entity_type, entity_id, UpdateStatus.UNCHANGED)

        stored = with_country_fallback(
            lambda scope: store(updated, scope),
            country_code,
            description=f"Updating {entity_type} {entity_id}",
        )
        if not stored:
            return EntityUpdateReport(entity_type, entity_id, UpdateStatus.FAILED)
        logger.info("Updated %s %s", entity_type, entity_id)
        return EntityUpdateReport(entity_type, entity_id, UpdateStatus.UPDATED)
