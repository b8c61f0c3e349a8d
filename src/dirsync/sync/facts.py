"""Replace-all synchronization of a collection's facts in the registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar

from dirsync.identifiers import country_code_of
from dirsync.models import Fact
from dirsync.registry.base import DirectoryRegistry
from dirsync.sync.fallback import with_country_fallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FactSyncReport:
    """What happened to one collection during fact synchronization."""

    collection_id: str
    succeeded: bool = True
    deleted: int = 0
    inserted: int = 0
    failed_phase: str | None = None
    error: str | None = None


def batched(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class FactSynchronizer:
    """Make the registry's facts for a collection equal to a freshly computed set.

    The existing facts are listed page by page, deleted and replaced. Listing
    stops at the first empty page, or at a page that only repeats IDs already
    seen, which covers registries that ignore paging. A failure in one
    collection never affects another.
    """

    def __init__(self, registry: DirectoryRegistry, *, batch_size: int = 1000) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.registry = registry
        self.batch_size = batch_size

    def replace_facts(self, collection_id: str, facts: Sequence[Fact]) -> FactSyncReport:
        report = FactSyncReport(collection_id=collection_id)
        country_code = country_code_of(collection_id)

        existing = self._existing_fact_ids(collection_id, country_code)
        if existing is None:
            return self._failed(report, "list")

        for batch in batched(existing, self.batch_size):
            ok = with_country_fallback(
                lambda scope: self.registry.delete_facts(batch, scope),
                country_code,
                description=f"Deleting facts of {collection_id}",
            )
            if not ok:
                return self._failed(report, "delete")
            report.deleted += len(batch)

        for batch in batched(list(facts), self.batch_size):
            ok = with_country_fallback(
                lambda scope: self.registry.insert_facts(batch, scope),
                country_code,
                description=f"Inserting facts of {collection_id}",
            )
            if not ok:
                return self._failed(report, "insert")
            report.inserted += len(batch)

        logger.info(
            "Collection %s: deleted %s facts, inserted %s facts",
            collection_id,
            report.deleted,
            report.inserted,
        )
        return report

    def synchronize(self, facts_by_collection: Mapping[str, Sequence[Fact]]) -> list[FactSyncReport]:
        reports: list[FactSyncReport] = []
        for collection_id in sorted(facts_by_collection):
            try:
                report = self.replace_facts(collection_id, facts_by_collection[collection_id])
            except Exception as exc:
                logger.exception("Fact synchronization of %s raised", collection_id)
                report = FactSyncReport(
                    collection_id=collection_id,
                    succeeded=False,
                    failed_phase="unexpected",
                    error=str(exc),
                )
            reports.append(report)
        return reports

    def _existing_fact_ids(self, collection_id: str, country_code: str | None) -> list[str] | None:
        ids: list[str] = []
        seen: set[str] = set()
        page = 0
        while True:
            page_ids = with_country_fallback(
                lambda scope: self.registry.list_fact_ids(collection_id, page, scope),
                country_code,
                description=f"Listing facts of {collection_id}",
            )
            if page_ids is None:
                return None
            fresh = [fact_id for fact_id in page_ids if fact_id not in seen]
            if not fresh:
                return ids
            for fact_id in fresh:
                seen.add(fact_id)
                ids.append(fact_id)
            page += 1

    @staticmethod
    def _failed(report: FactSyncReport, phase: str) -> FactSyncReport:
        report.succeeded = False
        report.failed_phase = phase
        report.error = f"{phase} phase failed on every endpoint"
        logger.warning("Fact synchronization of %s failed in the %s phase", report.collection_id, phase)
        return report


def replace_facts(
    collection_id: str,
    facts: Sequence[Fact],
    registry: DirectoryRegistry,
    batch_size: int = 1000,
) -> bool:
    """Replace all registry facts of ``collection_id`` with ``facts``."""

    return FactSynchronizer(registry, batch_size=batch_size).replace_facts(collection_id, facts).succeeded
