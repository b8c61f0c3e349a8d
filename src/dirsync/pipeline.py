"""Synchronization run orchestrator and its run-level failover wrapper."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from dirsync.config import SyncConfig
from dirsync.diagnosis.corrections import DiagnosisCorrectionMap, DiagnosisCorrector
from dirsync.errors import ClinicalStoreError, DirectorySyncError
from dirsync.models import Fact, SampleRecord
from dirsync.outcome import IssueKind, Severity, StageResult, SyncOutcome, SyncState
from dirsync.registry.base import DirectoryRegistry
from dirsync.sources.base import ClinicalStore
from dirsync.starmodel.aggregator import AggregationResult, StarModelAggregator
from dirsync.starmodel.summary import sanity_checks, summarize_collections
from dirsync.sync.entities import EntityReconciler, EntityUpdateReport, UpdateStatus
from dirsync.sync.facts import FactSynchronizer

logger = logging.getLogger(__name__)


class _StageFailed(Exception):
    """Internal signal that a stage failed hard and the run must stop."""


class SyncOrchestrator:
    """Run the stages of one synchronization in order.

    Stages: diagnosis correction, aggregation, fact synchronization and
    entity reconciliation. A hard failure stops the run; failures limited to
    single collections or entities are recorded and the run carries on, but
    ends in the ``FAILED`` state.
    """

    def __init__(
        self,
        *,
        config: SyncConfig,
        registry: DirectoryRegistry,
        clinical_store: ClinicalStore,
    ) -> None:
        self.config = config
        self.registry = registry
        self.clinical_store = clinical_store

    def run(self, attempt: int = 1) -> SyncOutcome:
        outcome = SyncOutcome(attempt=attempt)
        try:
            corrections = self._correct_diagnoses(outcome)
            rows, aggregation = self._aggregate(outcome, corrections)
            self._synchronize_facts(outcome, rows, aggregation)
            self._reconcile_entities(outcome, rows, corrections)
        except _StageFailed:
            outcome.state = SyncState.FAILED
            logger.error("Synchronization attempt %s stopped in a failed stage", attempt)
            return outcome
        except Exception as exc:
            logger.exception("Synchronization attempt %s raised", attempt)
            outcome.stages[-1].fail(IssueKind.REMOTE, f"Unexpected error: {exc}")
            outcome.state = SyncState.FAILED
            return outcome

        outcome.state = (
            SyncState.DONE if all(stage.succeeded for stage in outcome.stages) else SyncState.FAILED
        )
        logger.info("Synchronization attempt %s finished: %s", attempt, outcome.state.value)
        return outcome

    def _enter(self, outcome: SyncOutcome, state: SyncState) -> StageResult:
        logger.info("Entering stage %s", state.value)
        outcome.state = state
        stage = StageResult(stage=state)
        outcome.stages.append(stage)
        return stage

    def _correct_diagnoses(self, outcome: SyncOutcome) -> DiagnosisCorrectionMap:
        stage = self._enter(outcome, SyncState.CORRECTING_DIAGNOSES)
        try:
            self.registry.login()
            raw_codes = list(self.clinical_store.fetch_raw_diagnoses())
            corrections = DiagnosisCorrector(self.registry.validate_diagnosis_code).build(raw_codes)
        except DirectorySyncError as exc:
            kind = IssueKind.INPUT if isinstance(exc, ClinicalStoreError) else IssueKind.REMOTE
            stage.fail(kind, str(exc))
            raise _StageFailed from exc

        for raw, reason in corrections.diagnostics.fallbacks:
            stage.add(IssueKind.INPUT, Severity.WARNING, f"Unreadable diagnosis code: {reason}", raw)
        for code in corrections.generalized:
            stage.add(
                IssueKind.VALIDATION,
                Severity.INFO,
                f"Corrected to {corrections[code]}",
                code,
            )
        for code in corrections.unresolved:
            stage.add(
                IssueKind.VALIDATION,
                Severity.WARNING,
                "Not known to the registry; diagnosis dropped",
                code,
            )
        stage.count("diagnosis_codes", len(corrections))
        stage.count("unresolved_codes", len(corrections.unresolved))
        return corrections

    def _aggregate(
        self,
        outcome: SyncOutcome,
        corrections: DiagnosisCorrectionMap,
    ) -> tuple[list[SampleRecord], AggregationResult]:
        stage = self._enter(outcome, SyncState.AGGREGATING)
        try:
            rows = [self._with_default_collection(row) for row in self.clinical_store.fetch_sample_records()]
        except DirectorySyncError as exc:
            stage.fail(IssueKind.INPUT, str(exc))
            raise _StageFailed from exc
        stage.count("sample_rows", len(rows))

        if not self.config.allow_star_model:
            stage.add(IssueKind.POLICY, Severity.INFO, "Star model disabled; no facts computed")
            return rows, AggregationResult()

        aggregator = StarModelAggregator(
            min_donors=self.config.min_donors,
            max_facts=self.config.fact_cap,
            age_brackets=self.config.age_brackets,
            material_aliases=self.config.material_aliases,
        )
        result = aggregator.aggregate(rows, corrections)
        stage.count("facts", len(result.facts))
        stage.count("suppressed_buckets", len(result.suppressed))

        if result.skipped_rows:
            stage.add(
                IssueKind.INPUT,
                Severity.WARNING,
                f"{result.skipped_rows} sample rows lack a collection or patient id",
            )
        for bucket in result.suppressed:
            key = bucket.key
            stage.add(
                IssueKind.POLICY,
                Severity.WARNING,
                f"Suppressed {bucket.number_of_donors} donors / {bucket.number_of_samples} samples "
                f"({key.sex}, {key.age_range}, {key.sample_type}) below {self.config.min_donors} donors",
                key.collection_id,
            )
        for collection_id, dropped in sorted(result.truncated.items()):
            stage.add(
                IssueKind.POLICY,
                Severity.WARNING,
                f"{dropped} facts dropped by the cap of {self.config.max_facts} facts",
                collection_id,
            )
        stage.issues.extend(sanity_checks(rows, result, self.config.material_aliases))
        return rows, result

    def _synchronize_facts(
        self,
        outcome: SyncOutcome,
        rows: list[SampleRecord],
        aggregation: AggregationResult,
    ) -> None:
        stage = self._enter(outcome, SyncState.SYNCHRONIZING_FACTS)
        if not self.config.allow_star_model:
            stage.add(IssueKind.POLICY, Severity.INFO, "Star model disabled; facts left untouched")
            return

        # Collections whose buckets were all suppressed still get their stale facts removed.
        facts_by_collection: dict[str, list[Fact]] = {
            row.collection_id: [] for row in rows if row.collection_id
        }
        for fact in aggregation.facts:
            facts_by_collection.setdefault(fact.collection_id, []).append(fact)

        synchronizer = FactSynchronizer(self.registry, batch_size=self.config.fact_batch_size)
        for report in synchronizer.synchronize(facts_by_collection):
            stage.count("deleted_facts", report.deleted)
            stage.count("inserted_facts", report.inserted)
            if report.succeeded:
                stage.count("collections_synchronized")
            else:
                stage.fail(IssueKind.REMOTE, report.error or "fact synchronization failed", report.collection_id)

    def _reconcile_entities(
        self,
        outcome: SyncOutcome,
        rows: list[SampleRecord],
        corrections: DiagnosisCorrectionMap,
    ) -> None:
        stage = self._enter(outcome, SyncState.RECONCILING_ENTITIES)
        reconciler = EntityReconciler(self.registry)

        if self.config.update_collections:
            local = summarize_collections(rows, self.config.material_aliases)
            self._record_updates(stage, reconciler.reconcile_collections(local, corrections))

        if self.config.update_biobanks:
            try:
                biobanks = self.clinical_store.fetch_biobanks()
            except DirectorySyncError as exc:
                stage.fail(IssueKind.INPUT, str(exc))
                raise _StageFailed from exc
            self._record_updates(stage, reconciler.reconcile_biobanks(biobanks))

    @staticmethod
    def _record_updates(stage: StageResult, reports: list[EntityUpdateReport]) -> None:
        for report in reports:
            stage.count(f"{report.entity_type}_{report.status.value}")
            if report.status is UpdateStatus.MISSING:
                stage.add(
                    IssueKind.REMOTE,
                    Severity.WARNING,
                    f"{report.entity_type} not found in the registry",
                    report.entity_id,
                )
            elif report.status is UpdateStatus.FAILED:
                message = f"{report.entity_type} update failed"
                if report.error:
                    message = f"{message}: {report.error}"
                stage.fail(IssueKind.REMOTE, message, report.entity_id)

    def _with_default_collection(self, row: SampleRecord) -> SampleRecord:
        if row.collection_id or not self.config.default_collection_id:
            return row
        return replace(row, collection_id=self.config.default_collection_id)


@dataclass
class FailoverReport:
    """Outcomes of every attempt; the last one is authoritative."""

    outcomes: list[SyncOutcome] = field(default_factory=list)

    @property
    def authoritative(self) -> SyncOutcome | None:
        return self.outcomes[-1] if self.outcomes else None

    @property
    def succeeded(self) -> bool:
        return self.authoritative is not None and self.authoritative.succeeded

    def to_dict(self) -> dict[str, Any]:
        authoritative = self.authoritative
        return {
            "succeeded": self.succeeded,
            "attempts": len(self.outcomes),
            "outcome": authoritative.to_dict() if authoritative is not None else None,
        }


class FailoverRunner:
    """Repeat a whole run until it succeeds or ``retry_max`` attempts were made."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        *,
        retry_max: int,
        retry_interval: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if retry_max < 1:
            raise ValueError("retry_max must be at least 1")
        self.orchestrator = orchestrator
        self.retry_max = retry_max
        self.retry_interval = retry_interval
        self.sleep = sleep

    def run(self) -> FailoverReport:
        report = FailoverReport()
        for attempt in range(1, self.retry_max + 1):
            if attempt > 1:
                logger.info("Waiting %s seconds before attempt %s", self.retry_interval, attempt)
                self.sleep(self.retry_interval)
            outcome = self.orchestrator.run(attempt=attempt)
            report.outcomes.append(outcome)
            if outcome.succeeded:
                break
            logger.warning("Attempt %s of %s failed", attempt, self.retry_max)
        return report


def run_with_failover(
    *,
    config: SyncConfig,
    registry: DirectoryRegistry,
    clinical_store: ClinicalStore,
    sleep: Callable[[float], None] = time.sleep,
) -> FailoverReport:
    orchestrator = SyncOrchestrator(config=config, registry=registry, clinical_store=clinical_store)
    runner = FailoverRunner(
        orchestrator,
        retry_max=config.retry_max,
        retry_interval=config.retry_interval,
        sleep=sleep,
    )
    return runner.run()
