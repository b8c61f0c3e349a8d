import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from fakes import (  # noqa: E402
    BIOBANK_DE,
    COLLECTION_AT,
    COLLECTION_DE,
    InMemoryClinicalStore,
    InMemoryRegistry,
    donors,
)

from dirsync import FailoverRunner, SyncConfig, SyncOrchestrator, SyncState, run_with_failover  # noqa: E402
from dirsync.errors import RegistryError  # noqa: E402
from dirsync.models import BiobankAttributes, CollectionAttributes  # noqa: E402
from dirsync.outcome import IssueKind  # noqa: E402

VOCABULARY = {"urn:miriam:icd:C18.0", "urn:miriam:icd:C34.1"}


def _registry(**kwargs) -> InMemoryRegistry:
    registry = InMemoryRegistry(vocabulary=VOCABULARY, **kwargs)
    registry.collections[COLLECTION_DE] = CollectionAttributes(id=COLLECTION_DE, name="Colorectal cancer")
    registry.collections[COLLECTION_AT] = CollectionAttributes(id=COLLECTION_AT, name="Lung cancer")
    registry.biobanks[BIOBANK_DE] = BiobankAttributes(id=BIOBANK_DE, name="Biobank One")
    return registry


def _store(**kwargs) -> InMemoryClinicalStore:
    rows = donors(12) + donors(11, collection_id=COLLECTION_AT, prefix="a", diagnosis="C34.1", material="SERUM")
    biobanks = [BiobankAttributes(id=BIOBANK_DE, name="Biobank One", acronym="BB1")]
    return InMemoryClinicalStore(rows, biobanks=biobanks, **kwargs)


def test_run_publishes_facts_and_updates_entities() -> None:
    registry = _registry()
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store())

    outcome = orchestrator.run()

    assert outcome.state is SyncState.DONE
    assert [stage.stage for stage in outcome.stages] == [
        SyncState.CORRECTING_DIAGNOSES,
        SyncState.AGGREGATING,
        SyncState.SYNCHRONIZING_FACTS,
        SyncState.RECONCILING_ENTITIES,
    ]
    assert registry.logins == 1
    facts = sorted(registry.facts.values(), key=lambda fact: fact.collection_id)
    assert [(fact.collection_id, fact.number_of_donors, fact.sample_type) for fact in facts] == [
        (COLLECTION_AT, 11, "SERUM"),
        (COLLECTION_DE, 12, "TISSUE_PARAFFIN_EMBEDDED"),
    ]

    collection = registry.collections[COLLECTION_DE]
    assert collection.name == "Colorectal cancer"
    assert collection.size == 12
    assert collection.number_of_donors == 12
    assert collection.order_of_magnitude == 1
    assert collection.diagnosis_available == ("urn:miriam:icd:C18.0",)
    assert collection.country == "DE"
    assert registry.biobanks[BIOBANK_DE].acronym == "BB1"


def test_second_run_is_idempotent() -> None:
    registry = _registry()
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store())

    orchestrator.run()
    first = dict(registry.facts)
    outcome = orchestrator.run()

    assert outcome.succeeded
    assert registry.facts == first
    reconciling = outcome.stage(SyncState.RECONCILING_ENTITIES)
    assert reconciling.counters.get("collection_updated", 0) == 0
    assert reconciling.counters["collection_unchanged"] == 2


def test_clinical_store_failure_stops_after_first_stage() -> None:
    registry = _registry()
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store(failures=1))

    outcome = orchestrator.run()

    assert outcome.state is SyncState.FAILED
    assert len(outcome.stages) == 1
    assert outcome.stages[0].issues[0].kind is IssueKind.INPUT
    assert not any(call[0] in {"list", "delete", "insert"} for call in registry.calls)


def test_login_failure_is_a_remote_issue() -> None:
    registry = _registry()
    registry.login_error = RegistryError("login rejected")
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store())

    outcome = orchestrator.run()

    assert outcome.state is SyncState.FAILED
    assert outcome.stages[0].issues[0].kind is IssueKind.REMOTE
    assert registry.validated == []


def test_collection_failure_marks_run_failed_without_stopping_it() -> None:
    registry = _registry(failing={("insert", "DE"), ("insert", None)})
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store())

    outcome = orchestrator.run()

    assert outcome.state is SyncState.FAILED
    assert len(outcome.stages) == 4
    facts_stage = outcome.stage(SyncState.SYNCHRONIZING_FACTS)
    assert facts_stage.succeeded is False
    assert [issue.subject for issue in facts_stage.issues] == [COLLECTION_DE]
    assert {fact.collection_id for fact in registry.facts.values()} == {COLLECTION_AT}


def test_suppressed_buckets_are_reported() -> None:
    registry = _registry()
    store = InMemoryClinicalStore(donors(12) + donors(3, prefix="m", sex="male"))
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=store)

    outcome = orchestrator.run()

    aggregating = outcome.stage(SyncState.AGGREGATING)
    assert aggregating.counters["suppressed_buckets"] == 1
    assert any(issue.kind is IssueKind.POLICY and issue.subject == COLLECTION_DE for issue in aggregating.issues)
    assert all(fact.sex == "FEMALE" for fact in registry.facts.values())


def test_disabled_star_model_leaves_facts_untouched() -> None:
    registry = _registry()
    config = SyncConfig(allow_star_model=False)
    orchestrator = SyncOrchestrator(config=config, registry=registry, clinical_store=_store())

    outcome = orchestrator.run()

    assert outcome.succeeded
    assert registry.facts == {}
    assert not any(call[0] in {"list", "insert"} for call in registry.calls)
    assert registry.collections[COLLECTION_DE].size == 12


def test_failover_retries_until_success() -> None:
    sleeps = []
    config = SyncConfig(retry_max=3, retry_interval=5.0)

    report = run_with_failover(
        config=config,
        registry=_registry(),
        clinical_store=_store(failures=2),
        sleep=sleeps.append,
    )

    assert report.succeeded
    assert [outcome.attempt for outcome in report.outcomes] == [1, 2, 3]
    assert sleeps == [5.0, 5.0]
    assert report.to_dict()["attempts"] == 3


def test_failover_gives_up_after_retry_max() -> None:
    sleeps = []
    registry = _registry()
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store(failures=5))

    report = FailoverRunner(orchestrator, retry_max=2, retry_interval=1.5, sleep=sleeps.append).run()

    assert report.succeeded is False
    assert len(report.outcomes) == 2
    assert report.authoritative.state is SyncState.FAILED
    assert sleeps == [1.5]


class _BrokenCollectionRegistry(InMemoryRegistry):
    def get_collection(self, collection_id, country_code):
        if collection_id == COLLECTION_DE:
            raise ValueError("malformed collection payload")
        return super().get_collection(collection_id, country_code)


def test_entity_error_fails_the_run_but_updates_other_collections() -> None:
    sleeps = []
    registry = _BrokenCollectionRegistry(vocabulary=VOCABULARY)
    registry.collections[COLLECTION_DE] = CollectionAttributes(id=COLLECTION_DE, name="Colorectal cancer")
    registry.collections[COLLECTION_AT] = CollectionAttributes(id=COLLECTION_AT, name="Lung cancer")

    report = run_with_failover(
        config=SyncConfig(retry_max=2, retry_interval=1.0, update_biobanks=False),
        registry=registry,
        clinical_store=_store(),
        sleep=sleeps.append,
    )

    assert len(report.outcomes) == 2
    assert report.succeeded is False
    entities = report.authoritative.stage(SyncState.RECONCILING_ENTITIES)
    assert entities.succeeded is False
    assert [issue.subject for issue in entities.issues] == [COLLECTION_DE]
    assert "malformed collection payload" in entities.issues[0].message
    assert registry.collections[COLLECTION_AT].size == 11


class _UnstableVocabularyRegistry(InMemoryRegistry):
    def validate_diagnosis_code(self, code):
        raise ValueError("unexpected vocabulary response")


def test_unexpected_error_is_recorded_on_the_current_stage() -> None:
    registry = _UnstableVocabularyRegistry()
    orchestrator = SyncOrchestrator(config=SyncConfig(), registry=registry, clinical_store=_store())

    report = FailoverRunner(orchestrator, retry_max=2, retry_interval=0.5, sleep=lambda seconds: None).run()

    assert len(report.outcomes) == 2
    outcome = report.authoritative
    assert outcome.state is SyncState.FAILED
    assert len(outcome.stages) == 1
    issue = outcome.stages[0].issues[0]
    assert issue.kind is IssueKind.REMOTE
    assert issue.message == "Unexpected error: unexpected vocabulary response"
    assert registry.facts == {}
