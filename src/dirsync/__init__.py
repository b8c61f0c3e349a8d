"""Directory Sync: reconcile biobank inventories with the BBMRI-ERIC Directory.

The package provides diagnosis-code correction, privacy-preserving star-model
aggregation, replace-all fact synchronization and change-aware entity
reconciliation, orchestrated as a retryable run.
"""

from .backends import (
    BackendPluginSpec,
    BackendRegistry,
    BackendRole,
    build_clinical_store,
    build_default_backend_registry,
    build_directory_registry,
)
from .config import AgeBracket, BackendSpec, SyncConfig
from .diagnosis import DiagnosisCorrectionMap, DiagnosisCorrector, build_corrections, normalize
from .errors import ClinicalStoreError, ConfigurationError, DirectorySyncError, RegistryError
from .identifiers import BbmriEricId
from .models import (
    AggregationKey,
    BiobankAttributes,
    CollectionAttributes,
    EntityComparison,
    Fact,
    SampleRecord,
)
from .outcome import Issue, IssueKind, Severity, StageResult, SyncOutcome, SyncState
from .pipeline import FailoverReport, FailoverRunner, SyncOrchestrator, run_with_failover
from .profiles import SyncProfile, SyncProfileLoader
from .starmodel import AggregationResult, StarModelAggregator, aggregate
from .sync import EntityReconciler, FactSynchronizer, reconcile, replace_facts

__all__ = [
    "AgeBracket",
    "AggregationKey",
    "AggregationResult",
    "BackendPluginSpec",
    "BackendRegistry",
    "BackendRole",
    "BackendSpec",
    "BbmriEricId",
    "BiobankAttributes",
    "ClinicalStoreError",
    "CollectionAttributes",
    "ConfigurationError",
    "DiagnosisCorrectionMap",
    "DiagnosisCorrector",
    "DirectorySyncError",
    "EntityComparison",
    "EntityReconciler",
    "Fact",
    "FactSynchronizer",
    "FailoverReport",
    "FailoverRunner",
    "Issue",
    "IssueKind",
    "RegistryError",
    "SampleRecord",
    "Severity",
    "StageResult",
    "StarModelAggregator",
    "SyncConfig",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncProfile",
    "SyncProfileLoader",
    "SyncState",
    "aggregate",
    "build_clinical_store",
    "build_corrections",
    "build_default_backend_registry",
    "build_directory_registry",
    "normalize",
    "reconcile",
    "replace_facts",
    "run_with_failover",
]
