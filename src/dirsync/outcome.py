"""Run outcome records: per-stage results and the issues raised along the way."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SyncState(str, Enum):
    """Lifecycle states of a synchronization run."""

    IDLE = "idle"
    CORRECTING_DIAGNOSES = "correcting_diagnoses"
    AGGREGATING = "aggregating"
    SYNCHRONIZING_FACTS = "synchronizing_facts"
    RECONCILING_ENTITIES = "reconciling_entities"
    DONE = "done"
    FAILED = "failed"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class IssueKind(str, Enum):
    """Which recovery path produced an issue."""

    INPUT = "input"
    VALIDATION = "validation"
    REMOTE = "remote"
    POLICY = "policy"
    CONSISTENCY = "consistency"


@dataclass(frozen=True)
class Issue:
    """Human-readable diagnostic attached to a stage result."""

    kind: IssueKind
    severity: Severity
    message: str
    subject: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "subject": self.subject,
        }


@dataclass
class StageResult:
    """Outcome of one stage of a run.

    ``succeeded`` is False for hard stage failures and for stages in which at
    least one item (for example one collection) failed.
    """

    stage: SyncState
    succeeded: bool = True
    issues: list[Issue] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    def add(
        self,
        kind: IssueKind,
        severity: Severity,
        message: str,
        subject: str | None = None,
    ) -> Issue:
        issue = Issue(kind=kind, severity=severity, message=message, subject=subject)
        self.issues.append(issue)
        return issue

    def fail(self, kind: IssueKind, message: str, subject: str | None = None) -> Issue:
        """Record an error issue and mark the stage as failed."""

        self.succeeded = False
        return self.add(kind, Severity.ERROR, message, subject)

    def count(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "succeeded": self.succeeded,
            "counters": dict(sorted(self.counters.items())),
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass
class SyncOutcome:
    """Consolidated report of a single run attempt."""

    attempt: int = 1
    state: SyncState = SyncState.IDLE
    stages: list[StageResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is SyncState.DONE

    @property
    def issues(self) -> list[Issue]:
        return [issue for stage in self.stages for issue in stage.issues]

    def stage(self, state: SyncState) -> StageResult | None:
        for result in self.stages:
            if result.stage is state:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "state": self.state.value,
            "succeeded": self.succeeded,
            "stages": [stage.to_dict() for stage in self.stages],
        }
