"""Models for recorded test outcomes and the suite aggregate."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from e2e_harness.models.result import TestStatus


@dataclass(frozen=True, kw_only=True)
class Artifact:
    """A file captured for a failing test."""

    path: Path
    test_id: str


@dataclass(frozen=True, kw_only=True)
class TestOutcome:
    """Recorded result of one test execution."""

    __test__ = False

    test_id: str
    status: TestStatus
    started_at: datetime
    finished_at: datetime
    message: str | None = None
    artifacts: Sequence[Artifact] = ()
    warnings: Sequence[str] = ()

    @property
    def duration(self) -> float:
        """Wall-clock duration of the test in seconds."""
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert the outcome into a JSON-serializable mapping."""
        return {
            "test_id": self.test_id,
            "status": self.status,
            "message": self.message,
            "duration": self.duration,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "artifacts": [str(artifact.path) for artifact in self.artifacts],
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, kw_only=True)
class AggregateReport:
    """Summary of every outcome recorded during a suite run."""

    outcomes: Sequence[TestOutcome]
    started_at: datetime
    finished_at: datetime
    system_info: Mapping[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return self._count("pass")

    @property
    def failed(self) -> int:
        return self._count("fail")

    @property
    def skipped(self) -> int:
        return self._count("skip")

    @property
    def artifacts(self) -> Sequence[Artifact]:
        """Every artifact attached to any outcome."""
        return [artifact for outcome in self.outcomes for artifact in outcome.artifacts]

    def _count(self, status: TestStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def to_dict(self) -> dict[str, Any]:
        """Format the aggregate for JSON output."""
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "system_info": dict(self.system_info),
            "results": [outcome.to_dict() for outcome in self.outcomes],
        }
