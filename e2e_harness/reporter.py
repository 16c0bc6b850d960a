"""Accumulation and reporting of test outcomes."""

import json
import logging
import platform
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from e2e_harness.errors import ReportError
from e2e_harness.models.outcome import AggregateReport, TestOutcome

log = logging.getLogger(__name__)

STATUS_SYMBOLS = {
    "pass": "✓",
    "fail": "✗",
    "skip": "-",
}


def log_outcomes_summary(log: logging.Logger, report: AggregateReport) -> None:
    """Log a formatted summary of test outcomes with artifact paths."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for outcome in report.outcomes:
        symbol = STATUS_SYMBOLS.get(outcome.status, "?")
        log.info(
            "%s %s: %s (%.2fs)",
            symbol,
            outcome.test_id,
            outcome.status,
            outcome.duration,
        )
        if outcome.message:
            log.info("  Message: %s", outcome.message)
        for artifact in outcome.artifacts:
            log.info("  Screenshot: %s", artifact.path)
        for warning in outcome.warnings:
            log.info("  Warning: %s", warning)

    log.info(
        "Total: %d, passed: %d, failed: %d, skipped: %d",
        report.total,
        report.passed,
        report.failed,
        report.skipped,
    )


def default_system_info() -> Mapping[str, str]:
    """Describe the machine the suite ran on."""
    return {
        "os": platform.platform(),
        "python": platform.python_version(),
    }


@dataclass(kw_only=True)
class OutcomeReporter:
    """Append-only log of test outcomes, flushed once at suite end.

    ``record`` may be called concurrently from parallel workers.
    """

    report_path: Path
    system_info: Mapping[str, str] = field(default_factory=default_system_info)
    clock: Callable[[], datetime] = datetime.now
    started_at: datetime = field(init=False)
    _outcomes: list[TestOutcome] = field(default_factory=list, init=False)
    _flushed: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    @property
    def outcomes(self) -> Sequence[TestOutcome]:
        """Snapshot of the outcomes recorded so far."""
        with self._lock:
            return tuple(self._outcomes)

    def record(self, outcome: TestOutcome) -> None:
        """Append an outcome.

        Raises:
            ReportError: If the report has already been flushed

        """
        with self._lock:
            if self._flushed:
                raise ReportError(
                    f"Cannot record {outcome.test_id}: report already flushed"
                )
            self._outcomes.append(outcome)
        log.debug("Recorded %s: %s", outcome.test_id, outcome.status)

    def flush(self) -> AggregateReport:
        """Summarize every recorded outcome and write the JSON report.

        Returns:
            The aggregate report

        Raises:
            ReportError: If called more than once, or if the report file
                cannot be written (the aggregate is attached to the error)

        """
        with self._lock:
            if self._flushed:
                raise ReportError("Report already flushed")
            self._flushed = True
            outcomes = tuple(self._outcomes)

        report = AggregateReport(
            outcomes=outcomes,
            started_at=self.started_at,
            finished_at=self.clock(),
            system_info=self.system_info,
        )
        log_outcomes_summary(log, report)

        try:
            self.report_path.parent.mkdir(parents=True, exist_ok=True)
            self.report_path.write_text(
                json.dumps(report.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            log.error("Failed to write report to %s: %s", self.report_path, e)
            raise ReportError(
                f"Failed to write report to {self.report_path}: {e}", report=report
            ) from e

        log.info("Report written to %s", self.report_path)
        return report
