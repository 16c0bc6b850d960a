"""Tests for the outcome reporter."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path

import pytest

from e2e_harness.errors import ReportError
from e2e_harness.models.outcome import Artifact, TestOutcome
from e2e_harness.reporter import OutcomeReporter
from e2e_harness.testing.factories import TestOutcomeFactory

STARTED = datetime(2099, 1, 1, 12, 0, 0)


def outcome(test_id: str, status: str, **kwargs: object) -> TestOutcome:
    return TestOutcomeFactory.build(
        test_id=test_id,
        status=status,
        started_at=STARTED,
        finished_at=datetime(2099, 1, 1, 12, 0, 5),
        **kwargs,
    )


@pytest.fixture
def reporter(tmp_path: Path) -> OutcomeReporter:
    """Create reporter writing into a temporary directory."""
    return OutcomeReporter(
        report_path=tmp_path / "reports" / "report.json",
        system_info={"os": "test-os", "python": "3.12"},
    )


class TestFlush:
    """Tests for flush method."""

    def test_counts_equal_recorded_outcomes(self, reporter: OutcomeReporter) -> None:
        """Pass, fail and skip counts add up to the number of records."""
        statuses = ["pass", "pass", "fail", "skip", "pass", "fail"]
        for index, status in enumerate(statuses):
            reporter.record(outcome(f"test_{index}", status))

        report = reporter.flush()

        assert report.passed == 3
        assert report.failed == 2
        assert report.skipped == 1
        assert report.passed + report.failed + report.skipped == len(statuses)
        assert report.total == len(statuses)

    def test_empty_report(self, reporter: OutcomeReporter) -> None:
        """Returns zero totals when nothing was recorded."""
        report = reporter.flush()

        assert report.to_dict()["total"] == 0
        assert report.to_dict()["results"] == []

    def test_writes_json_report(self, reporter: OutcomeReporter) -> None:
        """Writes the aggregate to the report path."""
        artifact = Artifact(path=Path("shots/test_b.png"), test_id="test_b")
        reporter.record(outcome("test_a", "pass"))
        reporter.record(
            outcome("test_b", "fail", message="boom", artifacts=(artifact,))
        )

        reporter.flush()

        data = json.loads(reporter.report_path.read_text())
        assert data["total"] == 2
        assert data["passed"] == 1
        assert data["failed"] == 1
        assert data["skipped"] == 0
        assert data["system_info"] == {"os": "test-os", "python": "3.12"}
        assert data["results"][1]["test_id"] == "test_b"
        assert data["results"][1]["message"] == "boom"
        assert data["results"][1]["artifacts"] == ["shots/test_b.png"]
        assert data["results"][1]["duration"] == 5.0

    def test_rejects_second_flush(self, reporter: OutcomeReporter) -> None:
        """Flush may only be called once."""
        reporter.flush()

        with pytest.raises(ReportError, match="already flushed"):
            reporter.flush()

    def test_rejects_record_after_flush(self, reporter: OutcomeReporter) -> None:
        """Recording after flush is an error, not silently accepted."""
        reporter.flush()

        with pytest.raises(ReportError, match="report already flushed"):
            reporter.record(outcome("late", "pass"))

    def test_surfaces_write_failure(self, tmp_path: Path) -> None:
        """Write errors raise ReportError carrying the aggregate."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        reporter = OutcomeReporter(report_path=blocker / "report.json")
        reporter.record(outcome("test_a", "pass"))

        with pytest.raises(ReportError, match="Failed to write report") as exc_info:
            reporter.flush()

        assert exc_info.value.report is not None
        assert exc_info.value.report.passed == 1  # type: ignore[attr-defined]

    def test_logs_summary(
        self, reporter: OutcomeReporter, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Logs one line per outcome with status symbols."""
        reporter.record(outcome("test_pass", "pass"))
        reporter.record(
            outcome("test_fail", "fail", message="Element not found", warnings=("w1",))
        )
        reporter.record(outcome("test_skip", "skip"))

        with caplog.at_level(logging.INFO):
            reporter.flush()

        assert "Test Results Summary:" in caplog.text
        assert "✓ test_pass: pass (5.00s)" in caplog.text
        assert "✗ test_fail: fail (5.00s)" in caplog.text
        assert "Message: Element not found" in caplog.text
        assert "Warning: w1" in caplog.text
        assert "- test_skip: skip (5.00s)" in caplog.text
        assert "Total: 3, passed: 1, failed: 1, skipped: 1" in caplog.text


class TestRecord:
    """Tests for record method."""

    def test_preserves_order(self, reporter: OutcomeReporter) -> None:
        """Outcomes are kept in recording order."""
        for test_id in ["first", "second", "third"]:
            reporter.record(outcome(test_id, "pass"))

        assert [o.test_id for o in reporter.outcomes] == ["first", "second", "third"]

    def test_safe_under_concurrent_calls(self, reporter: OutcomeReporter) -> None:
        """Concurrent workers never lose records."""
        workers = 8
        per_worker = 200

        def work(worker: int) -> None:
            for index in range(per_worker):
                reporter.record(outcome(f"w{worker}-{index}", "pass"))

        threads = [threading.Thread(target=work, args=(w,)) for w in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert reporter.flush().total == workers * per_worker
