"""Tests for the pytest integration."""

from unittest.mock import Mock

import pytest

from e2e_harness.pytest_plugin import option_overrides, result_from_reports


def report(outcome: str, **kwargs: object) -> Mock:
    """Create a phase report with the given outcome."""
    return Mock(
        passed=outcome == "passed",
        failed=outcome == "failed",
        skipped=outcome == "skipped",
        **kwargs,
    )


def item(**reports: Mock) -> Mock:
    node = Mock(spec=[])
    for when, rep in reports.items():
        setattr(node, f"rep_{when}", rep)
    return node


class TestResultFromReports:
    """Tests for result_from_reports function."""

    def test_pass(self) -> None:
        """Passing setup and call give a passed result."""
        result = result_from_reports(item(setup=report("passed"), call=report("passed")))

        assert result.status == "pass"
        assert result.message is None

    def test_call_failure(self) -> None:
        """A failing call carries its failure text."""
        result = result_from_reports(
            item(
                setup=report("passed"),
                call=report("failed", longreprtext="AssertionError: title"),
            )
        )

        assert result.status == "fail"
        assert result.message == "AssertionError: title"

    def test_skip_in_call(self) -> None:
        """pytest.skip inside the test marks it skipped with the reason."""
        result = result_from_reports(
            item(
                setup=report("passed"),
                call=report("skipped", longrepr=("test_x.py", 3, "Skipped: flag off")),
            )
        )

        assert result.status == "skip"
        assert result.message == "Skipped: flag off"

    def test_xfail_uses_reason(self) -> None:
        """Expected failures are reported as skipped."""
        result = result_from_reports(
            item(
                setup=report("passed"),
                call=report("skipped", longrepr=None, wasxfail="known bug"),
            )
        )

        assert result.status == "skip"
        assert result.message == "known bug"

    def test_setup_failure_wins(self) -> None:
        """A failing setup phase fails the test."""
        result = result_from_reports(
            item(setup=report("failed", longreprtext="fixture error"))
        )

        assert result.status == "fail"
        assert result.message == "fixture error"

    def test_missing_call_report(self) -> None:
        """A test whose body never ran is a failure."""
        result = result_from_reports(item(setup=report("passed")))

        assert result.status == "fail"
        assert result.message == "Test did not run"


class TestOptionOverrides:
    """Tests for option_overrides function."""

    @pytest.mark.parametrize(
        ("options", "expected"),
        [
            ({"harness_browser": None, "harness_headless": None}, {}),
            (
                {"harness_browser": "firefox", "harness_headless": None},
                {"browser": "firefox"},
            ),
            (
                {"harness_browser": None, "harness_headless": True},
                {"headless": True},
            ),
        ],
    )
    def test_only_given_options(
        self, options: dict[str, object], expected: dict[str, object]
    ) -> None:
        """Options left unset do not override the configuration file."""
        config = Mock()
        config.getoption.side_effect = options.__getitem__

        assert option_overrides(config) == expected
