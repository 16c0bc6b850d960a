"""pytest integration: lifecycle-managed browser sessions as fixtures."""

from collections.abc import AsyncGenerator, Generator, Mapping
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from playwright.async_api import Page

from e2e_harness.lifecycle import TestLifecycleManager, start_suite
from e2e_harness.models.result import TestResult
from e2e_harness.provisioner import BrowserSession, DriverProvisioner


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register harness command line options."""
    group = parser.getgroup("e2e-harness", "browser session harness")
    group.addoption(
        "--harness-config",
        type=Path,
        default=None,
        help="Path to the harness YAML configuration file",
    )
    group.addoption(
        "--harness-browser",
        default=None,
        help="Browser to launch (chromium, firefox, edge)",
    )
    group.addoption(
        "--harness-headless",
        action="store_true",
        default=None,
        help="Launch the browser headless",
    )


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None, Any, None]:
    """Store phase reports on the item for use in fixture teardown."""
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


def option_overrides(config: pytest.Config) -> Mapping[str, Any]:
    """Configuration values given on the command line."""
    overrides: dict[str, Any] = {}
    if (browser := config.getoption("harness_browser")) is not None:
        overrides["browser"] = browser
    if (headless := config.getoption("harness_headless")) is not None:
        overrides["headless"] = headless
    return overrides


def skip_reason(report: pytest.TestReport) -> str | None:
    if isinstance(report.longrepr, tuple):
        return str(report.longrepr[2])
    return getattr(report, "wasxfail", None) or None


def result_from_reports(item: pytest.Item) -> TestResult:
    """Translate the reports of a test into a harness result."""
    call_report: pytest.TestReport | None = getattr(item, "rep_call", None)
    for report in (getattr(item, "rep_setup", None), call_report):
        if report is None:
            continue
        if report.skipped:
            return TestResult(status="skip", message=skip_reason(report))
        if report.failed:
            return TestResult(status="fail", message=report.longreprtext)

    if call_report is None:
        return TestResult(status="fail", message="Test did not run")
    return TestResult(status="pass")


@pytest.fixture(scope="session")
def harness_provisioner() -> DriverProvisioner:
    """Provisioner shared by every test; override in a conftest to customize."""
    return DriverProvisioner()


@pytest.fixture(scope="session")
def harness_manager(
    pytestconfig: pytest.Config, harness_provisioner: DriverProvisioner
) -> Generator[TestLifecycleManager, None, None]:
    """Start the suite once and flush the report when the session ends."""
    manager = start_suite(
        pytestconfig.getoption("harness_config"),
        provisioner=harness_provisioner,
        overrides=option_overrides(pytestconfig),
    )
    yield manager
    manager.suite_end()


@pytest_asyncio.fixture
async def browser_session(
    harness_manager: TestLifecycleManager, request: pytest.FixtureRequest
) -> AsyncGenerator[BrowserSession, None]:
    """Acquire a fresh session for the requesting test."""
    run = await harness_manager.test_start(request.node.nodeid)
    try:
        yield run.active_session
    finally:
        await harness_manager.test_end(run, result_from_reports(request.node))


@pytest.fixture
def harness_page(browser_session: BrowserSession) -> Page:
    """Playwright page of the current test's session."""
    return browser_session.page
