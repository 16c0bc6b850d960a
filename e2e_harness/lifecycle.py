"""Suite and per-test lifecycle around browser session provisioning."""

import asyncio
import logging
import threading
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, TypeAlias

from playwright.async_api import Error as PlaywrightError

from e2e_harness.artifacts import ArtifactCapture
from e2e_harness.config import SessionConfig, load_session_config
from e2e_harness.errors import (
    CaptureError,
    DiscoveryError,
    LifecycleError,
    ProvisionError,
    TestSkipped,
)
from e2e_harness.models.outcome import AggregateReport, Artifact, TestOutcome
from e2e_harness.models.result import TestResult
from e2e_harness.provisioner import BrowserSession, DriverProvisioner
from e2e_harness.reporter import OutcomeReporter, default_system_info

log = logging.getLogger(__name__)

TestBody: TypeAlias = Callable[[BrowserSession], Awaitable[None]]
RunState: TypeAlias = Literal["idle", "acquiring", "running", "capturing", "releasing"]

INTERRUPTED = TestResult(status="fail", message="Test was interrupted before completing")


def describe_failure(error: BaseException) -> str:
    """Render an exception escaping a test body as an outcome message."""
    if isinstance(error, asyncio.CancelledError):
        return "Test was cancelled"
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


def is_transient(error: ProvisionError) -> bool:
    """Whether a provisioning failure is worth one more attempt."""
    cause = error.__cause__
    return isinstance(cause, DiscoveryError) and cause.reason == "network"


@dataclass(kw_only=True, eq=False)
class TestRun:
    """State of one test between ``test_start`` and ``test_end``."""

    __test__ = False

    test_id: str
    started_at: datetime
    state: RunState = "idle"
    session: BrowserSession | None = None
    provision_error: ProvisionError | None = None
    outcome: TestOutcome | None = None
    ending: bool = False

    @property
    def active_session(self) -> BrowserSession:
        """The session the test body runs against."""
        if self.provision_error is not None:
            raise self.provision_error
        if self.session is None or self.state != "running":
            raise LifecycleError(f"{self.test_id} has no running session")
        return self.session


@dataclass(kw_only=True)
class TestLifecycleManager:
    """Orchestrates suite start, per-test acquire/release and suite end.

    Holds no per-test state itself: every test gets its own ``TestRun`` and
    its own session, so tests may run concurrently against one manager.
    """

    __test__ = False

    config: SessionConfig
    provisioner: DriverProvisioner
    capture: ArtifactCapture
    reporter: OutcomeReporter
    clock: Callable[[], datetime] = datetime.now
    _phase: Literal["created", "started", "ended"] = field(default="created", init=False)
    _in_progress: set[TestRun] = field(default_factory=set, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def suite_start(self) -> "TestLifecycleManager":
        """Prepare the artifact and report directories."""
        if self._phase != "created":
            raise LifecycleError("Suite already started")

        report_dir = self.config.report_path.parent
        for directory in (self.config.artifact_dir, report_dir, report_dir / "archive"):
            directory.mkdir(parents=True, exist_ok=True)

        self._phase = "started"
        log.info(
            "Suite started: browser=%s, mode=%s, artifacts=%s",
            self.config.browser,
            "remote-attached" if self.config.remote_attach else "local",
            self.config.artifact_dir,
        )
        return self

    async def test_start(self, test_id: str) -> TestRun:
        """Acquire a session for a test.

        Provisioning failures do not raise: they are kept on the returned run
        and turned into a failed outcome by ``test_end``.
        """
        with self._lock:
            if self._phase != "started":
                raise LifecycleError(f"Cannot start {test_id}: suite is {self._phase}")
            run = TestRun(test_id=test_id, started_at=self.clock(), state="acquiring")
            self._in_progress.add(run)

        try:
            session = await self._acquire(test_id)
        except ProvisionError as e:
            log.error("Provisioning failed for %s: %s", test_id, e)
            run.provision_error = e
            return run
        except BaseException:
            self._forget(run)
            raise

        session.configure_timeouts(
            self.config.implicit_wait, self.config.page_load_timeout
        )
        run.session = session
        run.state = "running"
        log.info("Test %s running on %s session", test_id, session.mode)
        return run

    async def test_end(self, run: TestRun, result: TestResult) -> TestOutcome:
        """Record the test outcome and release its session.

        The session is released on every path, including when capturing or
        recording fails. The run is claimed before anything is awaited, so an
        overlapping second call raises ``LifecycleError`` instead of recording
        a duplicate outcome.
        """
        with self._lock:
            if run.ending or run not in self._in_progress:
                raise LifecycleError(f"test_end already called for {run.test_id}")
            run.ending = True

        status = result.status
        message = result.message
        if run.provision_error is not None:
            status = "fail"
            message = f"Provisioning failed: {run.provision_error}"

        artifacts: list[Artifact] = []
        warnings: list[str] = []
        try:
            if status == "fail" and run.session is not None:
                run.state = "capturing"
                try:
                    artifacts.append(await self.capture.capture(run.session, run.test_id))
                except CaptureError as e:
                    log.warning("Screenshot capture failed for %s: %s", run.test_id, e)
                    warnings.append(f"Screenshot capture failed: {e}")

            run.outcome = TestOutcome(
                test_id=run.test_id,
                status=status,
                message=message,
                artifacts=tuple(artifacts),
                warnings=tuple(warnings),
                started_at=run.started_at,
                finished_at=self.clock(),
            )
            self.reporter.record(run.outcome)
        finally:
            run.state = "releasing"
            await self._release(run)
            run.state = "idle"
            self._forget(run)

        return run.outcome

    def suite_end(self) -> AggregateReport:
        """Flush the aggregate report once every test has ended."""
        with self._lock:
            if self._phase != "started":
                raise LifecycleError(f"Cannot end suite: suite is {self._phase}")
            if self._in_progress:
                pending = ", ".join(sorted(run.test_id for run in self._in_progress))
                raise LifecycleError(f"Tests still in progress: {pending}")
            self._phase = "ended"

        log.info("Suite finished, flushing report")
        return self.reporter.flush()

    @asynccontextmanager
    async def run_test(self, test_id: str) -> AsyncGenerator[BrowserSession, None]:
        """Scope a test body to one acquired session.

        ``test_end`` runs exactly once whatever way the body exits. Exceptions
        from the body are re-raised after the outcome is recorded, except
        ``TestSkipped`` which marks the test skipped.
        """
        run = await self.test_start(test_id)
        result = INTERRUPTED
        try:
            session = run.active_session
            try:
                yield session
            except TestSkipped as e:
                result = TestResult(status="skip", message=str(e) or None)
            except BaseException as e:
                result = TestResult(status="fail", message=describe_failure(e))
                raise
            else:
                result = TestResult(status="pass")
        finally:
            await self.test_end(run, result)

    async def execute(
        self, test_id: str, body: TestBody, *, timeout: float | None = None
    ) -> TestOutcome:
        """Run a test body and return its recorded outcome.

        Failures of the body are recorded, not raised. A body running longer
        than ``timeout`` seconds is abandoned and recorded as failed.
        """
        run = await self.test_start(test_id)
        result = INTERRUPTED
        try:
            if run.provision_error is None:
                result = await self._run_body(run.active_session, body, timeout)
        finally:
            outcome = await self.test_end(run, result)
        return outcome

    async def execute_all(
        self,
        bodies: Mapping[str, TestBody],
        *,
        max_parallel: int = 1,
        timeout: float | None = None,
    ) -> Sequence[TestOutcome]:
        """Run several test bodies, up to ``max_parallel`` at a time.

        Every body acquires its own session.
        """
        semaphore = asyncio.Semaphore(max_parallel)

        async def _bounded(test_id: str, body: TestBody) -> TestOutcome:
            async with semaphore:
                return await self.execute(test_id, body, timeout=timeout)

        log.info("Running %d test(s), max_parallel=%d", len(bodies), max_parallel)
        return await asyncio.gather(
            *(_bounded(test_id, body) for test_id, body in bodies.items())
        )

    async def _run_body(
        self, session: BrowserSession, body: TestBody, timeout: float | None
    ) -> TestResult:
        try:
            async with asyncio.timeout(timeout) as deadline:
                await body(session)
        except TestSkipped as e:
            return TestResult(status="skip", message=str(e) or None)
        except TimeoutError as e:
            if deadline.expired():
                return TestResult(
                    status="fail", message=f"Test did not finish within {timeout} seconds"
                )
            return TestResult(status="fail", message=describe_failure(e))
        except Exception as e:  # noqa: BLE001
            return TestResult(status="fail", message=describe_failure(e))
        return TestResult(status="pass")

    async def _acquire(self, test_id: str) -> BrowserSession:
        try:
            return await self.provisioner.acquire(self.config)
        except ProvisionError as e:
            if not is_transient(e):
                raise
            log.warning("Transient provisioning failure for %s, retrying: %s", test_id, e)
        return await self.provisioner.acquire(self.config)

    async def _release(self, run: TestRun) -> None:
        session, run.session = run.session, None
        if session is None:
            return

        try:
            async with asyncio.timeout(self.config.release_timeout):
                await session.release()
        except TimeoutError:
            log.warning(
                "Releasing session for %s did not finish within %s seconds",
                run.test_id,
                self.config.release_timeout,
            )
        except PlaywrightError as e:
            log.warning("Failed to release session for %s: %s", run.test_id, e)

    def _forget(self, run: TestRun) -> None:
        with self._lock:
            self._in_progress.discard(run)


def start_suite(
    source: Path | None = None,
    *,
    provisioner: DriverProvisioner | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> TestLifecycleManager:
    """Load configuration once and start a suite run.

    Raises:
        ConfigError: If the configuration is invalid; no test may run then

    """
    config = load_session_config(source, environ=environ, overrides=overrides)
    system_info = {
        **default_system_info(),
        "browser": config.browser,
        "mode": "remote-attached" if config.remote_attach else "local",
    }
    manager = TestLifecycleManager(
        config=config,
        provisioner=provisioner if provisioner is not None else DriverProvisioner(),
        capture=ArtifactCapture(artifact_dir=config.artifact_dir),
        reporter=OutcomeReporter(report_path=config.report_path, system_info=system_info),
    )
    return manager.suite_start()
