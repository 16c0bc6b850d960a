"""Error taxonomy for the browser session harness."""

from typing import Literal, TypeAlias

DiscoveryFailure: TypeAlias = Literal["status", "decode", "missing-port", "timeout", "network"]
ProvisionFailure: TypeAlias = Literal[
    "unsupported-browser", "driver-unavailable", "timeout", "discovery"
]


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigError(HarnessError):
    """Raised when a configuration value cannot be parsed."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"Invalid value for '{key}': {message}")
        self.key = key


class DiscoveryError(HarnessError):
    """Raised when the browser discovery service cannot provide an endpoint."""

    def __init__(
        self, reason: DiscoveryFailure, message: str, *, status: int | None = None
    ) -> None:
        super().__init__(f"Browser discovery failed ({reason}): {message}")
        self.reason = reason
        self.status = status


class ProvisionError(HarnessError):
    """Raised when a browser session cannot be acquired."""

    def __init__(self, reason: ProvisionFailure, message: str) -> None:
        super().__init__(f"{reason}: {message}")
        self.reason = reason


class CaptureError(HarnessError):
    """Raised when a screenshot cannot be taken or persisted."""


class ReportError(HarnessError):
    """Raised when the outcome report is misused or cannot be written."""

    def __init__(self, message: str, *, report: object | None = None) -> None:
        super().__init__(message)
        self.report = report


class LifecycleError(HarnessError):
    """Raised when suite or test lifecycle steps are called out of order."""


class WaitTimeoutError(HarnessError, TimeoutError):
    """Raised when a polled condition does not hold before its deadline."""


class TestSkipped(Exception):  # noqa: N818
    """Raised from a test body to mark the test as skipped."""

    __test__ = False
