"""Models for test execution results."""

from dataclasses import dataclass
from typing import Literal, TypeAlias

TestStatus: TypeAlias = Literal["pass", "fail", "skip"]


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Result of a test body as observed by the test runner.

    Contains only execution outcome - the lifecycle manager adds the test
    identity, timestamps and artifacts when it builds the recorded outcome.
    """

    __test__ = False

    status: TestStatus
    message: str | None = None

    @property
    def failed(self) -> bool:
        """Whether the test body failed."""
        return self.status == "fail"
