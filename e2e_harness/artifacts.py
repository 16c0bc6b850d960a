"""Failure screenshots for browser sessions."""

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from playwright.async_api import Error as PlaywrightError

from e2e_harness.errors import CaptureError
from e2e_harness.models.outcome import Artifact
from e2e_harness.provisioner import BrowserSession

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_label(label: str) -> str:
    """Make a test identifier safe to use in a file name."""
    return UNSAFE_LABEL_CHARS.sub("_", label).strip("_") or "test"


@dataclass(frozen=True, kw_only=True)
class ArtifactCapture:
    """Persists screenshots of live sessions into the artifact directory."""

    artifact_dir: Path
    clock: Callable[[], datetime] = datetime.now

    async def capture(self, session: BrowserSession, label: str) -> Artifact:
        """Take a screenshot of the session's page and write it to disk.

        Args:
            session: Live session to capture
            label: Test identifier used as the file name prefix

        Returns:
            The written artifact

        Raises:
            CaptureError: If the session cannot produce a screenshot or the
                file cannot be written

        """
        if session.released:
            raise CaptureError(f"Cannot capture {label}: session already released")

        try:
            image = await session.page.screenshot(type="png")
        except PlaywrightError as e:
            raise CaptureError(f"Screenshot failed for {label}: {e}") from e

        stem = f"{sanitize_label(label)}_{self.clock().strftime(TIMESTAMP_FORMAT)}"
        try:
            path = await asyncio.to_thread(self._write_unique, stem, image)
        except OSError as e:
            raise CaptureError(f"Cannot write screenshot for {label}: {e}") from e

        log.info("Saved screenshot for %s to %s", label, path)
        return Artifact(path=path, test_id=label)

    def _write_unique(self, stem: str, image: bytes) -> Path:
        """Write image to a new file, suffixing the name on collision."""
        attempt = 0
        while True:
            suffix = f"_{attempt}" if attempt else ""
            path = self.artifact_dir / f"{stem}{suffix}.png"
            try:
                with open(path, "xb") as f:
                    f.write(image)
            except FileExistsError:
                attempt += 1
                continue
            return path
