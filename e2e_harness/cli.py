"""CLI entry point for the browser session harness."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from e2e_harness.config import load_session_config
from e2e_harness.discovery import RemoteBrowserClient
from e2e_harness.errors import HarnessError, ReportError
from e2e_harness.lifecycle import start_suite
from e2e_harness.provisioner import BrowserSession
from e2e_harness.waiting import wait_until


async def discover(config_path: Path | None) -> int:
    """Ask the discovery service for a browser and print its endpoint."""
    config = load_session_config(config_path)

    async with RemoteBrowserClient.from_config(config) as client:
        endpoint = await client.discover(config.discovery_timeout)

    print(
        json.dumps(
            {"host": endpoint.host, "port": endpoint.port, "cdp_url": endpoint.cdp_url}
        )
    )
    return 0


async def smoke(config_path: Path | None) -> int:
    """Open the application under test in one managed session."""
    manager = start_suite(config_path)
    base_url = manager.config.base_url

    async def open_base_url(session: BrowserSession) -> None:
        await session.page.goto(base_url)
        await wait_until(
            lambda: session.page.evaluate("document.readyState === 'complete'"),
            timeout=manager.config.page_load_timeout,
            message=f"{base_url} to finish loading",
        )

    await manager.execute("smoke", open_base_url)

    try:
        report = manager.suite_end()
    except ReportError as e:
        if e.report is None:
            raise
        report = e.report

    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.failed else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Browser session harness")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the harness YAML configuration file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("discover", help="Request a browser from the discovery service")
    subparsers.add_parser("smoke", help="Open base.url in a managed browser session")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    log = logging.getLogger("e2e_harness")

    command = discover if args.command == "discover" else smoke
    try:
        exit_code = asyncio.run(command(args.config))
    except HarnessError as e:
        log.error("%s", e)
        exit_code = 2
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
