"""Browser session provisioning: local launch or remote attach."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from e2e_harness.config import SessionConfig, ViewportSize
from e2e_harness.discovery import Endpoint, RemoteBrowserClient
from e2e_harness.errors import DiscoveryError, ProvisionError

log = logging.getLogger(__name__)

SessionMode: TypeAlias = Literal["local", "remote-attached"]
DriverFactory: TypeAlias = Callable[[], Awaitable[Playwright]]
DiscoveryFactory: TypeAlias = Callable[
    [SessionConfig], AbstractAsyncContextManager[RemoteBrowserClient]
]

# Viewport the externally managed browser is expected to render at
REMOTE_VIEWPORT = ViewportSize(width=1550, height=1122)

# Switches Chromium adds by default that reveal automation to the page
SUPPRESSED_DEFAULT_ARGS: Sequence[str] = ("--enable-automation",)


def headless_chromium_args(viewport: ViewportSize) -> Sequence[str]:
    """Fixed flag set for headless Chromium-family browsers.

    Tests rely on these for consistent rendering, so they are part of the
    harness contract.
    """
    return (
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        f"--window-size={viewport.width},{viewport.height}",
        "--disable-blink-features=AutomationControlled",
    )


@dataclass(frozen=True, kw_only=True)
class LocalLauncher:
    """How to launch one supported browser kind."""

    engine: Literal["chromium", "firefox"]
    channel: str | None = None

    def launch_options(self, config: SessionConfig) -> dict[str, Any]:
        """Build keyword arguments for ``BrowserType.launch``."""
        options: dict[str, Any] = {
            "headless": config.headless,
            "timeout": config.launch_timeout * 1000,
        }
        if self.channel is not None:
            options["channel"] = self.channel
        if config.headless and self.engine == "chromium":
            options["args"] = list(headless_chromium_args(config.viewport))
            options["ignore_default_args"] = list(SUPPRESSED_DEFAULT_ARGS)
        return options


LOCAL_LAUNCHERS: Mapping[str, LocalLauncher] = {
    "chromium": LocalLauncher(engine="chromium"),
    "firefox": LocalLauncher(engine="firefox"),
    "edge": LocalLauncher(engine="chromium", channel="msedge"),
}


@dataclass(kw_only=True, eq=False)
class BrowserSession:
    """Live browser connection used by exactly one test."""

    browser_kind: str
    mode: SessionMode
    browser: Browser = field(repr=False)
    context: BrowserContext = field(repr=False)
    page: Page = field(repr=False)
    driver: Playwright = field(repr=False)
    released: bool = field(default=False, init=False)

    def configure_timeouts(self, action_timeout: float, navigation_timeout: float) -> None:
        """Apply default timeouts (in seconds) to every page of the session."""
        self.context.set_default_timeout(action_timeout * 1000)
        self.context.set_default_navigation_timeout(navigation_timeout * 1000)

    async def release(self) -> None:
        """Release the session.

        Local sessions close their browser. Remote-attached sessions only
        disconnect: the browser process belongs to the discovery service.
        """
        if self.released:
            log.debug("Session %r already released", self)
            return
        self.released = True

        try:
            if self.mode == "local":
                await self.browser.close()
        finally:
            await self.driver.stop()
        log.info("Released %s session (%s)", self.mode, self.browser_kind)


async def start_playwright() -> Playwright:
    """Start the Playwright driver."""
    return await async_playwright().start()


@dataclass(frozen=True, kw_only=True)
class DriverProvisioner:
    """Produces ready-to-use browser sessions.

    Remote attach never falls back to a local launch: asking for it means the
    caller manages that browser's lifecycle somewhere else.
    """

    driver_factory: DriverFactory = start_playwright
    discovery_factory: DiscoveryFactory = RemoteBrowserClient.from_config

    async def acquire(self, config: SessionConfig) -> BrowserSession:
        """Acquire a new browser session.

        Args:
            config: Session configuration selecting browser and mode

        Returns:
            A session tagged ``local`` or ``remote-attached``

        Raises:
            ProvisionError: If the browser is unsupported, cannot be started,
                does not start in time, or cannot be discovered

        """
        launcher = LOCAL_LAUNCHERS.get(config.browser)
        if launcher is None:
            raise ProvisionError(
                "unsupported-browser",
                f"'{config.browser}' is not one of {sorted(LOCAL_LAUNCHERS)}",
            )

        if config.remote_attach:
            return await self._attach(config)
        return await self._launch(launcher, config)

    async def _launch(
        self, launcher: LocalLauncher, config: SessionConfig
    ) -> BrowserSession:
        log.info(
            "Launching local browser: browser=%s, headless=%s",
            config.browser,
            config.headless,
        )
        try:
            async with asyncio.timeout(config.launch_timeout):
                return await self._start_local(launcher, config)
        except (TimeoutError, PlaywrightTimeoutError) as e:
            raise ProvisionError(
                "timeout",
                f"{config.browser} did not start within {config.launch_timeout} seconds",
            ) from e
        except PlaywrightError as e:
            raise ProvisionError("driver-unavailable", f"{config.browser}: {e}") from e

    async def _start_local(
        self, launcher: LocalLauncher, config: SessionConfig
    ) -> BrowserSession:
        driver = await self._start_driver()
        browser: Browser | None = None
        try:
            engine = getattr(driver, launcher.engine)
            browser = await engine.launch(**launcher.launch_options(config))
            context = await browser.new_context(
                viewport={
                    "width": config.viewport.width,
                    "height": config.viewport.height,
                }
            )
            page = await context.new_page()
        except BaseException:
            await _discard(driver, browser)
            raise

        return BrowserSession(
            browser_kind=config.browser,
            mode="local",
            browser=browser,
            context=context,
            page=page,
            driver=driver,
        )

    async def _attach(self, config: SessionConfig) -> BrowserSession:
        try:
            async with self.discovery_factory(config) as client:
                endpoint = await client.discover(config.discovery_timeout)
        except DiscoveryError as e:
            raise ProvisionError("discovery", str(e)) from e

        log.info("Attaching to remote browser at %s", endpoint)
        try:
            async with asyncio.timeout(config.launch_timeout):
                return await self._connect_remote(endpoint)
        except (TimeoutError, PlaywrightTimeoutError) as e:
            raise ProvisionError(
                "timeout",
                f"could not attach to {endpoint} within {config.launch_timeout} seconds",
            ) from e
        except PlaywrightError as e:
            raise ProvisionError("driver-unavailable", f"{endpoint}: {e}") from e

    async def _connect_remote(self, endpoint: Endpoint) -> BrowserSession:
        driver = await self._start_driver()
        try:
            browser = await driver.chromium.connect_over_cdp(endpoint.cdp_url)
            if browser.contexts:
                context = browser.contexts[0]
            else:
                context = await browser.new_context()
            page = context.pages[0] if context.pages else await context.new_page()
            await page.set_viewport_size(
                {"width": REMOTE_VIEWPORT.width, "height": REMOTE_VIEWPORT.height}
            )
        except BaseException:
            # Never close a remote browser, only drop the connection
            await _discard(driver, None)
            raise

        return BrowserSession(
            browser_kind="chromium",
            mode="remote-attached",
            browser=browser,
            context=context,
            page=page,
            driver=driver,
        )

    async def _start_driver(self) -> Playwright:
        try:
            return await self.driver_factory()
        except (PlaywrightError, OSError) as e:
            raise ProvisionError(
                "driver-unavailable", f"Playwright driver failed to start: {e}"
            ) from e


async def _discard(driver: Playwright, browser: Browser | None) -> None:
    """Tear down a partially started session."""
    try:
        if browser is not None:
            await browser.close()
        await driver.stop()
    except PlaywrightError as e:
        log.warning("Failed to clean up partially started browser: %s", e)
