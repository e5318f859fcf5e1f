# secondhand_search/services/browser_manager.py

"""Shared headless Chromium session for browser-driven extraction.

One browser process is launched lazily and shared by every request.
Each request gets its own short-lived page (in its own context) which
is always closed again.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Route,
    async_playwright,
)

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings
from secondhand_search.errors import BrowserLaunchError

logger = logging.getLogger("secondhand_search.browser")

Launcher = Callable[[str | None], Awaitable[Any]]


class BrowserState(str, Enum):
    """Lifecycle of the shared browser session."""

    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    CLOSED = "closed"


def find_local_executable(
    candidates: list[str] | None = None,
) -> str | None:
    """Return the first existing Chrome/Chromium path, if any."""
    for path in candidates or Settings.LOCAL_CHROME_PATHS:
        if os.path.exists(path):
            return path
    return None


def should_block(resource_type: str, url: str) -> bool:
    """True for requests that only slow down listing extraction."""
    if resource_type in Settings.BLOCKED_RESOURCE_TYPES:
        return True
    lowered = url.lower()
    return any(
        token in lowered for token in Settings.BLOCKED_URL_TOKENS
    )


class BrowserManager:
    """Owns the single shared browser and hands out per-request pages.

    ``acquire()`` is the one critical section in the system: while a
    launch is in flight, other callers poll the ``LAUNCHING`` state
    instead of starting a second process.  The flag is checked and set
    without an ``await`` in between, so on a single event loop the check
    cannot race.

    Args:
        profile: Resolved runtime profile (timeouts, executable override).
        launcher: Optional coroutine ``launcher(executable_path)`` that
            returns a connected browser.  Tests inject a stub here.
    """

    def __init__(
        self,
        profile: RuntimeProfile | None = None,
        launcher: Launcher | None = None,
    ) -> None:
        self.profile = profile or resolve_profile()
        self._launcher: Launcher = launcher or self._launch_chromium
        self._playwright: Playwright | None = None
        self._browser: Any = None
        self.state = BrowserState.UNINITIALIZED
        self.launch_count = 0
        self.open_pages = 0

    # ── Session lifecycle ────────────────────────────────

    def _is_live(self) -> bool:
        if self._browser is None:
            return False
        is_connected = getattr(self._browser, "is_connected", None)
        if callable(is_connected):
            return bool(is_connected())
        return True

    async def acquire(self) -> Any:
        """Return the shared browser, launching it at most once."""
        if self.state == BrowserState.READY and self._is_live():
            return self._browser

        if self.state == BrowserState.LAUNCHING:
            await self._wait_for_launch()
            if self.state == BrowserState.READY and self._is_live():
                return self._browser

        self.state = BrowserState.LAUNCHING
        await self._discard_stale()
        executable = self.resolve_executable()
        try:
            logger.info(
                "Launching headless browser (serverless=%s, "
                "executable=%s)",
                self.profile.serverless,
                executable or "playwright-managed",
            )
            self.launch_count += 1
            browser = await asyncio.wait_for(
                self._launcher(executable),
                timeout=self.profile.launch_timeout,
            )
            self._browser = browser
            self.state = BrowserState.READY
            logger.info("Browser launched successfully")
            return browser
        except Exception as exc:
            logger.error(
                "Failed to launch browser: %s", exc, exc_info=True
            )
            raise BrowserLaunchError(
                "Browser failed to start", details=str(exc)
            ) from exc
        finally:
            if self.state == BrowserState.LAUNCHING:
                self.state = BrowserState.UNINITIALIZED

    async def _discard_stale(self) -> None:
        """Close a disconnected browser handle before relaunching."""
        stale, self._browser = self._browser, None
        if stale is None:
            return
        logger.warning("Browser disconnected, relaunching")
        try:
            await stale.close()
        except Exception as exc:
            logger.warning("Error closing stale browser: %s", exc)

    async def _wait_for_launch(self) -> None:
        """Poll until an in-flight launch settles or the budget ends."""
        interval = Settings.LAUNCH_POLL_INTERVAL
        waited = 0.0
        while (
            self.state == BrowserState.LAUNCHING
            and waited < self.profile.launch_timeout
        ):
            await asyncio.sleep(interval)
            waited += interval
        if self.state == BrowserState.LAUNCHING:
            raise BrowserLaunchError(
                "Timed out waiting for browser launch"
            )

    def resolve_executable(self) -> str | None:
        """Pick the Chromium binary for this environment.

        ``None`` means the Playwright-managed Chromium build.
        """
        if self.profile.executable_path:
            return self.profile.executable_path
        if self.profile.serverless:
            return None
        local = find_local_executable()
        if local is None:
            logger.info(
                "Local Chrome not found, using managed Chromium"
            )
        return local

    async def _launch_chromium(
        self, executable: str | None,
    ) -> Browser:
        """Start Chromium through Playwright."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        launch_kwargs: dict[str, Any] = {
            "headless": True,
            "args": list(Settings.BROWSER_ARGS),
            "timeout": self.profile.launch_timeout * 1000,
        }
        if executable:
            launch_kwargs["executable_path"] = executable
        return await self._playwright.chromium.launch(**launch_kwargs)

    async def shutdown(self) -> None:
        """Close the shared browser; only called on explicit shutdown."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        self.state = BrowserState.CLOSED
        if browser is not None:
            try:
                await browser.close()
                logger.info("Browser closed")
            except Exception as exc:
                logger.error(
                    "Error closing browser: %s", exc, exc_info=True
                )
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.error(
                    "Error stopping playwright: %s",
                    exc,
                    exc_info=True,
                )

    # ── Pages ────────────────────────────────────────────

    @staticmethod
    async def _route_filter(route: Route) -> None:
        """Abort heavy or tracking requests, continue the rest."""
        request = route.request
        if should_block(request.resource_type, request.url):
            await route.abort()
        else:
            await route.continue_()

    async def create_page(self) -> Page:
        """Open a fresh, pre-configured tab in its own context."""
        browser = await self.acquire()
        context: BrowserContext = await browser.new_context(
            user_agent=Settings.BROWSER_USER_AGENT,
            viewport=dict(Settings.BROWSER_VIEWPORT),
            locale=Settings.BROWSER_LOCALE,
        )
        try:
            page: Page = await context.new_page()
            page.set_default_timeout(
                self.profile.selector_timeout * 1000
            )
            page.set_default_navigation_timeout(
                self.profile.navigation_timeout * 1000
            )
            await page.route("**/*", self._route_filter)
        except BaseException:
            await context.close()
            raise
        self.open_pages += 1
        return page

    async def close_page(self, page: Page) -> None:
        """Close a page and the context that owns it."""
        self.open_pages = max(0, self.open_pages - 1)
        try:
            await page.close()
        except Exception as exc:
            logger.warning("Error closing page: %s", exc)
        try:
            await page.context.close()
        except Exception as exc:
            logger.warning("Error closing page context: %s", exc)

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Yield a page for one navigation+extraction cycle.

        The page is closed on every exit path, including cancellation
        by the orchestrator's deadline.
        """
        page = await self.create_page()
        try:
            yield page
        finally:
            await self.close_page(page)


_default_manager: BrowserManager | None = None


def get_browser_manager() -> BrowserManager:
    """Return the process-wide default manager."""
    global _default_manager
    if _default_manager is None:
        _default_manager = BrowserManager()
    return _default_manager
