# secondhand_search/scrapers/base_scraper.py

"""Abstract base class for all marketplace scrapers."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings
from secondhand_search.errors import BrowserLaunchError
from secondhand_search.models.product import Product
from secondhand_search.scrapers.extraction import (
    BaseExtractor,
    load_selectors,
)
from secondhand_search.services.browser_manager import (
    BrowserManager,
    get_browser_manager,
)
from secondhand_search.storage.query_cache import CacheStore


@dataclass(frozen=True)
class FetchStrategy:
    """One entry of a scraper's ordered fallback chain."""

    name: str
    # Called with (query, limit, deadline); deadline is time.monotonic().
    run: Callable[[str, int, float], Awaitable[list[Product]]]
    timeout: float


class BaseScraper(ABC):
    """Best-effort scraper for one marketplace.

    ``search_products`` never raises: every internal failure (network,
    markup, browser launch, timeout) is logged and turned into an empty
    list, so one broken source cannot fail an aggregated search.
    """

    base_url: str = ""
    extractor_cls: type[BaseExtractor]
    min_content_length: int = Settings.MIN_CONTENT_LENGTH
    # Block keywords are only scanned on pages shorter than this;
    # None scans every page.
    block_scan_max_length: int | None = 30000
    block_markers: list[str] = Settings.BLOCK_MARKERS
    block_markers_case_sensitive: bool = False
    # Logged when present but never reject the page.
    soft_block_markers: list[str] = []

    def __init__(
        self,
        source_name: str,
        cache: CacheStore | None = None,
        browser: BrowserManager | None = None,
        profile: RuntimeProfile | None = None,
    ) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"secondhand_search.{source_name}"
        )
        self.settings = Settings()
        self._browser = browser
        self.profile: RuntimeProfile = (
            profile
            or (browser.profile if browser is not None else None)
            or resolve_profile()
        )
        self.cache = cache or CacheStore(
            source_name,
            cache_dir=(
                self.settings.CACHE_DIR
                if self.settings.CACHE_PERSIST
                else None
            ),
        )
        self.selectors: dict[str, list[str]] = self._load_selectors()
        self.extractor = self.build_extractor()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self.fetch_count = 0
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: float = self.profile.fast_fetch_timeout

    def _load_selectors(self) -> dict[str, list[str]]:
        """Load CSS selectors for this source from selectors.json."""
        return load_selectors(self.source_name)

    def build_extractor(self) -> BaseExtractor:
        """Instantiate this source's extractor with its selectors."""
        return self.extractor_cls(self.selectors)

    @property
    def browser(self) -> BrowserManager:
        """Shared browser manager (process default unless injected)."""
        if self._browser is None:
            self._browser = get_browser_manager()
        return self._browser

    # ── Public contract ──────────────────────────────────

    async def search_products(
        self,
        query: str,
        limit: int = Settings.DEFAULT_LIMIT,
        force_refresh: bool = False,
        deadline: float | None = None,
    ) -> list[Product]:
        """Search this source; always returns a (possibly empty) list.

        The result holds at most ``limit`` products in the order they
        appear on the source page.  ``deadline`` (a ``time.monotonic()``
        value) bounds the whole fallback chain; the time left is split
        so every strategy gets a turn before it passes.
        """
        try:
            return await self._search(
                query, limit, force_refresh, deadline
            )
        except Exception as exc:
            self.logger.error(
                "[%s] Search failed: %s",
                self.source_name,
                exc,
                exc_info=True,
            )
            return []

    async def _search(
        self,
        query: str,
        limit: int,
        force_refresh: bool,
        deadline: float | None = None,
    ) -> list[Product]:
        if limit <= 0 or not query.strip():
            return []

        key = self.cache.generate_key(
            self.source_name,
            "search",
            {"query": query, "limit": limit},
        )
        if not force_refresh:
            cached = self._cache_get(key)
            if cached is not None:
                return cached[:limit]

        products = await self._run_strategies(query, limit, deadline)
        if products:
            self._cache_set(key, products)
        return products

    def strategies(self) -> list[FetchStrategy]:
        """Ordered fallback chain: plain HTTP first, then the browser."""
        browser_budget = (
            self.profile.navigation_timeout
            + self.profile.selector_timeout
            + self.profile.fallback_selector_timeout
            + self.settings.SCROLL_STEPS
            * self.settings.SCROLL_DELAY_MS
            / 1000
        )
        return [
            FetchStrategy(
                "fast_fetch",
                self._fast_fetch,
                self.profile.fast_fetch_timeout * 2,
            ),
            FetchStrategy(
                "browser",
                self._browser_fetch,
                browser_budget,
            ),
        ]

    @staticmethod
    def _share_of(
        timeout: float,
        deadline: float | None,
        strategies_left: int,
    ) -> float:
        """Cap a strategy's timeout to an even share of the time left.

        Time a strategy does not use rolls over to the ones after it.
        """
        if deadline is None:
            return timeout
        remaining = deadline - time.monotonic()
        return min(timeout, remaining / strategies_left)

    async def _run_strategies(
        self,
        query: str,
        limit: int,
        deadline: float | None = None,
    ) -> list[Product]:
        """Try each strategy in order until one yields products."""
        strategies = self.strategies()
        for index, strategy in enumerate(strategies):
            timeout = self._share_of(
                strategy.timeout, deadline, len(strategies) - index
            )
            if timeout <= 0:
                self.logger.warning(
                    "[%s] No time left for %s",
                    self.source_name,
                    strategy.name,
                )
                break
            start = time.monotonic()
            try:
                products = await asyncio.wait_for(
                    strategy.run(query, limit, start + timeout),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    "[%s] %s timed out after %.1fs",
                    self.source_name,
                    strategy.name,
                    timeout,
                )
                continue
            except BrowserLaunchError as exc:
                self.logger.error(
                    "[%s] %s unavailable: %s",
                    self.source_name,
                    strategy.name,
                    exc,
                )
                continue
            except Exception as exc:
                self.logger.warning(
                    "[%s] %s failed: %s",
                    self.source_name,
                    strategy.name,
                    exc,
                    exc_info=True,
                )
                continue

            usable = self._usable(products, limit)
            elapsed_ms = (time.monotonic() - start) * 1000
            if usable:
                self.logger.info(
                    "[%s] %s produced %d products (%.0fms)",
                    self.source_name,
                    strategy.name,
                    len(usable),
                    elapsed_ms,
                )
                return usable
            self.logger.info(
                "[%s] %s produced nothing (%.0fms), falling back",
                self.source_name,
                strategy.name,
                elapsed_ms,
            )
        return []

    @staticmethod
    def _usable(products: list[Product], limit: int) -> list[Product]:
        """Keep products with a title and URL, bounded to ``limit``."""
        return [
            p
            for p in products
            if p.title.strip() and p.product_url.strip()
        ][:limit]

    # ── Cache access (never fatal) ───────────────────────

    def _cache_get(self, key: str) -> list[Product] | None:
        try:
            return self.cache.get(key)
        except Exception as exc:
            self.logger.warning(
                "[%s] Cache read failed, treating as miss: %s",
                self.source_name,
                exc,
            )
            return None

    def _cache_set(self, key: str, products: list[Product]) -> None:
        try:
            self.cache.set(key, products)
        except Exception as exc:
            self.logger.warning(
                "[%s] Cache write failed: %s",
                self.source_name,
                exc,
            )

    # ── Fast-fetch strategy ──────────────────────────────

    @abstractmethod
    def search_url(self, query: str) -> str:
        """Return the source's search URL for ``query``."""
        ...

    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        return self.base_url + "/"

    async def _fast_fetch(
        self, query: str, limit: int, deadline: float | None = None,
    ) -> list[Product]:
        """Plain HTTP GET of the search page, parsed without a browser."""
        html = await asyncio.to_thread(
            self._fetch_html, self.search_url(query), None, deadline
        )
        if html is None:
            return []
        return self.extractor.extract(html, limit)

    def _time_left(self, deadline: float | None) -> float:
        """Per-request timeout, shortened so it ends by ``deadline``."""
        if deadline is None:
            return self._request_timeout
        return min(self._request_timeout, deadline - time.monotonic())

    def _fetch_html(
        self,
        url: str,
        extra_headers: dict[str, str] | None = None,
        deadline: float | None = None,
    ) -> str | None:
        """Fetch a page, falling back to cloudscraper on failure.

        Both attempts finish by ``deadline``; cloudscraper is skipped
        when too little time is left for it.
        """
        if self._check_circuit():
            return None
        self.fetch_count += 1
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
            **(extra_headers or {}),
        }

        # Primary: curl_cffi (browser-impersonating TLS)
        resp = self._fetch_get(url, headers, deadline)
        if resp is not None:
            return str(resp.text)

        timeout = self._time_left(deadline)
        if timeout < self.settings.MIN_REQUEST_TIMEOUT:
            self.logger.info(
                "[%s] No time left for cloudscraper (%.1fs)",
                self.source_name,
                timeout,
            )
            return None

        # Fallback: cloudscraper (JS challenge solver)
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback_resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=timeout,
            )
            if (
                fallback_resp.status_code == 200
                and self._validate_text(str(fallback_resp.text))
            ):
                return str(fallback_resp.text)
        except Exception as e:
            self.logger.warning(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                e,
            )
        return None

    def _validate_text(self, text: str) -> bool:
        """Reject block pages, challenge pages and truncated bodies."""
        if text.lstrip().startswith(("{", "[")):
            return True
        if len(text) < self.min_content_length:
            self.logger.warning(
                "[%s] Response too short (%d bytes)",
                self.source_name,
                len(text),
            )
            return False
        lower = text.lower()

        for marker in self.settings.CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected "
                    "(marker: '%s')",
                    self.source_name,
                    marker,
                )
                return False

        limit = self.block_scan_max_length
        if limit is not None and len(text) >= limit:
            return True
        haystack = text if self.block_markers_case_sensitive else lower
        for keyword in self.block_markers:
            if keyword in haystack:
                self.logger.warning(
                    "[%s] Block marker '%s' detected",
                    self.source_name,
                    keyword,
                )
                return False
        for keyword in self.soft_block_markers:
            if keyword in haystack:
                self.logger.info(
                    "[%s] Possible block marker '%s', extracting anyway",
                    self.source_name,
                    keyword,
                )
                break
        return True

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """Check a 200 response for block/CAPTCHA indicators."""
        return self._validate_text(str(resp.text))

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_name,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        threshold = self.settings.CIRCUIT_BREAKER_THRESHOLD
        if self._consecutive_failures >= threshold:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.source_name,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.source_name,
            self._current_delay,
        )

    def _backoff(self, delay: float, deadline: float | None) -> None:
        """Sleep ``delay`` seconds, but never past ``deadline``."""
        if deadline is not None:
            delay = min(delay, max(0.0, deadline - time.monotonic()))
        time.sleep(delay)

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        deadline: float | None = None,
    ) -> curl_requests.Response | None:
        """GET with retries, adaptive delay, and circuit breaker."""
        if self._check_circuit():
            return None
        for attempt in range(self.settings.FAST_FETCH_RETRIES):
            timeout = self._time_left(deadline)
            if timeout <= 0:
                break
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    timeout=timeout,
                )
                if resp.status_code == 200:
                    if not self._validate_response(resp):
                        self._escalate_delay()
                        continue
                    self._record_success()
                    return resp
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    self.source_name,
                    resp.status_code,
                    attempt + 1,
                )
                if resp.status_code in (429, 403):
                    self._escalate_delay()
                    self._backoff(self._current_delay, deadline)
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                )
                self._backoff(
                    self._current_delay * (attempt + 1), deadline
                )
        self._record_failure()
        return None

    # ── Browser strategy ─────────────────────────────────

    def browser_url(self, query: str) -> str:
        """URL navigated by the browser strategy."""
        return self.search_url(query)

    async def _browser_fetch(
        self, query: str, limit: int, deadline: float | None = None,
    ) -> list[Product]:
        """Render the search page in the shared browser and extract."""
        url = self.browser_url(query)
        self.fetch_count += 1
        navigation = self.profile.navigation_timeout
        if deadline is not None:
            navigation = min(navigation, deadline - time.monotonic())
        async with self.browser.page() as page:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=max(navigation * 1000, 1.0),
            )
            if not await self._wait_for_listings(page):
                self.logger.warning(
                    "[%s] Listings never rendered at %s",
                    self.source_name,
                    url,
                )
                return []
            await self._scroll(page)
            html = await page.content()
        self.logger.debug(
            "[%s] Rendered HTML length: %d",
            self.source_name,
            len(html),
        )
        return self.extractor.extract(html, limit)

    async def _wait_for_listings(self, page: Page) -> bool:
        """Wait for the primary marker, then the looser fallbacks."""
        waits = self.selectors.get("wait", [])
        for index, selector in enumerate(waits):
            timeout = (
                self.profile.selector_timeout
                if index == 0
                else self.profile.fallback_selector_timeout
            )
            try:
                await page.wait_for_selector(
                    selector, timeout=timeout * 1000
                )
                return True
            except PlaywrightTimeoutError:
                self.logger.info(
                    "[%s] Wait selector '%s' timed out",
                    self.source_name,
                    selector,
                )
        return False

    async def _scroll(self, page: Page) -> None:
        """A few bounded scroll steps so lazy cards materialise."""
        for _ in range(self.settings.SCROLL_STEPS):
            await page.evaluate(
                "window.scrollBy(0, document.body.scrollHeight)"
            )
            await page.wait_for_timeout(self.settings.SCROLL_DELAY_MS)
