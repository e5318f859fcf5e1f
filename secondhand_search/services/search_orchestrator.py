# secondhand_search/services/search_orchestrator.py

"""Orchestrates multi-source marketplace searches."""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings
from secondhand_search.errors import InvalidQueryError, InvalidSourceError
from secondhand_search.filters.deduplicator import ProductDeduplicator
from secondhand_search.filters.product_validator import ProductValidator
from secondhand_search.models.product import Product
from secondhand_search.scrapers.base_scraper import BaseScraper
from secondhand_search.services.browser_manager import (
    BrowserManager,
    get_browser_manager,
)

logger = logging.getLogger("secondhand_search.orchestrator")


@dataclass
class SearchResult:
    """Container for a completed search across multiple sources."""

    query: str
    sources: list[str] = field(
        default_factory=lambda: list[str]()
    )
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    execution_time: int = 0  # milliseconds
    warnings: list[str] = field(
        default_factory=lambda: list[str]()
    )
    source_counts: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    source_timings: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    invalid_count: int = 0
    deduplicated_count: int = 0

    @property
    def count(self) -> int:
        return len(self.products)


@dataclass
class SourceOutcome:
    """What one source contributed to a search."""

    source: str
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    elapsed_ms: int = 0
    warning: str | None = None


def _load_scraper_class(dotted_path: str) -> type[Any]:
    """Dynamically import a scraper class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def sort_by_price(products: list[Product]) -> list[Product]:
    """Stable ascending sort; unknown prices (0) come first."""
    return sorted(products, key=lambda p: p.price)


class SearchOrchestrator:
    """Runs the selected source scrapers and merges their results.

    One scraper instance is kept per source so each source's result
    cache survives across searches.  Every source runs under its own
    budget, and the whole dispatch under ``total_timeout``; a source
    that fails or overruns contributes nothing plus a warning.
    """

    def __init__(
        self,
        browser: BrowserManager | None = None,
        profile: RuntimeProfile | None = None,
        scrapers: dict[str, BaseScraper] | None = None,
    ) -> None:
        self.settings = Settings()
        self.profile: RuntimeProfile = (
            profile
            or (browser.profile if browser is not None else None)
            or resolve_profile()
        )
        self.browser = browser or get_browser_manager()
        self._scrapers: dict[str, BaseScraper] = dict(scrapers or {})
        self._registry: dict[str, dict[str, str]] = {
            src["id"]: src for src in self.settings.AVAILABLE_SOURCES
        }

    # ── Scraper registry ─────────────────────────────────

    @property
    def source_ids(self) -> list[str]:
        """Every source this orchestrator can search."""
        ids = list(self._registry)
        ids.extend(s for s in self._scrapers if s not in self._registry)
        return ids

    def get_scraper(self, source_id: str) -> BaseScraper:
        """Return the (cached) scraper instance for ``source_id``."""
        scraper = self._scrapers.get(source_id)
        if scraper is None:
            scraper_cls = _load_scraper_class(
                self._registry[source_id]["scraper"]
            )
            scraper = scraper_cls(
                browser=self.browser, profile=self.profile
            )
            self._scrapers[source_id] = scraper
        return scraper

    # ── Input validation ─────────────────────────────────

    def validate_request(
        self,
        query: str,
        sources: list[str] | None,
        limit: int,
    ) -> tuple[str, list[str]]:
        """Normalise inputs; raise InvalidQueryError on bad requests.

        Returns the trimmed query and the selected sources ordered by
        priority (fastest first).
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("Search query is required")
        if (
            isinstance(limit, bool)
            or not isinstance(limit, int)
            or not 1 <= limit <= self.settings.MAX_LIMIT
        ):
            raise InvalidQueryError(
                "Invalid limit",
                details=f"limit must be 1..{self.settings.MAX_LIMIT}",
            )

        selected = (
            list(self.settings.DEFAULT_SOURCES)
            if sources is None
            else list(dict.fromkeys(sources))
        )
        if not selected:
            raise InvalidSourceError("At least one source is required")
        unknown = [s for s in selected if s not in self.source_ids]
        if unknown:
            raise InvalidSourceError(
                "Unknown source",
                details=", ".join(str(s) for s in unknown),
            )

        priority = self.settings.SOURCE_PRIORITY
        selected.sort(key=lambda s: priority.get(s, len(priority) + 1))
        return query.strip(), selected

    # ── Dispatch ─────────────────────────────────────────

    async def _run_source(
        self,
        source_id: str,
        query: str,
        limit: int,
        force_refresh: bool,
        semaphore: asyncio.Semaphore,
        total_deadline: float | None = None,
    ) -> SourceOutcome:
        """Run one scraper under the parallelism cap and its own budget.

        The scraper is handed a deadline and splits it across its
        fallback chain itself; ``wait_for`` is only a backstop.
        """
        async with semaphore:
            start = time.monotonic()
            outcome = SourceOutcome(source=source_id)
            budget = self.profile.timeout_for(source_id)
            deadline = start + budget
            if total_deadline is not None:
                deadline = min(deadline, total_deadline)
            try:
                scraper = self.get_scraper(source_id)
                outcome.products = await asyncio.wait_for(
                    scraper.search_products(
                        query, limit, force_refresh, deadline=deadline
                    ),
                    timeout=deadline - start + self.settings.SOURCE_GRACE,
                )
            except asyncio.TimeoutError:
                outcome.warning = (
                    f"{source_id}: timed out after {budget:.1f}s"
                )
                logger.warning("[%s] Source timed out", source_id)
            except Exception as exc:
                outcome.warning = f"{source_id}: {exc}"
                logger.error(
                    "[%s] Source failed: %s",
                    source_id,
                    exc,
                    exc_info=True,
                )
            outcome.elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "[%s] %d products in %dms",
                source_id,
                len(outcome.products),
                outcome.elapsed_ms,
            )
            return outcome

    async def _run_scrapers(
        self,
        query: str,
        sources: list[str],
        limit: int,
        force_refresh: bool,
    ) -> list[SourceOutcome]:
        """Dispatch scrapers concurrently, bounded by ``total_timeout``.

        Outcomes are returned in the order of ``sources``.
        """
        semaphore = asyncio.Semaphore(self.profile.parallel_limit)
        total_deadline = time.monotonic() + self.profile.total_timeout
        tasks = {
            source_id: asyncio.create_task(
                self._run_source(
                    source_id,
                    query,
                    limit,
                    force_refresh,
                    semaphore,
                    total_deadline,
                )
            )
            for source_id in sources
        }
        _, pending = await asyncio.wait(
            tasks.values(), timeout=self.profile.total_timeout
        )
        for task in pending:
            task.cancel()
        if pending:
            # Let cancelled scrapers run their cleanup (page close).
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: list[SourceOutcome] = []
        for source_id, task in tasks.items():
            if task in pending or task.cancelled():
                logger.warning(
                    "[%s] Cancelled at total deadline", source_id
                )
                outcomes.append(
                    SourceOutcome(
                        source=source_id,
                        elapsed_ms=int(
                            self.profile.total_timeout * 1000
                        ),
                        warning=(
                            f"{source_id}: exceeded total budget of "
                            f"{self.profile.total_timeout:.1f}s"
                        ),
                    )
                )
            else:
                outcomes.append(task.result())
        return outcomes

    # ── Public API ───────────────────────────────────────

    async def search(
        self,
        query: str,
        sources: list[str] | None = None,
        limit: int = Settings.DEFAULT_LIMIT,
        force_refresh: bool = False,
    ) -> SearchResult:
        """Search the selected sources and merge the results.

        Merged products are validated, deduplicated by canonical URL,
        sorted by ascending price and truncated to ``limit``.  Zero
        products is a normal outcome.
        """
        start = time.monotonic()
        query, selected = self.validate_request(query, sources, limit)
        logger.info(
            "Searching '%s' on %s (limit=%d, refresh=%s)",
            query,
            ",".join(selected),
            limit,
            force_refresh,
        )

        outcomes = await self._run_scrapers(
            query, selected, limit, force_refresh
        )

        result = SearchResult(query=query, sources=selected)
        merged: list[Product] = []
        for outcome in outcomes:
            merged.extend(outcome.products)
            result.source_counts[outcome.source] = len(outcome.products)
            result.source_timings[outcome.source] = outcome.elapsed_ms
            if outcome.warning:
                result.warnings.append(outcome.warning)

        valid, result.invalid_count = ProductValidator.validate(merged)
        unique, result.deduplicated_count = (
            ProductDeduplicator.deduplicate(valid)
        )
        result.products = sort_by_price(unique)[:limit]
        result.execution_time = int((time.monotonic() - start) * 1000)

        logger.info(
            "Search '%s' finished: %d products in %dms (%d warnings)",
            query,
            result.count,
            result.execution_time,
            len(result.warnings),
        )
        return result

    async def aclose(self) -> None:
        """Release the shared browser."""
        await self.browser.shutdown()
