# secondhand_search/services/search_api.py

"""Request/response boundary for search, comparison and health.

Every handler returns ``(status, payload)`` and never raises: caller
mistakes become 400 payloads and anything unexpected becomes a
structured 500 payload.  Any HTTP framework can mount these directly.
"""

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings
from secondhand_search.errors import (
    InvalidQueryError,
    InvalidSourceError,
    SearchError,
    SearchTimeoutError,
)
from secondhand_search.models.product import ProductSummary
from secondhand_search.services.health_checker import (
    HealthChecker,
    overall_status,
)
from secondhand_search.services.product_detail_scraper import (
    ProductDetailScraper,
)
from secondhand_search.services.search_orchestrator import (
    SearchOrchestrator,
    SearchResult,
)

logger = logging.getLogger("secondhand_search.api")

Response = tuple[int, dict[str, Any]]

_default_orchestrator: SearchOrchestrator | None = None


def get_orchestrator() -> SearchOrchestrator:
    """Process-wide orchestrator so scraper caches outlive requests."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = SearchOrchestrator()
    return _default_orchestrator


def _parse_body(body: Mapping[str, Any] | str | bytes) -> dict[str, Any]:
    """Accept a decoded mapping or a raw JSON document."""
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError as exc:
            raise InvalidQueryError(
                "Request body is not valid JSON", details=str(exc)
            ) from exc
    if not isinstance(body, Mapping):
        raise InvalidQueryError("Request body must be a JSON object")
    return dict(body)


def parse_search_request(
    body: Mapping[str, Any] | str | bytes,
) -> dict[str, Any]:
    """Validate the shape of a search body into orchestrator kwargs."""
    data = _parse_body(body)
    query = data.get("query")
    if not isinstance(query, str) or not query.strip():
        raise InvalidQueryError("Search query is required")

    sources = data.get("sources")
    if sources is not None and (
        not isinstance(sources, list)
        or not all(isinstance(s, str) for s in sources)
    ):
        raise InvalidSourceError("sources must be a list of source ids")

    limit = data.get("limit", Settings.DEFAULT_LIMIT)
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidQueryError(
            "Invalid limit", details="limit must be an integer"
        )

    return {
        "query": query,
        "sources": sources,
        "limit": limit,
        "force_refresh": bool(data.get("forceRefresh", False)),
    }


def search_payload(result: SearchResult) -> dict[str, Any]:
    """Render a SearchResult in the camelCase wire shape."""
    count = result.count
    return {
        "query": result.query,
        "sources": list(result.sources),
        "products": [p.to_dict() for p in result.products],
        "count": count,
        "executionTime": result.execution_time,
        "warnings": list(result.warnings),
        "sourceCounts": dict(result.source_counts),
        "performance": {
            "totalTime": result.execution_time,
            "avgTimePerProduct": (
                round(result.execution_time / count) if count else 0
            ),
            "scraperTimings": dict(result.source_timings),
        },
    }


async def search_endpoint(
    body: Mapping[str, Any] | str | bytes,
    orchestrator: SearchOrchestrator | None = None,
) -> Response:
    """``POST search``: run an aggregated search."""
    start = time.monotonic()
    try:
        request = parse_search_request(body)
        orchestrator = orchestrator or get_orchestrator()
        deadline = (
            orchestrator.profile.total_timeout + Settings.REQUEST_GRACE
        )
        try:
            result = await asyncio.wait_for(
                orchestrator.search(**request), timeout=deadline
            )
        except asyncio.TimeoutError as exc:
            raise SearchTimeoutError(
                "Search timed out", details=f"exceeded {deadline:.0f}s"
            ) from exc
    except SearchError as exc:
        logger.warning("Rejected search request: %s", exc.message)
        return exc.status, exc.to_payload()
    except Exception as exc:
        logger.error("Search request failed: %s", exc, exc_info=True)
        payload: dict[str, Any] = SearchError(
            "Search failed", details=str(exc)
        ).to_payload()
        payload.update(
            {
                "products": [],
                "count": 0,
                "executionTime": int((time.monotonic() - start) * 1000),
            }
        )
        return 500, payload
    return 200, search_payload(result)


async def compare_endpoint(
    body: Mapping[str, Any] | str | bytes,
    detail_scraper: ProductDetailScraper | None = None,
) -> Response:
    """``POST compare``: enrich the selected listings with detail."""
    try:
        data = _parse_body(body)
        items = data.get("products")
        if not isinstance(items, list) or not items:
            raise InvalidQueryError(
                "Select at least one product to compare"
            )
        summaries: list[ProductSummary] = []
        for item in items:
            if not isinstance(item, Mapping) or not (
                item.get("productUrl") and item.get("source")
            ):
                raise InvalidQueryError(
                    "Each product needs a productUrl and source"
                )
            summaries.append(ProductSummary.from_dict(dict(item)))

        scraper = detail_scraper or ProductDetailScraper()
        details = await scraper.scrape_products_details(summaries)
    except SearchError as exc:
        logger.warning("Rejected compare request: %s", exc.message)
        return exc.status, exc.to_payload()
    except Exception as exc:
        logger.error("Compare request failed: %s", exc, exc_info=True)
        return 500, SearchError(
            "Comparison failed", details=str(exc)
        ).to_payload()
    return 200, {
        "products": [d.to_dict() for d in details],
        "count": len(details),
    }


async def health_endpoint(
    profile: RuntimeProfile | None = None,
    probe: bool = False,
) -> Response:
    """``GET search``: configuration summary, optionally live probes."""
    profile = profile or resolve_profile()
    scrapers: list[dict[str, Any]] = [
        {"id": src["id"], "label": src["label"]}
        for src in Settings.AVAILABLE_SOURCES
    ]
    status = "ok"
    if probe:
        try:
            results = await HealthChecker(profile).check_all()
        except Exception as exc:
            logger.error("Health probe failed: %s", exc, exc_info=True)
            return 500, SearchError(
                "Health check failed", details=str(exc)
            ).to_payload()
        by_id = {r.source_id: r for r in results}
        for entry in scrapers:
            result = by_id.get(entry["id"])
            if result is not None:
                entry.update(result.to_dict())
        status = overall_status(results)

    return 200, {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scrapers": scrapers,
        "config": {
            "serverless": profile.serverless,
            "fastFetchTimeout": profile.fast_fetch_timeout,
            "sourceTimeout": profile.source_timeout,
            "slowSourceTimeout": profile.slow_source_timeout,
            "totalTimeout": profile.total_timeout,
            "parallelLimit": profile.parallel_limit,
            "cacheTtl": Settings.QUERY_CACHE_TTL,
        },
    }
