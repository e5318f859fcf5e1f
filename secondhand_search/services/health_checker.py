# secondhand_search/services/health_checker.py

"""Marketplace connectivity health checker.

Each source's scraper is loaded from its dotted path in
``Settings.AVAILABLE_SOURCES`` and asked for its homepage once, through
the same impersonating session and headers a search would use.  A
homepage that answers 200 but serves the source's block page counts as
down.
"""

import asyncio
import importlib
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings

logger = logging.getLogger("secondhand_search.health")


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str = ""

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["latency_ms"] = round(self.latency_ms)
        return data


def _load_scraper(dotted_path: str, profile: RuntimeProfile | None) -> Any:
    module_path, class_name = dotted_path.rsplit(".", 1)
    scraper_cls = getattr(importlib.import_module(module_path), class_name)
    return scraper_cls(profile=profile)


def _block_marker(scraper: Any, body: str) -> str | None:
    """First hard block marker of ``scraper`` found in ``body``."""
    case_sensitive = getattr(scraper, "block_markers_case_sensitive", False)
    haystack = body if case_sensitive else body.lower()
    for marker in getattr(scraper, "block_markers", []):
        needle = marker if case_sensitive else marker.lower()
        if needle in haystack:
            return str(marker)
    return None


def classify(
    status_code: int, elapsed_ms: float, blocked_by: str | None = None,
) -> tuple[str, str]:
    """Map one homepage response onto a (status, message) pair."""
    if status_code != 200:
        return "down", f"HTTP {status_code}"
    if blocked_by is not None:
        return "down", f"Block page ({blocked_by})"
    if elapsed_ms > Settings.HEALTH_SLOW_MS:
        return "slow", "High latency"
    return "ok", ""


def check_source(
    source: dict[str, str],
    profile: RuntimeProfile | None = None,
) -> HealthResult:
    """Fetch one marketplace homepage and grade the answer."""
    source_id = source["id"]
    try:
        scraper = _load_scraper(source["scraper"], profile)
        homepage = scraper._get_homepage()
    except Exception as exc:
        return HealthResult(
            source_id, "down", 0.0, f"Failed to load scraper: {exc}"
        )

    start = time.monotonic()
    try:
        resp = scraper.session.get(
            homepage,
            headers={
                **scraper.settings.DEFAULT_HEADERS,
                "Referer": homepage,
            },
            timeout=Settings.HEALTH_TIMEOUT,
        )
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(source_id, "down", elapsed_ms, str(exc)[:80])
    elapsed_ms = (time.monotonic() - start) * 1000

    blocked_by = None
    if resp.status_code == 200:
        blocked_by = _block_marker(scraper, str(resp.text))
    status, message = classify(resp.status_code, elapsed_ms, blocked_by)
    return HealthResult(source_id, status, elapsed_ms, message)


def overall_status(results: list[HealthResult]) -> str:
    """"ok" when every source is ok, "down" when all are, else "degraded"."""
    statuses = {r.status for r in results}
    if not statuses or statuses == {"down"}:
        return "down"
    return "ok" if statuses == {"ok"} else "degraded"


class HealthChecker:
    """Checks every registered source concurrently."""

    def __init__(self, profile: RuntimeProfile | None = None) -> None:
        self.sources = Settings.AVAILABLE_SOURCES
        self.profile = profile or resolve_profile()

    async def check_all(self) -> list[HealthResult]:
        results: list[HealthResult] = list(
            await asyncio.gather(
                *(
                    asyncio.to_thread(check_source, src, self.profile)
                    for src in self.sources
                )
            )
        )
        for r in results:
            level = logging.WARNING if r.status == "down" else logging.INFO
            logger.log(
                level,
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
