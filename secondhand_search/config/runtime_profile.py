# secondhand_search/config/runtime_profile.py

"""Environment-resolved runtime profile (timeouts, parallelism, browser).

The profile is computed once at startup and handed to the browser
manager, the scrapers and the orchestrator.  Serverless deployments get
more generous budgets because cold browser starts there are slow.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from secondhand_search.config.settings import Settings

logger = logging.getLogger("secondhand_search.config")


@dataclass(frozen=True)
class RuntimeProfile:
    """Resolved timeouts (seconds) and limits for one deployment."""

    serverless: bool = False
    fast_fetch_timeout: float = 8.0
    navigation_timeout: float = 15.0
    selector_timeout: float = 10.0
    fallback_selector_timeout: float = 5.0
    launch_timeout: float = 30.0
    source_timeout: float = 8.0
    slow_source_timeout: float = 15.0
    total_timeout: float = 25.0
    detail_timeout: float = 5.0
    parallel_limit: int = 2
    executable_path: str | None = None
    danggeun_region: str = Settings.DANGGEUN_REGION

    def timeout_for(self, source_id: str) -> float:
        """Return the per-source budget enforced by the orchestrator.

        Danggeun frequently needs the browser fallback, so it gets the
        longer budget.
        """
        if source_id == "danggeun":
            return self.slow_source_timeout
        return self.source_timeout


def is_serverless(env: Mapping[str, str]) -> bool:
    """Detect a constrained serverless deployment from env flags."""
    return (
        env.get("SERVERLESS") == "1"
        or env.get("VERCEL") == "1"
        or bool(env.get("VERCEL_ENV"))
    )


def resolve_profile(
    env: Mapping[str, str] | None = None,
) -> RuntimeProfile:
    """Build the RuntimeProfile for the current environment."""
    source = os.environ if env is None else env
    serverless = is_serverless(source)
    executable = source.get("CHROMIUM_EXECUTABLE_PATH") or None
    region = source.get("DANGGEUN_REGION") or Settings.DANGGEUN_REGION

    if serverless:
        profile = RuntimeProfile(
            serverless=True,
            fast_fetch_timeout=10.0,
            navigation_timeout=25.0,
            selector_timeout=15.0,
            fallback_selector_timeout=10.0,
            launch_timeout=45.0,
            source_timeout=28.0,
            slow_source_timeout=35.0,
            total_timeout=38.0,
            detail_timeout=8.0,
            parallel_limit=3,
            executable_path=executable,
            danggeun_region=region,
        )
    else:
        profile = RuntimeProfile(
            fast_fetch_timeout=float(Settings.FAST_FETCH_TIMEOUT),
            executable_path=executable,
            danggeun_region=region,
        )

    logger.info(
        "Runtime profile resolved (serverless=%s, total_timeout=%.0fs, "
        "parallel_limit=%d)",
        profile.serverless,
        profile.total_timeout,
        profile.parallel_limit,
    )
    return profile
