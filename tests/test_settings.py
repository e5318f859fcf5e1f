# tests/test_settings.py

"""Tests for the Settings configuration class."""

import json
import unittest
from pathlib import Path

from secondhand_search.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants and source registry."""

    def test_request_delay_is_positive_float(self) -> None:
        """REQUEST_DELAY must be a positive number."""
        self.assertIsInstance(Settings.REQUEST_DELAY, float)
        self.assertGreater(Settings.REQUEST_DELAY, 0)

    def test_fast_fetch_retries_is_positive(self) -> None:
        """FAST_FETCH_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.FAST_FETCH_RETRIES, 1)

    def test_circuit_breaker_threshold_positive(self) -> None:
        """CIRCUIT_BREAKER_THRESHOLD must be >= 1."""
        self.assertGreaterEqual(
            Settings.CIRCUIT_BREAKER_THRESHOLD, 1
        )

    def test_query_cache_ttl_is_fifteen_minutes(self) -> None:
        """QUERY_CACHE_TTL is 900 seconds."""
        self.assertEqual(Settings.QUERY_CACHE_TTL, 900.0)

    def test_available_sources_has_three(self) -> None:
        """Registry contains the three searchable marketplaces."""
        ids = [s["id"] for s in Settings.AVAILABLE_SOURCES]
        self.assertEqual(ids, ["danggeun", "bunjang", "junggonara"])

    def test_each_source_has_required_keys(self) -> None:
        """Every source must have id, label, and scraper keys."""
        for src in Settings.AVAILABLE_SOURCES:
            with self.subTest(src=src.get("id", "?")):
                self.assertIn("id", src)
                self.assertIn("label", src)
                self.assertIn("scraper", src)

    def test_source_ids_are_unique(self) -> None:
        """No duplicate source ids."""
        ids = [s["id"] for s in Settings.AVAILABLE_SOURCES]
        self.assertEqual(len(ids), len(set(ids)))

    def test_priority_covers_every_source(self) -> None:
        """Every registered source has a dispatch priority."""
        for src in Settings.AVAILABLE_SOURCES:
            self.assertIn(src["id"], Settings.SOURCE_PRIORITY)

    def test_default_limit_within_bounds(self) -> None:
        """DEFAULT_LIMIT is a valid limit."""
        self.assertGreaterEqual(Settings.DEFAULT_LIMIT, 1)
        self.assertLessEqual(Settings.DEFAULT_LIMIT, Settings.MAX_LIMIT)

    def test_path_constants_are_paths(self) -> None:
        """Path-typed settings are Path instances."""
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.SELECTORS_PATH, Path)
        self.assertIsInstance(Settings.LOGS_DIR, Path)
        self.assertIsInstance(Settings.CACHE_DIR, Path)

    def test_selectors_path_exists(self) -> None:
        """The selectors.json file must exist on disk."""
        self.assertTrue(Settings.SELECTORS_PATH.exists())

    def test_selectors_cover_every_source(self) -> None:
        """selectors.json has card and wait selectors for each source."""
        with open(Settings.SELECTORS_PATH, encoding="utf-8") as f:
            data = json.load(f)
        for src in Settings.AVAILABLE_SOURCES:
            with self.subTest(src=src["id"]):
                self.assertTrue(data[src["id"]]["card"])
                self.assertTrue(data[src["id"]]["wait"])

    def test_impersonate_browser_is_string(self) -> None:
        """IMPERSONATE_BROWSER must be a non-empty string."""
        self.assertIsInstance(
            Settings.IMPERSONATE_BROWSER, str
        )
        self.assertTrue(len(Settings.IMPERSONATE_BROWSER) > 0)

    def test_default_headers_prefer_korean(self) -> None:
        """DEFAULT_HEADERS asks for Korean content."""
        self.assertIn(
            "ko-KR", Settings.DEFAULT_HEADERS["Accept-Language"]
        )


if __name__ == "__main__":
    unittest.main()
