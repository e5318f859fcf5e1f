# tests/test_query_cache.py

"""Tests for the per-source TTL result cache."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from secondhand_search.models.product import Product
from secondhand_search.storage.query_cache import CacheStore


def _p(title: str, source: str = "bunjang") -> Product:
    """Create a minimal Product for testing."""
    return Product(
        id=f"{source}-{title}",
        title=title,
        price=10000,
        price_text="10,000원",
        source=source,
        product_url=f"https://example.com/{title}",
    )


class TestGenerateKey(unittest.TestCase):
    """Deterministic fingerprints."""

    def test_same_params_same_key(self) -> None:
        a = CacheStore.generate_key("bunjang", "search", {"query": "아이폰", "limit": 20})
        b = CacheStore.generate_key("bunjang", "search", {"limit": 20, "query": "아이폰"})
        self.assertEqual(a, b)

    def test_whitespace_and_case_normalised(self) -> None:
        a = CacheStore.generate_key("x", "search", {"query": "iPhone  14"})
        b = CacheStore.generate_key("x", "search", {"query": " iphone 14 "})
        self.assertEqual(a, b)

    def test_limit_changes_key(self) -> None:
        a = CacheStore.generate_key("x", "search", {"query": "a", "limit": 10})
        b = CacheStore.generate_key("x", "search", {"query": "a", "limit": 20})
        self.assertNotEqual(a, b)

    def test_key_is_namespaced(self) -> None:
        key = CacheStore.generate_key("danggeun", "search", {"query": "a"})
        self.assertTrue(key.startswith("danggeun:search:"))


class TestCacheStore(unittest.TestCase):
    """In-memory behaviour."""

    def setUp(self) -> None:
        self.cache = CacheStore("bunjang", ttl=900.0)

    # ── Store & retrieve ─────────────────────────────────

    def test_miss_returns_none(self) -> None:
        self.assertIsNone(self.cache.get("nope"))

    def test_hit_returns_copy(self) -> None:
        self.cache.set("k", [_p("아이폰")])
        first = self.cache.get("k")
        assert first is not None
        first.append(_p("갤럭시"))
        second = self.cache.get("k")
        assert second is not None
        self.assertEqual(len(second), 1)

    def test_set_overwrites(self) -> None:
        self.cache.set("k", [_p("a상품")])
        self.cache.set("k", [_p("b상품"), _p("c상품")])
        result = self.cache.get("k")
        assert result is not None
        self.assertEqual(len(result), 2)

    # ── TTL ──────────────────────────────────────────────

    def test_stale_entry_is_absent(self) -> None:
        with patch("secondhand_search.storage.query_cache.time.time") as clock:
            clock.return_value = 1000.0
            self.cache.set("k", [_p("아이폰")])
            clock.return_value = 1000.0 + 899.0
            self.assertIsNotNone(self.cache.get("k"))
            clock.return_value = 1000.0 + 900.0
            self.assertIsNone(self.cache.get("k"))
        self.assertEqual(len(self.cache), 0)

    # ── Purge ────────────────────────────────────────────

    def test_delete_and_clear(self) -> None:
        self.cache.set("a", [_p("a상품")])
        self.cache.set("b", [_p("b상품")])
        self.assertTrue(self.cache.delete("a"))
        self.assertFalse(self.cache.delete("a"))
        self.assertEqual(self.cache.clear(), 1)
        self.assertEqual(len(self.cache), 0)


class TestCacheFileBacking(unittest.TestCase):
    """Optional JSON persistence."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.cache_dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_entries_survive_a_new_store(self) -> None:
        CacheStore("junggonara", cache_dir=self.cache_dir).set(
            "junggonara:search:abc", [_p("아이폰", "junggonara")]
        )
        fresh = CacheStore("junggonara", cache_dir=self.cache_dir)
        result = fresh.get("junggonara:search:abc")
        assert result is not None
        self.assertEqual(result[0].title, "아이폰")
        self.assertEqual(result[0].price, 10000)

    def test_corrupt_file_is_a_miss(self) -> None:
        store = CacheStore("junggonara", cache_dir=self.cache_dir)
        path = self.cache_dir / "junggonara" / "k.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        self.assertIsNone(store.get("k"))

    def test_clear_removes_files(self) -> None:
        store = CacheStore("danggeun", cache_dir=self.cache_dir)
        store.set("danggeun:search:1", [_p("a상품", "danggeun")])
        self.assertEqual(store.clear(), 1)
        self.assertEqual(
            list((self.cache_dir / "danggeun").glob("*.json")), []
        )


if __name__ == "__main__":
    unittest.main()
