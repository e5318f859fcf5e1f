# secondhand_search/storage/query_cache.py

"""Per-source query result cache with TTL and optional file backing."""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from secondhand_search.config.settings import Settings
from secondhand_search.models.product import Product

logger = logging.getLogger("secondhand_search.cache")


@dataclass(frozen=True)
class CacheEntry:
    """A cached result list for one fingerprint."""

    key: str
    payload: list[Product]
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        """True while the entry is younger than its TTL."""
        return now - self.stored_at < self.ttl


class CacheStore:
    """Key/value store of scrape results, namespaced by source.

    Entries are replaced wholesale on refresh and expire after the TTL;
    stale entries are treated as absent.  When ``cache_dir`` is given,
    entries are also written as JSON under ``cache_dir/<namespace>/`` so
    a restarted process can reuse them.  Cache I/O errors are logged and
    behave like a miss; they never reach the calling scrape.
    """

    def __init__(
        self,
        namespace: str,
        ttl: float | None = None,
        cache_dir: Path | None = None,
    ) -> None:
        self.namespace = namespace
        self.ttl: float = (
            Settings.QUERY_CACHE_TTL if ttl is None else ttl
        )
        self._entries: dict[str, CacheEntry] = {}
        self._dir: Path | None = (
            cache_dir / namespace if cache_dir is not None else None
        )

    # ── Key generation ───────────────────────────────────

    @staticmethod
    def generate_key(
        source: str,
        operation: str,
        params: dict[str, Any],
    ) -> str:
        """Derive a deterministic fingerprint for a cached call.

        String values are whitespace-collapsed and lowercased so that
        ``"아이폰  14"`` and ``"아이폰 14"`` share an entry.
        """
        normalised: dict[str, Any] = {}
        for name, value in params.items():
            if isinstance(value, str):
                value = " ".join(value.split()).lower()
            normalised[name] = value
        raw = json.dumps(
            normalised,
            sort_keys=True,
            ensure_ascii=False,
            default=str,
        )
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()
        return f"{source}:{operation}:{digest}"

    # ── Public API ───────────────────────────────────────

    def get(self, key: str) -> list[Product] | None:
        """Return a copy of the cached list, or ``None`` on miss/stale."""
        now = time.time()
        entry = self._entries.get(key)
        if entry is None:
            entry = self._read_file(key)
            if entry is not None:
                self._entries[key] = entry

        if entry is None:
            return None

        if not entry.is_fresh(now):
            logger.debug(
                "[%s] Cache entry expired for %s",
                self.namespace,
                key,
            )
            self.delete(key)
            return None

        logger.info(
            "[%s] Cache hit for %s (%d products)",
            self.namespace,
            key,
            len(entry.payload),
        )
        return list(entry.payload)

    def set(self, key: str, value: list[Product]) -> None:
        """Store (or overwrite) the result list for ``key``."""
        entry = CacheEntry(
            key=key,
            payload=list(value),
            stored_at=time.time(),
            ttl=self.ttl,
        )
        self._entries[key] = entry
        self._write_file(entry)
        logger.info(
            "[%s] Cached %d products for %s",
            self.namespace,
            len(value),
            key,
        )

    def delete(self, key: str) -> bool:
        """Remove ``key``; return True if anything was removed."""
        removed = self._entries.pop(key, None) is not None
        path = self._path_for(key)
        if path is not None and path.exists():
            try:
                path.unlink()
                removed = True
            except OSError as exc:
                logger.warning(
                    "[%s] Failed to delete cache file %s: %s",
                    self.namespace,
                    path,
                    exc,
                )
        return removed

    def clear(self) -> int:
        """Purge every entry in this namespace.

        Returns the number of entries that were removed.
        """
        keys = set(self._entries)
        if self._dir is not None and self._dir.exists():
            keys.update(
                self._key_from_filename(p.name)
                for p in self._dir.glob("*.json")
            )
        count = 0
        for key in keys:
            if self.delete(key):
                count += 1
        logger.info(
            "[%s] Cache purged (%d entries removed)",
            self.namespace,
            count,
        )
        return count

    def __len__(self) -> int:
        return len(self._entries)

    # ── File backing ─────────────────────────────────────

    @staticmethod
    def _filename_for(key: str) -> str:
        return key.replace(":", "__") + ".json"

    @staticmethod
    def _key_from_filename(name: str) -> str:
        return name.removesuffix(".json").replace("__", ":")

    def _path_for(self, key: str) -> Path | None:
        if self._dir is None:
            return None
        return self._dir / self._filename_for(key)

    def _read_file(self, key: str) -> CacheEntry | None:
        path = self._path_for(key)
        if path is None or not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                raw: dict[str, Any] = json.load(f)
            return CacheEntry(
                key=key,
                payload=[
                    Product.from_dict(item)
                    for item in raw.get("payload", [])
                ],
                stored_at=float(raw["storedAt"]),
                ttl=float(raw.get("ttl", self.ttl)),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "[%s] Unreadable cache file %s, treating as miss: %s",
                self.namespace,
                path,
                exc,
            )
            return None

    def _write_file(self, entry: CacheEntry) -> None:
        path = self._path_for(entry.key)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(
                    {
                        "key": entry.key,
                        "storedAt": entry.stored_at,
                        "ttl": entry.ttl,
                        "payload": [
                            p.to_dict() for p in entry.payload
                        ],
                    },
                    f,
                    ensure_ascii=False,
                )
        except (OSError, TypeError, ValueError) as exc:
            logger.warning(
                "[%s] Failed to persist cache entry %s: %s",
                self.namespace,
                entry.key,
                exc,
            )
