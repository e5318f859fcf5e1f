# secondhand_search/filters/deduplicator.py

"""Product deduplication across multiple marketplace sources."""

import logging
import re

from secondhand_search.models.product import Product

logger = logging.getLogger("secondhand_search.filters")


class ProductDeduplicator:
    """Remove duplicate listings by canonical product URL."""

    # Query strings and fragments don't affect listing identity
    _STRIP_PARAMS_RE = re.compile(r"[?#].*$")

    @staticmethod
    def canonical_url(url: str) -> str:
        """Normalise a product URL for dedup comparison.

        Strips query parameters, fragments, trailing slashes,
        and lowercases the result.
        """
        if not url:
            return ""
        cleaned = ProductDeduplicator._STRIP_PARAMS_RE.sub(
            "", url.strip()
        )
        return cleaned.rstrip("/").lower()

    @staticmethod
    def _cheaper(candidate: Product, current: Product) -> bool:
        """True when ``candidate`` has a known price below ``current``."""
        if not candidate.has_price:
            return False
        return not current.has_price or candidate.price < current.price

    @staticmethod
    def deduplicate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Collapse listings that share a canonical URL.

        The group keeps the position of its first occurrence; the
        cheapest known price wins the slot.  Titles are never compared:
        two different listings may share a title.

        Returns the deduplicated list and the count of removed dupes.
        """
        if not products:
            return [], 0

        seen_urls: dict[str, int] = {}
        kept: list[Product] = []
        removed = 0

        for product in products:
            norm_url = ProductDeduplicator.canonical_url(
                product.product_url
            )

            if norm_url and norm_url in seen_urls:
                existing_idx = seen_urls[norm_url]
                if ProductDeduplicator._cheaper(
                    product, kept[existing_idx]
                ):
                    kept[existing_idx] = product
                removed += 1
                continue

            if norm_url:
                seen_urls[norm_url] = len(kept)
            kept.append(product)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate products",
                removed,
            )

        return kept, removed
