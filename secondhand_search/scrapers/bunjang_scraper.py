# secondhand_search/scrapers/bunjang_scraper.py

"""Scraper for Bunjang (bunjang.co.kr) using their public search API."""

import asyncio
import json
import re
from typing import Any
from urllib.parse import parse_qs, quote, urlparse

from bs4 import Tag

from secondhand_search.config.runtime_profile import RuntimeProfile
from secondhand_search.config.settings import Settings
from secondhand_search.models.product import Product, ProductDetail
from secondhand_search.scrapers.base_scraper import BaseScraper
from secondhand_search.scrapers.extraction import (
    BaseExtractor,
    clean_title,
    collapse,
    detect_condition,
    first_text,
    format_price,
    meta_content,
    normalize_image_url,
    parse_price,
)
from secondhand_search.services.browser_manager import BrowserManager
from secondhand_search.storage.query_cache import CacheStore

_SELLER_PATTERNS = [
    re.compile(r"판매자\s*[:：]\s*([^<>\n]+)"),
    re.compile(r"seller\s*[:：]\s*([^<>\n]+)", re.I),
    re.compile(r"업체명\s*[:：]\s*([^<>\n]+)"),
]


class BunjangExtractor(BaseExtractor):
    """Parses Bunjang API payloads, rendered result pages and products.

    Bunjang's search page is a client-rendered SPA, so the fast path
    reads the JSON search API and ``extract`` only ever sees rendered
    HTML from the browser strategy.
    """

    source = "bunjang"
    label = "번개장터"
    base_url = "https://www.bunjang.co.kr"
    brand_names = ["번개장터"]
    image_patterns = [
        re.compile(r'src="([^"]*(?:media\.bunjang|bunjang)[^"]*)"'),
        re.compile(r'data-original="([^"]*(?:media\.bunjang|bunjang)[^"]*)"'),
        re.compile(r'src="([^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"'),
    ]

    # ── Search API ───────────────────────────────────────

    def product_url(self, pid: str) -> str:
        return f"{self.base_url}/products/{pid}"

    def extract_api(self, payload: str, limit: int) -> list[Product]:
        """Products from a ``find_v2.json`` response body."""
        if limit <= 0:
            return []
        try:
            data: dict[str, Any] = json.loads(payload)
        except ValueError as exc:
            self.logger.warning("[bunjang] Invalid API JSON: %s", exc)
            return []
        if not isinstance(data, dict):
            return []
        items = data.get("list")
        if data.get("result") != "success" or not isinstance(items, list):
            self.logger.warning(
                "[bunjang] API result was %r", data.get("result")
            )
            return []

        products: list[Product] = []
        for item in items:
            if len(products) >= limit:
                break
            if not isinstance(item, dict):
                continue
            product = self._parse_item(item)
            if product is not None:
                products.append(product)
        return products

    def _parse_item(self, item: dict[str, Any]) -> Product | None:
        """Parse a single API list item into a Product."""
        pid = str(item.get("pid") or "").strip()
        title = clean_title(str(item.get("name") or ""))
        if not pid or not title:
            return None
        try:
            price = int(str(item.get("price") or "0"))
        except ValueError:
            price = 0
        image = str(item.get("product_image") or "").replace("{res}", "266")
        return self.build_product(
            title=title,
            price_text=format_price(price),
            product_url=self.product_url(pid),
            image_url=normalize_image_url(image, self.base_url),
            location=collapse(str(item.get("location") or "")) or self.label,
            key=pid,
        )

    # ── Rendered search page ─────────────────────────────

    def extract(self, html: str, limit: int) -> list[Product]:
        return self.extract_cards(html, limit)

    def accept_url(self, url: str) -> bool:
        return "/products/" in url and "bunjang" in url

    def card_price_text(self, card: Tag) -> str:
        # Rendered cards show bare digits ("980,000") without the unit.
        price = parse_price(first_text(card, self.select("price")))
        if price > 0:
            return format_price(price)
        return super().card_price_text(card)

    def card_location(self, card: Tag) -> str | None:
        return first_text(card, self.select("location")) or self.label

    # ── Detail pages ─────────────────────────────────────

    def extract_detail(
        self, html: str, product_url: str,
    ) -> ProductDetail | None:
        soup = self.make_soup(html)
        # og:title, then the q parameter of the listing URL, then h1
        title = meta_content(soup, "og:title")
        if len(title) <= Settings.MIN_TITLE_LENGTH:
            query = parse_qs(urlparse(product_url).query).get("q")
            title = query[0] if query else ""
        if len(title) <= Settings.MIN_TITLE_LENGTH:
            title = first_text(soup, ["h1"])
        title = collapse(title)[: Settings.DETAIL_TITLE_MAX_LENGTH]
        if len(title) <= Settings.MIN_TITLE_LENGTH or self.label in title:
            return None

        description = self.detail_description(soup, title)
        return self.build_detail(
            title=title,
            price_text=self.detail_price_text(soup, html),
            product_url=product_url,
            image_url=self.detail_image(soup, html),
            description=description,
            seller_name=self.detail_seller(soup, html, _SELLER_PATTERNS)
            or "판매자",
            location=(
                first_text(soup, self.select("detail_location"))
                or self.label
            ),
            condition=detect_condition(f"{title} {description}"),
        )


class BunjangScraper(BaseScraper):
    """Bunjang search: JSON API first, rendered search page second."""

    SEARCH_API = (
        "https://api.bunjang.co.kr/api/1/find_v2.json?q={query}&n={limit}"
    )

    base_url = "https://www.bunjang.co.kr"
    extractor_cls = BunjangExtractor
    extractor: BunjangExtractor

    def __init__(
        self,
        cache: CacheStore | None = None,
        browser: BrowserManager | None = None,
        profile: RuntimeProfile | None = None,
    ) -> None:
        super().__init__("bunjang", cache, browser, profile)

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search/products?q={quote(query)}"

    def api_url(self, query: str, limit: int) -> str:
        return self.SEARCH_API.format(query=quote(query), limit=limit)

    async def _fast_fetch(
        self, query: str, limit: int, deadline: float | None = None,
    ) -> list[Product]:
        """Query the public search API instead of the SPA page."""
        payload = await asyncio.to_thread(
            self._fetch_html,
            self.api_url(query, limit),
            {"Accept": "application/json, text/plain, */*"},
            deadline,
        )
        if payload is None:
            return []
        return self.extractor.extract_api(payload, limit)
