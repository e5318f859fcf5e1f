# secondhand_search/scrapers/junggonara_scraper.py

"""Scraper for Junggonara (web.joongna.com)."""

import re
from urllib.parse import quote

from bs4 import Tag

from secondhand_search.config.runtime_profile import RuntimeProfile
from secondhand_search.config.settings import Settings
from secondhand_search.models.product import Product, ProductDetail
from secondhand_search.scrapers.base_scraper import BaseScraper
from secondhand_search.scrapers.extraction import (
    BaseExtractor,
    clean_title,
    detect_condition,
    first_attr,
    first_text,
    normalize_image_url,
)
from secondhand_search.services.browser_manager import BrowserManager
from secondhand_search.storage.query_cache import CacheStore

# Any one of these must appear on a genuine results page.
_PAGE_MARKERS = ("중고나라", "검색", "상품")

_SELLER_PATTERNS = [
    re.compile(r'"seller"\s*:\s*\{[^}]*"nickname"\s*:\s*"([^"]+)"', re.I),
    re.compile(r'"sellerNickname"\s*:\s*"([^"]+)"', re.I),
    re.compile(r"판매자\s*[:：]\s*([^<>\n,\s]+)"),
    re.compile(r"작성자\s*[:：]\s*([^<>\n,\s]+)"),
]
_LOCATION_PATTERNS = [
    re.compile(r'"location"\s*:\s*"([^"]+)"', re.I),
    re.compile(r'"region"\s*:\s*"([^"]+)"', re.I),
    re.compile(r"([가-힣]+구\s*[가-힣]+동)"),
]


class JunggonaraExtractor(BaseExtractor):
    """Parses Junggonara search results and product pages.

    The site is server-rendered, so the same DOM card pass serves both
    the plain HTTP response and the browser-rendered page.
    """

    source = "junggonara"
    label = "중고나라"
    base_url = "https://web.joongna.com"
    brand_names = ["중고나라"]
    image_patterns = [
        re.compile(r'src="([^"]*(?:joongna|img2\.joongna)[^"]*)"'),
        re.compile(r'data-src="([^"]*(?:joongna|img2\.joongna)[^"]*)"'),
        re.compile(r'src="([^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"'),
    ]

    def extract(self, html: str, limit: int) -> list[Product]:
        if not any(marker in html for marker in _PAGE_MARKERS):
            self.logger.warning(
                "[junggonara] Page does not look like a results page"
            )
            return []
        return self.extract_cards(html, limit)

    def accept_url(self, url: str) -> bool:
        # /product/form is the "sell an item" entry point.
        return "/product/" in url and "/product/form" not in url

    def card_title(self, card: Tag) -> str:
        text = first_text(card, self.select("title")) or first_attr(
            card, ["title"]
        )
        if not text:
            lines = card.get_text("\n", strip=True).split("\n")
            text = lines[0] if lines else ""
        if not text and isinstance(card.parent, Tag):
            text = first_text(card.parent, ["h2", ".line-clamp-2"])
        return clean_title(text, self.brand_names)

    def card_price_text(self, card: Tag) -> str:
        text = super().card_price_text(card)
        if not text and isinstance(card.parent, Tag):
            text = first_text(card.parent, self.select("price"))
        return text if "원" in text else Settings.PRICE_INQUIRY

    def card_image(self, card: Tag) -> str:
        url = super().card_image(card)
        if not url and isinstance(card.parent, Tag):
            img = card.parent.find("img")
            if isinstance(img, Tag):
                url = normalize_image_url(
                    first_attr(img, self.select("image_attrs")),
                    self.base_url,
                )
        return url

    def card_location(self, card: Tag) -> str | None:
        return first_text(card, self.select("location")) or self.label

    def extract_detail(
        self, html: str, product_url: str,
    ) -> ProductDetail | None:
        soup = self.make_soup(html)
        title = self.detail_title(soup)
        if not title:
            return None
        description = self.detail_description(soup, title)
        location = self.detail_location(soup, html, _LOCATION_PATTERNS)
        return self.build_detail(
            title=title,
            price_text=self.detail_price_text(soup, html),
            product_url=product_url,
            image_url=self.detail_image(soup, html),
            description=description or "상품 설명을 찾을 수 없습니다.",
            seller_name=self.detail_seller(soup, html, _SELLER_PATTERNS),
            location=location or self.label,
            condition=detect_condition(f"{title} {description}"),
        )


class JunggonaraScraper(BaseScraper):
    """Junggonara search: plain HTTP first, rendered page second."""

    base_url = "https://web.joongna.com"
    extractor_cls = JunggonaraExtractor
    block_scan_max_length = None
    block_markers = Settings.JUNGGONARA_BLOCK_MARKERS
    block_markers_case_sensitive = True

    def __init__(
        self,
        cache: CacheStore | None = None,
        browser: BrowserManager | None = None,
        profile: RuntimeProfile | None = None,
    ) -> None:
        super().__init__("junggonara", cache, browser, profile)

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search/{quote(query)}"
