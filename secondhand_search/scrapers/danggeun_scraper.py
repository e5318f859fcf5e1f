# secondhand_search/scrapers/danggeun_scraper.py

"""Scraper for Danggeun Market (daangn.com) regional listings."""

import html as html_lib
import re
from urllib.parse import parse_qs, quote, urlparse

from bs4 import Tag

from secondhand_search.config.runtime_profile import RuntimeProfile
from secondhand_search.config.settings import Settings
from secondhand_search.models.product import Product, ProductDetail
from secondhand_search.scrapers.base_scraper import BaseScraper
from secondhand_search.scrapers.extraction import (
    BaseExtractor,
    absolute_url,
    clean_title,
    collapse,
    detect_condition,
    first_pattern,
    first_text,
    normalize_image_url,
    truncate,
)
from secondhand_search.services.browser_manager import BrowserManager
from secondhand_search.storage.query_cache import CacheStore

# Search result cards carry obfuscated class tokens:
# lm809sh = title, lm809si = price, lm809sj = location.
_ARTICLE = re.compile(
    r'<a\b([^>]*\bdata-gtm="search_article"[^>]*)>(.*?)</a>', re.S
)
_HREF = re.compile(r'\bhref="([^"]+)"')
_TITLE = re.compile(r'class="[^"]*lm809sh[^"]*"[^>]*>([^<]+)<')
_PRICE = re.compile(r'class="[^"]*lm809si[^"]*"[^>]*>([^<]+)<')
_LOCATION = re.compile(r'class="[^"]*lm809sj[^"]*"[^>]*>([^<]+)<')
_ARTICLE_URL = re.compile(r'href="([^"?]*/buy-sell/[^"?/]+[^"]*)"')
_REGION_SUFFIX = re.compile(r"-\d+$")

_CARD_IMAGES = [
    re.compile(r'(?:src|data-src)="([^"]*(?:daangn|karrot|gcp-karroter)[^"]*)"'),
    re.compile(r'(?:src|data-src)="([^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"'),
]

_SELLER_PATTERNS = [
    re.compile(r'"nickname"\s*:\s*"([^"]+)"', re.I),
    re.compile(r'"authorNickname"\s*:\s*"([^"]+)"', re.I),
    re.compile(r"작성자\s*[:：]\s*([^<>\n,\s]+)"),
    re.compile(r"판매자\s*[:：]\s*([^<>\n,\s]+)"),
]
_LOCATION_PATTERNS = [
    re.compile(r'"region"\s*:\s*\{[^}]*"name"\s*:\s*"([^"]+)"', re.I),
    re.compile(r'"regionName"\s*:\s*"([^"]+)"', re.I),
    re.compile(r"([가-힣]+구\s*[가-힣]+동)"),
]


def region_name(region: str) -> str:
    """Human-readable region: "마장동-56" -> "마장동"."""
    return _REGION_SUFFIX.sub("", region)


class DanggeunExtractor(BaseExtractor):
    """Parses Danggeun search results and article pages.

    Raw HTML is scanned with structural regexes first, since the plain
    HTTP response is server-rendered and the cards are regular.  When
    the card anchors are missing but the class tokens are present, a
    column-wise pass pairs titles, prices, URLs and images by index.
    Rendered pages fall through to the DOM card selectors.
    """

    source = "danggeun"
    label = "당근마켓"
    base_url = "https://www.daangn.com"
    brand_names = ["당근마켓"]
    image_patterns = [
        re.compile(r'src="([^"]*(?:karroter|daangn|cloudfront)[^"]*)"'),
        re.compile(r'data-src="([^"]*(?:karroter|daangn|cloudfront)[^"]*)"'),
        re.compile(r'src="([^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"'),
    ]

    def __init__(
        self,
        selectors: dict[str, list[str]] | None = None,
        region: str = Settings.DANGGEUN_REGION,
    ) -> None:
        super().__init__(selectors)
        self.region = region

    def extract(self, html: str, limit: int) -> list[Product]:
        if limit <= 0:
            return []
        products = self._extract_articles(html, limit)
        if not products and "lm809sh" in html:
            products = self._extract_columns(html, limit)
        if not products:
            products = self.extract_cards(html, limit)
        self.logger.debug(
            "[danggeun] Extracted %d products", len(products)
        )
        return products[:limit]

    # ── Structural regex pass ────────────────────────────

    def _card_image(self, fragment: str) -> str:
        for pattern in _CARD_IMAGES:
            for match in pattern.finditer(fragment):
                url = normalize_image_url(
                    html_lib.unescape(match.group(1)), self.base_url
                )
                if url:
                    return url
        return ""

    def _extract_articles(self, html: str, limit: int) -> list[Product]:
        products: list[Product] = []
        default_location = region_name(self.region)
        for index, match in enumerate(_ARTICLE.finditer(html)):
            if len(products) >= limit:
                break
            attrs, content = match.group(1), match.group(2)
            href = _HREF.search(attrs)
            title_match = _TITLE.search(content)
            if href is None or title_match is None:
                continue
            title = clean_title(
                html_lib.unescape(title_match.group(1)), self.brand_names
            )
            if not title:
                continue
            price_match = _PRICE.search(content)
            location_match = _LOCATION.search(content)
            products.append(
                self.build_product(
                    title=title,
                    price_text=price_match.group(1) if price_match else "",
                    product_url=absolute_url(href.group(1), self.base_url),
                    image_url=self._card_image(content),
                    location=(
                        collapse(location_match.group(1))
                        if location_match
                        else default_location
                    ),
                    key=index,
                )
            )
        return products

    def _extract_columns(self, html: str, limit: int) -> list[Product]:
        """Pair independent title/price/URL/image lists by position."""
        titles = [
            clean_title(html_lib.unescape(m), self.brand_names)
            for m in _TITLE.findall(html)
        ]
        titles = [t for t in titles if t]
        prices = [collapse(m) for m in _PRICE.findall(html)]
        urls = [
            absolute_url(m, self.base_url)
            for m in _ARTICLE_URL.findall(html)
        ]
        images = [
            url
            for url in (
                normalize_image_url(html_lib.unescape(m), self.base_url)
                for m in _CARD_IMAGES[0].findall(html)
            )
            if url
        ]
        self.logger.info(
            "[danggeun] Column pass: %d titles, %d prices, %d urls, "
            "%d images",
            len(titles),
            len(prices),
            len(urls),
            len(images),
        )
        products: list[Product] = []
        default_location = region_name(self.region)
        for index, title in enumerate(titles):
            if len(products) >= limit:
                break
            # Only listings with a real article URL survive.
            if index >= len(urls):
                break
            products.append(
                self.build_product(
                    title=title,
                    price_text=prices[index] if index < len(prices) else "",
                    product_url=urls[index],
                    image_url=images[index] if index < len(images) else "",
                    location=default_location,
                    key=f"col{index}",
                )
            )
        return products

    # ── DOM pass (rendered pages) ────────────────────────

    def accept_url(self, url: str) -> bool:
        return "/articles/" in url or "/buy-sell/" in url

    def card_location(self, card: Tag) -> str | None:
        return first_text(card, self.select("location")) or region_name(
            self.region
        )

    # ── Detail pages ─────────────────────────────────────

    def _location_from_url(self, product_url: str) -> str:
        values = parse_qs(urlparse(product_url).query).get("in")
        return region_name(values[0]) if values else ""

    def extract_detail(
        self, html: str, product_url: str,
    ) -> ProductDetail | None:
        soup = self.make_soup(html)
        title = self.detail_title(soup)
        if not title:
            return None
        description = self.detail_description(soup, title)
        # Region selectors, then the in= query parameter, then patterns.
        location = (
            first_text(soup, self.select("detail_location"))
            or self._location_from_url(product_url)
            or first_pattern(html, _LOCATION_PATTERNS)
            or self.label
        )
        return self.build_detail(
            title=title,
            price_text=self.detail_price_text(soup, html),
            product_url=product_url,
            image_url=self.detail_image(soup, html),
            description=description,
            seller_name=self.detail_seller(soup, html, _SELLER_PATTERNS),
            location=truncate(location, Settings.DETAIL_LOCATION_MAX_LENGTH),
            condition=detect_condition(f"{title} {description}"),
        )


class DanggeunScraper(BaseScraper):
    """Danggeun Market search for one configured neighbourhood."""

    base_url = "https://www.daangn.com"
    extractor_cls = DanggeunExtractor
    # Marker words only get logged; extraction still runs.
    block_markers: list[str] = []
    soft_block_markers = Settings.DANGGEUN_SOFT_BLOCK_MARKERS

    def __init__(
        self,
        cache: CacheStore | None = None,
        browser: BrowserManager | None = None,
        profile: RuntimeProfile | None = None,
    ) -> None:
        super().__init__("danggeun", cache, browser, profile)

    @property
    def region(self) -> str:
        return self.profile.danggeun_region

    def build_extractor(self) -> BaseExtractor:
        return DanggeunExtractor(self.selectors, region=self.region)

    def search_url(self, query: str) -> str:
        return (
            f"{self.base_url}/kr/buy-sell/"
            f"?in={quote(self.region)}&search={quote(query)}"
        )
