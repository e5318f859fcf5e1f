# secondhand_search/scrapers/extraction.py

"""Shared field-extraction rules used by every source extractor."""

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from secondhand_search.config.settings import Settings
from secondhand_search.models.product import (
    Product,
    ProductDetail,
    make_product_id,
)

# Currency-suffixed amounts: "920,000원", "15000 원".
PRICE_PATTERN = re.compile(r"\d{1,3}(?:,\d{3})+\s*원|\d+\s*원")
_BACKGROUND_URL = re.compile(r"url\(['\"]?(.*?)['\"]?\)")
_WHITESPACE = re.compile(r"\s+")
_JSON_PRICE = re.compile(r'"price"\s*:\s*"?(\d{1,3}(?:,\d{3})+|\d+)"?')


def parse_price(text: str | None) -> int:
    """Strip every non-digit character; 0 means unknown."""
    if not text:
        return 0
    digits = re.sub(r"[^0-9]", "", text)
    return int(digits) if digits else 0


def find_price_text(
    text: str,
    floor: int = Settings.PRICE_FLOOR,
) -> str:
    """Return the first currency-suffixed amount at or above ``floor``."""
    for match in PRICE_PATTERN.finditer(text):
        candidate = match.group(0).strip()
        if parse_price(candidate) >= floor:
            return candidate
    return ""


def format_price(price: int) -> str:
    """Render a known price the way the marketplaces display it."""
    if price <= 0:
        return Settings.PRICE_INQUIRY
    return f"{price:,}원"


def collapse(text: str | None) -> str:
    """Collapse runs of whitespace and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, length: int) -> str:
    """Cut to ``length`` characters and trim."""
    return text[:length].strip()


def absolute_url(href: str | None, base_url: str) -> str:
    """Resolve a listing href against the source's base URL."""
    if not href:
        return ""
    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return urljoin(base_url.rstrip("/") + "/", href.lstrip("/"))


def is_excluded_image(url: str) -> bool:
    """True for avatars, icons, logos and profile pictures."""
    lowered = url.lower()
    return any(
        token in lowered for token in Settings.EXCLUDED_IMAGE_TOKENS
    )


def normalize_image_url(url: str | None, base_url: str) -> str:
    """Return an absolute https image URL, or "" when unusable."""
    if not url:
        return ""
    url = url.strip()
    if not url or url.startswith("data:") or is_excluded_image(url):
        return ""
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return base_url.rstrip("/") + url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def first_text(node: Tag | BeautifulSoup, selectors: list[str]) -> str:
    """Text of the first selector that yields non-empty content."""
    for selector in selectors:
        try:
            found = node.select_one(selector)
        except ValueError:
            # Unsupported selector syntax in soupsieve
            continue
        if found is None:
            continue
        if found.name == "meta":
            text = str(found.get("content") or "")
        else:
            text = found.get_text(" ", strip=True)
        text = collapse(text)
        if text:
            return text
    return ""


def first_attr(node: Tag | None, attrs: list[str]) -> str:
    """Value of the first attribute in ``attrs`` that is present."""
    if node is None:
        return ""
    for attr in attrs:
        value = node.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        if value:
            return str(value).strip()
    return ""


def background_image(node: Tag) -> str:
    """URL from an inline ``background-image`` style, if any."""
    styled = node.select_one('[style*="background-image"]')
    if styled is None:
        return ""
    match = _BACKGROUND_URL.search(str(styled.get("style") or ""))
    return match.group(1) if match else ""


def meta_content(soup: BeautifulSoup, prop: str) -> str:
    """Content of ``<meta property=…>`` or ``<meta name=…>``."""
    tag = soup.find("meta", attrs={"property": prop}) or soup.find(
        "meta", attrs={"name": prop}
    )
    if isinstance(tag, Tag):
        return collapse(str(tag.get("content") or ""))
    return ""


def is_non_product_title(title: str) -> bool:
    """True when the whole title is a navigation label such as 판매하기."""
    return collapse(title) in Settings.NON_PRODUCT_TITLES


def clean_title(
    text: str | None,
    brand_names: list[str] | None = None,
    max_length: int = Settings.TITLE_MAX_LENGTH,
) -> str:
    """Validate a title candidate; "" when it should be rejected."""
    title = collapse(text)
    if len(title) < Settings.MIN_TITLE_LENGTH:
        return ""
    if brand_names and title in brand_names:
        return ""
    if is_non_product_title(title):
        return ""
    return truncate(title, max_length)


def detect_condition(text: str) -> str:
    """Find a condition label in free text, or the unknown sentinel."""
    explicit = re.search(r"(?:상태|품질)\s*[:：]\s*([^<>\n.,]{1,20})", text)
    if explicit:
        return explicit.group(1).strip()
    for keyword in Settings.CONDITION_KEYWORDS:
        if keyword.lower() in text.lower():
            return keyword
    return Settings.CONDITION_UNKNOWN


def first_pattern(
    html: str,
    patterns: list[re.Pattern[str]],
    reject: tuple[str, ...] = (),
) -> str:
    """First capture group of the first matching pattern."""
    for pattern in patterns:
        match = pattern.search(html)
        if not match:
            continue
        value = match.group(1).strip()
        if value and not any(r in value for r in reject):
            return value
    return ""


def json_ld_offers(soup: BeautifulSoup) -> dict[str, Any]:
    """Merge the JSON-LD Product blocks embedded in a detail page."""
    merged: dict[str, Any] = {}
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (TypeError, ValueError):
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and item.get("@type") == "Product":
                merged.update(item)
    return merged


def paragraph_text(
    soup: BeautifulSoup,
    exclude: tuple[str, ...],
    min_length: int = 20,
) -> str:
    """First ``<p>`` with real content that mentions none of ``exclude``."""
    for paragraph in soup.find_all("p"):
        text = collapse(paragraph.get_text(" ", strip=True))
        if len(text) > min_length and not any(e in text for e in exclude):
            return text
    return ""


def load_selectors(
    source: str,
    path: Path = Settings.SELECTORS_PATH,
) -> dict[str, list[str]]:
    """CSS selector candidates for ``source`` from selectors.json."""
    with open(path, encoding="utf-8") as f:
        all_selectors: dict[str, Any] = json.load(f)
    result: dict[str, list[str]] = all_selectors.get(source, {})
    return result


def now_iso() -> str:
    """UTC timestamp stamped onto freshly extracted listings."""
    return datetime.now(timezone.utc).isoformat()


class BaseExtractor(ABC):
    """Source-specific parsing rules behind one uniform contract.

    Extractors are pure: they take HTML and return Products, never
    touching the network.  A card missing its title or URL is dropped
    silently; a malformed card never aborts the rest of the page.
    """

    source: str = ""
    label: str = ""
    base_url: str = ""
    brand_names: list[str] = []
    image_patterns: list[re.Pattern[str]] = []
    # Site chrome that never belongs to a listing description.
    chrome_phrases: tuple[str, ...] = ("로그인", "회원가입")

    def __init__(self, selectors: dict[str, list[str]] | None = None) -> None:
        self.selectors: dict[str, list[str]] = selectors or {}
        self.logger = logging.getLogger(
            f"secondhand_search.{self.source}"
        )

    def select(self, name: str) -> list[str]:
        """Selector candidates for ``name`` in priority order."""
        return list(self.selectors.get(name, []))

    @abstractmethod
    def extract(self, html: str, limit: int) -> list[Product]:
        """Extract up to ``limit`` listings in document order."""
        ...

    @abstractmethod
    def extract_detail(
        self, html: str, product_url: str,
    ) -> ProductDetail | None:
        """Extract a single product page, or ``None`` if unusable."""
        ...

    def make_soup(self, html: str) -> BeautifulSoup:
        """Parse HTML with lxml, tolerating malformed markup."""
        return BeautifulSoup(html, "lxml")

    def find_cards(self, soup: BeautifulSoup) -> list[Tag]:
        """Cards for the first ``card`` selector that matches anything."""
        for selector in self.select("card"):
            cards = soup.select(selector)
            if cards:
                self.logger.debug(
                    "[%s] Card selector '%s' matched %d elements",
                    self.source,
                    selector,
                    len(cards),
                )
                return cards
        self.logger.info("[%s] No listing cards found", self.source)
        return []

    def card_image(self, card: Tag) -> str:
        """First usable image from the card's image candidates."""
        attrs = self.select("image_attrs") or ["src", "data-src"]
        for img in card.find_all("img"):
            url = normalize_image_url(
                first_attr(img, attrs), self.base_url
            )
            if url:
                return url
        return normalize_image_url(background_image(card), self.base_url)

    def card_url(self, card: Tag) -> str:
        """Absolute listing URL for a card (the card or its first link)."""
        href = card.get("href") if card.name == "a" else None
        if not href:
            link = card.find("a", href=True)
            href = link.get("href") if isinstance(link, Tag) else None
        return absolute_url(str(href) if href else "", self.base_url)

    def card_price_text(self, card: Tag) -> str:
        """Price text from selectors, else the first amount in the card."""
        text = first_text(card, self.select("price"))
        if text and "원" in text:
            return text
        return find_price_text(card.get_text(" ", strip=True), floor=0)

    def card_title(self, card: Tag) -> str:
        """Title from selectors, else the image alt text."""
        text = first_text(card, self.select("title"))
        if not text:
            img = card.find("img")
            text = first_attr(img if isinstance(img, Tag) else None, ["alt"])
        return clean_title(text, self.brand_names)

    def card_location(self, card: Tag) -> str | None:
        return first_text(card, self.select("location")) or None

    def accept_url(self, url: str) -> bool:
        """True when ``url`` points at a single listing."""
        return bool(url)

    def parse_card(self, card: Tag, index: int) -> Product | None:
        """One card to a Product; ``None`` when title or URL is missing."""
        url = self.card_url(card)
        if not self.accept_url(url):
            return None
        title = self.card_title(card)
        if not title:
            return None
        return self.build_product(
            title=title,
            price_text=self.card_price_text(card),
            product_url=url,
            image_url=self.card_image(card),
            location=self.card_location(card),
            key=index,
        )

    def extract_cards(self, html: str, limit: int) -> list[Product]:
        """DOM pass over the listing cards of a (rendered) results page."""
        if limit <= 0:
            return []
        soup = self.make_soup(html)
        products: list[Product] = []
        for index, card in enumerate(self.find_cards(soup)):
            if len(products) >= limit:
                break
            try:
                product = self.parse_card(card, index)
            except (AttributeError, TypeError, ValueError) as exc:
                self.logger.debug(
                    "[%s] Skipping malformed card %d: %s",
                    self.source,
                    index,
                    exc,
                )
                continue
            if product is not None:
                products.append(product)
        return products

    def build_product(
        self,
        title: str,
        price_text: str,
        product_url: str,
        image_url: str,
        location: str | None,
        key: str | int,
    ) -> Product:
        """Assemble a normalised Product from extracted fields."""
        price_text = collapse(price_text) or Settings.PRICE_INQUIRY
        return Product(
            id=make_product_id(self.source, key),
            title=title,
            price=parse_price(price_text),
            price_text=price_text,
            source=self.source,
            product_url=product_url,
            image_url=image_url,
            location=(
                truncate(location, Settings.LOCATION_MAX_LENGTH)
                if location
                else None
            ),
            timestamp=now_iso(),
        )

    # ── Detail pages ─────────────────────────────────────

    def detail_title(self, soup: BeautifulSoup) -> str:
        """First title candidate that is not the marketplace's own name."""
        candidates = [meta_content(soup, "og:title")]
        if soup.title is not None:
            candidates.append(
                soup.title.get_text(" ", strip=True).replace(
                    f" - {self.label}", ""
                )
            )
        candidates.extend(
            first_text(soup, [selector])
            for selector in ["h1", *self.select("detail_title")]
        )
        for candidate in candidates:
            title = collapse(candidate)
            if len(title) > Settings.MIN_TITLE_LENGTH and not (
                self.label and self.label in title
            ):
                return truncate(title, Settings.DETAIL_TITLE_MAX_LENGTH)
        return ""

    def detail_description(
        self, soup: BeautifulSoup, title: str = "",
    ) -> str:
        """Meta description, then content selectors, then paragraphs."""
        selectors = [
            'meta[property="og:description"]',
            'meta[name="description"]',
            *self.select("detail_description"),
        ]
        for selector in selectors:
            text = first_text(soup, [selector])
            if len(text) > 15 and text != title:
                return truncate(text, Settings.DESCRIPTION_MAX_LENGTH)
        exclude = tuple(
            phrase for phrase in (self.label, *self.chrome_phrases) if phrase
        )
        text = paragraph_text(soup, exclude)
        if text and text != title:
            return truncate(text, Settings.DESCRIPTION_MAX_LENGTH)
        return ""

    def detail_price_text(self, soup: BeautifulSoup, html: str) -> str:
        """JSON-LD offer price, else the first plausible amount on the page."""
        offers = json_ld_offers(soup).get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if isinstance(offers, dict):
            raw = str(offers.get("price", "")).replace(",", "")
            try:
                amount = int(float(raw))
            except ValueError:
                amount = 0
            if amount > 0:
                return format_price(amount)
        text = find_price_text(soup.get_text(" ", strip=True))
        if text:
            return text
        match = _JSON_PRICE.search(html)
        if match and parse_price(match.group(1)) >= Settings.PRICE_FLOOR:
            return format_price(parse_price(match.group(1)))
        return ""

    def detail_seller(
        self,
        soup: BeautifulSoup,
        html: str,
        patterns: list[re.Pattern[str]],
    ) -> str:
        """Seller nickname from selectors, then inline JSON/text patterns."""
        name = first_text(soup, self.select("detail_seller"))
        if name and name != self.label:
            return truncate(name, Settings.SELLER_MAX_LENGTH)
        name = first_pattern(html, patterns, reject=(self.label,))
        return truncate(name, Settings.SELLER_MAX_LENGTH)

    def detail_location(
        self,
        soup: BeautifulSoup,
        html: str,
        patterns: list[re.Pattern[str]],
    ) -> str:
        """Region from selectors, then inline JSON/text patterns."""
        location = first_text(soup, self.select("detail_location"))
        if not location:
            location = first_pattern(html, patterns)
        return truncate(location, Settings.DETAIL_LOCATION_MAX_LENGTH)

    def detail_image(self, soup: BeautifulSoup, html: str) -> str:
        """og:image first, then source CDN patterns, then any image file."""
        url = normalize_image_url(
            meta_content(soup, "og:image"), self.base_url
        )
        if url:
            return url
        for pattern in self.image_patterns:
            for match in pattern.finditer(html):
                url = normalize_image_url(match.group(1), self.base_url)
                if url:
                    return url
        return ""

    def build_detail(
        self,
        title: str,
        price_text: str,
        product_url: str,
        image_url: str,
        description: str,
        seller_name: str,
        location: str | None,
        condition: str,
    ) -> ProductDetail:
        """Assemble a ProductDetail with this source's defaults."""
        price_text = collapse(price_text) or Settings.PRICE_UNKNOWN
        return ProductDetail(
            id=make_product_id(self.source, "detail"),
            title=title,
            price=parse_price(price_text),
            price_text=price_text,
            source=self.source,
            product_url=product_url,
            image_url=image_url,
            location=(
                truncate(location, Settings.LOCATION_MAX_LENGTH)
                if location
                else None
            ),
            description=(
                description or f"{title} - {self.label}에서 판매 중인 상품입니다."
            ),
            condition=condition,
            seller_name=seller_name or f"{self.label} 판매자",
            timestamp=now_iso(),
            additional_images=[image_url] if image_url else [],
            specifications={"플랫폼": self.label},
            tags=[self.label],
        )
