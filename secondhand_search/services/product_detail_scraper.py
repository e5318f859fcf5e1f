# secondhand_search/services/product_detail_scraper.py

"""Best-effort enrichment of listings with single-product detail."""

import asyncio
import logging

from curl_cffi import requests as curl_requests

from secondhand_search.config.runtime_profile import (
    RuntimeProfile,
    resolve_profile,
)
from secondhand_search.config.settings import Settings
from secondhand_search.models.product import (
    SOURCE_LABELS,
    ProductDetail,
    ProductSummary,
)
from secondhand_search.scrapers.bunjang_scraper import BunjangExtractor
from secondhand_search.scrapers.danggeun_scraper import DanggeunExtractor
from secondhand_search.scrapers.extraction import (
    BaseExtractor,
    load_selectors,
)
from secondhand_search.scrapers.junggonara_scraper import (
    JunggonaraExtractor,
)
from secondhand_search.services.browser_manager import (
    BrowserManager,
    get_browser_manager,
)

logger = logging.getLogger("secondhand_search.detail")

FALLBACK_CONDITION = "상품 상태 정보 없음"
FALLBACK_SELLER = "판매자"


def is_valid_detail(detail: ProductDetail) -> bool:
    """A plausible title that is not just the marketplace's name."""
    title = detail.title.strip()
    if not 3 < len(title) < 300:
        return False
    label = SOURCE_LABELS.get(detail.source, "")
    lowered = title.lower()
    return detail.source not in lowered and not (label and label in title)


def create_fallback_detail(summary: ProductSummary) -> ProductDetail:
    """Synthesize a detail record straight from the search summary."""
    label = SOURCE_LABELS.get(summary.source, summary.source)
    return ProductDetail(
        id=summary.id,
        title=summary.title,
        price=summary.price,
        price_text=summary.price_text,
        source=summary.source,
        product_url=summary.product_url,
        image_url=summary.image_url,
        description=f"{summary.title} - {label}에서 판매 중인 상품입니다.",
        condition=FALLBACK_CONDITION,
        seller_name=FALLBACK_SELLER,
        location=label,
        additional_images=[summary.image_url] if summary.image_url else [],
        specifications={"플랫폼": label},
        tags=[label],
    )


class ProductDetailScraper:
    """Fetches product pages and routes them to the source's extractor.

    Detail enrichment never fails the caller: every item that cannot be
    fetched or parsed in time is replaced by a fallback record, so the
    output is always 1:1 with the input.
    """

    def __init__(
        self,
        profile: RuntimeProfile | None = None,
        browser: BrowserManager | None = None,
        extractors: dict[str, BaseExtractor] | None = None,
    ) -> None:
        self.settings = Settings()
        self.profile: RuntimeProfile = (
            profile
            or (browser.profile if browser is not None else None)
            or resolve_profile()
        )
        self._browser = browser
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self.extractors: dict[str, BaseExtractor] = (
            extractors
            if extractors is not None
            else self._build_extractors()
        )
        self.fetch_count = 0

    def _build_extractors(self) -> dict[str, BaseExtractor]:
        return {
            "danggeun": DanggeunExtractor(
                load_selectors("danggeun"),
                region=self.profile.danggeun_region,
            ),
            "bunjang": BunjangExtractor(load_selectors("bunjang")),
            "junggonara": JunggonaraExtractor(
                load_selectors("junggonara")
            ),
        }

    @property
    def browser(self) -> BrowserManager:
        if self._browser is None:
            self._browser = get_browser_manager()
        return self._browser

    # ── Batch enrichment ─────────────────────────────────

    async def scrape_products_details(
        self, summaries: list[ProductSummary],
    ) -> list[ProductDetail]:
        """Enrich every summary, in order, in bounded concurrent batches."""
        batch_size = self.settings.DETAIL_MAX_CONCURRENT
        details: list[ProductDetail] = []
        for start in range(0, len(summaries), batch_size):
            batch = summaries[start:start + batch_size]
            logger.info(
                "Detail batch %d: %d products",
                start // batch_size + 1,
                len(batch),
            )
            details.extend(
                await asyncio.gather(
                    *(self._detail_or_fallback(s) for s in batch)
                )
            )
        return details

    async def _detail_or_fallback(
        self, summary: ProductSummary,
    ) -> ProductDetail:
        detail: ProductDetail | None = None
        try:
            detail = await asyncio.wait_for(
                self._fast_detail(summary.product_url, summary.source),
                timeout=self.profile.detail_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] Detail timed out for %s",
                summary.source,
                summary.product_url,
            )
        except Exception as exc:
            logger.warning(
                "[%s] Detail failed for %s: %s",
                summary.source,
                summary.product_url,
                exc,
            )

        if detail is None or not is_valid_detail(detail):
            return create_fallback_detail(summary)
        detail.id = summary.id
        detail.product_url = summary.product_url
        if not detail.image_url and summary.image_url:
            detail.image_url = summary.image_url
            detail.additional_images = [summary.image_url]
        return detail

    # ── Single-item enrichment ───────────────────────────

    async def scrape_product_detail(
        self,
        product_url: str,
        source: str,
        use_browser: bool = True,
    ) -> ProductDetail | None:
        """Fast-fetch, then (optionally) the rendered page; None on failure."""
        try:
            detail = await asyncio.wait_for(
                self._fast_detail(product_url, source),
                timeout=self.profile.fast_fetch_timeout,
            )
            if detail is not None and is_valid_detail(detail):
                return detail
        except Exception as exc:
            logger.warning(
                "[%s] Fast detail failed for %s: %s",
                source,
                product_url,
                exc,
            )

        if not use_browser:
            return None
        try:
            detail = await self._browser_detail(product_url, source)
        except Exception as exc:
            logger.error(
                "[%s] Browser detail failed for %s: %s",
                source,
                product_url,
                exc,
                exc_info=True,
            )
            return None
        if detail is not None and is_valid_detail(detail):
            return detail
        return None

    # ── Fetching ─────────────────────────────────────────

    def _fetch(self, url: str) -> str | None:
        """Plain GET of a product page; None on any failure."""
        self.fetch_count += 1
        try:
            resp = self.session.get(
                url,
                headers=self.settings.DEFAULT_HEADERS,
                timeout=self.profile.detail_timeout,
            )
        except Exception as exc:
            logger.warning("Detail fetch error for %s: %s", url, exc)
            return None
        if resp.status_code != 200:
            logger.warning(
                "Detail fetch HTTP %d for %s", resp.status_code, url
            )
            return None
        return str(resp.text)

    async def _fast_detail(
        self, product_url: str, source: str,
    ) -> ProductDetail | None:
        extractor = self.extractors.get(source)
        if extractor is None:
            logger.warning("No detail extractor for source '%s'", source)
            return None
        html = await asyncio.to_thread(self._fetch, product_url)
        if html is None:
            return None
        return extractor.extract_detail(html, product_url)

    async def _browser_detail(
        self, product_url: str, source: str,
    ) -> ProductDetail | None:
        extractor = self.extractors.get(source)
        if extractor is None:
            return None
        self.fetch_count += 1
        async with self.browser.page() as page:
            await page.goto(
                product_url,
                wait_until="domcontentloaded",
                timeout=self.profile.navigation_timeout * 1000,
            )
            html = await page.content()
        return extractor.extract_detail(html, product_url)
