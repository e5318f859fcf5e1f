# tests/test_cli.py

"""Tests for the headless CLI runner and argument parsing."""

import io
import json
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from main import _build_parser
from secondhand_search.cli.runner import (
    cli_search,
    parse_source_csv,
    run_health_check,
)
from secondhand_search.errors import InvalidSourceError
from secondhand_search.models.product import Product, ProductDetail
from secondhand_search.services.health_checker import HealthResult
from secondhand_search.services.search_orchestrator import SearchResult


def _make_product(title: str, price: int) -> Product:
    """Create a minimal Product with the given title and price."""
    return Product(
        id=f"bunjang-{title}",
        title=title,
        price=price,
        price_text=f"{price:,}원",
        source="bunjang",
        product_url=f"https://www.bunjang.co.kr/products/{price}",
    )


def _mock_orchestrator(result: SearchResult | Exception) -> MagicMock:
    orchestrator = MagicMock()
    if isinstance(result, Exception):
        orchestrator.search = AsyncMock(side_effect=result)
    else:
        orchestrator.search = AsyncMock(return_value=result)
    orchestrator.aclose = AsyncMock()
    return orchestrator


class TestParser(unittest.TestCase):
    """Argument parsing."""

    def test_defaults(self) -> None:
        args = _build_parser().parse_args(["아이폰 14"])
        self.assertEqual(args.query, "아이폰 14")
        self.assertIsNone(args.sources)
        self.assertEqual(args.limit, 20)
        self.assertEqual(args.output_format, "json")
        self.assertFalse(args.force_refresh)
        self.assertFalse(args.details)

    def test_flags(self) -> None:
        args = _build_parser().parse_args(
            ["맥북", "-s", "bunjang,danggeun", "-l", "5", "--refresh",
             "-f", "table"]
        )
        self.assertEqual(args.sources, "bunjang,danggeun")
        self.assertEqual(args.limit, 5)
        self.assertTrue(args.force_refresh)
        self.assertEqual(args.output_format, "table")

    def test_parse_source_csv(self) -> None:
        self.assertIsNone(parse_source_csv(None))
        self.assertEqual(
            parse_source_csv(" bunjang, ,danggeun "), ["bunjang", "danggeun"]
        )
        self.assertEqual(parse_source_csv(""), [])


class TestCliSearch(unittest.IsolatedAsyncioTestCase):
    """Headless search output and exit codes."""

    async def test_json_output(self) -> None:
        result = SearchResult(
            query="아이폰",
            sources=["bunjang"],
            products=[_make_product("아이폰 14", 900000)],
            source_counts={"bunjang": 1},
        )
        orchestrator = _mock_orchestrator(result)

        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await cli_search(
                "아이폰", "bunjang", 10, False, "json",
                orchestrator=orchestrator,
            )

        self.assertEqual(code, 0)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["products"][0]["title"], "아이폰 14")
        orchestrator.search.assert_awaited_once_with(
            "아이폰", ["bunjang"], 10, False
        )
        orchestrator.aclose.assert_awaited_once()

    async def test_table_output(self) -> None:
        result = SearchResult(
            query="아이폰", products=[_make_product("아이폰 14", 900000)]
        )
        orchestrator = _mock_orchestrator(result)

        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await cli_search(
                "아이폰", None, 20, False, "table",
                orchestrator=orchestrator,
            )

        self.assertEqual(code, 0)
        self.assertIn("900,000원", out.getvalue())

    async def test_zero_results_is_success(self) -> None:
        orchestrator = _mock_orchestrator(SearchResult(query="없는상품"))
        with patch("sys.stdout", new_callable=io.StringIO):
            code = await cli_search(
                "없는상품", None, 20, False, "json",
                orchestrator=orchestrator,
            )
        self.assertEqual(code, 0)

    async def test_rejected_request(self) -> None:
        orchestrator = _mock_orchestrator(
            InvalidSourceError("Unknown source", details="ebay")
        )
        code = await cli_search(
            "아이폰", "ebay", 20, False, "json", orchestrator=orchestrator
        )
        self.assertEqual(code, 1)
        orchestrator.aclose.assert_awaited_once()

    async def test_with_details(self) -> None:
        result = SearchResult(
            query="아이폰", products=[_make_product("아이폰 14", 900000)]
        )
        orchestrator = _mock_orchestrator(result)
        detail_scraper = MagicMock()
        detail_scraper.scrape_products_details = AsyncMock(
            return_value=[
                ProductDetail(
                    id="bunjang-아이폰 14",
                    title="아이폰 14",
                    price=900000,
                    price_text="900,000원",
                    source="bunjang",
                    product_url="https://www.bunjang.co.kr/products/900000",
                    seller_name="폰팔이상점",
                )
            ]
        )

        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await cli_search(
                "아이폰", None, 20, False, "json",
                with_details=True,
                orchestrator=orchestrator,
                detail_scraper=detail_scraper,
            )

        self.assertEqual(code, 0)
        details = json.loads(out.getvalue())
        self.assertEqual(details[0]["sellerName"], "폰팔이상점")
        summaries = detail_scraper.scrape_products_details.call_args[0][0]
        self.assertEqual(summaries[0].product_url, result.products[0].product_url)


class TestHealthCommand(unittest.IsolatedAsyncioTestCase):
    """Exit code of the health table."""

    def _checker(self, *statuses: str) -> MagicMock:
        checker = MagicMock()
        checker.check_all = AsyncMock(
            return_value=[
                HealthResult(source, status, 100.0, "")
                for source, status in zip(
                    ["danggeun", "bunjang", "junggonara"], statuses
                )
            ]
        )
        return checker

    async def test_all_ok(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO):
            code = await run_health_check(self._checker("ok", "slow", "ok"))
        self.assertEqual(code, 0)

    async def test_any_down(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO):
            code = await run_health_check(self._checker("ok", "down", "ok"))
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
