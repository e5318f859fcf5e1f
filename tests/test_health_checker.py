# tests/test_health_checker.py

"""Tests for the marketplace health checker service."""

import unittest
from unittest.mock import MagicMock, patch

from secondhand_search.services.health_checker import (
    HealthChecker,
    HealthResult,
    check_source,
    classify,
    overall_status,
)


def _mock_scraper(status: int = 200) -> MagicMock:
    """Scraper double whose session answers with ``status``."""
    mock_scraper = MagicMock()
    mock_scraper._get_homepage.return_value = "https://www.bunjang.co.kr/"
    mock_scraper.settings = MagicMock()
    mock_scraper.settings.DEFAULT_HEADERS = {"Accept-Language": "ko-KR"}
    mock_resp = MagicMock()
    mock_resp.status_code = status
    mock_resp.text = "<html><body>번개장터 홈</body></html>"
    mock_scraper.block_markers = ["Access Denied", "captcha"]
    mock_scraper.block_markers_case_sensitive = False
    mock_scraper.session.get.return_value = mock_resp
    return mock_scraper


def _result(source_id: str, status: str) -> HealthResult:
    return HealthResult(
        source_id=source_id, status=status, latency_ms=120.4, message=""
    )


class TestCheckSource(unittest.TestCase):
    """One homepage request per source."""

    def _make_source(
        self,
        source_id: str = "bunjang",
        scraper_path: str = (
            "secondhand_search.scrapers.bunjang_scraper.BunjangScraper"
        ),
    ) -> dict[str, str]:
        """Build a minimal source config dict."""
        return {"id": source_id, "scraper": scraper_path}

    @patch("secondhand_search.services.health_checker.importlib")
    def test_ok_status(self, mock_importlib: MagicMock) -> None:
        """A fast 200 response should return 'ok' status."""
        mock_scraper = _mock_scraper(200)
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=mock_scraper),
        )

        result = check_source(self._make_source())

        self.assertEqual(result.status, "ok")
        self.assertGreaterEqual(result.latency_ms, 0)
        url = mock_scraper.session.get.call_args[0][0]
        headers = mock_scraper.session.get.call_args[1]["headers"]
        self.assertEqual(url, "https://www.bunjang.co.kr/")
        self.assertEqual(headers["Referer"], "https://www.bunjang.co.kr/")

    @patch("secondhand_search.services.health_checker.importlib")
    def test_profile_is_passed_to_scraper(
        self, mock_importlib: MagicMock,
    ) -> None:
        mock_cls = MagicMock(return_value=_mock_scraper())
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=mock_cls,
        )
        profile = MagicMock()

        check_source(self._make_source(), profile)

        mock_cls.assert_called_once_with(profile=profile)

    @patch("secondhand_search.services.health_checker.importlib")
    def test_down_on_http_error(
        self, mock_importlib: MagicMock,
    ) -> None:
        """A non-200 response should return 'down' status."""
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=_mock_scraper(403)),
        )

        result = check_source(self._make_source())

        self.assertEqual(result.status, "down")
        self.assertIn("403", result.message)

    @patch("secondhand_search.services.health_checker.time")
    @patch("secondhand_search.services.health_checker.importlib")
    def test_slow_on_high_latency(
        self, mock_importlib: MagicMock, mock_time: MagicMock,
    ) -> None:
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=_mock_scraper(200)),
        )
        mock_time.monotonic.side_effect = [100.0, 106.5]

        result = check_source(self._make_source())

        self.assertEqual(result.status, "slow")
        self.assertEqual(round(result.latency_ms), 6500)

    @patch("secondhand_search.services.health_checker.importlib")
    def test_down_on_exception(
        self, mock_importlib: MagicMock,
    ) -> None:
        """A network error should return 'down' status."""
        mock_scraper = _mock_scraper()
        mock_scraper.session.get.side_effect = ConnectionError(
            "Connection refused",
        )
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=mock_scraper),
        )

        result = check_source(self._make_source())

        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)

    @patch("secondhand_search.services.health_checker.importlib")
    def test_block_page_is_down(self, mock_importlib: MagicMock) -> None:
        mock_scraper = _mock_scraper(200)
        mock_scraper.session.get.return_value.text = (
            "<html><body>Please solve the CAPTCHA</body></html>"
        )
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=mock_scraper),
        )

        result = check_source(self._make_source())

        self.assertEqual(result.status, "down")
        self.assertEqual(result.message, "Block page (captcha)")

    @patch("secondhand_search.services.health_checker.importlib")
    def test_case_sensitive_markers(self, mock_importlib: MagicMock) -> None:
        """Junggonara-style markers only match their exact case."""
        mock_scraper = _mock_scraper(200)
        mock_scraper.block_markers_case_sensitive = True
        mock_scraper.session.get.return_value.text = (
            "<html><body>신고/차단 안내 · access denied 예시</body></html>"
        )
        mock_importlib.import_module.return_value = MagicMock(
            BunjangScraper=MagicMock(return_value=mock_scraper),
        )

        self.assertEqual(check_source(self._make_source()).status, "ok")

    def test_down_on_bad_scraper_path(self) -> None:
        """An invalid scraper path should return 'down'."""
        source = self._make_source(
            scraper_path="nonexistent.module.BadClass",
        )
        result = check_source(source)
        self.assertEqual(result.status, "down")
        self.assertIn("Failed to load", result.message)


class TestClassify(unittest.TestCase):
    """Grading of a single homepage response."""

    def test_http_error_wins(self) -> None:
        self.assertEqual(
            classify(503, 9000.0, "captcha"), ("down", "HTTP 503")
        )

    def test_slow_threshold(self) -> None:
        self.assertEqual(classify(200, 5000.0), ("ok", ""))
        self.assertEqual(classify(200, 5001.0), ("slow", "High latency"))


class TestOverallStatus(unittest.TestCase):
    """Aggregate status across sources."""

    def test_all_ok(self) -> None:
        results = [_result("bunjang", "ok"), _result("danggeun", "ok")]
        self.assertEqual(overall_status(results), "ok")

    def test_mixed_is_degraded(self) -> None:
        results = [_result("bunjang", "ok"), _result("danggeun", "slow")]
        self.assertEqual(overall_status(results), "degraded")

    def test_all_down(self) -> None:
        self.assertEqual(
            overall_status([_result("bunjang", "down")]), "down"
        )

    def test_no_results(self) -> None:
        self.assertEqual(overall_status([]), "down")

    def test_to_dict_rounds_latency(self) -> None:
        self.assertEqual(
            _result("bunjang", "ok").to_dict(),
            {
                "source_id": "bunjang",
                "status": "ok",
                "latency_ms": 120,
                "message": "",
            },
        )


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    """Tests for the HealthChecker orchestrator."""

    @patch("secondhand_search.services.health_checker.check_source")
    async def test_check_all_returns_all_sources(
        self, mock_check: MagicMock,
    ) -> None:
        """check_all should return one result per source."""
        mock_check.side_effect = lambda src, profile: _result(
            src["id"], "ok"
        )

        checker = HealthChecker(MagicMock())
        results = await checker.check_all()

        self.assertEqual(
            [r.source_id for r in results],
            ["danggeun", "bunjang", "junggonara"],
        )


if __name__ == "__main__":
    unittest.main()
