# secondhand_search/config/settings.py

"""Central configuration for the secondhand_search engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the secondhand_search engine."""

    # --- Fast-fetch ---
    FAST_FETCH_TIMEOUT: int = 8         # Seconds before a plain GET gives up
    FAST_FETCH_RETRIES: int = 1         # Attempts per fast-fetch call
    REQUEST_DELAY: float = 0.5          # Backoff base between retries
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    MIN_REQUEST_TIMEOUT: float = 1.0    # Skip a fallback GET with less left

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0
    MIN_CONTENT_LENGTH: int = 5000      # Shorter HTML bodies are block pages
    BLOCK_MARKERS: list[str] = [
        "captcha",
        "access denied",
        "forbidden",
        "unusual traffic",
        "automated requests",
        "비정상적인 접근",
    ]
    # Matched case-sensitively over the whole page
    JUNGGONARA_BLOCK_MARKERS: list[str] = [
        "Access Denied",
        "Forbidden",
        "captcha",
    ]
    DANGGEUN_SOFT_BLOCK_MARKERS: list[str] = ["차단", "robot", "captcha"]
    CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    # --- Cache ---
    QUERY_CACHE_TTL: float = 900.0      # 15 min; listings go stale quickly
    CACHE_PERSIST: bool = (
        os.getenv("SECONDHAND_CACHE_PERSIST", "0") == "1"
    )

    # --- Extraction ---
    TITLE_MAX_LENGTH: int = 100
    DETAIL_TITLE_MAX_LENGTH: int = 200
    DESCRIPTION_MAX_LENGTH: int = 300
    LOCATION_MAX_LENGTH: int = 50
    DETAIL_LOCATION_MAX_LENGTH: int = 20
    SELLER_MAX_LENGTH: int = 20
    MIN_TITLE_LENGTH: int = 3
    PRICE_FLOOR: int = 1000             # Smaller numbers are rarely prices
    PRICE_INQUIRY: str = "가격 문의"
    PRICE_UNKNOWN: str = "가격 정보 없음"
    CONDITION_UNKNOWN: str = "상태 정보 없음"
    EXCLUDED_IMAGE_TOKENS: list[str] = [
        "avatar",
        "icon",
        "logo",
        "profile",
    ]
    NON_PRODUCT_TITLES: list[str] = [
        "판매하기",
        "등록하기",
        "상품등록",
        "글쓰기",
        "로그인",
        "회원가입",
    ]
    CONDITION_KEYWORDS: list[str] = [
        "완전새상품",
        "새상품",
        "거의새것",
        "미개봉",
        "사용감없음",
        "사용감적음",
        "사용감많음",
        "상급",
        "중급",
        "하급",
        "A급",
        "B급",
        "C급",
        "리퍼",
        "깨끗",
        "양호",
    ]

    # --- Browser ---
    BROWSER_USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    BROWSER_VIEWPORT: dict[str, int] = {"width": 1280, "height": 800}
    BROWSER_LOCALE: str = "ko-KR"
    BROWSER_ARGS: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-default-apps",
        "--disable-extensions",
        "--disable-background-timer-throttling",
        "--disable-backgrounding-occluded-windows",
        "--disable-renderer-backgrounding",
    ]
    BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset(
        {"image", "font", "stylesheet", "media"}
    )
    BLOCKED_URL_TOKENS: list[str] = [
        "google-analytics.com",
        "googletagmanager.com",
        "doubleclick.net",
        "facebook.net",
        "analytics",
    ]
    LOCAL_CHROME_PATHS: list[str] = [
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
    ]
    SCROLL_STEPS: int = 3
    SCROLL_DELAY_MS: int = 400
    LAUNCH_POLL_INTERVAL: float = 0.1

    # --- Search ---
    DEFAULT_LIMIT: int = 20
    MAX_LIMIT: int = 100
    REQUEST_GRACE: float = 5.0         # Slack past total_timeout per request
    SOURCE_GRACE: float = 1.0          # Backstop past a source deadline
    DEFAULT_SOURCES: list[str] = ["danggeun", "bunjang", "junggonara"]
    SOURCE_PRIORITY: dict[str, int] = {
        "junggonara": 1,
        "bunjang": 2,
        "danggeun": 3,
    }

    # --- Health check ---
    HEALTH_TIMEOUT: float = 10.0
    HEALTH_SLOW_MS: float = 5000.0

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # --- Detail enrichment ---
    DETAIL_MAX_CONCURRENT: int = 6

    # --- Region ---
    DANGGEUN_REGION: str = os.getenv("DANGGEUN_REGION", "마장동-56")

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome120"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": "ko-KR,ko;q=0.9,en;q=0.8",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "sec-ch-ua": (
            '"Google Chrome";v="120", '
            '"Chromium";v="120", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"macOS"',
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "secondhand_search" / "config" / "selectors.json"
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
    CACHE_DIR: Path = BASE_DIR / ".cache"

    # --- Sources ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "danggeun",
            "label": "당근마켓",
            "scraper": (
                "secondhand_search.scrapers.danggeun_scraper"
                ".DanggeunScraper"
            ),
        },
        {
            "id": "bunjang",
            "label": "번개장터",
            "scraper": (
                "secondhand_search.scrapers.bunjang_scraper"
                ".BunjangScraper"
            ),
        },
        {
            "id": "junggonara",
            "label": "중고나라",
            "scraper": (
                "secondhand_search.scrapers.junggonara_scraper"
                ".JunggonaraScraper"
            ),
        },
    ]
