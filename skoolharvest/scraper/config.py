"""Configuration constants for the community harvester."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Values already present in the environment take precedence over .env.
load_dotenv()


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _int_setting(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_setting(env_var: str, default: float) -> float:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _optional_int(env_var: str) -> Optional[int]:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


DATA_DIR: Path = Path(os.getenv("HARVEST_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
EXPORTS_DIR: Path = DATA_DIR / "exports"
DB_PATH: Path = Path(os.getenv("HARVEST_DB_PATH", str(DATA_DIR / "skool.db")))

PLATFORM_BASE_URL: str = "https://www.skool.com"
PLATFORM_COOKIE_DOMAIN: str = ".skool.com"
# A community URL is the platform host followed by a community slug.
COMMUNITY_URL_RE = re.compile(r"^https?://(?:www\.)?skool\.com/[^/?#\s]+", re.IGNORECASE)

SKOOL_COOKIE: str = os.getenv("SKOOL_COOKIE", "")
HEADLESS: bool = os.getenv("HEADLESS", "true").strip().lower() != "false"
USE_EXISTING_CHROME: bool = os.getenv("USE_EXISTING_CHROME", "false").strip().lower() == "true"
CHROME_CDP_URL: str = os.getenv("CHROME_CDP_URL", "http://localhost:9222")
SLOW_MO_MS: int = _int_setting("SLOW_MO", 0)
DEBUG: bool = bool(os.getenv("DEBUG", "").strip())

# Inter-page delay. SCRAPE_DELAY pins a fixed delay; otherwise a random value
# between the min/max bounds is used for every page advance.
SCRAPE_DELAY_MS: Optional[int] = _optional_int("SCRAPE_DELAY")
SCRAPE_DELAY_MIN_MS: int = _int_setting("SCRAPE_DELAY_MIN_MS", 1000)
SCRAPE_DELAY_MAX_MS: int = _int_setting("SCRAPE_DELAY_MAX_MS", 2000)

# Playwright timeouts (seconds)
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_NAV_TIMEOUT_SECONDS", 60)
SELECTOR_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_SELECTOR_TIMEOUT_SECONDS", 30)
# Pause after navigation so client-side redirects and rendering can finish.
SETTLE_SECONDS: float = _float_setting("HARVEST_SETTLE_SECONDS", 3.0)

USER_AGENT: str = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT: dict[str, int] = {"width": 1920, "height": 1080}
LOCALE: str = "en-US"
TIMEZONE_ID: str = "America/New_York"

COMMON_HEADERS: dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

BROWSER_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)


@dataclass
class HarvestConfig:
    """Everything a single harvest run needs, resolved once at the boundary.

    The crawl controller only ever reads this object; it never consults the
    environment or the module-level defaults above directly.
    """

    community_url: str
    cookie: str
    headless: bool = True
    use_existing_chrome: bool = False
    cdp_url: str = "http://localhost:9222"
    slow_mo_ms: int = 0
    fixed_delay_ms: Optional[int] = None
    delay_min_ms: int = 1000
    delay_max_ms: int = 2000
    debug: bool = False
    verify_session: bool = True
    nav_timeout_seconds: int = 60
    selector_timeout_seconds: int = 30
    settle_seconds: float = 3.0
    data_dir: Path = field(default_factory=lambda: DATA_DIR)

    def __post_init__(self) -> None:
        self.community_url = (self.community_url or "").strip().rstrip("/")
        self.data_dir = Path(self.data_dir)

    @property
    def nav_timeout_ms(self) -> int:
        return int(self.nav_timeout_seconds * 1000)

    @property
    def selector_timeout_ms(self) -> int:
        return int(self.selector_timeout_seconds * 1000)

    def backup_dir(self, task_type: str) -> Path:
        """Directory receiving the per-page JSON backups of ``task_type``."""

        return self.data_dir / task_type

    @property
    def screenshot_dir(self) -> Path:
        return self.data_dir / "screenshots"

    @classmethod
    def from_env(cls, community_url: str, **overrides) -> "HarvestConfig":
        """Build a config from the module defaults, applying CLI ``overrides``.

        ``None`` overrides are ignored so argparse defaults can be passed
        through unchanged.
        """

        values = dict(
            community_url=community_url,
            cookie=SKOOL_COOKIE,
            headless=HEADLESS,
            use_existing_chrome=USE_EXISTING_CHROME,
            cdp_url=CHROME_CDP_URL,
            slow_mo_ms=SLOW_MO_MS,
            fixed_delay_ms=SCRAPE_DELAY_MS,
            delay_min_ms=SCRAPE_DELAY_MIN_MS,
            delay_max_ms=SCRAPE_DELAY_MAX_MS,
            debug=DEBUG,
            nav_timeout_seconds=NAV_TIMEOUT_SECONDS,
            selector_timeout_seconds=SELECTOR_TIMEOUT_SECONDS,
            settle_seconds=SETTLE_SECONDS,
            data_dir=DATA_DIR,
        )
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


__all__ = ["HarvestConfig"]
