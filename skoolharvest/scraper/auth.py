"""Session cookie injection and logged-in verification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from playwright.sync_api import Error as PWError

from . import config
from .errors import AuthSetupError, NavigationError
from .logging_utils import _harvest_event
from .utils import log_line, log_warning

LOGGED_IN_INDICATORS: tuple[str, ...] = (
    '[data-testid="user-menu"]',
    '[aria-label="User menu"]',
    ".user-avatar",
    'img[alt*="avatar"]',
    'button[aria-label*="profile"]',
    'a[href*="/settings"]',
    ".member-avatar",
    '[class*="avatar"]',
)
MEMBER_CONTENT_PROBE = '[class*="member"], [data-testid*="member"]'


@dataclass
class BrowserSession:
    """A browsing context plus the single page the harvester drives."""

    context: Any
    page: Any
    owns_context: bool = True
    verified: Optional[bool] = None

    def close(self) -> None:
        # Pages and contexts borrowed from an existing Chrome stay open.
        if not self.owns_context:
            return
        for target in (self.page, self.context):
            try:
                target.close()
            except PWError as exc:
                log_warning(f"[AUTH] Error while closing browser session: {exc}")


def parse_cookie_string(raw: str, *, domain: str = config.PLATFORM_COOKIE_DOMAIN) -> List[Dict[str, Any]]:
    """Parse ``"name=value; name2=value2"`` into Playwright cookie dicts.

    Values may contain ``=``; only the first one separates name from value.
    Pairs with an empty name or value are dropped.
    """

    cookies: List[Dict[str, Any]] = []
    for pair in (raw or "").split(";"):
        name, sep, value = pair.strip().partition("=")
        name = name.strip()
        value = value.strip()
        if not sep or not name or not value:
            continue
        cookies.append(
            {
                "name": name,
                "value": value,
                "domain": domain,
                "path": "/",
                "httpOnly": True,
                "secure": True,
                "sameSite": "Lax",
            }
        )
    return cookies


class SessionAuthenticator:
    def __init__(
        self,
        raw_credential: str,
        *,
        base_url: str = config.PLATFORM_BASE_URL,
        cookie_domain: str = config.PLATFORM_COOKIE_DOMAIN,
    ) -> None:
        self._raw_credential = raw_credential or ""
        self.base_url = base_url
        self.cookie_domain = cookie_domain

    def cookies(self) -> List[Dict[str, Any]]:
        cookies = parse_cookie_string(self._raw_credential, domain=self.cookie_domain)
        if not cookies:
            raise AuthSetupError("Session credential contains no valid name=value cookie pairs")
        return cookies

    def create_session(self, browser) -> BrowserSession:
        """Open a fresh context carrying the session cookies and a desktop fingerprint."""

        cookies = self.cookies()
        context = browser.new_context(
            user_agent=config.USER_AGENT,
            viewport=dict(config.VIEWPORT),
            extra_http_headers=dict(config.COMMON_HEADERS),
            locale=config.LOCALE,
            timezone_id=config.TIMEZONE_ID,
        )
        context.add_cookies(cookies)
        log_line(f"[AUTH] Set {len(cookies)} cookies for authentication")
        page = context.new_page()
        return BrowserSession(context=context, page=page)

    def _goto(self, page, url: str, *, timeout_ms: int) -> None:
        try:
            page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PWError as exc:
            raise NavigationError(
                f"Navigation to {url} failed during session verification: {exc}",
                url=url,
                label="verify",
            ) from exc

    def _count(self, page, selector: str) -> int:
        try:
            return page.locator(selector).count()
        except PWError as exc:
            log_warning(f"[AUTH] Indicator {selector!r} could not be evaluated: {exc}")
            return 0

    def verify(
        self,
        session: BrowserSession,
        target_url: Optional[str] = None,
        *,
        nav_timeout_ms: int = 60_000,
        settle_ms: int = 2_000,
        force: bool = False,
    ) -> bool:
        """Return whether ``session`` is logged in.

        The result is cached on the session; pass ``force=True`` to probe
        again. A negative check returns ``False``; navigation failures raise
        :class:`NavigationError`.
        """

        if session.verified is not None and not force:
            return session.verified

        page = session.page
        url = (target_url or self.base_url).rstrip("/")
        self._goto(page, url, timeout_ms=nav_timeout_ms)
        page.wait_for_timeout(settle_ms)

        for selector in LOGGED_IN_INDICATORS:
            if self._count(page, selector) > 0:
                _harvest_event("auth", step="verified", selector=selector)
                session.verified = True
                return True

        members_url = f"{url}/members"
        self._goto(page, members_url, timeout_ms=max(1, nav_timeout_ms // 2))
        if self._count(page, MEMBER_CONTENT_PROBE) > 0:
            _harvest_event("auth", step="verified", selector=MEMBER_CONTENT_PROBE, url=members_url)
            session.verified = True
            return True

        log_warning("[AUTH] Authentication check failed - the session cookie may need refreshing")
        session.verified = False
        return False


__all__ = [
    "BrowserSession",
    "SessionAuthenticator",
    "parse_cookie_string",
    "LOGGED_IN_INDICATORS",
    "MEMBER_CONTENT_PROBE",
]
