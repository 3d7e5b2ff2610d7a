"""Playwright plumbing: launching or attaching to Chromium and page helpers."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from playwright.sync_api import Browser, Error as PWError, TimeoutError as PWTimeout, sync_playwright

from .auth import BrowserSession, SessionAuthenticator
from .config import BROWSER_ARGS, HarvestConfig
from .errors import HarvestError
from .logging_utils import _harvest_event
from .utils import log_debug, log_line, log_warning


def is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


@contextmanager
def launch_browser(cfg: HarvestConfig) -> Iterator[Browser]:
    """Yield a Chromium instance, launched fresh or attached over CDP.

    An attached browser belongs to the user and is never closed here.
    """

    with sync_playwright() as pw:
        if cfg.use_existing_chrome:
            log_line(f"[BROWSER] Connecting to existing Chrome at {cfg.cdp_url}")
            try:
                browser = pw.chromium.connect_over_cdp(cfg.cdp_url)
            except PWError as exc:
                raise HarvestError(
                    f"Failed to connect to Chrome at {cfg.cdp_url}; start it with "
                    f"--remote-debugging-port ({exc})"
                ) from exc
        else:
            browser = pw.chromium.launch(
                headless=cfg.headless,
                slow_mo=cfg.slow_mo_ms or 0,
                args=list(BROWSER_ARGS),
            )
        try:
            yield browser
        finally:
            if not cfg.use_existing_chrome:
                try:
                    browser.close()
                except PWError as exc:
                    log_warning(f"[BROWSER] Error closing browser: {exc}")


def _log_api_response(response) -> None:
    try:
        if "/api/" in response.url and response.status == 200:
            log_debug(f"[BROWSER] API response: {response.url}")
    except PWError:
        return


def open_session(browser, cfg: HarvestConfig, authenticator: SessionAuthenticator) -> BrowserSession:
    """Return the browsing session the crawl will drive.

    With ``use_existing_chrome`` the first context and page of the attached
    browser are reused as-is (its own login applies); otherwise a fresh
    context with injected session cookies is created.
    """

    if cfg.use_existing_chrome:
        contexts = list(browser.contexts)
        if not contexts:
            raise HarvestError("No browser contexts found in existing Chrome")
        context = contexts[0]
        pages = list(context.pages)
        page = pages[0] if pages else context.new_page()
        session = BrowserSession(context=context, page=page, owns_context=False)
        log_line("[BROWSER] Using existing Chrome context")
    else:
        session = authenticator.create_session(browser)

    if cfg.debug:
        session.page.on("response", _log_api_response)
    log_line("[BROWSER] Browser session ready")
    return session


def wait_seconds(page, seconds: Optional[float]) -> None:
    """Wait safely for ``seconds`` only if *page* remains open."""

    if page is None or not seconds or seconds <= 0:
        return
    if not page.is_closed():
        page.wait_for_timeout(int(seconds * 1000))


def safe_goto(
    page,
    url: str,
    *,
    label: str,
    timeout_ms: int,
    wait_until: str = "domcontentloaded",
) -> Optional[Exception]:
    """Navigate to ``url``; return the failure instead of raising it.

    ``None`` means the navigation succeeded.
    """

    try:
        _harvest_event("nav", step="goto", label=label, url=url)
        page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        return None
    except PWTimeout as exc:
        log_warning(f"[NAV] goto({url!r}) timed out: {exc}")
        _harvest_event("error", phase="nav", step="goto_timeout", label=label, url=url, error=str(exc))
        return exc
    except PWError as exc:
        step = "goto_target_closed" if is_target_closed_error(exc) else "goto_error"
        log_warning(f"[NAV] goto({url!r}) failed: {exc}")
        _harvest_event("error", phase="nav", step=step, label=label, url=url, error=str(exc))
        return exc


def wait_for_network_idle(page, *, timeout_ms: int) -> None:
    try:
        page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PWTimeout:
        log_debug("[NAV] networkidle timeout; continuing")


def scroll_to_bottom(page, *, max_scrolls: int = 20, pause_seconds: float = 0.3) -> None:
    """Scroll until the document height stops growing to trigger lazy loading."""

    last_height = 0
    for _ in range(max_scrolls):
        try:
            page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            wait_seconds(page, pause_seconds)
            height = page.evaluate("document.body.scrollHeight")
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            log_debug(f"[NAV] Scroll failed: {exc}")
            break
        if not isinstance(height, (int, float)) or int(height) == last_height:
            break
        last_height = int(height)


def screenshot(page, path: Path) -> None:
    """Save a best-effort debug screenshot to ``path``."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(path), full_page=True)
        log_debug(f"[BROWSER] Saved debug screenshot -> {path}")
    except (PWError, OSError) as exc:
        log_warning(f"[BROWSER] Failed to save debug screenshot: {exc}")


__all__ = [
    "launch_browser",
    "open_session",
    "safe_goto",
    "wait_seconds",
    "wait_for_network_idle",
    "scroll_to_bottom",
    "screenshot",
    "is_target_closed_error",
]
