"""Checkpointed, page-by-page crawl of one entity listing.

Workflow for a task:

- Load (or lazily create) the task checkpoint and resume at the page after
  ``last_processed_page``, seeding the running total from the checkpoint.
- Reach the listing: page 1 through the community navigation (tab click,
  direct URL as fallback), a resumed page through its own URL.
- Per page: locate items, extract + upsert each item, write the page backup,
  then write the checkpoint.
- Follow the pagination control while it is present and enabled, pausing
  between pages.

The checkpoint always ends in ``completed`` or ``failed``; a failure records
its message and is re-raised to the caller.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from playwright.sync_api import Error as PWError

from .auth import BrowserSession
from .browser import safe_goto, screenshot, scroll_to_bottom, wait_for_network_idle, wait_seconds
from .config import HarvestConfig
from .errors import NavigationError, NoItemsFoundError, PersistenceError
from .extraction import ExtractionStrategy, LocatedItems, first_visible
from .logging_utils import _harvest_event
from .persistence import PersistenceSink, Record
from .progress import ProgressStatus, ProgressStore
from .utils import log_line, log_warning, page_backup_path, save_json_file


class ItemStatus(str, Enum):
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemOutcome:
    index: int
    status: ItemStatus
    record: Optional[Record] = None
    reason: Optional[str] = None


@dataclass
class PageResult:
    page_number: int
    selector: str
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def extracted(self) -> List[Record]:
        return [outcome.record for outcome in self.outcomes if outcome.record is not None]

    @property
    def persisted(self) -> List[Record]:
        return [
            outcome.record
            for outcome in self.outcomes
            if outcome.status is ItemStatus.PERSISTED and outcome.record is not None
        ]

    @property
    def persisted_count(self) -> int:
        # A member repeated on one page is one row.
        return len({record.id for record in self.persisted})


@dataclass
class CrawlResult:
    task_type: str
    status: ProgressStatus
    start_page: int
    last_page: Optional[int]
    pages_processed: int
    persisted_this_run: int
    total_processed: int


def _short_error_message(exc: BaseException, max_length: int = 500) -> str:
    """Return a truncated string representation of ``exc`` for the checkpoint."""

    message = str(exc) or type(exc).__name__
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def compute_delay_ms(cfg: HarvestConfig, rng: random.Random) -> int:
    """Fixed delay when configured, otherwise uniform within the bounds."""

    if cfg.fixed_delay_ms is not None:
        return max(0, int(cfg.fixed_delay_ms))
    low = max(0, int(cfg.delay_min_ms))
    high = max(low, int(cfg.delay_max_ms))
    return rng.randint(low, high)


class CrawlController:
    def __init__(
        self,
        cfg: HarvestConfig,
        session: BrowserSession,
        strategy: ExtractionStrategy,
        progress_store: ProgressStore,
        sink: PersistenceSink,
        *,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.cfg = cfg
        self.session = session
        self.strategy = strategy
        self.progress = progress_store
        self.sink = sink
        self._sleep = sleep or (lambda seconds: wait_seconds(self.page, seconds))
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def page(self):
        return self.session.page

    @property
    def task_type(self) -> str:
        return self.strategy.task_type

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def run(self) -> CrawlResult:
        task = self.task_type
        checkpoint = self.progress.get_or_create(task)
        start_page = (checkpoint.last_processed_page or 0) + 1
        total = checkpoint.total_processed
        page_number = start_page
        pages_processed = 0
        persisted_this_run = 0
        last_page: Optional[int] = checkpoint.last_processed_page
        last_id = checkpoint.last_processed_id

        self.progress.update(
            task,
            status=ProgressStatus.IN_PROGRESS,
            error=None,
            completed_at=None,
        )
        _harvest_event(
            "crawl",
            step="start",
            task_type=task,
            start_page=start_page,
            resumed_total=total,
        )

        try:
            self._open_listing(page_number)
            while True:
                scroll_to_bottom(self.page)
                try:
                    located = self.strategy.locate_item_elements(self.page)
                except NoItemsFoundError:
                    if page_number <= 1:
                        raise
                    log_line(f"[CRAWL] No {task} on page {page_number}; listing exhausted")
                    break

                result = self._process_page(page_number, located)
                self._save_backup(result)

                total += result.persisted_count
                persisted_this_run += result.persisted_count
                pages_processed += 1
                last_page = page_number
                persisted = result.persisted
                if persisted:
                    last_id = persisted[-1].id
                self.progress.update(
                    task,
                    last_processed_page=page_number,
                    total_processed=total,
                    last_processed_id=last_id,
                )
                log_line(
                    f"[CRAWL] {task} page {page_number}: {result.persisted_count}/"
                    f"{len(result.outcomes)} persisted (total {total})"
                )

                next_control = self._next_page_control()
                if next_control is None:
                    break
                self._advance(next_control, page_number)
                self._delay()
                page_number += 1
        except KeyboardInterrupt:
            self._mark_failed(task, "Interrupted")
            raise
        except Exception as exc:
            self._mark_failed(task, _short_error_message(exc), exc)
            raise

        final = self.progress.update(task, status=ProgressStatus.COMPLETED)
        log_line(f"[CRAWL] Completed {task} crawl. Total {task}: {final.total_processed}")
        return CrawlResult(
            task_type=task,
            status=final.status,
            start_page=start_page,
            last_page=last_page,
            pages_processed=pages_processed,
            persisted_this_run=persisted_this_run,
            total_processed=final.total_processed,
        )

    def _mark_failed(self, task: str, message: str, exc: Optional[BaseException] = None) -> None:
        _harvest_event(
            "error",
            level=logging.ERROR,
            task_type=task,
            error_code=getattr(exc, "error_code", None),
            error=message,
        )
        self.progress.update(task, status=ProgressStatus.FAILED, error=message)

    # ------------------------------------------------------------------
    # Step 1: reaching the listing
    # ------------------------------------------------------------------

    def _settle(self) -> None:
        wait_seconds(self.page, self.cfg.settle_seconds)

    def _debug_screenshot(self, name: str) -> None:
        if self.cfg.debug:
            screenshot(self.page, self.cfg.screenshot_dir / name)

    def _open_listing(self, page_number: int) -> None:
        if page_number > 1:
            self._goto_or_raise(
                self.strategy.page_url(self.cfg.community_url, page_number),
                label=f"{self.task_type}_page_{page_number}",
            )
            self._settle()
            return

        community_url = self.cfg.community_url
        log_line(f"[CRAWL] Navigating to community: {community_url}")
        home_error = safe_goto(
            self.page, community_url, label="community_home", timeout_ms=self.cfg.nav_timeout_ms
        )
        if home_error is None:
            self._settle()
            self._debug_screenshot("community-home.png")
            if self._click_listing_tab():
                self._settle()
                self._debug_screenshot(f"{self.task_type}-page.png")
                return

        log_warning(f"[CRAWL] Could not reach the {self.task_type} tab, trying direct navigation")
        listing_url = self.strategy.listing_url(community_url)
        direct_error = safe_goto(
            self.page, listing_url, label=f"{self.task_type}_direct", timeout_ms=self.cfg.nav_timeout_ms
        )
        if direct_error is not None:
            raise NavigationError(
                f"Could not open the {self.task_type} listing via tab or {listing_url}: {direct_error}",
                url=listing_url,
                label=f"{self.task_type}_direct",
            )
        self._settle()
        self._debug_screenshot(f"{self.task_type}-page.png")

    def _click_listing_tab(self) -> bool:
        selector, tab = first_visible(self.page, self.strategy.tab_locators)
        if tab is None:
            return False
        try:
            log_line(f"[CRAWL] Clicking {self.task_type} tab using selector: {selector}")
            tab.click(timeout=self.cfg.selector_timeout_ms)
            return True
        except PWError as exc:
            log_warning(f"[CRAWL] Tab click via {selector!r} failed: {exc}")
            return False

    def _goto_or_raise(self, url: str, *, label: str) -> None:
        error = safe_goto(self.page, url, label=label, timeout_ms=self.cfg.nav_timeout_ms)
        if error is None:
            return
        log_warning(f"[CRAWL] Retrying navigation to {url}")
        error = safe_goto(self.page, url, label=f"{label}_retry", timeout_ms=self.cfg.nav_timeout_ms)
        if error is not None:
            raise NavigationError(f"Navigation to {url} failed twice: {error}", url=url, label=label)

    # ------------------------------------------------------------------
    # Steps 2-4: one page of items
    # ------------------------------------------------------------------

    def _process_item(self, index: int, element) -> ItemOutcome:
        try:
            record = self.strategy.extract_one(element, index=index, now=self._clock())
        except Exception as exc:  # noqa: BLE001
            log_warning(f"[CRAWL] Failed to extract {self.task_type} item {index}: {exc}")
            return ItemOutcome(index, ItemStatus.SKIPPED, reason=f"extract_error: {exc}")

        if record is None:
            return ItemOutcome(index, ItemStatus.SKIPPED, reason="missing_id")

        try:
            self.sink.upsert(record)
        except PersistenceError as exc:
            log_warning(f"[CRAWL] Item {index} ({exc.kind} id={exc.entity_id!r}) not persisted: {exc}")
            return ItemOutcome(index, ItemStatus.FAILED, record=record, reason=str(exc))
        return ItemOutcome(index, ItemStatus.PERSISTED, record=record)

    def _process_page(self, page_number: int, located: LocatedItems) -> PageResult:
        log_line(f"[CRAWL] Scraping {self.task_type} page {page_number} ({len(located)} items)")
        outcomes = [self._process_item(index, element) for index, element in enumerate(located.elements)]
        result = PageResult(page_number=page_number, selector=located.selector, outcomes=outcomes)
        skipped = sum(1 for outcome in outcomes if outcome.status is ItemStatus.SKIPPED)
        failed = sum(1 for outcome in outcomes if outcome.status is ItemStatus.FAILED)
        _harvest_event(
            "page",
            task_type=self.task_type,
            page=page_number,
            selector=located.selector,
            persisted=result.persisted_count,
            skipped=skipped,
            failed=failed,
        )
        return result

    def _save_backup(self, result: PageResult) -> None:
        path = page_backup_path(self.cfg.backup_dir(self.task_type), result.page_number)
        try:
            save_json_file(path, [record.to_json() for record in result.extracted])
        except (OSError, TypeError, ValueError) as exc:
            log_warning(f"[CRAWL] Could not write page backup {path}: {exc}")

    # ------------------------------------------------------------------
    # Step 6: pagination
    # ------------------------------------------------------------------

    @staticmethod
    def _is_disabled(control) -> bool:
        if control.get_attribute("disabled") is not None:
            return True
        if (control.get_attribute("aria-disabled") or "").strip().lower() == "true":
            return True
        classes = (control.get_attribute("class") or "").split()
        return "disabled" in classes

    def _next_page_control(self):
        """Return the enabled pagination control, or ``None`` on the last page."""

        for selector in self.strategy.next_page_locators:
            try:
                matches = self.page.locator(selector)
                if not matches.count():
                    continue
                control = matches.first
                if self._is_disabled(control):
                    log_line(f"[CRAWL] Next-page control {selector!r} is disabled")
                    return None
                return control
            except PWError as exc:
                log_warning(f"[CRAWL] Next-page probe {selector!r} failed: {exc}")
                continue
        return None

    def _advance(self, control, page_number: int) -> None:
        try:
            control.click(timeout=self.cfg.selector_timeout_ms)
        except PWError as exc:
            raise NavigationError(
                f"Could not advance past {self.task_type} page {page_number}: {exc}",
                label="next_page",
            ) from exc
        wait_for_network_idle(self.page, timeout_ms=self.cfg.nav_timeout_ms)

    def _delay(self) -> None:
        delay_ms = compute_delay_ms(self.cfg, self._rng)
        if delay_ms <= 0:
            return
        _harvest_event("crawl", step="delay", task_type=self.task_type, delay_ms=delay_ms)
        self._sleep(delay_ms / 1000)


__all__ = [
    "CrawlController",
    "CrawlResult",
    "PageResult",
    "ItemOutcome",
    "ItemStatus",
    "compute_delay_ms",
]
