"""Locating repeated listing items and mapping them to records.

An :class:`ExtractionStrategy` is a plain value describing one entity
listing: where it lives, which ordered locator candidates find its items,
which candidates find each field inside an item and how the raw field values
become a record. The crawl controller drives any strategy the same way.

Every lookup is a fallible probe. Locator candidates are tried in order and
the first one that yields something wins; an individual field that cannot be
read falls back to its default instead of failing the item.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from playwright.sync_api import Error as PWError

from .error_codes import ErrorCode
from .errors import NoItemsFoundError
from .logging_utils import _harvest_event
from .persistence import Record
from .utils import log_debug, log_warning

# Field candidate that reads from the item element itself.
SELF = ""

_INT_RE = re.compile(r"\d[\d,]*")


def parse_int(text: Optional[str], default: int = 0) -> int:
    """Return the first integer in ``text`` ("1,204 points" -> 1204)."""

    match = _INT_RE.search(text or "")
    if not match:
        return default
    try:
        return int(match.group(0).replace(",", ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class FieldSpec:
    name: str
    candidates: Tuple[str, ...]
    attribute: Optional[str] = None
    default: Any = ""


@dataclass
class LocatedItems:
    selector: str
    elements: List[Any]

    def __len__(self) -> int:
        return len(self.elements)


def _read_value(target, attribute: Optional[str]) -> Optional[str]:
    raw = target.get_attribute(attribute) if attribute else target.text_content()
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


@dataclass(frozen=True)
class ExtractionStrategy:
    task_type: str
    listing_path: str
    tab_locators: Tuple[str, ...]
    item_locators: Tuple[str, ...]
    fields: Tuple[FieldSpec, ...]
    build: Callable[[Dict[str, Any], datetime], Optional[Record]]
    next_page_locators: Tuple[str, ...]
    page_param: str = "p"

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def listing_url(self, community_url: str) -> str:
        return community_url.rstrip("/") + self.listing_path

    def page_url(self, community_url: str, page_number: int) -> str:
        base = self.listing_url(community_url)
        if page_number <= 1:
            return base
        return f"{base}?{self.page_param}={int(page_number)}"

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def locate_item_elements(self, page) -> LocatedItems:
        """Return the elements matched by the first non-empty item locator.

        Raises :class:`NoItemsFoundError` when every candidate comes back
        empty.
        """

        for selector in self.item_locators:
            try:
                locator = page.locator(selector)
                count = locator.count()
            except PWError as exc:
                log_warning(f"[EXTRACT] Item locator {selector!r} failed: {exc}")
                continue
            if count:
                _harvest_event(
                    "extract",
                    task_type=self.task_type,
                    step="items_located",
                    selector=selector,
                    count=count,
                )
                return LocatedItems(selector, [locator.nth(i) for i in range(count)])
            log_debug(f"[EXTRACT] Item locator {selector!r} matched nothing")

        raise NoItemsFoundError(
            f"No {self.task_type} elements found; item selectors may be stale",
            candidates=self.item_locators,
        )

    def read_field(self, element, spec: FieldSpec, *, index: int) -> Any:
        """Read one field from ``element`` trying each candidate in order."""

        for selector in spec.candidates:
            try:
                if selector == SELF:
                    value = _read_value(element, spec.attribute)
                else:
                    matches = element.locator(selector)
                    if not matches.count():
                        continue
                    value = _read_value(matches.first, spec.attribute)
            except Exception as exc:  # noqa: BLE001
                _harvest_event(
                    "warn",
                    phase="field",
                    level=logging.WARNING,
                    task_type=self.task_type,
                    field=spec.name,
                    selector=selector,
                    item_index=index,
                    error_code=ErrorCode.FIELD_EXTRACTION,
                    error=str(exc),
                )
                continue
            if value is not None:
                return value
        return spec.default

    def extract_fields(self, element, *, index: int) -> Dict[str, Any]:
        return {spec.name: self.read_field(element, spec, index=index) for spec in self.fields}

    def extract_one(self, element, *, index: int, now: Optional[datetime] = None) -> Optional[Record]:
        """Map ``element`` to a record, or ``None`` when it has no usable id."""

        now = now or datetime.now(timezone.utc)
        fields = self.extract_fields(element, index=index)
        record = self.build(fields, now)
        if record is None:
            log_debug(f"[EXTRACT] Item {index} of {self.task_type} has no id; skipping")
        return record


def first_visible(page, selectors: Sequence[str]):
    """Return ``(selector, locator)`` for the first visible candidate, else ``(None, None)``."""

    for selector in selectors:
        try:
            locator = page.locator(selector).first
            if locator.is_visible():
                return selector, locator
        except PWError as exc:
            log_debug(f"[EXTRACT] Candidate {selector!r} not usable: {exc}")
            continue
    return None, None


__all__ = [
    "SELF",
    "FieldSpec",
    "LocatedItems",
    "ExtractionStrategy",
    "first_visible",
    "parse_int",
]
