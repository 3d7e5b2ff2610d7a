"""Members listing: field mapping and the members extraction strategy."""

from __future__ import annotations

import urllib.parse
from datetime import datetime
from typing import Any, Dict, Optional

from .date_utils import normalize_timestamp
from .extraction import SELF, ExtractionStrategy, FieldSpec, parse_int
from .models import Member
from .progress import TaskType
from .selectors_members import MEMBERS_SELECTORS, MembersSelectors


def member_id_from_href(href: Optional[str]) -> Optional[str]:
    """Return the member id from a ``.../members/<id>?...`` profile link."""

    if not href or "/members/" not in href:
        return None
    tail = href.split("/members/", 1)[1]
    tail = tail.split("?", 1)[0].split("#", 1)[0].strip("/")
    member_id = urllib.parse.unquote(tail.split("/", 1)[0]).strip()
    return member_id or None


def _optional(value: Any) -> Optional[str]:
    text = (value or "").strip() if isinstance(value, str) else value
    return text or None


def build_member(fields: Dict[str, Any], now: datetime) -> Optional[Member]:
    member_id = member_id_from_href(fields.get("profile_href"))
    if not member_id:
        return None

    display_name = (fields.get("display_name") or "").strip()
    username = (fields.get("username") or "").strip() or display_name
    active_text = _optional(fields.get("last_active"))

    return Member(
        id=member_id,
        username=username or member_id,
        display_name=display_name or username or member_id,
        avatar=_optional(fields.get("avatar")),
        bio=_optional(fields.get("bio")),
        joined_at=normalize_timestamp(fields.get("joined"), now),
        last_active_at=normalize_timestamp(active_text, now) if active_text else None,
        role=_optional(fields.get("role")),
        points=parse_int(fields.get("points"), 0),
        # Counts are filled in by the posts and comments tasks.
        posts_count=0,
        comments_count=0,
    )


def build_members_strategy(selectors: MembersSelectors = MEMBERS_SELECTORS) -> ExtractionStrategy:
    return ExtractionStrategy(
        task_type=TaskType.MEMBERS.value,
        listing_path="/members",
        tab_locators=selectors.tab_locators,
        item_locators=selectors.item_locators,
        fields=(
            # The item may itself be the profile link.
            FieldSpec("profile_href", (SELF,) + selectors.profile_link, attribute="href"),
            FieldSpec("display_name", selectors.display_name),
            FieldSpec("username", selectors.username),
            FieldSpec("avatar", selectors.avatar, attribute="src"),
            FieldSpec("bio", selectors.bio),
            FieldSpec("points", selectors.points),
            FieldSpec("role", selectors.role),
            FieldSpec("joined", selectors.joined),
            FieldSpec("last_active", selectors.last_active),
        ),
        build=build_member,
        next_page_locators=selectors.next_page,
    )


MEMBERS_STRATEGY = build_members_strategy()

__all__ = ["MEMBERS_STRATEGY", "build_members_strategy", "build_member", "member_id_from_href"]
