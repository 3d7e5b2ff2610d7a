from __future__ import annotations

"""Selectors for the community members listing."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MembersSelectors:
    """Ordered locator candidates for the members listing.

    The platform UI changes without notice, so every entry is a list of
    fallbacks tried in order rather than a single selector. The item
    candidates run from the most specific (test ids) to broad class-name
    matches.
    """

    tab_locators: Tuple[str, ...] = (
        'a[href*="/members"]',
        'button:has-text("Members")',
        'a:has-text("Members")',
        '[role="tab"]:has-text("Members")',
        'nav a:has-text("Members")',
        '.nav-link:has-text("Members")',
    )
    item_locators: Tuple[str, ...] = (
        '[data-testid="member-card"]',
        ".member-item",
        '[class*="member-card"]',
        '[class*="MemberCard"]',
        'div[class*="member"] a[href*="/members/"]',
        'a[href*="/members/"][class*="link"]',
    )
    profile_link: Tuple[str, ...] = ('a[href*="/members/"]',)
    display_name: Tuple[str, ...] = ('[class*="name"]', ".member-name")
    username: Tuple[str, ...] = ('[class*="username"]', ".member-username")
    avatar: Tuple[str, ...] = ('img[class*="avatar"]', ".member-avatar", "img")
    bio: Tuple[str, ...] = ('[class*="bio"]', ".member-bio")
    points: Tuple[str, ...] = ('[class*="points"]', ".member-points")
    role: Tuple[str, ...] = ('[class*="role"]', ".member-role")
    joined: Tuple[str, ...] = ('[class*="joined"]', ".member-joined")
    last_active: Tuple[str, ...] = ('[class*="active"]', ".last-active")
    next_page: Tuple[str, ...] = (
        'button[aria-label="Next page"]',
        '[class*="next"]',
        'a[rel="next"]',
    )


MEMBERS_SELECTORS = MembersSelectors()

__all__ = ["MembersSelectors", "MEMBERS_SELECTORS"]
