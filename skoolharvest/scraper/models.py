"""Harvested entity records.

Each record knows its table and which of its columns may change on a
re-scrape; every other column keeps the value from the first insert.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple

from .db import to_db_timestamp

LIKE_TARGET_TYPES: Tuple[str, ...] = ("thread", "post", "comment")


class _Record:
    kind: ClassVar[str]
    table: ClassVar[str]
    mutable_fields: ClassVar[Tuple[str, ...]]

    def _columns(self) -> Dict[str, Any]:
        return {}

    def to_row(self, scraped_at: datetime) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for name, value in self._columns().items():
            if isinstance(value, datetime):
                value = to_db_timestamp(value)
            elif isinstance(value, bool):
                value = 1 if value else 0
            row[name] = value
        row["scraped_at"] = to_db_timestamp(scraped_at)
        return row

    def to_json(self) -> Dict[str, Any]:
        """Plain JSON-friendly dict used for the per-page backups."""

        payload = asdict(self)  # type: ignore[call-overload]
        for name, value in payload.items():
            if isinstance(value, datetime):
                payload[name] = value.isoformat()
        return payload


@dataclass
class Member(_Record):
    id: str
    username: str
    display_name: str
    joined_at: datetime
    avatar: Optional[str] = None
    bio: Optional[str] = None
    last_active_at: Optional[datetime] = None
    role: Optional[str] = None
    points: Optional[int] = None
    posts_count: int = 0
    comments_count: int = 0

    kind: ClassVar[str] = "member"
    table: ClassVar[str] = "members"
    mutable_fields: ClassVar[Tuple[str, ...]] = (
        "last_active_at",
        "role",
        "points",
        "posts_count",
        "comments_count",
        "scraped_at",
    )

    def _columns(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar": self.avatar,
            "bio": self.bio,
            "joined_at": self.joined_at,
            "last_active_at": self.last_active_at,
            "role": self.role,
            "points": self.points,
            "posts_count": self.posts_count,
            "comments_count": self.comments_count,
        }


@dataclass
class Thread(_Record):
    id: str
    title: str
    content: str
    author_id: str
    created_at: datetime
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    updated_at: Optional[datetime] = None
    is_pinned: bool = False
    is_locked: bool = False
    views_count: int = 0
    posts_count: int = 0
    likes_count: int = 0

    kind: ClassVar[str] = "thread"
    table: ClassVar[str] = "threads"
    mutable_fields: ClassVar[Tuple[str, ...]] = (
        "title",
        "content",
        "category_id",
        "category_name",
        "updated_at",
        "is_pinned",
        "is_locked",
        "views_count",
        "posts_count",
        "likes_count",
        "scraped_at",
    )

    def _columns(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author_id": self.author_id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_pinned": self.is_pinned,
            "is_locked": self.is_locked,
            "views_count": max(0, int(self.views_count)),
            "posts_count": max(0, int(self.posts_count)),
            "likes_count": max(0, int(self.likes_count)),
        }


@dataclass
class Post(_Record):
    id: str
    thread_id: str
    author_id: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    likes_count: int = 0
    parent_post_id: Optional[str] = None

    kind: ClassVar[str] = "post"
    table: ClassVar[str] = "posts"
    mutable_fields: ClassVar[Tuple[str, ...]] = (
        "content",
        "updated_at",
        "likes_count",
        "scraped_at",
    )

    def _columns(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "likes_count": max(0, int(self.likes_count)),
            "parent_post_id": self.parent_post_id,
        }


@dataclass
class Comment(_Record):
    id: str
    post_id: str
    author_id: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    likes_count: int = 0

    kind: ClassVar[str] = "comment"
    table: ClassVar[str] = "comments"
    mutable_fields: ClassVar[Tuple[str, ...]] = (
        "content",
        "updated_at",
        "likes_count",
        "scraped_at",
    )

    def _columns(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "likes_count": max(0, int(self.likes_count)),
        }


@dataclass
class Like(_Record):
    id: str
    user_id: str
    target_type: str
    target_id: str
    created_at: datetime

    kind: ClassVar[str] = "like"
    table: ClassVar[str] = "likes"
    mutable_fields: ClassVar[Tuple[str, ...]] = ("scraped_at",)

    def __post_init__(self) -> None:
        if self.target_type not in LIKE_TARGET_TYPES:
            raise ValueError(
                f"Like target_type must be one of {LIKE_TARGET_TYPES}, got {self.target_type!r}"
            )

    def _columns(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "created_at": self.created_at,
        }


__all__ = ["Member", "Thread", "Post", "Comment", "Like", "LIKE_TARGET_TYPES"]
