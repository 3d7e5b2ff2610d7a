"""Durable per-task crawl checkpoints stored in ``scrape_progress``."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from . import db
from .logging_utils import _harvest_event


class TaskType(str, Enum):
    MEMBERS = "members"
    THREADS = "threads"
    POSTS = "posts"
    COMMENTS = "comments"
    LIKES = "likes"


class ProgressStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _safe_status(value: Any) -> ProgressStatus:
    try:
        return ProgressStatus(value)
    except Exception:
        return ProgressStatus.PENDING


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScrapeProgress:
    task_type: str
    status: ProgressStatus = ProgressStatus.PENDING
    total_processed: int = 0
    last_processed_id: Optional[str] = None
    last_processed_page: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> "ScrapeProgress":
        page = row["last_processed_page"]
        return cls(
            id=int(row["id"]),
            task_type=row["task_type"],
            status=_safe_status(row["status"]),
            total_processed=int(row["total_processed"] or 0),
            last_processed_id=row["last_processed_id"],
            last_processed_page=int(page) if page is not None else None,
            started_at=db.from_db_timestamp(row["started_at"]),
            completed_at=db.from_db_timestamp(row["completed_at"]),
            error=row["error"],
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "task_type": self.task_type,
            "status": self.status.value,
            "total_processed": self.total_processed,
            "last_processed_id": self.last_processed_id,
            "last_processed_page": self.last_processed_page,
            "started_at": db.to_db_timestamp(self.started_at),
            "completed_at": db.to_db_timestamp(self.completed_at),
            "error": self.error,
        }


class ProgressStore:
    """Checkpoint access for the task types in :class:`TaskType`.

    ``update`` is a last-write-wins merge with two derived timestamps:
    ``started_at`` is stamped on the first move into ``in_progress`` and never
    overwritten afterwards, and ``completed_at`` is stamped whenever the
    incoming status is ``completed``.
    """

    UPDATABLE_FIELDS = frozenset(
        {
            "last_processed_id",
            "last_processed_page",
            "total_processed",
            "status",
            "completed_at",
            "error",
        }
    )

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._conn = conn
        self._clock = clock

    def get(self, task_type: str) -> Optional[ScrapeProgress]:
        """Return the checkpoint for ``task_type`` without creating one."""

        name = TaskType(task_type).value
        row = db.fetch_progress_row(self._conn, name)
        return ScrapeProgress._from_row(row) if row is not None else None

    def get_or_create(self, task_type: str) -> ScrapeProgress:
        name = TaskType(task_type).value
        row = db.fetch_progress_row(self._conn, name)
        if row is None:
            row = db.insert_progress_row(self._conn, name)
            _harvest_event("state", phase="progress", kind="created", task_type=name)
        return ScrapeProgress._from_row(row)

    def list_all(self) -> list[ScrapeProgress]:
        return [ScrapeProgress._from_row(row) for row in db.list_progress_rows(self._conn)]

    def update(self, task_type: str, **fields: Any) -> ScrapeProgress:
        """Merge ``fields`` into the checkpoint of ``task_type`` and return it."""

        unknown = set(fields) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown checkpoint fields: {sorted(unknown)}")

        current = self.get_or_create(task_type)
        values: Dict[str, Any] = {}
        for name, value in fields.items():
            if isinstance(value, ProgressStatus):
                value = value.value
            elif isinstance(value, datetime):
                value = db.to_db_timestamp(value)
            values[name] = value

        status = values.get("status")
        if status is not None:
            status = ProgressStatus(status).value
            values["status"] = status
            if status == ProgressStatus.IN_PROGRESS.value and current.started_at is None:
                values["started_at"] = db.to_db_timestamp(self._clock())
            if status == ProgressStatus.COMPLETED.value:
                values["completed_at"] = db.to_db_timestamp(self._clock())

        new_total = values.get("total_processed")
        if new_total is not None and int(new_total) < current.total_processed:
            _harvest_event(
                "state",
                phase="progress",
                kind="total_decreased",
                task_type=current.task_type,
                previous=current.total_processed,
                incoming=int(new_total),
            )

        db.update_progress_row(self._conn, current.task_type, values)
        updated = self.get(current.task_type)
        _harvest_event(
            "state",
            phase="progress",
            task_type=current.task_type,
            from_status=current.status.value,
            to_status=updated.status.value,
            page=updated.last_processed_page,
            total=updated.total_processed,
        )
        return updated


__all__ = ["ProgressStore", "ScrapeProgress", "ProgressStatus", "TaskType"]
