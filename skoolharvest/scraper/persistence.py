from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Callable, Union

from . import db
from .errors import PersistenceError
from .logging_utils import _harvest_event
from .models import Comment, Like, Member, Post, Thread

Record = Union[Member, Thread, Post, Comment, Like]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PersistenceSink:
    """Idempotent writer for harvested entities, keyed by their natural id.

    First write wins for everything outside the record's ``mutable_fields``;
    ``scraped_at`` is refreshed on every successful write.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._conn = conn
        self._clock = clock

    def upsert(self, record: Record) -> None:
        entity_id = getattr(record, "id", None)
        kind = getattr(record, "kind", type(record).__name__.lower())
        if not entity_id:
            raise PersistenceError(kind, entity_id, ValueError("missing natural id"))

        try:
            row = record.to_row(self._clock())
            db.upsert_row(
                self._conn,
                record.table,
                row,
                mutable_fields=record.mutable_fields,
            )
        except (sqlite3.Error, ValueError, TypeError) as exc:
            _harvest_event(
                "error",
                phase="persist",
                kind=kind,
                entity_id=entity_id,
                error=str(exc),
            )
            raise PersistenceError(kind, entity_id, exc) from exc


__all__ = ["PersistenceSink", "Record"]
