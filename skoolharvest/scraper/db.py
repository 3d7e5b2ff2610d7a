"""SQLite helpers for the community harvester.

This module defines the project database path, connection helper, schema
initialisation and the small set of row-level helpers (upsert, fetch, update)
that the progress store and persistence sink are built on.

Foreign keys are declared for documentation and tooling but are not enforced
(``PRAGMA foreign_keys`` stays off): entities are harvested out of dependency
order across separate task runs, so a post may arrive before its author.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from . import config

DB_PATH: Path = config.DB_PATH

TABLES: tuple[str, ...] = (
    "members",
    "threads",
    "posts",
    "comments",
    "likes",
    "scrape_progress",
)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing. Callers own the returned
    connection and are expected to close it.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema(conn: Optional[sqlite3.Connection] = None) -> None:
    """Create the baseline tables if they do not yet exist.

    Safe to call multiple times; each statement uses ``IF NOT EXISTS`` to avoid
    duplicate objects.
    """

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS members (
            id              TEXT PRIMARY KEY,
            username        TEXT NOT NULL,
            display_name    TEXT NOT NULL,
            avatar          TEXT,
            bio             TEXT,
            joined_at       TEXT NOT NULL,
            last_active_at  TEXT,
            role            TEXT,
            points          INTEGER,
            posts_count     INTEGER DEFAULT 0,
            comments_count  INTEGER DEFAULT 0,
            scraped_at      TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS threads (
            id              TEXT PRIMARY KEY,
            title           TEXT NOT NULL,
            content         TEXT NOT NULL,
            author_id       TEXT NOT NULL REFERENCES members(id),
            category_id     TEXT,
            category_name   TEXT,
            created_at      TEXT NOT NULL,
            updated_at      TEXT,
            is_pinned       INTEGER NOT NULL DEFAULT 0,
            is_locked       INTEGER NOT NULL DEFAULT 0,
            views_count     INTEGER NOT NULL DEFAULT 0,
            posts_count     INTEGER NOT NULL DEFAULT 0,
            likes_count     INTEGER NOT NULL DEFAULT 0,
            scraped_at      TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS posts (
            id              TEXT PRIMARY KEY,
            thread_id       TEXT NOT NULL REFERENCES threads(id),
            author_id       TEXT NOT NULL REFERENCES members(id),
            content         TEXT NOT NULL,
            created_at      TEXT NOT NULL,
            updated_at      TEXT,
            likes_count     INTEGER NOT NULL DEFAULT 0,
            parent_post_id  TEXT,
            scraped_at      TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS comments (
            id              TEXT PRIMARY KEY,
            post_id         TEXT NOT NULL REFERENCES posts(id),
            author_id       TEXT NOT NULL REFERENCES members(id),
            content         TEXT NOT NULL,
            created_at      TEXT NOT NULL,
            updated_at      TEXT,
            likes_count     INTEGER NOT NULL DEFAULT 0,
            scraped_at      TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS likes (
            id              TEXT PRIMARY KEY,
            user_id         TEXT NOT NULL REFERENCES members(id),
            target_type     TEXT NOT NULL,
            target_id       TEXT NOT NULL,
            created_at      TEXT NOT NULL,
            scraped_at      TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS scrape_progress (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            task_type           TEXT NOT NULL,
            last_processed_id   TEXT,
            last_processed_page INTEGER,
            total_processed     INTEGER NOT NULL DEFAULT 0,
            status              TEXT NOT NULL DEFAULT 'pending',
            started_at          TEXT,
            completed_at        TEXT,
            error               TEXT
        );
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_scrape_progress_task
            ON scrape_progress(task_type);
        """,
        "CREATE INDEX IF NOT EXISTS idx_threads_author ON threads(author_id);",
        "CREATE INDEX IF NOT EXISTS idx_posts_thread ON posts(thread_id);",
        "CREATE INDEX IF NOT EXISTS idx_posts_author ON posts(author_id);",
        "CREATE INDEX IF NOT EXISTS idx_comments_post ON comments(post_id);",
        "CREATE INDEX IF NOT EXISTS idx_comments_author ON comments(author_id);",
        "CREATE INDEX IF NOT EXISTS idx_likes_user ON likes(user_id);",
        "CREATE INDEX IF NOT EXISTS idx_likes_target ON likes(target_type, target_id);",
    )

    owned = conn is None
    conn = conn or get_connection()
    try:
        with conn:
            for statement in statements:
                conn.execute(statement)
    finally:
        if owned:
            conn.close()


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format ``value`` as a UTC ISO8601 string; naive values are taken as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _check_table(table: str) -> str:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table!r}")
    return table


def upsert_row(
    conn: sqlite3.Connection,
    table: str,
    row: Mapping[str, Any],
    *,
    mutable_fields: Sequence[str],
    key: str = "id",
) -> None:
    """Insert ``row`` or, on a key conflict, update only ``mutable_fields``.

    The statement is a single ``INSERT .. ON CONFLICT DO UPDATE`` executed in
    its own transaction, so readers never observe a half-written row.
    """

    _check_table(table)
    columns = list(row.keys())
    placeholders = ", ".join("?" for _ in columns)
    updates = [name for name in mutable_fields if name in row and name != key]
    if updates:
        conflict = "DO UPDATE SET " + ", ".join(f"{name} = excluded.{name}" for name in updates)
    else:
        conflict = "DO NOTHING"
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT({key}) {conflict}"
    )
    with conn:
        conn.execute(sql, [row[name] for name in columns])


def fetch_row(
    conn: sqlite3.Connection, table: str, value: Any, *, key: str = "id"
) -> Optional[sqlite3.Row]:
    """Return the row of ``table`` whose ``key`` equals ``value``, if any."""

    _check_table(table)
    cursor = conn.execute(f"SELECT * FROM {table} WHERE {key} = ? LIMIT 1", (value,))
    return cursor.fetchone()


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    _check_table(table)
    cursor = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}")
    return int(cursor.fetchone()["cnt"])


def fetch_progress_row(conn: sqlite3.Connection, task_type: str) -> Optional[sqlite3.Row]:
    return fetch_row(conn, "scrape_progress", task_type, key="task_type")


def insert_progress_row(conn: sqlite3.Connection, task_type: str) -> sqlite3.Row:
    """Ensure a ``scrape_progress`` row exists for ``task_type`` and return it.

    Relies on the unique index on ``task_type``; a concurrent or repeated
    insert is silently ignored.
    """

    with conn:
        conn.execute(
            """
            INSERT OR IGNORE INTO scrape_progress (task_type, status, total_processed)
            VALUES (?, 'pending', 0)
            """,
            (task_type,),
        )
    return fetch_progress_row(conn, task_type)


def update_progress_row(
    conn: sqlite3.Connection, task_type: str, fields: Mapping[str, Any]
) -> None:
    if not fields:
        return
    assignments = ", ".join(f"{name} = ?" for name in fields)
    with conn:
        conn.execute(
            f"UPDATE scrape_progress SET {assignments} WHERE task_type = ?",
            [*fields.values(), task_type],
        )


def list_progress_rows(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    cursor = conn.execute("SELECT * FROM scrape_progress ORDER BY task_type")
    return list(cursor.fetchall())


def list_recent_members(conn: sqlite3.Connection, limit: int = 50) -> list[sqlite3.Row]:
    """Return the most recently scraped members, newest first."""

    cursor = conn.execute(
        "SELECT * FROM members ORDER BY scraped_at DESC, id LIMIT ?",
        (int(limit),),
    )
    return list(cursor.fetchall())


__all__ = [
    "DB_PATH",
    "TABLES",
    "get_connection",
    "initialize_schema",
    "to_db_timestamp",
    "from_db_timestamp",
    "upsert_row",
    "fetch_row",
    "count_rows",
    "fetch_progress_row",
    "insert_progress_row",
    "update_progress_row",
    "list_progress_rows",
    "list_recent_members",
]
