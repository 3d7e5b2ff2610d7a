from __future__ import annotations

"""CLI helper for printing stored crawl checkpoints."""

import argparse
from typing import Sequence

from . import db
from .progress import ProgressStore, TaskType


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the checkpoint CLI."""

    parser = argparse.ArgumentParser(
        description="Show stored crawl checkpoints.",
    )
    parser.add_argument(
        "--task",
        choices=[task.value for task in TaskType],
        help="Only show the checkpoint for this task type.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the checkpoint CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    conn = db.get_connection()
    try:
        db.initialize_schema(conn)
        store = ProgressStore(conn)
        if args.task:
            progress = store.get(args.task)
            rows = [progress] if progress is not None else []
        else:
            rows = store.list_all()
    finally:
        conn.close()

    if not rows:
        print("No checkpoints recorded.")
        return 0

    for progress in rows:
        page = progress.last_processed_page if progress.last_processed_page is not None else "-"
        print(f"{progress.task_type}: {progress.status.value}")
        print(f"  last page: {page}")
        print(f"  total processed: {progress.total_processed}")
        if progress.last_processed_id:
            print(f"  last id: {progress.last_processed_id}")
        if progress.error:
            print(f"  error: {progress.error}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
