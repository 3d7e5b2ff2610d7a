"""Excel export of harvested tables."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

from . import config, db
from .utils import log_line

EXPORT_TABLES: tuple[str, ...] = ("members", "threads", "posts", "comments", "likes")


def export_tables_to_excel(dest_path: Optional[Path] = None) -> Path:
    """Write every entity table plus the checkpoints to one workbook.

    Empty tables still get a sheet (with their column headers) so the
    workbook layout is stable across runs.
    """

    conn = db.get_connection()
    try:
        db.initialize_schema(conn)
        frames = {
            table: pd.read_sql_query(f"SELECT * FROM {table} ORDER BY id", conn)
            for table in EXPORT_TABLES
        }
        progress = pd.read_sql_query("SELECT * FROM scrape_progress ORDER BY task_type", conn)
    finally:
        conn.close()

    summary = pd.DataFrame(
        [{"table": table, "rows": len(frame)} for table, frame in frames.items()]
    )

    if dest_path is None:
        config.EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        dest_path = config.EXPORTS_DIR / f"skool_{stamp}.xlsx"
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        summary.to_excel(writer, index=False, sheet_name="Summary")
        for table, frame in frames.items():
            frame.to_excel(writer, index=False, sheet_name=table.capitalize())
        progress.to_excel(writer, index=False, sheet_name="Progress")

    log_line(f"[EXPORT] Wrote workbook -> {dest_path}")
    return dest_path


__all__ = ["export_tables_to_excel", "EXPORT_TABLES"]
