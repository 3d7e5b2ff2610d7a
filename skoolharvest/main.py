from __future__ import annotations

import os

from flask import Flask, Response, jsonify, request, send_file

from skoolharvest.scraper import db
from skoolharvest.scraper.export_excel import export_tables_to_excel
from skoolharvest.scraper.healthcheck import run_health_checks
from skoolharvest.scraper.progress import ProgressStore, TaskType
from skoolharvest.scraper.utils import ensure_dirs

app = Flask(__name__)

# Initialise storage paths and SQLite schema on import so WSGI entrypoints
# also have the expected environment ready.
ensure_dirs()
db.initialize_schema()

MEMBERS_LIMIT_DEFAULT = 50
MEMBERS_LIMIT_MAX = 500


@app.get("/health")
def health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and DB."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.get("/api/progress")
def api_progress_list() -> Response:
    """Return every stored crawl checkpoint."""

    conn = db.get_connection()
    try:
        rows = [progress.to_json() for progress in ProgressStore(conn).list_all()]
    finally:
        conn.close()
    return jsonify({"ok": True, "count": len(rows), "progress": rows})


@app.get("/api/progress/<task_type>")
def api_progress_detail(task_type: str) -> Response:
    """Return the checkpoint of one task type without creating it."""

    try:
        TaskType(task_type)
    except ValueError:
        return jsonify({"ok": False, "error": "unknown_task_type", "task_type": task_type}), 404

    conn = db.get_connection()
    try:
        progress = ProgressStore(conn).get(task_type)
    finally:
        conn.close()

    if progress is None:
        return jsonify({"ok": False, "error": "no_progress", "task_type": task_type}), 404
    return jsonify({"ok": True, "progress": progress.to_json()})


@app.get("/api/members")
def api_members() -> Response:
    """Return the most recently scraped members."""

    raw_limit = request.args.get("limit", type=int)
    if raw_limit is None:
        limit = MEMBERS_LIMIT_DEFAULT
    else:
        limit = max(1, min(raw_limit, MEMBERS_LIMIT_MAX))

    conn = db.get_connection()
    try:
        members = [dict(row) for row in db.list_recent_members(conn, limit)]
    finally:
        conn.close()

    return jsonify({"ok": True, "count": len(members), "members": members})


@app.get("/export.xlsx")
def export_xlsx() -> Response:
    path = export_tables_to_excel()
    return send_file(path, as_attachment=True, download_name=os.path.basename(path))


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
