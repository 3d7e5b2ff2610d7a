from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from . import config, db
from .config import HarvestConfig
from .config_validation import validate_runtime_config
from .logging_utils import _harvest_event
from .utils import ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: str = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        cfg = HarvestConfig.from_env("")
        validate_runtime_config(cfg, entrypoint or "cli", require_community=False)
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    try:
        ensure_dirs()
        fs_ok = os.access(config.DATA_DIR, os.W_OK)
        checks["filesystem"] = {"ok": fs_ok, "data_dir": str(config.DATA_DIR)}
    except OSError as exc:
        checks["filesystem"] = {"ok": False, "data_dir": str(config.DATA_DIR), "error": str(exc)}

    try:
        conn = db.get_connection()
        try:
            db.initialize_schema(conn)
            conn.execute("SELECT COUNT(*) FROM scrape_progress")
        finally:
            conn.close()
        checks["database"] = {"ok": True, "path": str(db.DB_PATH)}
    except Exception as exc:  # noqa: BLE001
        checks["database"] = {"ok": False, "path": str(db.DB_PATH), "error": str(exc)}

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _harvest_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
