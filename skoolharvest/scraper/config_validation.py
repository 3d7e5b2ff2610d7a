from __future__ import annotations

from typing import Literal, Optional

from . import config
from .config import HarvestConfig
from .error_codes import ErrorCode
from .logging_utils import _harvest_event
from .progress import TaskType
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, task: Optional[str]
) -> None:
    _harvest_event(
        "error",
        phase="config",
        context="runtime_validation",
        error_code=ErrorCode.CONFIG_INVALID,
        error=error,
        entrypoint=entrypoint,
        task=task,
    )
    task_fragment = f", task={task}" if task else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{task_fragment})")
    raise ValueError(message)


def validate_runtime_config(
    cfg: HarvestConfig,
    entrypoint: Entrypoint,
    *,
    task: Optional[str] = None,
    require_community: bool = True,
) -> None:
    """Validate a resolved :class:`HarvestConfig` before any browser work.

    Raises ``ValueError`` on blocking problems. An inverted delay range is
    repaired (bounds swapped) and logged rather than rejected.
    """

    if task is not None:
        try:
            TaskType(task)
        except ValueError:
            _raise_config_error(
                f"Unknown task type {task!r}.",
                entrypoint=entrypoint,
                error="unknown_task",
                task=task,
            )

    if require_community and not cfg.community_url:
        _raise_config_error(
            "A community URL is required.",
            entrypoint=entrypoint,
            error="community_url_missing",
            task=task,
        )
    if require_community and not config.COMMUNITY_URL_RE.match(cfg.community_url):
        _raise_config_error(
            f"Community URL must look like {config.PLATFORM_BASE_URL}/<community>: {cfg.community_url}",
            entrypoint=entrypoint,
            error="community_url_invalid",
            task=task,
        )

    if not cfg.use_existing_chrome and not (cfg.cookie or "").strip():
        _raise_config_error(
            "SKOOL_COOKIE must be set unless an existing Chrome session is reused.",
            entrypoint=entrypoint,
            error="cookie_missing",
            task=task,
        )

    if cfg.fixed_delay_ms is not None and cfg.fixed_delay_ms < 0:
        _raise_config_error(
            "SCRAPE_DELAY must be non-negative.",
            entrypoint=entrypoint,
            error="delay_invalid",
            task=task,
        )
    if cfg.delay_min_ms < 0 or cfg.delay_max_ms < 0:
        _raise_config_error(
            "Delay bounds must be non-negative.",
            entrypoint=entrypoint,
            error="delay_invalid",
            task=task,
        )
    if cfg.delay_min_ms > cfg.delay_max_ms:
        _harvest_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="delay_bounds",
            value=[cfg.delay_min_ms, cfg.delay_max_ms],
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] SCRAPE_DELAY_MIN_MS > SCRAPE_DELAY_MAX_MS; swapping bounds.")
        cfg.delay_min_ms, cfg.delay_max_ms = cfg.delay_max_ms, cfg.delay_min_ms

    timeout_fields = [
        ("HARVEST_NAV_TIMEOUT_SECONDS", cfg.nav_timeout_seconds),
        ("HARVEST_SELECTOR_TIMEOUT_SECONDS", cfg.selector_timeout_seconds),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                task=task,
            )

    if cfg.settle_seconds < 0:
        _raise_config_error(
            "HARVEST_SETTLE_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_timeout",
            task=task,
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
