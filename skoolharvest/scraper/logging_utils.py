from __future__ import annotations

import logging
from typing import Any

from .utils import log_line


def _harvest_event(
    label: str = "",
    /,
    *,
    phase: str | None = None,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit a structured harvest log line.

    ``phase`` may be used as a keyword alias for the label. When both ``label``
    and ``phase`` are provided, ``phase`` is emitted as part of the payload so
    the caller still captures the event stage. ``label`` is positional-only,
    so a ``label=`` keyword is logged as an ordinary field.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={repr(v)}" for k, v in sorted(fields.items()))
        log_line(f"[HARVEST][{phase_label.upper()}] {payload}", level)
    except Exception:
        # Never let logging break the crawl.
        return


__all__ = ["_harvest_event"]
