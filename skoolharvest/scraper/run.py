"""Top-level harvest runner and command line entrypoint."""

from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

from . import db
from .auth import SessionAuthenticator
from .browser import launch_browser, open_session
from .config import HarvestConfig
from .config_validation import validate_runtime_config
from .crawl import CrawlController, _short_error_message
from .errors import HarvestError
from .logging_utils import _harvest_event
from .members import MEMBERS_STRATEGY
from .persistence import PersistenceSink
from .progress import ProgressStore, TaskType
from .utils import ensure_dirs, log_error, log_line, setup_run_logger

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_INVALID = 2

STRATEGIES = {
    TaskType.MEMBERS.value: MEMBERS_STRATEGY,
}


def run_harvest(cfg: HarvestConfig, task: str = TaskType.MEMBERS.value) -> Dict[str, Any]:
    """Run one crawl task end to end and return its summary.

    Raises the crawl failure after the checkpoint has been marked failed.
    The summary's ``verified`` is ``False`` when the session check came back
    negative, in which case no crawling happens.
    """

    strategy = STRATEGIES.get(task)
    if strategy is None:
        raise ValueError(f"No extraction strategy for task {task!r}")

    ensure_dirs()
    log_path = setup_run_logger(debug=cfg.debug)
    log_line(f"[RUN] Starting {task} harvest for {cfg.community_url}")

    conn = db.get_connection()
    try:
        db.initialize_schema(conn)
        authenticator = SessionAuthenticator(cfg.cookie)
        with launch_browser(cfg) as browser:
            session = open_session(browser, cfg, authenticator)
            try:
                if cfg.verify_session:
                    verified = authenticator.verify(
                        session,
                        cfg.community_url,
                        nav_timeout_ms=cfg.nav_timeout_ms,
                        settle_ms=int(cfg.settle_seconds * 1000),
                    )
                    if not verified:
                        log_error("[RUN] Session is not logged in; refresh SKOOL_COOKIE and retry")
                        return {
                            "task_type": task,
                            "verified": False,
                            "status": None,
                            "log_path": str(log_path),
                        }

                controller = CrawlController(
                    cfg,
                    session,
                    strategy,
                    ProgressStore(conn),
                    PersistenceSink(conn),
                )
                result = controller.run()
            finally:
                session.close()
    except Exception as exc:  # noqa: BLE001
        _harvest_event(
            "error",
            level=logging.ERROR,
            task_type=task,
            error_code=getattr(exc, "error_code", None),
            error=_short_error_message(exc),
        )
        raise
    finally:
        conn.close()

    summary = {
        "task_type": result.task_type,
        "verified": True if cfg.verify_session else None,
        "status": result.status.value,
        "start_page": result.start_page,
        "last_page": result.last_page,
        "pages_processed": result.pages_processed,
        "persisted_this_run": result.persisted_this_run,
        "total_processed": result.total_processed,
        "log_path": str(log_path),
    }
    log_line(
        f"[RUN] {task} harvest {summary['status']}: {summary['persisted_this_run']} new this run, "
        f"{summary['total_processed']} total"
    )
    return summary


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Harvest a Skool community into SQLite")
    parser.add_argument("community_url", help="Community URL, e.g. https://www.skool.com/my-community")
    parser.add_argument(
        "--task",
        choices=sorted(STRATEGIES),
        default=TaskType.MEMBERS.value,
        help="Entity listing to harvest.",
    )
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run Chromium headless (default from HEADLESS).",
    )
    parser.add_argument(
        "--use-existing-chrome",
        action="store_true",
        default=None,
        help="Attach to a running Chrome over CDP instead of launching one.",
    )
    parser.add_argument("--cdp-url", default=None, help="CDP endpoint of the running Chrome.")
    parser.add_argument(
        "--delay",
        type=int,
        default=None,
        metavar="MS",
        help="Fixed delay between pages in milliseconds (default: random 1000-2000).",
    )
    parser.add_argument("--debug", action="store_true", default=None)
    parser.add_argument(
        "--skip-verify",
        action="store_true",
        help="Skip the logged-in check before crawling.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    cfg = HarvestConfig.from_env(
        args.community_url,
        headless=args.headless,
        use_existing_chrome=args.use_existing_chrome,
        cdp_url=args.cdp_url,
        fixed_delay_ms=args.delay,
        debug=args.debug,
        verify_session=False if args.skip_verify else None,
    )

    try:
        validate_runtime_config(cfg, "cli", task=args.task)
    except ValueError as exc:
        parser.print_usage()
        print(f"error: {exc}")
        return EXIT_CONFIG_INVALID

    try:
        summary = run_harvest(cfg, task=args.task)
    except HarvestError as exc:
        log_error(f"[RUN] {args.task} harvest failed ({exc.error_code}): {exc}")
        return EXIT_FAILED
    except Exception as exc:  # noqa: BLE001
        log_error(f"[RUN] {args.task} harvest failed: {_short_error_message(exc)}")
        return EXIT_FAILED

    if summary.get("verified") is False:
        return EXIT_FAILED
    return EXIT_OK if summary.get("status") == "completed" else EXIT_FAILED


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    raise SystemExit(main(argv))


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["run_harvest", "main", "_cli_entrypoint", "STRATEGIES"]
