from contextlib import contextmanager
from pathlib import Path

import pytest

from skoolharvest.scraper import config, db, run
from skoolharvest.scraper.errors import NavigationError
from skoolharvest.scraper.progress import ProgressStatus, ProgressStore
from tests.fakes import FakeBrowser, FakeContext, FakePage, listing_pages
from tests.test_progress_store import _configure_temp_paths

COMMUNITY = "https://www.skool.com/demo"


def _install_fake_browser(monkeypatch: pytest.MonkeyPatch, page: FakePage) -> FakeBrowser:
    browser = FakeBrowser(FakeContext(page))

    @contextmanager
    def _fake_launch(cfg):
        yield browser

    monkeypatch.setattr(run, "launch_browser", _fake_launch)
    return browser


@pytest.fixture
def harvest_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = _configure_temp_paths(tmp_path, monkeypatch)
    monkeypatch.setattr(config, "SKOOL_COOKIE", "auth_token=abc")
    monkeypatch.setattr(config, "SETTLE_SECONDS", 0)
    monkeypatch.setattr(config, "SCRAPE_DELAY_MS", 0)
    monkeypatch.setattr(config, "USE_EXISTING_CHROME", False)
    return data_dir


def test_main_returns_zero_on_completed(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def _fake_run(cfg, task="members"):
        calls.append((cfg, task))
        return {"task_type": task, "verified": True, "status": "completed"}

    monkeypatch.setattr(run, "run_harvest", _fake_run)

    assert run.main([COMMUNITY, "--delay", "1200", "--no-headless"]) == 0
    cfg, task = calls[0]
    assert task == "members"
    assert cfg.fixed_delay_ms == 1200
    assert cfg.headless is False
    assert cfg.verify_session is True


def test_main_invalid_config_exits_two(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(run, "run_harvest", lambda cfg, task="members": pytest.fail("must not run"))

    assert run.main(["https://example.com/demo"]) == 2


def test_main_missing_cookie_exits_two(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SKOOL_COOKIE", "")

    assert run.main([COMMUNITY]) == 2


def test_main_task_failure_exits_one(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(cfg, task="members"):
        raise NavigationError("members listing unreachable")

    monkeypatch.setattr(run, "run_harvest", _boom)

    assert run.main([COMMUNITY]) == 1


def test_main_unverified_session_exits_one(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        run,
        "run_harvest",
        lambda cfg, task="members": {"task_type": task, "verified": False, "status": None},
    )

    assert run.main([COMMUNITY]) == 1


def test_skip_verify_flag(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen = []
    monkeypatch.setattr(
        run,
        "run_harvest",
        lambda cfg, task="members": seen.append(cfg) or {"verified": None, "status": "completed"},
    )

    assert run.main([COMMUNITY, "--skip-verify", "--debug"]) == 0
    assert seen[0].verify_session is False
    assert seen[0].debug is True


def test_run_harvest_end_to_end_with_fake_browser(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    page = FakePage(listing_pages(2, 1))
    browser = _install_fake_browser(monkeypatch, page)

    assert run.main([COMMUNITY, "--skip-verify"]) == 0

    assert [c["name"] for c in browser.context.cookies] == ["auth_token"]
    assert browser.context.closed is True
    conn = db.get_connection()
    try:
        progress = ProgressStore(conn).get("members")
        assert progress.status is ProgressStatus.COMPLETED
        assert progress.total_processed == 3
        assert db.count_rows(conn, "members") == 3
    finally:
        conn.close()
    assert (harvest_env / "members" / "page_0002.json").exists()
    assert list((harvest_env / "logs").glob("harvest_*.log"))


def test_run_harvest_stops_when_session_not_logged_in(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    page = FakePage(listing_pages(2))
    _install_fake_browser(monkeypatch, page)

    assert run.main([COMMUNITY]) == 1

    conn = db.get_connection()
    try:
        assert ProgressStore(conn).get("members") is None
    finally:
        conn.close()


def test_run_harvest_reraises_after_marking_failed(harvest_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    page = FakePage([[]])
    _install_fake_browser(monkeypatch, page)
    cfg = config.HarvestConfig.from_env(COMMUNITY, verify_session=False)

    with pytest.raises(Exception) as excinfo:
        run.run_harvest(cfg)

    assert excinfo.value.error_code == "no_items_found"
    conn = db.get_connection()
    try:
        assert ProgressStore(conn).get("members").status is ProgressStatus.FAILED
    finally:
        conn.close()
