import json
import random
from pathlib import Path

import pytest
from playwright.sync_api import Error as PWError

from skoolharvest.scraper import db
from skoolharvest.scraper.auth import BrowserSession
from skoolharvest.scraper.config import HarvestConfig
from skoolharvest.scraper.crawl import CrawlController, _short_error_message, compute_delay_ms
from skoolharvest.scraper.errors import NavigationError, NoItemsFoundError, PersistenceError
from skoolharvest.scraper.members import MEMBERS_STRATEGY
from skoolharvest.scraper.persistence import PersistenceSink
from skoolharvest.scraper.progress import ProgressStatus, ProgressStore
from tests.fakes import FakePage, listing_pages, member_card
from tests.test_progress_store import _open_db

COMMUNITY = "https://www.skool.com/demo"
MEMBERS_URL = COMMUNITY + "/members"


class _FlakySink(PersistenceSink):
    def __init__(self, conn, failing_ids) -> None:
        super().__init__(conn)
        self.failing_ids = set(failing_ids)

    def upsert(self, record) -> None:
        if record.id in self.failing_ids:
            raise PersistenceError(record.kind, record.id, RuntimeError("disk full"))
        super().upsert(record)


def _cfg(tmp_path: Path, **overrides) -> HarvestConfig:
    values = dict(community_url=COMMUNITY, cookie="a=1", settle_seconds=0, data_dir=tmp_path / "data")
    values.update(overrides)
    return HarvestConfig(**values)


def _controller(tmp_path, conn, page, *, sink=None, sleeps=None, **cfg_overrides):
    recorded = sleeps if sleeps is not None else []
    return CrawlController(
        _cfg(tmp_path, **cfg_overrides),
        BrowserSession(context=None, page=page),
        MEMBERS_STRATEGY,
        ProgressStore(conn),
        sink or PersistenceSink(conn),
        sleep=recorded.append,
        rng=random.Random(7),
    )


def test_fresh_run_completes_and_checkpoints(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(3, 2))
    sleeps: list[float] = []

    result = _controller(tmp_path, conn, page, sleeps=sleeps).run()

    progress = ProgressStore(conn).get("members")
    assert result.status is ProgressStatus.COMPLETED
    assert result.pages_processed == 2
    assert progress.status is ProgressStatus.COMPLETED
    assert progress.last_processed_page == 2
    assert progress.total_processed == 5
    assert progress.last_processed_id == "m5"
    assert progress.started_at is not None
    assert progress.completed_at is not None
    assert progress.error is None
    assert db.count_rows(conn, "members") == 5
    # Reached through the community page and the members tab.
    assert page.visited == [COMMUNITY]
    assert page.tab_clicks == 1


def test_delay_only_between_pages(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    sleeps: list[float] = []

    _controller(tmp_path, conn, FakePage(listing_pages(2, 2, 2)), sleeps=sleeps).run()

    assert len(sleeps) == 2
    assert all(1.0 <= seconds <= 2.0 for seconds in sleeps)


def test_fixed_delay_overrides_random(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    sleeps: list[float] = []

    _controller(tmp_path, conn, FakePage(listing_pages(1, 1, 1)), sleeps=sleeps, fixed_delay_ms=1500).run()

    assert sleeps == [1.5, 1.5]


def test_single_page_listing_never_delays(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    sleeps: list[float] = []

    _controller(tmp_path, conn, FakePage(listing_pages(4), last_page_next="absent"), sleeps=sleeps).run()

    assert sleeps == []
    assert ProgressStore(conn).get("members").status is ProgressStatus.COMPLETED


def test_disabled_class_ends_pagination(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)

    result = _controller(tmp_path, conn, FakePage(listing_pages(2, 2), last_page_next="disabled-class")).run()

    assert result.last_page == 2
    assert result.total_processed == 4


def test_resume_starts_after_checkpoint_page(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    store = ProgressStore(conn)
    store.update(
        "members",
        status=ProgressStatus.FAILED,
        last_processed_page=2,
        total_processed=7,
        error="Timeout 60000ms exceeded",
    )
    page = FakePage(listing_pages(4, 3, 2, 3))

    result = _controller(tmp_path, conn, page).run()

    progress = store.get("members")
    assert page.visited[0] == MEMBERS_URL + "?p=3"
    assert COMMUNITY not in page.visited
    assert result.start_page == 3
    assert result.persisted_this_run == 5
    assert progress.total_processed == 12
    assert progress.last_processed_page == 4
    assert progress.status is ProgressStatus.COMPLETED
    assert progress.error is None
    # Items from pages 1-2 were never re-extracted.
    assert db.fetch_row(conn, "members", "m1") is None
    assert db.fetch_row(conn, "members", "m8") is not None


def test_resume_navigation_retried_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    ProgressStore(conn).update("members", last_processed_page=1, total_processed=2)
    page = FakePage(listing_pages(2, 2), goto_failures={MEMBERS_URL + "?p=2": 1})

    result = _controller(tmp_path, conn, page).run()

    assert page.visited == [MEMBERS_URL + "?p=2", MEMBERS_URL + "?p=2"]
    assert result.total_processed == 4


def test_resume_past_last_page_completes_without_new_items(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    ProgressStore(conn).update("members", last_processed_page=2, total_processed=5, status="completed")
    sleeps: list[float] = []

    result = _controller(tmp_path, conn, FakePage(listing_pages(3, 2)), sleeps=sleeps).run()

    progress = ProgressStore(conn).get("members")
    assert result.pages_processed == 0
    assert progress.status is ProgressStatus.COMPLETED
    assert progress.total_processed == 5
    assert progress.last_processed_page == 2
    assert sleeps == []


def test_persistence_failure_skips_only_that_item(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(10))

    result = _controller(tmp_path, conn, page, sink=_FlakySink(conn, {"m4"})).run()

    progress = ProgressStore(conn).get("members")
    assert result.status is ProgressStatus.COMPLETED
    assert progress.total_processed == 9
    assert db.count_rows(conn, "members") == 9
    assert db.fetch_row(conn, "members", "m4") is None
    assert db.fetch_row(conn, "members", "m5") is not None


def test_items_without_id_are_skipped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    pages = [[member_card("a1"), member_card(None, "Ghost"), member_card("a2")]]

    result = _controller(tmp_path, conn, FakePage(pages)).run()

    assert result.total_processed == 2
    assert ProgressStore(conn).get("members").last_processed_id == "a2"


def test_repeated_member_on_a_page_counted_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    pages = [[member_card("m1"), member_card("m2"), member_card("m1")]]

    result = _controller(tmp_path, conn, FakePage(pages)).run()

    assert result.status is ProgressStatus.COMPLETED
    assert result.persisted_this_run == 2
    assert ProgressStore(conn).get("members").total_processed == 2
    assert db.count_rows(conn, "members") == 2


def test_page_backups_written_per_page(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)

    _controller(tmp_path, conn, FakePage(listing_pages(3, 1))).run()

    backup_dir = tmp_path / "data" / "members"
    assert sorted(p.name for p in backup_dir.glob("*.json")) == ["page_0001.json", "page_0002.json"]
    first = json.loads((backup_dir / "page_0001.json").read_text(encoding="utf-8"))
    assert [entry["id"] for entry in first] == ["m1", "m2", "m3"]
    assert first[0]["display_name"] == "Member 1"
    assert isinstance(first[0]["joined_at"], str)


def test_backup_includes_records_that_failed_to_persist(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)

    _controller(tmp_path, conn, FakePage(listing_pages(3)), sink=_FlakySink(conn, {"m2"})).run()

    entries = json.loads((tmp_path / "data" / "members" / "page_0001.json").read_text(encoding="utf-8"))
    assert [entry["id"] for entry in entries] == ["m1", "m2", "m3"]


def test_direct_navigation_fallback_when_tab_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(2), has_tab=False)

    result = _controller(tmp_path, conn, page).run()

    assert page.visited == [COMMUNITY, MEMBERS_URL]
    assert result.status is ProgressStatus.COMPLETED
    assert result.total_processed == 2


def test_direct_navigation_when_home_unreachable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(2), goto_failures={COMMUNITY: 1})

    result = _controller(tmp_path, conn, page).run()

    assert page.visited == [COMMUNITY, MEMBERS_URL]
    assert result.total_processed == 2


def test_navigation_failure_marks_failed_and_reraises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(2), goto_failures={COMMUNITY: 1, MEMBERS_URL: 1})

    with pytest.raises(NavigationError):
        _controller(tmp_path, conn, page).run()

    progress = ProgressStore(conn).get("members")
    assert progress.status is ProgressStatus.FAILED
    assert progress.error
    assert MEMBERS_URL in progress.error
    assert progress.completed_at is None
    assert progress.last_processed_page is None
    assert db.count_rows(conn, "members") == 0


def test_no_items_on_first_page_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)

    with pytest.raises(NoItemsFoundError):
        _controller(tmp_path, conn, FakePage([[]])).run()

    progress = ProgressStore(conn).get("members")
    assert progress.status is ProgressStatus.FAILED
    assert "members" in progress.error


def test_pagination_click_failure_keeps_last_checkpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    page = FakePage(listing_pages(2, 2), next_click_error=PWError("Target closed"))

    with pytest.raises(NavigationError):
        _controller(tmp_path, conn, page).run()

    progress = ProgressStore(conn).get("members")
    assert progress.status is ProgressStatus.FAILED
    assert progress.last_processed_page == 1
    assert progress.total_processed == 2


def test_rerun_after_failure_clears_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _open_db(tmp_path, monkeypatch)
    failing = FakePage(listing_pages(2, 2), next_click_error=PWError("Target closed"))
    with pytest.raises(NavigationError):
        _controller(tmp_path, conn, failing).run()

    result = _controller(tmp_path, conn, FakePage(listing_pages(2, 2))).run()

    progress = ProgressStore(conn).get("members")
    assert result.start_page == 2
    assert progress.status is ProgressStatus.COMPLETED
    assert progress.error is None
    assert progress.total_processed == 4


def test_compute_delay_ms_bounds(tmp_path: Path) -> None:
    rng = random.Random(1)
    cfg = _cfg(tmp_path, delay_min_ms=1000, delay_max_ms=2000)

    values = [compute_delay_ms(cfg, rng) for _ in range(50)]

    assert all(1000 <= value <= 2000 for value in values)
    assert compute_delay_ms(_cfg(tmp_path, fixed_delay_ms=250), rng) == 250


def test_short_error_message_truncates() -> None:
    message = _short_error_message(RuntimeError("x" * 800))

    assert len(message) == 500
    assert message.endswith("...")
    assert _short_error_message(RuntimeError()) == "RuntimeError"
