from datetime import datetime, timedelta, timezone

import httpx

from job_harvest.config import Settings
from job_harvest.cursors import CursorStore
from job_harvest.scrapers.fetcher import FeedFetcher
from job_harvest.signals import StopSignal

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
JOB_TEXT = "Backend engineer (Go/Python), remote within EU, salary 90-110k EUR, apply by DM"


def _settings(tmp_path) -> Settings:
    return Settings(
        telegram_channels_csv="jobs",
        channel_fetch_delay_seconds=0,
        rate_limit_delay_seconds=0,
        data_dir=tmp_path,
    )


def _page(*timestamps: datetime) -> str:
    blocks = "".join(
        f'<div class="tgme_widget_message" data-post="jobs/{i}">'
        f'<div class="tgme_widget_message_text">{JOB_TEXT} #{i}</div>'
        f'<time datetime="{ts.isoformat()}"></time></div>'
        for i, ts in enumerate(timestamps)
    )
    return f"<html><body>{blocks}</body></html>"


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://t.me/s/jobs")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


class FakePages:
    def __init__(self, pages: dict[str, object]) -> None:
        self.pages = pages
        self.requested: list[str] = []

    def __call__(self, client: httpx.Client, channel: str) -> str:
        self.requested.append(channel)
        page = self.pages[channel]
        if isinstance(page, Exception):
            raise page
        return str(page)


def _fetcher(tmp_path, pages: FakePages, cursors: CursorStore | None = None) -> FeedFetcher:
    return FeedFetcher(
        _settings(tmp_path),
        cursors or CursorStore(clock=lambda: NOW),
        client_factory=httpx.Client,
        load_page=pages,
        clock=lambda: NOW,
    )


def test_cursor_advances_to_newest_accepted_message(tmp_path) -> None:
    cursors = CursorStore(clock=lambda: NOW)
    pages = FakePages({"jobs": _page(NOW - timedelta(hours=2), NOW - timedelta(hours=1))})

    result = _fetcher(tmp_path, pages, cursors).fetch_new_messages(["@jobs"], StopSignal())

    assert len(result.messages) == 2
    assert pages.requested == ["jobs"]
    assert cursors.last_fetch("jobs") == NOW - timedelta(hours=1)


def test_cursor_moves_to_pass_start_when_nothing_is_new(tmp_path) -> None:
    cursors = CursorStore(clock=lambda: NOW)
    pages = FakePages({"jobs": _page(NOW - timedelta(hours=30))})

    result = _fetcher(tmp_path, pages, cursors).fetch_new_messages(["jobs"], StopSignal())

    assert result.messages == []
    assert cursors.last_fetch("jobs") == NOW


def test_second_pass_over_same_page_yields_nothing(tmp_path) -> None:
    cursors = CursorStore(clock=lambda: NOW)
    pages = FakePages({"jobs": _page(NOW - timedelta(hours=3), NOW - timedelta(hours=1))})
    fetcher = _fetcher(tmp_path, pages, cursors)

    first = fetcher.fetch_new_messages(["jobs"], StopSignal())
    second = fetcher.fetch_new_messages(["jobs"], StopSignal())

    assert len(first.messages) == 2
    assert second.messages == []


def test_only_messages_after_cursor_are_returned(tmp_path) -> None:
    cursors = CursorStore(clock=lambda: NOW)
    cursors.advance("jobs", NOW - timedelta(hours=2))
    pages = FakePages({"jobs": _page(NOW - timedelta(hours=3), NOW - timedelta(hours=2), NOW - timedelta(hours=1))})

    result = _fetcher(tmp_path, pages, cursors).fetch_new_messages(["jobs"], StopSignal())

    assert [m.posted_at for m in result.messages] == [NOW - timedelta(hours=1)]


def test_http_failures_do_not_abort_the_sweep(tmp_path) -> None:
    pages = FakePages(
        {
            "gone": _status_error(404),
            "private": _status_error(403),
            "busy": _status_error(429),
            "broken": httpx.ConnectError("connection refused"),
            "jobs": _page(NOW - timedelta(minutes=5)),
        }
    )

    result = _fetcher(tmp_path, pages).fetch_new_messages(
        ["gone", "private", "busy", "broken", "jobs"], StopSignal()
    )

    assert pages.requested == ["gone", "private", "busy", "broken", "jobs"]
    assert len(result.messages) == 1
    assert result.channels_failed == 4
    assert result.channels_ok == 1


def test_missing_channel_page_is_an_empty_pass(tmp_path) -> None:
    pages = FakePages({"ghost": '<div class="tgme_page_description">channel doesn\'t exist</div>'})

    result = _fetcher(tmp_path, pages).fetch_new_messages(["ghost"], StopSignal())

    assert result.messages == []
    assert result.channels_ok == 1


def test_stop_during_pacing_delay_ends_sweep_with_partial_results(tmp_path) -> None:
    pages = FakePages({"jobs": _page(NOW - timedelta(minutes=5)), "other": _page(NOW)})
    stop = StopSignal()
    stop.set()

    result = _fetcher(tmp_path, pages).fetch_new_messages(["jobs", "other"], stop)

    assert result.cancelled
    assert pages.requested == ["jobs"]
    assert len(result.messages) == 1


def test_empty_channel_list_is_not_an_error(tmp_path) -> None:
    pages = FakePages({})
    result = _fetcher(tmp_path, pages).fetch_new_messages([], StopSignal())
    assert result.messages == []
    assert pages.requested == []


def test_unexpected_errors_are_contained_per_channel(tmp_path) -> None:
    cursors = CursorStore(clock=lambda: NOW)
    pages = FakePages(
        {
            "odd": ValueError("unexpected markup"),
            "jobs": _page(NOW - timedelta(minutes=5)),
        }
    )

    result = _fetcher(tmp_path, pages, cursors).fetch_new_messages(["odd", "jobs"], StopSignal())

    assert pages.requested == ["odd", "jobs"]
    assert result.channels_failed == 1
    assert len(result.messages) == 1
    assert cursors.last_fetch("odd") == NOW
