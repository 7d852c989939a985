import logging
from datetime import datetime, timezone

import pytest

from job_harvest.config import Settings
from job_harvest.errors import StorageBackendError
from job_harvest.models import JobRecord
from job_harvest.storage.base import StorageBackend
from job_harvest.storage.files import CsvBackend
from job_harvest.storage.notion import NotionBackend
from job_harvest.storage.router import StorageRouter, build_router

RECORD = JobRecord(
    company="Acme",
    role="Backend Engineer",
    location="Berlin",
    url="https://acme.example/jobs",
    salary="80k EUR",
    source_channel="telegram_channel_remote_jobs",
    raw_snippet="Acme is hiring",
    posted_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
)


class RecordingBackend(StorageBackend):
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.records: list[JobRecord] = []
        self.attempts = 0
        self.initialized = False

    def init(self) -> None:
        self.initialized = True

    def save(self, record: JobRecord) -> None:
        self.attempts += 1
        if self.fail:
            raise StorageBackendError(f"{self.name} is down")
        self.records.append(record)

    def describe(self) -> str:
        if self.fail:
            raise StorageBackendError(f"{self.name} is down")
        return f"{self.name} ({len(self.records)} records)"


def test_primary_success_does_not_touch_fallback() -> None:
    primary = RecordingBackend("notion")
    fallback = RecordingBackend("csv")
    router = StorageRouter("notion", {"notion": primary, "csv": fallback})

    assert router.save(RECORD) == "notion"
    assert primary.records == [RECORD]
    assert fallback.attempts == 0


def test_primary_failure_falls_back_exactly_once() -> None:
    primary = RecordingBackend("notion", fail=True)
    fallback = RecordingBackend("csv")
    router = StorageRouter("notion", {"notion": primary, "csv": fallback})

    assert router.save(RECORD) == "csv"
    assert primary.attempts == 1
    assert fallback.records == [RECORD]


def test_double_failure_is_logged_and_dropped(caplog) -> None:
    primary = RecordingBackend("notion", fail=True)
    fallback = RecordingBackend("csv", fail=True)
    router = StorageRouter("notion", {"notion": primary, "csv": fallback})

    with caplog.at_level(logging.ERROR, logger="job_harvest.storage.router"):
        assert router.save(RECORD) is None

    assert primary.attempts == 1
    assert fallback.attempts == 1
    assert "dropped" in caplog.text


def test_failing_fallback_as_primary_is_not_retried() -> None:
    fallback = RecordingBackend("csv", fail=True)
    router = StorageRouter("csv", {"csv": fallback})

    assert router.save(RECORD) is None
    assert fallback.attempts == 1


def test_unknown_selector_uses_fallback(caplog) -> None:
    fallback = RecordingBackend("csv")
    with caplog.at_level(logging.WARNING, logger="job_harvest.storage.router"):
        router = StorageRouter("mongo", {"csv": fallback})

    assert router.primary is fallback
    assert "mongo" in caplog.text
    router.init()
    assert fallback.initialized


def test_unregistered_fallback_is_a_configuration_error() -> None:
    with pytest.raises(ValueError):
        StorageRouter("notion", {"notion": RecordingBackend("notion")})


def test_describe_never_raises() -> None:
    router = StorageRouter("notion", {"notion": RecordingBackend("notion", fail=True), "csv": RecordingBackend("csv")})
    assert "status unavailable" in router.describe()


def test_build_router_selects_backend_from_settings(tmp_path) -> None:
    csv_router = build_router(Settings(data_dir=tmp_path))
    assert isinstance(csv_router.primary, CsvBackend)
    assert "notion" not in csv_router.backends

    notion_router = build_router(Settings(data_dir=tmp_path, storage_type="Notion"))
    assert isinstance(notion_router.primary, NotionBackend)
    assert isinstance(notion_router.fallback, CsvBackend)

    assert build_router(Settings(data_dir=tmp_path, storage_type="sqlite")).primary.name == "sqlite"
