from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class RawMessage:
    content: str
    posted_at: datetime
    channel: str

    def preview(self, limit: int = 50) -> str:
        if len(self.content) <= limit:
            return self.content
        return self.content[:limit] + "..."


@dataclass(frozen=True)
class JobRecord:
    company: str
    role: str
    location: str
    url: str
    salary: str
    source_channel: str
    raw_snippet: str
    posted_at: datetime
    resume_link: str | None = None

    def with_resume_link(self, link: str | None) -> JobRecord:
        return replace(self, resume_link=link)

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["posted_at"] = self.posted_at.isoformat()
        return payload


@dataclass(frozen=True)
class BatchResult:
    processed: int = 0
    relevant: int = 0
    saved: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class FetchResult:
    messages: list[RawMessage]
    channels_ok: int = 0
    channels_failed: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class CycleResult:
    processed: int
    relevant: int
    saved: int
    new_messages_found: int
    cancelled: bool
    finished_at: datetime


@dataclass
class ProcessingCounters:
    last_run: datetime | None = None
    processed_today: int = 0
    saved_today: int = 0

    def record(self, batch: BatchResult, at: datetime) -> None:
        self.last_run = at
        self.processed_today += batch.processed
        self.saved_today += batch.saved

    def reset(self) -> None:
        self.processed_today = 0
        self.saved_today = 0
