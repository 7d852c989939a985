from __future__ import annotations

from abc import ABC, abstractmethod

from job_harvest.models import JobRecord

RECORD_COLUMNS = (
    "posted_at",
    "company",
    "role",
    "location",
    "salary",
    "url",
    "raw_snippet",
    "source_channel",
    "resume_link",
)


def record_row(record: JobRecord) -> tuple[str, ...]:
    return (
        record.posted_at.isoformat(),
        record.company,
        record.role,
        record.location,
        record.salary,
        record.url,
        record.raw_snippet,
        record.source_channel,
        record.resume_link or "",
    )


class StorageBackend(ABC):
    """Put-only sink for job records.

    ``save`` raises ``StorageBackendError`` (or lets the underlying error out);
    the router decides what happens next.
    """

    name: str = "backend"

    @abstractmethod
    def init(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def save(self, record: JobRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def describe(self) -> str:
        raise NotImplementedError
