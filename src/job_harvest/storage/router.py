from __future__ import annotations

import logging
from collections.abc import Mapping

from job_harvest.config import Settings
from job_harvest.models import JobRecord
from job_harvest.storage.base import StorageBackend
from job_harvest.storage.files import CsvBackend, JsonBackend
from job_harvest.storage.notion import NotionBackend
from job_harvest.storage.sqlite import SqliteBackend

logger = logging.getLogger(__name__)

FALLBACK_BACKEND = "csv"


class StorageRouter:
    """Routes saves to the configured backend, with one retry on the fallback.

    A record that fails on both the configured and the fallback backend is
    logged and dropped; nothing is retried later.
    """

    def __init__(
        self,
        selected: str,
        backends: Mapping[str, StorageBackend],
        *,
        fallback: str = FALLBACK_BACKEND,
    ) -> None:
        if fallback not in backends:
            raise ValueError(f"fallback backend {fallback!r} is not registered")
        self.fallback = backends[fallback]
        self.backends = dict(backends)
        self.requested = selected
        if selected in backends:
            self.primary = backends[selected]
        else:
            logger.warning("unknown storage type %r, using %s", selected, self.fallback.name)
            self.primary = self.fallback

    def init(self) -> None:
        logger.info("initializing %s storage", self.primary.name)
        self.primary.init()

    def save(self, record: JobRecord) -> str | None:
        """Return the name of the backend that stored the record, or None if it was dropped."""
        try:
            self.primary.save(record)
            return self.primary.name
        except Exception as exc:
            logger.error(
                "saving %s - %s to %s failed: %s",
                record.company,
                record.role,
                self.primary.name,
                exc,
            )
            if self.primary is self.fallback:
                logger.error("no other backend to fall back to, record dropped")
                return None

        logger.warning("falling back to %s storage", self.fallback.name)
        try:
            self.fallback.save(record)
        except Exception as exc:
            logger.error(
                "fallback %s also failed, record %s - %s dropped: %s",
                self.fallback.name,
                record.company,
                record.role,
                exc,
            )
            return None
        return self.fallback.name

    def describe(self) -> str:
        try:
            return self.primary.describe()
        except Exception as exc:
            logger.warning("could not describe %s storage: %s", self.primary.name, exc)
            return f"{self.primary.name} storage (status unavailable: {exc})"


def build_router(settings: Settings) -> StorageRouter:
    backends: dict[str, StorageBackend] = {
        "csv": CsvBackend(settings.csv_path),
        "json": JsonBackend(settings.json_path),
        "sqlite": SqliteBackend(settings.sqlite_path),
    }
    if settings.storage_type == "notion":
        backends["notion"] = NotionBackend(settings)
    return StorageRouter(settings.storage_type, backends)
