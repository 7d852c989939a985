from __future__ import annotations

import csv
import json
import logging
from pathlib import Path

from job_harvest.errors import StorageBackendError
from job_harvest.models import JobRecord
from job_harvest.storage.base import StorageBackend, record_row

logger = logging.getLogger(__name__)

CSV_HEADER = (
    "Posted At",
    "Company",
    "Role",
    "Location",
    "Salary",
    "URL",
    "Raw Snippet",
    "Source Channel",
    "Resume Link",
)


class CsvBackend(StorageBackend):
    name = "csv"

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def init(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as handle:
            csv.writer(handle, quoting=csv.QUOTE_ALL).writerow(CSV_HEADER)
        logger.info("created CSV file: %s", self.path)

    def save(self, record: JobRecord) -> None:
        try:
            self.init()
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                csv.writer(handle, quoting=csv.QUOTE_ALL).writerow(record_row(record))
        except OSError as exc:
            raise StorageBackendError(f"csv append failed: {exc}") from exc
        logger.info("saved job to CSV: %s - %s", record.company, record.role)

    def describe(self) -> str:
        return f"CSV file: {self.path.name}"


class JsonBackend(StorageBackend):
    name = "json"

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def init(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            existing = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("could not read %s, starting a fresh list: %s", self.path, exc)
            return []
        return existing if isinstance(existing, list) else []

    def save(self, record: JobRecord) -> None:
        jobs = self.load()
        jobs.append(record.as_dict())
        try:
            self.init()
            self.path.write_text(json.dumps(jobs, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            raise StorageBackendError(f"json write failed: {exc}") from exc
        logger.info("saved job to JSON: %s - %s", record.company, record.role)

    def describe(self) -> str:
        return f"JSON file: {self.path.name}"
