from __future__ import annotations

import logging
import sqlite3
from contextlib import AbstractContextManager
from pathlib import Path

from job_harvest.errors import StorageBackendError
from job_harvest.models import JobRecord
from job_harvest.storage.base import RECORD_COLUMNS, StorageBackend, record_row

logger = logging.getLogger(__name__)

INSERT_JOB_SQL = "INSERT INTO jobs ({}) VALUES ({})".format(
    ", ".join(RECORD_COLUMNS),
    ", ".join("?" for _ in RECORD_COLUMNS),
)


class JobDatabase(AbstractContextManager["JobDatabase"]):
    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    posted_at TEXT,
                    company TEXT,
                    role TEXT,
                    location TEXT,
                    salary TEXT,
                    url TEXT,
                    raw_snippet TEXT,
                    source_channel TEXT,
                    resume_link TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

    def insert_job(self, record: JobRecord) -> None:
        with self.conn:
            self.conn.execute(
                INSERT_JOB_SQL,
                record_row(record),
            )

    def count_jobs(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS c FROM jobs").fetchone()
        return int(row["c"]) if row else 0

    def close(self) -> None:
        self.conn.close()

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


class SqliteBackend(StorageBackend):
    name = "sqlite"

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def init(self) -> None:
        with JobDatabase(self.db_path):
            pass
        logger.info("SQLite database ready: %s", self.db_path)

    def save(self, record: JobRecord) -> None:
        try:
            with JobDatabase(self.db_path) as db:
                db.insert_job(record)
        except sqlite3.Error as exc:
            raise StorageBackendError(f"sqlite insert failed: {exc}") from exc
        logger.info("saved job to SQLite: %s - %s", record.company, record.role)

    def count(self) -> int:
        with JobDatabase(self.db_path) as db:
            return db.count_jobs()

    def describe(self) -> str:
        return f"SQLite database: {self.db_path.name} (Jobs stored: {self.count()})"
