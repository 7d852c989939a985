from __future__ import annotations

import logging
from typing import Any

import httpx

from job_harvest.config import Settings, mask_secret
from job_harvest.errors import StorageBackendError
from job_harvest.models import JobRecord
from job_harvest.storage.base import StorageBackend

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
SNIPPET_LIMIT = 2000
EXPECTED_COLUMNS = (
    "Company (Title)",
    "Role (Text)",
    "Location (Text)",
    "Salary (Text)",
    "URL (URL)",
    "Source (Text)",
    "Posted Date (Date)",
    "Raw Snippet (Text)",
    "Resume Link (URL)",
)


def _rich_text(value: str) -> dict[str, Any]:
    return {"rich_text": [{"text": {"content": value}}]}


def build_page_payload(record: JobRecord, database_id: str) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    if record.company:
        properties["Company"] = {"title": [{"text": {"content": record.company}}]}
    if record.role:
        properties["Role"] = _rich_text(record.role)
    if record.location:
        properties["Location"] = _rich_text(record.location)
    if record.salary:
        properties["Salary"] = _rich_text(record.salary)
    if record.url:
        properties["URL"] = {"url": record.url}
    if record.source_channel:
        properties["Source"] = _rich_text(record.source_channel)
    properties["Posted Date"] = {"date": {"start": record.posted_at.date().isoformat()}}
    if record.raw_snippet:
        snippet = record.raw_snippet
        if len(snippet) > SNIPPET_LIMIT:
            snippet = snippet[:SNIPPET_LIMIT] + "..."
        properties["Raw Snippet"] = _rich_text(snippet)
    if record.resume_link:
        properties["Resume Link"] = {"url": record.resume_link}
    return {"parent": {"database_id": database_id}, "properties": properties}


class NotionBackend(StorageBackend):
    name = "notion"

    def __init__(self, settings: Settings, *, client: httpx.Client | None = None) -> None:
        self.token = settings.notion_token
        self.database_id = settings.notion_database_id
        self._client = client or httpx.Client(
            base_url=NOTION_API_URL,
            timeout=settings.request_timeout_seconds,
            headers={
                "Authorization": f"Bearer {settings.notion_token}",
                "Notion-Version": settings.notion_version,
            },
        )

    def init(self) -> None:
        logger.info("Notion database should already have these columns: %s", ", ".join(EXPECTED_COLUMNS))

    def save(self, record: JobRecord) -> None:
        if not self.token or not self.database_id:
            raise StorageBackendError("Notion token or database id is not configured")
        payload = build_page_payload(record, self.database_id)
        try:
            response = self._client.post("/pages", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageBackendError(
                f"Notion API error ({exc.response.status_code}): {exc.response.text[:300]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StorageBackendError(f"Notion API unreachable: {exc}") from exc
        logger.info("saved job to Notion: %s - %s", record.company, record.role)

    def describe(self) -> str:
        return (
            f"Notion Database: {self.database_id or '(unset)'} "
            f"(Integration: {mask_secret(self.token, visible_prefix=7) or '(unset)'})"
        )
