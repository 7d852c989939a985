from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_fixed

from job_harvest.keywords import is_candidate_job_post
from job_harvest.models import RawMessage

PREVIEW_URL = "https://t.me/s/{channel}"
MAX_MESSAGES_PER_PAGE = 20
MISSING_CHANNEL_MARKERS = ("tgme_page_description", "channel doesn't exist")

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
_MONTHS = {
    name: index
    for index, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}
# Only "Aug 25, 2024 at 09:45:51"; anything else is left unparsed.
_TITLE_TIME_RE = re.compile(
    r"^(?P<mon>[A-Za-z]{3})\s+(?P<day>\d{1,2}),\s+(?P<year>\d{4})\s+at\s+"
    r"(?P<hh>\d{2}):(?P<mm>\d{2}):(?P<ss>\d{2})$"
)


def _clean_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


@retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(3),
    wait=wait_fixed(1),
    reraise=True,
)
def fetch_channel_html(client: httpx.Client, channel: str) -> str:
    response = client.get(PREVIEW_URL.format(channel=channel), headers=_BROWSER_HEADERS)
    response.raise_for_status()
    return response.text


def is_missing_channel_page(html: str) -> bool:
    return all(marker in html for marker in MISSING_CHANNEL_MARKERS)


def parse_title_time(value: str) -> datetime | None:
    match = _TITLE_TIME_RE.match(value.strip())
    if match is None:
        return None
    month = _MONTHS.get(match["mon"].lower())
    if month is None:
        return None
    try:
        return datetime(
            int(match["year"]),
            month,
            int(match["day"]),
            int(match["hh"]),
            int(match["mm"]),
            int(match["ss"]),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_datetime_attr(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _extract_content(block: Tag) -> str | None:
    for selector in (".tgme_widget_message_text", ".tgme_widget_message_media_caption"):
        node = block.select_one(selector)
        if node is None:
            continue
        text = _clean_spaces(node.get_text(" ", strip=True))
        if text:
            return text
    return None


def _extract_timestamp(block: Tag) -> datetime | None:
    time_tag = block.select_one("time[datetime]")
    if time_tag is not None:
        parsed = parse_datetime_attr(str(time_tag.get("datetime", "")))
        if parsed is not None:
            return parsed

    date_span = block.select_one("span.tgme_widget_message_date[title]")
    if date_span is not None:
        return parse_title_time(str(date_span.get("title", "")))
    return None


def parse_channel_page(
    html: str,
    channel: str,
    *,
    now: datetime | None = None,
    limit: int = MAX_MESSAGES_PER_PAGE,
    accept: Callable[[str], bool] = is_candidate_job_post,
) -> list[RawMessage]:
    """Turn a rendered channel preview page into candidate messages.

    Messages failing ``accept`` are dropped. A message without any readable
    timestamp gets ``now`` minus one minute per message already accepted, so
    page order survives.
    """
    soup = BeautifulSoup(html, "html.parser")
    reference = now or datetime.now(timezone.utc)
    messages: list[RawMessage] = []

    for block in soup.select("div.tgme_widget_message[data-post]"):
        content = _extract_content(block)
        if content is None or not accept(content):
            continue

        posted_at = _extract_timestamp(block)
        if posted_at is None:
            posted_at = reference - timedelta(minutes=len(messages))

        messages.append(RawMessage(content=content, posted_at=posted_at, channel=channel))
        if len(messages) >= limit:
            break

    return messages
