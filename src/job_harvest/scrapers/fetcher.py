from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial

import httpx

from job_harvest.config import Settings
from job_harvest.cursors import Clock, CursorStore, normalize_channel, utc_now
from job_harvest.errors import CycleCancelled
from job_harvest.keywords import build_keyword_set, is_candidate_job_post
from job_harvest.models import FetchResult, RawMessage
from job_harvest.scrapers.telegram import (
    fetch_channel_html,
    is_missing_channel_page,
    parse_channel_page,
)
from job_harvest.signals import StopSignal

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.Client]
PageLoader = Callable[[httpx.Client, str], str]


class FeedFetcher:
    def __init__(
        self,
        settings: Settings,
        cursors: CursorStore,
        *,
        client_factory: ClientFactory | None = None,
        load_page: PageLoader = fetch_channel_html,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.cursors = cursors
        self._client_factory = client_factory or self._default_client
        self._load_page = load_page
        self._clock = clock
        self._accept = partial(is_candidate_job_post, keywords=build_keyword_set(settings.keywords_csv))

    def _default_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.settings.request_timeout_seconds,
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
        )

    def _read_channel(self, client: httpx.Client, channel: str) -> list[RawMessage]:
        html = self._load_page(client, channel)
        if not html:
            logger.warning("empty page for @%s", channel)
            return []
        if is_missing_channel_page(html):
            logger.warning("channel @%s doesn't exist or is not accessible", channel)
            return []
        return parse_channel_page(html, channel, now=self._clock(), accept=self._accept)

    def fetch_channel_messages(self, client: httpx.Client, channel: str) -> list[RawMessage] | None:
        """Messages that pass the pre-filter, or None when the channel failed this pass."""
        try:
            return self._read_channel(client, channel)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                logger.warning("channel @%s not found (404)", channel)
            elif status == 403:
                logger.warning("channel @%s forbidden (403), it may be private", channel)
            elif status == 429:
                logger.warning("rate limited on @%s (429), will retry next cycle", channel)
            else:
                logger.error("HTTP error on @%s: %s", channel, status)
            return None
        except httpx.HTTPError as exc:
            logger.error("transport error on @%s: %s", channel, exc)
            return None
        except Exception:
            logger.exception("unexpected error reading @%s", channel)
            return None

    def _accept_new(
        self, channel: str, messages: list[RawMessage], started_at: datetime
    ) -> list[RawMessage]:
        new_messages = [m for m in messages if self.cursors.is_new(channel, m.posted_at)]
        if new_messages:
            self.cursors.advance(channel, max(m.posted_at for m in new_messages))
        else:
            self.cursors.advance(channel, started_at)
        return new_messages

    def fetch_new_messages(self, channels: list[str], stop: StopSignal) -> FetchResult:
        if not channels:
            logger.warning("no channels configured, nothing to fetch")
            return FetchResult(messages=[])

        logger.info("fetching new messages from %d channels", len(channels))
        started_at = self._clock()
        collected: list[RawMessage] = []
        ok = 0
        failed = 0

        with self._client_factory() as client:
            for raw_name in channels:
                channel = normalize_channel(raw_name)
                if not channel:
                    continue

                messages = self.fetch_channel_messages(client, channel)
                if messages is None:
                    # A failed channel counts as an empty pass.
                    failed += 1
                    messages = []
                else:
                    ok += 1

                new_messages = self._accept_new(channel, messages, started_at)
                collected.extend(new_messages)
                logger.info(
                    "channel @%s: %d candidate messages, %d new",
                    channel,
                    len(messages),
                    len(new_messages),
                )

                try:
                    stop.sleep(self.settings.channel_fetch_delay_seconds)
                except CycleCancelled:
                    logger.warning("fetch sweep stopped after @%s", channel)
                    return FetchResult(
                        messages=collected, channels_ok=ok, channels_failed=failed, cancelled=True
                    )

        logger.info("total new messages fetched: %d", len(collected))
        return FetchResult(messages=collected, channels_ok=ok, channels_failed=failed)
