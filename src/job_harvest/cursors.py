from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

FIRST_FETCH_LOOKBACK = timedelta(hours=24)
STATUS_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_channel(name: str) -> str:
    return name.strip().removeprefix("@")


class CursorStore:
    """Per-channel watermark of the newest message already handed downstream.

    Lives for the process lifetime only. A channel without an entry reads as
    "24 hours ago" so a first pass never floods the pipeline with history.
    Callers must not advance the same channel from two threads at once.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._last_fetch: dict[str, datetime] = {}

    def last_fetch(self, channel: str) -> datetime:
        key = normalize_channel(channel)
        stored = self._last_fetch.get(key)
        if stored is not None:
            return stored
        default = self._clock() - FIRST_FETCH_LOOKBACK
        logger.debug("no cursor for @%s yet, using %s", key, default.isoformat())
        return default

    def advance(self, channel: str, timestamp: datetime) -> None:
        key = normalize_channel(channel)
        self._last_fetch[key] = timestamp
        logger.debug("cursor for @%s set to %s", key, timestamp.isoformat())

    def is_new(self, channel: str, timestamp: datetime) -> bool:
        return timestamp > self.last_fetch(channel)

    def reset_all(self) -> None:
        self._last_fetch.clear()
        logger.info("reset all channel cursors")

    def snapshot(self) -> dict[str, str]:
        return {
            f"@{channel}": value.strftime(STATUS_TIME_FORMAT)
            for channel, value in sorted(dict(self._last_fetch).items())
        }
