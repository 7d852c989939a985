from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from job_harvest.config import Settings
from job_harvest.errors import ReasoningServiceError, ResponseParseError

logger = logging.getLogger(__name__)


class ReasoningClient(Protocol):
    def generate(self, prompt: str) -> str: ...


def strip_code_fence(text: str, language: str | None = None) -> str:
    cleaned = text.strip()
    prefixes = [f"```{language}"] if language else []
    prefixes.append("```")
    for prefix in prefixes:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def extract_candidate_text(payload: Any) -> str:
    try:
        parts = payload["candidates"][0]["content"]["parts"]
        text = parts[0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ResponseParseError(f"unexpected generateContent response: {exc!r}") from exc
    if not isinstance(text, str):
        raise ResponseParseError("generateContent text part is not a string")
    return text


class GeminiClient:
    """Thin generateContent wrapper; every failure surfaces as a TransportError."""

    def __init__(self, settings: Settings, *, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=settings.gemini_base_url,
            timeout=settings.request_timeout_seconds,
        )

    def generate(self, prompt: str) -> str:
        path = f"/v1beta/models/{self.settings.gemini_model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = self._client.post(
                path,
                params={"key": self.settings.gemini_api_key},
                json=body,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                logger.error(
                    "reasoning service rate limit hit (429); current delay is %gs",
                    self.settings.rate_limit_delay_seconds,
                )
            raise ReasoningServiceError(
                f"generateContent failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ReasoningServiceError(f"generateContent transport error: {exc}") from exc
        except ValueError as exc:
            raise ResponseParseError("generateContent returned non-JSON body") from exc

        text = extract_candidate_text(payload)
        logger.debug("reasoning response (%d chars)", len(text))
        return text
