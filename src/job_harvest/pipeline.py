from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from job_harvest.config import Settings
from job_harvest.errors import CycleCancelled, ResponseParseError, TransportError
from job_harvest.models import BatchResult, JobRecord, RawMessage
from job_harvest.reasoning import ReasoningClient, strip_code_fence
from job_harvest.resume import ResumeGenerator
from job_harvest.signals import ReasoningPacer, StopSignal
from job_harvest.storage.router import StorageRouter

logger = logging.getLogger(__name__)

EXTRACTION_FIELDS = ("company", "role", "location", "url", "salary", "rawSnippet")
EXTRACTION_PROMPT = """\
Extract the following fields from the job post, and return in JSON format:
{
  "company": "company name",
  "role": "job role/title",
  "location": "job location",
  "url": "application URL or company URL",
  "salary": "salary information",
  "rawSnippet": "a short snippet from the post (max 200 chars)"
}
If any field is missing, return empty string for that field.
Return ONLY valid JSON, no additional text.

POST:
"""
FEED_SOURCE_PREFIX = "telegram_channel_"
MANUAL_SOURCE = "manual_input"


@dataclass(frozen=True)
class MessageOutcome:
    relevant: bool = False
    record: JobRecord | None = None
    saved: bool = False


def _field(value: object) -> str:
    return "" if value is None else str(value).strip()


def parse_extraction(text: str) -> dict[str, str]:
    try:
        payload = json.loads(strip_code_fence(text, "json"))
    except ValueError as exc:
        raise ResponseParseError(f"extraction reply is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ResponseParseError("extraction reply is not a JSON object")
    return {name: _field(payload.get(name)) for name in EXTRACTION_FIELDS}


def source_channel_for(message: RawMessage) -> str:
    if message.channel == MANUAL_SOURCE:
        return MANUAL_SOURCE
    return f"{FEED_SOURCE_PREFIX}{message.channel}"


class EnrichmentPipeline:
    """relevance -> extraction -> optional resume -> storage, one message at a time."""

    def __init__(
        self,
        settings: Settings,
        reasoning: ReasoningClient,
        router: StorageRouter,
        *,
        resume_generator: ResumeGenerator | None = None,
    ) -> None:
        self.settings = settings
        self.reasoning = reasoning
        self.router = router
        self.resume_generator = resume_generator

    def new_pacer(self, stop: StopSignal) -> ReasoningPacer:
        return ReasoningPacer(self.settings.rate_limit_delay_seconds, stop)

    def classify(self, text: str, pacer: ReasoningPacer) -> bool:
        pacer.wait_turn()
        prompt = f"{self.settings.relevance_prompt}\n\nPOST:\n{text}"
        try:
            answer = self.reasoning.generate(prompt)
        except TransportError as exc:
            logger.error("relevance call failed, treating message as not relevant: %s", exc)
            return False
        logger.debug("relevance answer: %r", answer[:40])
        return answer.strip().casefold().startswith("yes")

    def extract(self, message: RawMessage, pacer: ReasoningPacer) -> JobRecord | None:
        pacer.wait_turn()
        try:
            fields = parse_extraction(self.reasoning.generate(EXTRACTION_PROMPT + message.content))
        except TransportError as exc:
            logger.warning(
                "relevant message from @%s could not be extracted: %s", message.channel, exc
            )
            return None
        return JobRecord(
            company=fields["company"],
            role=fields["role"],
            location=fields["location"],
            url=fields["url"],
            salary=fields["salary"],
            source_channel=source_channel_for(message),
            raw_snippet=fields["rawSnippet"],
            posted_at=message.posted_at,
        )

    def attach_resume(self, record: JobRecord, pacer: ReasoningPacer) -> JobRecord:
        if self.resume_generator is None:
            return record
        try:
            link = self.resume_generator.generate(record, pacer)
        except CycleCancelled:
            raise
        except Exception:
            logger.exception("resume generation crashed for %s at %s", record.role, record.company)
            return record
        if link is None:
            return record
        logger.info("resume generated for %s at %s: %s", record.role, record.company, link)
        return record.with_resume_link(link)

    def process_message(self, message: RawMessage, pacer: ReasoningPacer) -> MessageOutcome:
        logger.debug("processing message from @%s: %s", message.channel, message.preview())
        if not self.classify(message.content, pacer):
            logger.debug("message from @%s not job-relevant", message.channel)
            return MessageOutcome()

        logger.info("relevant job post from @%s, extracting details", message.channel)
        record = self.extract(message, pacer)
        if record is None:
            return MessageOutcome(relevant=True)

        record = self.attach_resume(record, pacer)
        stored_in = self.router.save(record)
        if stored_in is None:
            return MessageOutcome(relevant=True, record=record)

        logger.info(
            "saved job: %s - %s (from @%s, %s)",
            record.company,
            record.role,
            message.channel,
            stored_in,
        )
        return MessageOutcome(relevant=True, record=record, saved=True)

    def process_batch(self, messages: list[RawMessage], stop: StopSignal) -> BatchResult:
        pacer = self.new_pacer(stop)
        processed = relevant = saved = 0

        for message in messages:
            processed += 1
            try:
                outcome = self.process_message(message, pacer)
            except CycleCancelled:
                logger.warning(
                    "batch stopped after %d of %d messages", processed - 1, len(messages)
                )
                return BatchResult(
                    processed=processed - 1, relevant=relevant, saved=saved, cancelled=True
                )
            except Exception:
                logger.exception("error processing message from @%s", message.channel)
                continue

            relevant += int(outcome.relevant)
            saved += int(outcome.saved)

        logger.info(
            "batch finished: processed=%d relevant=%d saved=%d", processed, relevant, saved
        )
        return BatchResult(processed=processed, relevant=relevant, saved=saved)


def manual_message(text: str, now: datetime) -> RawMessage:
    return RawMessage(content=text, posted_at=now, channel=MANUAL_SOURCE)
