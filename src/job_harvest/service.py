from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from job_harvest.compiler import LatexCompiler
from job_harvest.config import Settings
from job_harvest.cursors import Clock, CursorStore, utc_now
from job_harvest.errors import CycleCancelled
from job_harvest.models import BatchResult, CycleResult, ProcessingCounters
from job_harvest.pipeline import EnrichmentPipeline, manual_message
from job_harvest.reasoning import GeminiClient
from job_harvest.resume import ResumeGenerator
from job_harvest.scrapers.fetcher import FeedFetcher
from job_harvest.signals import StopSignal
from job_harvest.storage.router import StorageRouter, build_router
from job_harvest.uploader import CloudinaryUploader

logger = logging.getLogger(__name__)

SERVICE_NAME = "Telegram job harvester"
BUSY_MESSAGE = "a harvest cycle is already running"
CYCLE_JOB_ID = "harvest_cycle"

SchedulerFactory = Callable[[], BaseScheduler]


def _error_result(error: str, message: str) -> dict[str, Any]:
    return {"status": "error", "error": error, "message": message}


def _default_scheduler() -> BaseScheduler:
    return BlockingScheduler(timezone="UTC")


class JobHarvestService:
    """Owns cursors, counters and the cycle lock; drives fetch -> enrich.

    Every entry point that touches channel cursors or the pipeline takes the
    same non-blocking lock, so scheduled and manual runs never overlap.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        cursors: CursorStore,
        fetcher: FeedFetcher,
        pipeline: EnrichmentPipeline,
        router: StorageRouter,
        stop: StopSignal | None = None,
        clock: Clock = utc_now,
        scheduler_factory: SchedulerFactory = _default_scheduler,
    ) -> None:
        self.settings = settings
        self.cursors = cursors
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.router = router
        self.stop_signal = stop or StopSignal()
        self.counters = ProcessingCounters()
        self._clock = clock
        self._cycle_lock = threading.Lock()
        self._scheduler_factory = scheduler_factory
        self._scheduler: BaseScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def _run_cycle(self) -> CycleResult:
        fetched = self.fetcher.fetch_new_messages(self.settings.channels, self.stop_signal)
        logger.info("fetched %d new messages", len(fetched.messages))

        if fetched.cancelled:
            # Fetched messages are dropped here; their cursors have already moved past them.
            batch = BatchResult(cancelled=True)
        else:
            batch = self.pipeline.process_batch(fetched.messages, self.stop_signal)

        finished_at = self._clock()
        self.counters.record(batch, finished_at)
        logger.info(
            "cycle finished: processed=%d relevant=%d saved=%d%s",
            batch.processed,
            batch.relevant,
            batch.saved,
            " (stopped early)" if batch.cancelled else "",
        )
        if batch.saved:
            logger.info(
                "totals so far: %d processed, %d saved",
                self.counters.processed_today,
                self.counters.saved_today,
            )
        return CycleResult(
            processed=batch.processed,
            relevant=batch.relevant,
            saved=batch.saved,
            new_messages_found=len(fetched.messages),
            cancelled=batch.cancelled,
            finished_at=finished_at,
        )

    def run_scheduled_cycle(self) -> CycleResult | None:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("previous cycle still running, skipping this tick")
            return None
        try:
            logger.info("starting scheduled cycle")
            return self._run_cycle()
        except Exception:
            logger.exception("scheduled cycle failed")
            return None
        finally:
            self._cycle_lock.release()

    def run_cycle_now(self) -> dict[str, Any]:
        if not self._cycle_lock.acquire(blocking=False):
            return _error_result("busy", BUSY_MESSAGE)
        try:
            logger.info("manual cycle triggered")
            result = self._run_cycle()
        except Exception as exc:
            logger.exception("manual cycle failed")
            return _error_result(str(exc), f"Error processing messages: {exc}")
        finally:
            self._cycle_lock.release()

        return {
            "status": "success",
            "message": "Messages processed successfully"
            if not result.cancelled
            else "Processing stopped early",
            "processed": result.processed,
            "relevant": result.relevant,
            "saved": result.saved,
            "new_messages_found": result.new_messages_found,
            "cancelled": result.cancelled,
            "processing_time": result.finished_at.isoformat(),
        }

    def process_single_message(self, text: str) -> dict[str, Any]:
        if not text or not text.strip():
            return _error_result("empty", "Message is required")
        if not self._cycle_lock.acquire(blocking=False):
            return _error_result("busy", BUSY_MESSAGE)

        message = manual_message(text.strip(), self._clock())
        result: dict[str, Any] = {
            "message_content": message.preview(100),
            "processed": 1,
            "relevant": 0,
            "saved": 0,
            "new_messages_found": 1,
            "is_relevant": False,
        }
        pacer = self.pipeline.new_pacer(self.stop_signal)
        try:
            outcome = self.pipeline.process_message(message, pacer)
        except CycleCancelled:
            logger.warning("single message processing interrupted")
            result.update(_error_result("cancelled", "Processing interrupted"))
            return result
        except Exception as exc:
            logger.exception("single message processing failed")
            result.update(_error_result(str(exc), f"Error processing message: {exc}"))
            return result
        finally:
            self._cycle_lock.release()

        result["is_relevant"] = outcome.relevant
        result["relevant"] = int(outcome.relevant)
        result["saved"] = int(outcome.saved)
        if not outcome.relevant:
            result.update(status="info", message="Message is not job-relevant")
        elif outcome.record is None:
            result.update(status="warning", message="Message is relevant but failed to extract job details")
        else:
            result["job"] = outcome.record.as_dict()
            if outcome.record.resume_link:
                result["resume_link"] = outcome.record.resume_link
            if outcome.saved:
                result.update(status="success", message="Job details extracted and saved")
            else:
                result.update(status="warning", message="Job details extracted but could not be stored")
        return result

    def initialize_storage(self) -> dict[str, Any]:
        try:
            self.router.init()
        except Exception as exc:
            logger.exception("storage initialization failed")
            return _error_result(str(exc), "Failed to initialize storage")
        return {
            "status": "success",
            "message": "Storage initialized successfully",
            "storage": self.router.describe(),
        }

    def reset_channel_cursors(self) -> None:
        self.cursors.reset_all()
        logger.info("channel cursors reset, next run treats the last 24 hours as new")

    def reset_counters(self) -> None:
        self.counters.reset()
        logger.info("processing counters reset")

    def _resume_status(self) -> dict[str, Any]:
        generator = self.pipeline.resume_generator
        if generator is None:
            return {"generation_enabled": False}
        return generator.status()

    def describe_configuration(self) -> dict[str, Any]:
        """Static setup of this process; live run state is only in ``get_status``."""
        return {
            "service_name": SERVICE_NAME,
            "channels": self.settings.channels,
            "poll_interval_minutes": self.settings.poll_interval_minutes,
            "storage": self.router.describe(),
            "resume": self._resume_status(),
        }

    def get_status(self) -> dict[str, Any]:
        last_run = self.counters.last_run
        return {
            "service_name": SERVICE_NAME,
            "last_run": last_run.isoformat() if last_run else "Never",
            "running": self.is_running,
            "total_processed_today": self.counters.processed_today,
            "total_saved_today": self.counters.saved_today,
            "channels": self.settings.channels,
            "channel_last_fetch": self.cursors.snapshot(),
            "storage": self.router.describe(),
            "resume": self._resume_status(),
        }

    def serve(self, interval_seconds: float | None = None) -> None:
        """Run cycles until ``stop`` is called; the first cycle starts immediately."""
        interval = interval_seconds or self.settings.poll_interval_minutes * 60
        scheduler = self._scheduler_factory()
        scheduler.add_job(
            self.run_scheduled_cycle,
            "interval",
            seconds=interval,
            id=CYCLE_JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler = scheduler
        if self.stop_signal.is_set():
            logger.info("stop requested before the scheduler started")
            self._scheduler = None
            return

        logger.info("scheduler started, interval %ss", interval)
        try:
            scheduler.start()
        finally:
            self._scheduler = None
        logger.info("scheduler stopped")

    def stop(self) -> None:
        self.stop_signal.set()
        scheduler = self._scheduler
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)


def build_service(settings: Settings) -> JobHarvestService:
    cursors = CursorStore()
    router = build_router(settings)
    reasoning = GeminiClient(settings)
    resume_generator = None
    if settings.resume_generate_enabled:
        resume_generator = ResumeGenerator(
            settings,
            reasoning,
            LatexCompiler(settings),
            CloudinaryUploader(settings),
        )
        resume_generator.load_template()
    pipeline = EnrichmentPipeline(settings, reasoning, router, resume_generator=resume_generator)
    fetcher = FeedFetcher(settings, cursors)
    return JobHarvestService(
        settings,
        cursors=cursors,
        fetcher=fetcher,
        pipeline=pipeline,
        router=router,
    )
