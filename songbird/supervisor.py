"""In-process scheduler for the daily sweep and cache maintenance."""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .cache import UpdateCache
from .config import GlobalConfig
from .errors import CacheUnavailableError
from .models import RefreshResult
from .orchestrator import RefreshOrchestrator

SWEEP_JOB_ID = "daily_sweep"
PURGE_JOB_ID = "cache_purge"


@dataclass
class Supervisor:
    """Schedules the daily refresh sweep and the cache purge."""

    config: GlobalConfig
    orchestrator: RefreshOrchestrator
    cache: UpdateCache
    logger: structlog.stdlib.BoundLogger
    clock: Callable[[], datetime] = field(default=datetime.now, repr=False)
    last_results: List[RefreshResult] = field(default_factory=list, init=False, repr=False)
    _timezone: ZoneInfo = field(init=False, repr=False)
    _timezone_source: str = field(init=False, repr=False)
    _scheduler: BackgroundScheduler = field(init=False, repr=False)
    _stop_event: threading.Event = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._timezone, self._timezone_source = self._resolve_timezone(self.config.runtime.timezone)
        self._stop_event = threading.Event()
        self._scheduler = self._create_scheduler()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Register jobs and start the background scheduler."""

        if self._timezone_source != self.config.runtime.timezone:
            self.logger.warning(
                "supervisor.timezone_fallback",
                configured=self.config.runtime.timezone,
                using=self._timezone_source,
            )

        self._register_jobs()
        self._scheduler.start()
        self.logger.info(
            "supervisor.start",
            jobs=len(self._scheduler.get_jobs()),
            timezone=self._timezone_source,
        )

    def run(self) -> None:
        """Start the scheduler and block until interrupted."""

        self.start()
        self._install_signal_handlers()
        try:
            while not self._stop_event.wait(timeout=1):
                pass
        except KeyboardInterrupt:
            self.logger.info("supervisor.stop", reason="keyboard_interrupt")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self.logger.info("supervisor.shutdown")

    def run_sweep(self) -> List[RefreshResult]:
        """Refresh every configured card once as a scheduled trigger."""

        cards = self.config.sweep_cards()
        if not cards:
            self.logger.warning("supervisor.no_cards", message="No cards configured for the daily sweep.")
            self.last_results = []
            return self.last_results

        self.logger.info("supervisor.sweep_start", cards=len(cards))
        results = self.orchestrator.sweep(cards)
        for result in results:
            self.logger.info(
                "supervisor.sweep_result",
                card_id=result.card_id,
                status=result.outcome.value,
                bird=result.bird,
                location=result.location,
                error=result.error,
            )
        self.last_results = results
        return results

    def run_purge(self) -> int:
        """Drop cache entries older than the configured retention window."""

        cutoff = self.clock().date() - timedelta(days=self.config.cache.retention_days)
        try:
            removed = self.cache.purge(cutoff)
        except CacheUnavailableError as exc:
            self.logger.error("supervisor.purge_failed", error=str(exc))
            return 0
        self.logger.info("supervisor.purge_completed", removed=removed, before=cutoff.isoformat())
        return removed

    def job_snapshot(self) -> List[Dict[str, object]]:
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "next_run": next_run.isoformat() if next_run else None,
                }
            )
        return jobs

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _resolve_timezone(tz_name: str) -> tuple[ZoneInfo, str]:
        try:
            tz = ZoneInfo(tz_name)
            return tz, tz.key
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC"), "UTC"

    def _create_scheduler(self) -> BackgroundScheduler:
        executors = {"default": ThreadPoolExecutor(max_workers=1)}
        return BackgroundScheduler(timezone=self._timezone, executors=executors)

    def _register_jobs(self) -> None:
        schedule = self.config.schedule
        if schedule.enabled:
            try:
                trigger = CronTrigger.from_crontab(schedule.cron, timezone=self._timezone)
            except ValueError as exc:
                self.logger.error("supervisor.schedule_invalid", cron=schedule.cron, error=str(exc))
            else:
                self._scheduler.add_job(
                    self.run_sweep,
                    trigger=trigger,
                    id=SWEEP_JOB_ID,
                    name="daily refresh sweep",
                    coalesce=True,
                    max_instances=1,
                    replace_existing=True,
                )
                self.logger.info("supervisor.sweep_scheduled", schedule=str(trigger))
        else:
            self.logger.info("supervisor.sweep_disabled")

        self._scheduler.add_job(
            self.run_purge,
            trigger=IntervalTrigger(hours=schedule.purge_interval_hours, timezone=self._timezone),
            id=PURGE_JOB_ID,
            name="update cache purge",
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._signal_handler)

    def _signal_handler(self, signum, frame) -> None:  # pragma: no cover - OS signal handling
        self.logger.info("supervisor.signal", signal=signum)
        self._stop_event.set()
