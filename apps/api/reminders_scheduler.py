from __future__ import annotations

import datetime as dt
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from packages.core.reminders.clock import Clock, local_now
from packages.core.reminders.models import CheckResult
from packages.core.reminders.runner import ReminderCheckRunner

logger = logging.getLogger("expiry_reminders.scheduler")

JOB_ID = "expiry_reminders"

MODE_INTERVAL = "interval"
MODE_HOURLY = "hourly"
MODE_DAILY = "daily"

_CRONTABS = {
    MODE_HOURLY: "0 * * * *",
    MODE_DAILY: "0 0 * * *",
}
_MODE_MINUTES = {MODE_HOURLY: 60, MODE_DAILY: 24 * 60}


@dataclass(frozen=True)
class SchedulerConfig:
    enabled: bool
    interval_minutes: int
    mode: str = MODE_INTERVAL


@dataclass
class SchedulerStatus:
    is_running: bool = False
    last_run_time: Optional[dt.datetime] = None
    next_run_time: Optional[dt.datetime] = None
    last_run_result: Optional[CheckResult] = None
    total_runs: int = 0


class ReminderScheduler:
    """Runs reminder passes on a cadence, never two at once.

    Built once at process start. The APScheduler job only calls
    ``run_check``; the status bookkeeping and the single-flight guard live
    here so they behave the same for timer ticks and direct calls.
    """

    def __init__(
        self,
        runner: ReminderCheckRunner,
        clock: Optional[Clock] = None,
        scheduler_factory: Callable[[], Any] = BackgroundScheduler,
    ) -> None:
        self._runner = runner
        self._clock = clock or local_now
        self._scheduler_factory = scheduler_factory
        self._scheduler: Optional[Any] = None
        self._config = SchedulerConfig(enabled=True, interval_minutes=60)
        self._status = SchedulerStatus()
        self._run_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()

    def start(self, interval_minutes: int = 60, mode: str = MODE_INTERVAL) -> bool:
        if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
            raise ValueError("interval_minutes must be a positive integer")
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be a positive integer")
        if mode != MODE_INTERVAL and mode not in _CRONTABS:
            raise ValueError(f"Unsupported scheduler mode: {mode}")

        with self._lifecycle_lock:
            if self._scheduler is not None:
                logger.info("scheduler_already_running")
                return False
            self._config = SchedulerConfig(
                enabled=True,
                interval_minutes=_MODE_MINUTES.get(mode, interval_minutes),
                mode=mode,
            )
            logger.info(
                "scheduler_starting mode=%s interval_minutes=%s",
                mode,
                self._config.interval_minutes,
            )

            scheduler = self._scheduler_factory()
            scheduler.add_job(
                self.run_check,
                trigger=self._trigger(),
                id=JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            self._status.next_run_time = self._compute_next_run(self._clock())
            logger.info("scheduler_started next_run=%s", self._status.next_run_time)

        # Runs unlocked: stop() may cancel the timer while this pass is in flight.
        self.run_check()
        return True

    def stop(self) -> bool:
        with self._lifecycle_lock:
            if self._scheduler is None:
                logger.info("scheduler_not_running")
                return False
            # An in-flight pass is left to finish; only future ticks are cancelled.
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._config = replace(self._config, enabled=False)
            self._status.next_run_time = None
            logger.info("scheduler_stopped")
            return True

    def run_check(self) -> Optional[CheckResult]:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("reminder_check_skipped reason=previous_check_running")
            return None
        try:
            self._status.is_running = True
            started = self._clock()
            run_number = self._status.total_runs + 1
            logger.info("reminder_check_started run=%s at=%s", run_number, started.isoformat())
            try:
                result = self._runner.check_and_send_reminders()
            except Exception as exc:
                logger.exception("reminder_check_crashed run=%s", run_number)
                result = CheckResult.failure(exc)

            finished = self._clock()
            self._status.last_run_result = result
            self._status.last_run_time = started
            self._status.total_runs = run_number
            if self._scheduler is not None:
                self._status.next_run_time = self._compute_next_run(finished)
            logger.info(
                "reminder_check_finished run=%s success=%s checked=%s sent=%s errors=%s "
                "duration=%.2fs next_run=%s",
                run_number,
                result.success,
                result.total_checked,
                result.reminders_sent,
                result.errors,
                (finished - started).total_seconds(),
                self._status.next_run_time,
            )
            return result
        finally:
            self._status.is_running = False
            self._run_lock.release()

    def get_status(self) -> SchedulerStatus:
        return replace(self._status)

    def get_config(self) -> SchedulerConfig:
        return replace(self._config)

    def is_active(self) -> bool:
        return self._scheduler is not None and self._config.enabled

    def _trigger(self):
        mode = self._config.mode
        if mode in _CRONTABS:
            return CronTrigger.from_crontab(_CRONTABS[mode])
        return IntervalTrigger(minutes=self._config.interval_minutes)

    def _compute_next_run(self, now: dt.datetime) -> dt.datetime:
        mode = self._config.mode
        if mode == MODE_HOURLY:
            return now.replace(minute=0, second=0, microsecond=0) + dt.timedelta(hours=1)
        if mode == MODE_DAILY:
            midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
            return midnight + dt.timedelta(days=1)
        return now + dt.timedelta(minutes=self._config.interval_minutes)
