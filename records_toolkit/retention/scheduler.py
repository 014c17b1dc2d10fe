"""
Interval scheduler for the retention sweep.

Wraps an APScheduler BackgroundScheduler holding a single interval job.
The job never overlaps itself and a failing sweep does not stop the timer.
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..soft_delete.mixins import utcnow
from .purge import PurgeReport, PurgeService

logger = logging.getLogger(__name__)

JOB_ID = "records_retention_sweep"


class PurgeScheduler:
    """
    Runs PurgeService.purge on a fixed interval.

    Example:
        >>> scheduler = PurgeScheduler(PurgeService(SessionLocal), interval_hours=24)
        >>> scheduler.start()
        >>> scheduler.is_running()
        True
        >>> scheduler.stop()
    """

    def __init__(
        self,
        purge_service: PurgeService,
        interval_hours: float = 24,
        run_on_start: bool = True,
    ):
        if interval_hours <= 0:
            raise ValueError("interval_hours must be positive")
        self.purge_service = purge_service
        self.interval_hours = interval_hours
        self.run_on_start = run_on_start
        self.last_report: Optional[PurgeReport] = None
        self._scheduler: Optional[BackgroundScheduler] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the interval job, sweeping once immediately if configured."""
        with self._lock:
            if self._scheduler is not None:
                logger.warning("Retention scheduler is already running")
                return

            if self.run_on_start:
                self.run_once()

            scheduler = BackgroundScheduler(
                job_defaults={"coalesce": True, "max_instances": 1}
            )
            scheduler.add_job(
                self.run_once,
                trigger=IntervalTrigger(hours=self.interval_hours),
                id=JOB_ID,
                name="Retention sweep",
                max_instances=1,
                replace_existing=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            logger.info(
                f"Retention scheduler started, sweeping every {self.interval_hours}h"
            )

    def stop(self, wait: bool = True) -> None:
        """Stop the interval job. Does nothing when not running."""
        with self._lock:
            if self._scheduler is None:
                return
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("Retention scheduler stopped")

    def is_running(self) -> bool:
        return self._scheduler is not None

    def run_once(self, now: Optional[datetime] = None) -> PurgeReport:
        """
        Run one sweep.

        Failures are logged and returned as an unsuccessful report so the
        interval job keeps firing.
        """
        try:
            report = self.purge_service.purge(now)
        except Exception as exc:
            logger.exception("Scheduled retention sweep failed")
            report = PurgeReport(
                as_of=now or utcnow(),
                started_at=utcnow(),
                finished_at=utcnow(),
                success=False,
                error=str(exc),
            )
        self.last_report = report
        return report
