"""Background jobs: scheduled daily emails and OneDrive auto backup.

Objective:
    Run the two time-driven workflows of the dashboard inside the server
    process using APScheduler's ``BackgroundScheduler``.

Jobs:
    - ``daily_email_check``: every minute, compare the local ``HH:MM`` with
      the configured send time and run the daily email batch on an exact
      match when auto send is enabled. A minute missed while the process is
      down is not caught up.
    - ``onedrive_backup``: every ``BACKUP_INTERVAL_HOURS`` when
      ``AUTO_BACKUP`` and ``ONEDRIVE_SYNC`` are enabled; the first run
      happens five minutes after start.

Operational notes:
    - Each job runs with ``max_instances=1`` so runs never overlap.
    - Jobs are not cancellable; a started batch runs to completion.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .config import Settings
from .microsoft365 import Microsoft365Service
from .models import BackupSummary, BatchResult
from .orchestrator import DailyEmailOrchestrator
from .store import RecordStore

logger = logging.getLogger(__name__)

DAILY_EMAIL_JOB_ID = "daily_email_check"
BACKUP_JOB_ID = "onedrive_backup"
INITIAL_BACKUP_DELAY = timedelta(minutes=5)


class DashboardScheduler:
    """
    Owns the background scheduler and its jobs.

    Attributes:
        store: Record store (source of the send time setting).
        orchestrator: Email orchestrator run at send time.
        microsoft365: Microsoft 365 adapter used for backups.
        settings: Application settings.
        scheduler: Underlying APScheduler scheduler.
    """

    def __init__(
        self,
        store: RecordStore,
        orchestrator: DailyEmailOrchestrator,
        microsoft365: Optional[Microsoft365Service],
        settings: Settings,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.microsoft365 = microsoft365
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._last_run_minute: Optional[str] = None

    @property
    def auto_backup_enabled(self) -> bool:
        return (
            self.microsoft365 is not None
            and self.settings.auto_backup
            and self.settings.onedrive_sync
        )

    def check_send_time(self, now: Optional[datetime] = None) -> Optional[BatchResult]:
        """
        Run the daily email batch when ``now`` matches the configured send time.

        Args:
            now: Reference time (defaults to the current local time).

        Returns:
            Optional[BatchResult]: Batch result when the batch ran, else None.
        """
        now = now or datetime.now()
        settings = self.store.get_settings()
        if not settings.auto_send_enabled:
            return None

        current = now.strftime("%H:%M")
        if current != settings.send_time:
            return None

        minute_key = now.strftime("%Y-%m-%d %H:%M")
        if minute_key == self._last_run_minute:
            return None
        self._last_run_minute = minute_key

        logger.info(f"Send time {current} reached; generating daily emails")
        return self.orchestrator.generate_all_daily_emails(now)

    def run_auto_backup(self) -> Optional[BackupSummary]:
        """Run one scheduled OneDrive backup."""
        if not self.auto_backup_enabled:
            return None
        logger.info("Running scheduled OneDrive backup...")
        return self.microsoft365.backup_to_onedrive(self.store.data_dir)

    def start(self) -> None:
        """Register the jobs and start the scheduler."""
        self.scheduler.add_job(
            self.check_send_time,
            "interval",
            minutes=1,
            id=DAILY_EMAIL_JOB_ID,
            name="Check daily email send time",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        if self.auto_backup_enabled:
            self.scheduler.add_job(
                self.run_auto_backup,
                "interval",
                hours=self.settings.backup_interval_hours,
                id=BACKUP_JOB_ID,
                name="OneDrive auto backup",
                next_run_time=datetime.now() + INITIAL_BACKUP_DELAY,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info(
                "Scheduling automatic OneDrive backup every "
                f"{self.settings.backup_interval_hours} hours"
            )

        self.scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
