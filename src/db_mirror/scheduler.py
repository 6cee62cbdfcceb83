"""Periodic automatic backups.

``BackupScheduler`` runs one asyncio task that ticks immediately and then
once per interval.  Each tick reads the persisted status and calls
``MirrorService.backup()`` only when automatic backups are enabled and
enough time has passed since the last one.

State lives in an explicit ``SchedulerState`` held by the scheduler.

Usage:
    from db_mirror.scheduler import BackupScheduler

    scheduler = BackupScheduler(service, interval_hours=6)
    scheduler.start()          # inside a running event loop
    ...
    await scheduler.shutdown()
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict

from db_mirror.mirror.service import MirrorService

logger = logging.getLogger(__name__)

# A backup is due once this fraction of the interval has elapsed, so small
# timer drift does not push a backup back by a whole interval.
DRIFT_TOLERANCE = 0.9


class SchedulerStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class SchedulerState(BaseModel):
    """Lifecycle state of a ``BackupScheduler``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: SchedulerStatus = SchedulerStatus.STOPPED
    task: asyncio.Task | None = None


class BackupScheduler:
    """Triggers backups on a fixed interval.

    Args:
        service: Service whose ``backup()`` is called.
        interval_hours: Hours between backups.
        state: Pre-built state object (for callers that inspect it).

    Raises:
        ValueError: If ``interval_hours`` is not positive.
    """

    def __init__(
        self,
        service: MirrorService,
        interval_hours: float = 6.0,
        state: SchedulerState | None = None,
    ) -> None:
        if interval_hours <= 0:
            raise ValueError(f"interval_hours must be positive, got {interval_hours}")
        self.service = service
        self._interval_hours = float(interval_hours)
        self.state = state or SchedulerState()

    def interval_hours(self) -> float:
        return self._interval_hours

    def is_running(self) -> bool:
        return self.state.status is SchedulerStatus.RUNNING

    def start(self) -> None:
        """Start the periodic task.  Requires a running event loop.

        Returns without waiting for the first backup.  Calling it while
        already running logs a warning and does nothing.
        """
        if self.is_running():
            logger.warning("Backup scheduler already running")
            return

        loop = asyncio.get_running_loop()
        self.state.task = loop.create_task(self._loop(), name="db-mirror-scheduler")
        self.state.status = SchedulerStatus.RUNNING
        logger.info("Backup scheduler started (every %s hours)", self._interval_hours)

    def stop(self) -> None:
        """Cancel the periodic task.  Safe to call when already stopped."""
        task = self.state.task
        if task is not None and not task.done():
            task.cancel()
        if self.is_running():
            logger.info("Backup scheduler stopped")
        self.state.status = SchedulerStatus.STOPPED

    async def shutdown(self) -> None:
        """Stop and wait for the task to finish cancelling."""
        self.stop()
        task, self.state.task = self.state.task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _loop(self) -> None:
        interval = self._interval_hours * 3600
        while True:
            await self.tick()
            await asyncio.sleep(interval)

    async def tick(self) -> bool:
        """Run one scheduling decision.

        Returns:
            True if a backup ran and succeeded.  Never raises: errors are
            logged with their traceback and the schedule continues.
        """
        try:
            status = await self.service.get_status()
            if not status.is_auto_backup_enabled:
                logger.debug("Scheduled backup skipped: automatic backups disabled")
                return False

            if status.last_backup_time is not None:
                elapsed = datetime.now(timezone.utc) - status.last_backup_time
                due = timedelta(hours=self._interval_hours * DRIFT_TOLERANCE)
                if elapsed < due:
                    logger.debug(
                        "Scheduled backup skipped: last backup %s ago", elapsed
                    )
                    return False

            logger.info("Running scheduled backup")
            return await self.service.backup()
        except Exception:
            logger.exception("Scheduled backup failed")
            return False
