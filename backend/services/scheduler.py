"""
Notification Scheduler — promotes scheduled notifications to "sent".

Runs as an asyncio background task during the FastAPI app lifespan.

Each sweep:
    1. Selects active notifications with scheduled_at <= now and sent_at NULL
    2. Claims each row with a conditional UPDATE (sent_at IS NULL guard)
    3. Only the claimer pushes `new_notification` to the target room

The conditional claim means two overlapping sweeps (or two app workers)
can never deliver the same notification twice.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import select, update

from db_models import Notification, utcnow
from services import notification_service

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Periodic sweep owned by the app (see main.lifespan)."""

    def __init__(self, session_factory, realtime, interval_seconds: int = 60):
        self._session_factory = session_factory
        self._realtime = realtime
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._is_running = False
        self.sweeps = 0
        self.sent_count = 0
        self.errors_count = 0
        self.last_sweep_at = None

    async def start(self):
        """Start the sweep loop as a background asyncio task."""
        if self._task and not self._task.done():
            logger.warning("Notification scheduler already running")
            return
        self._is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Notification scheduler started (every {self.interval_seconds}s)")

    async def stop(self):
        """Stop the sweep loop gracefully."""
        self._is_running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Notification scheduler stopped")

    async def _loop(self):
        while self._is_running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep the loop alive; next tick retries whatever is still unsent
                self.errors_count += 1
                logger.error(f"Notification sweep failed: {e}", exc_info=True)

    async def sweep(self) -> int:
        """Deliver every due notification once. Returns how many were sent."""
        now = utcnow()
        sent = 0
        async with self._session_factory() as db:
            res = await db.execute(
                select(Notification).where(
                    Notification.is_active == True,  # noqa: E712
                    Notification.scheduled_at.is_not(None),
                    Notification.scheduled_at <= now,
                    Notification.sent_at.is_(None),
                )
            )
            due = res.scalars().all()

            for notification in due:
                claim = await db.execute(
                    update(Notification)
                    .where(Notification.id == notification.id, Notification.sent_at.is_(None))
                    .values(sent_at=now)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                if claim.rowcount != 1:
                    continue  # another sweep got it first

                await notification_service.push(self._realtime, notification)
                sent += 1
                logger.info(f"Scheduled notification sent: {notification.title}")

        self.sweeps += 1
        self.sent_count += sent
        self.last_sweep_at = now
        return sent

    def get_status(self) -> dict:
        return {
            "running": self._is_running,
            "intervalSeconds": self.interval_seconds,
            "sweeps": self.sweeps,
            "sentCount": self.sent_count,
            "errorsCount": self.errors_count,
            "lastSweepAt": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
        }
