import asyncio
import logging
from typing import Optional

from quizdesk.config import settings
from quizdesk.errors import PersistenceError

logger = logging.getLogger(__name__)

class CountdownTimer:
    """Delivers one tick per interval to an attempt session until it stops running"""

    def __init__(self, session, interval: Optional[float] = None):
        self.session = session
        self.interval = settings.tick_interval_seconds if interval is None else interval
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start ticking on the running event loop"""
        if self._task and not self._task.done():
            self._task.cancel()
        self.session.attach_timer(self)
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        while self.session.is_running:
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

            try:
                if self.session.tick(persist=False):
                    await self.session.save()
            except PersistenceError as e:
                # the session stays in FINALIZING; a later submit retries the writes
                logger.error(f"Timed-out attempt could not be saved: {e}")
                break
            except Exception as e:
                logger.error(f"Error in attempt timer: {e}")
                break

    def cancel(self) -> None:
        if not self._task or self._task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # a tick that finalizes the session stops the loop itself
        if self._task is not current:
            self._task.cancel()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
