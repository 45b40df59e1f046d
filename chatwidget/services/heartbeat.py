# file: chatwidget/services/heartbeat.py

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("heartbeat")

HEARTBEAT_INTERVAL_SECONDS = 30.0


class LivenessLoop:
    """
    Runs ``tick`` every ``interval_seconds`` until stopped. ``start`` on a
    running loop restarts it, so the next tick is a full interval away.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[None]],
        interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._tick = tick
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        previous = self._task
        self._task = asyncio.create_task(self._run(), name="chat-liveness")
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()
        logger.debug(f"[HEARTBEAT] started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("[HEARTBEAT] stopped")

    async def _run(self) -> None:
        me = asyncio.current_task()
        # a replaced or stopped loop falls out on its next wake-up
        while self._task is me:
            await asyncio.sleep(self.interval_seconds)
            if self._task is not me:
                break
            try:
                await self._tick()
            except Exception:
                logger.exception("[HEARTBEAT] tick failed")
