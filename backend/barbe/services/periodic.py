"""
Background timers for the sweeps
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a coroutine every `interval` seconds until stopped"""

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[object]],
        run_on_start: bool = False,
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.run_on_start = run_on_start
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _tick(self):
        try:
            await self.func()
        except Exception as e:
            logger.exception(f"[{self.name}] tick failed: {e}")

    async def _loop(self):
        if self.run_on_start:
            await self._tick()
        while self._stop_event and not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self._tick()

    def start(self):
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"[{self.name}] started, every {self.interval:.0f}s")

    async def stop(self):
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(f"[{self.name}] stopped")
