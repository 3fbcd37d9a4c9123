from typing import Awaitable, Callable, Optional, Protocol, Set
import asyncio
import structlog

logger = structlog.get_logger(__name__)


class WakeupScheduler(Protocol):
    """One-shot timer used to kick an actor's processing pass"""

    def schedule_once(self, delay_seconds: float) -> None:
        ...

    def is_scheduled(self) -> bool:
        ...


class AsyncioWakeupScheduler:
    """WakeupScheduler backed by loop.call_later.

    At most one wake-up is outstanding; schedule_once while one is armed is a
    no-op. The flag is cleared right before the callback runs, so the callback
    itself may arm the next wake-up.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]]):
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    def schedule_once(self, delay_seconds: float):
        if self.is_scheduled():
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, delay_seconds), self._fire)

    def is_scheduled(self) -> bool:
        return self._handle is not None

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        task = asyncio.ensure_future(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self):
        try:
            await self.callback()
        except Exception as e:
            logger.error("Wake-up callback failed", error=str(e), exc_info=True)

    async def drain(self):
        """Wait for callbacks that already fired"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
