from typing import Awaitable, Callable, List, Optional, Sequence
import asyncio
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_THINKING_MESSAGES = [
    "Thinking...",
    "Still working on it...",
    "Processing your request...",
    "Almost there...",
]


class ThinkingRotator:
    """Sends periodic "still working" updates while a message is processed"""

    def __init__(
        self,
        on_tick: Callable[[str], Awaitable[None]],
        interval_seconds: float = 5.0,
        messages: Optional[Sequence[str]] = None
    ):
        self.on_tick = on_tick
        self.interval_seconds = interval_seconds
        self.messages: List[str] = list(messages or DEFAULT_THINKING_MESSAGES)
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking in the background"""

        if self.running:
            return
        self._task = asyncio.ensure_future(self._loop())

    async def stop(self):
        """Cancel the ticker and wait for it to finish"""

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self):
        index = 0
        while True:
            await asyncio.sleep(self.interval_seconds)
            message = self.messages[index % len(self.messages)]
            index += 1
            try:
                await self.on_tick(message)
                self.ticks += 1
            except Exception as e:
                logger.warning("Thinking update failed", error=str(e))
