import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CountdownTimer:
    """
    Counts whole seconds down to zero on an asyncio task.

    - `on_expire` is called at most once, no matter how many ticks reach zero.
    - `stop()` cancels the ticking task and suppresses any later expiry.
    - A zero duration expires on the first tick.
    """

    def __init__(self, duration_seconds: int, on_expire: Callable[[], None], tick_interval: float = 1.0) -> None:
        if duration_seconds < 0:
            raise ValueError("duration_seconds must not be negative")
        self.remaining = duration_seconds
        self._on_expire = on_expire
        self._tick_interval = tick_interval
        self._task: asyncio.Task | None = None
        self._fired = False
        self._stopped = False

    @property
    def expired(self) -> bool:
        return self._fired

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None or self._stopped:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._fired and not self._stopped:
            await asyncio.sleep(self._tick_interval)
            self.tick()

    def tick(self) -> None:
        if self._stopped or self._fired:
            return
        if self.remaining > 0:
            self.remaining -= 1
        if self.remaining == 0:
            self._fire()

    def _fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        logger.info("timer expired")
        self._on_expire()

    def stop(self) -> None:
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # the expiry callback runs inside the task itself; it ends on its own
        if task is not current:
            task.cancel()
