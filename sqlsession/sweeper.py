"""
Background expiration sweep.

Deletes expired session rows on an interval measured from the end of one
sweep to the start of the next. Failures are reported and the schedule
carries on.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException], None]


class SweeperState(str, Enum):
    """Whether a sweep is armed"""

    IDLE = "idle"
    SCHEDULED = "scheduled"


def log_sweep_error(error: BaseException) -> None:
    """Default error callback"""
    logger.error(f"Expired session cleanup failed: {error}", exc_info=error)


class ExpirationSweeper:
    """
    Runs ``sweep`` now and then every ``interval`` seconds until stopped.

    The sweeper is owned by one store instance. It relies on event loop timers,
    which never keep a process alive on their own.
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[int]],
        interval: float,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._sweep = sweep
        self.interval = interval
        self.on_error = on_error or log_sweep_error
        self._state = SweeperState.IDLE
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SweeperState:
        return self._state

    @property
    def next_run(self) -> Optional[float]:
        """Event loop time of the armed sweep, or None"""
        if self._timer is None or self._timer.cancelled():
            return None
        return self._timer.when()

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        """The sweep currently running, if any"""
        if self._task is None or self._task.done():
            return None
        return self._task

    def start(self, immediate: bool = True) -> None:
        """
        Begin sweeping; no-op when disabled or already scheduled.

        Args:
            immediate: Sweep right away; otherwise the first sweep runs
                after one interval
        """
        if self.interval <= 0:
            logger.debug("Expired session cleanup disabled")
            return
        if self._state is SweeperState.SCHEDULED:
            return
        self._state = SweeperState.SCHEDULED
        if self.current_task is not None:
            # The running sweep re-arms itself once it finishes
            return
        if immediate:
            self._launch()
        else:
            self._timer = asyncio.get_running_loop().call_later(self.interval, self._launch)

    def stop(self) -> None:
        """Cancel the armed sweep. A sweep already running finishes and re-arms only if started again."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = SweeperState.IDLE

    async def run_once(self) -> int:
        """Sweep now, outside the schedule; errors propagate"""
        removed = await self._sweep()
        if removed:
            logger.info(f"Removed {removed} expired session(s)")
        return removed

    def _launch(self) -> None:
        self._timer = None
        self._task = asyncio.get_running_loop().create_task(self._run_scheduled())

    async def _run_scheduled(self) -> None:
        try:
            await self.run_once()
        except asyncio.CancelledError:
            if asyncio.current_task() is self._task:
                self._state = SweeperState.IDLE
            raise
        except Exception as e:
            self._report(e)
        # Only the sweep the sweeper is tracking may arm the next one
        if asyncio.current_task() is not self._task:
            return
        if self._state is SweeperState.SCHEDULED and self._timer is None:
            self._timer = asyncio.get_running_loop().call_later(self.interval, self._launch)

    def _report(self, error: Exception) -> None:
        try:
            self.on_error(error)
        except Exception:
            logger.exception("Cleanup error callback raised")
