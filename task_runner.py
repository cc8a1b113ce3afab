"""
Single-flight runner for the liquidation task.

At most one run is live at a time. Triggers that arrive during a run are
collapsed into exactly one follow-up run, started right after the current one
finishes, so no trigger is lost and bursts cost a single extra pass.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("LiqbotRunner")


class RunnerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_PENDING = "running_with_pending"


class SingleFlightRunner:
    def __init__(self, task: Callable[[], Awaitable], name: str = "liquidation"):
        self._task = task
        self.name = name
        self.state = RunnerState.IDLE
        self.completed_runs = 0
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self.state is not RunnerState.IDLE

    def trigger(self) -> bool:
        """
        Request a run. Returns True if a run was started now, False if it was
        deferred behind the one in flight. Must be called from the event loop.
        """
        if self.busy:
            self.state = RunnerState.RUNNING_WITH_PENDING
            return False

        self.state = RunnerState.RUNNING
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())
        return True

    async def wait_idle(self):
        if self._loop_task is not None:
            await self._loop_task

    async def run(self):
        """Trigger and wait until the runner is idle again."""
        self.trigger()
        await self.wait_idle()

    async def _run_loop(self):
        try:
            while True:
                try:
                    await self._task()
                except Exception as e:
                    logger.exception(f"💥 {self.name} task raised: {e}")
                finally:
                    self.completed_runs += 1

                if self.state is RunnerState.RUNNING_WITH_PENDING:
                    # Clear the deferred flag before the rerun starts
                    self.state = RunnerState.RUNNING
                    continue
                break
        finally:
            self.state = RunnerState.IDLE
