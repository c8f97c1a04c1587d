"""Resumes waiting executions once their wait time has passed."""
import asyncio
from datetime import timedelta
from typing import Optional

import structlog

from autoflow.models.workflow import _utcnow
from autoflow.services.executions import ExecutionService

logger = structlog.get_logger()


class WaitTracker:
    """Polls for waiting executions and resumes the due ones.

    Each poll also looks a little ahead: executions due before the next poll
    get their own timer so they resume on time.
    """

    def __init__(self, executions: ExecutionService, poll_interval: float = 60.0):
        self.executions = executions
        self.poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._timers: dict[str, asyncio.Task] = {}

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("wait_tracker_started", poll_interval=self.poll_interval)

    async def stop(self) -> None:
        tasks = [task for task in [self._task, *self._timers.values()] if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._timers.clear()

    async def _loop(self) -> None:
        while True:
            try:
                await self.check()
            except Exception as e:
                logger.error("wait_tracker_check_failed", error=str(e))
            await asyncio.sleep(self.poll_interval)

    async def check(self) -> int:
        """Resume due executions and schedule the ones due before the next poll.

        Returns:
            Number of executions resumed or scheduled
        """
        horizon = _utcnow() + timedelta(seconds=self.poll_interval)
        waiting = await self.executions.repository.get_waiting(until=horizon)
        count = 0
        for execution in waiting:
            if execution.id in self._timers:
                continue
            delay = max(0.0, (execution.wait_till - _utcnow()).total_seconds())
            self._timers[execution.id] = asyncio.create_task(self._resume_later(execution.id, delay))
            count += 1
        return count

    async def _resume_later(self, execution_id: str, delay: float) -> None:
        try:
            if delay:
                await asyncio.sleep(delay)
            logger.info("waiting_execution_resumed", execution_id=execution_id)
            await self.executions.resume(execution_id, wait=True)
        except Exception as e:
            logger.error("waiting_execution_resume_failed", execution_id=execution_id, error=str(e))
        finally:
            self._timers.pop(execution_id, None)
