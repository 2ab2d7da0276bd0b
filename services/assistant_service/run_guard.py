"""
Concurrency guard: at most one active run per thread.

Two layers: a local per-thread lease serialises turns inside this process,
and the provider poll waits out or cancels runs left behind by other
processes or by abandoned turns.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from config.app_config import GuardConfig
from services.errors import RunConflictError
from utils.logging_config import get_logger, log_run_event

from .models import CancelToken, Run
from .provider import AssistantProvider

CONFLICT_MESSAGE = "Another response is still in progress for this conversation. Please try again shortly."


class Lease:
    """Held lock on one thread; ``release`` is idempotent"""

    def __init__(self, guard: 'RunGuard', thread_id: str):
        self._guard = guard
        self.thread_id = thread_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self):
        if self._released:
            return
        self._released = True
        self._guard._release(self.thread_id)


class RunGuard:
    """
    Ensures a thread has no active run before a new one starts.
    """

    def __init__(self, provider: AssistantProvider, config: Optional[GuardConfig] = None):
        self.logger = get_logger(__name__)
        self.provider = provider
        self.config = config or GuardConfig()
        # thread id -> [lock, holders + waiters]
        self._locks: Dict[str, list] = {}

    async def ensure_idle(self, thread_id: str, cancel_token: Optional[CancelToken] = None) -> bool:
        """
        Wait for, then cancel, any run still active on the thread

        Args:
            thread_id: Thread to check
            cancel_token: Aborts the wait when cancelled

        Returns:
            bool: True when the thread is idle, False if cancelled while waiting

        Raises:
            RunConflictError: If an active run could not be cancelled
        """
        token = cancel_token or CancelToken()

        active = await self.provider.list_active_runs(thread_id)
        if not active:
            return True

        log_run_event(self.logger, "waiting_for_active_runs", thread_id,
                      run_ids=[run.id for run in active])

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.wait_timeout
        while active and loop.time() < deadline:
            if await token.sleep(self.config.poll_interval):
                return False
            active = await self.provider.list_active_runs(thread_id)

        if not active:
            return True

        await self._cancel_runs(thread_id, active)

        if await token.sleep(self.config.post_cancel_pause):
            return False
        return True

    async def _cancel_runs(self, thread_id: str, runs: List[Run]):
        for run in runs:
            log_run_event(self.logger, "cancelling_stuck_run", thread_id, run_id=run.id,
                          status=run.status.value)
            try:
                await self.provider.cancel_run(thread_id, run.id)
            except Exception as e:
                # The run may have finished between the last poll and the cancel
                still_active = await self.provider.list_active_runs(thread_id)
                if any(r.id == run.id for r in still_active):
                    self.logger.error(f"Failed to cancel run {run.id} on {thread_id}: {e}")
                    raise RunConflictError(CONFLICT_MESSAGE, detail=str(e)) from e

    async def acquire(self, thread_id: str) -> Lease:
        """
        Take the local lease on a thread

        Raises:
            RunConflictError: If the lease is not granted within lease_timeout
        """
        entry = self._locks.setdefault(thread_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            await asyncio.wait_for(entry[0].acquire(), timeout=self.config.lease_timeout)
        except asyncio.TimeoutError:
            self._forget(thread_id)
            self.logger.warning(f"Lease on {thread_id} not granted within {self.config.lease_timeout}s")
            raise RunConflictError(CONFLICT_MESSAGE)
        except BaseException:
            self._forget(thread_id)
            raise
        return Lease(self, thread_id)

    def _release(self, thread_id: str):
        entry = self._locks.get(thread_id)
        if entry is None:
            return
        entry[0].release()
        self._forget(thread_id)

    def _forget(self, thread_id: str):
        entry = self._locks[thread_id]
        entry[1] -= 1
        if entry[1] == 0:
            del self._locks[thread_id]

    def is_leased(self, thread_id: str) -> bool:
        entry = self._locks.get(thread_id)
        return bool(entry and entry[0].locked())

    @asynccontextmanager
    async def lease(self, thread_id: str):
        lease = await self.acquire(thread_id)
        try:
            yield lease
        finally:
            lease.release()
