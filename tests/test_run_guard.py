"""
Tests for the per-thread run guard
"""

import asyncio

import pytest

from conftest import FakeAssistantProvider, active_run
from services.assistant_service.models import CancelToken
from services.assistant_service.run_guard import CONFLICT_MESSAGE, RunGuard
from services.errors import RunConflictError


def stuck(count: int = 50):
    return [[active_run()] for _ in range(count)]


class TestEnsureIdle:
    """Provider-side active run handling"""

    @pytest.mark.asyncio
    async def test_idle_thread_passes_immediately(self, provider, guard):
        """Test idle thread passes without waiting"""
        assert await guard.ensure_idle("thread_1") is True
        assert provider.list_active_calls == 1
        assert provider.cancelled == []

    @pytest.mark.asyncio
    async def test_waits_for_run_to_finish(self, guard_config):
        """Test waiting for an active run to finish"""
        provider = FakeAssistantProvider(active_runs=[[active_run()], [active_run()], []])
        guard = RunGuard(provider, guard_config)

        assert await guard.ensure_idle("thread_1") is True
        assert provider.list_active_calls == 3
        assert provider.cancelled == []

    @pytest.mark.asyncio
    async def test_cancels_run_still_active_after_timeout(self, guard_config):
        """Test cancelling a run still active after the wait"""
        provider = FakeAssistantProvider(active_runs=stuck())
        guard = RunGuard(provider, guard_config)

        assert await guard.ensure_idle("thread_1") is True
        assert provider.cancelled == ["run_old"]

    @pytest.mark.asyncio
    async def test_failed_cancel_raises_conflict(self, guard_config):
        """Test failed cancel of an active run"""
        provider = FakeAssistantProvider(active_runs=stuck())
        provider.cancel_error = RuntimeError("cannot cancel run")
        guard = RunGuard(provider, guard_config)

        with pytest.raises(RunConflictError) as exc_info:
            await guard.ensure_idle("thread_1")

        assert exc_info.value.message == CONFLICT_MESSAGE
        assert exc_info.value.detail == "cannot cancel run"

    @pytest.mark.asyncio
    async def test_failed_cancel_of_finished_run_is_not_a_conflict(self, guard_config):
        """Test failed cancel of a run that already finished"""
        class FinishingProvider(FakeAssistantProvider):
            async def cancel_run(self, thread_id, run_id):
                # Run completed just before the cancel arrived
                self.active_runs = []
                raise RuntimeError("Cannot cancel run with status 'completed'")

        provider = FinishingProvider(active_runs=stuck())
        guard = RunGuard(provider, guard_config)

        assert await guard.ensure_idle("thread_1") is True

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_waiting(self, guard_config):
        """Test cancelled token stops the wait"""
        provider = FakeAssistantProvider(active_runs=stuck())
        guard = RunGuard(provider, guard_config)
        token = CancelToken()
        token.cancel()

        assert await guard.ensure_idle("thread_1", token) is False
        assert provider.cancelled == []


class TestLeases:
    """Local per-thread serialisation"""

    @pytest.mark.asyncio
    async def test_second_acquire_times_out(self, guard):
        """Test second lease on a thread times out"""
        lease = await guard.acquire("thread_1")
        assert guard.is_leased("thread_1")

        with pytest.raises(RunConflictError):
            await guard.acquire("thread_1")

        lease.release()
        assert not guard.is_leased("thread_1")
        assert guard._locks == {}

    @pytest.mark.asyncio
    async def test_waiter_gets_lease_after_release(self, guard):
        """Test waiting acquirer gets the lease after release"""
        first = await guard.acquire("thread_1")
        waiter = asyncio.create_task(guard.acquire("thread_1"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        first.release()
        second = await waiter

        assert guard.is_leased("thread_1")
        second.release()
        assert guard._locks == {}

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, guard):
        """Test repeated lease release"""
        lease = await guard.acquire("thread_1")
        lease.release()
        lease.release()

        assert lease.released
        again = await guard.acquire("thread_1")
        again.release()

    @pytest.mark.asyncio
    async def test_threads_are_independent(self, guard):
        """Test leases on different threads"""
        async with guard.lease("thread_1"):
            async with guard.lease("thread_2") as other:
                assert other.thread_id == "thread_2"
                assert guard.is_leased("thread_1") and guard.is_leased("thread_2")

        assert not guard.is_leased("thread_1")
        assert not guard.is_leased("thread_2")
