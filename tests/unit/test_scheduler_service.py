"""Unit tests for the background scheduler."""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from challengehub.services import scheduler_service


class TestSchedulerCycle:
    @pytest.mark.asyncio
    async def test_runs_sweep_then_drain(self):
        calls = []

        async def sweep():
            calls.append("sweep")
            return [uuid4()]

        async def drain():
            calls.append("drain")
            return 0

        with patch.object(scheduler_service, "run_expiry_sweep", sweep), \
                patch.object(scheduler_service, "drain_outbox", drain):
            await scheduler_service.run_scheduler_cycle()

        assert calls == ["sweep", "drain"]

    @pytest.mark.asyncio
    async def test_sweep_failure_does_not_skip_drain(self):
        drain = AsyncMock(return_value=0)
        with patch.object(
            scheduler_service, "run_expiry_sweep", AsyncMock(side_effect=RuntimeError("db down"))
        ), patch.object(scheduler_service, "drain_outbox", drain):
            await scheduler_service.run_scheduler_cycle()

        drain.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_drain_failure_is_contained(self):
        with patch.object(scheduler_service, "run_expiry_sweep", AsyncMock(return_value=[])), \
                patch.object(
                    scheduler_service, "drain_outbox", AsyncMock(side_effect=RuntimeError("boom"))
                ):
            await scheduler_service.run_scheduler_cycle()


class TestSchedulerLoop:
    @pytest.mark.asyncio
    async def test_stops_when_event_set(self):
        stop_event = asyncio.Event()
        cycles = 0

        async def cycle():
            nonlocal cycles
            cycles += 1
            if cycles == 2:
                stop_event.set()

        with patch.object(scheduler_service, "run_scheduler_cycle", cycle):
            await asyncio.wait_for(
                scheduler_service.scheduler_loop(stop_event, interval_seconds=0.01), timeout=2
            )

        assert cycles == 2

    @pytest.mark.asyncio
    async def test_preset_event_never_runs(self):
        stop_event = asyncio.Event()
        stop_event.set()
        cycle = AsyncMock()

        with patch.object(scheduler_service, "run_scheduler_cycle", cycle):
            await scheduler_service.scheduler_loop(stop_event, interval_seconds=0.01)

        cycle.assert_not_awaited()


class TestDispatchJobs:
    @pytest.mark.asyncio
    async def test_empty_list_is_noop(self):
        with patch.object(scheduler_service, "get_db_session") as get_session:
            await scheduler_service.dispatch_jobs([])

        get_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self):
        with patch.object(
            scheduler_service, "get_db_session", side_effect=RuntimeError("no database")
        ):
            await scheduler_service.dispatch_jobs([uuid4()])
