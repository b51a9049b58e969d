"""
Integration tests for execution bookkeeping and full synchronization runs.
"""

import asyncio
import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from property_sync_service.crud.execution_crud import (
    cancel_execution,
    clean_orphaned_executions,
    finish_execution,
    get_current_execution,
    list_executions,
    start_execution,
)
from property_sync_service.exceptions import (
    SourceApiError,
    SyncAlreadyRunningError,
    SyncFatalError,
)
from property_sync_service.models import (
    Listing,
    SyncExecution,
    SyncExecutionStatusEnum,
    SyncTriggerEnum,
    utcnow,
)
from property_sync_service.schemas.listing_payload import ApiFilters
from property_sync_service.schemas.sync import SyncOptions, SyncStatistics
from property_sync_service.services.sync_runner import open_execution, run_sync

RUNNING = SyncExecutionStatusEnum.RUNNING


@pytest.fixture
def add_execution(session_factory):
    """Insert an execution that started ``minutes_ago``."""

    async def _add_execution(minutes_ago: int, status=RUNNING) -> int:
        async with session_factory() as session:
            execution = SyncExecution(
                status=status, started_at=utcnow() - timedelta(minutes=minutes_ago)
            )
            session.add(execution)
            await session.commit()
            return execution.id

    return _add_execution


class TestExecutionLifecycle:
    @pytest.mark.asyncio
    async def test_start_refuses_while_running(self, session_factory):
        async with session_factory() as session:
            first = await start_execution(session, SyncTriggerEnum.API, "tests")
        assert first.status == RUNNING
        assert first.triggered_by == "tests"

        async with session_factory() as session:
            with pytest.raises(SyncAlreadyRunningError) as exc_info:
                await start_execution(session)
        assert exc_info.value.execution_id == first.id

    @pytest.mark.asyncio
    async def test_stale_run_does_not_block_a_new_one(
        self, session_factory, add_execution, fetch_all
    ):
        stale_id = await add_execution(minutes_ago=10)

        async with session_factory() as session:
            execution = await start_execution(session)

        executions = {e.id: e for e in await fetch_all(SyncExecution)}
        assert executions[stale_id].status == SyncExecutionStatusEnum.ERROR
        assert "5 minute" in executions[stale_id].error
        assert executions[execution.id].status == RUNNING

    @pytest.mark.asyncio
    async def test_clean_orphaned_executions(self, session_factory, add_execution, fetch_all):
        orphan_id = await add_execution(minutes_ago=45)
        recent_id = await add_execution(minutes_ago=2)
        await add_execution(minutes_ago=60, status=SyncExecutionStatusEnum.COMPLETED)

        async with session_factory() as session:
            assert await clean_orphaned_executions(session, timeout_minutes=30) == 1

        executions = {e.id: e for e in await fetch_all(SyncExecution)}
        assert executions[orphan_id].status == SyncExecutionStatusEnum.ERROR
        assert executions[orphan_id].ended_at is not None
        assert executions[recent_id].status == RUNNING

    @pytest.mark.asyncio
    async def test_finish_keeps_cancellation(self, session_factory, add_execution, fetch_all):
        execution_id = await add_execution(minutes_ago=1)
        async with session_factory() as session:
            await cancel_execution(session, execution_id)
        async with session_factory() as session:
            await finish_execution(
                session,
                execution_id,
                SyncStatistics(processed=4, new=4, ended_at=utcnow()),
                details={"received": 4},
            )

        execution = (await fetch_all(SyncExecution))[0]
        assert execution.status == SyncExecutionStatusEnum.CANCELLED
        assert execution.processed == 4
        assert json.loads(execution.details) == {"received": 4}

    @pytest.mark.asyncio
    async def test_finish_keeps_error_of_a_healed_run(
        self, session_factory, add_execution, fetch_all
    ):
        long_run_id = await add_execution(minutes_ago=10)
        async with session_factory() as session:
            await start_execution(session)
        async with session_factory() as session:
            await finish_execution(
                session, long_run_id, SyncStatistics(processed=2, new=2, ended_at=utcnow())
            )

        execution = {e.id: e for e in await fetch_all(SyncExecution)}[long_run_id]
        assert execution.status == SyncExecutionStatusEnum.ERROR
        assert "5 minute" in execution.error
        assert execution.processed == 2

    @pytest.mark.asyncio
    async def test_cancel_ignores_finished_runs(self, session_factory, add_execution):
        execution_id = await add_execution(1, status=SyncExecutionStatusEnum.COMPLETED)
        async with session_factory() as session:
            execution = await cancel_execution(session, execution_id)
        assert execution.status == SyncExecutionStatusEnum.COMPLETED

    @pytest.mark.asyncio
    async def test_history_is_newest_first_and_paginated(self, session_factory, add_execution):
        ids = [
            await add_execution(minutes_ago, status=SyncExecutionStatusEnum.COMPLETED)
            for minutes_ago in (30, 20, 10)
        ]
        async with session_factory() as session:
            page, total = await list_executions(session, limit=2, offset=0)
            rest, _ = await list_executions(session, limit=2, offset=2)

        assert total == 3
        assert [e.id for e in page] == [ids[2], ids[1]]
        assert [e.id for e in rest] == [ids[0]]

    @pytest.mark.asyncio
    async def test_current_execution(self, session_factory, add_execution):
        async with session_factory() as session:
            assert await get_current_execution(session) is None
        execution_id = await add_execution(1)
        async with session_factory() as session:
            assert (await get_current_execution(session)).id == execution_id


class TestRunSync:
    @pytest.mark.asyncio
    async def test_full_run(
        self, session_factory, http_client, source_api, listing_factory, test_settings, fetch_all
    ):
        source_api.payload = {"data": [listing_factory(1), listing_factory(2)]}

        stats = await run_sync(
            session_factory,
            http_client,
            options=SyncOptions(batch_size=2, download_images=False),
            trigger=SyncTriggerEnum.SCHEDULED,
            settings=test_settings,
        )

        assert (stats.processed, stats.new) == (2, 2)
        executions = await fetch_all(SyncExecution)
        assert len(executions) == 1
        execution = executions[0]
        assert execution.status == SyncExecutionStatusEnum.COMPLETED
        assert execution.trigger == SyncTriggerEnum.SCHEDULED
        assert (execution.processed, execution.new) == (2, 2)
        details = json.loads(execution.details)
        assert details["received"] == 2
        assert details["options"]["batch_size"] == 2
        assert len(await fetch_all(Listing)) == 2

    @pytest.mark.asyncio
    async def test_filters_are_forwarded(
        self, session_factory, http_client, source_api, listing_factory, test_settings, fetch_all
    ):
        source_api.payload = listing_factory(261)

        await run_sync(
            session_factory,
            http_client,
            options=SyncOptions(download_images=False),
            filters=ApiFilters(ref=261),
            settings=test_settings,
        )

        assert source_api.requests[0]["json"] == {"filtros": {"ref": 261}}
        details = json.loads((await fetch_all(SyncExecution))[0].details)
        assert details["filters"] == {"ref": 261}

    @pytest.mark.asyncio
    async def test_source_failure_marks_execution_as_error(
        self, session_factory, http_client, source_api, test_settings, fetch_all
    ):
        source_api.status_code = 500

        with pytest.raises(SourceApiError):
            await run_sync(session_factory, http_client, settings=test_settings)

        execution = (await fetch_all(SyncExecution))[0]
        assert execution.status == SyncExecutionStatusEnum.ERROR
        assert "500" in execution.error
        assert execution.ended_at is not None

    @pytest.mark.asyncio
    async def test_second_run_is_refused_while_first_is_open(
        self, session_factory, http_client, test_settings
    ):
        await open_execution(session_factory, settings=test_settings)
        with pytest.raises(SyncAlreadyRunningError):
            await run_sync(session_factory, http_client, settings=test_settings)

    @pytest.mark.asyncio
    async def test_cancelled_run_is_recorded(
        self, session_factory, http_client, source_api, test_settings, fetch_all, monkeypatch
    ):
        started = asyncio.Event()

        async def never_returns(self, filters=None):
            started.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(
            "property_sync_service.services.sync_runner.ListingApiClient.fetch_listings",
            never_returns,
        )
        task = asyncio.create_task(
            run_sync(session_factory, http_client, settings=test_settings)
        )
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        execution = (await fetch_all(SyncExecution))[0]
        assert execution.status == SyncExecutionStatusEnum.CANCELLED

    @pytest.mark.asyncio
    async def test_unrecorded_completion_closes_the_run_as_error(
        self,
        session_factory,
        http_client,
        source_api,
        listing_factory,
        test_settings,
        fetch_all,
        monkeypatch,
    ):
        source_api.payload = [listing_factory(1)]

        async def rejects_statistics(*args, **kwargs):
            raise IntegrityError("UPDATE sync_executions", {}, Exception("constraint"))

        monkeypatch.setattr(
            "property_sync_service.services.reconciliation.finish_execution",
            rejects_statistics,
        )
        with pytest.raises(SyncFatalError):
            await run_sync(
                session_factory,
                http_client,
                options=SyncOptions(download_images=False),
                settings=test_settings,
            )

        execution = (await fetch_all(SyncExecution))[0]
        assert execution.status == SyncExecutionStatusEnum.ERROR
        assert "Could not record execution" in execution.error
        assert execution.processed == 1
        assert len(await fetch_all(Listing)) == 1
