"""
Full synchronization run: open an execution, fetch the feed and reconcile it.
"""

import asyncio
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from property_sync_service.clients.listing_api_client import ListingApiClient
from property_sync_service.config import Settings
from property_sync_service.config import settings as default_settings
from property_sync_service.crud.execution_crud import (
    finish_execution,
    get_execution,
    start_execution,
)
from property_sync_service.exceptions import SourceApiError, SyncFatalError
from property_sync_service.models.base import utcnow
from property_sync_service.models.execution import (
    SyncExecutionStatusEnum,
    SyncTriggerEnum,
)
from property_sync_service.schemas.listing_payload import ApiFilters
from property_sync_service.schemas.sync import SyncOptions, SyncStatistics
from property_sync_service.services.reconciliation import ReconciliationEngine
from property_sync_service.utils.logging_config import logger


async def open_execution(
    session_factory: async_sessionmaker,
    trigger: SyncTriggerEnum = SyncTriggerEnum.MANUAL,
    triggered_by: Optional[str] = None,
    settings: Settings = default_settings,
) -> int:
    """Start a new execution; raises SyncAlreadyRunningError if one is active."""
    async with session_factory() as session:
        execution = await start_execution(
            session,
            trigger=trigger,
            triggered_by=triggered_by,
            orphan_timeout_minutes=settings.SYNC_ORPHAN_TIMEOUT_MINUTES,
            start_timeout_minutes=settings.SYNC_START_TIMEOUT_MINUTES,
        )
        return execution.id


async def _close_execution(
    session_factory: async_sessionmaker,
    execution_id: int,
    stats: SyncStatistics,
    status: SyncExecutionStatusEnum,
    error: Optional[str] = None,
) -> None:
    stats.ended_at = stats.ended_at or utcnow()
    async with session_factory() as session:
        await finish_execution(session, execution_id, stats, status=status, error=error)


async def _fail_if_running(
    session_factory: async_sessionmaker,
    execution_id: int,
    stats: SyncStatistics,
    error: str,
) -> None:
    """Best-effort error close of an execution the engine could not close itself."""
    try:
        async with session_factory() as session:
            execution = await get_execution(session, execution_id)
            if execution is None or execution.status != SyncExecutionStatusEnum.RUNNING:
                return
            stats.ended_at = stats.ended_at or utcnow()
            await finish_execution(
                session, execution_id, stats, status=SyncExecutionStatusEnum.ERROR, error=error
            )
    except SQLAlchemyError as e:
        logger.error(f"Could not close execution {execution_id}: {e}")


async def run_sync(
    session_factory: async_sessionmaker,
    http_client: httpx.AsyncClient,
    options: Optional[SyncOptions] = None,
    filters: Optional[ApiFilters] = None,
    execution_id: Optional[int] = None,
    trigger: SyncTriggerEnum = SyncTriggerEnum.MANUAL,
    triggered_by: Optional[str] = None,
    settings: Settings = default_settings,
) -> SyncStatistics:
    """
    Run one synchronization from the source API into the store.

    Args:
        session_factory: Factory of async sessions
        http_client: Shared client used for the feed and image downloads
        options: Engine options, defaults from settings
        filters: Optional filters forwarded to the API
        execution_id: Execution opened by the caller; one is opened otherwise
        trigger: What started the run
        triggered_by: Free-form caller identifier

    Returns:
        Statistics of the run

    Raises:
        SyncAlreadyRunningError: Another run is in progress
        SourceApiError: The feed could not be fetched
        SyncFatalError: Storage failed during the run
    """
    options = options or SyncOptions.from_settings(settings)
    if execution_id is None:
        execution_id = await open_execution(session_factory, trigger, triggered_by, settings)
    logger.info(f"Sync execution {execution_id} started with options {options.model_dump()}")

    engine = ReconciliationEngine(session_factory, http_client, settings)
    client = ListingApiClient(
        http_client, settings.SOURCE_API_URL, settings.SOURCE_API_TIMEOUT_SECONDS
    )
    try:
        try:
            listings = await client.fetch_listings(filters)
        except SourceApiError as e:
            await _close_execution(
                session_factory,
                execution_id,
                SyncStatistics(started_at=utcnow()),
                SyncExecutionStatusEnum.ERROR,
                error=str(e),
            )
            raise

        details = {
            "source_url": settings.SOURCE_API_URL,
            "filters": filters.to_filtros() if filters else None,
            "received": len(listings),
        }
        return await engine.process_batch(
            listings, options, execution_id=execution_id, details=details
        )
    except asyncio.CancelledError:
        logger.warning(f"Sync execution {execution_id} was cancelled")
        await _close_execution(
            session_factory,
            execution_id,
            engine.get_statistics(),
            SyncExecutionStatusEnum.CANCELLED,
        )
        raise
    except SyncFatalError as e:
        await _fail_if_running(session_factory, execution_id, engine.get_statistics(), str(e))
        raise
