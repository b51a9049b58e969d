"""
Endpoints to trigger and observe synchronization runs.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.config import settings
from property_sync_service.crud.execution_crud import (
    cancel_execution,
    clean_orphaned_executions,
    get_current_execution,
    get_execution,
    list_executions,
)
from property_sync_service.db import get_db
from property_sync_service.exceptions import PropertySyncError
from property_sync_service.models.execution import SyncExecutionStatusEnum, SyncTriggerEnum
from property_sync_service.schemas.common import MessageResponse
from property_sync_service.schemas.sync import (
    CleanExecutionsResponse,
    SyncExecutionResponse,
    SyncHistoryResponse,
    SyncLogResponse,
    SyncOptions,
    SyncStartRequest,
    SyncStartResponse,
)
from property_sync_service.services.sync_runner import open_execution, run_sync
from property_sync_service.utils.logging_config import logger
from property_sync_service.utils.rate_limiting import limiter, sync_rate_limit

router = APIRouter(prefix="/sync", tags=["Synchronization"])


async def _run_in_background(app, execution_id: int, options: SyncOptions, filters) -> None:
    try:
        await run_sync(
            app.state.session_factory,
            app.state.http_client,
            options=options,
            filters=filters,
            execution_id=execution_id,
            trigger=SyncTriggerEnum.API,
        )
    except PropertySyncError as e:
        logger.error(f"Background sync execution {execution_id} failed: {e}")
    except Exception as e:
        # Nothing awaits this task, so the error would otherwise go unreported
        logger.error(
            f"Unexpected error in background sync execution {execution_id}: {e}",
            exc_info=True,
        )
    finally:
        app.state.sync_tasks.pop(execution_id, None)


async def _get_execution_or_404(db: AsyncSession, execution_id: int):
    execution = await get_execution(db, execution_id)
    if execution is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Synchronization {execution_id} not found",
        )
    return execution


@router.post(
    "/start",
    response_model=SyncStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(sync_rate_limit())
async def start_sync(
    request: Request,
    body: Optional[SyncStartRequest] = None,
    wait: bool = Query(False, description="Run in the request and return the totals"),
) -> SyncStartResponse:
    """
    Start a synchronization run.

    The run continues in the background unless ``wait`` is set. A run that is
    already in progress makes this return 409.
    """
    body = body or SyncStartRequest()
    options = SyncOptions.from_settings(
        settings,
        batch_size=body.batch_size,
        download_images=body.download_images,
        track_changes=body.track_changes,
        mark_inactive=body.mark_inactive,
        limit=body.limit,
    )
    app = request.app
    execution_id = await open_execution(
        app.state.session_factory, SyncTriggerEnum.API, body.triggered_by
    )

    if wait:
        stats = await run_sync(
            app.state.session_factory,
            app.state.http_client,
            options=options,
            filters=body.filters,
            execution_id=execution_id,
            trigger=SyncTriggerEnum.API,
        )
        return SyncStartResponse(
            execution_id=execution_id,
            status=SyncExecutionStatusEnum.COMPLETED.value,
            message="Synchronization completed",
            statistics=stats,
        )

    task = asyncio.create_task(_run_in_background(app, execution_id, options, body.filters))
    app.state.sync_tasks[execution_id] = task
    return SyncStartResponse(
        execution_id=execution_id,
        status=SyncExecutionStatusEnum.RUNNING.value,
        message="Synchronization started",
    )


@router.get("/status/{execution_id}", response_model=SyncExecutionResponse)
async def sync_status(
    execution_id: int, db: AsyncSession = Depends(get_db)
) -> SyncExecutionResponse:
    execution = await _get_execution_or_404(db, execution_id)
    return SyncExecutionResponse.from_execution(execution)


@router.get("/current", response_model=Optional[SyncExecutionResponse])
async def current_sync(db: AsyncSession = Depends(get_db)) -> Optional[SyncExecutionResponse]:
    execution = await get_current_execution(db)
    return SyncExecutionResponse.from_execution(execution) if execution else None


@router.get("/history", response_model=SyncHistoryResponse)
async def sync_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> SyncHistoryResponse:
    executions, total = await list_executions(db, limit=limit, offset=offset)
    return SyncHistoryResponse(
        items=[SyncExecutionResponse.from_execution(e) for e in executions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/clean", response_model=CleanExecutionsResponse)
async def clean_syncs(db: AsyncSession = Depends(get_db)) -> CleanExecutionsResponse:
    """Mark runs stuck in progress past the orphan timeout as error."""
    cleaned = await clean_orphaned_executions(db, settings.SYNC_ORPHAN_TIMEOUT_MINUTES)
    return CleanExecutionsResponse(
        cleaned=cleaned, message=f"{cleaned} orphaned synchronization(s) marked as error"
    )


@router.post("/cancel/{execution_id}", response_model=MessageResponse)
async def cancel_sync(
    execution_id: int, request: Request, db: AsyncSession = Depends(get_db)
) -> MessageResponse:
    execution = await _get_execution_or_404(db, execution_id)
    if execution.status != SyncExecutionStatusEnum.RUNNING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Synchronization {execution_id} is not running",
        )
    await cancel_execution(db, execution_id)
    task = request.app.state.sync_tasks.get(execution_id)
    if task is not None:
        task.cancel()
    return MessageResponse(message=f"Synchronization {execution_id} cancelled", success=True)


@router.get("/logs/{execution_id}", response_model=SyncLogResponse)
async def sync_logs(execution_id: int, db: AsyncSession = Depends(get_db)) -> SyncLogResponse:
    execution = await _get_execution_or_404(db, execution_id)
    return SyncLogResponse(
        id=execution.id,
        status=execution.status.value,
        log=execution.log,
        error=execution.error,
    )
