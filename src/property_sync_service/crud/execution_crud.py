import json
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.exceptions import SyncAlreadyRunningError
from property_sync_service.models.base import utcnow
from property_sync_service.models.execution import (
    SyncExecution,
    SyncExecutionStatusEnum,
    SyncTriggerEnum,
)
from property_sync_service.schemas.sync import SyncStatistics
from property_sync_service.utils.logging_config import logger

ORPHAN_ERROR_MESSAGE = (
    "Execution marked as error automatically after exceeding the {minutes} minute timeout"
)


def _apply_statistics(execution: SyncExecution, stats: SyncStatistics) -> None:
    for key, value in stats.counters().items():
        setattr(execution, key, value)


def _dump_details(details: Optional[Dict[str, Any]]) -> Optional[str]:
    if details is None:
        return None
    return json.dumps(details, default=str, ensure_ascii=False)


async def clean_orphaned_executions(session: AsyncSession, timeout_minutes: int = 30) -> int:
    """Flip runs stuck in 'running' for longer than ``timeout_minutes`` to 'error'."""
    now = utcnow()
    result = await session.execute(
        update(SyncExecution)
        .where(
            SyncExecution.status == SyncExecutionStatusEnum.RUNNING,
            SyncExecution.started_at < now - timedelta(minutes=timeout_minutes),
        )
        .values(
            status=SyncExecutionStatusEnum.ERROR,
            ended_at=now,
            error=ORPHAN_ERROR_MESSAGE.format(minutes=timeout_minutes),
        )
    )
    await session.commit()
    if result.rowcount:
        logger.warning(f"Marked {result.rowcount} orphaned execution(s) as error")
    return result.rowcount or 0


async def start_execution(
    session: AsyncSession,
    trigger: SyncTriggerEnum = SyncTriggerEnum.MANUAL,
    triggered_by: Optional[str] = None,
    orphan_timeout_minutes: int = 30,
    start_timeout_minutes: int = 5,
) -> SyncExecution:
    """
    Open a new 'running' execution.

    Stale runs are healed first; a run younger than ``start_timeout_minutes``
    still in progress makes this raise SyncAlreadyRunningError.
    """
    await clean_orphaned_executions(session, orphan_timeout_minutes)
    await clean_orphaned_executions(session, start_timeout_minutes)

    current = await get_current_execution(session)
    if current is not None:
        raise SyncAlreadyRunningError(current.id, current.started_at)

    execution = SyncExecution(
        status=SyncExecutionStatusEnum.RUNNING,
        trigger=trigger,
        triggered_by=triggered_by,
        started_at=utcnow(),
    )
    session.add(execution)
    await session.commit()
    await session.refresh(execution)
    logger.info(f"Started sync execution {execution.id} ({trigger.value})")
    return execution


async def finish_execution(
    session: AsyncSession,
    execution_id: int,
    stats: SyncStatistics,
    status: SyncExecutionStatusEnum = SyncExecutionStatusEnum.COMPLETED,
    error: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    log: Optional[str] = None,
) -> Optional[SyncExecution]:
    execution = await session.get(SyncExecution, execution_id)
    if execution is None:
        logger.error(f"Execution {execution_id} not found, statistics are lost")
        return None
    if execution.status == SyncExecutionStatusEnum.CANCELLED:
        # Keep the cancellation but still report how far the run got
        status = SyncExecutionStatusEnum.CANCELLED
    elif execution.status == SyncExecutionStatusEnum.ERROR and status != execution.status:
        # Healed as orphaned while still running; another run may have overlapped
        logger.warning(
            f"Execution {execution_id} was already marked as error, keeping that status"
        )
        error = error or execution.error
        status = SyncExecutionStatusEnum.ERROR
    _apply_statistics(execution, stats)
    execution.status = status
    execution.ended_at = stats.ended_at or utcnow()
    execution.error = error
    execution.details = _dump_details(details)
    if log is not None:
        execution.log = log
    await session.commit()
    logger.info(
        f"Sync execution {execution_id} finished with status {status.value}: "
        f"{stats.counters()}"
    )
    return execution


async def record_execution(
    session: AsyncSession,
    stats: SyncStatistics,
    details: Optional[Dict[str, Any]] = None,
    status: SyncExecutionStatusEnum = SyncExecutionStatusEnum.COMPLETED,
    error: Optional[str] = None,
    trigger: SyncTriggerEnum = SyncTriggerEnum.MANUAL,
    log: Optional[str] = None,
) -> int:
    """Insert a finished execution summarizing ``stats``; returns its id."""
    execution = SyncExecution(
        status=status,
        trigger=trigger,
        started_at=stats.started_at or utcnow(),
        ended_at=stats.ended_at or utcnow(),
        error=error,
        details=_dump_details(details),
        log=log,
    )
    _apply_statistics(execution, stats)
    session.add(execution)
    await session.commit()
    await session.refresh(execution)
    logger.info(f"Recorded sync execution {execution.id}")
    return execution.id


async def cancel_execution(session: AsyncSession, execution_id: int) -> Optional[SyncExecution]:
    execution = await session.get(SyncExecution, execution_id)
    if execution is None or execution.status != SyncExecutionStatusEnum.RUNNING:
        return execution
    execution.status = SyncExecutionStatusEnum.CANCELLED
    execution.ended_at = utcnow()
    await session.commit()
    logger.info(f"Sync execution {execution_id} cancelled")
    return execution


async def get_execution(session: AsyncSession, execution_id: int) -> Optional[SyncExecution]:
    return await session.get(SyncExecution, execution_id)


async def get_current_execution(session: AsyncSession) -> Optional[SyncExecution]:
    result = await session.execute(
        select(SyncExecution)
        .where(SyncExecution.status == SyncExecutionStatusEnum.RUNNING)
        .order_by(SyncExecution.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_executions(
    session: AsyncSession, limit: int = 20, offset: int = 0
) -> Tuple[List[SyncExecution], int]:
    total = await session.scalar(select(func.count()).select_from(SyncExecution))
    result = await session.execute(
        select(SyncExecution)
        .order_by(SyncExecution.started_at.desc(), SyncExecution.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0
