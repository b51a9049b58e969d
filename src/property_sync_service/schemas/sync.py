"""
Schemas for synchronization runs: engine options, statistics and the
request/response models of the sync routes.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from property_sync_service.schemas.listing_payload import ApiFilters


class SyncOptions(BaseModel):
    """Knobs of one reconciliation pass."""

    batch_size: int = Field(5, ge=1, description="Listings processed concurrently")
    download_images: bool = Field(True, description="Reconcile listing images")
    track_changes: bool = Field(True, description="Record field-level changes")
    mark_inactive: bool = Field(
        False, description="Deactivate listings missing from the batch"
    )
    limit: Optional[int] = Field(
        None, ge=1, description="Process at most this many listings"
    )

    @classmethod
    def from_settings(cls, settings, **overrides) -> "SyncOptions":
        values = {
            "batch_size": settings.BATCH_SIZE,
            "download_images": settings.DOWNLOAD_IMAGES,
            "track_changes": settings.TRACK_CHANGES,
            "mark_inactive": settings.MARK_INACTIVE,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class SyncStatistics(BaseModel):
    """Running totals of one pass; every counter is a plain sum."""

    processed: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    images_downloaded: int = 0
    images_deleted: int = 0
    image_errors: int = 0
    errors: int = 0
    inactive_marked: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def counters(self) -> Dict[str, int]:
        return self.model_dump(exclude={"started_at", "ended_at"})


# Route schemas
class SyncStartRequest(BaseModel):
    """Request to start a synchronization run in the background."""

    batch_size: Optional[int] = Field(None, ge=1, description="Overrides BATCH_SIZE")
    download_images: Optional[bool] = Field(None, description="Overrides DOWNLOAD_IMAGES")
    track_changes: Optional[bool] = Field(None, description="Overrides TRACK_CHANGES")
    mark_inactive: Optional[bool] = Field(None, description="Overrides MARK_INACTIVE")
    limit: Optional[int] = Field(None, ge=1, description="Process at most this many listings")
    filters: Optional[ApiFilters] = Field(None, description="Filters sent to the source API")
    triggered_by: Optional[str] = Field(None, description="Free-form caller identifier")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "batch_size": 5,
                "download_images": True,
                "mark_inactive": False,
                "filters": {"city": "Bogotá"},
            }
        }
    )


class SyncStartResponse(BaseModel):
    """Response for an accepted synchronization request."""

    execution_id: int = Field(..., description="Id of the execution record")
    status: str = Field(..., description="Status of the execution")
    message: str = Field(..., description="Additional information")
    statistics: Optional[SyncStatistics] = Field(
        None, description="Totals, present when the caller waited for the run"
    )


class SyncExecutionResponse(BaseModel):
    """An execution record as exposed by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    trigger: str
    triggered_by: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    processed: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    images_downloaded: int = 0
    images_deleted: int = 0
    image_errors: int = 0
    errors: int = 0
    inactive_marked: int = 0
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_execution(cls, execution) -> "SyncExecutionResponse":
        data = {
            column.key: getattr(execution, column.key)
            for column in execution.__table__.columns
            if column.key not in ("log", "details")
        }
        data["status"] = execution.status.value
        data["trigger"] = execution.trigger.value
        data["details"] = json.loads(execution.details) if execution.details else None
        return cls(**data)


class SyncHistoryResponse(BaseModel):
    """A page of past executions, newest first."""

    items: List[SyncExecutionResponse] = Field(..., description="Executions")
    total: int = Field(..., description="Total number of executions")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Page offset")


class CleanExecutionsResponse(BaseModel):
    """Result of the orphaned execution cleanup."""

    cleaned: int = Field(..., description="Executions marked as error")
    message: str = Field(..., description="Additional information")


class SyncLogResponse(BaseModel):
    """Per-listing error log and fatal error of one execution."""

    id: int = Field(..., description="Execution id")
    status: str = Field(..., description="Status of the execution")
    log: Optional[str] = Field(None, description="Per-listing errors, one per line")
    error: Optional[str] = Field(None, description="Error that ended the run")
