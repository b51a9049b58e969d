import enum

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Text

from .base import Base, utcnow


class SyncExecutionStatusEnum(enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class SyncTriggerEnum(enum.Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    API = "api"


class SyncExecution(Base):
    __tablename__ = "sync_executions"

    id = Column(Integer, primary_key=True)
    status = Column(
        SAEnum(
            SyncExecutionStatusEnum,
            native_enum=False,
            length=16,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=SyncExecutionStatusEnum.RUNNING,
        index=True,
    )
    trigger = Column(
        SAEnum(
            SyncTriggerEnum,
            native_enum=False,
            length=16,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=SyncTriggerEnum.MANUAL,
    )
    triggered_by = Column(String(100))

    started_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    ended_at = Column(DateTime)

    processed = Column(Integer, nullable=False, default=0)
    new = Column(Integer, nullable=False, default=0)
    updated = Column(Integer, nullable=False, default=0)
    unchanged = Column(Integer, nullable=False, default=0)
    images_downloaded = Column(Integer, nullable=False, default=0)
    images_deleted = Column(Integer, nullable=False, default=0)
    image_errors = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    inactive_marked = Column(Integer, nullable=False, default=0)

    details = Column(Text)
    log = Column(Text)
    error = Column(Text)
