from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, utcnow


class ListingChange(Base):
    """Append-only field-level audit record."""

    __tablename__ = "listing_changes"

    id = Column(Integer, primary_key=True)
    listing_id = Column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    execution_id = Column(Integer, ForeignKey("sync_executions.id"), index=True)
    field = Column(String(100), nullable=False)
    old_value = Column(Text)
    new_value = Column(Text)
    changed_at = Column(DateTime, default=utcnow, nullable=False)
