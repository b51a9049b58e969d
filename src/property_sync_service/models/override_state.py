from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint

from .base import Base, TimestampMixin, utcnow


class ListingOverrideState(TimestampMixin, Base):
    """Operator-controlled flags that must survive re-syncs of a listing."""

    __tablename__ = "listing_override_states"
    __table_args__ = (
        UniqueConstraint(
            "listing_ref", "sync_code", name="uq_listing_override_states_ref_code"
        ),
    )

    id = Column(Integer, primary_key=True)
    listing_ref = Column(Integer, nullable=False, index=True)
    # '' rather than NULL so the unique constraint also covers listings without a code
    sync_code = Column(String(100), nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True)
    featured = Column(Boolean, nullable=False, default=False)
    hot = Column(Boolean, nullable=False, default=False)
    modified_at = Column(DateTime, default=utcnow, nullable=False)
