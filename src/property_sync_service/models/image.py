from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from property_sync_service.utils.hashing import fingerprint_bytes

from .base import Base, TimestampMixin


class ListingImage(TimestampMixin, Base):
    __tablename__ = "listing_images"
    __table_args__ = (
        # Keyed on the URL digest; a 1024 character URL is too long for a MySQL index
        UniqueConstraint("listing_id", "url_hash", name="uq_listing_images_listing_url"),
    )

    id = Column(Integer, primary_key=True)
    listing_id = Column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    original_url = Column(String(1024), nullable=False)
    url_hash = Column(String(32), nullable=False)
    local_path = Column(String(512))
    content_hash = Column(String(32))
    width = Column(Integer)
    height = Column(Integer)
    size_bytes = Column(Integer)
    is_primary = Column(Boolean, nullable=False, default=False)
    ordinal = Column(Integer, nullable=False, default=0)

    listing = relationship("Listing", back_populates="images")

    @validates("original_url")
    def _validate_original_url(self, key, value):
        self.url_hash = url_digest(value)
        return value

    # Slot 0 is always the primary image, whatever order attributes are assigned in
    @validates("ordinal")
    def _validate_ordinal(self, key, value):
        if value == 0:
            self.is_primary = True
        return value

    @validates("is_primary")
    def _validate_is_primary(self, key, value):
        if self.ordinal == 0:
            return True
        return bool(value)

    def __repr__(self) -> str:
        return (
            f"<ListingImage id={self.id} listing_id={self.listing_id} "
            f"ordinal={self.ordinal} primary={self.is_primary}>"
        )


def url_digest(url: str) -> str:
    return fingerprint_bytes(url.encode("utf-8"))
