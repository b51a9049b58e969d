from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, utcnow


class Listing(TimestampMixin, Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True)
    ref = Column(Integer, nullable=False, unique=True, index=True)
    sync_code = Column(String(100))
    slug = Column(String(255), index=True)

    city_id = Column(Integer, ForeignKey("cities.id"))
    neighborhood_id = Column(Integer, ForeignKey("neighborhoods.id"))
    property_type_id = Column(Integer, ForeignKey("property_types.id"))
    use_id = Column(Integer, ForeignKey("property_uses.id"))
    status_id = Column(Integer, ForeignKey("property_statuses.id"))
    consignment_type_id = Column(Integer, ForeignKey("consignment_types.id"))
    advisor_id = Column(Integer, ForeignKey("advisors.id"))

    title = Column(String(255))
    description = Column(Text)
    short_description = Column(Text)
    address = Column(String(255))

    area = Column(Numeric(15, 2))
    built_area = Column(Numeric(15, 2))
    private_area = Column(Numeric(15, 2))
    land_area = Column(Numeric(15, 2))
    bedrooms = Column(Integer)
    bathrooms = Column(Integer)
    garages = Column(Integer)
    stratum = Column(Integer)

    sale_price = Column(Numeric(15, 2))
    rent_price = Column(Numeric(15, 2))
    admin_fee = Column(Numeric(15, 2))

    latitude = Column(String(50))
    longitude = Column(String(50))

    active = Column(Boolean, nullable=False, default=True, index=True)
    featured = Column(Boolean, nullable=False, default=False)
    hot = Column(Boolean, nullable=False, default=False)

    data_hash = Column(String(32))
    raw_extra = Column(JSON(none_as_null=True))
    last_synced_at = Column(DateTime, default=utcnow)

    images = relationship(
        "ListingImage",
        back_populates="listing",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ListingImage.ordinal",
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} ref={self.ref} active={self.active}>"
