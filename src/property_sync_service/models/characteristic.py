import enum

from sqlalchemy import Boolean, Column
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text

from .base import Base, TimestampMixin


class CharacteristicTypeEnum(enum.Enum):
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    TEXT = "text"


class Characteristic(TimestampMixin, Base):
    __tablename__ = "characteristics"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    value_type = Column(
        SAEnum(
            CharacteristicTypeEnum,
            native_enum=False,
            length=16,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=CharacteristicTypeEnum.TEXT,
    )
    unit = Column(String(50))
    description = Column(String(255))


class ListingCharacteristicValue(TimestampMixin, Base):
    __tablename__ = "listing_characteristics"

    id = Column(Integer, primary_key=True)
    listing_id = Column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    characteristic_id = Column(
        Integer, ForeignKey("characteristics.id"), nullable=False, index=True
    )
    text_value = Column(Text)
    numeric_value = Column(Numeric(15, 2))
    boolean_value = Column(Boolean)
