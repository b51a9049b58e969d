"""
Lookup catalogs referenced by listings (city, neighborhood, type, use, status,
consignment type and advisor).
"""

import enum

from sqlalchemy import Boolean, Column, Integer, String

from .base import Base, TimestampMixin

UNSPECIFIED_CATALOG_NAME = "No especificado"
DEFAULT_ADVISOR_NAME = "Oficina"


class CatalogMixin(TimestampMixin):
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(String(255))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} name={self.name!r}>"


class City(CatalogMixin, Base):
    __tablename__ = "cities"


class Neighborhood(CatalogMixin, Base):
    __tablename__ = "neighborhoods"


class PropertyType(CatalogMixin, Base):
    __tablename__ = "property_types"


class PropertyUse(CatalogMixin, Base):
    __tablename__ = "property_uses"


class PropertyStatus(CatalogMixin, Base):
    __tablename__ = "property_statuses"


class ConsignmentType(CatalogMixin, Base):
    __tablename__ = "consignment_types"


class Advisor(CatalogMixin, Base):
    """Agent in charge of a listing; listings without one belong to the office."""

    __tablename__ = "advisors"

    last_name = Column(String(255))
    email = Column(String(255))
    phone = Column(String(50))
    active = Column(Boolean, nullable=False, default=True)


class CatalogName(str, enum.Enum):
    CITY = "city"
    NEIGHBORHOOD = "neighborhood"
    PROPERTY_TYPE = "property_type"
    USE = "use"
    STATUS = "status"
    CONSIGNMENT_TYPE = "consignment_type"
    ADVISOR = "advisor"


CATALOG_MODELS = {
    CatalogName.CITY: City,
    CatalogName.NEIGHBORHOOD: Neighborhood,
    CatalogName.PROPERTY_TYPE: PropertyType,
    CatalogName.USE: PropertyUse,
    CatalogName.STATUS: PropertyStatus,
    CatalogName.CONSIGNMENT_TYPE: ConsignmentType,
    CatalogName.ADVISOR: Advisor,
}

# Name a blank value resolves to, when it is not UNSPECIFIED_CATALOG_NAME
CATALOG_DEFAULT_NAMES = {
    CatalogName.ADVISOR: DEFAULT_ADVISOR_NAME,
}

# Rows every fresh database starts with: catalog -> [(name, description)]
SEED_CATALOG_ROWS = {
    CatalogName.CONSIGNMENT_TYPE: [
        ("Venta", "Inmuebles para venta"),
        ("Arriendo", "Inmuebles para arriendo"),
        ("Venta y Arriendo", "Inmuebles disponibles tanto para venta como para arriendo"),
    ],
    CatalogName.ADVISOR: [(DEFAULT_ADVISOR_NAME, None)],
}
