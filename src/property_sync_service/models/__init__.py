"""
Database models for the Property Sync Service.
"""

from property_sync_service.models.base import Base, TimestampMixin, utcnow
from property_sync_service.models.catalog import (
    CATALOG_MODELS,
    DEFAULT_ADVISOR_NAME,
    UNSPECIFIED_CATALOG_NAME,
    Advisor,
    CatalogName,
    City,
    ConsignmentType,
    Neighborhood,
    PropertyStatus,
    PropertyType,
    PropertyUse,
)
from property_sync_service.models.change import ListingChange
from property_sync_service.models.characteristic import (
    Characteristic,
    CharacteristicTypeEnum,
    ListingCharacteristicValue,
)
from property_sync_service.models.execution import (
    SyncExecution,
    SyncExecutionStatusEnum,
    SyncTriggerEnum,
)
from property_sync_service.models.image import ListingImage
from property_sync_service.models.listing import Listing
from property_sync_service.models.override_state import ListingOverrideState

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    # Catalogs
    "CATALOG_MODELS",
    "DEFAULT_ADVISOR_NAME",
    "UNSPECIFIED_CATALOG_NAME",
    "Advisor",
    "CatalogName",
    "City",
    "ConsignmentType",
    "Neighborhood",
    "PropertyType",
    "PropertyUse",
    "PropertyStatus",
    # Listings and their children
    "Listing",
    "ListingImage",
    "Characteristic",
    "CharacteristicTypeEnum",
    "ListingCharacteristicValue",
    "ListingOverrideState",
    "ListingChange",
    # Runs
    "SyncExecution",
    "SyncExecutionStatusEnum",
    "SyncTriggerEnum",
]
