"""
Utility functions for mapping a parsed listing payload to listing columns.
"""

from typing import Any, Dict

from property_sync_service.schemas.listing_payload import ListingPayload
from property_sync_service.utils.slug import generate_slug

TITLE_MAX_LENGTH = 255

# Payload attributes copied verbatim to the listing column of the same name
DIRECT_FIELDS = (
    "description",
    "short_description",
    "address",
    "area",
    "built_area",
    "private_area",
    "land_area",
    "bedrooms",
    "bathrooms",
    "garages",
    "stratum",
    "sale_price",
    "rent_price",
    "admin_fee",
    "latitude",
    "longitude",
)


def truncate(text: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def build_title(payload: ListingPayload) -> str:
    """
    Listing title, falling back to the sync code and then to a generated one.

    Args:
        payload: Parsed listing

    Returns:
        A title of at most 255 characters
    """
    if payload.title:
        title = payload.title
    elif payload.sync_code:
        title = payload.sync_code
    elif payload.property_type and payload.city:
        title = f"{payload.property_type} en {payload.city} - Ref: {payload.ref}"
    else:
        title = f"Inmueble Ref: {payload.ref}"
    return truncate(title)


def map_listing_values(payload: ListingPayload, catalog_ids: Dict[str, int]) -> Dict[str, Any]:
    """
    Columns of a Listing row for ``payload``.

    Args:
        payload: Parsed listing
        catalog_ids: Resolved ids keyed by foreign key column (``city_id``...)

    Returns:
        Dict with keys matching the ORM model attributes
    """
    values: Dict[str, Any] = {name: getattr(payload, name) for name in DIRECT_FIELDS}
    values.update(catalog_ids)
    values["ref"] = payload.ref
    values["sync_code"] = payload.sync_code
    values["slug"] = generate_slug(payload.ref, payload.sync_code)
    values["title"] = build_title(payload)
    values["address"] = truncate(payload.address)
    return values
