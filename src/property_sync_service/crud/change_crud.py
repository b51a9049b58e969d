"""
Field-level change history of listings.
"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.exceptions import ContentHashError
from property_sync_service.models.change import ListingChange
from property_sync_service.utils.hashing import normalize_value
from property_sync_service.utils.logging_config import logger

# External field name -> listing column
TRACKED_FIELDS: Dict[str, str] = {
    "titulo": "title",
    "descripcion": "description",
    "area": "area",
    "habitaciones": "bedrooms",
    "banos": "bathrooms",
    "garajes": "garages",
    "estrato": "stratum",
    "precio_venta": "sale_price",
    "precio_canon": "rent_price",
    "precio_administracion": "admin_fee",
    "latitud": "latitude",
    "longitud": "longitude",
    "direccion": "address",
}


def value_as_text(value: Any) -> Optional[str]:
    """Text stored in a change record; empty strings count as no value."""
    if value is None:
        return None
    try:
        normalized = normalize_value(value)
    except ContentHashError:
        normalized = str(value)
    if isinstance(normalized, bool):
        return "true" if normalized else "false"
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return normalized
    text = str(normalized)
    return text if text.strip() else None


def compute_changes(
    old_values: Optional[Mapping[str, Any]],
    new_values: Mapping[str, Any],
    fields: Mapping[str, str] = TRACKED_FIELDS,
) -> List[Tuple[str, Optional[str], Optional[str]]]:
    """``(field, old, new)`` for every tracked field whose value differs."""
    changes = []
    for field, column in fields.items():
        old = value_as_text(old_values.get(column)) if old_values else None
        new = value_as_text(new_values.get(column))
        if old == new:
            continue
        changes.append((field, old, new))
    return changes


async def diff_and_record(
    session: AsyncSession,
    listing_id: int,
    old_values: Optional[Mapping[str, Any]],
    new_values: Mapping[str, Any],
    fields: Mapping[str, str] = TRACKED_FIELDS,
    execution_id: Optional[int] = None,
) -> List[ListingChange]:
    """
    Append one change record per differing tracked field.

    ``old_values`` is None for a brand-new listing, in which case every
    non-empty field is recorded with no old value. A record that fails to
    insert is logged and skipped without affecting the others.
    """
    records = []
    for field, old, new in compute_changes(old_values, new_values, fields):
        record = ListingChange(
            listing_id=listing_id,
            execution_id=execution_id,
            field=field,
            old_value=old,
            new_value=new,
        )
        try:
            async with session.begin_nested():
                session.add(record)
        except SQLAlchemyError as e:
            logger.warning(
                f"Could not record change of '{field}' for listing {listing_id}: {e}"
            )
            continue
        records.append(record)
    return records


async def get_listing_changes(
    session: AsyncSession, listing_id: int, limit: int = 100
) -> List[ListingChange]:
    result = await session.execute(
        select(ListingChange)
        .where(ListingChange.listing_id == listing_id)
        .order_by(ListingChange.changed_at.desc(), ListingChange.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
