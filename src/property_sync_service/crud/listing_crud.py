from typing import Any, Dict, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.crud.override_crud import OverrideFlags, reconcile_after_write
from property_sync_service.models.base import utcnow
from property_sync_service.models.listing import Listing
from property_sync_service.utils.logging_config import logger


async def get_listing_by_ref(session: AsyncSession, ref: int) -> Optional[Listing]:
    result = await session.execute(select(Listing).where(Listing.ref == ref))
    return result.scalar_one_or_none()


async def create_listing(
    session: AsyncSession,
    values: Dict[str, Any],
    flags: OverrideFlags,
    data_hash: str,
    raw_extra: Optional[Dict[str, Any]] = None,
) -> Listing:
    now = utcnow()
    listing = Listing(
        **values,
        active=flags.active,
        featured=flags.featured,
        hot=flags.hot,
        data_hash=data_hash,
        raw_extra=raw_extra or None,
        created_at=now,
        updated_at=now,
        last_synced_at=now,
    )
    session.add(listing)
    await session.flush()
    return listing


async def update_listing(
    session: AsyncSession,
    listing: Listing,
    values: Dict[str, Any],
    flags: OverrideFlags,
    data_hash: str,
    raw_extra: Optional[Dict[str, Any]] = None,
) -> Listing:
    """Overwrite every mutable column of ``listing``."""
    for key, value in values.items():
        setattr(listing, key, value)
    listing.active = flags.active
    listing.featured = flags.featured
    listing.hot = flags.hot
    listing.data_hash = data_hash
    listing.raw_extra = raw_extra or None
    listing.last_synced_at = utcnow()
    await session.flush()
    return listing


async def touch_listing(
    session: AsyncSession,
    listing_id: int,
    flags: OverrideFlags,
    changed_values: Optional[Dict[str, Any]] = None,
    raw_extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Confirm an unchanged listing: set ``last_synced_at`` and re-apply flags.

    ``updated_at`` is written back unchanged so that it keeps meaning
    "last modified" rather than "last seen".
    """
    values = dict(changed_values or {})
    values.update(
        active=flags.active,
        featured=flags.featured,
        hot=flags.hot,
        raw_extra=raw_extra or None,
        last_synced_at=utcnow(),
        updated_at=Listing.updated_at,
    )
    await session.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def deactivate_missing(session: AsyncSession, seen_refs: Iterable[int]) -> int:
    """
    Set ``active = false`` on every active listing whose ref is not in
    ``seen_refs`` and keep an override row for each, so a listing that
    reappears later comes back inactive.
    """
    seen = sorted(set(seen_refs))
    missing_filter = (Listing.active.is_(True), Listing.ref.not_in(seen))
    result = await session.execute(
        select(Listing.ref, Listing.sync_code, Listing.featured, Listing.hot).where(
            *missing_filter
        )
    )
    rows = result.all()
    if not rows:
        return 0

    updated = await session.execute(
        update(Listing)
        .where(*missing_filter)
        .values(active=False, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    for row in rows:
        await reconcile_after_write(
            session,
            row.ref,
            row.sync_code,
            OverrideFlags(active=False, featured=bool(row.featured), hot=bool(row.hot)),
        )
    logger.info(f"Deactivated {updated.rowcount} listing(s) missing from the feed")
    return updated.rowcount

