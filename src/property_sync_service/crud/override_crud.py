"""
Operator-controlled flags (active, featured, hot) that survive re-syncs.

Only listings whose flags differ from the defaults have a row; the table is an
exception list and is pruned whenever a listing returns to the defaults.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.models.base import utcnow
from property_sync_service.models.listing import Listing
from property_sync_service.models.override_state import ListingOverrideState
from property_sync_service.utils.db_utils import dialect_name, upsert
from property_sync_service.utils.logging_config import logger


@dataclass(frozen=True)
class OverrideFlags:
    active: bool = True
    featured: bool = False
    hot: bool = False

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_FLAGS

    @classmethod
    def from_row(cls, row) -> "OverrideFlags":
        return cls(active=bool(row.active), featured=bool(row.featured), hot=bool(row.hot))


DEFAULT_FLAGS = OverrideFlags()


def _code(sync_code: Optional[str]) -> str:
    return sync_code or ""


async def get_override_state(
    session: AsyncSession, ref: int, sync_code: Optional[str]
) -> Optional[ListingOverrideState]:
    result = await session.execute(
        select(ListingOverrideState).where(
            ListingOverrideState.listing_ref == ref,
            ListingOverrideState.sync_code == _code(sync_code),
        )
    )
    return result.scalar_one_or_none()


async def capture_defaults(
    session: AsyncSession,
    ref: int,
    sync_code: Optional[str],
    existing: Optional[Listing] = None,
) -> OverrideFlags:
    """
    Flags a listing must carry forward into this sync.

    A stored override wins, then the flags of the existing row, then the
    defaults for a listing never seen before.
    """
    state = await get_override_state(session, ref, sync_code)
    if state is not None:
        return OverrideFlags.from_row(state)
    if existing is not None:
        return OverrideFlags.from_row(existing)
    return DEFAULT_FLAGS


async def reconcile_after_write(
    session: AsyncSession, ref: int, sync_code: Optional[str], flags: OverrideFlags
) -> None:
    """Delete the override row for default flags, upsert it otherwise."""
    if flags.is_default:
        result = await session.execute(
            delete(ListingOverrideState).where(
                ListingOverrideState.listing_ref == ref,
                ListingOverrideState.sync_code == _code(sync_code),
            )
        )
        if result.rowcount:
            logger.debug(f"Pruned override state of listing {ref}")
        return

    now = utcnow()
    stmt = upsert(
        ListingOverrideState,
        dialect_name(session),
        {
            "listing_ref": ref,
            "sync_code": _code(sync_code),
            "active": flags.active,
            "featured": flags.featured,
            "hot": flags.hot,
            "modified_at": now,
            "created_at": now,
            "updated_at": now,
        },
        conflict_columns=["listing_ref", "sync_code"],
        update_columns=["active", "featured", "hot", "modified_at", "updated_at"],
    )
    await session.execute(stmt)
    logger.debug(f"Stored override state of listing {ref}: {flags}")


async def set_listing_flags(
    session: AsyncSession,
    ref: int,
    active: Optional[bool] = None,
    featured: Optional[bool] = None,
    hot: Optional[bool] = None,
) -> Optional[OverrideFlags]:
    """Operator entry point: change a listing's flags and persist the override."""
    result = await session.execute(select(Listing).where(Listing.ref == ref))
    listing = result.scalar_one_or_none()
    if listing is None:
        return None

    current = OverrideFlags.from_row(listing)
    flags = OverrideFlags(
        active=current.active if active is None else active,
        featured=current.featured if featured is None else featured,
        hot=current.hot if hot is None else hot,
    )
    listing.active = flags.active
    listing.featured = flags.featured
    listing.hot = flags.hot
    await reconcile_after_write(session, ref, listing.sync_code, flags)
    await session.commit()
    logger.info(f"Flags of listing {ref} set to {flags}")
    return flags
