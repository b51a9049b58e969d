"""
Resolution of free-text lookup values to catalog ids, and the reference rows
every database is seeded with.
"""

import asyncio
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from property_sync_service.models.catalog import (
    CATALOG_DEFAULT_NAMES,
    CATALOG_MODELS,
    SEED_CATALOG_ROWS,
    UNSPECIFIED_CATALOG_NAME,
    CatalogName,
)
from property_sync_service.utils.db_utils import dialect_name, insert_ignore
from property_sync_service.utils.logging_config import logger

CATALOG_NAME_MAX_LENGTH = 255


class RunCache:
    """Lookups memoized for the duration of one reconciliation pass."""

    def __init__(self):
        self.catalog_ids: Dict[Tuple[CatalogName, str], int] = {}
        self._locks: Dict[Tuple[CatalogName, str], asyncio.Lock] = {}

    def lock_for(self, key: Tuple[CatalogName, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


def normalize_catalog_value(
    value: Optional[str], catalog: Optional[CatalogName] = None
) -> str:
    name = (value or "").strip()
    if name:
        return name[:CATALOG_NAME_MAX_LENGTH]
    return CATALOG_DEFAULT_NAMES.get(catalog, UNSPECIFIED_CATALOG_NAME)


async def get_or_create_catalog_id(
    session: AsyncSession, catalog: CatalogName, name: str
) -> int:
    """
    Insert the catalog row if it is missing, then select it by exact name.

    Inserting first and ignoring the unique-constraint conflict leaves no
    window between lookup and creation for a concurrent resolver to slip into.
    """
    model = CATALOG_MODELS[catalog]
    stmt = insert_ignore(model, dialect_name(session), {"name": name}, ["name"])
    await session.execute(stmt)
    result = await session.execute(select(model.id).where(model.name == name))
    return result.scalar_one()


class CatalogResolver:
    def __init__(self, session_factory: async_sessionmaker, cache: RunCache):
        self.session_factory = session_factory
        self.cache = cache

    async def resolve(self, catalog: CatalogName, value: Optional[str]) -> int:
        """
        Id of the catalog row named ``value``, creating it on first sight.

        Blank values map to the "No especificado" row, or to the office row
        for advisors. Every resolution is committed in its own session before
        the id is returned.
        """
        name = normalize_catalog_value(value, catalog)
        key = (catalog, name)
        cached = self.cache.catalog_ids.get(key)
        if cached is not None:
            return cached

        async with self.cache.lock_for(key):
            cached = self.cache.catalog_ids.get(key)
            if cached is not None:
                return cached
            async with self.session_factory() as session:
                catalog_id = await get_or_create_catalog_id(session, catalog, name)
                await session.commit()
            logger.debug(f"Resolved {catalog.value} '{name}' to id {catalog_id}")
            self.cache.catalog_ids[key] = catalog_id
            return catalog_id


async def seed_catalogs(session: AsyncSession) -> None:
    """Insert the consignment types and the default advisor if they are missing."""
    dialect = dialect_name(session)
    for catalog, rows in SEED_CATALOG_ROWS.items():
        model = CATALOG_MODELS[catalog]
        for name, description in rows:
            await session.execute(
                insert_ignore(
                    model, dialect, {"name": name, "description": description}, ["name"]
                )
            )
