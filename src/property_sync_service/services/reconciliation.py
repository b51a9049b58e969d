"""
One reconciliation pass over a batch of listings from the source API.

Listings are processed in groups of ``batch_size``; each group runs
concurrently and is awaited as a whole before the next one starts. Every
listing gets its own database session and ends in exactly one outcome (new,
updated, unchanged or error). Only storage unavailability and fingerprinting
bugs stop the pass.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import httpx
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import async_sessionmaker

from property_sync_service.config import Settings
from property_sync_service.config import settings as default_settings
from property_sync_service.crud.catalog_crud import CatalogResolver, RunCache
from property_sync_service.crud.change_crud import diff_and_record
from property_sync_service.crud.characteristic_crud import (
    replace_listing_characteristics,
)
from property_sync_service.crud.execution_crud import finish_execution, record_execution
from property_sync_service.crud.listing_crud import (
    create_listing,
    deactivate_missing,
    get_listing_by_ref,
    touch_listing,
    update_listing,
)
from property_sync_service.crud.override_crud import (
    capture_defaults,
    reconcile_after_write,
)
from property_sync_service.exceptions import ContentHashError, SyncFatalError
from property_sync_service.models.base import utcnow
from property_sync_service.models.catalog import CatalogName
from property_sync_service.models.execution import SyncExecutionStatusEnum
from property_sync_service.schemas.listing_payload import ListingPayload
from property_sync_service.schemas.sync import SyncOptions, SyncStatistics
from property_sync_service.services.image_sync import ImageSyncEngine
from property_sync_service.utils.db_utils import snapshot
from property_sync_service.utils.hashing import fingerprint
from property_sync_service.utils.logging_config import logger
from property_sync_service.utils.property_mapper import map_listing_values

STORAGE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)

# Foreign key column -> (catalog, payload attribute)
CATALOG_COLUMNS = {
    "city_id": (CatalogName.CITY, "city"),
    "neighborhood_id": (CatalogName.NEIGHBORHOOD, "neighborhood"),
    "property_type_id": (CatalogName.PROPERTY_TYPE, "property_type"),
    "use_id": (CatalogName.USE, "use"),
    "status_id": (CatalogName.STATUS, "status"),
    "consignment_type_id": (CatalogName.CONSIGNMENT_TYPE, "consignment_type"),
    "advisor_id": (CatalogName.ADVISOR, "advisor"),
}

# Columns an unchanged listing may still need refreshed
LINKAGE_COLUMNS = tuple(CATALOG_COLUMNS) + ("sync_code", "slug")


class ListingOutcome(str, enum.Enum):
    NEW = "new"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ERROR = "error"


@dataclass
class _RunContext:
    options: SyncOptions
    resolver: CatalogResolver
    execution_id: Optional[int] = None


def _raw_ref(raw: Any) -> Any:
    return raw.get("ref") if isinstance(raw, dict) else None


class ReconciliationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        http_client: httpx.AsyncClient,
        settings: Settings = default_settings,
        image_engine: Optional[ImageSyncEngine] = None,
    ):
        self.session_factory = session_factory
        self.http_client = http_client
        self.settings = settings
        self.image_engine = image_engine or ImageSyncEngine(
            session_factory, http_client, settings
        )
        self._stats = SyncStatistics()
        self._error_log: List[str] = []

    def get_statistics(self) -> SyncStatistics:
        return self._stats.model_copy()

    async def process_batch(
        self,
        listings: Sequence[Dict[str, Any]],
        options: Optional[SyncOptions] = None,
        execution_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SyncStatistics:
        """
        Reconcile ``listings`` against the store and write one execution record.

        When ``execution_id`` is given that execution is finished, otherwise a
        new one is recorded. Raises SyncFatalError when storage becomes
        unavailable; the execution is then marked as error if possible.
        """
        options = options or SyncOptions.from_settings(self.settings)
        self._stats = SyncStatistics(started_at=utcnow())
        self._error_log = []
        context = _RunContext(
            options=options,
            resolver=CatalogResolver(self.session_factory, RunCache()),
            execution_id=execution_id,
        )

        truncated = options.limit is not None and len(listings) > options.limit
        batch = list(listings[: options.limit]) if truncated else list(listings)
        logger.info(
            f"Processing {len(batch)} listing(s) in groups of {options.batch_size}"
            + (f" (limited from {len(listings)})" if truncated else "")
        )

        seen_refs: Set[int] = set()
        try:
            for start in range(0, len(batch), options.batch_size):
                group = batch[start : start + options.batch_size]
                results = await asyncio.gather(
                    *(self._process_listing(raw, context) for raw in group),
                    return_exceptions=True,
                )
                fatal = None
                for result in results:
                    if isinstance(result, BaseException):
                        fatal = fatal or result
                        continue
                    ref, outcome = result
                    if outcome != ListingOutcome.ERROR:
                        seen_refs.add(ref)
                if fatal is not None:
                    raise fatal
                logger.info(
                    f"Progress: {self._stats.processed}/{len(batch)} "
                    f"(new={self._stats.new} updated={self._stats.updated} "
                    f"unchanged={self._stats.unchanged} errors={self._stats.errors})"
                )

            if options.mark_inactive:
                if truncated:
                    logger.warning(
                        "Skipping inactive marking: the batch was truncated by the limit"
                    )
                else:
                    self._stats.inactive_marked = await self.mark_inactive_missing(seen_refs)
        except SyncFatalError as e:
            self._stats.ended_at = utcnow()
            logger.error(f"Synchronization aborted: {e}")
            await self._write_execution(
                context, details, SyncExecutionStatusEnum.ERROR, error=str(e)
            )
            raise

        self._stats.ended_at = utcnow()
        await self._write_execution(context, details, SyncExecutionStatusEnum.COMPLETED)
        logger.info(f"Synchronization finished: {self._stats.counters()}")
        return self.get_statistics()

    async def mark_inactive_missing(self, active_refs: Iterable[Any]) -> int:
        """Deactivate every active listing whose ref is not in ``active_refs``."""
        refs = {int(ref) for ref in active_refs}
        if not refs:
            logger.warning("Skipping inactive marking: no listing was seen in this run")
            return 0
        try:
            async with self.session_factory() as session:
                count = await deactivate_missing(session, refs)
                await session.commit()
        except STORAGE_UNAVAILABLE_ERRORS as e:
            raise SyncFatalError(f"Storage unavailable while marking inactive: {e}") from e
        return count

    async def _write_execution(
        self,
        context: _RunContext,
        details: Optional[Dict[str, Any]],
        status: SyncExecutionStatusEnum,
        error: Optional[str] = None,
    ) -> None:
        details = dict(details or {})
        details["options"] = context.options.model_dump()
        log = "\n".join(self._error_log) or None
        try:
            async with self.session_factory() as session:
                if context.execution_id is not None:
                    await finish_execution(
                        session,
                        context.execution_id,
                        self._stats,
                        status=status,
                        error=error,
                        details=details,
                        log=log,
                    )
                else:
                    context.execution_id = await record_execution(
                        session, self._stats, details, status=status, error=error, log=log
                    )
        except SQLAlchemyError as e:
            if status == SyncExecutionStatusEnum.ERROR:
                # The store is already failing; the original error is re-raised
                logger.error(f"Could not record failed execution: {e}")
                return
            raise SyncFatalError(f"Could not record execution: {e}") from e

    async def _process_listing(
        self, raw: Dict[str, Any], context: _RunContext
    ) -> Tuple[Any, ListingOutcome]:
        ref = _raw_ref(raw)
        try:
            payload = ListingPayload.model_validate(raw)
            ref = payload.ref
            outcome = await self._sync_listing(payload, context)
        except SyncFatalError:
            raise
        except STORAGE_UNAVAILABLE_ERRORS as e:
            raise SyncFatalError(f"Storage unavailable while processing listing {ref}: {e}") from e
        except ContentHashError as e:
            raise SyncFatalError(f"Cannot fingerprint listing {ref}: {e}") from e
        except Exception as e:
            logger.error(f"Error processing listing {ref}: {e}", exc_info=True)
            self._error_log.append(f"{ref}: {type(e).__name__}: {e}")
            outcome = ListingOutcome.ERROR
            self._stats.errors += 1

        self._stats.processed += 1
        if outcome == ListingOutcome.NEW:
            self._stats.new += 1
        elif outcome == ListingOutcome.UPDATED:
            self._stats.updated += 1
        elif outcome == ListingOutcome.UNCHANGED:
            self._stats.unchanged += 1
        return ref, outcome

    async def _resolve_catalogs(
        self, payload: ListingPayload, resolver: CatalogResolver
    ) -> Dict[str, int]:
        return {
            column: await resolver.resolve(catalog, getattr(payload, attribute))
            for column, (catalog, attribute) in CATALOG_COLUMNS.items()
        }

    async def _sync_listing(
        self, payload: ListingPayload, context: _RunContext
    ) -> ListingOutcome:
        options = context.options
        catalog_ids = await self._resolve_catalogs(payload, context.resolver)
        values = map_listing_values(payload, catalog_ids)
        new_hash = fingerprint(values)

        async with self.session_factory() as session:
            existing = await get_listing_by_ref(session, payload.ref)
            flags = await capture_defaults(
                session, payload.ref, payload.sync_code, existing
            )

            if existing is None:
                listing = await create_listing(
                    session, values, flags, new_hash, payload.raw_extra
                )
                if options.track_changes:
                    await diff_and_record(
                        session, listing.id, None, values, execution_id=context.execution_id
                    )
                outcome = ListingOutcome.NEW
            elif existing.data_hash == new_hash:
                moved = {
                    column: values[column]
                    for column in LINKAGE_COLUMNS
                    if getattr(existing, column) != values[column]
                }
                await touch_listing(session, existing.id, flags, moved, payload.raw_extra)
                listing = existing
                outcome = ListingOutcome.UNCHANGED
            else:
                old_values = snapshot(existing, values.keys())
                listing = await update_listing(
                    session, existing, values, flags, new_hash, payload.raw_extra
                )
                if options.track_changes:
                    await diff_and_record(
                        session,
                        listing.id,
                        old_values,
                        values,
                        execution_id=context.execution_id,
                    )
                outcome = ListingOutcome.UPDATED

            await reconcile_after_write(session, payload.ref, payload.sync_code, flags)
            if payload.characteristics:
                await replace_listing_characteristics(
                    session, listing.id, payload.characteristics
                )
            await session.commit()
            listing_id = listing.id

        logger.debug(f"Listing {payload.ref}: {outcome.value}")

        if options.download_images and payload.images:
            try:
                result = await self.image_engine.sync_listing_images(
                    listing_id, payload.ref, payload.ordered_images()
                )
            except STORAGE_UNAVAILABLE_ERRORS:
                raise
            except Exception as e:
                # The listing itself is stored; only its image set failed
                logger.error(f"Listing {payload.ref}: image sync failed: {e}", exc_info=True)
                self._stats.image_errors += 1
                return outcome
            self._stats.images_downloaded += result.downloaded
            self._stats.images_deleted += result.deleted
            self._stats.image_errors += result.errors
        return outcome
