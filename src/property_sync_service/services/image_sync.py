"""
Per-listing image reconciliation.

``reconcile`` decides, slot by slot, which images to download, keep or
delete. ``sync_listing_images`` executes that plan: downloads run
concurrently outside any transaction, then every row change of the listing
is committed at once and files of deleted rows are removed afterwards.
"""

import asyncio
import hashlib
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence, Set
from urllib.parse import unquote, urlparse

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from property_sync_service.config import Settings
from property_sync_service.config import settings as default_settings
from property_sync_service.crud.image_crud import (
    add_image,
    delete_images,
    get_listing_images,
    update_image,
)
from property_sync_service.exceptions import ImageProcessingError
from property_sync_service.models.image import ListingImage
from property_sync_service.schemas.listing_payload import ImagePayload
from property_sync_service.utils.image_transcoder import (
    TranscodedImage,
    transcode_image_async,
)
from property_sync_service.utils.logging_config import logger

STEM_MAX_LENGTH = 80


@dataclass
class ImageSlot:
    url: str
    ordinal: int
    is_primary: bool
    image_id: Optional[int] = None
    local_path: Optional[str] = None
    content_hash: Optional[str] = None


@dataclass
class ImageSyncPlan:
    listing_id: int
    to_download: List[ImageSlot] = field(default_factory=list)
    to_update: List[ImageSlot] = field(default_factory=list)
    to_delete: List[ListingImage] = field(default_factory=list)

    @property
    def slots(self) -> List[ImageSlot]:
        return sorted(self.to_download + self.to_update, key=lambda slot: slot.ordinal)


@dataclass
class ImageSyncResult:
    downloaded: int = 0
    unchanged: int = 0
    deleted: int = 0
    errors: int = 0


def url_stem(url: str) -> str:
    """Filesystem-safe stem of the last path segment of ``url``."""
    try:
        path = urlparse(url).path
    except ValueError:
        # Unparseable URLs still get a deterministic name
        path = url.split("?", 1)[0].split("#", 1)[0]
    name = PurePosixPath(unquote(path)).stem
    cleaned = re.sub(r"[^A-Za-z0-9_-]", "", name.replace(" ", "-"))
    return cleaned[:STEM_MAX_LENGTH] or "image"


def image_relative_path(ref: int, ordinal: int, url: str, suffix: str = "") -> str:
    return f"{ref}/{ref}_{ordinal}_{url_stem(url)}{suffix}.jpg"


class ImageSyncEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        http_client: httpx.AsyncClient,
        settings: Settings = default_settings,
        images_root: Optional[Path] = None,
    ):
        self.session_factory = session_factory
        self.http_client = http_client
        self.settings = settings
        self.images_root = Path(images_root or settings.IMAGES_FOLDER)

    def file_exists(self, local_path: Optional[str]) -> bool:
        return bool(local_path) and (self.images_root / local_path).is_file()

    def reconcile(
        self,
        listing_id: int,
        current_images: Sequence[ImagePayload],
        persisted_images: Sequence[ListingImage],
        file_exists: Optional[Callable[[Optional[str]], bool]] = None,
    ) -> ImageSyncPlan:
        """
        Plan the image changes of one listing.

        ``current_images`` must already be in slot order. Slot 0 is the
        primary image whatever the source marks; every other slot is written
        as non-primary so exactly one primary exists.
        """
        file_exists = file_exists or self.file_exists
        persisted_by_url: Dict[str, ListingImage] = {}
        for image in persisted_images:
            persisted_by_url.setdefault(image.original_url, image)

        plan = ImageSyncPlan(listing_id=listing_id)
        seen_urls: Set[str] = set()
        for image in current_images:
            if image.url in seen_urls:
                continue
            seen_urls.add(image.url)
            ordinal = len(seen_urls) - 1
            slot = ImageSlot(url=image.url, ordinal=ordinal, is_primary=ordinal == 0)

            existing = persisted_by_url.get(image.url)
            if existing is None:
                plan.to_download.append(slot)
                continue
            slot.image_id = existing.id
            slot.local_path = existing.local_path
            slot.content_hash = existing.content_hash
            if file_exists(existing.local_path):
                plan.to_update.append(slot)
            else:
                plan.to_download.append(slot)

        plan.to_delete = [
            image for image in persisted_images if image.original_url not in seen_urls
        ]
        return plan

    def _assign_paths(
        self, ref: int, plan: ImageSyncPlan, persisted_images: Sequence[ListingImage]
    ) -> Dict[int, str]:
        """Target path per download slot, never reusing a path owned by another row."""
        taken = {slot.local_path for slot in plan.to_update if slot.local_path}
        taken.update(image.local_path for image in plan.to_delete if image.local_path)
        assigned: Dict[int, str] = {}
        for slot in plan.to_download:
            path = image_relative_path(ref, slot.ordinal, slot.url)
            owners = {
                image.id
                for image in persisted_images
                if image.local_path == path and image.id != slot.image_id
            }
            if path in taken or owners:
                digest = hashlib.md5(slot.url.encode("utf-8")).hexdigest()[:8]
                path = image_relative_path(ref, slot.ordinal, slot.url, f"_{digest}")
            taken.add(path)
            assigned[slot.ordinal] = path
        return assigned

    async def _fetch(self, url: str) -> bytes:
        try:
            response = await self.http_client.get(
                url,
                timeout=self.settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS,
                follow_redirects=True,
            )
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # Malformed source URLs fail here too, before any request is sent
            raise ImageProcessingError(f"Download of {url} failed: {e}") from e
        return response.content

    def _write_file(self, relative_path: str, data: bytes) -> None:
        target = self.images_root / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=target.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(temp_path, target)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def _remove_file(self, relative_path: Optional[str]) -> None:
        if not relative_path:
            return
        target = self.images_root / relative_path
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove image file {target}: {e}")

    async def _download(
        self, ref: int, slot: ImageSlot, relative_path: str, semaphore: asyncio.Semaphore
    ) -> Optional[TranscodedImage]:
        async with semaphore:
            try:
                raw = await self._fetch(slot.url)
                image = await transcode_image_async(
                    raw, self.settings.IMAGE_MAX_WIDTH, self.settings.IMAGE_QUALITY
                )
                await asyncio.to_thread(self._write_file, relative_path, image.data)
            except (ImageProcessingError, OSError) as e:
                logger.warning(f"Listing {ref}: image {slot.ordinal} ({slot.url}) failed: {e}")
                return None
        if slot.content_hash and slot.content_hash == image.content_hash:
            logger.debug(f"Listing {ref}: image {slot.ordinal} content unchanged")
        elif slot.content_hash:
            logger.info(f"Listing {ref}: image {slot.ordinal} has a new content version")
        return image

    async def sync_listing_images(
        self, listing_id: int, ref: int, images: Sequence[ImagePayload]
    ) -> ImageSyncResult:
        """Bring the stored images of one listing in line with ``images``."""
        result = ImageSyncResult()
        async with self.session_factory() as session:
            persisted = await get_listing_images(session, listing_id)

        plan = self.reconcile(listing_id, images, persisted)
        paths = self._assign_paths(ref, plan, persisted)
        semaphore = asyncio.Semaphore(self.settings.IMAGE_CONCURRENCY)
        downloads = await asyncio.gather(
            *(
                self._download(ref, slot, paths[slot.ordinal], semaphore)
                for slot in plan.to_download
            )
        )

        written: List[str] = []
        async with self.session_factory() as session:
            await delete_images(session, [image.id for image in plan.to_delete])
            for slot in plan.to_update:
                await update_image(
                    session, slot.image_id, ordinal=slot.ordinal, is_primary=slot.is_primary
                )
            for slot, image in zip(plan.to_download, downloads):
                values = {"ordinal": slot.ordinal, "is_primary": slot.is_primary}
                if image is None:
                    result.errors += 1
                    values["local_path"] = None
                else:
                    result.downloaded += 1
                    written.append(paths[slot.ordinal])
                    values.update(
                        local_path=paths[slot.ordinal],
                        content_hash=image.content_hash,
                        width=image.width,
                        height=image.height,
                        size_bytes=image.size_bytes,
                    )
                if slot.image_id is not None:
                    await update_image(session, slot.image_id, **values)
                else:
                    add_image(session, listing_id, dict(values, original_url=slot.url))
            await session.commit()

        result.unchanged = len(plan.to_update)
        result.deleted = len(plan.to_delete)
        kept_paths = set(written) | {slot.local_path for slot in plan.to_update}
        for image in plan.to_delete:
            if image.local_path not in kept_paths:
                self._remove_file(image.local_path)
        for slot in plan.to_download:
            # A redownload may land on a new path; the old one is gone or stale
            if slot.local_path and slot.local_path not in kept_paths:
                self._remove_file(slot.local_path)

        logger.info(
            f"Listing {ref}: images downloaded={result.downloaded} kept={result.unchanged} "
            f"deleted={result.deleted} errors={result.errors}"
        )
        return result
