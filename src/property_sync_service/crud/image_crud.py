from typing import Any, Dict, Iterable, List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.models.image import ListingImage


async def get_listing_images(session: AsyncSession, listing_id: int) -> List[ListingImage]:
    result = await session.execute(
        select(ListingImage)
        .where(ListingImage.listing_id == listing_id)
        .order_by(ListingImage.ordinal, ListingImage.id)
    )
    return list(result.scalars().all())


async def delete_images(session: AsyncSession, image_ids: Iterable[int]) -> int:
    image_ids = list(image_ids)
    if not image_ids:
        return 0
    result = await session.execute(
        delete(ListingImage)
        .where(ListingImage.id.in_(image_ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def update_image(session: AsyncSession, image_id: int, **values: Any) -> ListingImage:
    """Update one image through the ORM so the primary-slot validator applies."""
    image = await session.get(ListingImage, image_id)
    if image is None:
        raise LookupError(f"Image {image_id} disappeared during synchronization")
    # ordinal first; the is_primary validator reads it
    if "ordinal" in values:
        image.ordinal = values.pop("ordinal")
    for key, value in values.items():
        setattr(image, key, value)
    return image


def add_image(session: AsyncSession, listing_id: int, values: Dict[str, Any]) -> ListingImage:
    image = ListingImage(listing_id=listing_id, ordinal=values.pop("ordinal"), **values)
    session.add(image)
    return image
