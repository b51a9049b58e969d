"""
Image re-encoding with Pillow.

Every stored image is EXIF-oriented, flattened to RGB, shrunk to a maximum
width and saved as a progressive JPEG. The CPU-bound work runs in a worker
thread through ``transcode_image_async``.
"""

import asyncio
import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from property_sync_service.exceptions import ImageProcessingError
from property_sync_service.utils.hashing import fingerprint_bytes


@dataclass(frozen=True)
class TranscodedImage:
    data: bytes
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def content_hash(self) -> str:
        return fingerprint_bytes(self.data)


def _flatten_to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def transcode_image(data: bytes, max_width: int = 1200, quality: int = 80) -> TranscodedImage:
    """Re-encode ``data`` as JPEG; raises ImageProcessingError for anything undecodable."""
    if not data:
        raise ImageProcessingError("Empty image body")
    try:
        with Image.open(io.BytesIO(data)) as source:
            image = ImageOps.exif_transpose(source)
            image = _flatten_to_rgb(image)
            if image.width > max_width:
                height = max(1, round(image.height * max_width / image.width))
                image = image.resize((max_width, height), Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            image.save(
                buffer, format="JPEG", quality=quality, optimize=True, progressive=True
            )
            return TranscodedImage(
                data=buffer.getvalue(), width=image.width, height=image.height
            )
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Cannot transcode image: {e}") from e


async def transcode_image_async(
    data: bytes, max_width: int = 1200, quality: int = 80
) -> TranscodedImage:
    return await asyncio.to_thread(transcode_image, data, max_width, quality)
