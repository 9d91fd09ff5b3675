"""Image preprocessing for room scan uploads.

Photos are normalised before they are sent to the vision provider: EXIF
orientation is applied, the width is capped (never upscaled) and everything is
re-encoded as JPEG so payload size and token cost stay bounded.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from app.services.room_scan.errors import ImageProcessingError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DEFAULT_TARGET_WIDTH = 1024
DEFAULT_JPEG_QUALITY = 72

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "bmp", "tiff", "heic"}


def is_image(content_type: Optional[str], filename: Optional[str]) -> bool:
    """Return True if the upload looks like an image we can process."""
    if content_type and content_type.lower().startswith("image/"):
        return True
    if filename:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        return ext in IMAGE_EXTENSIONS
    return False


def _to_jpeg(img: Image.Image, target_width: int, quality: int) -> bytes:
    if img.width > target_width:
        height = max(1, round(img.height * target_width / img.width))
        img = img.resize((target_width, height), Image.LANCZOS)
    if img.mode != "RGB":
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def compress_image(
    content: bytes,
    *,
    target_width: int = DEFAULT_TARGET_WIDTH,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> bytes:
    """Auto-orient, bound the width of and JPEG-encode a single image."""
    with Image.open(io.BytesIO(content)) as opened:
        img = ImageOps.exif_transpose(opened)
        if img.mode in ("P", "PA", "LA", "RGBA"):
            img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            img = background
        return _to_jpeg(img, target_width, quality)


def compress_for_scan(
    images: list[bytes],
    *,
    target_width: int = DEFAULT_TARGET_WIDTH,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> list[bytes]:
    """Compress every image independently; output order matches input order.

    Raises ``ImageProcessingError`` naming the offending index if an image
    cannot be decoded.
    """
    out: list[bytes] = []
    for index, content in enumerate(images):
        try:
            compressed = compress_image(content, target_width=target_width, quality=quality)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ImageProcessingError(f"Image {index} could not be decoded") from exc
        logger.debug(
            "Compressed scan image index=%d bytes_in=%d bytes_out=%d",
            index,
            len(content),
            len(compressed),
        )
        out.append(compressed)
    return out
