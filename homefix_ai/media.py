"""Media normalizer — validate uploads and transcode them to small JPEGs.

Every upload is checked before any pixel is decoded: the batch size first,
then each file's declared type and byte size. Transcoding auto-orients from
EXIF, drops all metadata, shrinks to fit the dimension ceiling (never
enlarging) and re-encodes at a fixed JPEG quality.
"""

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from homefix_ai.config import settings
from homefix_ai.errors import ImageTooLarge, PayloadTooLarge, TooManyFiles, UnsupportedMediaType

register_heif_opener()

logger = logging.getLogger("homefix_ai")

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
})

OUTPUT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class ImageUpload:
    """Raw bytes as received, with the client's declared content type."""
    data: bytes
    mime_type: str
    filename: str = ""


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    width: int
    height: int
    mime_type: str = OUTPUT_MIME_TYPE


def is_valid_image_type(mime_type: str) -> bool:
    return (mime_type or "").strip().lower() in ALLOWED_MIME_TYPES


def validate_uploads(uploads, max_images=None, max_bytes=None):
    """Check count, then type and size of each upload. Touches no pixels."""
    max_images = max_images if max_images is not None else settings.MAX_IMAGES
    max_bytes = max_bytes if max_bytes is not None else settings.max_image_bytes

    if len(uploads) > max_images:
        raise TooManyFiles(len(uploads), max_images)

    for upload in uploads:
        if not is_valid_image_type(upload.mime_type):
            raise UnsupportedMediaType(upload.mime_type)
        if len(upload.data) > max_bytes:
            raise PayloadTooLarge(len(upload.data), max_bytes)


def normalize_image(data: bytes, max_dimension=None, quality=None) -> NormalizedImage:
    """Decode, orient, strip, downscale and re-encode a single image.

    Raises UnsupportedMediaType when the bytes are not a decodable image and
    ImageTooLarge when the pixel count trips Pillow's bomb check.
    """
    max_dimension = max_dimension or settings.MAX_IMAGE_DIMENSION
    quality = quality or settings.JPEG_QUALITY

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            oriented = ImageOps.exif_transpose(img)
    except Image.DecompressionBombError as e:
        raise ImageTooLarge(str(e)) from e
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
        # Truncated or corrupt streams surface as any of these depending on the plugin.
        raise UnsupportedMediaType("undecodable image") from e

    if oriented.mode != "RGB":
        oriented = oriented.convert("RGB")

    # thumbnail() keeps aspect ratio and never enlarges.
    oriented.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    # A fresh image carries no EXIF/ICC/XMP from the source.
    clean = Image.new("RGB", oriented.size)
    clean.paste(oriented)

    out = io.BytesIO()
    clean.save(out, format="JPEG", quality=quality, optimize=True)
    return NormalizedImage(data=out.getvalue(), width=clean.width, height=clean.height)


def normalize_images(uploads, max_workers=None) -> list[NormalizedImage]:
    """Validate the whole batch, then transcode in parallel.

    Results keep upload order. One bad image fails the entire batch.
    """
    uploads = list(uploads)
    validate_uploads(uploads)
    if not uploads:
        return []

    workers = min(max_workers or settings.IMAGE_WORKERS, len(uploads))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda u: normalize_image(u.data), uploads))

    logger.info(
        "Normalized %d image(s): %s",
        len(results),
        ", ".join(f"{r.width}x{r.height}" for r in results),
    )
    return results
