"""
Image conversion utility for converting uploads to WebP format.
Used by the upload gateway when UPLOAD_CONVERT_TO_WEBP is enabled.
"""
import io
import logging
from typing import Optional, Tuple
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# WebP conversion settings
DEFAULT_WEBP_QUALITY = 85  # Balance between quality and file size (0-100)
DEFAULT_WEBP_METHOD = 6    # Compression method (0-6, higher = better compression but slower)
MAX_DIMENSION = 3840       # Maximum width or height before downscaling (None to disable)


def convert_to_webp(
    image_bytes: bytes,
    quality: int = DEFAULT_WEBP_QUALITY,
    method: int = DEFAULT_WEBP_METHOD,
    max_dimension: Optional[int] = MAX_DIMENSION,
) -> Tuple[bytes, bool]:
    """
    Convert image bytes to WebP format.

    Args:
        image_bytes: Original file bytes
        quality: WebP quality (0-100, default: 85)
        method: WebP compression method (0-6, default: 6)
        max_dimension: Maximum width or height before downscaling (None to disable)

    Returns:
        Tuple[bytes, bool]:
            - WebP bytes, or the original bytes when they are not a
              readable image or are already WebP
            - whether the returned bytes are WebP
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))

        if image.format == "WEBP":
            return image_bytes, True

        # WebP keeps transparency; palette images need RGBA first
        if image.mode == "P":
            image = image.convert("RGBA")
        elif image.mode not in ("RGB", "RGBA", "LA"):
            image = image.convert("RGB")

        if max_dimension:
            width, height = image.size
            if width > max_dimension or height > max_dimension:
                image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
                logger.info(f"Downscaled image from {width}x{height} to {image.size[0]}x{image.size[1]}")

        webp_buffer = io.BytesIO()
        image.save(webp_buffer, format="WEBP", quality=quality, method=method)
        webp_bytes = webp_buffer.getvalue()

        logger.info(
            f"Converted image to WebP: {len(image_bytes):,} bytes -> {len(webp_bytes):,} bytes"
        )
        return webp_bytes, True

    except UnidentifiedImageError:
        logger.debug("Upload is not a recognised image, keeping original bytes")
        return image_bytes, False

    except Exception as e:
        logger.error(f"Error converting image to WebP: {str(e)}", exc_info=True)
        return image_bytes, False
