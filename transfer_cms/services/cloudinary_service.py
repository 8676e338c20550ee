"""
Cloudinary service for remote image hosting.
Alternative to PostImage, selected with REMOTE_IMAGE_HOST=cloudinary.
"""
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi.concurrency import run_in_threadpool
from transfer_cms.config import settings
from transfer_cms.exceptions import ExternalServiceError
import logging
import asyncio
from typing import Optional

logger = logging.getLogger(__name__)


def configure_cloudinary():
    """Configure the Cloudinary SDK with credentials from settings."""
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True  # Always use HTTPS for secure URLs
    )


def validate_cloudinary_config() -> bool:
    """
    Validate that Cloudinary is properly configured.

    Returns:
        bool: True if Cloudinary is configured, False otherwise
    """
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("CLOUDINARY_CLOUD_NAME not configured")
        return False
    if not settings.CLOUDINARY_API_KEY:
        logger.warning("CLOUDINARY_API_KEY not configured")
        return False
    if not settings.CLOUDINARY_API_SECRET:
        logger.warning("CLOUDINARY_API_SECRET not configured")
        return False

    return True


class CloudinaryHost:
    """Remote image host backed by the Cloudinary upload API."""

    name = "cloudinary"

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries
        configure_cloudinary()

    def is_configured(self) -> bool:
        return validate_cloudinary_config()

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str:
        """
        Upload image bytes to Cloudinary with retry logic.

        Args:
            content: Image bytes
            filename: Original file name, used for logging only
            folder: Logical upload folder, reused as the Cloudinary folder
            title: Stored as the image caption in the context metadata
            description: Stored as the alt text in the context metadata
            tags: Comma separated tags

        Returns:
            str: Secure HTTPS URL of the uploaded image

        Raises:
            ExternalServiceError: If upload fails after all retries
        """
        context = {}
        if title:
            context["caption"] = title
        if description:
            context["alt"] = description

        for attempt in range(self.max_retries):
            try:
                # The SDK call is blocking
                result = await run_in_threadpool(
                    cloudinary.uploader.upload,
                    content,
                    folder=folder,
                    context=context or None,
                    tags=tags.split(",") if tags else None,
                    fetch_format="auto",
                    quality="auto",
                )
                logger.info(f"Uploaded {filename} to Cloudinary: {result['public_id']}")
                return result["secure_url"]

            except CloudinaryError as e:
                logger.warning(
                    f"Cloudinary upload error (attempt {attempt + 1}/{self.max_retries}): {str(e)}"
                )

                # Retry with exponential backoff for transient failures
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)  # 1s, 2s, 4s backoff
                    continue

                raise ExternalServiceError(
                    f"Cloudinary upload failed after {self.max_retries} attempts: {str(e)}"
                ) from e

            except KeyError as e:
                raise ExternalServiceError(f"Cloudinary returned an incomplete response: {str(e)}") from e
