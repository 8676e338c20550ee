"""
Upload gateway.
Sends files to the configured remote image host when asked to and falls
back to local storage under UPLOAD_ROOT when the host is unavailable.
"""
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol
import logging
import mimetypes
import re
import uuid

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from transfer_cms.config import settings
from transfer_cms.exceptions import ExternalServiceError, StorageError, ValidationError
from transfer_cms.utils.image_converter import convert_to_webp

logger = logging.getLogger(__name__)

_EXTENSION = re.compile(r"^[a-z0-9]{1,10}$")


class UploadFolder(str, Enum):
    """Folders uploads may be stored in, relative to UPLOAD_ROOT."""

    REVIEWS = "uploads/reviews"
    BLOG = "uploads/blog"
    GALLERY = "uploads/gallery"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UploadFolder":
        """Map a request value to a folder; blank means the reviews folder."""
        if value is None or not value.strip():
            return cls.REVIEWS
        try:
            return cls(value.strip().strip("/"))
        except ValueError:
            raise ValidationError(f"Upload folder '{value}' is not allowed") from None


class RemoteImageHost(Protocol):
    name: str

    def is_configured(self) -> bool: ...

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str: ...


def file_extension(filename: str, content_type: Optional[str] = None) -> str:
    """Extension of the original file, guessed from the content type if missing."""
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    if _EXTENSION.match(suffix):
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed.lstrip(".")
    return "bin"


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


class UploadGateway:
    """
    Stores uploaded files remotely or on local disk and returns their URL.

    Local URLs are site-relative: ``/<folder>/<uuid>.<ext>``.
    """

    def __init__(
        self,
        root: Path,
        remote: Optional[RemoteImageHost] = None,
        convert_to_webp: bool = False,
    ):
        self.root = Path(root)
        self.remote = remote
        self.convert_to_webp = convert_to_webp

    async def upload(
        self,
        file: Optional[UploadFile],
        folder: UploadFolder = UploadFolder.REVIEWS,
        use_remote: bool = False,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str:
        """
        Store an uploaded file and return its public URL.

        Raises:
            ValidationError: no file attached
            StorageError: the local fallback could not write the file
        """
        if file is None or not file.filename:
            raise ValidationError("No file provided")

        content = await file.read()
        return await self.store(
            content,
            file.filename,
            content_type=file.content_type,
            folder=folder,
            use_remote=use_remote,
            title=title,
            description=description,
            tags=tags,
        )

    async def store(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        folder: UploadFolder = UploadFolder.REVIEWS,
        use_remote: bool = False,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> str:
        extension = file_extension(filename, content_type)

        if self.convert_to_webp:
            converted, is_webp = await run_in_threadpool(convert_to_webp, content)
            if is_webp:
                content, extension, content_type = converted, "webp", "image/webp"

        if use_remote:
            url = await self._upload_remote(
                content, filename, content_type, folder, title, description, tags
            )
            if url:
                return url

        return await self._save_local(content, extension, folder)

    async def _upload_remote(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str],
        folder: UploadFolder,
        title: Optional[str],
        description: Optional[str],
        tags: Optional[str],
    ) -> Optional[str]:
        if self.remote is None or not self.remote.is_configured():
            logger.info(f"Remote image host not configured, storing {filename} locally")
            return None

        try:
            return await self.remote.upload(
                content,
                filename,
                content_type=content_type,
                folder=folder.value,
                title=title,
                description=description,
                tags=tags,
            )
        except ExternalServiceError as e:
            logger.warning(
                f"Upload of {filename} to {self.remote.name} failed, "
                f"falling back to local storage: {e.message}"
            )
            return None

    async def _save_local(self, content: bytes, extension: str, folder: UploadFolder) -> str:
        filename = f"{uuid.uuid4()}.{extension}"
        path = self.root / folder.value / filename

        try:
            await run_in_threadpool(_write_file, path, content)
        except OSError as e:
            logger.error(f"Failed to write upload to {path}: {str(e)}")
            raise StorageError("Failed to store the uploaded file") from e

        logger.info(f"Stored upload locally: {path} ({len(content):,} bytes)")
        return f"/{folder.value}/{filename}"


def create_remote_host() -> Optional[RemoteImageHost]:
    """Build the remote host selected by REMOTE_IMAGE_HOST."""
    if settings.REMOTE_IMAGE_HOST == "postimage":
        from transfer_cms.services.postimage_service import create_postimage_client
        return create_postimage_client()
    if settings.REMOTE_IMAGE_HOST == "cloudinary":
        from transfer_cms.services.cloudinary_service import CloudinaryHost
        return CloudinaryHost()
    return None


def get_upload_gateway() -> UploadGateway:
    """FastAPI dependency providing the upload gateway."""
    return UploadGateway(
        root=Path(settings.UPLOAD_ROOT),
        remote=create_remote_host(),
        convert_to_webp=settings.UPLOAD_CONVERT_TO_WEBP,
    )
