"""
CMS API routes with password authentication.
All endpoints require the admin password in the X-CMS-Password header.
"""
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import asyncio
import logging

from transfer_cms.config import settings
from transfer_cms.database import get_db
from transfer_cms.exceptions import CMSError, ValidationError
from transfer_cms.models import TITLE_MAX_LENGTH
from transfer_cms.routes.gallery import to_list_item
from transfer_cms.schemas import (
    BulkUploadResponse,
    DeleteResponse,
    GalleryCreate,
    GalleryDetailResponse,
    GalleryImageCreate,
    GalleryImageResponse,
    GalleryImageUpdate,
    GalleryListItem,
    GalleryResponse,
    GalleryUpdate,
    ImageReorderRequest,
    UploadFailure,
    UploadResponse,
)
from transfer_cms.services import gallery_service
from transfer_cms.services.gallery_service import gallery_paths
from transfer_cms.services.revalidation import PageCacheInvalidator, get_invalidator
from transfer_cms.services.upload_gateway import UploadFolder, UploadGateway, get_upload_gateway
from transfer_cms.utils.auth import verify_cms_password
from transfer_cms.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cms", tags=["CMS"], dependencies=[Depends(verify_cms_password)])


# Galleries

@router.get("/galleries", response_model=List[GalleryListItem])
async def get_cms_galleries(db: AsyncSession = Depends(get_db)):
    """List all galleries, including unpublished ones, newest first."""
    summaries = await gallery_service.list_galleries(db)
    logger.info(f"Retrieved {len(summaries)} galleries for CMS")
    return [to_list_item(summary) for summary in summaries]


@router.get("/galleries/{slug}", response_model=GalleryDetailResponse)
async def get_cms_gallery(slug: str, db: AsyncSession = Depends(get_db)):
    """Get any gallery by slug with its images in display order."""
    gallery = await gallery_service.get_gallery_by_slug(db, slug)
    return GalleryDetailResponse.model_validate(gallery)


@router.post("/galleries", response_model=GalleryResponse, status_code=status.HTTP_201_CREATED)
async def create_cms_gallery(
    gallery_create: GalleryCreate,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """
    Create a gallery.

    The slug is derived from the title unless one is given, and is made
    unique by appending a numeric suffix.

    Raises:
        ValidationError: 400 if the title is empty
        SlugConflictError: 409 if no unique slug could be allocated
    """
    gallery = await gallery_service.create_gallery(db, gallery_create)
    await db.commit()
    await db.refresh(gallery)

    await invalidator.invalidate(gallery_paths(gallery.slug))
    return GalleryResponse.model_validate(gallery)


@router.put("/galleries/{gallery_id}", response_model=GalleryResponse)
async def update_cms_gallery(
    gallery_id: int,
    gallery_update: GalleryUpdate,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """
    Update gallery fields; only fields present in the body change.

    Renaming a gallery also changes its slug, so both the old and the new
    detail pages are invalidated.
    """
    previous_slug = (await gallery_service.get_gallery(db, gallery_id)).slug
    gallery = await gallery_service.update_gallery(db, gallery_id, gallery_update)
    await db.commit()
    await db.refresh(gallery)

    await invalidator.invalidate(gallery_paths(previous_slug) + gallery_paths(gallery.slug))
    return GalleryResponse.model_validate(gallery)


@router.delete("/galleries/{gallery_id}", response_model=DeleteResponse)
async def delete_cms_gallery(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """Delete a gallery and all of its images."""
    slug = await gallery_service.delete_gallery(db, gallery_id)
    await db.commit()

    await invalidator.invalidate(gallery_paths(slug))
    return DeleteResponse(message="Gallery deleted successfully", id=gallery_id)


# Gallery images

@router.get("/galleries/{gallery_id}/images", response_model=List[GalleryImageResponse])
async def get_cms_gallery_images(gallery_id: int, db: AsyncSession = Depends(get_db)):
    """Get the images of a gallery ordered by display order."""
    images = await gallery_service.list_gallery_images(db, gallery_id)
    return [GalleryImageResponse.model_validate(image) for image in images]


@router.post(
    "/galleries/{gallery_id}/images",
    response_model=GalleryImageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_cms_gallery_image(
    gallery_id: int,
    image_create: GalleryImageCreate,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """Attach an uploaded image URL to the end of a gallery."""
    gallery, image = await gallery_service.add_image(db, gallery_id, image_create)
    await db.commit()
    await db.refresh(image)

    await invalidator.invalidate(gallery_paths(gallery.slug))
    return GalleryImageResponse.model_validate(image)


@router.post(
    "/galleries/{gallery_id}/images/upload",
    response_model=BulkUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_cms_gallery_images(
    request: Request,
    gallery_id: int,
    files: Optional[List[UploadFile]] = File(None),
    use_post_image: bool = Form(True, alias="usePostImage"),
    title: Optional[str] = Form(None, max_length=TITLE_MAX_LENGTH),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    gateway: UploadGateway = Depends(get_upload_gateway),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """
    Upload several files and attach them to a gallery.

    Files are uploaded concurrently and independently: the ones that
    succeed are attached in the order they were sent, the failures are
    reported alongside.

    Raises:
        ValidationError: 400 if no files were sent
        NotFoundError: 404 if the gallery does not exist
        CMSError: 500 if every upload failed
    """
    if not files:
        raise ValidationError("At least one file is required")

    # Fail fast before uploading anything, then release the connection
    await gallery_service.get_gallery(db, gallery_id)
    await db.rollback()

    upload_results = await asyncio.gather(
        *[
            gateway.upload(
                file,
                folder=UploadFolder.GALLERY,
                use_remote=use_post_image,
                title=title or file.filename,
                description=description,
                tags=tags,
            )
            for file in files
        ],
        return_exceptions=True,
    )

    urls = []
    errors = []
    for file, result in zip(files, upload_results):
        filename = file.filename or "unknown"
        if isinstance(result, CMSError):
            logger.error(f"Error uploading {filename}: {result.message}")
            errors.append(UploadFailure(filename=filename, error=result.message))
        elif isinstance(result, Exception):
            logger.error(f"Unexpected error uploading {filename}: {str(result)}", exc_info=result)
            errors.append(UploadFailure(filename=filename, error="Upload failed"))
        elif isinstance(result, BaseException):
            raise result
        else:
            urls.append(result)

    if not urls:
        details = "; ".join(f"{error.filename}: {error.error}" for error in errors)
        raise CMSError(f"All uploads failed: {details}")

    gallery, images = await gallery_service.add_images(
        db,
        gallery_id,
        [GalleryImageCreate(image_url=url, title=title, description=description) for url in urls],
    )
    await db.commit()
    for image in images:
        await db.refresh(image)

    await invalidator.invalidate(gallery_paths(gallery.slug))

    message = f"{len(images)} succeeded, {len(errors)} failed"
    if errors:
        logger.warning(f"Partial upload success for gallery {gallery_id}: {message}")
    return BulkUploadResponse(
        message=message,
        images=[GalleryImageResponse.model_validate(image) for image in images],
        errors=errors,
    )


@router.put("/galleries/{gallery_id}/images/reorder", response_model=List[GalleryImageResponse])
async def reorder_cms_gallery_images(
    gallery_id: int,
    reorder_request: ImageReorderRequest,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """
    Reorder gallery images.

    The listed images come first in the given sequence; images left out
    keep their relative order after them. The gallery is renumbered from 0.
    """
    gallery, images = await gallery_service.reorder_images(db, gallery_id, reorder_request.image_ids)
    await db.commit()
    for image in images:
        await db.refresh(image)

    await invalidator.invalidate(gallery_paths(gallery.slug))
    return [GalleryImageResponse.model_validate(image) for image in images]


@router.put("/gallery-images/{image_id}", response_model=GalleryImageResponse)
async def update_cms_gallery_image(
    image_id: int,
    image_update: GalleryImageUpdate,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """Update image fields; only fields present in the body change."""
    gallery, image = await gallery_service.update_image(db, image_id, image_update)
    await db.commit()
    await db.refresh(image)

    await invalidator.invalidate(gallery_paths(gallery.slug))
    return GalleryImageResponse.model_validate(image)


@router.delete("/gallery-images/{image_id}", response_model=DeleteResponse)
async def delete_cms_gallery_image(
    image_id: int,
    db: AsyncSession = Depends(get_db),
    invalidator: PageCacheInvalidator = Depends(get_invalidator),
):
    """
    Delete a gallery image.
    The remaining images of the gallery are renumbered without gaps.
    """
    gallery = await gallery_service.delete_image(db, image_id)
    slug = gallery.slug
    await db.commit()

    await invalidator.invalidate(gallery_paths(slug))
    return DeleteResponse(message="Image deleted successfully", id=image_id)


# Uploads

@router.post("/uploads", response_model=UploadResponse)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
    folder: Optional[str] = Form(None),
    use_post_image: bool = Form(False, alias="usePostImage"),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    gateway: UploadGateway = Depends(get_upload_gateway),
):
    """
    Upload a single file and return its public URL.

    With ``usePostImage`` the file goes to the remote image host first; if
    that fails it is stored locally under the requested folder instead.

    Raises:
        ValidationError: 400 if no file is attached or the folder is not allowed
        StorageError: 500 if the local fallback could not write the file
    """
    upload_folder = UploadFolder.parse(folder)
    url = await gateway.upload(
        file,
        folder=upload_folder,
        use_remote=use_post_image,
        title=title,
        description=description,
        tags=tags,
    )
    return UploadResponse(url=url)
