"""
Gallery routes for the public site.
Only published galleries are visible here.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from transfer_cms.database import get_db
from transfer_cms.schemas import (
    GalleryDetailResponse,
    GalleryImageResponse,
    GalleryListItem,
    GalleryResponse,
)
from transfer_cms.services import gallery_service
from transfer_cms.services.gallery_service import GallerySummary

logger = logging.getLogger(__name__)

router = APIRouter()


def to_list_item(summary: GallerySummary) -> GalleryListItem:
    """Build the listing schema from a gallery summary."""
    cover = summary.cover_image
    return GalleryListItem(
        **GalleryResponse.model_validate(summary.gallery).model_dump(),
        image_count=summary.image_count,
        cover_image=GalleryImageResponse.model_validate(cover) if cover is not None else None,
    )


@router.get("/galleries", response_model=List[GalleryListItem])
async def get_galleries(db: AsyncSession = Depends(get_db)):
    """
    List published galleries, newest first.

    Each entry carries the number of images and the first image as a
    thumbnail for the gallery index page.
    """
    summaries = await gallery_service.list_galleries(db, published_only=True)
    logger.info(f"Retrieved {len(summaries)} published galleries")
    return [to_list_item(summary) for summary in summaries]


@router.get("/galleries/{slug}", response_model=GalleryDetailResponse)
async def get_gallery(slug: str, db: AsyncSession = Depends(get_db)):
    """
    Get a published gallery by slug with its images in display order.

    Raises:
        NotFoundError: 404 if the gallery does not exist or is not published
    """
    gallery = await gallery_service.get_gallery_by_slug(db, slug, published_only=True)
    return GalleryDetailResponse.model_validate(gallery)
