"""
Pydantic schemas for request and response data validation.
Fields are exposed in camelCase on the wire; requests accept either
camelCase or snake_case names.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List

from transfer_cms.models import SLUG_MAX_LENGTH, TITLE_MAX_LENGTH


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable conversion from SQLAlchemy models
        alias_generator=to_camel,
        populate_by_name=True,
    )


class GalleryImageResponse(CamelModel):
    """Gallery image as returned by admin and public endpoints."""
    id: int
    gallery_id: int
    image_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    order: int
    created_at: datetime
    updated_at: datetime


class GalleryResponse(CamelModel):
    """Gallery record without its images."""
    id: int
    title: str
    description: Optional[str] = None
    slug: str
    is_published: bool
    created_at: datetime
    updated_at: datetime


class GalleryListItem(GalleryResponse):
    """
    Gallery entry for listing pages.
    Carries the image count and the first image as a thumbnail.
    """
    image_count: int = 0
    cover_image: Optional[GalleryImageResponse] = None


class GalleryDetailResponse(GalleryResponse):
    """Gallery with its full image list ordered by ``order``."""
    images: List[GalleryImageResponse] = []


class GalleryCreate(CamelModel):
    """Request schema for POST /api/cms/galleries."""
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    slug: Optional[str] = Field(None, max_length=SLUG_MAX_LENGTH)
    is_published: bool = True


class GalleryUpdate(CamelModel):
    """
    Request schema for PUT /api/cms/galleries/{id}.
    Only fields present in the request body are applied.
    """
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    is_published: Optional[bool] = None


class GalleryImageCreate(CamelModel):
    """Request schema for attaching an already uploaded image URL to a gallery."""
    image_url: str
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None


class GalleryImageUpdate(CamelModel):
    """
    Request schema for PUT /api/cms/gallery-images/{id}.
    Only fields present in the request body are applied.
    """
    image_url: Optional[str] = None
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    order: Optional[int] = None

    @field_validator("order")
    @classmethod
    def validate_order(cls, v):
        if v is not None and v < 0:
            raise ValueError("order must be zero or greater")
        return v


class ImageReorderRequest(CamelModel):
    """
    Request schema for PUT /api/cms/galleries/{id}/images/reorder.
    Contains image IDs in the desired display order.
    """
    image_ids: List[int]

    @field_validator("image_ids")
    @classmethod
    def validate_unique_ids(cls, v):
        if len(v) != len(set(v)):
            raise ValueError("Duplicate image IDs are not allowed")
        return v


class UploadResponse(BaseModel):
    """Response of the upload gateway."""
    url: str


class UploadFailure(BaseModel):
    filename: str
    error: str


class BulkUploadResponse(BaseModel):
    """Result of a multi-file upload; partial success is expected."""
    message: str
    images: List[GalleryImageResponse]
    errors: List[UploadFailure] = []


class DeleteResponse(BaseModel):
    message: str
    id: int
