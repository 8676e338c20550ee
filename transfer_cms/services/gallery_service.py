"""
Gallery store: CRUD for galleries and their ordered images.

Every function works inside the caller's session and only flushes; the
request that owns the session commits or rolls back as a whole, so a
failed operation leaves no partial state behind.
"""
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple
import logging

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from transfer_cms.config import settings
from transfer_cms.exceptions import NotFoundError, SlugConflictError, ValidationError
from transfer_cms.models import SLUG_MAX_LENGTH, Gallery, GalleryImage
from transfer_cms.schemas import (
    GalleryCreate,
    GalleryImageCreate,
    GalleryImageUpdate,
    GalleryUpdate,
)
from transfer_cms.services.slug_service import resolve_unique_slug
from transfer_cms.utils.slug import slugify

logger = logging.getLogger(__name__)

# Base slug for titles that contain nothing sluggable (e.g. only emoji)
FALLBACK_SLUG = "gallery"


class GallerySummary(NamedTuple):
    gallery: Gallery
    image_count: int
    cover_image: Optional[GalleryImage]


def gallery_paths(slug: str) -> List[str]:
    """Public paths whose cached pages are stale after a gallery write."""
    return ["/gallery", f"/gallery/{slug}", "/admin"]


def _base_slug_length() -> int:
    """Longest base slug that still fits the column with a ``-N`` suffix."""
    return SLUG_MAX_LENGTH - len(f"-{settings.SLUG_MAX_SUFFIX}")


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# Galleries

async def list_galleries(db: AsyncSession, published_only: bool = False) -> List[GallerySummary]:
    """
    List galleries newest first with image counts and cover images.

    The cover is the image with the lowest ``order`` in each gallery.
    """
    query = select(Gallery).order_by(Gallery.created_at.desc(), Gallery.id.desc())
    if published_only:
        query = query.where(Gallery.is_published.is_(True))
    galleries = (await db.execute(query)).scalars().all()
    if not galleries:
        return []

    gallery_ids = [gallery.id for gallery in galleries]
    stats = (
        select(
            GalleryImage.gallery_id.label("gallery_id"),
            func.count(GalleryImage.id).label("image_count"),
            func.min(GalleryImage.order).label("first_order"),
        )
        .where(GalleryImage.gallery_id.in_(gallery_ids))
        .group_by(GalleryImage.gallery_id)
        .subquery()
    )

    counts = {
        row.gallery_id: row.image_count
        for row in (await db.execute(select(stats.c.gallery_id, stats.c.image_count))).all()
    }

    cover_query = (
        select(GalleryImage)
        .join(
            stats,
            and_(
                GalleryImage.gallery_id == stats.c.gallery_id,
                GalleryImage.order == stats.c.first_order,
            ),
        )
        .order_by(GalleryImage.id.asc())
    )
    covers = {}
    for image in (await db.execute(cover_query)).scalars().all():
        covers.setdefault(image.gallery_id, image)

    return [
        GallerySummary(gallery, counts.get(gallery.id, 0), covers.get(gallery.id))
        for gallery in galleries
    ]


async def get_gallery(db: AsyncSession, gallery_id: int, lock: bool = False) -> Gallery:
    """
    Fetch a gallery by id.

    With ``lock`` the row is selected FOR UPDATE (ignored on SQLite), which
    serialises concurrent image writes within one gallery.
    """
    query = select(Gallery).where(Gallery.id == gallery_id)
    if lock:
        query = query.with_for_update()
    gallery = (await db.execute(query)).scalar_one_or_none()
    if gallery is None:
        raise NotFoundError(f"Gallery {gallery_id} not found")
    return gallery


async def get_gallery_by_slug(db: AsyncSession, slug: str, published_only: bool = False) -> Gallery:
    """Fetch a gallery by slug with its images loaded in display order."""
    query = (
        select(Gallery)
        .options(selectinload(Gallery.images))
        .where(Gallery.slug == slug)
    )
    if published_only:
        query = query.where(Gallery.is_published.is_(True))
    gallery = (await db.execute(query)).scalar_one_or_none()
    if gallery is None:
        raise NotFoundError(f"Gallery '{slug}' not found")
    return gallery


async def create_gallery(db: AsyncSession, data: GalleryCreate) -> Gallery:
    """
    Create a gallery with a unique slug.

    The slug comes from ``data.slug`` when given, otherwise from the title.
    If the insert hits the unique constraint (another request took the slug
    between the check and the insert) resolution is retried.
    """
    title = (data.title or "").strip()
    if not title:
        raise ValidationError("Title is required")

    if data.slug is not None and data.slug.strip():
        base_slug = slugify(data.slug, max_length=_base_slug_length())
        if not base_slug:
            raise ValidationError("Slug must contain at least one latin letter or digit")
    else:
        base_slug = slugify(title, max_length=_base_slug_length()) or FALLBACK_SLUG

    for attempt in range(1, settings.SLUG_INSERT_RETRIES + 1):
        slug = await resolve_unique_slug(db, base_slug)
        gallery = Gallery(
            title=title,
            description=_clean_optional(data.description),
            slug=slug,
            is_published=data.is_published,
        )
        db.add(gallery)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.warning(
                f"Slug '{slug}' was taken concurrently (attempt {attempt}/{settings.SLUG_INSERT_RETRIES})"
            )
            continue

        logger.info(f"Created gallery {gallery.id} with slug '{slug}'")
        return gallery

    raise SlugConflictError(f"Could not allocate a unique slug for '{base_slug}'")


async def update_gallery(db: AsyncSession, gallery_id: int, data: GalleryUpdate) -> Gallery:
    """
    Apply a partial update to a gallery.

    The slug is recomputed only when the title actually changes.
    """
    changes = data.model_dump(exclude_unset=True)
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty")
        changes["title"] = title
    if changes.get("is_published", True) is None:
        raise ValidationError("isPublished cannot be null")

    for attempt in range(1, settings.SLUG_INSERT_RETRIES + 1):
        gallery = await get_gallery(db, gallery_id)

        if "title" in changes and changes["title"] != gallery.title:
            base_slug = slugify(changes["title"], max_length=_base_slug_length()) or FALLBACK_SLUG
            gallery.slug = await resolve_unique_slug(db, base_slug, exclude_id=gallery.id)
            gallery.title = changes["title"]
        if "description" in changes:
            gallery.description = _clean_optional(changes["description"])
        if "is_published" in changes:
            gallery.is_published = changes["is_published"]

        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.warning(
                f"Slug conflict while renaming gallery {gallery_id} "
                f"(attempt {attempt}/{settings.SLUG_INSERT_RETRIES})"
            )
            continue

        logger.info(f"Updated gallery {gallery.id} (slug '{gallery.slug}')")
        return gallery

    raise SlugConflictError(f"Could not allocate a unique slug for gallery {gallery_id}")


async def delete_gallery(db: AsyncSession, gallery_id: int) -> str:
    """
    Delete a gallery together with all of its images.

    Returns:
        str: slug of the deleted gallery
    """
    gallery = await get_gallery(db, gallery_id, lock=True)
    slug = gallery.slug

    result = await db.execute(
        delete(GalleryImage).where(GalleryImage.gallery_id == gallery_id)
    )
    await db.delete(gallery)
    await db.flush()

    logger.info(f"Deleted gallery {gallery_id} ('{slug}') and {result.rowcount} image(s)")
    return slug


# Images

async def list_gallery_images(db: AsyncSession, gallery_id: int) -> Sequence[GalleryImage]:
    await get_gallery(db, gallery_id)
    result = await db.execute(
        select(GalleryImage)
        .where(GalleryImage.gallery_id == gallery_id)
        .order_by(GalleryImage.order.asc(), GalleryImage.id.asc())
    )
    return result.scalars().all()


async def get_image(db: AsyncSession, image_id: int) -> GalleryImage:
    image = (
        await db.execute(select(GalleryImage).where(GalleryImage.id == image_id))
    ).scalar_one_or_none()
    if image is None:
        raise NotFoundError(f"Image {image_id} not found")
    return image


async def _next_order(db: AsyncSession, gallery_id: int) -> int:
    result = await db.execute(
        select(func.max(GalleryImage.order)).where(GalleryImage.gallery_id == gallery_id)
    )
    current_max = result.scalar()
    return 0 if current_max is None else current_max + 1


async def add_images(
    db: AsyncSession, gallery_id: int, items: Iterable[GalleryImageCreate]
) -> Tuple[Gallery, List[GalleryImage]]:
    """
    Append images to the end of a gallery.

    Orders continue from the current maximum, so the first image of an empty
    gallery gets 0.
    """
    items = list(items)
    for item in items:
        if not (item.image_url or "").strip():
            raise ValidationError("imageUrl is required")

    gallery = await get_gallery(db, gallery_id, lock=True)
    order = await _next_order(db, gallery_id)

    images = []
    for offset, item in enumerate(items):
        image = GalleryImage(
            gallery_id=gallery_id,
            image_url=item.image_url.strip(),
            title=_clean_optional(item.title),
            description=_clean_optional(item.description),
            order=order + offset,
        )
        db.add(image)
        images.append(image)

    await db.flush()
    logger.info(f"Added {len(images)} image(s) to gallery {gallery_id} starting at order {order}")
    return gallery, images


async def add_image(
    db: AsyncSession, gallery_id: int, data: GalleryImageCreate
) -> Tuple[Gallery, GalleryImage]:
    gallery, images = await add_images(db, gallery_id, [data])
    return gallery, images[0]


async def update_image(
    db: AsyncSession, image_id: int, data: GalleryImageUpdate
) -> Tuple[Gallery, GalleryImage]:
    """Apply a partial update to an image; unspecified fields keep their value."""
    image = await get_image(db, image_id)
    changes = data.model_dump(exclude_unset=True)

    if "image_url" in changes:
        image_url = (changes["image_url"] or "").strip()
        if not image_url:
            raise ValidationError("imageUrl cannot be empty")
        image.image_url = image_url
    if "title" in changes:
        image.title = _clean_optional(changes["title"])
    if "description" in changes:
        image.description = _clean_optional(changes["description"])
    if changes.get("order") is not None:
        image.order = changes["order"]

    await db.flush()
    gallery = await get_gallery(db, image.gallery_id)
    logger.info(f"Updated image {image_id} in gallery {gallery.id}")
    return gallery, image


async def compact_image_order(db: AsyncSession, gallery_id: int) -> List[GalleryImage]:
    """
    Renumber a gallery's images to 0..n-1 keeping their current sequence.

    Ties on ``order`` are broken by id, so duplicates are healed too.
    Re-running on a contiguous sequence changes nothing.
    """
    result = await db.execute(
        select(GalleryImage)
        .where(GalleryImage.gallery_id == gallery_id)
        .order_by(GalleryImage.order.asc(), GalleryImage.id.asc())
    )
    images = list(result.scalars().all())

    changed = 0
    for position, image in enumerate(images):
        if image.order != position:
            image.order = position
            changed += 1

    await db.flush()
    logger.debug(f"Compacted gallery {gallery_id}: {len(images)} image(s), {changed} renumbered")
    return images


async def delete_image(db: AsyncSession, image_id: int) -> Gallery:
    """
    Delete an image and close the gap it leaves in the gallery order.

    Returns:
        Gallery: the gallery the image belonged to
    """
    image = await get_image(db, image_id)
    gallery = await get_gallery(db, image.gallery_id, lock=True)

    await db.delete(image)
    await db.flush()
    await compact_image_order(db, gallery.id)

    logger.info(f"Deleted image {image_id} from gallery {gallery.id}")
    return gallery


async def reorder_images(
    db: AsyncSession, gallery_id: int, image_ids: List[int]
) -> Tuple[Gallery, List[GalleryImage]]:
    """
    Put the given images first, in the given sequence.

    Images not listed keep their relative order after them; the whole
    gallery is renumbered 0..n-1.
    """
    if not image_ids:
        raise ValidationError("At least one image ID is required")
    if len(image_ids) != len(set(image_ids)):
        raise ValidationError("Duplicate image IDs are not allowed")

    gallery = await get_gallery(db, gallery_id, lock=True)
    result = await db.execute(
        select(GalleryImage)
        .where(GalleryImage.gallery_id == gallery_id)
        .order_by(GalleryImage.order.asc(), GalleryImage.id.asc())
    )
    current = list(result.scalars().all())
    by_id = {image.id: image for image in current}

    missing = [image_id for image_id in image_ids if image_id not in by_id]
    if missing:
        raise NotFoundError(f"Images not found in gallery {gallery_id}: {missing}")

    requested = set(image_ids)
    ordered = [by_id[image_id] for image_id in image_ids]
    ordered.extend(image for image in current if image.id not in requested)

    for position, image in enumerate(ordered):
        image.order = position

    await db.flush()
    logger.info(f"Reordered {len(image_ids)} image(s) in gallery {gallery_id}")
    return gallery, ordered
