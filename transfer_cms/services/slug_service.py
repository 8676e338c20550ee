"""
Slug uniqueness resolution for galleries.
"""
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_cms.config import settings
from transfer_cms.exceptions import SlugConflictError
from transfer_cms.models import Gallery

logger = logging.getLogger(__name__)


async def slug_exists(db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    """Check whether a gallery other than ``exclude_id`` already uses ``slug``."""
    query = select(Gallery.id).where(Gallery.slug == slug)
    if exclude_id is not None:
        query = query.where(Gallery.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def resolve_unique_slug(
    db: AsyncSession,
    base_slug: str,
    exclude_id: Optional[int] = None,
    max_suffix: Optional[int] = None,
) -> str:
    """
    Find a free slug by appending -1, -2, ... to ``base_slug``.

    One existence query is issued per candidate. The scan gives up after
    ``max_suffix`` suffixes (``SLUG_MAX_SUFFIX`` by default).

    Raises:
        SlugConflictError: if every candidate up to the bound is taken
    """
    if max_suffix is None:
        max_suffix = settings.SLUG_MAX_SUFFIX

    candidate = base_slug
    counter = 1
    while await slug_exists(db, candidate, exclude_id):
        if counter > max_suffix:
            logger.error(f"No free slug for '{base_slug}' after {max_suffix} suffixes")
            raise SlugConflictError(
                f"Could not allocate a unique slug for '{base_slug}'"
            )
        candidate = f"{base_slug}-{counter}"
        counter += 1

    if candidate != base_slug:
        logger.info(f"Slug '{base_slug}' taken, using '{candidate}'")
    return candidate
