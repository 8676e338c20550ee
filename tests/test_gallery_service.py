import pytest
from sqlalchemy import func, select

from transfer_cms.config import settings
from transfer_cms.exceptions import NotFoundError, SlugConflictError, ValidationError
from transfer_cms.models import SLUG_MAX_LENGTH, Gallery, GalleryImage
from transfer_cms.schemas import (
    GalleryCreate,
    GalleryImageCreate,
    GalleryImageUpdate,
    GalleryUpdate,
)
from transfer_cms.services import gallery_service, slug_service
from transfer_cms.services.gallery_service import compact_image_order, gallery_paths


async def _create(db, title, **kwargs):
    gallery = await gallery_service.create_gallery(db, GalleryCreate(title=title, **kwargs))
    await db.commit()
    return gallery


async def _add_images(db, gallery_id, count):
    _, images = await gallery_service.add_images(
        db,
        gallery_id,
        [GalleryImageCreate(image_url=f"/uploads/gallery/{n}.jpg") for n in range(count)],
    )
    await db.commit()
    return images


async def _orders(db, gallery_id):
    result = await db.execute(
        select(GalleryImage.order)
        .where(GalleryImage.gallery_id == gallery_id)
        .order_by(GalleryImage.order)
    )
    return list(result.scalars().all())


class TestSlugResolution:
    async def test_free_slug_is_returned_unchanged(self, db):
        assert await slug_service.resolve_unique_slug(db, "night-transfers") == "night-transfers"

    async def test_suffix_follows_existing_collisions(self, db):
        existing = ["vip", "vip-1", "vip-2", "vip-3"]
        for slug in existing:
            db.add(Gallery(title=slug, slug=slug))
        await db.commit()

        assert await slug_service.resolve_unique_slug(db, "vip") == "vip-4"

    async def test_excluded_gallery_does_not_collide_with_itself(self, db):
        gallery = Gallery(title="VIP", slug="vip")
        db.add(gallery)
        await db.commit()

        assert await slug_service.resolve_unique_slug(db, "vip", exclude_id=gallery.id) == "vip"

    async def test_gives_up_after_max_suffix(self, db):
        for slug in ["busy", "busy-1", "busy-2"]:
            db.add(Gallery(title=slug, slug=slug))
        await db.commit()

        with pytest.raises(SlugConflictError):
            await slug_service.resolve_unique_slug(db, "busy", max_suffix=2)


class TestGalleries:
    async def test_create_derives_slug_from_russian_title(self, db):
        first = await _create(db, "Ночные Трансферы")
        second = await _create(db, "Ночные Трансферы")

        assert first.slug == "nochnye-transfery"
        assert second.slug == "nochnye-transfery-1"
        assert first.is_published is True

    async def test_create_requires_title(self, db):
        with pytest.raises(ValidationError):
            await gallery_service.create_gallery(db, GalleryCreate(title="   "))

    async def test_create_uses_given_slug_and_keeps_it_unique(self, db):
        await _create(db, "Airport", slug="Airport Runs")
        gallery = await _create(db, "Other", slug="airport-runs")

        assert gallery.slug == "airport-runs-1"

    async def test_create_rejects_unusable_slug(self, db):
        with pytest.raises(ValidationError):
            await gallery_service.create_gallery(db, GalleryCreate(title="Airport", slug="!!!"))

    async def test_title_without_sluggable_characters_falls_back(self, db):
        gallery = await _create(db, "🚗🚕")
        assert gallery.slug == "gallery"

    async def test_create_retries_when_slug_is_taken_concurrently(self, db, monkeypatch):
        await _create(db, "Airport")

        calls = []
        real_resolve = gallery_service.resolve_unique_slug

        async def stale_resolve(session, base_slug, exclude_id=None):
            calls.append(base_slug)
            if len(calls) == 1:
                # Pretend the check ran before the other insert landed
                return base_slug
            return await real_resolve(session, base_slug, exclude_id)

        monkeypatch.setattr(gallery_service, "resolve_unique_slug", stale_resolve)
        gallery = await _create(db, "Airport")

        assert len(calls) == 2
        assert gallery.slug == "airport-1"

    async def test_long_title_slug_fits_column_with_suffix(self, db):
        first = await _create(db, "Щ" * 100)
        second = await _create(db, "Щ" * 100)

        assert len(first.slug) <= SLUG_MAX_LENGTH
        assert second.slug == f"{first.slug}-1"
        assert len(second.slug) <= SLUG_MAX_LENGTH
        assert not first.slug.endswith("-")

    async def test_long_explicit_slug_is_truncated(self, db):
        gallery = await _create(db, "Airport", slug="a" * SLUG_MAX_LENGTH)

        assert len(gallery.slug) == SLUG_MAX_LENGTH - len(f"-{settings.SLUG_MAX_SUFFIX}")
        assert not gallery.slug.endswith("-")

    async def test_update_recomputes_slug_only_when_title_changes(self, db):
        gallery = await _create(db, "Night Transfers", description="old")

        updated = await gallery_service.update_gallery(
            db, gallery.id, GalleryUpdate(description="new")
        )
        assert updated.slug == "night-transfers"
        assert updated.description == "new"

        updated = await gallery_service.update_gallery(
            db, gallery.id, GalleryUpdate(title="Night Transfers")
        )
        assert updated.slug == "night-transfers"

        updated = await gallery_service.update_gallery(
            db, gallery.id, GalleryUpdate(title="Night transfers!")
        )
        assert updated.slug == "night-transfers"

        updated = await gallery_service.update_gallery(
            db, gallery.id, GalleryUpdate(title="Day Transfers")
        )
        assert updated.slug == "day-transfers"
        assert updated.description == "new"

    async def test_rename_retries_when_slug_is_taken_concurrently(self, db, monkeypatch):
        await _create(db, "Day Transfers")
        gallery = await _create(db, "Night Transfers")

        calls = []
        real_resolve = gallery_service.resolve_unique_slug

        async def stale_resolve(session, base_slug, exclude_id=None):
            calls.append(base_slug)
            if len(calls) == 1:
                return base_slug
            return await real_resolve(session, base_slug, exclude_id)

        monkeypatch.setattr(gallery_service, "resolve_unique_slug", stale_resolve)
        updated = await gallery_service.update_gallery(
            db,
            gallery.id,
            GalleryUpdate(title="Day Transfers", description="by night", is_published=False),
        )
        await db.commit()

        assert calls == ["day-transfers", "day-transfers"]
        assert updated.slug == "day-transfers-1"
        assert updated.title == "Day Transfers"
        assert updated.description == "by night"
        assert updated.is_published is False

    async def test_rename_avoids_other_gallery_slugs(self, db):
        await _create(db, "Day Transfers")
        gallery = await _create(db, "Night Transfers")

        updated = await gallery_service.update_gallery(
            db, gallery.id, GalleryUpdate(title="Day Transfers")
        )
        assert updated.slug == "day-transfers-1"

    async def test_update_rejects_empty_title(self, db):
        gallery = await _create(db, "Night Transfers")
        with pytest.raises(ValidationError):
            await gallery_service.update_gallery(db, gallery.id, GalleryUpdate(title=""))

    async def test_update_missing_gallery(self, db):
        with pytest.raises(NotFoundError):
            await gallery_service.update_gallery(db, 999, GalleryUpdate(title="x"))

    async def test_delete_cascades_to_images(self, db):
        gallery = await _create(db, "Fleet")
        await _add_images(db, gallery.id, 3)

        slug = await gallery_service.delete_gallery(db, gallery.id)
        await db.commit()

        assert slug == "fleet"
        count = await db.execute(
            select(func.count(GalleryImage.id)).where(GalleryImage.gallery_id == gallery.id)
        )
        assert count.scalar() == 0
        with pytest.raises(NotFoundError):
            await gallery_service.get_gallery(db, gallery.id)

    async def test_list_includes_counts_and_cover(self, db):
        fleet = await _create(db, "Fleet")
        hidden = await _create(db, "Hidden", is_published=False)
        empty = await _create(db, "Empty")
        images = await _add_images(db, fleet.id, 3)
        await _add_images(db, hidden.id, 1)

        summaries = await gallery_service.list_galleries(db)
        by_id = {summary.gallery.id: summary for summary in summaries}
        assert [summary.gallery.id for summary in summaries] == [empty.id, hidden.id, fleet.id]
        assert by_id[fleet.id].image_count == 3
        assert by_id[fleet.id].cover_image.id == images[0].id
        assert by_id[empty.id].image_count == 0
        assert by_id[empty.id].cover_image is None

        published = await gallery_service.list_galleries(db, published_only=True)
        assert hidden.id not in {summary.gallery.id for summary in published}

    async def test_get_by_slug_returns_ordered_images(self, db):
        gallery = await _create(db, "Fleet")
        images = await _add_images(db, gallery.id, 3)
        await gallery_service.reorder_images(db, gallery.id, [images[2].id])
        await db.commit()
        db.expunge_all()

        loaded = await gallery_service.get_gallery_by_slug(db, "fleet")
        assert [image.id for image in loaded.images] == [images[2].id, images[0].id, images[1].id]

    async def test_get_by_slug_hides_unpublished(self, db):
        await _create(db, "Hidden", is_published=False)

        assert (await gallery_service.get_gallery_by_slug(db, "hidden")).title == "Hidden"
        with pytest.raises(NotFoundError):
            await gallery_service.get_gallery_by_slug(db, "hidden", published_only=True)

    def test_gallery_paths(self):
        assert gallery_paths("fleet") == ["/gallery", "/gallery/fleet", "/admin"]


class TestImages:
    async def test_add_assigns_next_order(self, db):
        gallery = await _create(db, "Fleet")

        _, first = await gallery_service.add_image(
            db, gallery.id, GalleryImageCreate(image_url="/uploads/gallery/a.jpg", title="  ")
        )
        _, second = await gallery_service.add_image(
            db, gallery.id, GalleryImageCreate(image_url="https://i.postimg.cc/b.jpg", title="Sprinter")
        )

        assert (first.order, second.order) == (0, 1)
        assert first.title is None
        assert second.title == "Sprinter"

    async def test_add_requires_existing_gallery(self, db):
        with pytest.raises(NotFoundError):
            await gallery_service.add_image(db, 42, GalleryImageCreate(image_url="/a.jpg"))

    async def test_add_requires_image_url(self, db):
        gallery = await _create(db, "Fleet")
        with pytest.raises(ValidationError):
            await gallery_service.add_image(db, gallery.id, GalleryImageCreate(image_url=" "))

    async def test_update_is_partial(self, db):
        gallery = await _create(db, "Fleet")
        image = (await _add_images(db, gallery.id, 1))[0]
        await gallery_service.update_image(
            db, image.id, GalleryImageUpdate(title="Sprinter", description="8 seats")
        )

        _, updated = await gallery_service.update_image(
            db, image.id, GalleryImageUpdate(description="9 seats")
        )
        assert updated.title == "Sprinter"
        assert updated.description == "9 seats"
        assert updated.image_url == "/uploads/gallery/0.jpg"

    async def test_update_missing_image(self, db):
        with pytest.raises(NotFoundError):
            await gallery_service.update_image(db, 7, GalleryImageUpdate(title="x"))

    @pytest.mark.parametrize("position", [0, 2, 4])
    async def test_delete_leaves_contiguous_order(self, db, position):
        gallery = await _create(db, "Fleet")
        images = await _add_images(db, gallery.id, 5)

        await gallery_service.delete_image(db, images[position].id)
        await db.commit()

        assert await _orders(db, gallery.id) == [0, 1, 2, 3]

    async def test_delete_keeps_relative_order(self, db):
        gallery = await _create(db, "Fleet")
        images = await _add_images(db, gallery.id, 4)

        await gallery_service.delete_image(db, images[1].id)
        await db.commit()

        remaining = await gallery_service.list_gallery_images(db, gallery.id)
        assert [image.id for image in remaining] == [images[0].id, images[2].id, images[3].id]

    async def test_delete_missing_image(self, db):
        with pytest.raises(NotFoundError):
            await gallery_service.delete_image(db, 404)

    async def test_compaction_is_idempotent_and_heals_duplicates(self, db):
        gallery = await _create(db, "Fleet")
        images = await _add_images(db, gallery.id, 4)
        for image, order in zip(images, [3, 7, 7, 12]):
            image.order = order
        await db.commit()

        first = [(image.id, image.order) for image in await compact_image_order(db, gallery.id)]
        second = [(image.id, image.order) for image in await compact_image_order(db, gallery.id)]

        assert first == second
        assert first == [(image.id, n) for n, image in enumerate(images)]

    async def test_reorder_moves_listed_images_first(self, db):
        gallery = await _create(db, "Fleet")
        images = await _add_images(db, gallery.id, 4)

        _, ordered = await gallery_service.reorder_images(
            db, gallery.id, [images[3].id, images[1].id]
        )

        assert [image.id for image in ordered] == [
            images[3].id, images[1].id, images[0].id, images[2].id
        ]
        assert [image.order for image in ordered] == [0, 1, 2, 3]

    async def test_reorder_rejects_foreign_images(self, db):
        fleet = await _create(db, "Fleet")
        other = await _create(db, "Other")
        await _add_images(db, fleet.id, 1)
        foreign = (await _add_images(db, other.id, 1))[0]

        with pytest.raises(NotFoundError):
            await gallery_service.reorder_images(db, fleet.id, [foreign.id])

    async def test_reorder_rejects_duplicates(self, db):
        gallery = await _create(db, "Fleet")
        image = (await _add_images(db, gallery.id, 1))[0]

        with pytest.raises(ValidationError):
            await gallery_service.reorder_images(db, gallery.id, [image.id, image.id])
