"""
SQLAlchemy models for the application.
All database models inherit from Base (declarative base).
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from transfer_cms.database import Base

TITLE_MAX_LENGTH = 255
SLUG_MAX_LENGTH = 255


class Gallery(Base):
    """
    Photo gallery shown on the public site.
    The slug is unique across all galleries and is used in public URLs.
    """
    __tablename__ = "galleries"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(SLUG_MAX_LENGTH), nullable=False, unique=True, index=True)
    is_published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    images = relationship(
        "GalleryImage",
        back_populates="gallery",
        order_by="GalleryImage.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class GalleryImage(Base):
    """
    Image belonging to a gallery.
    ``order`` is zero-based and contiguous within a gallery after compaction.
    """
    __tablename__ = "gallery_images"
    __table_args__ = (
        Index("ix_gallery_images_gallery_id_order", "gallery_id", "order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    gallery_id = Column(
        Integer,
        ForeignKey("galleries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url = Column(String, nullable=False)
    title = Column(String(TITLE_MAX_LENGTH), nullable=True)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    gallery = relationship("Gallery", back_populates="images")
