"""create_galleries

Revision ID: 3c1d9e0a7b42
Revises:
Create Date: 2026-10-17 10:12:31.418236

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1d9e0a7b42'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'galleries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_galleries_id'), 'galleries', ['id'], unique=False)
    # Unique index is the final arbiter for concurrent slug allocation
    op.create_index(op.f('ix_galleries_slug'), 'galleries', ['slug'], unique=True)

    op.create_table(
        'gallery_images',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gallery_id', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['gallery_id'], ['galleries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_gallery_images_id'), 'gallery_images', ['id'], unique=False)
    op.create_index(op.f('ix_gallery_images_gallery_id'), 'gallery_images', ['gallery_id'], unique=False)
    op.create_index(
        'ix_gallery_images_gallery_id_order',
        'gallery_images',
        ['gallery_id', 'order'],
        unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_gallery_images_gallery_id_order', table_name='gallery_images')
    op.drop_index(op.f('ix_gallery_images_gallery_id'), table_name='gallery_images')
    op.drop_index(op.f('ix_gallery_images_id'), table_name='gallery_images')
    op.drop_table('gallery_images')

    op.drop_index(op.f('ix_galleries_slug'), table_name='galleries')
    op.drop_index(op.f('ix_galleries_id'), table_name='galleries')
    op.drop_table('galleries')
