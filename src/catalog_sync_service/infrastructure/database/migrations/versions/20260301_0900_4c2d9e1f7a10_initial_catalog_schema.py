"""Initial catalog schema

Revision ID: 4c2d9e1f7a10
Revises:
Create Date: 2026-03-01 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c2d9e1f7a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Dictionaries
    op.create_table('metals',
    sa.Column('metal_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('slug', sa.String(length=100), nullable=False),
    sa.Column('image', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('metal_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('stones',
    sa.Column('stone_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('slug', sa.String(length=100), nullable=False),
    sa.PrimaryKeyConstraint('stone_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('shapes',
    sa.Column('shape_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('image', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('shape_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('styles',
    sa.Column('style_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('image', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('style_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('genders',
    sa.Column('gender_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=50), nullable=False),
    sa.PrimaryKeyConstraint('gender_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('attribute_groups',
    sa.Column('group_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.PrimaryKeyConstraint('group_id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('categories',
    sa.Column('category_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('slug', sa.String(length=255), nullable=False),
    sa.Column('remote_id', sa.String(length=255), nullable=False),
    sa.PrimaryKeyConstraint('category_id'),
    sa.UniqueConstraint('remote_id')
    )
    op.create_table('web_categories',
    sa.Column('web_cat_id', sa.Integer(), autoincrement=False, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('path', sa.String(length=500), nullable=False),
    sa.Column('image_url', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('web_cat_id')
    )

    # Rings and variations
    op.create_table('rings',
    sa.Column('ring_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('supplier_group_id', sa.String(length=100), nullable=False),
    sa.Column('group_id', sa.Integer(), nullable=True),
    sa.Column('category_id', sa.Integer(), nullable=True),
    sa.Column('style_id', sa.Integer(), nullable=True),
    sa.Column('gender_id', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['category_id'], ['categories.category_id'], ),
    sa.ForeignKeyConstraint(['gender_id'], ['genders.gender_id'], ),
    sa.ForeignKeyConstraint(['group_id'], ['attribute_groups.group_id'], ),
    sa.ForeignKeyConstraint(['style_id'], ['styles.style_id'], ),
    sa.PrimaryKeyConstraint('ring_id'),
    sa.UniqueConstraint('supplier_group_id')
    )
    op.create_table('ring_web_categories',
    sa.Column('ring_id', sa.Integer(), nullable=False),
    sa.Column('web_cat_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['ring_id'], ['rings.ring_id'], ),
    sa.ForeignKeyConstraint(['web_cat_id'], ['web_categories.web_cat_id'], ),
    sa.PrimaryKeyConstraint('ring_id', 'web_cat_id')
    )
    op.create_table('ring_variations',
    sa.Column('variation_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('ring_id', sa.Integer(), nullable=False),
    sa.Column('metal_id', sa.Integer(), nullable=False),
    sa.Column('stone_id', sa.Integer(), nullable=False),
    sa.Column('title', sa.String(length=500), nullable=False),
    sa.Column('sku', sa.String(length=100), nullable=False),
    sa.Column('supplier_product_id', sa.String(length=100), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('group_description', sa.Text(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('supplier_price', sa.Integer(), nullable=False),
    sa.Column('supplier_showcase_price', sa.Integer(), nullable=False),
    sa.Column('weight', sa.Float(), nullable=False),
    sa.Column('ring_size', sa.Float(), nullable=False),
    sa.Column('lead_time', sa.Integer(), nullable=False),
    sa.Column('on_hand', sa.Integer(), nullable=False),
    sa.Column('orderable', sa.Boolean(), nullable=False),
    sa.Column('currency_code', sa.String(length=10), nullable=False),
    sa.Column('band_width', sa.String(length=100), nullable=False),
    sa.Column('stone_type', sa.String(length=100), nullable=False),
    sa.Column('quality', sa.String(length=100), nullable=False),
    sa.Column('set_with', sa.Text(), nullable=False),
    sa.Column('diamonds', sa.Text(), nullable=True),
    sa.Column('style_label', sa.String(length=255), nullable=True),
    sa.Column('sync', sa.Boolean(), nullable=False),
    sa.Column('sync_id', sa.String(length=255), nullable=False),
    sa.Column('variant_sync_id', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['metal_id'], ['metals.metal_id'], ),
    sa.ForeignKeyConstraint(['ring_id'], ['rings.ring_id'], ),
    sa.ForeignKeyConstraint(['stone_id'], ['stones.stone_id'], ),
    sa.PrimaryKeyConstraint('variation_id'),
    sa.UniqueConstraint('sku')
    )
    op.create_index('ix_ring_variations_ring', 'ring_variations', ['ring_id'], unique=False)
    op.create_index('ix_ring_variations_sync', 'ring_variations', ['sync', 'sync_id'], unique=False)

    # Status tracking
    op.create_table('sync_status',
    sa.Column('id', sa.String(length=50), nullable=False),
    sa.Column('last_sync_at', sa.DateTime(), nullable=True),
    sa.Column('records_synced', sa.Integer(), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('app_status_events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('status', sa.Integer(), nullable=False),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_app_status_events_created', 'app_status_events', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_app_status_events_created', table_name='app_status_events')
    op.drop_table('app_status_events')
    op.drop_table('sync_status')
    op.drop_index('ix_ring_variations_sync', table_name='ring_variations')
    op.drop_index('ix_ring_variations_ring', table_name='ring_variations')
    op.drop_table('ring_variations')
    op.drop_table('ring_web_categories')
    op.drop_table('rings')
    op.drop_table('web_categories')
    op.drop_table('categories')
    op.drop_table('attribute_groups')
    op.drop_table('genders')
    op.drop_table('styles')
    op.drop_table('shapes')
    op.drop_table('stones')
    op.drop_table('metals')
