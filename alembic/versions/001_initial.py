"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('base_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('min_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('max_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('current_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('previous_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('pricing_mode', sa.String(length=8), nullable=False, server_default='full'),
        sa.Column('price_increase_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='2.00'),
        sa.Column('price_increase_random_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='1.00'),
        sa.Column('price_decrease_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='1.00'),
        sa.Column('price_decrease_random_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0.00'),
        sa.Column('sales_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('manual_sales_adjustment', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sales_count_at_last_update', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('trend', sa.String(length=8), nullable=False, server_default='down'),
        sa.Column('last_price_update', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('min_price < max_price', name='ck_product_price_bounds'),
        sa.CheckConstraint('sales_count_at_last_update <= sales_count', name='ck_product_sales_baseline'),
    )

    # Price history table
    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_price_history_product_id', 'price_history', ['product_id'])

    # Videos table
    op.create_table(
        'videos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('aspect_ratio', sa.String(length=16), nullable=False, server_default='landscape'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Video campaigns table
    op.create_table(
        'video_campaigns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('countdown_seconds', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='scheduled'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('promotional_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('highlight_duration_seconds', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_video_campaigns_scheduled_at', 'video_campaigns', ['scheduled_at'])
    op.create_index('ix_video_campaigns_status', 'video_campaigns', ['status'])

    # Quick ads table
    op.create_table(
        'quick_ads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('promotional_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('update_price', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('display_text', sa.Text(), nullable=True),
        sa.Column('display_price', sa.String(length=32), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('image_mode', sa.String(length=16), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('last_played_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
    )

    # Settings table
    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_table('quick_ads')
    op.drop_index('ix_video_campaigns_status', table_name='video_campaigns')
    op.drop_index('ix_video_campaigns_scheduled_at', table_name='video_campaigns')
    op.drop_table('video_campaigns')
    op.drop_table('videos')
    op.drop_index('ix_price_history_product_id', table_name='price_history')
    op.drop_table('price_history')
    op.drop_table('products')
