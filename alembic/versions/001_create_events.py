"""create events table

Revision ID: 001_create_events
Revises:
Create Date: 2025-05-20 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_create_events'
down_revision = None
branch_labels = None
depends_on = None

json_type = sa.JSON(none_as_null=True).with_variant(
    postgresql.JSONB(none_as_null=True), 'postgresql'
)


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location', sa.String(length=500), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('sub_category', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='draft'),
        sa.Column('tickets_sold', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('total_revenue', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('unique_attendees', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('logo_url', sa.Text(), nullable=True),
        sa.Column('policy', sa.String(length=255), nullable=True),
        sa.Column('organizer', sa.String(length=255), nullable=True),
        sa.Column('organizer_logo', sa.Text(), nullable=True),
        sa.Column('teams', json_type, nullable=True),
        sa.Column('tags', json_type, nullable=True),
        sa.Column('timezone', sa.String(length=100), nullable=True, server_default='GMT-6'),
        sa.Column('nft_mint_address', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_events_start_date', 'events', ['start_date'])
    op.create_index('ix_events_status', 'events', ['status'])
    op.create_index('ix_events_created_at', 'events', ['created_at'])
    op.create_index('idx_event_status_start_date', 'events', ['status', 'start_date'])


def downgrade() -> None:
    op.drop_index('idx_event_status_start_date', table_name='events')
    op.drop_index('ix_events_created_at', table_name='events')
    op.drop_index('ix_events_status', table_name='events')
    op.drop_index('ix_events_start_date', table_name='events')
    op.drop_table('events')
