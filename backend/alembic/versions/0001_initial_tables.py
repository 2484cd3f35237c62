"""initial tables

Revision ID: 0001_initial_tables
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON

revision = '0001_initial_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tier', sa.String(20), server_default='free', nullable=False),
        sa.Column('free_used', sa.Integer(), server_default='0', nullable=False),
        sa.Column('paid_used', sa.Integer(), server_default='0', nullable=False),
        sa.Column('resets_at', sa.Date(), server_default=sa.text("(date_trunc('month', now()) + interval '1 month')::date"), nullable=False),
        sa.Column('total_generated', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(now() at time zone 'utc')"), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text("(now() at time zone 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('free_used >= 0', name='ck_users_free_used_non_negative'),
        sa.CheckConstraint('paid_used >= 0', name='ck_users_paid_used_non_negative'),
    )

    op.create_table(
        'generations',
        sa.Column('id', UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('user_id', UUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_task_id', sa.String(200), nullable=True),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('length', sa.Integer(), server_default='10', nullable=False),
        sa.Column('provider_key', sa.String(50), nullable=True),
        sa.Column('provider_name', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('video_url', sa.String(1000), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('error_code', sa.String(50), nullable=True),
        sa.Column('cost', sa.DECIMAL(10, 6), server_default='0', nullable=False),
        sa.Column('poll_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('empty_result_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(now() at time zone 'utc')"), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_generations_user_created', 'generations', ['user_id', 'created_at'])
    op.create_index('idx_generations_status', 'generations', ['status'])

    op.create_table(
        'generation_events',
        sa.Column('id', UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('generation_id', UUID(), sa.ForeignKey('generations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('external_status', sa.String(50), nullable=True),
        sa.Column('response_data', JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(now() at time zone 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_generation_events_generation_id', 'generation_events', ['generation_id'])


def downgrade():
    op.drop_index('idx_generation_events_generation_id')
    op.drop_table('generation_events')
    op.drop_index('idx_generations_status')
    op.drop_index('idx_generations_user_created')
    op.drop_table('generations')
    op.drop_table('users')
