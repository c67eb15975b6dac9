"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('plan', sa.String(20), nullable=False, server_default='free'),
        sa.Column('subscription_status', sa.String(20), nullable=False, server_default='inactive'),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_profiles_credits_non_negative'),
        sa.CheckConstraint("plan IN ('free', 'pro')", name='ck_profiles_plan'),
        sa.CheckConstraint(
            "subscription_status IN ('inactive', 'active')", name='ck_profiles_subscription_status'
        ),
    )

    # Webhooks resolve profiles by lower(email)
    op.create_index('idx_profiles_email', 'profiles', ['email'])
    op.create_index('idx_profiles_email_lower', 'profiles', [sa.text('lower(email)')])

    # ========================================================================
    # Create videos table
    # ========================================================================
    op.create_table(
        'videos',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('requested_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),

        # Constraints
        sa.CheckConstraint('requested_minutes > 0', name='ck_videos_minutes_positive'),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'error')", name='ck_videos_status'
        ),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_videos_profile', ondelete='RESTRICT'),
    )

    op.create_index('idx_videos_user_created', 'videos', ['user_id', 'created_at'])
    op.create_index('idx_videos_status', 'videos', ['status'])

    # ========================================================================
    # Create moments table
    # ========================================================================
    op.create_table(
        'moments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('video_id', UUID(as_uuid=True), nullable=False),
        sa.Column('idx', sa.Integer(), nullable=False),
        sa.Column('start_sec', sa.Integer(), nullable=False),
        sa.Column('end_sec', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('hook', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),

        # Constraints
        sa.CheckConstraint('idx BETWEEN 1 AND 10', name='ck_moments_idx_range'),
        sa.CheckConstraint('start_sec >= 0', name='ck_moments_start_non_negative'),
        sa.CheckConstraint('end_sec > start_sec', name='ck_moments_end_after_start'),
        sa.CheckConstraint('score IS NULL OR (score >= 0 AND score <= 100)', name='ck_moments_score'),
        sa.UniqueConstraint('video_id', 'idx', name='uq_moments_video_idx'),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name='fk_moments_video', ondelete='CASCADE'),
    )

    # ========================================================================
    # Create payment_events table
    # ========================================================================
    op.create_table(
        'payment_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('provider_tx_id', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('credits_applied', sa.Integer(), nullable=True),
        sa.Column('outcome', sa.String(20), nullable=True),
        sa.Column('reason', sa.String(50), nullable=True),
        sa.Column('raw_payload', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Deduplication key for webhook deliveries
        sa.UniqueConstraint('provider', 'provider_tx_id', name='uq_payment_events_provider_tx'),
    )

    op.create_index('idx_payment_events_email', 'payment_events', ['email'])

    # ========================================================================
    # Create credit_ledger table
    # ========================================================================
    op.create_table(
        'credit_ledger',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(50), nullable=False),
        sa.Column('reference', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount <> 0', name='ck_credit_ledger_amount_non_zero'),
        sa.CheckConstraint('balance_after >= 0', name='ck_credit_ledger_balance_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_credit_ledger_profile', ondelete='RESTRICT'),
    )

    op.create_index('idx_credit_ledger_user_created', 'credit_ledger', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('credit_ledger')
    op.drop_table('payment_events')
    op.drop_table('moments')
    op.drop_table('videos')
    op.drop_table('profiles')
