"""Ledger schema: platform connections, accounts, objects, facts, jobs.

Revision ID: 0001_ledger_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_ledger_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # platform_connections
    # ==========================================================================
    op.create_table(
        'platform_connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('credentials', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('platform', name='uq_platform_connections_platform'),
    )

    # ==========================================================================
    # ad_accounts
    # ==========================================================================
    op.create_table(
        'ad_accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('platform_connection_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('external_id', sa.String(100), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['platform_connection_id'], ['platform_connections.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('platform_connection_id', 'external_id', name='uq_ad_accounts_connection_external'),
    )
    op.create_index('idx_ad_accounts_connection', 'ad_accounts', ['platform_connection_id'])

    # ==========================================================================
    # ad_objects (campaign > ad set > ad)
    # ==========================================================================
    op.create_table(
        'ad_objects',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('ad_account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('external_id', sa.String(100), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('platform_data', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['ad_account_id'], ['ad_accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['ad_objects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ad_account_id', 'external_id', name='uq_ad_objects_account_external'),
        sa.CheckConstraint('parent_id IS NULL OR parent_id <> id', name='ck_ad_objects_not_self_parent'),
    )
    op.create_index('idx_ad_objects_account', 'ad_objects', ['ad_account_id'])
    op.create_index('idx_ad_objects_parent', 'ad_objects', ['parent_id'])

    # ==========================================================================
    # performance_facts (append-only)
    # ==========================================================================
    op.create_table(
        'performance_facts',
        sa.Column('id', sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column('ad_object_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('collected_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('impressions', sa.BigInteger(), nullable=True),
        sa.Column('clicks', sa.BigInteger(), nullable=True),
        sa.Column('conversions', sa.BigInteger(), nullable=True),
        sa.Column('metrics', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['ad_object_id'], ['ad_objects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_performance_facts_latest',
        'performance_facts',
        ['ad_object_id', 'period_start', 'collected_at'],
    )
    op.create_index('idx_performance_facts_collected', 'performance_facts', ['collected_at'])

    # ==========================================================================
    # jobs + job_queues
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('queue_name', sa.String(100), nullable=True),
        sa.Column('priority', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('run_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default=sa.text('25'), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('locked_by', sa.String(100), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_jobs_pending',
        'jobs',
        ['status', 'priority', 'run_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index('idx_jobs_queue', 'jobs', ['queue_name', 'status'])
    op.create_index('idx_jobs_created', 'jobs', ['created_at'])

    op.create_table(
        'job_queues',
        sa.Column('queue_name', sa.String(100), nullable=False),
        sa.Column('locked_by', sa.String(100), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint('queue_name'),
    )


def downgrade() -> None:
    op.drop_table('job_queues')
    op.drop_index('idx_jobs_created', table_name='jobs')
    op.drop_index('idx_jobs_queue', table_name='jobs')
    op.drop_index('idx_jobs_pending', table_name='jobs')
    op.drop_table('jobs')
    op.drop_index('idx_performance_facts_collected', table_name='performance_facts')
    op.drop_index('idx_performance_facts_latest', table_name='performance_facts')
    op.drop_table('performance_facts')
    op.drop_index('idx_ad_objects_parent', table_name='ad_objects')
    op.drop_index('idx_ad_objects_account', table_name='ad_objects')
    op.drop_table('ad_objects')
    op.drop_index('idx_ad_accounts_connection', table_name='ad_accounts')
    op.drop_table('ad_accounts')
    op.drop_table('platform_connections')
