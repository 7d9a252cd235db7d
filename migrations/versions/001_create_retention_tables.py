"""Create retention_log and retention_run tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


LOG_STATUSES = ('success', 'warning', 'error', 'skipped')
RUN_STATUSES = ('running', 'success', 'warning', 'error', 'skipped')


def upgrade():
    # One row per processed record
    op.create_table(
        'retention_log',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False),
        sa.Column('time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('category_label', sa.Text(), nullable=False, server_default='unknown'),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('record_created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('status', sa.Enum(*LOG_STATUSES, name='retention_log_status'), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column(
            'actions',
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql'),
            nullable=False,
            server_default='[]',
        ),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('ix_retention_log_category_id', 'retention_log', ['category_id'])
    op.create_index('ix_retention_log_status', 'retention_log', ['status'])
    op.create_index('ix_retention_log_time', 'retention_log', ['time'])

    # One row per engine invocation
    op.create_table(
        'retention_run',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False),
        sa.Column('time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.Enum(*RUN_STATUSES, name='retention_run_status'), nullable=False, server_default='running'),
        sa.Column('trigger', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # Stale-run reclaim and the advisory lock filter on status + time
    op.create_index('ix_retention_run_time', 'retention_run', ['time'])


def downgrade():
    op.drop_index('ix_retention_run_time', table_name='retention_run')
    op.drop_table('retention_run')

    op.drop_index('ix_retention_log_time', table_name='retention_log')
    op.drop_index('ix_retention_log_status', table_name='retention_log')
    op.drop_index('ix_retention_log_category_id', table_name='retention_log')
    op.drop_table('retention_log')

    # Enum types outlive their tables on PostgreSQL
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS retention_run_status')
        op.execute('DROP TYPE IF EXISTS retention_log_status')
