"""Create reference record tables used by SqlRecordStore

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 09:30:00.000000

Only needed when the host keeps its records in the engine's database.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def _id_column():
    return sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False)


def upgrade():
    op.create_table(
        'retention_category',
        _id_column(),
        sa.Column('label', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'retention_category_file_field',
        _id_column(),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('field_key', sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['retention_category.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('category_id', 'field_key', name='uq_category_file_field'),
    )

    op.create_table(
        'retention_record',
        _id_column(),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='publish'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['retention_category.id'], ondelete='CASCADE'),
    )

    # Overdue selection: WHERE category_id = X AND created_at <= cutoff
    op.create_index(
        'ix_retention_record_category_created', 'retention_record', ['category_id', 'created_at']
    )

    op.create_table(
        'retention_record_field_value',
        _id_column(),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('field_key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['record_id'], ['retention_record.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('record_id', 'field_key', name='uq_record_field_value'),
    )


def downgrade():
    op.drop_table('retention_record_field_value')
    op.drop_index('ix_retention_record_category_created', table_name='retention_record')
    op.drop_table('retention_record')
    op.drop_table('retention_category_file_field')
    op.drop_table('retention_category')
