"""create theoretical index tables

Revision ID: c41d7a9e2f60
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c41d7a9e2f60'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'index_definitions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('ticker', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('methodology', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Versions before compositions: live rows point at the version they mirror
    op.create_table(
        'index_composition_versions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('positions', sa.JSON(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('index_id', 'version', name='uq_composition_version'),
    )
    op.create_index(
        'idx_composition_version_date',
        'index_composition_versions',
        ['index_id', 'effective_date']
    )

    op.create_table(
        'index_compositions',
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), primary_key=True, nullable=False),
        sa.Column('asset_ticker', sa.String(20), primary_key=True, nullable=False),
        sa.Column('target_weight', sa.Float(), nullable=False),
        sa.Column('entry_price', sa.Numeric(18, 6), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('version_id', sa.Integer(), sa.ForeignKey('index_composition_versions.id'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'index_history_points',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('points', sa.Float(), nullable=False),
        sa.Column('daily_change', sa.Float(), nullable=False),
        sa.Column('current_yield', sa.Float(), nullable=True),
        sa.Column('dividends_received', sa.Float(), nullable=True),
        sa.Column('composition_snapshot', sa.JSON(), nullable=True),
        sa.Column('dividends_by_ticker', sa.JSON(), nullable=True),
        sa.Column('composition_version_id', sa.Integer(), sa.ForeignKey('index_composition_versions.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('index_id', 'date', name='uq_history_index_date'),
    )

    op.create_table(
        'index_rebalance_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('ticker', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        'idx_rebalance_log_index_date',
        'index_rebalance_logs',
        ['index_id', 'date']
    )

    op.create_table(
        'index_cron_checkpoints',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_type', sa.String(30), nullable=False),
        sa.Column('index_id', sa.String(36), nullable=False),
        sa.Column('last_run_date', sa.Date(), nullable=True),
        sa.Column('last_processed_index_id', sa.String(36), nullable=True),
        sa.Column('processed_count', sa.Integer(), nullable=True),
        sa.Column('total_count', sa.Integer(), nullable=True),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('job_type', 'index_id', name='uq_checkpoint_job_index'),
    )


def downgrade() -> None:
    op.drop_table('index_cron_checkpoints')
    op.drop_index('idx_rebalance_log_index_date', table_name='index_rebalance_logs')
    op.drop_table('index_rebalance_logs')
    op.drop_table('index_history_points')
    op.drop_table('index_compositions')
    op.drop_index('idx_composition_version_date', table_name='index_composition_versions')
    op.drop_table('index_composition_versions')
    op.drop_table('index_definitions')
