"""Per-nozzle shift anomalies

Revision ID: 20261020_meter_anomalies
Revises: 20261019_station_recon
Create Date: 2026-10-20

This migration creates:
1. MeterAnomaly (nozzles flagged against their recent average at shift close)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_meter_anomalies'
down_revision = '20261019_station_recon'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('meter_anomalies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('nozzle_number', sa.Integer(), nullable=False),
        sa.Column('sold_qty', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('average_qty', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('percent_diff', sa.Numeric(precision=8, scale=1), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], name='fk_meter_anomalies_shift_id_shifts'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], name='fk_meter_anomalies_reviewed_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_meter_anomalies'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('meter_anomalies', schema=None) as batch_op:
        batch_op.create_index('ix_meter_anomalies_shift_id', ['shift_id'], unique=False)
        batch_op.create_index('ix_meter_anomalies_reviewed_at', ['reviewed_at'], unique=False)


def downgrade():
    with op.batch_alter_table('meter_anomalies', schema=None) as batch_op:
        batch_op.drop_index('ix_meter_anomalies_reviewed_at')
        batch_op.drop_index('ix_meter_anomalies_shift_id')

    op.drop_table('meter_anomalies')
