"""Station reconciliation schema

Revision ID: 20261019_station_recon
Revises:
Create Date: 2026-10-19

This migration creates:
1. Stations, fuel products, nozzles and staff users
2. DailyRecord (one book per station per business date)
3. PriceBook and PriceBookLine (effective-dated product prices)
4. Shift, MeterReading and ShiftReconciliation (shift close gate)
5. Transaction (fuel sales, soft void/delete)
6. DailyAnomaly (meter-vs-sales drift on stations without shifts)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_station_recon'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated=False):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]
    if with_updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade():
    # ==========================================================================
    # 1. STATIONS, PRODUCTS, USERS
    # ==========================================================================
    op.create_table('stations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('station_type', sa.String(length=16), nullable=False),
        sa.Column('uses_shifts', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_stations'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stations', schema=None) as batch_op:
        batch_op.create_index('ix_stations_station_type', ['station_type'], unique=False)
        batch_op.create_index('ix_stations_is_active', ['is_active'], unique=False)

    op.create_table('fuel_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_fuel_products'),
        sa.UniqueConstraint('code', name='uq_fuel_products_code'),
        sqlite_autoincrement=True
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_users_station_id_stations'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sqlite_autoincrement=True
    )

    op.create_table('nozzles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('nozzle_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_nozzles_station_id_stations'),
        sa.ForeignKeyConstraint(['product_id'], ['fuel_products.id'], name='fk_nozzles_product_id_fuel_products'),
        sa.PrimaryKeyConstraint('id', name='pk_nozzles'),
        sa.UniqueConstraint('station_id', 'nozzle_number', name='uq_nozzles_station_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('nozzles', schema=None) as batch_op:
        batch_op.create_index('ix_nozzles_station_id', ['station_id'], unique=False)

    # ==========================================================================
    # 2. DAILY RECORDS
    # ==========================================================================
    op.create_table('daily_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('retail_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('gas_price', sa.Numeric(precision=10, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_daily_records_station_id_stations'),
        sa.PrimaryKeyConstraint('id', name='pk_daily_records'),
        sa.UniqueConstraint('station_id', 'date', name='uq_daily_records_station_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('daily_records', schema=None) as batch_op:
        batch_op.create_index('ix_daily_records_station_id', ['station_id'], unique=False)
        batch_op.create_index('ix_daily_records_date', ['date'], unique=False)

    # ==========================================================================
    # 3. PRICE BOOKS
    # ==========================================================================
    op.create_table('price_books',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_price_books_station_id_stations'),
        sa.PrimaryKeyConstraint('id', name='pk_price_books'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('price_books', schema=None) as batch_op:
        batch_op.create_index('ix_price_books_lookup', ['status', 'station_id', 'effective_from'], unique=False)

    op.create_table('price_book_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('price_book_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('price_per_unit', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['price_book_id'], ['price_books.id'], name='fk_price_book_lines_price_book_id_price_books'),
        sa.ForeignKeyConstraint(['product_id'], ['fuel_products.id'], name='fk_price_book_lines_product_id_fuel_products'),
        sa.PrimaryKeyConstraint('id', name='pk_price_book_lines'),
        sa.UniqueConstraint('price_book_id', 'product_id', name='uq_price_book_lines_book_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('price_book_lines', schema=None) as batch_op:
        batch_op.create_index('ix_price_book_lines_price_book_id', ['price_book_id'], unique=False)
        batch_op.create_index('ix_price_book_lines_product_id', ['product_id'], unique=False)

    # ==========================================================================
    # 4. SHIFTS, METERS, RECONCILIATIONS
    # ==========================================================================
    op.create_table('shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('daily_record_id', sa.Integer(), nullable=False),
        sa.Column('shift_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('opened_by_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_id', sa.Integer(), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_by_id', sa.Integer(), nullable=True),
        sa.Column('variance_note', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['daily_record_id'], ['daily_records.id'], name='fk_shifts_daily_record_id_daily_records'),
        sa.ForeignKeyConstraint(['opened_by_id'], ['users.id'], name='fk_shifts_opened_by_id_users'),
        sa.ForeignKeyConstraint(['closed_by_id'], ['users.id'], name='fk_shifts_closed_by_id_users'),
        sa.ForeignKeyConstraint(['locked_by_id'], ['users.id'], name='fk_shifts_locked_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_shifts'),
        sa.UniqueConstraint('daily_record_id', 'shift_number', name='uq_shifts_daily_record_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shifts', schema=None) as batch_op:
        batch_op.create_index('ix_shifts_daily_record_id', ['daily_record_id'], unique=False)
        batch_op.create_index('ix_shifts_status', ['status'], unique=False)

    op.create_table('meter_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('daily_record_id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('nozzle_number', sa.Integer(), nullable=False),
        sa.Column('nozzle_id', sa.Integer(), nullable=True),
        sa.Column('start_reading', sa.Numeric(precision=14, scale=3), nullable=True),
        sa.Column('end_reading', sa.Numeric(precision=14, scale=3), nullable=True),
        sa.Column('sold_qty', sa.Numeric(precision=14, scale=3), nullable=True),
        sa.Column('captured_by_id', sa.Integer(), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['daily_record_id'], ['daily_records.id'], name='fk_meter_readings_daily_record_id_daily_records'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], name='fk_meter_readings_shift_id_shifts'),
        sa.ForeignKeyConstraint(['nozzle_id'], ['nozzles.id'], name='fk_meter_readings_nozzle_id_nozzles'),
        sa.ForeignKeyConstraint(['captured_by_id'], ['users.id'], name='fk_meter_readings_captured_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_meter_readings'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('meter_readings', schema=None) as batch_op:
        batch_op.create_index('ix_meter_readings_daily_record_id', ['daily_record_id'], unique=False)
        batch_op.create_index('ix_meter_readings_shift_id', ['shift_id'], unique=False)
        batch_op.create_index('ix_meter_readings_shift_nozzle', ['shift_id', 'nozzle_number'], unique=False)

    op.create_table('shift_reconciliations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('expected_fuel_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('expected_other_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_expected', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_received', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('cash_received', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('credit_received', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('transfer_received', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('variance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('variance_status', sa.String(length=16), nullable=False),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], name='fk_shift_reconciliations_shift_id_shifts'),
        sa.PrimaryKeyConstraint('id', name='pk_shift_reconciliations'),
        sa.UniqueConstraint('shift_id', name='uq_shift_reconciliations_shift_id'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('daily_record_id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payment_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('liters', sa.Numeric(precision=14, scale=3), nullable=True),
        sa.Column('price_per_liter', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('owner_name', sa.String(length=255), nullable=True),
        sa.Column('license_plate', sa.String(length=32), nullable=True),
        sa.Column('bill_number', sa.String(length=64), nullable=True),
        sa.Column('is_voided', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_id', sa.Integer(), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recorded_by_id', sa.Integer(), nullable=True),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_transactions_station_id_stations'),
        sa.ForeignKeyConstraint(['daily_record_id'], ['daily_records.id'], name='fk_transactions_daily_record_id_daily_records'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], name='fk_transactions_shift_id_shifts'),
        sa.ForeignKeyConstraint(['voided_by_id'], ['users.id'], name='fk_transactions_voided_by_id_users'),
        sa.ForeignKeyConstraint(['recorded_by_id'], ['users.id'], name='fk_transactions_recorded_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_transactions'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index('ix_transactions_station_id', ['station_id'], unique=False)
        batch_op.create_index('ix_transactions_daily_record_id', ['daily_record_id'], unique=False)
        batch_op.create_index('ix_transactions_shift_id', ['shift_id'], unique=False)
        batch_op.create_index('ix_transactions_payment_type', ['payment_type'], unique=False)
        batch_op.create_index('ix_transactions_is_voided', ['is_voided'], unique=False)
        batch_op.create_index('ix_transactions_station_date', ['station_id', 'date'], unique=False)

    # ==========================================================================
    # 6. DAILY ANOMALIES
    # ==========================================================================
    op.create_table('daily_anomalies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('meter_total', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('trans_total', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('difference', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id'], name='fk_daily_anomalies_station_id_stations'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], name='fk_daily_anomalies_reviewed_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_daily_anomalies'),
        sa.UniqueConstraint('station_id', 'date', name='uq_daily_anomalies_station_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('daily_anomalies', schema=None) as batch_op:
        batch_op.create_index('ix_daily_anomalies_station_id', ['station_id'], unique=False)
        batch_op.create_index('ix_daily_anomalies_date', ['date'], unique=False)
        batch_op.create_index('ix_daily_anomalies_reviewed_at', ['reviewed_at'], unique=False)


def downgrade():
    for table in (
        'daily_anomalies',
        'transactions',
        'shift_reconciliations',
        'meter_readings',
        'shifts',
        'price_book_lines',
        'price_books',
        'daily_records',
        'nozzles',
        'users',
        'fuel_products',
        'stations',
    ):
        op.drop_table(table)
