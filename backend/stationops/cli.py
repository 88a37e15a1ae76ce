# Overview: Flask CLI command groups for schema setup, shift reconciliation and anomaly scans.

# backend/stationops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stationops (PowerShell: $env:FLASK_APP="stationops").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
#
# Shifts:
# - python -m flask shifts list --status CLOSED --limit 20
#   List recent shifts with their reconciliation status.
# - python -m flask shifts reconcile --shift-id 7 [--save]
#   Compute a shift's reconciliation; --save upserts it.
# - python -m flask shifts lock --shift-id 7 --user-id 1
#   Lock a CLOSED shift.
#
# Daily anomalies (stations without shifts):
# - python -m flask anomalies check --station-id 2 --date 2026-01-05
#   Recompute one day and create/update/delete its anomaly record.
# - python -m flask anomalies scan --station-id 2 --days 30
#   Re-check the last N days.
# - python -m flask anomalies scan-all --days 7
#   Re-check every active station that does not use shifts.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Station, Shift
from .services import daily_anomaly_service, reconciliation_service, shift_service
from .services.daily_anomaly_service import DailyAnomalyError
from .services.reconciliation_service import ShiftNotFoundError
from .services.shift_service import ShiftError
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("Database tables created.")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Shift inspection, reconciliation and locking."""


@shifts_group.command('list')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED', 'LOCKED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(status, limit):
    """
    List recent shifts.

    Example:
        flask shifts list
        flask shifts list --status CLOSED
    """
    query = db.session.query(Shift)
    if status:
        query = query.filter_by(status=status)

    shifts = query.order_by(Shift.opened_at.desc()).limit(limit).all()

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Station':<20} {'Date':<12} {'#':<3} {'Status':<8} {'Variance':<12} {'Tier':<7} {'Note'}")
    click.echo("="*100)

    for shift in shifts:
        daily = shift.daily_record
        recon = shift.reconciliation

        variance_str = f"{recon.variance:+.2f}" if recon else "-"
        tier = recon.variance_status if recon else "-"
        note = shift.variance_note[:30] if shift.variance_note else "-"

        click.echo(f"{shift.id:<6} {daily.station.name[:20]:<20} {daily.date.isoformat():<12} "
                   f"{shift.shift_number:<3} {shift.status:<8} {variance_str:<12} {tier:<7} {note}")

    click.echo("="*100 + "\n")


@shifts_group.command('reconcile')
@click.option('--shift-id', type=int, required=True, help='Shift ID')
@click.option('--save', is_flag=True, help='Persist the result (upsert)')
@with_appcontext
def reconcile_shift_cli(shift_id, save):
    """Show (and optionally save) a shift's reconciliation."""
    try:
        result = reconciliation_service.calculate_for_shift(shift_id)
    except ShiftNotFoundError as exc:
        raise click.ClickException(str(exc))

    for key, value in result.to_dict().items():
        click.echo(f"{key:<24} {value}")

    if save:
        reconciliation_service.save_shift_reconciliation(shift_id)
        click.echo(f"Saved reconciliation for shift {shift_id}.")


@shifts_group.command('lock')
@click.option('--shift-id', type=int, required=True, help='Shift ID')
@click.option('--user-id', type=int, help='User performing the lock')
@with_appcontext
def lock_shift_cli(shift_id, user_id):
    try:
        shift = shift_service.lock_shift(shift_id, user_id)
    except (ShiftNotFoundError, ShiftError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Shift {shift.id} locked.")


# =============================================================================
# DAILY ANOMALIES
# =============================================================================

@click.group('anomalies')
def anomalies_group():
    """Daily meter-vs-transaction anomaly checks."""


@anomalies_group.command('check')
@click.option('--station-id', type=int, required=True, help='Station ID')
@click.option('--date', 'day', required=True, help='Business date (YYYY-MM-DD)')
@with_appcontext
def check_anomaly_cli(station_id, day):
    try:
        parsed = parse_iso_date(day)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")

    check = daily_anomaly_service.check_and_save_daily_anomaly(station_id, parsed)
    result = check.result
    click.echo(
        f"{parsed.isoformat()}: meters={result.meter_total:.2f}L "
        f"transactions={result.trans_total:.2f}L diff={result.difference:+.2f}L "
        f"-> {check.outcome.value}"
    )


@anomalies_group.command('scan')
@click.option('--station-id', type=int, required=True, help='Station ID')
@click.option('--days', type=int, default=30, show_default=True, help='Days to scan backwards')
@with_appcontext
def scan_anomalies_cli(station_id, days):
    try:
        summary = daily_anomaly_service.scan_historical_anomalies(station_id, days)
    except (DailyAnomalyError, ValueError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Scanned {summary['scanned']} day(s), found {summary['found']} anomalous.")


@anomalies_group.command('scan-all')
@click.option('--days', type=int, default=7, show_default=True, help='Days to scan backwards')
@with_appcontext
def scan_all_anomalies_cli(days):
    stations = (
        db.session.query(Station)
        .filter_by(is_active=True, uses_shifts=False)
        .order_by(Station.id)
        .all()
    )
    if not stations:
        click.echo("No stations without shifts.")
        return

    for station in stations:
        summary = daily_anomaly_service.scan_historical_anomalies(station.id, days)
        click.echo(f"{station.name:<30} scanned={summary['scanned']:<4} found={summary['found']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(anomalies_group)
