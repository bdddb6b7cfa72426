# Overview: Flask CLI command groups for database bootstrap and ledger/shift inspection.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (e.g. FLASK_APP="kasir:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock show --company-id ACME [--warehouse-id WH-01]
#   List on-hand quantities.
# - python -m flask stock movements --company-id ACME --product-id P-001 --limit 20
#   Show recent movements, newest first.
# - python -m flask stock verify --company-id ACME
#   Check every stock record against the sum of its movements.
# - python -m flask stock opnames --company-id ACME --status in_progress
#   List stock opname documents with their counted lines.
#
# Shift inspection:
# - python -m flask shifts list --company-id ACME --status OPEN --limit 20
#   List recent shifts with variance.
# - python -m flask shifts summary --company-id ACME 42
#   Recompute the summary of shift 42.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import KasirError
from .services import shift_service, stock_ledger_service, stock_opname_service


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)

    from . import models  # noqa: F401

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('show')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@click.option('--warehouse-id', help='Filter by warehouse')
@with_appcontext
def show_stock_cli(company_id, warehouse_id):
    """
    List on-hand quantities.

    Example:
        flask stock show --company-id ACME
    """
    records = stock_ledger_service.list_stock(company_id, warehouse_id=warehouse_id)
    if not records:
        click.echo("No stock records found.")
        return

    click.echo(f"{'Warehouse':<16} {'Product':<24} {'Quantity':>10} {'Last Updated'}")
    click.echo("=" * 72)
    for r in records:
        click.echo(f"{r.warehouse_id:<16} {r.product_id:<24} {r.quantity:>10} {str(r.last_updated)[:19]}")


@stock_group.command('movements')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@click.option('--product-id', help='Filter by product')
@click.option('--warehouse-id', help='Filter by warehouse')
@click.option('--limit', type=int, default=20, help='Max movements to show')
@with_appcontext
def list_movements_cli(company_id, product_id, warehouse_id, limit):
    """Show recent stock movements, newest first."""
    movements = stock_ledger_service.list_movements(
        company_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        limit=limit,
    )
    if not movements:
        click.echo("No movements found.")
        return

    click.echo(f"{'ID':<6} {'Type':<11} {'Qty':>8} {'After':>8} {'Product':<20} {'Warehouse':<14} {'By':<12} {'At'}")
    click.echo("=" * 110)
    for m in movements:
        click.echo(
            f"{m.id:<6} {m.movement_type:<11} {m.quantity:>8} {m.quantity_after:>8} "
            f"{m.product_id:<20} {m.warehouse_id:<14} {m.created_by:<12} {str(m.created_at)[:19]}"
        )


@stock_group.command('verify')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@with_appcontext
def verify_stock_cli(company_id):
    """
    Conservation audit: every stock record must equal the sum of its movements.

    Exits with status 1 when a mismatch is found.
    """
    mismatches = stock_ledger_service.verify_projection(company_id)
    if not mismatches:
        click.echo("PASS Stock projection matches movement ledger")
        return

    for m in mismatches:
        click.echo(
            f"FAIL product={m['product_id']} warehouse={m['warehouse_id']} "
            f"ledger={m['ledger_quantity']} projected={m['projected_quantity']}"
        )
    raise SystemExit(1)


@stock_group.command('opnames')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@click.option('--status', type=click.Choice(['draft', 'in_progress', 'completed', 'cancelled']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max opnames to show')
@with_appcontext
def list_opnames_cli(company_id, status, limit):
    """List stock opname documents, newest first."""
    opnames = stock_opname_service.list_opnames(company_id, status=status, limit=limit)
    if not opnames:
        click.echo("No stock opnames found.")
        return

    click.echo(f"{'Number':<16} {'Warehouse':<14} {'Status':<12} {'Lines':>6} {'Counted':>8} {'Variance':>10} {'Created'}")
    click.echo("=" * 90)
    for opname in opnames:
        summary = opname.variance_summary()
        click.echo(
            f"{opname.opname_number:<16} {opname.warehouse_id:<14} {opname.status:<12} "
            f"{summary['total_items']:>6} {summary['counted_items']:>8} {summary['total_variance']:>10} "
            f"{str(opname.created_at)[:19]}"
        )


@click.group('shifts')
def shifts_group():
    """POS shift inspection commands."""


@shifts_group.command('list')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@click.option('--cashier-id', help='Filter by cashier')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(company_id, cashier_id, status, limit):
    """
    List shifts.

    Example:
        flask shifts list --company-id ACME --status OPEN
    """
    shifts = shift_service.list_shifts(company_id, status=status, cashier_id=cashier_id, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo(f"{'ID':<5} {'Register':<12} {'Cashier':<15} {'Status':<8} {'Opened':<20} {'Variance':>12} {'Notes'}")
    click.echo("=" * 100)
    for shift in shifts:
        variance_str = f"{shift.variance:+,}" if shift.variance is not None else "-"
        notes = shift.notes[:30] if shift.notes else "-"
        click.echo(
            f"{shift.id:<5} {shift.register_id:<12} {shift.cashier_id:<15} {shift.status:<8} "
            f"{str(shift.opened_at)[:19]:<20} {variance_str:>12} {notes}"
        )


@shifts_group.command('summary')
@click.option('--company-id', required=True, help='Company (tenant) ID')
@click.argument('shift_id', type=int)
@with_appcontext
def shift_summary_cli(company_id, shift_id):
    """Recompute and print a shift summary."""
    try:
        summary = shift_service.get_summary(company_id, shift_id)
    except KasirError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"Shift {summary.shift_id} ({summary.status})")
    click.echo(f"  Opening cash:       Rp {summary.opening_cash:,}")
    click.echo(f"  Transactions:       {summary.total_transactions}")
    click.echo(f"  Cash sales:         Rp {summary.cash_sales:,}")
    click.echo(f"  Card sales:         Rp {summary.card_sales:,}")
    click.echo(f"  Transfer sales:     Rp {summary.transfer_sales:,}")
    click.echo(f"  Other sales:        Rp {summary.other_sales:,}")
    click.echo(f"  Total sales:        Rp {summary.total_sales:,}")
    click.echo(f"  Expected cash:      Rp {summary.expected_cash:,}")
    if summary.actual_cash is not None:
        click.echo(f"  Closing (expected): Rp {summary.closing_cash:,}")
        click.echo(f"  Counted cash:       Rp {summary.actual_cash:,}")
        click.echo(f"  Variance:           Rp {summary.variance:+,}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(shifts_group)
