# Overview: Flask CLI command groups for bootstrap, resident creation and stock import.

# backend/condostock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the building manager (CPF 00000000000 / admin123).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Residents:
# - python -m flask residents list
#   List residents with unit, role, status and tab balance.
# - python -m flask residents create --cpf 12345678900 --name "Ana" --apartment 302 --block A
#   Register a unit owner (initial password: first 4 CPF digits).
#
# Stock:
# - python -m flask stock import lots.csv
#   Bulk receive lots. Columns: barcode,name,price,batch_code,expiry_date,quantity

import csv

import click
from flask.cli import with_appcontext

from .errors import CondoStockError
from .extensions import db
from .services import inventory_service, residents_service

DEFAULT_ADMIN_CPF = "00000000000"
DEFAULT_ADMIN_PASSWORD = "admin123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Síndico', help='Display name of the building manager')
@with_appcontext
def init_system(name):
    """
    Initialize CondoStock: create missing tables and the building manager.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing CondoStock...")

    db.create_all()
    click.echo("PASS Tables ready")

    admin, created = residents_service.ensure_admin(
        cpf=DEFAULT_ADMIN_CPF,
        name=name,
        password=DEFAULT_ADMIN_PASSWORD,
        apartment="100",
        block="A",
    )
    if created:
        click.echo(f"PASS Created administrator: {admin.name} (CPF {admin.cpf})")
    else:
        click.echo(f"WARN  Administrator CPF {admin.cpf} already exists, skipping...")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   {DEFAULT_ADMIN_CPF} / {DEFAULT_ADMIN_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('residents')
def residents_group():
    """Resident inspection and registration."""


@residents_group.command('list')
@with_appcontext
def list_residents():
    """List all residents with unit and tab balance."""
    residents = residents_service.list_residents()

    if not residents:
        click.echo("No residents found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'CPF':<13} {'Name':<30} {'Unit':<10} {'Role':<10} {'Status':<10} {'Balance':>10}")
    click.echo("=" * 100)

    for r in residents:
        unit = f"{r.block}/{r.apartment}" if r.block or r.apartment else "-"
        balance = r.account.to_dict()["balance"] if r.account else "-"
        click.echo(f"{r.cpf:<13} {r.name[:30]:<30} {unit:<10} {r.role:<10} {r.status:<10} {balance:>10}")


@residents_group.command('create')
@click.option('--cpf', prompt=True, help='CPF (digits, punctuation is stripped)')
@click.option('--name', prompt=True, help='Full name')
@click.option('--apartment', default='', help='Apartment number')
@click.option('--block', default='', help='Block / tower')
@click.option('--role', type=click.Choice(['RESIDENT', 'ADMIN']), default='RESIDENT', help='Role')
@with_appcontext
def create_resident_cli(cpf, name, apartment, block, role):
    """Register a unit owner. Initial password: the first 4 digits of the CPF."""
    try:
        payload = {"cpf": cpf, "name": name, "role": role}
        if apartment:
            payload["apartment"] = apartment
        if block:
            payload["block"] = block
        resident = residents_service.create_resident(payload)
    except CondoStockError as e:
        raise click.ClickException(f"FAIL {e.message}")

    click.echo(f"PASS Created resident: {resident.name} (CPF {resident.cpf}, ID {resident.id})")
    click.echo("SECURITY Initial password is the first 4 digits of the CPF")


@click.group('stock')
def stock_group():
    """Stock receiving commands."""


@stock_group.command('import')
@click.argument('csv_file', type=click.File('r', encoding='utf-8-sig'))
@with_appcontext
def import_stock_cli(csv_file):
    """
    Bulk receive lots from a CSV file.

    Header row required: barcode,name,price,batch_code,expiry_date,quantity.
    The whole file is one transaction; any bad row aborts it.
    """
    reader = csv.DictReader(csv_file)
    missing = [c for c in inventory_service.IMPORT_COLUMNS if c not in (reader.fieldnames or [])]
    if missing:
        raise click.ClickException(f"FAIL Missing columns: {', '.join(missing)}")

    try:
        summary = inventory_service.import_stock_rows(list(reader))
    except CondoStockError as e:
        raise click.ClickException(f"FAIL {e.message}")

    click.echo(
        f"PASS Imported {summary['rows']} rows: "
        f"{summary['products_created']} new products, {summary['units_received']} units"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(residents_group)
    app.cli.add_command(stock_group)
