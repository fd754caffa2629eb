# Overview: Flask CLI command groups for bootstrap, catalog seeding and stocktake operations.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Product catalog:
# - python -m flask products create --name "Sữa tươi 1L" --sku SUA-1L --barcode 8934567890123 --stock 50
#   Create a product with an initial stock level.
# - python -m flask products list [--query sua] [--page 2]
#   Paginated product listing with live stock.
#
# Stocktakes:
# - python -m flask stocktakes create [--branch "Kho 1"] [--staff "An"] [--notes "..."] [--tags "..."]
# - python -m flask stocktakes list [--status draft]
# - python -m flask stocktakes show 1
# - python -m flask stocktakes attach 1 42
# - python -m flask stocktakes count 1 42 45 [--reason "Hỏng"]
# - python -m flask stocktakes balance 1 --by alice

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product


def _service():
    return current_app.extensions["stocktake_service"]


def _echo_result(result, success_text: str | None = None) -> None:
    if not result.success:
        raise click.ClickException(result.error)
    if success_text:
        click.echo(f"PASS {success_text}")
    elif result.message:
        click.echo(f"PASS {result.message}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created")


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

    click.echo("PASS Database reset complete")


@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--sku', default=None, help='SKU')
@click.option('--barcode', default=None, help='Barcode')
@click.option('--stock', type=int, default=0, show_default=True, help='Initial stock quantity')
@with_appcontext
def create_product_cli(name, sku, barcode, stock):
    """Create a product."""
    pool = current_app.extensions["stocktake_pool"]
    with pool.transaction() as s:
        product = Product(name=name.strip(), sku=sku, barcode=barcode, stock_quantity=stock)
        s.add(product)
        s.flush()
        product_id = product.id
    click.echo(f"PASS Created product {name!r} (ID: {product_id}, stock: {stock})")


@products_group.command('list')
@click.option('--query', 'query', default=None, help='Filter by name / SKU / barcode')
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--per-page', type=int, default=20, show_default=True)
@with_appcontext
def list_products_cli(query, page, per_page):
    """List products with live stock."""
    result = _service().list_products_paged(page=page, page_size=per_page, query=query)
    _echo_result(result)

    if not result.data:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Name':<35} {'SKU':<15} {'Barcode':<18} {'Stock':>8}")
    click.echo("="*90)
    for p in result.data:
        click.echo(
            f"{p['id']:<6} {p['name'][:35]:<35} {(p['sku'] or '-'):<15} "
            f"{(p['barcode'] or '-'):<18} {p['stock_quantity']:>8}"
        )
    pagination = result.meta["pagination"]
    click.echo(f"\nPage {pagination['page']}/{pagination['total_pages']} ({pagination['total']} products)")


@click.group('stocktakes')
def stocktakes_group():
    """Stocktake (inventory count) commands."""


@stocktakes_group.command('create')
@click.option('--branch', default=None, help='Branch name')
@click.option('--staff', default=None, help='Staff name')
@click.option('--notes', default=None)
@click.option('--tags', default=None)
@with_appcontext
def create_stocktake_cli(branch, staff, notes, tags):
    """Create a draft stocktake session."""
    result = _service().create_session(branch_name=branch, staff_name=staff, notes=notes, tags=tags)
    _echo_result(result, f"Created stocktake {result.data['session_code']} (ID: {result.data['session_id']})"
                 if result.success else None)


@stocktakes_group.command('list')
@click.option('--status', default=None, help='draft, in_progress, completed or balanced')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_stocktakes_cli(status, limit):
    """List recent stocktake sessions."""
    result = _service().list_sessions(status=status, limit=limit)
    _echo_result(result)

    if not result.data:
        click.echo("No stocktakes found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Code':<20} {'Branch':<25} {'Staff':<20} {'Status':<12} {'Balanced by'}")
    click.echo("="*100)
    for row in result.data:
        click.echo(
            f"{row['id']:<5} {row['session_code']:<20} {row['branch_name'][:25]:<25} "
            f"{row['staff_name'][:20]:<20} {row['status']:<12} {row['balanced_by'] or '-'}"
        )


@stocktakes_group.command('show')
@click.argument('session_id', type=int)
@with_appcontext
def show_stocktake_cli(session_id):
    """Show a stocktake with its items."""
    result = _service().get_session_detail(session_id)
    _echo_result(result)

    session = result.data["session"]
    summary = result.data["summary"]
    click.echo(f"\n{session['session_code']}  [{session['status']}]  {session['branch_name']} / {session['staff_name']}")
    click.echo("-"*90)
    click.echo(f"{'Product':<35} {'System':>8} {'Actual':>8} {'Diff':>8}  {'Status':<12} {'Reason'}")
    for item in result.data["items"]:
        actual = "-" if item["actual_quantity"] is None else item["actual_quantity"]
        diff = "-" if item["difference"] is None else item["difference"]
        click.echo(
            f"{item['product_name'][:35]:<35} {item['system_quantity']:>8} {actual:>8} {diff:>8}  "
            f"{item['status']:<12} {item['reason'] or ''}"
        )
    click.echo("-"*90)
    click.echo(
        f"Items: {summary['total_items']}  counted: {summary['counted']}  pending: {summary['pending']}  "
        f"matched: {summary['matched']}  discrepancy: {summary['discrepancy']}"
    )


@stocktakes_group.command('attach')
@click.argument('session_id', type=int)
@click.argument('product_id', type=int)
@with_appcontext
def attach_product_cli(session_id, product_id):
    """Attach a product to a stocktake."""
    result = _service().attach_product(session_id, product_id)
    _echo_result(result, f"Attached product {product_id} (system quantity: "
                         f"{result.data['system_quantity']})" if result.success else None)


@stocktakes_group.command('count')
@click.argument('session_id', type=int)
@click.argument('product_id', type=int)
@click.argument('actual_quantity', type=int)
@click.option('--reason', default=None)
@click.option('--notes', default=None)
@with_appcontext
def record_count_cli(session_id, product_id, actual_quantity, reason, notes):
    """Record a counted quantity."""
    result = _service().record_count(session_id, product_id, actual_quantity, reason=reason, notes=notes)
    _echo_result(result, f"Recorded {actual_quantity} for product {product_id} "
                         f"({result.data['status']}, difference {result.data['difference']})"
                 if result.success else None)


@stocktakes_group.command('balance')
@click.argument('session_id', type=int)
@click.option('--by', 'balanced_by', required=True, help='Who is balancing the stock')
@with_appcontext
def balance_stocktake_cli(session_id, balanced_by):
    """Write counted quantities to product stock."""
    _echo_result(_service().balance(session_id, balanced_by))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stocktakes_group)
