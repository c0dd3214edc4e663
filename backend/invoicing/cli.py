# Overview: Flask CLI command groups for tenant bootstrap, recurring sweeps and maintenance.

# backend/invoicing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#   Create a new tenant.
# - python -m flask tenants list
#   List all tenants with branch counts.
# - python -m flask tenants add-branch --tenant-id 1 --name "Main Street" --code "MAIN"
#   Add a branch to a tenant.
#
# Recurring invoices:
# - python -m flask recurring sweep --tenant-id 1 [--today 2026-10-19]
#   Generate due recurring invoices for a tenant.
#
# Customer metrics:
# - python -m flask customers recalc-metrics [--tenant-id 1]
#   Recompute spend metrics from invoices.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Branch, Tenant
from .services import customer_metrics_service, recurring_service
from .services.tenant_service import build_context
from .time_utils import parse_iso_date


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


# =============================================================================
# TENANTS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant and branch management."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "=" * 64)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Branches'}")
    click.echo("=" * 64)
    for tenant in tenants:
        branch_count = db.session.query(Branch).filter_by(tenant_id=tenant.id).count()
        active_str = "yes" if tenant.is_active else "no"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {branch_count}")
    click.echo("=" * 64 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    if db.session.query(Tenant).filter_by(code=code).first():
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        raise SystemExit(1)

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@tenants_group.command('add-branch')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', help='Branch code (unique within tenant)')
@with_appcontext
def add_branch_cli(tenant_id, name, code):
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        raise SystemExit(1)

    if db.session.query(Branch).filter_by(tenant_id=tenant_id, name=name).first():
        click.echo(f"FAIL Branch '{name}' already exists for this tenant")
        raise SystemExit(1)

    branch = Branch(tenant_id=tenant_id, name=name, code=code)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) for tenant '{tenant.name}'")


# =============================================================================
# RECURRING
# =============================================================================

@click.group('recurring')
def recurring_group():
    """Recurring invoice generation."""


@recurring_group.command('sweep')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--today', help='Business date (YYYY-MM-DD); defaults to UTC today')
@with_appcontext
def recurring_sweep_cli(tenant_id, today):
    try:
        ctx = build_context(tenant_id=tenant_id)
        result = recurring_service.run_recurring_sweep(ctx, today=parse_iso_date(today) if today else None)
    except (LedgerError, ValueError) as e:
        click.echo(f"FAIL {getattr(e, 'message', e)}")
        raise SystemExit(1)

    for invoice in result.created:
        click.echo(f"PASS Generated {invoice.invoice_number} (due {invoice.due_date.isoformat()})")
    for error in result.errors:
        click.echo(f"FAIL {error.invoice_number or error.invoice_id}: {error.reason}")
    click.echo(f"DONE {len(result.created)} created, {len(result.errors)} failed")
    if result.errors:
        raise SystemExit(2)


# =============================================================================
# CUSTOMERS
# =============================================================================

@click.group('customers')
def customers_group():
    """Customer maintenance."""


@customers_group.command('recalc-metrics')
@click.option('--tenant-id', type=int, help='Limit to one tenant')
@with_appcontext
def recalc_metrics_cli(tenant_id):
    summary = customer_metrics_service.recalculate_all_customer_metrics(tenant_id)
    click.echo(f"PASS Recalculated metrics for {summary.updated} customer(s)")
    if summary.failed:
        click.echo(f"FAIL {len(summary.failed)} customer(s) failed: {', '.join(map(str, summary.failed))}")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(recurring_group)
    app.cli.add_command(customers_group)
