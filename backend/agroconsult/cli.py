# Overview: Flask CLI command groups for bootstrap and session maintenance.

# backend/agroconsult/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="agroconsult:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create an admin, an analyst, one company with a sub-user, a plan, a stock and items.
#
# Sessions:
# - python -m flask sessions issue --principal-type company_user --principal-id <id>
#   Issue a bearer token for local testing (prints the plaintext token once).
# - python -m flask sessions cleanup
#   Delete expired/revoked sessions older than 30 days.

import json

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .identity import VALID_PRINCIPAL_TYPES
from .models import (
    Company,
    CompanyUser,
    InventoryDestination,
    InventoryItem,
    InventoryStock,
    Subscription,
    SubscriptionPlan,
    User,
)
from .services import session_service
from .services.plan_permission_service import DEFAULT_PLAN_CAPABILITIES


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to add demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Idempotently create a small demo tenant (keyed by email)."""
    admin = db.session.query(User).filter_by(email="admin@agroconsult.local").first()
    if not admin:
        admin = User(name="Admin", email="admin@agroconsult.local", role="admin")
        db.session.add(admin)

    analyst = db.session.query(User).filter_by(email="analyst@agroconsult.local").first()
    if not analyst:
        analyst = User(name="Ana Analyst", email="analyst@agroconsult.local", role="analyst")
        db.session.add(analyst)
    db.session.flush()

    company = db.session.query(Company).filter_by(email="farm@agroconsult.local").first()
    if not company:
        company = Company(
            name="Demo Farm",
            company_name="Demo Farm Ltda",
            email="farm@agroconsult.local",
            analyst_id=analyst.id,
        )
        db.session.add(company)
        db.session.flush()

        plan = SubscriptionPlan(name="Complete", permissions=json.dumps(dict(DEFAULT_PLAN_CAPABILITIES)))
        db.session.add(plan)
        db.session.flush()
        db.session.add(Subscription(company_id=company.id, plan_id=plan.id, status="active"))

        db.session.add(CompanyUser(company_id=company.id, name="Field Operator", email="operator@agroconsult.local"))

        stock = InventoryStock(company_id=company.id, analyst_id=analyst.id, name="Main Warehouse", location="HQ")
        db.session.add(stock)
        db.session.flush()

        db.session.add(InventoryDestination(company_id=company.id, name="North Field"))
        db.session.add_all([
            InventoryItem(stock_id=stock.id, item_name="Fertilizer NPK 10-10-10", unit="kg",
                          current_quantity=500, minimum_quantity=100, unit_cost=4.5),
            InventoryItem(stock_id=stock.id, item_name="Corn Seed", unit="bag",
                          current_quantity=40, minimum_quantity=10, unit_cost=310),
        ])

    db.session.commit()
    operator = db.session.query(CompanyUser).filter_by(email="operator@agroconsult.local").first()

    click.echo("PASS Demo data ready")
    click.echo(f"   admin:        user {admin.id}")
    click.echo(f"   analyst:      user {analyst.id}")
    click.echo(f"   company:      company {company.id}")
    if operator:
        click.echo(f"   company user: company_user {operator.id}")


@click.group('sessions')
def sessions_group():
    """Session token commands."""


@sessions_group.command('issue')
@click.option('--principal-type', type=click.Choice(sorted(VALID_PRINCIPAL_TYPES)), required=True)
@click.option('--principal-id', required=True)
@with_appcontext
def issue_session_cli(principal_type, principal_id):
    """Issue a bearer token for a principal (local testing)."""
    try:
        session, token = session_service.issue_session(principal_type, principal_id)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Session {session.id} expires {session.expires_at}")
    click.echo(token)


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sessions_group)
