# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/eastgate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--branch "Main Branch"] [--code MAIN]
#   Idempotent bootstrap: creates tables, the default branch and the admin user.
# - python -m flask system seed-menu --branch-id 1
#   Load the standard restaurant menu into a branch (existing names are skipped).
#
# Users:
# - python -m flask users create --username chef --email chef@eastgate.local --role kitchen --branch-id 1
# - python -m flask users list [--branch-id 1]
#
# Kitchen:
# - python -m flask kitchen escalate [--branch-id 1]
#   Fire URGENT_ORDER notifications for orders that have just become urgent (cron-friendly).
#
# Stock:
# - python -m flask stock verify-ledger [--branch-id 1]
#   Replay every item's transactions and compare with the cached quantity.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .errors import EastgateError
from .extensions import db
from .models import Branch, MenuItem, StaffUser, StockItem
from .permissions import ROLES
from .services import kitchen_board_service, stock_service
from .services.auth_service import create_user, PasswordValidationError


DEFAULT_PASSWORD = "Password123!"

# (name, category, price_cents, prep_minutes, vegetarian, spicy, description)
DEFAULT_MENU = [
    ("Continental Breakfast", "Breakfast", 25000, 15, True, False, "Fresh fruits, croissants, coffee"),
    ("Full English Breakfast", "Breakfast", 35000, 20, False, False, "Eggs, bacon, sausage, beans, toast"),
    ("Avocado Toast", "Breakfast", 18000, 10, True, False, "Sourdough with avocado and poached eggs"),
    ("Grilled Tilapia", "Main Course", 45000, 25, False, False, "Fresh tilapia with vegetables and rice"),
    ("Chicken BBQ", "Main Course", 38000, 30, False, False, "Grilled chicken with BBQ sauce and fries"),
    ("Beef Steak", "Main Course", 55000, 35, False, False, "Beef steak with mashed potatoes"),
    ("Vegetable Stir Fry", "Main Course", 28000, 20, True, False, "Fresh vegetables in soy sauce with rice"),
    ("Goat Stew", "Main Course", 40000, 45, False, True, "Traditional goat stew"),
    ("Chicken Curry", "Main Course", 36000, 35, False, True, "Spicy chicken curry with rice"),
    ("Spring Rolls", "Appetizers", 15000, 10, True, False, "Crispy vegetable spring rolls"),
    ("Samosas", "Appetizers", 12000, 15, False, False, "Beef or vegetable samosas"),
    ("Chocolate Cake", "Desserts", 12000, 5, True, False, "Rich chocolate cake with ganache"),
    ("Fruit Salad", "Desserts", 10000, 5, True, False, "Fresh seasonal fruits"),
    ("Coffee", "Hot Beverages", 5000, 5, True, False, "Black coffee or with milk"),
    ("Tea", "Hot Beverages", 4000, 5, True, False, "Black tea, green tea, or herbal"),
    ("Fresh Juice", "Soft Drinks", 8000, 5, True, False, "Orange, mango, or pineapple juice"),
    ("Water", "Soft Drinks", 2000, 1, True, False, "Bottled water 500ml"),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Branch', help='Default branch name')
@click.option('--code', 'branch_code', default='MAIN', help='Default branch code')
@click.option('--password', default=DEFAULT_PASSWORD, help='Password for the default admin')
@with_appcontext
def init_system(branch_name, branch_code, password):
    """
    Create tables, the default branch and an admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Eastgate...")
    db.create_all()

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        branch = Branch(name=branch_name, code=branch_code, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    if db.session.query(StaffUser).filter_by(username="admin").first():
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user("admin", "admin@eastgate.local", password, "admin")
            click.echo("PASS Created user: admin (admin@eastgate.local) with role 'admin'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {e.message}")

    click.echo("DONE Eastgate initialized")


@system_group.command('seed-menu')
@click.option('--branch-id', type=int, required=True, help='Branch to seed')
@with_appcontext
def seed_menu(branch_id):
    """Load the standard menu into a branch."""
    if db.session.get(Branch, branch_id) is None:
        click.echo(f"FAIL Branch ID {branch_id} not found")
        return

    created = 0
    for name, category, price, prep, vegetarian, spicy, description in DEFAULT_MENU:
        if db.session.query(MenuItem).filter_by(branch_id=branch_id, name=name).first():
            continue
        db.session.add(MenuItem(
            branch_id=branch_id,
            name=name,
            category=category,
            price_cents=price,
            prep_time_minutes=prep,
            is_vegetarian=vegetarian,
            is_spicy=spicy,
            description=description,
            available=True,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Seeded {created} menu item(s) into branch {branch_id}")


@click.group('users')
def users_group():
    """Staff account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Branch (required for every role except admin)')
@with_appcontext
def create_user_cli(username, email, password, role, branch_id):
    """
    Create a staff account.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(username, email, password, role, branch_id)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except EastgateError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@click.option('--branch-id', type=int, default=None, help='Only users of this branch')
@with_appcontext
def list_users(branch_id):
    q = db.session.query(StaffUser)
    if branch_id is not None:
        q = q.filter(StaffUser.branch_id == branch_id)
    users = q.order_by(StaffUser.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.username:<20} {u.role:<14} branch={u.branch_id}  {status}")


@click.group('kitchen')
def kitchen_group():
    """Kitchen board commands."""


@kitchen_group.command('escalate')
@click.option('--branch-id', type=int, default=None, help='Limit to one branch')
@with_appcontext
def escalate_cli(branch_id):
    """Notify about orders that have just become urgent."""
    escalated = kitchen_board_service.escalate_urgent_orders(branch_id)
    for order in escalated:
        click.echo(f"URGENT {order.order_number} (branch {order.branch_id}, {order.status})")
    click.echo(f"DONE {len(escalated)} order(s) escalated")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('verify-ledger')
@click.option('--branch-id', type=int, default=None, help='Limit to one branch')
@with_appcontext
def verify_ledger(branch_id):
    """Replay every item's transactions and compare with the cached quantity."""
    q = db.session.query(StockItem)
    if branch_id is not None:
        q = q.filter(StockItem.branch_id == branch_id)

    mismatches = 0
    items = q.order_by(StockItem.id.asc()).all()
    for item in items:
        replayed = stock_service.replay_quantity(item.id)
        cached = Decimal(item.quantity or 0)
        if replayed != cached:
            mismatches += 1
            click.echo(f"FAIL {item.sku}: cached={cached} replayed={replayed}")

    if mismatches:
        click.echo(f"FAIL {mismatches} of {len(items)} item(s) do not match their ledger")
        raise SystemExit(1)
    click.echo(f"PASS {len(items)} item(s) match their ledger")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(kitchen_group)
    app.cli.add_command(stock_group)
