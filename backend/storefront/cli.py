# Overview: Flask CLI command groups for bootstrap, tokens, and slip inspection.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo customer, an admin, three products and a cart.
#
# Users:
# - python -m flask users issue-token --user-id 1
#   Print a signed bearer token for the user (role taken from the user row).
#
# Payment slips:
# - python -m flask slips list [--status PENDING]
#   List non-deleted slips, newest first.
# - python -m flask slips audit
#   Report APPROVED slips whose line items can no longer be resolved
#   (their stock was never deducted). Exits with status 1 when any exist.

import sys
from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Cart, CartItem, Product, User
from .repositories import SqlAlchemySlipRepository
from .services import auth_service, slip_service
from .validation import parse_status_filter


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Idempotently create demo users, products and one cart."""
    admin = db.session.query(User).filter_by(email="admin@storefront.local").first()
    if not admin:
        admin = User(name="Admin", email="admin@storefront.local", role=auth_service.ROLE_ADMIN)
        db.session.add(admin)

    customer = db.session.query(User).filter_by(email="customer@storefront.local").first()
    if not customer:
        customer = User(name="Demo Customer", email="customer@storefront.local", role=auth_service.ROLE_USER)
        db.session.add(customer)
    db.session.flush()

    products = []
    for title, price, quantity in (
        ("Jasmine Rice 5kg", Decimal("189.00"), 40),
        ("Fish Sauce 700ml", Decimal("45.50"), 120),
        ("Coconut Milk 400ml", Decimal("32.00"), 80),
    ):
        product = db.session.query(Product).filter_by(title=title).first()
        if not product:
            product = Product(title=title, price=price, quantity=quantity, sold=0)
            db.session.add(product)
        products.append(product)
    db.session.flush()

    cart = db.session.query(Cart).filter_by(ordered_by_id=customer.id).first()
    if not cart:
        cart = Cart(ordered_by_id=customer.id, cart_total=0)
        db.session.add(cart)
        db.session.flush()
        total = Decimal("0")
        for product, count in zip(products, (1, 2, 3)):
            db.session.add(CartItem(cart_id=cart.id, product_id=product.id, count=count, price=product.price))
            total += product.price * count
        cart.cart_total = total

    db.session.commit()

    click.echo(f"PASS Admin: {admin.email} (ID: {admin.id})")
    click.echo(f"PASS Customer: {customer.email} (ID: {customer.id})")
    click.echo(f"PASS Cart {cart.id} total {cart.cart_total}")


@click.group('users')
def users_group():
    """User token commands."""


@users_group.command('issue-token')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def issue_token(user_id):
    """Print a signed bearer token for a user."""
    user = db.session.get(User, user_id)
    if not user:
        click.echo(f"FAIL User {user_id} not found", err=True)
        sys.exit(1)
    if not user.enabled:
        click.echo(f"FAIL User {user_id} is disabled", err=True)
        sys.exit(1)

    click.echo(auth_service.issue_token(user.id, user.role))


@click.group('slips')
def slips_group():
    """Payment slip inspection commands."""


@slips_group.command('list')
@click.option('--status', help='PENDING, APPROVED or REJECTED')
@with_appcontext
def list_slips(status):
    """List slips with their resolved line items."""
    repo = SqlAlchemySlipRepository(db.session)
    slips = slip_service.list_slips(repo, status=parse_status_filter(status))

    if not slips:
        click.echo("No slips found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Cart':<6} {'User':<25} {'Amount':>12} {'Status':<10} {'Deducted':<9} {'Items':<6} {'Source'}")
    click.echo("="*100)

    for slip in slips:
        user = slip["user_email"] or str(slip["user_id"])
        deducted = "Yes" if slip["stock_deducted"] else "No"
        items = sum(p["qty"] for p in slip["products"])
        cart = slip["cart_id"] if slip["cart_id"] is not None else "-"
        click.echo(
            f"{slip['id']:<6} {cart:<6} {user[:25]:<25} {slip['amount']:>12.2f} "
            f"{slip['status']:<10} {deducted:<9} {items:<6} {slip['products_source']}"
        )

    click.echo("="*100 + "\n")


@slips_group.command('audit')
@with_appcontext
def audit_slips():
    """Report approved slips that could not deduct any stock."""
    repo = SqlAlchemySlipRepository(db.session)
    unrecoverable = slip_service.find_unrecoverable_slips(repo)

    if not unrecoverable:
        click.echo("PASS Every approved slip has recoverable line items.")
        return

    click.echo(f"FAIL {len(unrecoverable)} approved slip(s) have no recoverable line items:")
    for slip in unrecoverable:
        click.echo(
            f"  slip {slip['id']}: cart {slip['cart_id']}, user {slip['user_id']}, "
            f"amount {slip['amount']:.2f}, created {slip['created_at']}"
        )
    click.echo("Correct product stock for these slips manually.")
    sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(slips_group)
