# Overview: Flask CLI command groups for bootstrap, demo data, and stock checks.

# backend/stockbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed [--email test@example.com] [--password password123]
#   Create a demo account with categories, products, customers and two invoices.
#
# Users:
# - python -m flask users create --name "Shop Owner" --email owner@example.com --password "secret123"
#   Create an account (prompts if options are omitted).
# - python -m flask users list
#
# Stock ledger:
# - python -m flask stock check [--user-id 1]
#   Report products whose stock_quantity disagrees with their movement ledger.
#   Exits with status 1 when discrepancies are found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Customer, User
from .services.auth_service import create_user
from .services import invoice_service, inventory_service, products_service
from .validation import ValidationError, ConflictError


DEMO_CATEGORIES = [
    ("Electronics", "Electronic devices and gadgets", "#3B82F6"),
    ("Clothing", "Apparel and accessories", "#10B981"),
    ("Books", "Books and publications", "#F59E0B"),
    ("Home & Garden", "Home improvement and garden supplies", "#EF4444"),
]

# (category index, name, description, sku, price, cost, stock, threshold, supplier)
DEMO_PRODUCTS = [
    (0, "Laptop Dell XPS 13", "High-performance laptop for professionals", "DELL-XPS-13-001", 89999, 65000, 25, 5, "Dell Inc."),
    (0, "iPhone 15 Pro", "Latest Apple smartphone", "APPLE-IP15-PRO", 119999, 80000, 15, 3, "Apple Inc."),
    (0, "Samsung Galaxy Tab S9", "Android tablet with S Pen", "SAMSUNG-TAB-S9", 64999, 45000, 8, 5, "Samsung Electronics"),
    (1, "Nike Air Force 1", "Classic white sneakers", "NIKE-AF1-WHITE", 12999, 7000, 50, 10, "Nike Inc."),
    (1, "Levi's 501 Jeans", "Original fit blue jeans", "LEVIS-501-BLUE", 8999, 4500, 75, 15, "Levi Strauss & Co."),
    (2, "The Great Gatsby", "Classic American novel by F. Scott Fitzgerald", "BOOK-GATSBY-001", 1299, 600, 100, 20, "Penguin Random House"),
    (2, "JavaScript: The Good Parts", "Programming book by Douglas Crockford", "BOOK-JS-GOOD", 2999, 1500, 35, 8, "O'Reilly Media"),
    (3, "Dyson V15 Vacuum", "Cordless vacuum cleaner", "DYSON-V15-001", 44999, 28000, 12, 3, "Dyson Ltd."),
    (3, "Garden Hose 50ft", "Heavy-duty garden hose", "HOSE-50FT-001", 3999, 2000, 30, 8, "Garden Supply Co."),
]

DEMO_CUSTOMERS = [
    ("John Smith", "john.smith@example.com", "+1-555-0123", "123 Main St, Anytown, USA"),
    ("Jane Doe", "jane.doe@example.com", "+1-555-0456", "456 Oak Ave, Another City, USA"),
    ("Bob Johnson", "bob.johnson@example.com", "+1-555-0789", "789 Pine Rd, Somewhere, USA"),
]


def seed_demo_data(*, email: str, password: str, name: str = "Test User") -> User:
    """
    Create a demo tenant through the service layer so that every stock change
    lands in the movement ledger. Raises ConflictError if the email exists.
    """
    user = create_user(name=name, email=email, password=password)

    categories = []
    for cat_name, description, color in DEMO_CATEGORIES:
        category = Category(user_id=user.id, name=cat_name, description=description, color=color)
        db.session.add(category)
        categories.append(category)
    db.session.commit()

    products = []
    for cat_index, prod_name, description, sku, price, cost, stock, threshold, supplier in DEMO_PRODUCTS:
        products.append(products_service.create_product(user_id=user.id, patch={
            "category_id": categories[cat_index].id,
            "name": prod_name,
            "description": description,
            "sku": sku,
            "price_cents": price,
            "cost_price_cents": cost,
            "stock_quantity": stock,
            "low_stock_threshold": threshold,
            "supplier": supplier,
        }))

    customers = []
    for cust_name, cust_email, phone, address in DEMO_CUSTOMERS:
        customer = Customer(user_id=user.id, name=cust_name, email=cust_email, phone=phone, address=address)
        db.session.add(customer)
        customers.append(customer)
    db.session.commit()

    def line(index: int, quantity: int) -> dict:
        return {
            "product_id": products[index]["id"],
            "quantity": quantity,
            "unit_price_cents": products[index]["price_cents"],
            "discount_cents": 0,
        }

    paid = invoice_service.create_invoice(user_id=user.id, data={
        "customer_id": customers[0].id,
        "items": [line(0, 1), line(3, 1), line(5, 2)],
        "tax_amount_cents": 10640,
        "discount_cents": 0,
    })
    invoice_service.update_invoice_status(invoice_id=paid.id, user_id=user.id, status="PAID")

    invoice_service.create_invoice(user_id=user.id, data={
        "customer_id": customers[1].id,
        "items": [line(1, 1), line(2, 1)],
        "tax_amount_cents": 14800,
        "discount_cents": 5000,
    })

    return user


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


@system_group.command('seed')
@click.option('--email', default='test@example.com', show_default=True, help='Demo account email')
@click.option('--password', default='password123', show_default=True, help='Demo account password')
@with_appcontext
def seed(email, password):
    """Create a demo account with catalog, customers and invoices."""
    try:
        user = seed_demo_data(email=email, password=password)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Seeded demo data for {user.email} (user id {user.id})")
    click.echo(f"     Categories: {len(DEMO_CATEGORIES)}  Products: {len(DEMO_PRODUCTS)}  Customers: {len(DEMO_CUSTOMERS)}  Invoices: 2")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(name, email, password):
    """
    Create a new account (tenant).

    Password: 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(name=name, email=email, password=password)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.name} ({user.email}) id={user.id}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all accounts."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<35} {active_str}")
    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('check')
@click.option('--user-id', type=int, help='Only check this account')
@with_appcontext
def stock_check(user_id):
    """Compare every product's stock_quantity against its movement ledger."""
    discrepancies = inventory_service.reconcile_stock(user_id=user_id)

    if not discrepancies:
        click.echo("PASS Stock ledger consistent")
        return

    click.echo(f"FAIL {len(discrepancies)} product(s) disagree with the ledger")
    click.echo(f"{'Product':<8} {'User':<6} {'SKU':<20} {'Stock':>8} {'Ledger':>8} {'Diff':>8}")
    for d in discrepancies:
        click.echo(
            f"{d.product_id:<8} {d.user_id:<6} {d.sku:<20} "
            f"{d.stock_quantity:>8} {d.ledger_quantity:>8} {d.difference:>+8}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
