# Overview: Flask CLI command groups for bootstrap, demo data and user management.

# backend/branchpos/cli.py
# Run from backend/ with the package installed:
#   flask --app wsgi <group> <command> [options]
#
# System bootstrap:
# - flask --app wsgi system init-db
#   Create all tables (idempotent). Use "flask db upgrade" once migrations exist.
# - flask --app wsgi system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app wsgi system seed-demo [--password "Demo1234"]
#   Two branches, a small catalog, one user per role and opening stock.
#
# Users:
# - flask --app wsgi users create --name "Ana" --email ana@pos.local --role cashier --branch-id 1
#   Create a user (prompts for the password).
# - flask --app wsgi users list [--branch-id 1]

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Branch, Category, Product, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR, ROLE_WAREHOUSE, ROLES
from .services import auth_service, inventory_service, stock_service


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
    """Drop every table and create an empty schema. Development and tests only."""
    if not yes:
        click.confirm(f"Drop all tables in {db.engine.url.render_as_string(hide_password=True)}?", abort=True)

    db.drop_all()
    db.create_all()

    click.echo("PASS Database reset complete. Run 'flask system seed-demo' for demo data.")


DEMO_BRANCHES = [
    {"name": "Casa Matriz", "address": "Av. Providencia 1234, Santiago", "phone": "+56 2 2345 6789"},
    {"name": "Sucursal Centro", "address": "Huerfanos 850, Santiago", "phone": "+56 2 2987 6543"},
]

DEMO_PRODUCTS = [
    # barcode, name, price, cost, category
    ("7801234000011", "Agua Mineral 1.5L", 990, 450, "Bebidas"),
    ("7801234000028", "Bebida Cola 2L", 1990, 1100, "Bebidas"),
    ("7801234000035", "Pan Molde Integral", 2490, 1500, "Panaderia"),
    ("7801234000042", "Leche Entera 1L", 1150, 700, "Lacteos"),
    ("7801234000059", "Yogurt Frutilla", 450, 220, "Lacteos"),
]


@system_group.command('seed-demo')
@click.option('--password', default='Demo1234', show_default=True, help='Password for every seeded user')
@with_appcontext
def seed_demo(password):
    """
    Idempotent demo data: existing rows (by name/barcode/email) are reused.
    """
    db.create_all()

    branches = []
    for data in DEMO_BRANCHES:
        branch = db.session.query(Branch).filter_by(name=data["name"]).first()
        if branch is None:
            branch = Branch(**data)
            db.session.add(branch)
        branches.append(branch)
    db.session.commit()
    click.echo(f"PASS Branches: {', '.join(b.name for b in branches)}")

    categories = {}
    for *_, category_name in DEMO_PRODUCTS:
        if category_name in categories:
            continue
        category = db.session.query(Category).filter_by(name=category_name).first()
        if category is None:
            category = Category(name=category_name)
            db.session.add(category)
        categories[category_name] = category
    db.session.commit()

    products = []
    for barcode, name, price, cost, category_name in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(barcode=barcode).first()
        if product is None:
            product = Product(
                barcode=barcode,
                name=name,
                price=price,
                cost=cost,
                category_id=categories[category_name].id,
            )
            db.session.add(product)
        products.append(product)
    db.session.commit()
    click.echo(f"PASS Products: {len(products)}")

    main_branch = branches[0]
    demo_users = [
        ("Administrador", "admin@pos.local", ROLE_ADMIN, None),
        ("Supervisor Matriz", "supervisor@pos.local", ROLE_SUPERVISOR, main_branch.id),
        ("Cajero Matriz", "cajero@pos.local", ROLE_CASHIER, main_branch.id),
        ("Bodega", "bodega@pos.local", ROLE_WAREHOUSE, main_branch.id),
    ]
    admin = None
    for name, email, role, branch_id in demo_users:
        user = db.session.query(User).filter_by(email=email).first()
        if user is None:
            user = auth_service.create_user(
                name=name, email=email, password=password, role=role, branch_id=branch_id,
            )
            click.echo(f"PASS Created {role}: {email}")
        if role == ROLE_ADMIN:
            admin = user

    seeded = 0
    for branch in branches:
        for product in products:
            if inventory_service.get_record(product.id, branch.id) is not None:
                continue
            stock_service.receive_stock(
                product_id=product.id,
                branch_id=branch.id,
                quantity=50,
                user_id=admin.id,
                lot="DEMO",
                reason="Demo opening stock",
            )
            seeded += 1
    click.echo(f"PASS Opening stock receipts: {seeded}")
    click.echo(f"SECURITY Demo password for every user: {password}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--branch-id', type=int, help='Branch (required for every role but admin)')
@with_appcontext
def create_user_cli(name, email, password, role, branch_id):
    """
    Create a staff user.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = auth_service.create_user(
            name=name,
            email=email,
            password=password,
            role=role,
            branch_id=branch_id,
        )
    except PosError as e:
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@with_appcontext
def list_users(branch_id):
    """List all users with role and branch."""
    query = db.session.query(User)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)

    users = query.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    row = "{:<5} {:<25} {:<30} {:<12} {:<18} {}"
    click.echo(row.format("ID", "Name", "Email", "Role", "Branch", "Active"))
    for user in users:
        click.echo(row.format(
            user.id, user.name, user.email, user.role,
            user.branch.name if user.branch else "-",
            "yes" if user.is_active else "no",
        ))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
