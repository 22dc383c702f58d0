# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bookstore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.
#
# Users:
# - python -m flask users create-admin --username admin --password "Password123!"
#   Create an admin account (prompts if options are omitted).
# - python -m flask users list
# - python -m flask users promote alice
#
# Catalog:
# - python -m flask catalog seed
#   Insert a small demo catalog (skipped if books already exist).
# - python -m flask catalog low-stock
#   List books at or below their low-stock threshold.
# - python -m flask catalog reconcile
#   Compare each book's stock with the sum of its ledger entries.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Book
from .services import auth_service, catalog_service, inventory_service, session_service
from .services.auth_service import PasswordValidationError
from .validation import ConflictError


@click.group('system')
def system_group():
    """Database bootstrap and maintenance commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} stale session(s)")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(username, password):
    """Create an admin account."""
    try:
        user = auth_service.create_user(username, password, is_admin=True)
    except (PasswordValidationError, ConflictError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin '{user.username}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    users = auth_service.list_users()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        flags = []
        if user.is_admin:
            flags.append("admin")
        if not user.is_active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{user.id:>5}  {user.username}{suffix}")


@users_group.command('promote')
@click.argument('username')
@click.option('--revoke', is_flag=True, help='Remove admin access instead of granting it')
@with_appcontext
def promote_user(username, revoke):
    """Grant (or with --revoke, remove) admin access."""
    user = auth_service.get_user_by_username(username)
    if user is None:
        raise click.ClickException(f"User '{username}' not found")
    auth_service.set_admin(user.id, not revoke)
    state = "revoked from" if revoke else "granted to"
    click.echo(f"PASS Admin access {state} '{username}'")


@click.group('catalog')
def catalog_group():
    """Catalog and inventory inspection commands."""


DEMO_CATALOG = [
    ("Fiction", "Novels and short stories", [
        ("Pride and Prejudice", "Jane Austen", 899, 12),
        ("Moby-Dick", "Herman Melville", 1199, 4),
    ]),
    ("Science", "Popular science", [
        ("A Brief History of Time", "Stephen Hawking", 1599, 7),
        ("The Selfish Gene", "Richard Dawkins", 1450, 2),
    ]),
]


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert a demo catalog through the catalog service so the ledger is populated."""
    if db.session.query(Book).count():
        click.echo("WARN  Books already exist, skipping seed")
        return

    created = 0
    for cat_name, cat_desc, books in DEMO_CATALOG:
        category = catalog_service.create_category(patch={"name": cat_name, "description": cat_desc})
        for title, author, price_cents, stock in books:
            catalog_service.create_book(patch={
                "title": title,
                "author": author,
                "price_cents": price_cents,
                "stock": stock,
                "category_id": category.id,
            })
            created += 1
    click.echo(f"PASS Seeded {created} books in {len(DEMO_CATALOG)} categories")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    books = catalog_service.low_stock_books()
    if not books:
        click.echo("No books at or below their low-stock threshold")
        return
    for book in books:
        click.echo(f"{book.id:>5}  stock={book.stock:<4} threshold={book.low_stock_threshold:<4} {book.title}")


@catalog_group.command('reconcile')
@with_appcontext
def reconcile():
    """
    Check that each book's stock equals the sum of its ledger entries.

    Exits non-zero when any book drifts.
    """
    drifted = 0
    for book in db.session.query(Book).order_by(Book.id).all():
        ledger_total = inventory_service.net_change(book.id)
        if ledger_total != book.stock:
            drifted += 1
            click.echo(f"FAIL book {book.id} '{book.title}': stock={book.stock} ledger={ledger_total}")
    if drifted:
        raise click.ClickException(f"{drifted} book(s) out of step with the inventory ledger")
    click.echo("PASS Stock matches the inventory ledger for every book")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
