# Overview: Flask CLI command groups for bootstrap, ledger maintenance, and backups.

# backend/agroledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger recompute-debts
#   Rebuild every client's total debt from its CREDIT sales and report drift.
#
# Backups:
# - python -m flask backup export backup.json
#   Write the whole dataset to a versioned JSON document.
# - python -m flask backup import backup.json --yes
#   Replace the whole dataset with a backup document.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services.ledger_engine import LedgerEngine


def _engine() -> LedgerEngine:
    return LedgerEngine.for_session(db.session, current_app.config)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
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

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Client ledger maintenance."""


@ledger_group.command('recompute-debts')
@with_appcontext
def recompute_debts():
    """Recompute every client's cached debt from its CREDIT sales."""
    drifted = _engine().recompute_all_debts()
    if drifted:
        click.echo(f"WARN {drifted} client(s) had drifted debt; corrected.")
    else:
        click.echo("PASS All client debts consistent.")


@click.group('backup')
def backup_group():
    """Full-dataset backup export and restore."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_backup(path):
    document = _engine().export_backup()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(document, fh, ensure_ascii=False, indent=2)
    click.echo(f"PASS Backup written to {path} (version {document['version']}).")


@backup_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_backup(path, yes):
    """
    DANGER: Replace ALL data with the contents of a backup file.
    """
    if not yes:
        click.confirm("WARN This will REPLACE ALL DATA. Are you sure?", abort=True)

    with open(path, encoding="utf-8") as fh:
        try:
            document = json.load(fh)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid JSON in {path}: {exc}")

    try:
        counts = _engine().import_backup(document)
    except LedgerError as exc:
        if exc.inconsistent:
            click.echo("FAIL Something went wrong and the data may be inconsistent. Please verify.", err=True)
        raise click.ClickException(exc.message)

    for key, count in counts.items():
        click.echo(f"  {key}: {count}")
    click.echo("PASS Backup imported.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(backup_group)
