# Overview: Full-dataset backup export and destructive restore.

"""
Backup Exporter/Importer

Export is a point-in-time snapshot of every table, no filtering or paging.

Import is destructive: it wipes every table child-first and reloads
parent-first so foreign keys are satisfied at every insert. The whole
restore runs as one unit of work; a failed write rolls it back and is
reported as ConsistencyDriftError so the caller tells the user to verify.

Record ids are preserved. version_id counters restart at 1.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import DateTime, text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConsistencyDriftError, LedgerError, ValidationError
from ..models import Client, Expense, PaymentRecord, Product, Sale, SaleItem, Setting
from agroledger.time_utils import parse_iso_datetime, to_utc_z, utcnow
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_VERSION = "2.0"

# (document key, model) in parent-to-child order
RESTORE_ORDER = (
    ("clients", Client),
    ("products", Product),
    ("sales", Sale),
    ("saleItems", SaleItem),
    ("expenses", Expense),
    ("payments", PaymentRecord),
    ("settings", Setting),
)

# child-to-parent
WIPE_ORDER = (SaleItem, PaymentRecord, Expense, Sale, Product, Client, Setting)

SKIPPED_COLUMNS = {"version_id"}


def export_backup(store: LedgerStore, version: str = DEFAULT_BACKUP_VERSION) -> dict:
    """Serialize every table into one versioned document."""
    document = {key: [row.to_dict() for row in store.all_rows(model)] for key, model in RESTORE_ORDER}
    document["timestamp"] = to_utc_z(utcnow())
    document["version"] = version
    logger.info(
        "Backup exported: %s",
        ", ".join(f"{key}={len(document[key])}" for key, _ in RESTORE_ORDER),
    )
    return document


def validate_document(document, supported_versions) -> None:
    if not isinstance(document, dict):
        raise ValidationError("Backup document must be a JSON object")

    version = document.get("version")
    if version is None or str(version).strip() == "":
        raise ValidationError("Backup document has no version marker")
    if str(version) not in supported_versions:
        raise ValidationError(
            f"Unsupported backup version: {version}",
            details={"supported": sorted(supported_versions)},
        )

    for key, _ in RESTORE_ORDER:
        rows = document.get(key, [])
        if rows is None:
            continue
        if not isinstance(rows, list):
            raise ValidationError(f"Backup field '{key}' must be a list")
        for i, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ValidationError(f"Backup field '{key}' row {i + 1} must be an object")


def _row_kwargs(model, record: dict) -> dict:
    kwargs = {}
    for column in model.__table__.columns:
        key = column.key
        if key in SKIPPED_COLUMNS or key not in record:
            continue
        value = record[key]
        if isinstance(column.type, DateTime) and value is not None and not isinstance(value, datetime):
            try:
                value = parse_iso_datetime(str(value))
            except ValueError:
                raise ValidationError(f"{model.__tablename__}.{key} must be an ISO-8601 datetime")
        kwargs[key] = value
    return kwargs


def _reset_sequences(store: LedgerStore) -> None:
    # SQLite derives the next id from the table; PostgreSQL sequences must be moved past restored ids.
    if store.session.get_bind().dialect.name != "postgresql":
        return
    for _, model in RESTORE_ORDER:
        if model is Setting:
            continue
        table = model.__tablename__
        store.session.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
        ))


def import_backup(store: LedgerStore, document: dict, supported_versions=frozenset({DEFAULT_BACKUP_VERSION})) -> dict:
    """
    Replace the whole dataset with the contents of a backup document.

    Raises:
        ValidationError: missing/unknown version or malformed document (nothing written)
        ConsistencyDriftError: a wipe or reload write failed (rolled back)

    Returns the number of rows restored per document key.
    """
    validate_document(document, supported_versions)
    rows_by_key = {key: [_row_kwargs(model, r) for r in (document.get(key) or [])] for key, model in RESTORE_ORDER}

    counts: dict[str, int] = {}
    step = "wipe"
    try:
        with store.atomic():
            for model in WIPE_ORDER:
                store.delete_all(model)
            store.flush()
            store.session.expunge_all()

            for key, model in RESTORE_ORDER:
                step = key
                for kwargs in rows_by_key[key]:
                    store.add(model(**kwargs))
                store.flush()
                counts[key] = len(rows_by_key[key])

            _reset_sequences(store)
    except (SQLAlchemyError, LedgerError) as exc:
        logger.critical("Backup import failed during %s; dataset must be verified", step, exc_info=True)
        raise ConsistencyDriftError(
            f"Backup import failed while restoring {step}",
            details={"step": step, "restored": counts},
        ) from exc

    logger.info("Backup imported: %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
