from datetime import datetime, timezone
from typing import Any, Tuple

from flask import current_app

from config.supabase_schema import (
    column_name,
    from_supabase_row,
    table_columns,
    table_name,
    to_supabase_payload,
)

COLLECTIONS = ("reworks", "actions", "knowledge")

# Placeholder id that no row carries; PostgREST refuses unfiltered deletes.
_NIL_UUID = "00000000-0000-0000-0000-000000000000"


def _ensure_supabase_client() -> Tuple[Any, str | None]:
    """Return the configured Supabase client or an explanatory error.

    Returns:
        tuple: (client, error). When Supabase is unavailable the client will be
        ``None`` and ``error`` will contain a message explaining the failure.
    """

    supabase = current_app.config.get("SUPABASE")
    if not supabase or not hasattr(supabase, "table"):
        return None, (
            "Supabase client is not configured. Set SUPABASE_URL and SUPABASE_"
            "SERVICE_KEY to enable the rework store."
        )
    return supabase, None


def _resolve(collection: str) -> Tuple[Any, str | None]:
    if collection not in COLLECTIONS:
        return None, f"Unknown collection: {collection}"
    return _ensure_supabase_client()


def _rows(collection: str, response) -> list[dict]:
    return [from_supabase_row(collection, row) for row in getattr(response, "data", None) or []]


def fetch_records(collection: str) -> tuple[list[dict] | None, str | None]:
    """Return every record of ``collection``, newest created first.

    Returns:
        tuple[list | None, str | None]: (records, error)
    """

    supabase, error = _resolve(collection)
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name(collection))
            .select("*")
            .order(column_name(collection, "createdAt"), desc=True)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch {collection}: {exc}"
    return _rows(collection, response), None


def fetch_record(collection: str, record_id: Any) -> tuple[dict | None, str | None]:
    """Return the record identified by ``record_id`` or ``(None, None)``."""

    supabase, error = _resolve(collection)
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name(collection))
            .select("*")
            .eq(column_name(collection, "id"), record_id)
            .limit(1)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch {collection} record {record_id}: {exc}"
    rows = _rows(collection, response)
    return (rows[0] if rows else None), None


def insert_record(collection: str, record: dict) -> tuple[dict | None, str | None]:
    """Insert ``record``; the database assigns ``id`` and ``createdAt``."""

    supabase, error = _resolve(collection)
    if error:
        return None, error

    try:
        payload = to_supabase_payload(collection, record)
        response = supabase.table(table_name(collection)).insert(payload).execute()
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to insert {collection} record: {exc}"
    rows = _rows(collection, response)
    if not rows:
        return None, f"Failed to insert {collection} record."
    return rows[0], None


def insert_records_bulk(
    collection: str, rows: list[dict], batch_size: int = 50
) -> tuple[int | None, str | None]:
    """Insert ``rows`` in chunks of ``batch_size`` and return how many were sent.

    Supabase rejects very large payloads, so inserts are split.  The first
    failing chunk stops the import.
    """

    if batch_size <= 0:
        raise ValueError("batch_size must be greater than zero")

    supabase, error = _resolve(collection)
    if error:
        return None, error

    inserted = 0
    for offset in range(0, len(rows), batch_size):
        chunk = [to_supabase_payload(collection, row) for row in rows[offset:offset + batch_size]]
        try:
            supabase.table(table_name(collection)).insert(chunk).execute()
        except Exception as exc:  # pragma: no cover - network errors
            return inserted, f"Failed to insert {collection} batch at {offset}: {exc}"
        inserted += len(chunk)
    return inserted, None


def update_record(
    collection: str, record_id: Any, updates: dict
) -> tuple[dict | None, str | None]:
    """Apply ``updates`` to one record and return the stored result.

    Collections with an ``updatedAt`` column get it stamped automatically.
    Returns ``(None, None)`` when no record matched.
    """

    if not updates:
        return None, "No updates supplied"

    supabase, error = _resolve(collection)
    if error:
        return None, error

    payload = dict(updates)
    if "updatedAt" in table_columns(collection):
        payload["updatedAt"] = datetime.now(timezone.utc).isoformat()

    try:
        response = (
            supabase.table(table_name(collection))
            .update(to_supabase_payload(collection, payload))
            .eq(column_name(collection, "id"), record_id)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to update {collection} record {record_id}: {exc}"
    rows = _rows(collection, response)
    return (rows[0] if rows else None), None


def delete_record(collection: str, record_id: Any) -> tuple[bool, str | None]:
    """Delete one record.

    Returns ``(True, None)`` when a row was removed and ``(False, None)`` when
    no record matched ``record_id``.
    """

    supabase, error = _resolve(collection)
    if error:
        return False, error

    try:
        response = (
            supabase.table(table_name(collection))
            .delete()
            .eq(column_name(collection, "id"), record_id)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return False, f"Failed to delete {collection} record {record_id}: {exc}"
    return bool(getattr(response, "data", None)), None


def count_records(collection: str) -> tuple[int, str | None]:
    """Return the exact row count of ``collection`` (0 on failure)."""

    supabase, error = _resolve(collection)
    if error:
        return 0, error

    id_column = column_name(collection, "id")
    try:
        response = (
            supabase.table(table_name(collection))
            .select(id_column, count="exact")
            .limit(1)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return 0, f"Failed to count {collection}: {exc}"
    return getattr(response, "count", None) or 0, None


def clear_collection(collection: str) -> tuple[bool, str | None]:
    """Delete every record of ``collection``."""

    supabase, error = _resolve(collection)
    if error:
        return False, error

    try:
        (
            supabase.table(table_name(collection))
            .delete()
            .neq(column_name(collection, "id"), _NIL_UUID)
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return False, f"Failed to clear {collection}: {exc}"
    return True, None
