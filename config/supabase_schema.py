"""Centralised Supabase table and column configuration.

The dashboard keeps three collections in Supabase: rework events, corrective
actions and knowledge entries.  Application code works with camelCase field
names (``defectType``, ``targetDate``...) while the database uses snake_case
columns.  Each table maps the logical field name to its column here so that
deployments can adjust naming conventions without modifying application
logic.  Fields without a mapping fall back to the identifier supplied by the
caller.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SupabaseTable:
    """Configuration for a Supabase table."""

    name: str
    columns: Mapping[str, str] = field(default_factory=dict)


# Default table and column mappings. These act as fallbacks if no environment
# overrides are supplied.
_DEFAULT_SUPABASE_SCHEMA: Dict[str, SupabaseTable] = {
    "reworks": SupabaseTable(
        name="reworks",
        columns={
            "id": "id",
            "date": "date",
            "station": "station",
            "defectType": "defect_type",
            "quantity": "quantity",
            "shift": "shift",
            "operatorGroup": "operator_group",
            "materialBatch": "material_batch",
            "severity": "severity",
            "suspectedRootCause": "suspected_root_cause",
            "remarks": "remarks",
            "createdAt": "created_at",
        },
    ),
    "actions": SupabaseTable(
        name="actions",
        columns={
            "id": "id",
            "defectType": "defect_type",
            "description": "description",
            "responsiblePerson": "responsible_person",
            "targetDate": "target_date",
            "status": "status",
            "effectivenessReview": "effectiveness_review",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        },
    ),
    "knowledge": SupabaseTable(
        name="knowledge",
        columns={
            "id": "id",
            "problem": "problem",
            "rootCause": "root_cause",
            "correctiveAction": "corrective_action",
            "beforeResults": "before_results",
            "afterResults": "after_results",
            "station": "station",
            "defectType": "defect_type",
            "dateClosed": "date_closed",
            "image": "image",
            "createdAt": "created_at",
        },
    ),
}


def _normalise_columns(columns: Any) -> Dict[str, str]:
    """Return a string-to-string column mapping from ``columns``."""

    if not isinstance(columns, Mapping):
        return {}
    return {
        str(logical): str(actual)
        for logical, actual in columns.items()
        if isinstance(logical, str) and isinstance(actual, str)
    }


def _load_schema_from_env() -> Dict[str, SupabaseTable]:
    """Build the Supabase schema from environment overrides."""

    schema = dict(_DEFAULT_SUPABASE_SCHEMA)

    raw_schema = os.getenv("SUPABASE_SCHEMA_JSON")
    if not raw_schema:
        return schema

    try:
        parsed = json.loads(raw_schema)
    except json.JSONDecodeError:
        return schema

    if not isinstance(parsed, Mapping):
        return schema

    for identifier, entry in parsed.items():
        if not isinstance(identifier, str) or not isinstance(entry, Mapping):
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue

        # Overrides only need to list the columns they rename.
        columns = dict(_table_columns_from(schema.get(identifier)))
        columns.update(_normalise_columns(entry.get("columns", {})))
        schema[identifier] = SupabaseTable(name=name, columns=columns)

    return schema


def _table_columns_from(table: SupabaseTable | None) -> Mapping[str, str]:
    return table.columns if table else {}


SUPABASE_SCHEMA: Dict[str, SupabaseTable] = _load_schema_from_env()


def table_name(identifier: str) -> str:
    """Return the configured Supabase table name for ``identifier``."""

    table = SUPABASE_SCHEMA.get(identifier)
    if table:
        return table.name
    return identifier


def column_name(table_identifier: str, column_identifier: str) -> str:
    """Return the configured column name for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table and column_identifier in table.columns:
        return table.columns[column_identifier]
    return column_identifier


def table_columns(table_identifier: str) -> Mapping[str, str]:
    """Return the configured column mapping for ``table_identifier``."""

    return _table_columns_from(SUPABASE_SCHEMA.get(table_identifier))


def to_supabase_payload(
    table_identifier: str, payload: Mapping[str, Any]
) -> Dict[str, Any]:
    """Return ``payload`` with keys mapped to Supabase column names.

    The ``id`` field is assigned by the database and is never sent.
    """

    columns = table_columns(table_identifier)
    return {
        columns.get(key, key): value
        for key, value in payload.items()
        if key != "id"
    }


def from_supabase_row(
    table_identifier: str, row: Mapping[str, Any] | None
) -> Dict[str, Any] | None:
    """Return ``row`` with Supabase column names mapped back to field names."""

    if row is None:
        return None
    reverse = {actual: logical for logical, actual in table_columns(table_identifier).items()}
    return {reverse.get(key, key): value for key, value in row.items()}
