"""Validation and derived attributes for rework, action and knowledge records.

Request payloads are turned into clean camelCase records here before they
reach :mod:`rcis.db`.  Catalog-backed fields accept either a catalog value or
free text: a plain string is matched against the catalog and anything else
(or an explicit ``{"custom": "..."}`` object) becomes a custom value.  Both
resolve to a plain string before storage, so analytics never see a sentinel.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping, Union

from config.catalogs import ACTION_STATUSES, DEFAULT_CATALOGS, Catalogs
from rcis.analytics import parse_event_date

OVERDUE = "Overdue"
ALL = "All"
ACTION_FILTERS = (ALL, *ACTION_STATUSES, OVERDUE)


class RecordValidationError(ValueError):
    """Raised when a submitted record is incomplete or inconsistent."""


@dataclass(frozen=True)
class Known:
    value: str


@dataclass(frozen=True)
class Custom:
    text: str


Choice = Union[Known, Custom]


def parse_choice(raw: Any, catalog: Iterable[str]) -> Choice | None:
    """Interpret a submitted catalog field.

    Returns ``None`` for blank input.
    """

    if isinstance(raw, Mapping):
        text = str(raw.get("custom") or "").strip()
        return Custom(text) if text else None
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if text in tuple(catalog):
        return Known(text)
    return Custom(text)


def resolve_choice(choice: Choice | None) -> str | None:
    if isinstance(choice, Known):
        return choice.value
    if isinstance(choice, Custom):
        return choice.text
    return None


def _text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _date_text(payload: Mapping[str, Any], key: str, label: str) -> str | None:
    if payload.get(key) in (None, ""):
        return None
    parsed = parse_event_date(payload.get(key))
    if parsed is None:
        raise RecordValidationError(f"{label} must be a valid date (YYYY-MM-DD).")
    return parsed.isoformat()


def _quantity(value: Any) -> int:
    if value in (None, ""):
        return 1
    if isinstance(value, bool):
        raise RecordValidationError("Quantity must be a whole number.")
    try:
        quantity = int(str(value).strip())
    except ValueError:
        raise RecordValidationError("Quantity must be a whole number.") from None
    if quantity < 1:
        raise RecordValidationError("Quantity must be at least 1.")
    return quantity


def _require(record: Mapping[str, Any], labels: Mapping[str, str]) -> None:
    missing = [label for key, label in labels.items() if not record.get(key)]
    if missing:
        raise RecordValidationError(
            "Please fill all required fields: " + ", ".join(missing) + "."
        )


def _drop_unset(record: dict[str, Any], provided: Iterable[str] | None) -> dict[str, Any]:
    """Keep only the keys a partial update actually supplied."""

    if provided is None:
        return {key: value for key, value in record.items() if value is not None}
    provided = set(provided)
    return {key: value for key, value in record.items() if key in provided}


_REWORK_REQUIRED = {
    "date": "date",
    "station": "station",
    "defectType": "defect type",
    "shift": "shift",
    "severity": "severity",
}


def normalize_rework(
    payload: Mapping[str, Any],
    catalogs: Catalogs = DEFAULT_CATALOGS,
    *,
    partial: bool = False,
) -> dict[str, Any]:
    """Return a storable rework record built from ``payload``.

    With ``partial`` only the supplied fields are validated and returned.
    """

    record = {
        "date": _date_text(payload, "date", "Date"),
        "station": resolve_choice(parse_choice(payload.get("station"), catalogs.stations)),
        "defectType": resolve_choice(parse_choice(payload.get("defectType"), catalogs.defect_types)),
        "quantity": _quantity(payload.get("quantity")),
        "shift": _text(payload, "shift"),
        "operatorGroup": _text(payload, "operatorGroup"),
        "materialBatch": _text(payload, "materialBatch"),
        "severity": _text(payload, "severity"),
        "suspectedRootCause": _text(payload, "suspectedRootCause"),
        "remarks": _text(payload, "remarks"),
    }

    if record["severity"] and record["severity"] not in catalogs.severity_levels:
        raise RecordValidationError(
            "Severity must be one of: " + ", ".join(catalogs.severity_levels) + "."
        )
    if record["shift"] and record["shift"] not in catalogs.shifts:
        raise RecordValidationError("Shift must be one of: " + ", ".join(catalogs.shifts) + ".")

    if partial:
        updates = _drop_unset(record, payload.keys())
        _require(updates, {key: label for key, label in _REWORK_REQUIRED.items() if key in updates})
        return updates

    _require(record, _REWORK_REQUIRED)
    return _drop_unset(record, None)


_ACTION_REQUIRED = {
    "defectType": "defect type",
    "description": "description",
    "responsiblePerson": "responsible person",
    "targetDate": "target date",
    "status": "status",
}


def normalize_action(
    payload: Mapping[str, Any],
    catalogs: Catalogs = DEFAULT_CATALOGS,
    *,
    partial: bool = False,
) -> dict[str, Any]:
    record = {
        "defectType": resolve_choice(parse_choice(payload.get("defectType"), catalogs.defect_types)),
        "description": _text(payload, "description"),
        "responsiblePerson": _text(payload, "responsiblePerson"),
        "targetDate": _date_text(payload, "targetDate", "Target date"),
        "status": _text(payload, "status") or (None if partial else ACTION_STATUSES[0]),
        "effectivenessReview": _text(payload, "effectivenessReview"),
    }
    if record["status"] and record["status"] not in catalogs.action_statuses:
        raise RecordValidationError(
            "Status must be one of: " + ", ".join(catalogs.action_statuses) + "."
        )

    if partial:
        updates = _drop_unset(record, payload.keys())
        _require(updates, {key: label for key, label in _ACTION_REQUIRED.items() if key in updates})
        return updates

    _require(record, _ACTION_REQUIRED)
    return _drop_unset(record, None)


_KNOWLEDGE_REQUIRED = {
    "problem": "problem",
    "rootCause": "root cause",
    "correctiveAction": "corrective action",
}


def normalize_knowledge(
    payload: Mapping[str, Any],
    catalogs: Catalogs = DEFAULT_CATALOGS,
    *,
    partial: bool = False,
) -> dict[str, Any]:
    record = {
        "problem": _text(payload, "problem"),
        "rootCause": _text(payload, "rootCause"),
        "correctiveAction": _text(payload, "correctiveAction"),
        "beforeResults": _text(payload, "beforeResults"),
        "afterResults": _text(payload, "afterResults"),
        "station": resolve_choice(parse_choice(payload.get("station"), catalogs.stations)),
        "defectType": resolve_choice(parse_choice(payload.get("defectType"), catalogs.defect_types)),
        "dateClosed": _date_text(payload, "dateClosed", "Date closed"),
        "image": payload.get("image") or None,
    }

    if partial:
        updates = _drop_unset(record, payload.keys())
        _require(updates, {key: label for key, label in _KNOWLEDGE_REQUIRED.items() if key in updates})
        return updates

    _require(record, _KNOWLEDGE_REQUIRED)
    return _drop_unset(record, None)


def is_overdue(action: Mapping[str, Any], today: date) -> bool:
    """An action is overdue when it is not closed and its target date has passed."""

    if action.get("status") == "Closed":
        return False
    target = parse_event_date(action.get("targetDate"))
    return target is not None and target < today


def annotate_actions(actions: Iterable[Mapping[str, Any]], today: date) -> list[dict[str, Any]]:
    return [{**action, "overdue": is_overdue(action, today)} for action in actions or []]


def filter_actions(actions: Iterable[Mapping[str, Any]], status: str | None, today: date) -> list[Mapping[str, Any]]:
    """Apply the action list filter (``All``, a status, or ``Overdue``)."""

    actions = list(actions or [])
    if not status or status == ALL:
        return actions
    if status == OVERDUE:
        return [action for action in actions if is_overdue(action, today)]
    return [action for action in actions if action.get("status") == status]


def action_status_counts(actions: Iterable[Mapping[str, Any]], today: date) -> dict[str, int]:
    actions = list(actions or [])
    counts = {status: 0 for status in ACTION_STATUSES}
    for action in actions:
        if action.get("status") in counts:
            counts[action["status"]] += 1
    counts[OVERDUE] = sum(1 for action in actions if is_overdue(action, today))
    return counts


def _matches_text(record: Mapping[str, Any], query: str, fields: Iterable[str]) -> bool:
    needle = query.casefold()
    return any(needle in str(record.get(field) or "").casefold() for field in fields)


_REWORK_SEARCH_FIELDS = (
    "defectType",
    "station",
    "materialBatch",
    "suspectedRootCause",
    "remarks",
)


def filter_reworks(
    reworks: Iterable[Mapping[str, Any]],
    *,
    query: str | None = None,
    station: str | None = None,
    defect_type: str | None = None,
    severity: str | None = None,
    shift: str | None = None,
) -> list[Mapping[str, Any]]:
    """Filter the rework log and order it by event date, newest first.

    Records with unparseable dates sort last.
    """

    selected = [
        record
        for record in reworks or []
        if (not query or _matches_text(record, query, _REWORK_SEARCH_FIELDS))
        and (not station or record.get("station") == station)
        and (not defect_type or record.get("defectType") == defect_type)
        and (not severity or record.get("severity") == severity)
        and (not shift or record.get("shift") == shift)
    ]
    return sorted(
        selected,
        key=lambda record: parse_event_date(record.get("date")) or date.min,
        reverse=True,
    )


_KNOWLEDGE_SEARCH_FIELDS = ("problem", "rootCause", "correctiveAction")


def filter_knowledge(
    entries: Iterable[Mapping[str, Any]],
    *,
    query: str | None = None,
    station: str | None = None,
    defect_type: str | None = None,
) -> list[Mapping[str, Any]]:
    return [
        entry
        for entry in entries or []
        if (not query or _matches_text(entry, query, _KNOWLEDGE_SEARCH_FIELDS))
        and (not station or entry.get("station") == station)
        and (not defect_type or entry.get("defectType") == defect_type)
    ]
