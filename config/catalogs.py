"""Fixed vocabularies used by the rework forms and the analytics layer.

The lists below are the plant defaults.  A JSON file with the same keys
(``stations``, ``defect_types``...) can replace any of them; keys that are
missing or malformed in the file keep their default value.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

STATIONS = ("CVS", "Loom", "IGBT", "Sub Assembly", "Testing")

DEFECT_TYPES = (
    "Routing Defect",
    "Crimp Issue",
    "Soldering Defect",
    "Wiring Error",
    "Component Mismatch",
    "Missing Component",
    "Insulation Failure",
    "Connector Damage",
    "Torque Defect",
    "Label Error",
    "Visual Defect",
    "Mechanical Damage",
    "Contamination",
    "Assembly Error",
    "Testing Failure",
    "Dimension Error",
)

SEVERITY_LEVELS = ("Low", "Medium", "High")

SHIFTS = ("A (First)", "B (Second)", "General")

OPERATOR_GROUPS = ("Group A", "Group B", "Group C", "Group D")

ACTION_STATUSES = ("Open", "In Progress", "Closed")

ROLES = ("Admin", "Viewer")

MATERIAL_BATCHES = (
    "BATCH-2026-001",
    "BATCH-2026-002",
    "BATCH-2026-003",
    "BATCH-2026-004",
    "BATCH-2026-005",
    "BATCH-2026-006",
)


@dataclass(frozen=True)
class Catalogs:
    """Bundle of the vocabularies a deployment uses."""

    stations: tuple[str, ...] = STATIONS
    defect_types: tuple[str, ...] = DEFECT_TYPES
    severity_levels: tuple[str, ...] = SEVERITY_LEVELS
    shifts: tuple[str, ...] = SHIFTS
    operator_groups: tuple[str, ...] = OPERATOR_GROUPS
    material_batches: tuple[str, ...] = MATERIAL_BATCHES
    action_statuses: tuple[str, ...] = ACTION_STATUSES

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "stations": list(self.stations),
            "defectTypes": list(self.defect_types),
            "severityLevels": list(self.severity_levels),
            "shifts": list(self.shifts),
            "operatorGroups": list(self.operator_groups),
            "materialBatches": list(self.material_batches),
            "actionStatuses": list(self.action_statuses),
        }


DEFAULT_CATALOGS = Catalogs()

# Action statuses drive the overdue rule and are not overridable.
_OVERRIDABLE = (
    "stations",
    "defect_types",
    "severity_levels",
    "shifts",
    "operator_groups",
    "material_batches",
)


def _string_tuple(value: Any) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    items = tuple(str(item).strip() for item in value if str(item).strip())
    return items or None


def catalogs_from_mapping(data: Mapping[str, Any]) -> Catalogs:
    """Return :data:`DEFAULT_CATALOGS` with the valid entries of ``data`` applied."""

    overrides = {}
    for key in _OVERRIDABLE:
        items = _string_tuple(data.get(key))
        if items:
            overrides[key] = items
    return replace(DEFAULT_CATALOGS, **overrides)


def load_catalogs(path: str | Path | None) -> Catalogs:
    """Load catalog overrides from the JSON file at ``path``.

    A missing path, unreadable file or non-object document yields the
    defaults.
    """

    if not path:
        return DEFAULT_CATALOGS
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        return DEFAULT_CATALOGS
    if not isinstance(data, Mapping):
        return DEFAULT_CATALOGS
    return catalogs_from_mapping(data)
