from datetime import date

import pytest

from config.catalogs import DEFECT_TYPES, catalogs_from_mapping
from rcis.records import (
    Custom,
    Known,
    RecordValidationError,
    action_status_counts,
    annotate_actions,
    filter_actions,
    filter_knowledge,
    filter_reworks,
    is_overdue,
    normalize_action,
    normalize_knowledge,
    normalize_rework,
    parse_choice,
    resolve_choice,
)

TODAY = date(2026, 10, 18)


def _valid_rework(**overrides):
    payload = {
        "date": "2026-10-17",
        "station": "IGBT",
        "defectType": "Soldering Defect",
        "quantity": "2",
        "shift": "A (First)",
        "severity": "High",
        "materialBatch": " BATCH-2026-003 ",
        "remarks": "",
    }
    payload.update(overrides)
    return payload


def test_parse_choice_distinguishes_catalog_and_custom_values():
    assert parse_choice("Crimp Issue", DEFECT_TYPES) == Known("Crimp Issue")
    assert parse_choice("Bent bracket", DEFECT_TYPES) == Custom("Bent bracket")
    assert parse_choice({"custom": " Bent bracket "}, DEFECT_TYPES) == Custom("Bent bracket")
    assert parse_choice({"custom": ""}, DEFECT_TYPES) is None
    assert parse_choice("   ", DEFECT_TYPES) is None
    assert resolve_choice(Known("Crimp Issue")) == "Crimp Issue"
    assert resolve_choice(Custom("Bent bracket")) == "Bent bracket"
    assert resolve_choice(None) is None


def test_normalize_rework_cleans_and_defaults():
    record = normalize_rework(_valid_rework(quantity=None))
    assert record == {
        "date": "2026-10-17",
        "station": "IGBT",
        "defectType": "Soldering Defect",
        "quantity": 1,
        "shift": "A (First)",
        "severity": "High",
        "materialBatch": "BATCH-2026-003",
    }


def test_normalize_rework_resolves_custom_defect():
    record = normalize_rework(_valid_rework(defectType={"custom": "Loose grommet"}))
    assert record["defectType"] == "Loose grommet"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"date": ""}, "date"),
        ({"station": None}, "station"),
        ({"defectType": {"custom": ""}}, "defect type"),
        ({"date": "31/12/2026"}, "valid date"),
        ({"quantity": "0"}, "at least 1"),
        ({"quantity": "two"}, "whole number"),
        ({"severity": "Critical"}, "Severity must be one of"),
        ({"shift": "Night"}, "Shift must be one of"),
    ],
)
def test_normalize_rework_rejects_invalid_input(overrides, message):
    with pytest.raises(RecordValidationError) as excinfo:
        normalize_rework(_valid_rework(**overrides))
    assert message in str(excinfo.value)


def test_partial_rework_update_only_returns_supplied_fields():
    assert normalize_rework({"quantity": 4, "remarks": "recheck"}, partial=True) == {
        "quantity": 4,
        "remarks": "recheck",
    }
    assert normalize_rework({"remarks": ""}, partial=True) == {"remarks": None}
    with pytest.raises(RecordValidationError):
        normalize_rework({"station": ""}, partial=True)


def test_catalog_overrides_change_validation():
    catalogs = catalogs_from_mapping({"shifts": ["Day", "Night"], "stations": "not-a-list"})
    record = normalize_rework(_valid_rework(shift="Night"), catalogs)
    assert record["shift"] == "Night"
    assert catalogs.stations[0] == "CVS"


def test_normalize_action_defaults_status_to_open():
    record = normalize_action(
        {
            "defectType": "Crimp Issue",
            "description": "Replace dies",
            "responsiblePerson": "S. Patel",
            "targetDate": "2026-10-21",
        }
    )
    assert record["status"] == "Open"
    with pytest.raises(RecordValidationError):
        normalize_action({"status": "Done"}, partial=True)
    with pytest.raises(RecordValidationError):
        normalize_action({"status": ""}, partial=True)


def test_normalize_knowledge_requires_problem_and_fix():
    with pytest.raises(RecordValidationError) as excinfo:
        normalize_knowledge({"problem": "Cold joints"})
    assert "root cause" in str(excinfo.value)
    record = normalize_knowledge(
        {
            "problem": "Cold joints",
            "rootCause": "Bad thermocouple",
            "correctiveAction": "Replace and calibrate",
            "dateClosed": "2026-09-01",
            "station": "Paint Shop",
        }
    )
    assert record["station"] == "Paint Shop"
    assert record["dateClosed"] == "2026-09-01"


def test_overdue_is_derived_from_status_and_target_date():
    assert is_overdue({"status": "Open", "targetDate": "2026-10-17"}, TODAY)
    assert is_overdue({"status": "In Progress", "targetDate": "2026-10-01"}, TODAY)
    assert not is_overdue({"status": "Open", "targetDate": "2026-10-18"}, TODAY)
    assert not is_overdue({"status": "Closed", "targetDate": "2026-01-01"}, TODAY)
    assert not is_overdue({"status": "Open", "targetDate": None}, TODAY)


def test_action_filters_and_counts():
    actions = [
        {"id": 1, "status": "Open", "targetDate": "2026-10-10"},
        {"id": 2, "status": "Open", "targetDate": "2026-11-10"},
        {"id": 3, "status": "Closed", "targetDate": "2026-10-01"},
        {"id": 4, "status": "In Progress", "targetDate": "2026-10-17"},
    ]
    assert [a["id"] for a in filter_actions(actions, "Overdue", TODAY)] == [1, 4]
    assert [a["id"] for a in filter_actions(actions, "Open", TODAY)] == [1, 2]
    assert len(filter_actions(actions, "All", TODAY)) == 4
    assert action_status_counts(actions, TODAY) == {
        "Open": 2,
        "In Progress": 1,
        "Closed": 1,
        "Overdue": 2,
    }
    annotated = annotate_actions(actions, TODAY)
    assert [a["overdue"] for a in annotated] == [True, False, False, True]
    assert "overdue" not in actions[0]


def test_filter_reworks_searches_and_sorts_by_date():
    reworks = [
        {"id": "a", "date": "2026-10-01", "station": "CVS", "remarks": "Found at final QC"},
        {"id": "b", "date": "2026-10-15", "station": "Loom", "suspectedRootCause": "Worn die"},
        {"id": "c", "date": "bad", "station": "CVS"},
    ]
    assert [r["id"] for r in filter_reworks(reworks)] == ["b", "a", "c"]
    assert [r["id"] for r in filter_reworks(reworks, query="final qc")] == ["a"]
    assert [r["id"] for r in filter_reworks(reworks, station="CVS")] == ["a", "c"]
    assert filter_reworks(reworks, severity="High") == []


def test_filter_knowledge_matches_text_fields():
    entries = [
        {"problem": "Crimp height failures", "rootCause": "Supplier change", "station": "Loom"},
        {"problem": "Label errors", "correctiveAction": "Firmware update", "station": "Testing"},
    ]
    assert filter_knowledge(entries, query="firmware") == [entries[1]]
    assert filter_knowledge(entries, station="Loom") == [entries[0]]
    assert filter_knowledge(entries, query="crimp", station="Testing") == []
