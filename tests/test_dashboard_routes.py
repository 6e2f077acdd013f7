import os
from datetime import datetime, timedelta, timezone

import pytest
from flask import render_template_string

import rcis as app_module
from rcis import create_app
from rcis.main import routes as routes_module


@pytest.fixture
def app_instance(monkeypatch):
    monkeypatch.setattr(app_module, "create_client", lambda url, key: object())
    os.environ.setdefault("SECRET_KEY", "test")
    os.environ.setdefault("SUPABASE_URL", "http://localhost")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service")
    monkeypatch.delenv("RCIS_ROLE", raising=False)
    monkeypatch.delenv("LOCAL_TIMEZONE", raising=False)
    app = create_app()
    app.testing = True
    return app


def _current_day():
    return datetime.now(timezone.utc).date()


def _day(days_ago):
    return (_current_day() - timedelta(days=days_ago)).isoformat()


def _make_fetch(rows_by_collection, error=None):
    def fetch(collection):
        if error:
            return None, error
        return rows_by_collection.get(collection, []), None

    return fetch


@pytest.fixture
def scenario_rows():
    return {
        "reworks": [
            {
                "id": 1,
                "station": "IGBT",
                "defectType": "Soldering Defect",
                "severity": "High",
                "shift": "A (First)",
                "materialBatch": "BATCH-2026-003",
                "quantity": 2,
                "date": _day(0),
            },
            {
                "id": 2,
                "station": "IGBT",
                "defectType": "Soldering Defect",
                "severity": "High",
                "shift": "A (First)",
                "materialBatch": "BATCH-2026-003",
                "quantity": 1,
                "date": _day(1),
            },
            {
                "id": 3,
                "station": "CVS",
                "defectType": "Wiring Error",
                "severity": "Low",
                "quantity": 1,
                "date": _day(40),
            },
        ]
    }


def test_dashboard_summary(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    client = app_instance.test_client()

    response = client.get("/api/dashboard")
    assert response.status_code == 200
    data = response.get_json()
    assert data["weeklyTotal"] == 3
    assert data["monthlyTotal"] == 3
    assert data["topDefect"] == "Soldering Defect"
    assert data["topStation"] == "IGBT"
    assert data["recurrences"] == [
        {"defect": "Soldering Defect", "count": 3, "windowDays": 7}
    ]
    assert len(data["monthlyTrend"]) == 6
    assert {row["station"] for row in data["stationPercent"]} == {
        "CVS", "Loom", "IGBT", "Sub Assembly", "Testing",
    }

    ranged = client.get("/api/dashboard?days=60").get_json()
    assert ranged["recurrences"] == client.get("/api/analytics/recurrence?days=60").get_json()
    assert ranged["recurrences"] == [
        {"defect": "Soldering Defect", "count": 3, "windowDays": 60}
    ]


def test_dashboard_with_custom_range(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    client = app_instance.test_client()

    response = client.get(f"/api/dashboard?start={_day(60)}&end={_day(30)}")
    data = response.get_json()
    assert data["monthlyTotal"] == 1
    assert data["weeklyTotal"] == 1
    assert data["topDefect"] == "Wiring Error"


@pytest.mark.parametrize(
    "query",
    ["start=2026-01-01", "start=2026-02-01&end=2026-01-01", "start=x&end=y", "days=abc", "days=-3"],
)
def test_invalid_range_parameters_are_rejected(app_instance, monkeypatch, scenario_rows, query):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    response = app_instance.test_client().get(f"/api/analytics/heatmap?{query}")
    assert response.status_code == 400


def test_heat_map_endpoint(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    response = app_instance.test_client().get("/api/analytics/heatmap?days=30")
    data = response.get_json()
    assert data["severities"] == ["Low", "Medium", "High"]
    assert data["matrix"]["IGBT"]["High"] == 3
    assert data["matrix"]["CVS"]["Low"] == 0

    wide = app_instance.test_client().get("/api/analytics/heatmap?days=60").get_json()
    assert wide["matrix"]["CVS"]["Low"] == 1


def test_pareto_and_breakdown_endpoints(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    client = app_instance.test_client()

    pareto = client.get("/api/analytics/pareto?days=60&n=1").get_json()
    assert pareto == [
        {"defect": "Soldering Defect", "count": 3, "percent": 100, "cumulative": 100}
    ]
    assert client.get("/api/analytics/pareto?n=0").status_code == 400

    shifts = client.get("/api/analytics/shifts").get_json()
    assert shifts[0] == {"shift": "A (First)", "count": 3, "percent": 100}

    severity = client.get("/api/analytics/severity?days=60").get_json()
    assert [row["count"] for row in severity] == [1, 0, 3]

    stations = client.get("/api/analytics/stations").get_json()
    assert {row["station"]: row["percent"] for row in stations}["IGBT"] == 100

    trend = client.get("/api/analytics/trend").get_json()
    assert sum(row["count"] for row in trend) >= 3


def test_cross_tab_endpoint(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    client = app_instance.test_client()

    data = client.get("/api/analytics/crosstab/batch").get_json()
    assert data == {"Soldering Defect": {"BATCH-2026-003": 3}}
    assert client.get("/api/analytics/crosstab/operator").status_code == 404


def test_recurrence_endpoint_parameters(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    client = app_instance.test_client()

    assert client.get("/api/analytics/recurrence?threshold=4").get_json() == []
    flagged = client.get("/api/analytics/recurrence?threshold=1&days=60").get_json()
    assert flagged == [
        {"defect": "Soldering Defect", "count": 3, "windowDays": 60},
        {"defect": "Wiring Error", "count": 1, "windowDays": 60},
    ]


def test_insights_endpoint(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    insights = app_instance.test_client().get("/api/analytics/insights").get_json()
    assert [item["type"] for item in insights] == ["shift", "batch", "recurrence"]
    assert insights[0]["message"] == "Soldering Defect 100% linked to A (First) Shift"


def test_store_failure_is_rendered_as_no_data(app_instance, monkeypatch):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch({}, error="offline"))
    client = app_instance.test_client()

    data = client.get("/api/dashboard").get_json()
    assert data["weeklyTotal"] == 0
    assert data["topDefect"] == "N/A"
    assert data["topDefects"] == []
    assert client.get("/api/analytics/insights").get_json() == []


def test_unknown_timezone_falls_back_to_utc(app_instance, monkeypatch, scenario_rows):
    monkeypatch.setattr(routes_module, "fetch_records", _make_fetch(scenario_rows))
    app_instance.config["LOCAL_TIMEZONE"] = "Mars/Olympus_Mons"
    response = app_instance.test_client().get("/api/analytics/recurrence")
    assert response.status_code == 200


def test_role_is_display_configuration(app_instance, monkeypatch):
    monkeypatch.setattr(routes_module, "count_records", lambda collection: (5, None))
    data = app_instance.test_client().get("/api/settings").get_json()
    assert data == {"role": "Admin", "counts": {"reworks": 5, "actions": 5, "knowledge": 5}}

    with app_instance.test_request_context():
        assert render_template_string("{{ user_role }}") == "Admin"


def test_viewer_role_from_environment(monkeypatch):
    monkeypatch.setattr(app_module, "create_client", lambda url, key: object())
    os.environ.setdefault("SECRET_KEY", "test")
    os.environ.setdefault("SUPABASE_URL", "http://localhost")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service")
    monkeypatch.setenv("RCIS_ROLE", "Viewer")
    assert create_app().config["DASHBOARD_ROLE"] == "Viewer"
    monkeypatch.setenv("RCIS_ROLE", "Superuser")
    assert create_app().config["DASHBOARD_ROLE"] == "Admin"


def test_catalog_file_override(monkeypatch, tmp_path):
    catalog_file = tmp_path / "catalogs.json"
    catalog_file.write_text('{"stations": ["Line 1", "Line 2"]}', encoding="utf-8")
    monkeypatch.setattr(app_module, "create_client", lambda url, key: object())
    os.environ.setdefault("SECRET_KEY", "test")
    os.environ.setdefault("SUPABASE_URL", "http://localhost")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service")
    monkeypatch.setenv("RCIS_CATALOGS_FILE", str(catalog_file))
    app = create_app()
    data = app.test_client().get("/api/catalogs").get_json()
    assert data["stations"] == ["Line 1", "Line 2"]
    assert data["severityLevels"] == ["Low", "Medium", "High"]
