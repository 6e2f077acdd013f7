from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    request,
)

from rcis import analytics
from rcis.analytics import DateRange, parse_event_date
from rcis.db import (
    COLLECTIONS,
    count_records,
    delete_record,
    fetch_record,
    fetch_records,
    insert_record,
    update_record,
)
from rcis.localtime import local_now
from rcis.records import (
    ACTION_FILTERS,
    RecordValidationError,
    action_status_counts,
    annotate_actions,
    filter_actions,
    filter_knowledge,
    filter_reworks,
    normalize_action,
    normalize_knowledge,
    normalize_rework,
)

main_bp = Blueprint('main', __name__)

_NORMALIZERS = {
    'reworks': normalize_rework,
    'actions': normalize_action,
    'knowledge': normalize_knowledge,
}


def _catalogs():
    return current_app.config["CATALOGS"]


def _requested_range():
    """Read ``days`` or ``start``/``end`` from the query string.

    Returns ``None`` when neither is given so the analytics defaults apply.
    """

    start_raw = request.args.get('start')
    end_raw = request.args.get('end')
    if start_raw or end_raw:
        start = parse_event_date(start_raw)
        end = parse_event_date(end_raw)
        if start is None or end is None:
            abort(400, description='Both start and end must be valid dates (YYYY-MM-DD).')
        if start > end:
            abort(400, description='Range start must not be after range end.')
        return DateRange(start, end)

    days_raw = request.args.get('days')
    if days_raw in (None, ''):
        return None
    try:
        days = int(days_raw)
    except ValueError:
        abort(400, description='days must be a whole number.')
    if days < 0:
        abort(400, description='days must not be negative.')
    return days


def _int_arg(name: str, default: int, minimum: int = 1) -> int:
    raw = request.args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        abort(400, description=f'{name} must be a whole number.')
    if value < minimum:
        abort(400, description=f'{name} must be at least {minimum}.')
    return value


def _load_collection(collection: str) -> list[dict]:
    """Fetch ``collection``; a store failure is logged and treated as no data."""

    records, error = fetch_records(collection)
    if error:
        current_app.logger.warning("Failed to load %s: %s", collection, error)
        return []
    return records or []


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        abort(400, description='Expected a JSON object.')
    return payload


def _normalize(collection: str, payload: dict, *, partial: bool = False) -> dict:
    try:
        return _NORMALIZERS[collection](payload, _catalogs(), partial=partial)
    except RecordValidationError as exc:
        abort(400, description=str(exc))


def _create(collection: str):
    record = _normalize(collection, _json_payload())
    created, error = insert_record(collection, record)
    if error:
        current_app.logger.error("Failed to create %s record: %s", collection, error)
        abort(503, description=error)
    return created


def _update(collection: str, record_id: str):
    updates = _normalize(collection, _json_payload(), partial=True)
    if not updates:
        abort(400, description='No valid fields to update.')
    updated, error = update_record(collection, record_id, updates)
    if error:
        current_app.logger.error(
            "Failed to update %s record %s: %s", collection, record_id, error
        )
        abort(503, description=error)
    if not updated:
        abort(404, description='Record not found.')
    return updated


def _delete(collection: str, record_id: str):
    deleted, error = delete_record(collection, record_id)
    if error:
        current_app.logger.error(
            "Failed to delete %s record %s: %s", collection, record_id, error
        )
        abort(503, description=error)
    if not deleted:
        abort(404, description='Record not found.')
    return jsonify({'deleted': True, 'id': record_id})


# --- Analytics ---------------------------------------------------------------


@main_bp.route('/api/dashboard', methods=['GET'])
def dashboard():
    catalogs = _catalogs()
    summary = analytics.dashboard_summary(
        _load_collection('reworks'),
        _requested_range(),
        stations=catalogs.stations,
        shifts=catalogs.shifts,
        severities=catalogs.severity_levels,
        now=local_now(),
    )
    return jsonify(summary)


@main_bp.route('/api/analytics/trend', methods=['GET'])
def monthly_trend():
    return jsonify(analytics.monthly_trend(_load_collection('reworks'), now=local_now()))


@main_bp.route('/api/analytics/pareto', methods=['GET'])
def pareto():
    date_range = _requested_range()
    n = _int_arg('n', 5)
    return jsonify(
        analytics.top_defects(_load_collection('reworks'), n, date_range, now=local_now())
    )


@main_bp.route('/api/analytics/stations', methods=['GET'])
def station_breakdown():
    date_range = _requested_range()
    return jsonify(
        analytics.station_breakdown(
            _load_collection('reworks'), _catalogs().stations, date_range, now=local_now()
        )
    )


@main_bp.route('/api/analytics/shifts', methods=['GET'])
def shift_breakdown():
    date_range = _requested_range()
    return jsonify(
        analytics.shift_breakdown(
            _load_collection('reworks'), _catalogs().shifts, date_range, now=local_now()
        )
    )


@main_bp.route('/api/analytics/severity', methods=['GET'])
def severity_breakdown():
    date_range = _requested_range()
    return jsonify(
        analytics.severity_breakdown(
            _load_collection('reworks'), _catalogs().severity_levels, date_range, now=local_now()
        )
    )


@main_bp.route('/api/analytics/heatmap', methods=['GET'])
def heat_map():
    catalogs = _catalogs()
    date_range = _requested_range()
    matrix = analytics.risk_heat_map(
        _load_collection('reworks'),
        catalogs.stations,
        catalogs.severity_levels,
        date_range,
        now=local_now(),
    )
    return jsonify(
        {
            'stations': list(catalogs.stations),
            'severities': list(catalogs.severity_levels),
            'matrix': matrix,
        }
    )


@main_bp.route('/api/analytics/crosstab/<dimension>', methods=['GET'])
def defect_cross_tab(dimension: str):
    if dimension not in analytics.CROSS_TAB_DIMENSIONS:
        abort(404, description=f'Unknown cross-tab dimension: {dimension}')
    date_range = _requested_range()
    return jsonify(
        analytics.analyze_defects_by(
            _load_collection('reworks'), dimension, date_range, now=local_now()
        )
    )


@main_bp.route('/api/analytics/recurrence', methods=['GET'])
def recurrence():
    date_range = _requested_range()
    threshold = _int_arg('threshold', analytics.RECURRENCE_THRESHOLD)
    window = _int_arg('window', analytics.RECURRENCE_WINDOW_DAYS)
    return jsonify(
        analytics.detect_recurrence(
            _load_collection('reworks'), threshold, window, date_range, now=local_now()
        )
    )


@main_bp.route('/api/analytics/insights', methods=['GET'])
def insights():
    date_range = _requested_range()
    return jsonify(
        analytics.generate_insights(_load_collection('reworks'), date_range, now=local_now())
    )


# --- Rework log --------------------------------------------------------------


@main_bp.route('/api/reworks', methods=['GET'])
def list_reworks():
    records = _load_collection('reworks')
    filtered = filter_reworks(
        records,
        query=request.args.get('q'),
        station=request.args.get('station'),
        defect_type=request.args.get('defectType'),
        severity=request.args.get('severity'),
        shift=request.args.get('shift'),
    )
    return jsonify({'reworks': filtered, 'total': len(records)})


@main_bp.route('/api/reworks', methods=['POST'])
def add_rework():
    return jsonify(_create('reworks')), 201


@main_bp.route('/api/reworks/<record_id>', methods=['GET'])
def get_rework(record_id: str):
    record, error = fetch_record('reworks', record_id)
    if error:
        abort(503, description=error)
    if not record:
        abort(404, description='Record not found.')
    return jsonify(record)


@main_bp.route('/api/reworks/<record_id>', methods=['PATCH'])
def edit_rework(record_id: str):
    return jsonify(_update('reworks', record_id))


@main_bp.route('/api/reworks/<record_id>', methods=['DELETE'])
def remove_rework(record_id: str):
    return _delete('reworks', record_id)


# --- Corrective actions ------------------------------------------------------


@main_bp.route('/api/actions', methods=['GET'])
def list_actions():
    status = request.args.get('status') or 'All'
    if status not in ACTION_FILTERS:
        abort(400, description='Invalid status filter.')
    today = local_now().date()
    actions = _load_collection('actions')
    return jsonify(
        {
            'actions': annotate_actions(filter_actions(actions, status, today), today),
            'counts': action_status_counts(actions, today),
        }
    )


@main_bp.route('/api/actions', methods=['POST'])
def add_action():
    created = _create('actions')
    return jsonify(annotate_actions([created], local_now().date())[0]), 201


@main_bp.route('/api/actions/<record_id>', methods=['PATCH'])
def edit_action(record_id: str):
    updated = _update('actions', record_id)
    return jsonify(annotate_actions([updated], local_now().date())[0])


@main_bp.route('/api/actions/<record_id>', methods=['DELETE'])
def remove_action(record_id: str):
    return _delete('actions', record_id)


# --- Knowledge bank ----------------------------------------------------------


@main_bp.route('/api/knowledge', methods=['GET'])
def list_knowledge():
    entries = filter_knowledge(
        _load_collection('knowledge'),
        query=request.args.get('q'),
        station=request.args.get('station'),
        defect_type=request.args.get('defectType'),
    )
    return jsonify({'entries': entries, 'count': len(entries)})


@main_bp.route('/api/knowledge', methods=['POST'])
def add_knowledge():
    return jsonify(_create('knowledge')), 201


@main_bp.route('/api/knowledge/<record_id>', methods=['PATCH'])
def edit_knowledge(record_id: str):
    return jsonify(_update('knowledge', record_id))


@main_bp.route('/api/knowledge/<record_id>', methods=['DELETE'])
def remove_knowledge(record_id: str):
    return _delete('knowledge', record_id)


# --- Settings ----------------------------------------------------------------


@main_bp.route('/api/catalogs', methods=['GET'])
def catalogs():
    return jsonify(_catalogs().as_dict())


@main_bp.route('/api/settings', methods=['GET'])
def settings():
    counts = {}
    for collection in COLLECTIONS:
        count, error = count_records(collection)
        if error:
            current_app.logger.warning("Failed to count %s: %s", collection, error)
        counts[collection] = count
    return jsonify({'role': current_app.config["DASHBOARD_ROLE"], 'counts': counts})
