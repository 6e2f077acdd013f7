"""Rework analytics: date-range filtering, aggregation and pattern insights.

Every function here is pure and works on rework event dictionaries in the
application (camelCase) shape returned by :mod:`rcis.db`.  Counts are summed
``quantity`` values rather than record cardinality, and a single malformed
record never makes a computation fail: bad dates are excluded, bad quantities
count as one and missing grouping values are reported as ``"Unknown"``.

Ranges are either an integer day lookback or a custom ``start``/``end`` pair
(a :class:`DateRange` or any mapping with both keys).  ``None`` means the
default 30 day lookback.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Mapping

from config.catalogs import SEVERITY_LEVELS, SHIFTS, STATIONS

DEFAULT_RANGE_DAYS = 30
UNKNOWN = "Unknown"
NOT_AVAILABLE = "N/A"
# ``windowDays`` label used by recurrence results computed over a custom range.
CUSTOM_RANGE = "range"

SHIFT_CONCENTRATION_PERCENT = 60
BATCH_SHARE_PERCENT = 40
BATCH_MIN_COUNT = 3
RECURRENCE_THRESHOLD = 3
RECURRENCE_WINDOW_DAYS = 7
TREND_MONTHS = 6

_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

CROSS_TAB_DIMENSIONS = {
    "shift": "shift",
    "station": "station",
    "batch": "materialBatch",
}


@dataclass(frozen=True)
class DateRange:
    """Explicit, inclusive calendar date window."""

    start: date
    end: date


def parse_event_date(value: Any) -> date | None:
    """Return ``value`` as a calendar date or ``None`` when it cannot be parsed."""

    if not value:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    return parsed.date()


def quantity_of(event: Mapping[str, Any]) -> int:
    """Return the event quantity, treating missing or invalid values as 1."""

    raw = event.get("quantity")
    if isinstance(raw, bool):
        return 1
    if isinstance(raw, float) and (math.isnan(raw) or math.isinf(raw)):
        return 1
    try:
        quantity = int(raw)
    except (TypeError, ValueError, OverflowError):
        return 1
    return quantity if quantity >= 1 else 1


def _field_value(event: Mapping[str, Any], field: str) -> str:
    value = event.get(field)
    if value is None:
        return UNKNOWN
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else UNKNOWN


def _round_percent(part: float, total: float) -> int:
    """Round ``part / total`` as a percentage, halves rounding up."""

    return int(math.floor(part / total * 100 + 0.5))


def _custom_bounds(date_range: Any) -> tuple[date, date] | None:
    if isinstance(date_range, DateRange):
        return date_range.start, date_range.end
    if isinstance(date_range, Mapping):
        start = parse_event_date(date_range.get("start"))
        end = parse_event_date(date_range.get("end"))
        if start and end:
            return start, end
    return None


def is_custom_range(date_range: Any) -> bool:
    return _custom_bounds(date_range) is not None


def _lookback_days(date_range: Any) -> int:
    if isinstance(date_range, int) and not isinstance(date_range, bool):
        return date_range
    return DEFAULT_RANGE_DAYS


def resolve_window(date_range: Any = None, *, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Resolve ``date_range`` into inclusive ``(start, end)`` datetimes.

    A day lookback ``N`` spans from midnight ``N`` days ago up to ``now``; a
    custom range spans from midnight of ``start`` to the last instant of
    ``end``.
    """

    bounds = _custom_bounds(date_range)
    if bounds:
        start, end = bounds
        return datetime.combine(start, time.min), datetime.combine(end, time.max)

    now = now or datetime.now()
    start_day = now.date() - timedelta(days=_lookback_days(date_range))
    return datetime.combine(start_day, time.min, tzinfo=now.tzinfo), now


def filter_by_range(
    events: Iterable[Mapping[str, Any]],
    date_range: Any = None,
    *,
    now: datetime | None = None,
) -> list[Mapping[str, Any]]:
    """Return the events whose date falls inside the resolved window."""

    start, end = resolve_window(date_range, now=now)
    # Event dates carry no time, so they sit at midnight; the window start is
    # always a midnight too.
    first_day, last_day = start.date(), end.date()
    selected = []
    for event in events or []:
        if not isinstance(event, Mapping):
            continue
        event_date = parse_event_date(event.get("date"))
        if event_date is not None and first_day <= event_date <= last_day:
            selected.append(event)
    return selected


def _group(events: Iterable[Mapping[str, Any]], field: str) -> dict[str, int]:
    counts: defaultdict[str, int] = defaultdict(int)
    for event in events:
        counts[_field_value(event, field)] += quantity_of(event)
    return dict(counts)


def _cross(
    events: Iterable[Mapping[str, Any]], field_a: str, field_b: str
) -> dict[str, dict[str, int]]:
    result: defaultdict[str, defaultdict[str, int]] = defaultdict(lambda: defaultdict(int))
    for event in events:
        result[_field_value(event, field_a)][_field_value(event, field_b)] += quantity_of(event)
    return {key: dict(inner) for key, inner in result.items()}


def _ranked(counts: Mapping[str, int]) -> list[tuple[str, int]]:
    # Stable: equal counts keep first-occurrence order.
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def group_by_count(events, field: str, date_range: Any = None, *, now: datetime | None = None) -> dict[str, int]:
    """Sum quantities per distinct value of ``field`` inside the range."""

    return _group(filter_by_range(events, date_range, now=now), field)


def cross_tab(
    events,
    field_a: str,
    field_b: str,
    date_range: Any = None,
    *,
    now: datetime | None = None,
) -> dict[str, dict[str, int]]:
    """Sum quantities per ``field_a`` value, broken down by ``field_b``."""

    return _cross(filter_by_range(events, date_range, now=now), field_a, field_b)


def analyze_defects_by(events, dimension: str, date_range: Any = None, *, now: datetime | None = None):
    """Cross-tabulate defect types against ``shift``, ``station`` or ``batch``."""

    try:
        field = CROSS_TAB_DIMENSIONS[dimension]
    except KeyError:
        raise ValueError(f"Unknown cross-tab dimension: {dimension}") from None
    return cross_tab(events, "defectType", field, date_range, now=now)


def total_quantity(events, date_range: Any = None, *, now: datetime | None = None) -> int:
    return sum(quantity_of(event) for event in filter_by_range(events, date_range, now=now))


def top_n(
    events,
    field: str = "defectType",
    n: int = 5,
    date_range: Any = None,
    *,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Return Pareto rows for the ``n`` highest-count values of ``field``.

    ``percent`` and ``cumulative`` are relative to the total of the returned
    rows, so the final ``cumulative`` is always 100.
    """

    rows = _ranked(group_by_count(events, field, date_range, now=now))[: max(n, 0)]
    total = sum(count for _, count in rows) or 1
    running = 0
    pareto = []
    for value, count in rows:
        running += count
        pareto.append(
            {
                "value": value,
                "count": count,
                "percent": _round_percent(count, total),
                "cumulative": _round_percent(running, total),
            }
        )
    return pareto


def top_defects(events, n: int = 5, date_range: Any = None, *, now: datetime | None = None) -> list[dict[str, Any]]:
    rows = top_n(events, "defectType", n, date_range, now=now)
    return [{"defect": row.pop("value"), **row} for row in rows]


def monthly_trend(events, *, now: datetime | None = None) -> list[dict[str, Any]]:
    """Summed quantity for each of the last six calendar months, oldest first.

    The window is always anchored on the current month regardless of any
    range the caller is using elsewhere.
    """

    today = (now or datetime.now()).date()
    buckets: list[tuple[int, int]] = []
    for offset in range(TREND_MONTHS - 1, -1, -1):
        year, month = today.year, today.month - offset
        while month <= 0:
            month += 12
            year -= 1
        buckets.append((year, month))

    totals = dict.fromkeys(buckets, 0)
    for event in events or []:
        if not isinstance(event, Mapping):
            continue
        event_date = parse_event_date(event.get("date"))
        if event_date is None:
            continue
        key = (event_date.year, event_date.month)
        if key in totals:
            totals[key] += quantity_of(event)

    return [
        {"month": f"{_MONTH_ABBR[month - 1]} {year % 100:02d}", "count": totals[(year, month)]}
        for year, month in buckets
    ]


def _catalog_breakdown(counts: Mapping[str, int], catalog: Iterable[str], label: str) -> list[dict[str, Any]]:
    catalog = list(catalog)
    total = sum(counts.get(entry, 0) for entry in catalog) or 1
    return [
        {
            label: entry,
            "count": counts.get(entry, 0),
            "percent": _round_percent(counts.get(entry, 0), total),
        }
        for entry in catalog
    ]


def station_breakdown(events, stations: Iterable[str] = STATIONS, date_range: Any = None, *, now: datetime | None = None):
    """Per-station count and share, including stations with no events."""

    return _catalog_breakdown(group_by_count(events, "station", date_range, now=now), stations, "station")


def shift_breakdown(events, shifts: Iterable[str] = SHIFTS, date_range: Any = None, *, now: datetime | None = None):
    return _catalog_breakdown(group_by_count(events, "shift", date_range, now=now), shifts, "shift")


def severity_breakdown(events, severities: Iterable[str] = SEVERITY_LEVELS, date_range: Any = None, *, now: datetime | None = None):
    return _catalog_breakdown(group_by_count(events, "severity", date_range, now=now), severities, "severity")


def risk_heat_map(
    events,
    stations: Iterable[str] = STATIONS,
    severities: Iterable[str] = SEVERITY_LEVELS,
    date_range: Any = None,
    *,
    now: datetime | None = None,
) -> dict[str, dict[str, int]]:
    """Station x severity matrix of summed quantities.

    Every catalog cell is present; events naming a station or severity outside
    the catalogs are ignored.
    """

    severities = list(severities)
    matrix = {station: dict.fromkeys(severities, 0) for station in stations}
    for event in filter_by_range(events, date_range, now=now):
        station, severity = event.get("station"), event.get("severity")
        if not isinstance(station, str) or not isinstance(severity, str):
            continue
        row = matrix.get(station)
        if row is not None and severity in row:
            row[severity] += quantity_of(event)
    return matrix


def detect_recurrence(
    events,
    threshold: int = RECURRENCE_THRESHOLD,
    window_days: int = RECURRENCE_WINDOW_DAYS,
    date_range: Any = None,
    *,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Flag defect types whose count reaches ``threshold`` in the window.

    The window is the trailing ``window_days`` unless ``date_range`` is
    given, in which case that range is used and reported instead: its day
    count for a lookback, :data:`CUSTOM_RANGE` for a custom range.
    """

    if date_range is None:
        effective, label = window_days, window_days
    elif is_custom_range(date_range):
        effective, label = date_range, CUSTOM_RANGE
    else:
        effective = label = _lookback_days(date_range)

    counts = group_by_count(events, "defectType", effective, now=now)
    return [
        {"defect": defect, "count": count, "windowDays": label}
        for defect, count in _ranked(counts)
        if count >= threshold
    ]


def top_value(events, field: str, date_range: Any = None, *, now: datetime | None = None) -> str:
    """Highest-count value of ``field``; ties go to the first occurring value."""

    ranked = _ranked(group_by_count(events, field, date_range, now=now))
    return ranked[0][0] if ranked else NOT_AVAILABLE


def top_station(events, date_range: Any = None, *, now: datetime | None = None) -> str:
    return top_value(events, "station", date_range, now=now)


def top_defect(events, date_range: Any = None, *, now: datetime | None = None) -> str:
    return top_value(events, "defectType", date_range, now=now)


def _window_text(window: Any) -> str:
    if window == CUSTOM_RANGE:
        return "selected range"
    return f"{window} days"


def generate_insights(events, date_range: Any = None, *, now: datetime | None = None) -> list[dict[str, str]]:
    """Compose human readable pattern alerts.

    Shift concentration insights come first, then batch spikes, then
    recurrences; within each rule defects appear in first-occurrence order.
    """

    selected = filter_by_range(events, date_range, now=now)
    insights: list[dict[str, str]] = []

    for defect, shifts in _cross(selected, "defectType", "shift").items():
        total = sum(shifts.values())
        for shift, count in shifts.items():
            pct = _round_percent(count, total)
            if pct >= SHIFT_CONCENTRATION_PERCENT:
                insights.append(
                    {
                        "type": "shift",
                        "severity": "high",
                        "message": f"{defect} {pct}% linked to {shift} Shift",
                        "defect": defect,
                        "detail": f"{count} of {total} occurrences",
                    }
                )

    for defect, batches in _cross(selected, "defectType", "materialBatch").items():
        total = sum(batches.values())
        known = {batch: count for batch, count in batches.items() if batch != UNKNOWN}
        if not known:
            continue
        batch, count = _ranked(known)[0]
        pct = _round_percent(count, total)
        if pct >= BATCH_SHARE_PERCENT and count >= BATCH_MIN_COUNT:
            insights.append(
                {
                    "type": "batch",
                    "severity": "medium",
                    "message": f"{defect} spike after {batch} ({pct}%)",
                    "defect": defect,
                    "detail": f"{count} of {total} occurrences",
                }
            )

    for item in detect_recurrence(
        events, RECURRENCE_THRESHOLD, RECURRENCE_WINDOW_DAYS, date_range, now=now
    ):
        insights.append(
            {
                "type": "recurrence",
                "severity": "high",
                "message": (
                    f"Recurring defect: {item['defect']} - {item['count']} times "
                    f"in {_window_text(item['windowDays'])}"
                ),
                "defect": item["defect"],
                "detail": "Review countermeasure",
            }
        )

    return insights


def dashboard_summary(
    events,
    date_range: Any = None,
    *,
    stations: Iterable[str] = STATIONS,
    shifts: Iterable[str] = SHIFTS,
    severities: Iterable[str] = SEVERITY_LEVELS,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Collect the KPI figures and chart series shown on the dashboard.

    The weekly total covers the trailing seven days unless a custom range was
    selected. Recurrences use the selected range, or the default recurrence
    window when no range was given, matching :func:`detect_recurrence`.
    """

    events = list(events or [])
    custom = date_range if is_custom_range(date_range) else None
    return {
        "weeklyTotal": total_quantity(events, custom or 7, now=now),
        "monthlyTotal": total_quantity(events, date_range, now=now),
        "monthlyTrend": monthly_trend(events, now=now),
        "stationPercent": station_breakdown(events, stations, date_range, now=now),
        "topDefects": top_defects(events, 5, date_range, now=now),
        "shiftComparison": shift_breakdown(events, shifts, date_range, now=now),
        "severityDistribution": severity_breakdown(events, severities, date_range, now=now),
        "topStation": top_station(events, date_range, now=now),
        "topDefect": top_defect(events, date_range, now=now),
        "recurrences": detect_recurrence(events, date_range=date_range, now=now),
    }
