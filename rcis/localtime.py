from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app


def local_timezone():
    """Return the timezone that defines "today" for range lookbacks.

    Prefers the configured ``LOCAL_TIMEZONE`` and falls back to UTC if the
    zone cannot be loaded.
    """

    tz_name = current_app.config.get("LOCAL_TIMEZONE") or "UTC"
    if tz_name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        current_app.logger.warning(
            "Timezone %s unavailable; falling back to UTC", tz_name
        )
    return timezone.utc


def local_now() -> datetime:
    return datetime.now(local_timezone())
