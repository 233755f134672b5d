"""
Timezone utility functions for the prediction engine
"""

from datetime import datetime, timezone

import pytz
from flask import current_app, has_app_context


def get_app_timezone():
    """Get the application's configured timezone"""
    if not has_app_context():
        return pytz.UTC
    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Return an aware UTC datetime; naive values are stored UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(get_app_timezone())


def format_kickoff(dt, format_str="%a %d %b at %H:%M"):
    """Format a kickoff or deadline in the application's timezone"""
    if dt is None:
        return "TBD"
    return convert_to_app_timezone(dt).strftime(format_str)
