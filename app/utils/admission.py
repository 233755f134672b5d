"""
Admission gate: decides whether picks for a week are still accepted.

The gate is stateless and recomputed on every call. Precedence:

1. ``week.force_open`` keeps the gate open (admin testing override).
2. ``week.deadline``, when set, is the close instant.
3. Otherwise picks close ``offset`` minutes before the earliest valid kickoff
   among the week's matches. Without any valid kickoff the gate is closed.

Picks are closed at or after the close instant.
"""

from datetime import datetime, timedelta

from flask import has_app_context

from app.utils.timezone_utils import convert_to_app_timezone, ensure_utc, get_utc_time


DEFAULT_OFFSET_MINUTES = 60


def _parse_kickoff(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _kickoff_of(match):
    if isinstance(match, dict):
        return _parse_kickoff(match.get("kickoff"))
    return _parse_kickoff(getattr(match, "kickoff", None))


def earliest_kickoff(matches):
    """Earliest parseable kickoff among ``matches`` (aware UTC), or None"""
    kickoffs = [k for k in (_kickoff_of(m) for m in matches or []) if k is not None]
    if not kickoffs:
        return None
    return min(kickoffs)


def resolve_offset_minutes(offset_minutes=None):
    """Explicit offset, else the admin setting, else the built-in default"""
    if offset_minutes is not None:
        return offset_minutes
    if has_app_context():
        from app.models import AppSettings

        return AppSettings.get_deadline_offset_minutes()
    return DEFAULT_OFFSET_MINUTES


def close_instant(week, offset_minutes=None):
    """The instant picks close for ``week``; None when it cannot be determined"""
    deadline = _parse_kickoff(getattr(week, "deadline", None))
    if deadline is not None:
        return deadline

    first_kickoff = earliest_kickoff(getattr(week, "matches", None))
    if first_kickoff is None:
        return None

    return first_kickoff - timedelta(minutes=resolve_offset_minutes(offset_minutes))


def can_submit(week, now=None, offset_minutes=None):
    """True while new or changed picks are accepted for ``week``"""
    if week is None:
        return False

    if getattr(week, "force_open", False):
        return True

    closes_at = close_instant(week, offset_minutes)
    if closes_at is None:
        return False

    now = ensure_utc(now) if now is not None else get_utc_time()
    return now < closes_at


def time_until_close(week, now=None, offset_minutes=None):
    """
    Time remaining before picks close.

    Returns:
        timedelta (zero once closed), or None when the week has no
        determinable deadline or is force-opened
    """
    if week is None or getattr(week, "force_open", False):
        return None

    closes_at = close_instant(week, offset_minutes)
    if closes_at is None:
        return None

    now = ensure_utc(now) if now is not None else get_utc_time()
    if now >= closes_at:
        return timedelta(0)
    return closes_at - now


def format_time_remaining(remaining):
    """Human readable countdown, e.g. ``2d 3h 5m``"""
    if remaining is None:
        return "No deadline"

    total_seconds = int(remaining.total_seconds())
    if total_seconds <= 0:
        return "Picks closed"

    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def gate_status(week, now=None, offset_minutes=None):
    """Gate summary for the UI (enables or disables the submit control)"""
    now = ensure_utc(now) if now is not None else get_utc_time()
    force_open = bool(getattr(week, "force_open", False))
    closes_at = None if force_open else close_instant(week, offset_minutes)
    remaining = time_until_close(week, now, offset_minutes)

    return {
        "week_id": getattr(week, "id", None),
        "open": can_submit(week, now, offset_minutes),
        "force_open": force_open,
        "closes_at": closes_at.isoformat() if closes_at else None,
        "closes_at_local": (
            convert_to_app_timezone(closes_at).isoformat() if closes_at else None
        ),
        "seconds_remaining": (
            int(remaining.total_seconds()) if remaining is not None else None
        ),
        "time_remaining": format_time_remaining(remaining),
    }
