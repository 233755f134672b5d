"""
Outcome resolution for finished matches.

A match resolves to one of the pick symbols ("H", "D", "A") once its status
is a finished variant and both goal counts are known. Anything else is
undetermined and represented as ``None``.
"""

from app.models.match import FINISHED_STATUSES
from app.models.prediction import AWAY, DRAW, HOME

UNDETERMINED = None


def _field(match, name):
    if isinstance(match, dict):
        return match.get(name)
    return getattr(match, name, None)


def _as_goals(value):
    # bool is an int subclass but never a valid goal count
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if value < 0:
        return None
    return value


def resolve_outcome(match):
    """
    Resolve a match to its canonical result symbol.

    Args:
        match: Match row or normalized provider dict with ``status``,
            ``home_goals`` and ``away_goals``

    Returns:
        "H", "D" or "A", or None while the match is undetermined
    """
    if match is None:
        return UNDETERMINED

    if _field(match, "status") not in FINISHED_STATUSES:
        return UNDETERMINED

    home_goals = _as_goals(_field(match, "home_goals"))
    away_goals = _as_goals(_field(match, "away_goals"))
    if home_goals is None or away_goals is None:
        return UNDETERMINED

    if home_goals > away_goals:
        return HOME
    if home_goals < away_goals:
        return AWAY
    return DRAW
