"""
Weekly and all-time leaderboards.

Weekly rankings are built from the prediction cache so repeated leaderboard
requests inside the cache window do not re-read every prediction.
"""

import logging

from sqlalchemy.exc import DBAPIError

from app import db
from app.errors import DataUnavailableError
from app.models import User, Week
from app.utils.cache_utils import get_prediction_cache

logger = logging.getLogger(__name__)


def _week_fixtures(week_id, prediction_cache, refresh=False):
    """The week's match dicts, from the cache unless ``refresh``"""
    if not refresh:
        fixtures = prediction_cache.get_fixtures(week_id)
        if fixtures is not None:
            return fixtures

    week = db.session.get(Week, week_id)
    if week is None:
        return None

    fixtures = [match.to_dict() for match in week.matches]
    prediction_cache.set_fixtures(week_id, fixtures)
    return fixtures


def aggregate_week(predictions_by_match):
    """
    Per-user weekly totals from ``{match_id: {user_id: snapshot}}``.

    Unawarded predictions count towards ``weekly_total`` only.
    """
    totals = {}
    for user_predictions in predictions_by_match.values():
        for user_id, snapshot in user_predictions.items():
            entry = totals.setdefault(
                user_id, {"weekly_points": 0, "weekly_total": 0, "weekly_correct": 0}
            )
            entry["weekly_total"] += 1
            if snapshot.get("awarded"):
                points = snapshot.get("points") or 0
                entry["weekly_points"] += points
                if points > 0:
                    entry["weekly_correct"] += 1
    return totals


def order_entries(totals):
    """Sort by points then predictions made, ties keep ascending user id"""
    rows = [
        (user_id, data)
        for user_id, data in sorted(totals.items())
        if data["weekly_total"] > 0
    ]
    rows.sort(key=lambda row: (row[1]["weekly_points"], row[1]["weekly_total"]), reverse=True)
    return rows


def get_weekly_rankings(week_id, current_user_id=None, refresh=False):
    """
    Ranked entries for one week.

    Users without a prediction in the week are left out. Ranks are the
    1-based position in the ordering, so ties are never shared.

    Raises:
        DataUnavailableError: the store could not be read
    """
    prediction_cache = get_prediction_cache()

    try:
        fixtures = _week_fixtures(week_id, prediction_cache, refresh=refresh)
        if not fixtures:
            return []

        predictions = prediction_cache.get_predictions_for_week(
            week_id,
            [fixture["id"] for fixture in fixtures],
            refresh=refresh,
            viewer=current_user_id,
        )
        rows = order_entries(aggregate_week(predictions))
        if not rows:
            return []

        users = {
            user.id: user
            for user in User.query.filter(User.id.in_([user_id for user_id, _ in rows]))
        }
    except DBAPIError as e:
        db.session.rollback()
        logger.error(f"Could not build rankings for week {week_id}: {e}")
        raise DataUnavailableError(f"Rankings unavailable for week {week_id}") from e

    rankings = []
    for index, (user_id, data) in enumerate(rows, start=1):
        user = users.get(user_id)
        total = data["weekly_total"]
        rankings.append(
            {
                "rank": index,
                "user_id": user_id,
                "display_name": user.name if user else "Player",
                "weekly_points": data["weekly_points"],
                "weekly_total": total,
                "weekly_correct": data["weekly_correct"],
                "weekly_accuracy": round(data["weekly_correct"] / total * 100),
                "points": user.points if user else 0,
                "is_current_user": current_user_id is not None and user_id == current_user_id,
            }
        )

    return rankings


def get_all_time_rankings(limit=50):
    """Users ordered by cumulative points (ties by id), at most ``limit``"""
    if limit is None or limit < 1:
        return []

    try:
        users = (
            User.query.filter(User.is_active.is_(True))
            .order_by(User.points.desc(), User.id.asc())
            .limit(limit)
            .all()
        )
    except DBAPIError as e:
        db.session.rollback()
        logger.error(f"Could not build all-time rankings: {e}")
        raise DataUnavailableError("All-time rankings unavailable") from e

    return [
        {
            "rank": index,
            "user_id": user.id,
            "display_name": user.name,
            "points": user.points,
            "total_predictions": user.total_predictions,
            "correct_predictions": user.correct_predictions,
            "accuracy": user.accuracy,
        }
        for index, user in enumerate(users, start=1)
    ]
