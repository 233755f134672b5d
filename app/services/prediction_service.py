"""
Saving and reading user predictions.

The admission gate is evaluated here with the server clock; a client-side
countdown is only a hint.
"""

import logging

from sqlalchemy.exc import DBAPIError, IntegrityError

from app import db
from app.errors import DataUnavailableError, InvalidPickError, NotFoundError, PicksClosedError
from app.models import Prediction, Week
from app.models.prediction import VALID_PICKS
from app.utils.admission import can_submit
from app.utils.cache_utils import get_prediction_cache
from app.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def _normalize_picks(picks):
    """Accept ``{match_id: pick}`` or ``[{"match_id": .., "pick": ..}]``"""
    if isinstance(picks, dict):
        items = list(picks.items())
    elif isinstance(picks, (list, tuple)):
        items = []
        for item in picks:
            if not isinstance(item, dict):
                raise InvalidPickError("Each pick must be an object with match_id and pick")
            items.append((item.get("match_id"), item.get("pick")))
    else:
        raise InvalidPickError("Picks must be a mapping or a list")

    normalized = {}
    for match_id, pick in items:
        try:
            match_id = int(match_id)
        except (TypeError, ValueError):
            raise InvalidPickError(f"Invalid match id: {match_id!r}")
        if isinstance(pick, str):
            pick = pick.strip().upper()
        if pick not in VALID_PICKS:
            raise InvalidPickError(f"Invalid pick {pick!r} for match {match_id}")
        normalized[match_id] = pick
    return normalized


def save_predictions(user_id, week_id, picks, now=None):
    """
    Create or overwrite the user's picks for matches of ``week_id``.

    Nothing is saved when any pick is invalid. Predictions that were already
    awarded are left as they are.

    Returns:
        dict with ``created``, ``updated`` and ``unchanged`` counts

    Raises:
        NotFoundError: unknown week
        PicksClosedError: the gate is closed at ``now`` (server time)
        InvalidPickError: bad symbol or a match outside the week
        DataUnavailableError: the store failed
    """
    now = ensure_utc(now) if now is not None else get_utc_time()

    week = db.session.get(Week, week_id)
    if week is None:
        raise NotFoundError(f"Week {week_id} not found")

    if not can_submit(week, now):
        logger.info(f"Rejected picks from user {user_id}: week {week_id} is closed")
        raise PicksClosedError(week_id)

    normalized = _normalize_picks(picks)
    if not normalized:
        raise InvalidPickError("No picks submitted")

    matches = {match.id: match for match in week.matches}
    outside = sorted(set(normalized) - set(matches))
    if outside:
        raise InvalidPickError(f"Matches {outside} are not part of week {week_id}")

    result = {"created": 0, "updated": 0, "unchanged": 0}

    try:
        existing = {
            prediction.match_id: prediction
            for prediction in Prediction.query.filter(
                Prediction.user_id == user_id,
                Prediction.match_id.in_(list(normalized)),
            )
        }

        for match_id, pick in normalized.items():
            prediction = existing.get(match_id)
            if prediction is not None and prediction.awarded:
                result["unchanged"] += 1
                continue

            if prediction is None:
                prediction = Prediction(user_id=user_id, match_id=match_id, pick=pick)
                db.session.add(prediction)
                result["created"] += 1
            else:
                prediction.pick = pick
                result["updated"] += 1
            prediction.apply_snapshot(matches[match_id].snapshot())

        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise InvalidPickError(f"Conflicting picks for week {week_id}") from e
    except DBAPIError as e:
        db.session.rollback()
        raise DataUnavailableError(f"Could not save predictions: {e}") from e

    get_prediction_cache().invalidate(week_id)
    logger.info(
        f"Saved picks for user {user_id} in week {week_id}: "
        f"{result['created']} created, {result['updated']} updated"
    )
    return result


def get_user_predictions(user_id, match_ids):
    """The user's predictions for ``match_ids`` as ``{match_id: dict}``"""
    match_ids = list(match_ids)
    if not match_ids:
        return {}
    predictions = Prediction.query.filter(
        Prediction.user_id == user_id, Prediction.match_id.in_(match_ids)
    )
    return {prediction.match_id: prediction.to_dict() for prediction in predictions}


def get_user_history(user_id, limit=None):
    """Every prediction of the user, newest match first"""
    query = Prediction.query.filter_by(user_id=user_id).order_by(
        Prediction.match_date.desc(), Prediction.id.desc()
    )
    if limit:
        query = query.limit(limit)
    return [prediction.to_dict() for prediction in query]


def get_week_player_count(week_id):
    """Number of distinct users with at least one prediction in the week"""
    week = db.session.get(Week, week_id)
    if week is None or not week.match_ids:
        return 0
    return (
        db.session.query(Prediction.user_id)
        .filter(Prediction.match_id.in_(week.match_ids))
        .distinct()
        .count()
    )
