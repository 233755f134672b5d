"""
Award engine: scores pending predictions once their matches are finished.

Each prediction is awarded with a conditional update (only while
``awarded`` is still false). The user's totals are incremented in the same
transaction and only when that update actually changed the row, so repeated
or overlapping passes never double count.
"""

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import case, func, update
from sqlalchemy.exc import DBAPIError

from app import db
from app.errors import DataUnavailableError, MatchProviderError
from app.models import Match, Prediction, User, WeekMatch
from app.models.match import FINISHED_STATUSES
from app.utils.outcomes import resolve_outcome
from app.utils.scoring import calculate_prediction_score

logger = logging.getLogger(__name__)


def _empty_result():
    return {"updated": 0, "points_awarded": 0, "skipped": 0, "errors": []}


def _not_started(match):
    # Stored matches that kick off later have no result to fetch yet
    if match is None or match.kickoff_utc is None:
        return False
    return match.kickoff_utc > datetime.now(timezone.utc)


class AwardEngine:
    """
    Args:
        provider: optional match-data provider (``get_match``); when given,
            each pending prediction's match is refreshed before scoring
    """

    def __init__(self, provider=None):
        self.provider = provider

    def award_pending_for_user(self, user_id, refresh_matches=True, _match_cache=None):
        """
        Award every pending prediction of ``user_id`` whose match is finished.

        Returns:
            dict with ``updated``, ``points_awarded``, ``skipped`` and the
            per-match ``errors`` that were logged and skipped

        Raises:
            DataUnavailableError: the data store could not be read or written
        """
        match_cache = {} if _match_cache is None else _match_cache
        result = _empty_result()

        try:
            pending = [
                (prediction.id, prediction.match_id, prediction.pick)
                for prediction in Prediction.query.filter_by(
                    user_id=user_id, awarded=False
                ).order_by(Prediction.id)
            ]
        except DBAPIError as e:
            db.session.rollback()
            raise DataUnavailableError(f"Could not read predictions: {e}") from e

        for prediction_id, match_id, pick in pending:
            try:
                match = self._load_match(match_id, refresh_matches, match_cache)
            except MatchProviderError as e:
                logger.warning(
                    f"Skipping prediction {prediction_id}: provider failed for match {match_id}: {e}"
                )
                result["errors"].append({"match_id": match_id, "error": str(e)})
                continue

            if match is None:
                logger.warning(f"Match {match_id} not found, prediction {prediction_id} left pending")
                result["errors"].append({"match_id": match_id, "error": "Match not found"})
                continue

            outcome = resolve_outcome(match)
            if outcome is None:
                result["skipped"] += 1
                continue

            points = calculate_prediction_score(pick, outcome)
            if self._apply_award(prediction_id, user_id, match, points):
                result["updated"] += 1
                result["points_awarded"] += points

        if result["updated"]:
            logger.info(
                f"Awarded {result['updated']} predictions for user {user_id} "
                f"({result['points_awarded']} points)"
            )
            self._invalidate_weeks([match_id for _, match_id, _ in pending])

        return result

    def award_pending_for_all(self):
        """
        Award pending predictions for every user with a finished match.

        Uses the stored match rows (kept fresh by the sync job) so each match
        is read once per pass.
        """
        try:
            user_ids = [
                row.user_id
                for row in db.session.query(Prediction.user_id)
                .join(Match, Match.id == Prediction.match_id)
                .filter(
                    Prediction.awarded.is_(False),
                    Match.status.in_(FINISHED_STATUSES),
                )
                .distinct()
                .order_by(Prediction.user_id)
            ]
        except DBAPIError as e:
            db.session.rollback()
            raise DataUnavailableError(f"Could not read pending predictions: {e}") from e

        totals = _empty_result()
        totals["users"] = len(user_ids)
        match_cache = {}

        for user_id in user_ids:
            user_result = self.award_pending_for_user(
                user_id, refresh_matches=False, _match_cache=match_cache
            )
            totals["updated"] += user_result["updated"]
            totals["points_awarded"] += user_result["points_awarded"]
            totals["skipped"] += user_result["skipped"]
            totals["errors"].extend(user_result["errors"])

        return totals

    def _load_match(self, match_id, refresh, match_cache):
        if match_id in match_cache:
            return match_cache[match_id]

        try:
            match = db.session.get(Match, match_id)
        except DBAPIError as e:
            db.session.rollback()
            raise DataUnavailableError(f"Could not read match {match_id}: {e}") from e

        if refresh and self.provider is not None and not _not_started(match):
            data = self.provider.get_match(match_id)
            if data is not None:
                try:
                    match = Match.upsert_from_provider(data)
                    db.session.commit()
                except DBAPIError as e:
                    db.session.rollback()
                    raise DataUnavailableError(f"Could not store match {match_id}: {e}") from e

        match_cache[match_id] = match
        return match

    def _apply_award(self, prediction_id, user_id, match, points):
        """Mark one prediction awarded and credit the user; False if already awarded"""
        values = dict(match.snapshot())
        values.update(
            awarded=True,
            points=points,
            correct=points > 0,
            updated_at=datetime.now(timezone.utc),
        )

        try:
            changed = db.session.execute(
                update(Prediction)
                .where(Prediction.id == prediction_id, Prediction.awarded.is_(False))
                .values(**values)
                .execution_options(synchronize_session=False)
            ).rowcount

            if changed != 1:
                db.session.rollback()
                logger.info(f"Prediction {prediction_id} was already awarded, skipping")
                return False

            db.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    points=User.points + points,
                    total_predictions=User.total_predictions + 1,
                    correct_predictions=User.correct_predictions + (1 if points > 0 else 0),
                )
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except DBAPIError as e:
            db.session.rollback()
            raise DataUnavailableError(f"Could not award prediction {prediction_id}: {e}") from e

        return True

    def _invalidate_weeks(self, match_ids):
        if not has_app_context() or "prediction_cache" not in current_app.extensions:
            return
        week_ids = {
            row.week_id
            for row in WeekMatch.query.filter(WeekMatch.match_id.in_(match_ids))
        }
        prediction_cache = current_app.extensions["prediction_cache"]
        for week_id in week_ids:
            prediction_cache.invalidate(week_id)


def find_total_mismatches():
    """
    Users whose stored totals differ from their awarded predictions.

    Returns a list of dicts with the stored and recomputed values.
    """
    recomputed = {
        row.user_id: row
        for row in db.session.query(
            Prediction.user_id,
            func.coalesce(func.sum(Prediction.points), 0).label("points"),
            func.count(Prediction.id).label("total"),
            func.sum(case((Prediction.points > 0, 1), else_=0)).label("correct"),
        )
        .filter(Prediction.awarded.is_(True))
        .group_by(Prediction.user_id)
    }

    mismatches = []
    for user in User.query.order_by(User.id):
        row = recomputed.get(user.id)
        expected = (
            (int(row.points), int(row.total), int(row.correct or 0)) if row else (0, 0, 0)
        )
        stored = (user.points, user.total_predictions, user.correct_predictions)
        if stored != expected:
            mismatches.append(
                {
                    "user_id": user.id,
                    "stored": dict(zip(("points", "total", "correct"), stored)),
                    "expected": dict(zip(("points", "total", "correct"), expected)),
                }
            )
    return mismatches


def reconcile_user_totals():
    """Rewrite drifted user totals from awarded predictions; returns the fixes"""
    mismatches = find_total_mismatches()
    for mismatch in mismatches:
        expected = mismatch["expected"]
        db.session.execute(
            update(User)
            .where(User.id == mismatch["user_id"])
            .values(
                points=expected["points"],
                total_predictions=expected["total"],
                correct_predictions=expected["correct"],
            )
        )
        logger.warning(
            f"Reconciled totals for user {mismatch['user_id']}: "
            f"{mismatch['stored']} -> {expected}"
        )
    db.session.commit()
    return mismatches


def award_pending_for_user(user_id, provider=None):
    """Award pending predictions for one user with the app's configured provider"""
    if provider is None and has_app_context():
        from app.utils.match_client import ApiFootballClient

        provider = ApiFootballClient.from_config(current_app.config)
    return AwardEngine(provider).award_pending_for_user(user_id)
