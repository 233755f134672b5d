"""
Cache utilities for the prediction engine

PredictionCache keeps every user's predictions for a week's matches so the
weekly ranking can be rebuilt without re-reading the store on every request.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


def load_match_predictions(match_id):
    """Bulk read of every prediction for one match: {user_id: snapshot}"""
    from app.models import Prediction

    predictions = Prediction.query.filter_by(match_id=match_id).all()
    return {prediction.user_id: prediction.to_snapshot() for prediction in predictions}


class PredictionCache:
    """
    Time-bounded per-week cache of prediction maps.

    Args:
        backend: flask_caching.Cache (or any object with get/set/delete)
        timeout: validity window in seconds for cached entries
        read_timeout: seconds allowed for a cold fill; None runs inline
        key_prefix: prefix for every key written to the backend
    """

    def __init__(self, backend, timeout=300, read_timeout=None, key_prefix="predcache"):
        self.backend = backend
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.key_prefix = key_prefix

    def _predictions_key(self, week_id):
        return f"{self.key_prefix}_predictions_{week_id}"

    def _fixtures_key(self, week_id):
        return f"{self.key_prefix}_fixtures_{week_id}"

    def _viewer_key(self, viewer):
        return f"{self.key_prefix}_viewer_{viewer}"

    def _viewer_moved(self, viewer, week_id):
        """Record the viewer's week; True when it differs from their last one"""
        if viewer is None:
            return False
        key = self._viewer_key(viewer)
        previous = self.backend.get(key)
        self.backend.set(key, week_id, timeout=self.timeout)
        return previous is not None and previous != week_id

    def get_predictions_for_week(
        self, week_id, match_ids, loader=None, refresh=False, viewer=None
    ):
        """
        Get {match_id: {user_id: snapshot}} for ``week_id``.

        A cold call performs one bulk read per match; warm calls within the
        timeout return the cached structure. ``refresh`` forces a re-read, as
        does a ``viewer`` arriving from a different week. Viewers only
        refresh the week they move to, never another viewer's week.
        """
        if self._viewer_moved(viewer, week_id):
            refresh = True

        if refresh:
            self.backend.delete(self._predictions_key(week_id))
        else:
            cached = self.backend.get(self._predictions_key(week_id))
            if cached is not None:
                logger.debug(f"Prediction cache hit for week {week_id}")
                return cached

        predictions, complete = self._fill(week_id, list(match_ids), loader)
        if complete:
            self.backend.set(
                self._predictions_key(week_id), predictions, timeout=self.timeout
            )
            logger.debug(f"Prediction cache set for week {week_id}")
        return predictions

    def _fill(self, week_id, match_ids, loader):
        loader = loader or load_match_predictions

        if not match_ids:
            return {}, True

        if self.read_timeout is None:
            return {match_id: loader(match_id) for match_id in match_ids}, True

        app = current_app._get_current_object() if has_app_context() else None

        def read(match_id):
            if app is None:
                return loader(match_id)
            with app.app_context():
                return loader(match_id)

        executor = ThreadPoolExecutor(
            max_workers=min(len(match_ids), 10), thread_name_prefix="predcache"
        )
        try:
            futures = {match_id: executor.submit(read, match_id) for match_id in match_ids}
            _, not_done = wait(futures.values(), timeout=self.read_timeout)
            if not_done:
                logger.warning(
                    f"Prediction read for week {week_id} exceeded {self.read_timeout}s, "
                    "serving empty data"
                )
                return {}, False
            return {match_id: future.result() for match_id, future in futures.items()}, True
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def set_fixtures(self, week_id, fixtures):
        """Store the week's match list (match dicts in week order)"""
        self.backend.set(self._fixtures_key(week_id), fixtures, timeout=self.timeout)

    def get_fixtures(self, week_id):
        return self.backend.get(self._fixtures_key(week_id))

    def invalidate(self, week_id):
        """Drop cached predictions and fixtures for a week"""
        self.backend.delete(self._predictions_key(week_id))
        self.backend.delete(self._fixtures_key(week_id))
        logger.debug(f"Prediction cache invalidated for week {week_id}")


def get_prediction_cache():
    """The PredictionCache registered on the current app"""
    return current_app.extensions["prediction_cache"]
