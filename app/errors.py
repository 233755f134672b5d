"""
Exception types raised by the prediction engine.

Route handlers translate these into JSON responses (see
``register_error_handlers`` in ``app/__init__.py``).
"""


class PredictorError(Exception):
    """Base class for engine errors"""


class DataUnavailableError(PredictorError):
    """The backing data store could not be reached; aborts the operation"""


class NotFoundError(PredictorError):
    """A week or user referenced by the caller does not exist"""


class InvalidPickError(PredictorError):
    """A submitted pick is malformed or targets a match outside the week"""


class PicksClosedError(PredictorError):
    """The admission gate for the week is closed"""

    def __init__(self, week_id, message="Picks are closed for this week"):
        super().__init__(message)
        self.week_id = week_id


class MatchProviderError(PredictorError):
    """The match-data provider failed for a single request"""

    def __init__(self, message, match_id=None):
        super().__init__(message)
        self.match_id = match_id
