from app import db  # noqa: F401 - imported for model imports

from .app_settings import AppSettings
from .match import Match
from .prediction import Prediction
from .user import User
from .week import Week, WeekMatch

__all__ = [
    "AppSettings",
    "Match",
    "Prediction",
    "User",
    "Week",
    "WeekMatch",
]
