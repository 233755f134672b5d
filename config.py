import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _flag(name, default):
    return os.environ.get(name, str(default)).lower() == "true"


def database_uri():
    """DATABASE_URL, else PostgreSQL from DB_* parts, else a local SQLite file"""
    if os.environ.get("DATABASE_URL"):
        return os.environ["DATABASE_URL"]

    if os.environ.get("DB_TYPE", "sqlite").lower() != "postgresql":
        return "sqlite:///" + os.path.join(basedir, "matchweek.db")

    user = os.environ.get("DB_USER") or "matchweek"
    password = os.environ.get("DB_PASSWORD") or "matchweek"
    host = os.environ.get("DB_HOST") or "localhost"
    port = os.environ.get("DB_PORT") or "5432"
    name = os.environ.get("DB_NAME") or "matchweek_db"
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or secrets.token_urlsafe(32)
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # API-Football
    MATCH_API_KEY = os.environ.get("MATCH_API_KEY")
    MATCH_API_BASE_URL = os.environ.get("MATCH_API_BASE_URL") or "https://v3.football.api-sports.io"

    # Picks close this many minutes before the week's first kickoff unless
    # the settings row overrides it
    PICKS_CLOSE_OFFSET_MINUTES = int(os.environ.get("PICKS_CLOSE_OFFSET_MINUTES") or 60)
    MAX_MATCHES_PER_WEEK = 10
    TIMEZONE = os.environ.get("TIMEZONE", "UTC")

    # Flask-Caching backend for the prediction cache
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "matchweek:"
    PREDICTION_CACHE_TIMEOUT = int(os.environ.get("PREDICTION_CACHE_TIMEOUT", 300))
    RANKINGS_READ_TIMEOUT = float(os.environ.get("RANKINGS_READ_TIMEOUT", "8.0"))

    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = _flag("LOG_TO_CONSOLE", True)
    LOG_TO_FILE = _flag("LOG_TO_FILE", True)
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    def __init__(self):
        self.SQLALCHEMY_DATABASE_URI = database_uri()
        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "SECRET_KEY not set, sessions will not survive a restart", UserWarning
            )


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_ECHO = _flag("SQLALCHEMY_ECHO", False)

    def __init__(self):
        super().__init__()
        import redis

        try:
            redis.Redis.from_url(self.CACHE_REDIS_URL).ping()
        except redis.exceptions.RedisError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn("Redis unreachable, using SimpleCache", UserWarning)


class ProductionConfig(Config):
    DEBUG = False

    def __init__(self):
        super().__init__()
        if not self.MATCH_API_KEY:
            warnings.warn(
                "MATCH_API_KEY not set, match results will not be refreshed",
                UserWarning,
            )


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    CACHE_TYPE = "SimpleCache"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    RANKINGS_READ_TIMEOUT = None
    MATCH_API_KEY = None
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False

    def __init__(self):
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
