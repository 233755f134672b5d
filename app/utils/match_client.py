import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from functools import wraps

import requests

from app.errors import MatchProviderError

logger = logging.getLogger(__name__)

# API-Football accepts at most 20 ids per fixtures?ids= request
MAX_IDS_PER_REQUEST = 20
DEFAULT_BASE_URL = "https://v3.football.api-sports.io"


def parse_retry_after(value, default):
    """Seconds to wait from a Retry-After header (delta seconds or HTTP date)"""
    if value is None:
        return default
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable Retry-After header: {value!r}")
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    response = func(self, *args, **kwargs)

                    if response.status_code == 429:  # Too Many Requests
                        retry_after = parse_retry_after(
                            response.headers.get("Retry-After"),
                            base_delay * (backoff_factor**attempt),
                        )
                        logger.warning(
                            f"Rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                        )
                        self.sleep(retry_after)
                        continue
                    elif response.status_code >= 500:  # Server errors
                        delay = base_delay * (backoff_factor**attempt)
                        logger.warning(
                            f"Server error {response.status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                        self.sleep(delay)
                        continue

                    return response

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        self.sleep(delay)
                    else:
                        raise MatchProviderError(f"Match provider unreachable: {e}") from e

            raise MatchProviderError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def _parse_date(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable fixture date: {value!r}")
        return None


def normalize_fixture(raw):
    """Flatten an API-Football fixture into the engine's match dict"""
    fixture = raw.get("fixture") or {}
    status = fixture.get("status") or {}
    teams = raw.get("teams") or {}
    league = raw.get("league") or {}
    goals = raw.get("goals") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}

    return {
        "id": fixture.get("id"),
        "kickoff": _parse_date(fixture.get("date")),
        "status": status.get("short") or "NS",
        "elapsed": status.get("elapsed"),
        "home_team": {
            "id": home.get("id"),
            "name": home.get("name") or "",
            "logo": home.get("logo") or "",
        },
        "away_team": {
            "id": away.get("id"),
            "name": away.get("name") or "",
            "logo": away.get("logo") or "",
        },
        "league": {
            "id": league.get("id"),
            "name": league.get("name") or "",
            "country": league.get("country") or "",
        },
        "home_goals": goals.get("home"),
        "away_goals": goals.get("away"),
    }


class ApiFootballClient:
    """
    Read-only client for the API-Football fixtures endpoint with client-side
    rate limiting and retries
    """

    def __init__(self, api_key, base_url=DEFAULT_BASE_URL, timeout=15):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {"x-apisports-key": api_key, "User-Agent": "Matchweek-Predictor/1.0"}
        )

        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = 30
        self.request_timestamps = []

    @classmethod
    def from_config(cls, config):
        """Build a client from app config, or None when no API key is set"""
        api_key = config.get("MATCH_API_KEY")
        if not api_key:
            return None
        return cls(api_key, base_url=config.get("MATCH_API_BASE_URL") or DEFAULT_BASE_URL)

    def sleep(self, seconds):
        time.sleep(seconds)

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                self.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            self.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _get(self, path, params=None):
        self._enforce_rate_limit()
        return self.session.get(
            f"{self.base_url}/{path}", params=params, timeout=self.timeout
        )

    def _fetch_fixtures(self, params):
        response = self._get("fixtures", params=params)
        if response.status_code >= 400:
            raise MatchProviderError(
                f"Match provider request failed: {response.status_code} {response.reason}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MatchProviderError(f"Match provider returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MatchProviderError("Match provider returned an unexpected payload")

        errors = data.get("errors")
        if errors:
            if isinstance(errors, dict):
                message = ", ".join(f"{key}: {value}" for key, value in errors.items())
            else:
                message = ", ".join(str(error) for error in errors)
            raise MatchProviderError(f"Match provider errors: {message}")

        try:
            return [normalize_fixture(raw) for raw in data.get("response") or []]
        except (AttributeError, TypeError) as e:
            raise MatchProviderError(f"Match provider returned malformed fixtures: {e}") from e

    def get_match(self, match_id):
        """Fetch one match; None when the provider does not know it"""
        try:
            fixtures = self._fetch_fixtures({"id": match_id})
        except MatchProviderError as e:
            e.match_id = match_id
            raise
        return fixtures[0] if fixtures else None

    def get_matches_by_ids(self, match_ids):
        """Fetch many matches, chunked to the provider's per-request limit"""
        match_ids = list(match_ids)
        matches = []
        for start in range(0, len(match_ids), MAX_IDS_PER_REQUEST):
            chunk = match_ids[start : start + MAX_IDS_PER_REQUEST]
            matches.extend(
                self._fetch_fixtures({"ids": "-".join(str(match_id) for match_id in chunk)})
            )
        return matches
