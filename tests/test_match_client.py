from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import requests

from app import db
from app.errors import MatchProviderError
from app.models import Match, Week
from app.utils.data_sync import MatchSync
from app.utils.match_client import ApiFootballClient, normalize_fixture, parse_retry_after

RAW_FIXTURE = {
    "fixture": {
        "id": 1035037,
        "date": "2024-05-04T14:00:00+00:00",
        "status": {"short": "FT", "elapsed": 90},
    },
    "league": {"id": 39, "name": "Premier League", "country": "England"},
    "teams": {
        "home": {"id": 50, "name": "Manchester City", "logo": "city.png"},
        "away": {"id": 42, "name": "Arsenal", "logo": "arsenal.png"},
    },
    "goals": {"home": 2, "away": 1},
}


def make_response(status_code=200, payload=None, headers=None):
    response = mock.Mock()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {"response": []}
    return response


@pytest.fixture
def api():
    api = ApiFootballClient("test-key", base_url="https://example.test/")
    api.sleep = mock.Mock()
    api.session = mock.Mock()
    return api


def test_normalize_fixture():
    match = normalize_fixture(RAW_FIXTURE)

    assert match["id"] == 1035037
    assert match["kickoff"] == datetime(2024, 5, 4, 14, 0, tzinfo=timezone.utc)
    assert match["status"] == "FT"
    assert match["home_team"]["name"] == "Manchester City"
    assert match["away_team"]["id"] == 42
    assert match["league"]["country"] == "England"
    assert (match["home_goals"], match["away_goals"]) == (2, 1)


def test_normalize_fixture_tolerates_missing_fields():
    match = normalize_fixture({"fixture": {"id": 5, "date": "garbage"}})

    assert match["id"] == 5
    assert match["kickoff"] is None
    assert match["status"] == "NS"
    assert match["home_goals"] is None


def test_from_config_requires_api_key():
    assert ApiFootballClient.from_config({"MATCH_API_KEY": None}) is None
    api = ApiFootballClient.from_config(
        {"MATCH_API_KEY": "abc", "MATCH_API_BASE_URL": "https://example.test"}
    )
    assert api.base_url == "https://example.test"
    assert api.session.headers["x-apisports-key"] == "abc"


def test_get_match(api):
    api.session.get.return_value = make_response(payload={"response": [RAW_FIXTURE]})

    match = api.get_match(1035037)

    assert match["id"] == 1035037
    url = api.session.get.call_args[0][0]
    assert url == "https://example.test/fixtures"
    assert api.session.get.call_args[1]["params"] == {"id": 1035037}


def test_get_match_unknown_returns_none(api):
    api.session.get.return_value = make_response(payload={"response": []})
    assert api.get_match(1) is None


def test_get_matches_by_ids_is_chunked(api):
    api.session.get.return_value = make_response(payload={"response": [RAW_FIXTURE]})

    api.get_matches_by_ids(range(1, 46))

    params = [call[1]["params"]["ids"] for call in api.session.get.call_args_list]
    assert len(params) == 3
    assert params[0] == "-".join(str(i) for i in range(1, 21))
    assert params[2] == "-".join(str(i) for i in range(41, 46))


def test_rate_limited_request_is_retried(api):
    api.session.get.side_effect = [
        make_response(429, headers={"Retry-After": "3"}),
        make_response(payload={"response": [RAW_FIXTURE]}),
    ]

    assert api.get_match(1035037)["id"] == 1035037
    api.sleep.assert_any_call(3.0)


def test_rate_limit_with_http_date_retry_after(api):
    api.session.get.side_effect = [
        make_response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
        make_response(payload={"response": [RAW_FIXTURE]}),
    ]

    assert api.get_match(1035037)["id"] == 1035037
    api.sleep.assert_any_call(0.0)


def test_parse_retry_after():
    assert parse_retry_after("3", 2.0) == 3.0
    assert parse_retry_after(None, 2.0) == 2.0
    assert parse_retry_after("soon", 2.0) == 2.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", 2.0) == 0.0

    later = datetime.now(timezone.utc) + timedelta(seconds=120)
    wait = parse_retry_after(later.strftime("%a, %d %b %Y %H:%M:%S GMT"), 2.0)
    assert 100 < wait <= 120


def test_malformed_fixture_payload_is_a_provider_error(api):
    api.session.get.return_value = make_response(payload={"response": ["not-a-fixture"]})

    with pytest.raises(MatchProviderError) as excinfo:
        api.get_match(5)
    assert excinfo.value.match_id == 5


def test_server_errors_exhaust_retries(api):
    api.session.get.return_value = make_response(503)

    with pytest.raises(MatchProviderError) as excinfo:
        api.get_match(77)

    assert excinfo.value.match_id == 77
    assert api.session.get.call_count == 3


def test_connection_errors_become_provider_errors(api):
    api.session.get.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(MatchProviderError):
        api.get_match(1)


def test_api_errors_field_is_an_error(api):
    api.session.get.return_value = make_response(
        payload={"errors": {"token": "Invalid API key"}, "response": []}
    )

    with pytest.raises(MatchProviderError, match="Invalid API key"):
        api.get_match(1)


def test_client_errors_are_not_retried(api):
    api.session.get.return_value = make_response(404)

    with pytest.raises(MatchProviderError):
        api.get_match(1)

    assert api.session.get.call_count == 1


def test_sync_week_matches_upserts(app, make_match, make_week, provider_factory, fixture_data):
    make_match(1, status="1H", home_goals=0, away_goals=0)
    make_match(2)
    make_week("w1", [1, 2])

    provider = provider_factory(
        {
            1: fixture_data(1, "FT", home_goals=1, away_goals=1),
            2: fixture_data(2, "NS"),
        }
    )
    success, message = MatchSync(provider).sync_week_matches(db.session.get(Week, "w1"))

    assert success is True
    assert message == "Synced 2 of 2 matches"
    assert db.session.get(Match, 1).is_finished
    assert db.session.get(Match, 2).kickoff == datetime(2024, 5, 4, 14, 0)


def test_sync_reports_provider_failure(app, make_match, make_week, provider_factory):
    make_match(3)
    week = make_week("w1", [3])
    provider = provider_factory({3: {}}, failing={3})

    success, message = MatchSync(provider).sync_week_matches(week)

    assert success is False
    assert "provider timeout" in message
