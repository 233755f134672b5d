from datetime import datetime, timedelta, timezone

import pytest

from app.errors import DataUnavailableError
from app.services import ranking_service


def utcnow_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture
def week(make_match, make_week):
    make_match(1, kickoff=utcnow_naive() + timedelta(days=2))
    make_match(2, kickoff=utcnow_naive() + timedelta(days=3))
    return make_week("2024-05-03_2024-05-06", [1, 2])


def test_week_status(client, week):
    response = client.get(f"/api/weeks/{week.id}/status")

    assert response.status_code == 200
    data = response.get_json()
    assert data["open"] is True
    assert data["week_id"] == week.id
    assert data["seconds_remaining"] > 0


def test_week_status_unknown_week(client):
    response = client.get("/api/weeks/missing/status")
    assert response.status_code == 404


def test_current_week_detail(client, week):
    response = client.get("/api/weeks/current")

    assert response.status_code == 200
    data = response.get_json()
    assert data["id"] == week.id
    assert [match["id"] for match in data["matches"]] == [1, 2]
    assert data["gate"]["open"] is True
    assert data["player_count"] == 0


def test_submitting_requires_login(client, week):
    response = client.post(f"/api/weeks/{week.id}/predictions", json={"picks": {"1": "H"}})

    assert response.status_code == 401
    assert response.get_json() == {"error": "Authentication required"}


def test_submit_and_read_back(client, login, make_user, week):
    user = make_user("api-user")
    login(user)

    response = client.post(
        f"/api/weeks/{week.id}/predictions", json={"picks": {"1": "H", "2": "A"}}
    )
    assert response.status_code == 200
    assert response.get_json()["created"] == 2

    response = client.get(f"/api/weeks/{week.id}/predictions/me")
    picks = [(p["match_id"], p["pick"]) for p in response.get_json()["predictions"]]
    assert picks == [(1, "H"), (2, "A")]


def test_submit_invalid_pick(client, login, make_user, week):
    login(make_user("sloppy"))
    response = client.post(f"/api/weeks/{week.id}/predictions", json={"picks": {"1": "X"}})
    assert response.status_code == 400


def test_submit_without_body(client, login, make_user, week):
    login(make_user("empty"))
    response = client.post(f"/api/weeks/{week.id}/predictions", data="nope")
    assert response.status_code == 400


def test_submit_after_close(client, login, make_user, make_match, make_week):
    make_match(5, kickoff=utcnow_naive() + timedelta(minutes=30))
    closed = make_week("closed", [5])
    login(make_user("tardy"))

    response = client.post(f"/api/weeks/{closed.id}/predictions", json={"picks": {"5": "H"}})

    assert response.status_code == 403
    assert response.get_json() == {
        "error": "Picks are closed for this week",
        "week_id": "closed",
    }


def test_rankings_endpoints(client, login, make_user, make_prediction, make_match, make_week):
    finished = make_match(8, status="FT", home_goals=1, away_goals=0)
    make_week("done", [8])
    winner = make_user("winner")
    make_prediction(winner, finished, "H")
    login(winner)

    response = client.post("/api/awards")
    assert response.status_code == 200
    assert response.get_json()["points_awarded"] == 1

    rankings = client.get("/api/weeks/done/rankings").get_json()["rankings"]
    assert rankings[0]["user_id"] == winner.id
    assert rankings[0]["is_current_user"] is True

    all_time = client.get("/api/rankings/all-time?limit=5").get_json()["rankings"]
    assert all_time[0]["points"] == 1

    history = client.get("/api/users/me/history").get_json()["predictions"]
    assert history[0]["awarded"] is True


def test_empty_rankings_are_ok(client):
    response = client.get("/api/weeks/nothing/rankings")
    assert response.status_code == 200
    assert response.get_json()["rankings"] == []

    response = client.get("/api/rankings/all-time?limit=0")
    assert response.status_code == 200
    assert response.get_json()["rankings"] == []


def test_store_outage_maps_to_503(client, monkeypatch):
    def unavailable(*args, **kwargs):
        raise DataUnavailableError("down")

    monkeypatch.setattr(ranking_service, "get_weekly_rankings", unavailable)

    response = client.get("/api/weeks/w1/rankings")
    assert response.status_code == 503
    assert response.get_json() == {"error": "Service unavailable"}
