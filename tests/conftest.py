from datetime import datetime, timedelta, timezone

import pytest

from app import create_app, db
from app.errors import MatchProviderError
from app.models import Match, Prediction, User, Week


def utcnow_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True
        return client

    return _login


@pytest.fixture
def make_user(app):
    def _make_user(username, display_name=None, points=0):
        user = User(username=username, display_name=display_name, points=points)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_match(app):
    def _make_match(match_id, kickoff=None, status="NS", home_goals=None, away_goals=None):
        match = Match(
            id=match_id,
            kickoff=kickoff if kickoff is not None else utcnow_naive() + timedelta(days=2),
            status=status,
            home_team_name=f"Home {match_id}",
            away_team_name=f"Away {match_id}",
            league_name="Test League",
            home_goals=home_goals,
            away_goals=away_goals,
        )
        db.session.add(match)
        db.session.commit()
        return match

    return _make_match


@pytest.fixture
def make_week(app):
    def _make_week(week_id, match_ids, status="active", deadline=None, force_open=False):
        week = Week(
            id=week_id,
            name=week_id,
            status=status,
            deadline=deadline,
            force_open=force_open,
        )
        week.set_matches(match_ids)
        db.session.add(week)
        db.session.commit()
        return week

    return _make_week


@pytest.fixture
def make_prediction(app):
    def _make_prediction(user, match, pick):
        prediction = Prediction(user_id=user.id, match_id=match.id, pick=pick)
        prediction.apply_snapshot(match.snapshot())
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return _make_prediction


class FakeProvider:
    """Stands in for ApiFootballClient; serves normalized match dicts"""

    def __init__(self, matches=None, failing=()):
        self.matches = dict(matches or {})
        self.failing = set(failing)
        self.calls = []

    def get_match(self, match_id):
        self.calls.append(match_id)
        if match_id in self.failing:
            raise MatchProviderError("provider timeout", match_id=match_id)
        return self.matches.get(match_id)

    def get_matches_by_ids(self, match_ids):
        return [self.get_match(match_id) for match_id in match_ids if match_id in self.matches]


def provider_match(match_id, status="FT", home_goals=None, away_goals=None, kickoff=None):
    return {
        "id": match_id,
        "kickoff": kickoff or datetime(2024, 5, 4, 14, 0, tzinfo=timezone.utc),
        "status": status,
        "elapsed": 90 if status == "FT" else None,
        "home_team": {"id": 1, "name": f"Home {match_id}", "logo": ""},
        "away_team": {"id": 2, "name": f"Away {match_id}", "logo": ""},
        "league": {"id": 39, "name": "Test League", "country": "England"},
        "home_goals": home_goals,
        "away_goals": away_goals,
    }


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fixture_data():
    return provider_match


@pytest.fixture
def provider_factory():
    return FakeProvider
