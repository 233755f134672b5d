import pytest

from app import db
from app.models import User
from app.services.award_service import AwardEngine
from app.services.ranking_service import (
    aggregate_week,
    get_all_time_rankings,
    get_weekly_rankings,
    order_entries,
)
from app.utils import cache_utils


def test_end_to_end_week(make_user, make_match, make_week, make_prediction):
    user_a = make_user("a", "Player A")
    user_b = make_user("b", "Player B")
    make_user("c", "Player C")
    m1 = make_match(1, status="FT", home_goals=2, away_goals=1)
    m2 = make_match(2, status="FT", home_goals=0, away_goals=0)
    make_week("w1", [1, 2])

    make_prediction(user_a, m1, "H")
    make_prediction(user_a, m2, "D")
    make_prediction(user_b, m1, "A")
    make_prediction(user_b, m2, "H")

    AwardEngine().award_pending_for_all()
    rankings = get_weekly_rankings("w1", current_user_id=user_b.id)

    assert [entry["display_name"] for entry in rankings] == ["Player A", "Player B"]
    first, second = rankings
    assert first["rank"] == 1 and first["weekly_points"] == 2
    assert second["rank"] == 2 and second["weekly_points"] == 0
    assert first["weekly_total"] == second["weekly_total"] == 2
    assert first["weekly_accuracy"] == 100
    assert second["is_current_user"] is True
    assert first["is_current_user"] is False
    assert first["points"] == 2


def test_tie_broken_by_predictions_made(make_user, make_match, make_week, make_prediction):
    fewer = make_user("fewer")
    more = make_user("more")
    m1 = make_match(1, status="FT", home_goals=1, away_goals=0)
    m2 = make_match(2, status="FT", home_goals=1, away_goals=0)
    m3 = make_match(3)
    make_week("w1", [1, 2, 3])

    make_prediction(fewer, m1, "H")
    make_prediction(fewer, m2, "A")
    make_prediction(more, m1, "H")
    make_prediction(more, m2, "D")
    make_prediction(more, m3, "H")

    AwardEngine().award_pending_for_all()
    rankings = get_weekly_rankings("w1")

    assert [(entry["user_id"], entry["rank"]) for entry in rankings] == [
        (more.id, 1),
        (fewer.id, 2),
    ]
    assert rankings[0]["weekly_total"] == 3
    assert rankings[1]["weekly_total"] == 2


def test_pending_predictions_count_towards_total_only(
    make_user, make_match, make_week, make_prediction
):
    user = make_user("pending")
    upcoming = make_match(5)
    make_week("w1", [5])
    make_prediction(user, upcoming, "H")

    rankings = get_weekly_rankings("w1")

    assert len(rankings) == 1
    assert rankings[0]["weekly_points"] == 0
    assert rankings[0]["weekly_total"] == 1
    assert rankings[0]["weekly_accuracy"] == 0


def test_unknown_or_empty_week_gives_empty_list(make_week):
    make_week("empty", [])
    assert get_weekly_rankings("missing") == []
    assert get_weekly_rankings("empty") == []


def test_week_without_predictions_gives_empty_list(make_user, make_match, make_week):
    make_user("idle")
    make_match(9)
    make_week("w1", [9])
    assert get_weekly_rankings("w1") == []


def test_cached_rankings_follow_new_predictions(
    app, make_user, make_match, make_week, make_prediction
):
    early = make_user("early")
    late = make_user("late")
    m1 = make_match(1)
    make_week("w1", [1])
    make_prediction(early, m1, "H")

    assert len(get_weekly_rankings("w1")) == 1

    # Written behind the cache's back: only visible after a refresh
    make_prediction(late, m1, "A")
    assert len(get_weekly_rankings("w1")) == 1
    assert len(get_weekly_rankings("w1", refresh=True)) == 2


def test_viewers_on_different_weeks_do_not_evict_each_other(
    app, make_user, make_match, make_week, make_prediction, monkeypatch
):
    viewer_a = make_user("viewer_a")
    viewer_b = make_user("viewer_b")
    m1 = make_match(1)
    m2 = make_match(2)
    make_week("A", [1])
    make_week("B", [2])
    make_prediction(viewer_a, m1, "H")
    make_prediction(viewer_b, m2, "D")

    reads = []
    original = cache_utils.load_match_predictions

    def counting_loader(match_id):
        reads.append(match_id)
        return original(match_id)

    monkeypatch.setattr(cache_utils, "load_match_predictions", counting_loader)

    for _ in range(3):
        assert len(get_weekly_rankings("A", current_user_id=viewer_a.id)) == 1
        assert len(get_weekly_rankings("B", current_user_id=viewer_b.id)) == 1

    assert reads == [1, 2]


def test_fixtures_cache_holds_match_details(app, make_user, make_match, make_week, make_prediction):
    user = make_user("fan")
    make_match(1)
    m2 = make_match(2)
    make_week("w1", [2, 1])
    make_prediction(user, m2, "A")
    prediction_cache = app.extensions["prediction_cache"]

    get_weekly_rankings("w1")
    fixtures = prediction_cache.get_fixtures("w1")
    assert [fixture["id"] for fixture in fixtures] == [2, 1]
    assert fixtures[0]["home_team"]["name"] == "Home 2"

    get_weekly_rankings("w1", refresh=True)
    assert [fixture["id"] for fixture in prediction_cache.get_fixtures("w1")] == [2, 1]


def test_ties_keep_ascending_user_id():
    totals = {
        7: {"weekly_points": 1, "weekly_total": 2, "weekly_correct": 1},
        3: {"weekly_points": 1, "weekly_total": 2, "weekly_correct": 1},
        5: {"weekly_points": 0, "weekly_total": 0, "weekly_correct": 0},
    }
    assert [user_id for user_id, _ in order_entries(totals)] == [3, 7]


def test_aggregate_week_counts_awarded_points():
    totals = aggregate_week(
        {
            1: {
                10: {"awarded": True, "points": 1},
                11: {"awarded": True, "points": 0},
            },
            2: {10: {"awarded": False, "points": 0}},
        }
    )
    assert totals[10] == {"weekly_points": 1, "weekly_total": 2, "weekly_correct": 1}
    assert totals[11] == {"weekly_points": 0, "weekly_total": 1, "weekly_correct": 0}


def test_all_time_rankings_order_and_limit(make_user):
    make_user("low", points=1)
    top = make_user("top", points=9)
    tied_first = make_user("tied1", points=4)
    tied_second = make_user("tied2", points=4)

    rankings = get_all_time_rankings(limit=3)

    assert [entry["user_id"] for entry in rankings] == [top.id, tied_first.id, tied_second.id]
    assert [entry["rank"] for entry in rankings] == [1, 2, 3]
    assert rankings[0]["points"] == 9


@pytest.mark.parametrize("limit", [0, -5, None])
def test_all_time_rankings_invalid_limit(make_user, limit):
    make_user("someone", points=3)
    assert get_all_time_rankings(limit) == []


def test_all_time_rankings_skip_inactive_users(make_user):
    gone = make_user("gone", points=50)
    gone.is_active = False
    db.session.commit()
    make_user("here", points=1)

    assert [entry["display_name"] for entry in get_all_time_rankings()] == ["here"]
    assert db.session.get(User, gone.id).points == 50
