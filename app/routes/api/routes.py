from functools import wraps

from flask import jsonify, request
from flask_login import current_user, login_required

from app import db, limiter
from app.errors import InvalidPickError, NotFoundError
from app.models import Week
from app.routes.api import bp
from app.services import prediction_service, ranking_service
from app.services.award_service import award_pending_for_user
from app.utils.admission import gate_status


def add_security_headers(f):
    """Add no-store headers to per-user API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return response

    return decorated_function


def _get_week_or_404(week_id):
    week = db.session.get(Week, week_id)
    if week is None:
        raise NotFoundError(f"Week {week_id} not found")
    return week


def _current_user_id():
    return current_user.id if current_user.is_authenticated else None


@bp.route("/weeks/current")
def current_week():
    """Latest active week with its matches and gate state"""
    week = Week.get_current_week()
    if week is None:
        return jsonify({"error": "No week available"}), 404
    return week_detail(week.id)


@bp.route("/weeks/<week_id>")
def week_detail(week_id):
    week = _get_week_or_404(week_id)
    data = week.to_dict(include_matches=True)
    data["gate"] = gate_status(week)
    data["player_count"] = prediction_service.get_week_player_count(week.id)
    return jsonify(data)


@bp.route("/weeks/<week_id>/status")
def week_status(week_id):
    """Admission gate state, used by the UI to enable the submit control"""
    week = _get_week_or_404(week_id)
    return jsonify(gate_status(week))


@bp.route("/weeks/<week_id>/predictions", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
@add_security_headers
def submit_predictions(week_id):
    """Create or overwrite the current user's picks for a week"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "picks" not in data:
        raise InvalidPickError("Request body must contain picks")

    result = prediction_service.save_predictions(current_user.id, week_id, data["picks"])
    return jsonify({"success": True, **result})


@bp.route("/weeks/<week_id>/predictions/me")
@login_required
@add_security_headers
def my_predictions(week_id):
    week = _get_week_or_404(week_id)
    predictions = prediction_service.get_user_predictions(current_user.id, week.match_ids)
    return jsonify(
        {
            "week_id": week.id,
            "predictions": [predictions[match_id] for match_id in week.match_ids if match_id in predictions],
        }
    )


@bp.route("/weeks/<week_id>/rankings")
def week_rankings(week_id):
    """Weekly leaderboard; an unknown or empty week gives an empty list"""
    refresh = request.args.get("refresh", "").lower() in ("1", "true", "yes")
    rankings = ranking_service.get_weekly_rankings(
        week_id, current_user_id=_current_user_id(), refresh=refresh
    )
    return jsonify({"week_id": week_id, "rankings": rankings})


@bp.route("/rankings/all-time")
def all_time_rankings():
    limit = request.args.get("limit", 50, type=int)
    return jsonify({"rankings": ranking_service.get_all_time_rankings(limit)})


@bp.route("/awards", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
@add_security_headers
def award_my_predictions():
    """Award the current user's pending predictions on finished matches"""
    result = award_pending_for_user(current_user.id)
    return jsonify(result)


@bp.route("/users/me")
@login_required
@add_security_headers
def me():
    return jsonify(current_user.to_dict())


@bp.route("/users/me/history")
@login_required
@add_security_headers
def my_history():
    limit = request.args.get("limit", type=int)
    return jsonify({"predictions": prediction_service.get_user_history(current_user.id, limit)})
