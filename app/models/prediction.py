from datetime import datetime, timezone

from app import db

HOME = "H"
DRAW = "D"
AWAY = "A"
VALID_PICKS = (HOME, DRAW, AWAY)


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    match_id = db.Column(db.Integer, db.ForeignKey("matches.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    pick = db.Column(db.String(1), nullable=False)

    # Results (set once by the award engine)
    awarded = db.Column(db.Boolean, nullable=False, default=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    correct = db.Column(db.Boolean)

    # Snapshot of the match, kept for history even if the match row changes
    home_team_name = db.Column(db.String(100))
    away_team_name = db.Column(db.String(100))
    league_name = db.Column(db.String(100))
    match_date = db.Column(db.DateTime)
    match_status = db.Column(db.String(10), default="NS")
    home_goals = db.Column(db.Integer)
    away_goals = db.Column(db.Integer)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("match_id", "user_id", name="unique_match_user_prediction"),
        db.CheckConstraint("pick IN ('H', 'D', 'A')", name="valid_pick"),
        db.Index("idx_prediction_user_awarded", "user_id", "awarded"),
        db.Index("idx_prediction_match", "match_id"),
    )

    def __repr__(self):
        return f"<Prediction user_id={self.user_id} match_id={self.match_id} pick={self.pick}>"

    def apply_snapshot(self, snapshot):
        for field, value in snapshot.items():
            setattr(self, field, value)

    def to_snapshot(self):
        """Compact, cache-friendly view used by the ranking aggregators"""
        return {
            "user_id": self.user_id,
            "match_id": self.match_id,
            "pick": self.pick,
            "awarded": bool(self.awarded),
            "points": self.points or 0,
            "correct": self.correct,
        }

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "match_id": self.match_id,
            "user_id": self.user_id,
            "pick": self.pick,
            "awarded": self.awarded,
            "points": self.points,
            "correct": self.correct,
            "home_team": self.home_team_name,
            "away_team": self.away_team_name,
            "league": self.league_name,
            "match_date": (
                self.match_date.replace(tzinfo=timezone.utc).isoformat()
                if self.match_date
                else None
            ),
            "status": self.match_status,
            "result": (
                {"home_goals": self.home_goals, "away_goals": self.away_goals}
                if self.home_goals is not None and self.away_goals is not None
                else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
