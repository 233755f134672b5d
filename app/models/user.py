from datetime import datetime, timezone

from flask_login import UserMixin

from app import db, login_manager


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # Cumulative scoring, maintained incrementally by the award engine
    points = db.Column(db.Integer, nullable=False, default=0)
    total_predictions = db.Column(db.Integer, nullable=False, default=0)
    correct_predictions = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_user_points", "points"),
        db.CheckConstraint("points >= 0", name="non_negative_points"),
    )

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def name(self):
        return self.display_name or self.username or "Player"

    @property
    def accuracy(self):
        """Share of awarded predictions that were correct, as a whole percent"""
        if not self.total_predictions:
            return 0
        return round(self.correct_predictions / self.total_predictions * 100)

    def get_pending_predictions(self):
        from .prediction import Prediction

        return (
            Prediction.query.filter_by(user_id=self.id, awarded=False)
            .order_by(Prediction.id)
            .all()
        )

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.name,
            "points": self.points,
            "total_predictions": self.total_predictions,
            "correct_predictions": self.correct_predictions,
            "accuracy": self.accuracy,
        }


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))
