from datetime import datetime, timezone

from flask import current_app

from app import db


class AppSettings(db.Model):
    """Single-row table holding admin-tunable settings"""

    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    # Minutes before the first kickoff at which picks close
    deadline_offset_minutes = db.Column(db.Integer)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "deadline_offset_minutes IS NULL OR deadline_offset_minutes >= 0",
            name="non_negative_deadline_offset",
        ),
    )

    @staticmethod
    def get():
        return AppSettings.query.order_by(AppSettings.id).first()

    @staticmethod
    def get_deadline_offset_minutes():
        """Configured offset, falling back to PICKS_CLOSE_OFFSET_MINUTES"""
        settings = AppSettings.get()
        if settings and settings.deadline_offset_minutes is not None:
            return settings.deadline_offset_minutes
        return current_app.config.get("PICKS_CLOSE_OFFSET_MINUTES", 60)

    @staticmethod
    def set_deadline_offset_minutes(minutes):
        if minutes is not None and minutes < 0:
            raise ValueError("Deadline offset cannot be negative")
        settings = AppSettings.get()
        if settings is None:
            settings = AppSettings()
            db.session.add(settings)
        settings.deadline_offset_minutes = minutes
        return settings
