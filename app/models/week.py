from datetime import date, datetime, timezone

from app import db

WEEK_STATUSES = ("draft", "active", "completed", "archived")


class WeekMatch(db.Model):
    """Ordered membership of a match in a curated week"""

    __tablename__ = "week_matches"

    week_id = db.Column(db.String(64), db.ForeignKey("weeks.id"), primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey("matches.id"), primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    match = db.relationship("Match", lazy="joined")

    __table_args__ = (db.Index("idx_week_match_match", "match_id"),)


class Week(db.Model):
    __tablename__ = "weeks"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="draft")

    # Explicit close instant; overrides the kickoff-offset rule when set
    deadline = db.Column(db.DateTime)
    # Admin override that keeps the gate open regardless of timing
    force_open = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    entries = db.relationship(
        "WeekMatch",
        backref="week",
        order_by="WeekMatch.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft', 'active', 'completed', 'archived')",
            name="valid_week_status",
        ),
        db.Index("idx_week_status", "status"),
    )

    def __repr__(self):
        return f"<Week {self.id} ({self.status})>"

    @staticmethod
    def derive_id(from_date, to_date):
        """Build the ``{fromDate}_{toDate}`` identifier for a date-ranged week"""
        if isinstance(from_date, datetime):
            from_date = from_date.date()
        if isinstance(to_date, datetime):
            to_date = to_date.date()
        if not isinstance(from_date, date) or not isinstance(to_date, date):
            raise ValueError("Week bounds must be dates")
        if to_date < from_date:
            raise ValueError("Week end date is before its start date")
        return f"{from_date.isoformat()}_{to_date.isoformat()}"

    @property
    def match_ids(self):
        return [entry.match_id for entry in self.entries]

    @property
    def matches(self):
        return [entry.match for entry in self.entries if entry.match is not None]

    @property
    def deadline_utc(self):
        if self.deadline is None:
            return None
        if self.deadline.tzinfo is None:
            return self.deadline.replace(tzinfo=timezone.utc)
        return self.deadline.astimezone(timezone.utc)

    def contains_match(self, match_id):
        return match_id in self.match_ids

    def set_matches(self, match_ids, max_matches=10):
        """Replace the ordered match list (admin curation)"""
        unique_ids = list(dict.fromkeys(match_ids))
        if len(unique_ids) > max_matches:
            raise ValueError(f"A week can hold at most {max_matches} matches")

        self.entries = [
            WeekMatch(match_id=match_id, position=index)
            for index, match_id in enumerate(unique_ids)
        ]

    @staticmethod
    def get_active_weeks():
        return Week.query.filter_by(status="active").order_by(Week.id.desc()).all()

    @staticmethod
    def get_current_week():
        """Latest active week, else latest completed, else latest non-archived"""
        for status in ("active", "completed"):
            week = Week.query.filter_by(status=status).order_by(Week.id.desc()).first()
            if week:
                return week
        return (
            Week.query.filter(Week.status != "archived").order_by(Week.id.desc()).first()
        )

    def to_dict(self, include_matches=False):
        data = {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "deadline": self.deadline_utc.isoformat() if self.deadline else None,
            "force_open": self.force_open,
            "match_ids": self.match_ids,
        }
        if include_matches:
            data["matches"] = [match.to_dict() for match in self.matches]
        return data
