from datetime import datetime, timezone

from app import db

FINISHED_STATUSES = ("FT", "AET", "PEN")
LIVE_STATUSES = ("1H", "HT", "2H", "ET", "BT", "P", "LIVE", "INT", "SUSP")


class Match(db.Model):
    __tablename__ = "matches"

    # Provider fixture id
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    # Match timing; NULL when the provider date could not be parsed
    kickoff = db.Column(db.DateTime)
    status = db.Column(db.String(10), nullable=False, default="NS")
    elapsed = db.Column(db.Integer)

    # Teams
    home_team_id = db.Column(db.Integer)
    home_team_name = db.Column(db.String(100), nullable=False, default="")
    home_team_logo = db.Column(db.String(500))
    away_team_id = db.Column(db.Integer)
    away_team_name = db.Column(db.String(100), nullable=False, default="")
    away_team_logo = db.Column(db.String(500))

    # League
    league_id = db.Column(db.Integer)
    league_name = db.Column(db.String(100))
    league_country = db.Column(db.String(100))

    # Scores
    home_goals = db.Column(db.Integer)
    away_goals = db.Column(db.Integer)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="match", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_match_kickoff", "kickoff"),
        db.Index("idx_match_status", "status"),
    )

    def __repr__(self):
        return f"<Match {self.id} {self.home_team_name} vs {self.away_team_name} [{self.status}]>"

    @property
    def is_finished(self):
        return self.status in FINISHED_STATUSES

    @property
    def is_live(self):
        return self.status in LIVE_STATUSES

    @property
    def kickoff_utc(self):
        """Kickoff as an aware UTC datetime (stored values are naive UTC)"""
        if self.kickoff is None:
            return None
        if self.kickoff.tzinfo is None:
            return self.kickoff.replace(tzinfo=timezone.utc)
        return self.kickoff.astimezone(timezone.utc)

    @staticmethod
    def upsert_from_provider(data):
        """Create or refresh a match row from a normalized provider dict"""
        match = db.session.get(Match, data["id"])
        if match is None:
            match = Match(id=data["id"])
            db.session.add(match)

        home = data.get("home_team") or {}
        away = data.get("away_team") or {}
        league = data.get("league") or {}

        kickoff = data.get("kickoff")
        if kickoff is not None and kickoff.tzinfo is not None:
            kickoff = kickoff.astimezone(timezone.utc).replace(tzinfo=None)

        match.kickoff = kickoff
        match.status = data.get("status") or "NS"
        match.elapsed = data.get("elapsed")
        match.home_team_id = home.get("id")
        match.home_team_name = home.get("name") or ""
        match.home_team_logo = home.get("logo")
        match.away_team_id = away.get("id")
        match.away_team_name = away.get("name") or ""
        match.away_team_logo = away.get("logo")
        match.league_id = league.get("id")
        match.league_name = league.get("name")
        match.league_country = league.get("country")
        match.home_goals = data.get("home_goals")
        match.away_goals = data.get("away_goals")
        return match

    def snapshot(self):
        """Denormalized fields copied onto predictions for historical display"""
        return {
            "home_team_name": self.home_team_name,
            "away_team_name": self.away_team_name,
            "league_name": self.league_name,
            "match_date": self.kickoff,
            "match_status": self.status,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
        }

    def to_dict(self):
        """Convert match to dictionary for API responses"""
        return {
            "id": self.id,
            "kickoff": self.kickoff_utc.isoformat() if self.kickoff else None,
            "status": self.status,
            "elapsed": self.elapsed,
            "home_team": {
                "id": self.home_team_id,
                "name": self.home_team_name,
                "logo": self.home_team_logo,
            },
            "away_team": {
                "id": self.away_team_id,
                "name": self.away_team_name,
                "logo": self.away_team_logo,
            },
            "league": {
                "id": self.league_id,
                "name": self.league_name,
                "country": self.league_country,
            },
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "is_finished": self.is_finished,
        }
