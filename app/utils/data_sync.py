import logging

from app import db
from app.errors import MatchProviderError
from app.models import Match, Week

logger = logging.getLogger(__name__)


class MatchSync:
    """
    Refreshes locally stored matches from the match-data provider
    """

    def __init__(self, provider):
        self.provider = provider

    def import_matches(self, match_ids):
        """Fetch and upsert the given matches; returns the stored rows"""
        fixtures = self.provider.get_matches_by_ids(match_ids)
        matches = []
        for data in fixtures:
            if data.get("id") is None:
                continue
            matches.append(Match.upsert_from_provider(data))
        return matches

    def sync_week_matches(self, week):
        """Refresh every match of ``week``; returns (success, message)"""
        match_ids = week.match_ids
        if not match_ids:
            return True, f"Week {week.id} has no matches"

        try:
            matches = self.import_matches(match_ids)
            db.session.commit()
        except MatchProviderError as e:
            db.session.rollback()
            logger.warning(f"Provider failed while syncing week {week.id}: {e}")
            return False, str(e)

        missing = set(match_ids) - {match.id for match in matches}
        if missing:
            logger.warning(
                f"Provider returned no data for matches {sorted(missing)} in week {week.id}"
            )

        return True, f"Synced {len(matches)} of {len(match_ids)} matches"

    def sync_active_weeks(self):
        """Refresh matches for all active weeks, one week failing does not stop others"""
        results = {}
        for week in Week.get_active_weeks():
            success, message = self.sync_week_matches(week)
            results[week.id] = (success, message)
            if success:
                logger.info(f"Week {week.id}: {message}")
        return results
