"""
Background scheduler service

Keeps the matches of active weeks fresh and awards pending predictions once
their matches are finished, using APScheduler.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app import db
from app.errors import PredictorError
from app.services.award_service import AwardEngine
from app.utils.data_sync import MatchSync
from app.utils.match_client import ApiFootballClient

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages the background match sync and award jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.provider = None
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "predictions_awarded": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        self.provider = ApiFootballClient.from_config(app.config)

        if self.provider is None:
            logger.warning("MATCH_API_KEY not set, match sync disabled")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True

        logger.info("Scheduler started successfully")

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        if self.provider is not None:
            self.scheduler.add_job(
                func=self._sync_week_matches,
                trigger=IntervalTrigger(minutes=1),
                id="sync_week_matches",
                name="Sync Active Week Matches",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=30,
            )

        self.scheduler.add_job(
            func=self._auto_award,
            trigger=IntervalTrigger(minutes=5),
            id="auto_award",
            name="Award Finished Predictions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        logger.info("Core scheduled jobs added")

    def _sync_week_matches(self):
        """Refresh the matches of every active week from the provider"""
        with self.app.app_context():
            try:
                results = MatchSync(self.provider).sync_active_weeks()
                failures = [week_id for week_id, (ok, _) in results.items() if not ok]
                if failures:
                    self._update_stats(False)
                    self.sync_stats["last_error"] = f"Sync failed for weeks {failures}"
                else:
                    self._update_stats(True)
            except PredictorError as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in week match sync: {e}", exc_info=True)

    def _auto_award(self):
        """Award pending predictions on finished matches for all users"""
        with self.app.app_context():
            try:
                result = AwardEngine(self.provider).award_pending_for_all()
                self._update_stats(True, result["updated"])
                if result["updated"]:
                    logger.info(
                        f"Auto award: {result['updated']} predictions, "
                        f"{result['points_awarded']} points across {result['users']} users"
                    )
                for error in result["errors"]:
                    logger.warning(f"Auto award skipped match {error['match_id']}: {error['error']}")
            except PredictorError as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in auto award: {e}", exc_info=True)

    def _update_stats(self, success, predictions_awarded=0):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["predictions_awarded"] += predictions_awarded
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {"is_running": self.is_running, "jobs": jobs, "stats": self.sync_stats}

    def force_sync(self, sync_type="matches"):
        """Manually trigger a job"""
        if sync_type == "matches":
            if self.provider is None:
                return False, "Match provider not configured"
            self._sync_week_matches()
        elif sync_type == "award":
            self._auto_award()
        else:
            raise ValueError(f"Unknown sync type: {sync_type}")

        if self.sync_stats["last_error"]:
            return False, f"Manual {sync_type} sync failed: {self.sync_stats['last_error']}"
        return True, f"Manual {sync_type} sync completed"


# Global scheduler instance
scheduler_service = SchedulerService()
