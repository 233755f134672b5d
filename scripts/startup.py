#!/usr/bin/env python3
"""
Matchweek Predictor Startup Script

Prepares the application on container startup:
- Waits for the database
- Creates tables and the settings row
- Reconciles user totals with awarded predictions
- Refreshes matches of active weeks when a provider key is set
"""

import os
import sys
import time

from sqlalchemy.exc import OperationalError

# Add app directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("FLASK_APP", "run.py")
os.environ.setdefault("FLASK_CONFIG", "production")

from app import create_app, db  # noqa: E402
from app.errors import PredictorError  # noqa: E402
from app.models import AppSettings, Week  # noqa: E402
from app.services.award_service import reconcile_user_totals  # noqa: E402
from app.utils.data_sync import MatchSync  # noqa: E402
from app.utils.match_client import ApiFootballClient  # noqa: E402


def wait_for_db(app, max_retries=30):
    """Wait for database to be ready"""
    print("Waiting for database connection...")

    for i in range(max_retries):
        try:
            with app.app_context():
                db.session.execute(db.text("SELECT 1")).fetchone()
                print("Database connected!")
                return True
        except OperationalError as e:
            if i < max_retries - 1:
                print(f"Attempt {i+1}/{max_retries} failed, retrying in 2s...")
                print(f"   Error: {str(e)}")
                time.sleep(2)
            else:
                print(f"Database connection failed after {max_retries} attempts: {e}")
                return False
    return False


def ensure_settings():
    """Create the single settings row if missing"""
    if AppSettings.get() is None:
        db.session.add(AppSettings())
        db.session.commit()
        print("Created default settings")
    print(f"Deadline offset: {AppSettings.get_deadline_offset_minutes()} minutes")


def sync_active_weeks(app):
    provider = ApiFootballClient.from_config(app.config)
    if provider is None:
        print("WARNING: MATCH_API_KEY not set, skipping match sync")
        return

    weeks = Week.get_active_weeks()
    if not weeks:
        print("No active weeks to sync")
        return

    for week_id, (success, message) in MatchSync(provider).sync_active_weeks().items():
        print(f"{'SUCCESS' if success else 'WARNING'}: {week_id}: {message}")


def main():
    """Main initialization function"""
    print("Matchweek Predictor Initialization")
    print("=" * 50)

    app = create_app()

    if not wait_for_db(app):
        print("ERROR: Startup failed - database not available")
        sys.exit(1)

    with app.app_context():
        db.create_all()
        print("Database tables ready")

        ensure_settings()

        # Always check, idempotent
        fixed = reconcile_user_totals()
        if fixed:
            print(f"Reconciled totals for {len(fixed)} users")
        else:
            print("User totals consistent")

        try:
            sync_active_weeks(app)
        except PredictorError as e:
            print(f"WARNING: Match sync failed: {e}")

    print("=" * 50)
    print("Matchweek Predictor is ready")
    print("=" * 50)


if __name__ == "__main__":
    main()
