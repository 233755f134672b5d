#!/usr/bin/env python3
"""
Matchweek Predictor Management CLI

Command-line management for weeks, awards, rankings and match data.
"""

import logging
import os

import click
from flask.cli import with_appcontext
from flask_migrate import downgrade, migrate, upgrade
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import create_app, db
from app.errors import PredictorError
from app.models import AppSettings, Match, Prediction, User, Week
from app.services.award_service import (
    AwardEngine,
    find_total_mismatches,
    reconcile_user_totals,
)
from app.services.ranking_service import get_all_time_rankings, get_weekly_rankings
from app.utils.admission import format_time_remaining, time_until_close
from app.utils.data_sync import MatchSync
from app.utils.match_client import ApiFootballClient

app = create_app()


def _provider():
    provider = ApiFootballClient.from_config(app.config)
    if provider is None:
        click.echo("⚠️  MATCH_API_KEY not set, using stored match data")
    return provider


@click.group()
def cli():
    """Matchweek Predictor Management CLI"""
    pass


# Week Management Commands
@cli.group()
def week():
    """Week management commands"""
    pass


@week.command()
@click.option("--id", "week_id", help="Explicit week id (default: derived from dates)")
@click.option(
    "--from-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="First day of the week (YYYY-MM-DD)",
)
@click.option(
    "--to-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Last day of the week (YYYY-MM-DD)",
)
@click.option("--name", help="Display name")
@click.option(
    "--deadline",
    type=click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"]),
    help="Explicit close instant in UTC",
)
@click.option("--activate", is_flag=True, help="Create the week as active")
@with_appcontext
def create(week_id, from_date, to_date, name, deadline, activate):
    """Create a new week"""
    try:
        if not week_id:
            if not from_date or not to_date:
                click.echo("❌ Provide --id or both --from-date and --to-date")
                return
            week_id = Week.derive_id(from_date, to_date)

        if db.session.get(Week, week_id):
            click.echo(f"Week {week_id} already exists!")
            return

        new_week = Week(
            id=week_id,
            name=name or week_id,
            deadline=deadline,
            status="active" if activate else "draft",
        )
        db.session.add(new_week)
        db.session.commit()
        click.echo(f"✅ Created week {week_id} ({new_week.status})")

    except ValueError as e:
        click.echo(f"❌ {e}")
    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ Week {week_id} already exists!")
        logging.error(f"Week creation failed - integrity error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating week: {str(e)}")
        logging.error(f"Week creation failed - SQL error: {e}")


@week.command("set-matches")
@click.argument("week_id")
@click.argument("match_ids", nargs=-1, type=int, required=True)
@with_appcontext
def set_matches(week_id, match_ids):
    """Replace the ordered match list of a week (imports missing matches)"""
    target = db.session.get(Week, week_id)
    if not target:
        click.echo(f"❌ Week {week_id} not found!")
        return

    try:
        missing = [match_id for match_id in match_ids if db.session.get(Match, match_id) is None]
        if missing:
            provider = _provider()
            if provider is None:
                click.echo(f"❌ Matches {missing} are unknown and cannot be imported")
                return
            imported = MatchSync(provider).import_matches(missing)
            click.echo(f"Imported {len(imported)} of {len(missing)} missing matches")

        target.set_matches(match_ids, max_matches=app.config.get("MAX_MATCHES_PER_WEEK", 10))
        db.session.commit()
        click.echo(f"✅ Week {week_id} now has {len(target.match_ids)} matches")

    except ValueError as e:
        db.session.rollback()
        click.echo(f"❌ {e}")
    except (PredictorError, SQLAlchemyError) as e:
        db.session.rollback()
        click.echo(f"❌ Error setting matches: {str(e)}")
        logging.error(f"Setting matches for week {week_id} failed: {e}")


@week.command("set-status")
@click.argument("week_id")
@click.argument("status", type=click.Choice(["draft", "active", "completed", "archived"]))
@with_appcontext
def set_status(week_id, status):
    """Change the lifecycle status of a week"""
    target = db.session.get(Week, week_id)
    if not target:
        click.echo(f"❌ Week {week_id} not found!")
        return

    target.status = status
    db.session.commit()
    click.echo(f"✅ Week {week_id} is now {status}")


@week.command("force-open")
@click.argument("week_id")
@click.option("--off", is_flag=True, help="Remove the override")
@with_appcontext
def force_open(week_id, off):
    """Keep a week's picks open regardless of kickoff times (testing)"""
    target = db.session.get(Week, week_id)
    if not target:
        click.echo(f"❌ Week {week_id} not found!")
        return

    target.force_open = not off
    db.session.commit()
    click.echo(f"✅ Force open {'disabled' if off else 'enabled'} for week {week_id}")


@week.command("list")
@with_appcontext
def list_weeks():
    """List all weeks"""
    weeks = Week.query.order_by(Week.id.desc()).all()

    if not weeks:
        click.echo("No weeks found.")
        return

    click.echo("Weeks:")
    for item in weeks:
        remaining = format_time_remaining(time_until_close(item))
        flag = " [force open]" if item.force_open else ""
        click.echo(
            f"  {item.id} - {item.name} ({item.status}) "
            f"{len(item.match_ids)} matches, {remaining}{flag}"
        )


# Award Commands
@cli.group()
def award():
    """Award pending predictions"""
    pass


@award.command("user")
@click.argument("user_id", type=int)
@with_appcontext
def award_user(user_id):
    """Award one user's pending predictions (refreshes matches)"""
    try:
        result = AwardEngine(_provider()).award_pending_for_user(user_id)
    except PredictorError as e:
        click.echo(f"❌ Award failed: {e}")
        return

    click.echo(
        f"✅ Updated {result['updated']} predictions, "
        f"{result['points_awarded']} points, {result['skipped']} pending"
    )
    for error in result["errors"]:
        click.echo(f"⚠️  Match {error['match_id']}: {error['error']}")


@award.command("all")
@with_appcontext
def award_all():
    """Award pending predictions for every user"""
    try:
        result = AwardEngine().award_pending_for_all()
    except PredictorError as e:
        click.echo(f"❌ Award failed: {e}")
        return

    click.echo(
        f"✅ {result['users']} users, {result['updated']} predictions, "
        f"{result['points_awarded']} points"
    )


@award.command("check")
@click.option("--fix", is_flag=True, help="Rewrite drifted totals")
@with_appcontext
def award_check(fix):
    """Compare user totals with their awarded predictions"""
    mismatches = reconcile_user_totals() if fix else find_total_mismatches()

    if not mismatches:
        click.echo("✅ All user totals match awarded predictions")
        return

    for mismatch in mismatches:
        click.echo(
            f"{'🔧' if fix else '⚠️ '} User {mismatch['user_id']}: "
            f"stored {mismatch['stored']}, expected {mismatch['expected']}"
        )


# Ranking Commands
@cli.group()
def rankings():
    """Show leaderboards"""
    pass


@rankings.command("week")
@click.argument("week_id")
@with_appcontext
def rankings_week(week_id):
    """Weekly leaderboard"""
    entries = get_weekly_rankings(week_id, refresh=True)
    if not entries:
        click.echo(f"No rankings for week {week_id}")
        return

    for entry in entries:
        click.echo(
            f"{entry['rank']:>3}. {entry['display_name']:<24} "
            f"{entry['weekly_points']:>3} pts ({entry['weekly_total']} picks)"
        )


@rankings.command("all-time")
@click.option("--limit", default=50, show_default=True, type=int)
@with_appcontext
def rankings_all_time(limit):
    """All-time leaderboard"""
    for entry in get_all_time_rankings(limit):
        click.echo(
            f"{entry['rank']:>3}. {entry['display_name']:<24} "
            f"{entry['points']:>4} pts ({entry['accuracy']}% correct)"
        )


# Match Data Commands
@cli.command()
@click.argument("week_id", required=False)
@with_appcontext
def sync(week_id):
    """Refresh matches for one week, or all active weeks"""
    provider = _provider()
    if provider is None:
        return

    match_sync = MatchSync(provider)
    if week_id:
        target = db.session.get(Week, week_id)
        if not target:
            click.echo(f"❌ Week {week_id} not found!")
            return
        results = {week_id: match_sync.sync_week_matches(target)}
    else:
        results = match_sync.sync_active_weeks()

    for synced_week, (success, message) in results.items():
        click.echo(f"{'✅' if success else '❌'} {synced_week}: {message}")


# Settings Commands
@cli.group()
def settings():
    """Admin settings"""
    pass


@settings.command("deadline-offset")
@click.argument("minutes", type=int, required=False)
@click.option("--reset", is_flag=True, help="Fall back to PICKS_CLOSE_OFFSET_MINUTES")
@with_appcontext
def deadline_offset(minutes, reset):
    """Show or set minutes before the first kickoff at which picks close"""
    if minutes is None and not reset:
        click.echo(f"Deadline offset: {AppSettings.get_deadline_offset_minutes()} minutes")
        return

    try:
        AppSettings.set_deadline_offset_minutes(None if reset else minutes)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        click.echo(f"❌ {e}")
        return

    click.echo(f"✅ Deadline offset: {AppSettings.get_deadline_offset_minutes()} minutes")


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command("create")
@click.argument("username")
@click.option("--display-name", help="Name shown on leaderboards")
@with_appcontext
def create_user(username, display_name):
    """Create a user"""
    try:
        db.session.add(User(username=username, display_name=display_name))
        db.session.commit()
        click.echo(f"✅ Created user {username}")
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ User {username} already exists!")


@user.command("list")
@with_appcontext
def list_users():
    """List all users"""
    users = User.query.order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("Users:")
    for item in users:
        status = "Active" if item.is_active else "Inactive"
        click.echo(f"  {item.id}: {item.username} - {item.points} pts ({status})")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    db.create_all()
    click.echo("✅ Database tables created successfully!")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    db.drop_all()
    db.create_all()
    click.echo("✅ Database reset successfully!")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    if os.path.exists("migrations"):
        click.echo("❌ Migrations directory already exists!")
        return

    from flask_migrate import init as flask_migrate_init

    flask_migrate_init()
    click.echo("✅ Migrations repository initialized!")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    downgrade(revision=revision)
    click.echo(f"✅ Rolled back to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Matchweek Predictor Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    current = Week.get_current_week()
    if current:
        remaining = format_time_remaining(time_until_close(current))
        click.echo(f"✅ Current Week: {current.id} ({current.status}, {remaining})")
    else:
        click.echo("⚠️  Current Week: None")

    click.echo(f"👥 Active Users: {User.query.filter_by(is_active=True).count()}")
    click.echo(f"⚽ Matches: {Match.query.count()}")

    pending = Prediction.query.filter_by(awarded=False).count()
    click.echo(f"🎯 Predictions: {Prediction.query.count()} ({pending} pending)")
    click.echo(f"⏱  Deadline offset: {AppSettings.get_deadline_offset_minutes()} minutes")


if __name__ == "__main__":
    with app.app_context():
        cli()
