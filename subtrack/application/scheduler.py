"""
Background scheduler — runs periodic jobs inside the FastAPI process.

Jobs:
  - Daily maintenance (NOTIFICATION_JOB_HOUR_UTC:00 UTC): past-due billing
    dates are rolled forward, then notification triggers are evaluated for
    every user. Day buckets in the dedup keys change at midnight, so once a
    day is enough for users who do not sign in.
"""
import logging
from datetime import date

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from subtrack.config import get_settings
from subtrack.infrastructure.remote_store import RemoteStore, RemoteStoreError

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _user_ids(store: RemoteStore) -> list[int]:
    from subtrack.infrastructure.db.models import User

    with store.session_factory() as db:
        return [user_id for (user_id,) in db.query(User.id).all()]


def run_daily_jobs(store: RemoteStore, today: date | None = None) -> dict[str, int]:
    """
    Returns:
        {"rolled_forward": <subscriptions moved>, "notifications": <notifications created>}
    """
    from subtrack.application.notification_engine import run_daily_evaluation
    from subtrack.application.subscriptions import RollForwardBillingDatesUseCase
    from subtrack.application.workspace import local_today

    today = today or local_today()
    user_ids = _user_ids(store)

    rolled = 0
    roll_forward = RollForwardBillingDatesUseCase(store)
    for user_id in user_ids:
        try:
            rolled += roll_forward.execute(user_id, today)
        except RemoteStoreError:
            logger.exception("Billing roll-forward failed for user_id=%s", user_id)

    created = run_daily_evaluation(store, user_ids, today)
    return {"rolled_forward": rolled, "notifications": created}


def _run_daily_jobs(store: RemoteStore):
    try:
        run_daily_jobs(store)
    except Exception:
        logger.exception("Daily job failed")


def start_scheduler(store: RemoteStore):
    """Start the background scheduler with all periodic jobs."""
    hour = get_settings().NOTIFICATION_JOB_HOUR_UTC
    scheduler.add_job(
        _run_daily_jobs,
        CronTrigger(hour=hour, minute=0, timezone="UTC"),
        args=[store],
        id="daily_jobs",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: daily_jobs (%02d:00 UTC)", hour)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
