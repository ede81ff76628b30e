"""
Tests for the daily scheduler job (run synchronously, scheduler not started)
"""
from datetime import date
from decimal import Decimal

from subtrack.application.scheduler import run_daily_jobs
from subtrack.infrastructure.db.models import User

TODAY = date(2026, 3, 10)


def _add_user(db_session, email):
    user = User(email=email, password_hash="x")
    db_session.add(user)
    db_session.commit()
    return user.id


def test_daily_jobs_roll_forward_then_notify(db_session, remote_store):
    user_id = _add_user(db_session, "a@example.com")
    # billed monthly on the 13th; the February date rolls to March 13th, 3 days out
    remote_store.insert("subscriptions", user_id, {
        "name": "Netflix", "amount": Decimal("15.49"), "next_billing_date": date(2026, 2, 13),
    })

    result = run_daily_jobs(remote_store, TODAY)

    assert result == {"rolled_forward": 1, "notifications": 1}
    notification = remote_store.select("notifications", user_id)[0]
    assert notification["dedup_key"].endswith(":3")


def test_daily_jobs_are_idempotent(db_session, remote_store):
    user_id = _add_user(db_session, "a@example.com")
    remote_store.insert("subscriptions", user_id, {
        "name": "Netflix", "amount": Decimal("15.49"), "next_billing_date": date(2026, 3, 13),
    })

    run_daily_jobs(remote_store, TODAY)
    assert run_daily_jobs(remote_store, TODAY) == {"rolled_forward": 0, "notifications": 0}
    assert len(remote_store.select("notifications", user_id)) == 1


def test_daily_jobs_without_users(remote_store):
    assert run_daily_jobs(remote_store, TODAY) == {"rolled_forward": 0, "notifications": 0}
