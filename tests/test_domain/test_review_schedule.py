"""
Tests for the profile record and the monthly review schedule
"""
from datetime import datetime, timezone

import pytest

from subtrack.domain.profile import (
    Profile, ReviewSchedule, ReviewScheduleValidationError,
    next_review, update_schedule, disable_schedule, mark_reviewed, review_to_row, picture_path,
)

UTC = timezone.utc


def test_next_review_this_month():
    # March 2026: 1st is a Sunday; second Tuesday is the 10th
    schedule = ReviewSchedule(enabled=True, day_of_week=2, week_of_month=2, time="09:00")
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert next_review(schedule, now) == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def test_next_review_rolls_to_next_month_when_passed():
    schedule = ReviewSchedule(enabled=True, day_of_week=0, week_of_month=1, time="08:30")
    now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)  # first Sunday 08:30 already passed
    # April 2026: first Sunday is the 5th
    assert next_review(schedule, now) == datetime(2026, 4, 5, 8, 30, tzinfo=UTC)


def test_update_schedule_enables_and_computes_next():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    updated = update_schedule(ReviewSchedule(), now, day_of_week=2, week_of_month=2, enabled=False)
    assert updated.enabled is True
    assert updated.next_review_at == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@pytest.mark.parametrize("changes", [
    {"day_of_week": 7},
    {"week_of_month": 0},
    {"time": "25:00"},
    {"time": "noon"},
])
def test_update_schedule_rejects_invalid(changes):
    with pytest.raises(ReviewScheduleValidationError):
        update_schedule(ReviewSchedule(), datetime(2026, 3, 1, tzinfo=UTC), **changes)


def test_disable_clears_next_review():
    schedule = ReviewSchedule(enabled=True, next_review_at=datetime(2026, 3, 10, tzinfo=UTC))
    disabled = disable_schedule(schedule)
    assert disabled.enabled is False
    assert disabled.next_review_at is None


def test_mark_reviewed_moves_to_next_slot():
    schedule = ReviewSchedule(enabled=True, day_of_week=2, week_of_month=2, time="09:00")
    now = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
    reviewed = mark_reviewed(schedule, now)
    assert reviewed.last_reviewed_at == now
    # April 2026: 1st is a Wednesday; second Tuesday is the 14th
    assert reviewed.next_review_at == datetime(2026, 4, 14, 9, 0, tzinfo=UTC)


def test_profile_from_row_keeps_sunday():
    profile = Profile.from_row({
        "id": "p1", "user_id": 3, "name": "Ann", "review_day_of_week": 0, "review_enabled": True,
    })
    assert profile.review.day_of_week == 0
    assert profile.review.enabled is True
    assert profile.name == "Ann"
    assert profile.phone is None


def test_review_to_row_round_trips_through_profile():
    schedule = ReviewSchedule(enabled=True, day_of_week=5, week_of_month=3, time="18:15")
    row = {"id": "p1", "user_id": 3, **review_to_row(schedule)}
    assert Profile.from_row(row).review == schedule


def test_picture_path():
    assert picture_path(42) == "42/profile-picture.png"
