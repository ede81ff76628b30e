"""
Profile domain record and the monthly review schedule.

ReviewSchedule: "the N-th <weekday> of every month at HH:MM".
  day_of_week:   0=Sunday .. 6=Saturday
  week_of_month: 1..5 (5th occurrences that overflow the month roll into the next)
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any

from subtrack.domain.records import as_datetime, as_int

MAX_PICTURE_BYTES = 5 * 1024 * 1024
ALLOWED_PICTURE_EXTENSIONS = ("jpg", "jpeg", "png", "gif")
PICTURE_FILENAME = "profile-picture.png"

CONTACT_FIELDS = ("email", "name", "phone", "address", "city", "state", "zip_code", "country", "bio")


class ReviewScheduleValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ReviewSchedule:
    enabled: bool = False
    day_of_week: int = 1
    week_of_month: int = 1
    time: str = "09:00"
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None

    def validate(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ReviewScheduleValidationError("day_of_week must be 0..6")
        if not 1 <= self.week_of_month <= 5:
            raise ReviewScheduleValidationError("week_of_month must be 1..5")
        _parse_time(self.time)


def _parse_time(value: str) -> tuple[int, int]:
    try:
        hours, minutes = (int(part) for part in value.split(":"))
    except (AttributeError, ValueError):
        raise ReviewScheduleValidationError(f"time must be HH:MM, got {value!r}")
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ReviewScheduleValidationError(f"time must be HH:MM, got {value!r}")
    return hours, minutes


def _nth_weekday(year: int, month: int, day_of_week: int, week_of_month: int) -> date:
    first = date(year, month, 1)
    # date.weekday(): Monday=0; schedule: Sunday=0
    offset = (day_of_week - (first.weekday() + 1) % 7) % 7
    return first + timedelta(days=offset + 7 * (week_of_month - 1))


def next_review(schedule: ReviewSchedule, now: datetime) -> datetime:
    """
    First scheduled slot at or after `now`: this month's slot if it has not
    passed yet, otherwise next month's.
    """
    hours, minutes = _parse_time(schedule.time)
    year, month = now.year, now.month
    for _ in range(2):
        day = _nth_weekday(year, month, schedule.day_of_week, schedule.week_of_month)
        candidate = datetime(day.year, day.month, day.day, hours, minutes, tzinfo=now.tzinfo)
        if candidate >= now:
            return candidate
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return candidate


def update_schedule(schedule: ReviewSchedule, now: datetime, **changes: Any) -> ReviewSchedule:
    """Apply changes, enable the schedule and recompute the next slot."""
    changes.pop("enabled", None)
    updated = replace(schedule, **changes, enabled=True)
    updated.validate()
    return replace(updated, next_review_at=next_review(updated, now))


def disable_schedule(schedule: ReviewSchedule) -> ReviewSchedule:
    return replace(schedule, enabled=False, next_review_at=None)


def mark_reviewed(schedule: ReviewSchedule, now: datetime) -> ReviewSchedule:
    # Without the +1 minute the slot that just fired would be returned again
    return replace(
        schedule,
        last_reviewed_at=now,
        next_review_at=next_review(schedule, now + timedelta(minutes=1)),
    )


@dataclass(frozen=True)
class Profile:
    id: str
    user_id: int
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    bio: str | None = None
    profile_picture: str | None = None
    review: ReviewSchedule = field(default_factory=ReviewSchedule)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        review = ReviewSchedule(
            enabled=bool(row.get("review_enabled", False)),
            day_of_week=as_int(row.get("review_day_of_week"), 1),
            week_of_month=as_int(row.get("review_week_of_month"), 1),
            time=row.get("review_time") or "09:00",
            last_reviewed_at=as_datetime(row.get("last_reviewed_at")),
            next_review_at=as_datetime(row.get("next_review_at")),
        )
        return cls(
            id=str(row["id"]),
            user_id=row["user_id"],
            profile_picture=row.get("profile_picture"),
            review=review,
            created_at=as_datetime(row.get("created_at")),
            updated_at=as_datetime(row.get("updated_at")),
            **{name: row.get(name) for name in CONTACT_FIELDS},
        )


def review_to_row(schedule: ReviewSchedule) -> dict[str, Any]:
    return {
        "review_enabled": schedule.enabled,
        "review_day_of_week": schedule.day_of_week,
        "review_week_of_month": schedule.week_of_month,
        "review_time": schedule.time,
        "last_reviewed_at": schedule.last_reviewed_at,
        "next_review_at": schedule.next_review_at,
    }


def picture_path(user_id: int) -> str:
    return f"{user_id}/{PICTURE_FILENAME}"
