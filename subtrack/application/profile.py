"""
Profile service — contact details, profile picture, monthly review schedule.

The profile row is created lazily the first time it is read. The picture is
kept in blob storage under <user_id>/profile-picture.png; the row stores that
path and readers get a short-lived signed URL.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from subtrack.config import get_settings
from subtrack.domain.profile import (
    Profile, ReviewSchedule, ReviewScheduleValidationError,
    CONTACT_FIELDS, MAX_PICTURE_BYTES, ALLOWED_PICTURE_EXTENSIONS,
    update_schedule, disable_schedule, mark_reviewed, review_to_row, picture_path,
)
from subtrack.infrastructure.remote_store import RemoteStore
from subtrack.infrastructure.storage import BlobStorage, StorageError

logger = logging.getLogger(__name__)

TABLE = "profiles"


class ProfileValidationError(ValueError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_picture(filename: str, data: bytes) -> None:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in ALLOWED_PICTURE_EXTENSIONS:
        raise ProfileValidationError(
            f"Unsupported image type. Allowed: {', '.join(ALLOWED_PICTURE_EXTENSIONS)}"
        )
    if not data:
        raise ProfileValidationError("Image is empty")
    if len(data) > MAX_PICTURE_BYTES:
        raise ProfileValidationError("Image must be 5 MB or smaller")


class ProfileService:
    def __init__(
        self,
        store: RemoteStore,
        storage: BlobStorage | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.storage = storage
        self.now = now

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_or_create(self, user_id: int, email: str | None = None) -> Profile:
        row = self.store.get_one(TABLE, user_id, {})
        if row is None:
            row = self.store.insert(TABLE, user_id, {"email": email})
            logger.info("Profile created: user_id=%s", user_id)
        return Profile.from_row(row)

    def picture_url(self, profile: Profile) -> str | None:
        """Signed URL for the stored picture; None when there is none or signing fails."""
        if not profile.profile_picture or self.storage is None:
            return None
        try:
            return self.storage.create_signed_url(
                profile.profile_picture, expires_in=get_settings().SIGNED_URL_TTL_SECONDS,
            )
        except StorageError:
            logger.exception("Could not sign profile picture for user_id=%s", profile.user_id)
            return None

    # ------------------------------------------------------------------
    # Contact details
    # ------------------------------------------------------------------

    def update(self, user_id: int, **changes) -> Profile:
        unknown = set(changes) - set(CONTACT_FIELDS)
        if unknown:
            raise ProfileValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
        values = {
            key: (value.strip() or None) if isinstance(value, str) else value
            for key, value in changes.items()
        }
        profile = self.get_or_create(user_id)
        if not values:
            return profile
        return Profile.from_row(self.store.update(TABLE, user_id, profile.id, values))

    # ------------------------------------------------------------------
    # Picture
    # ------------------------------------------------------------------

    def upload_picture(self, user_id: int, filename: str, data: bytes, content_type: str) -> Profile:
        """
        Validate, upload (with retry) and store the path on the profile.

        Raises:
            ProfileValidationError: bad extension, empty or oversized file
            StorageError: storage not configured, or every upload attempt failed
        """
        validate_picture(filename, data)
        if self.storage is None:
            raise StorageError("Blob storage is not configured")

        settings = get_settings()
        path = picture_path(user_id)
        self.storage.upload_with_retry(
            path, data, content_type,
            max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
            backoff_seconds=settings.UPLOAD_BACKOFF_SECONDS,
        )
        profile = self.get_or_create(user_id)
        row = self.store.update(TABLE, user_id, profile.id, {"profile_picture": path})
        logger.info("Profile picture uploaded: user_id=%s", user_id)
        return Profile.from_row(row)

    # ------------------------------------------------------------------
    # Review schedule
    # ------------------------------------------------------------------

    def _save_review(self, profile: Profile, schedule: ReviewSchedule) -> Profile:
        row = self.store.update(TABLE, profile.user_id, profile.id, review_to_row(schedule))
        return Profile.from_row(row)

    def update_review_schedule(self, user_id: int, **changes) -> Profile:
        profile = self.get_or_create(user_id)
        try:
            schedule = update_schedule(profile.review, self.now(), **changes)
        except (ReviewScheduleValidationError, TypeError) as e:
            raise ProfileValidationError(str(e)) from e
        return self._save_review(profile, schedule)

    def disable_review_schedule(self, user_id: int) -> Profile:
        profile = self.get_or_create(user_id)
        return self._save_review(profile, disable_schedule(profile.review))

    def mark_reviewed(self, user_id: int) -> Profile:
        profile = self.get_or_create(user_id)
        if not profile.review.enabled:
            raise ProfileValidationError("Review schedule is not enabled")
        return self._save_review(profile, mark_reviewed(profile.review, self.now()))
