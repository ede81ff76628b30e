"""
Profile API endpoints (contact details, picture, review schedule)
"""
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, field_validator

from subtrack.api.deps import get_current_user, get_store, get_storage
from subtrack.application.profile import ProfileService, ProfileValidationError
from subtrack.domain.profile import Profile
from subtrack.infrastructure.db.models import User
from subtrack.infrastructure.remote_store import RemoteStore
from subtrack.infrastructure.storage import BlobStorage, StorageError


router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


# === Request/Response models ===

class UpdateProfileRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    bio: str | None = None


class ReviewScheduleRequest(BaseModel):
    day_of_week: int | None = None
    week_of_month: int | None = None
    time: str | None = None

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, v: int | None) -> int | None:
        if v is not None and not 0 <= v <= 6:
            raise ValueError("day_of_week must be 0 (Sunday) .. 6 (Saturday)")
        return v


class ReviewScheduleResponse(BaseModel):
    enabled: bool
    day_of_week: int
    week_of_month: int
    time: str
    last_reviewed_at: datetime | None
    next_review_at: datetime | None


class ProfileResponse(BaseModel):
    email: str | None
    name: str | None
    phone: str | None
    address: str | None
    city: str | None
    state: str | None
    zip_code: str | None
    country: str | None
    bio: str | None
    picture_url: str | None
    review: ReviewScheduleResponse


def _to_response(profile: Profile, service: ProfileService) -> ProfileResponse:
    return ProfileResponse(
        email=profile.email,
        name=profile.name,
        phone=profile.phone,
        address=profile.address,
        city=profile.city,
        state=profile.state,
        zip_code=profile.zip_code,
        country=profile.country,
        bio=profile.bio,
        picture_url=service.picture_url(profile),
        review=ReviewScheduleResponse(**vars(profile.review)),
    )


def _service(
    store: RemoteStore = Depends(get_store),
    storage: BlobStorage | None = Depends(get_storage),
) -> ProfileService:
    return ProfileService(store, storage)


# === Endpoints ===

@router.get("/", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user), service: ProfileService = Depends(_service)):
    """Created on first access"""
    return _to_response(service.get_or_create(user.id, email=user.email), service)


@router.patch("/", response_model=ProfileResponse)
def update_profile(
    req: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    service: ProfileService = Depends(_service),
):
    try:
        profile = service.update(user.id, **req.model_dump(exclude_unset=True))
    except ProfileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(profile, service)


@router.post("/picture", response_model=ProfileResponse)
def upload_picture(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: ProfileService = Depends(_service),
):
    data = file.file.read()
    try:
        profile = service.upload_picture(
            user.id, file.filename or "", data, file.content_type or "application/octet-stream",
        )
    except ProfileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _to_response(profile, service)


@router.put("/review-schedule", response_model=ProfileResponse)
def update_review_schedule(
    req: ReviewScheduleRequest,
    user: User = Depends(get_current_user),
    service: ProfileService = Depends(_service),
):
    """Set and enable the monthly review"""
    changes = {k: v for k, v in req.model_dump().items() if v is not None}
    try:
        profile = service.update_review_schedule(user.id, **changes)
    except ProfileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(profile, service)


@router.delete("/review-schedule", response_model=ProfileResponse)
def disable_review_schedule(user: User = Depends(get_current_user), service: ProfileService = Depends(_service)):
    return _to_response(service.disable_review_schedule(user.id), service)


@router.post("/review-schedule/complete", response_model=ProfileResponse)
def complete_review(user: User = Depends(get_current_user), service: ProfileService = Depends(_service)):
    try:
        profile = service.mark_reviewed(user.id)
    except ProfileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(profile, service)
