"""
Authentication routes (register, login, logout)

Signing in opens the user's workspace (synced collections + notification
engine); signing out closes it.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from subtrack.api.deps import get_db, get_current_user, get_registry
from subtrack.application.workspace import WorkspaceRegistry
from subtrack.auth import (
    hash_password, authenticate, get_user_by_email, normalize_email, MIN_PASSWORD_LENGTH,
)
from subtrack.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


# === Request/Response models ===

class CredentialsRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = normalize_email(v)
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class RegisterRequest(CredentialsRequest):
    full_name: str | None = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str | None


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, full_name=user.full_name)


def _sign_in(request: Request, db: Session, user: User, registry: WorkspaceRegistry) -> None:
    request.session["user_id"] = user.id
    user.last_seen_at = datetime.now(timezone.utc)
    db.commit()
    registry.open(user.id)


# === Endpoints ===

@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    request: Request,
    req: RegisterRequest,
    db: Session = Depends(get_db),
    registry: WorkspaceRegistry = Depends(get_registry),
):
    """Create an account and sign in"""
    if get_user_by_email(db, req.email) is not None:
        raise HTTPException(status_code=400, detail="Email is already registered")

    user = User(
        email=req.email,
        password_hash=hash_password(req.password),
        full_name=(req.full_name or "").strip() or None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    _sign_in(request, db, user, registry)
    return _user_response(user)


@router.post("/login", response_model=UserResponse)
def login(
    request: Request,
    req: CredentialsRequest,
    db: Session = Depends(get_db),
    registry: WorkspaceRegistry = Depends(get_registry),
):
    user = authenticate(db, req.email, req.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    _sign_in(request, db, user, registry)
    return _user_response(user)


@router.post("/logout", status_code=204)
def logout(request: Request, registry: WorkspaceRegistry = Depends(get_registry)):
    user_id = request.session.get("user_id")
    if user_id:
        registry.close(user_id)
    request.session.clear()


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return _user_response(user)
