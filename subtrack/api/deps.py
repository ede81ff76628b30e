"""
FastAPI dependencies (DB session, authentication, app-wide services)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from subtrack.infrastructure.db.models import User
from subtrack.infrastructure.remote_store import RemoteStore
from subtrack.infrastructure.storage import BlobStorage
from subtrack.application.workspace import UserWorkspace, WorkspaceRegistry


def get_db(request: Request):
    """
    Session from the app's session factory, closed after the request

    Usage:
        @router.get("/users")
        def list_users(db: Session = Depends(get_db)):
            ...
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_store(request: Request) -> RemoteStore:
    return request.app.state.remote_store


def get_registry(request: Request) -> WorkspaceRegistry:
    return request.app.state.registry


def get_storage(request: Request) -> BlobStorage | None:
    return request.app.state.storage


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the session cookie

    Raises:
        HTTPException(401): not signed in
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def get_workspace(
    user: User = Depends(get_current_user),
    registry: WorkspaceRegistry = Depends(get_registry),
) -> UserWorkspace:
    """The user's workspace; reopened if the process restarted since sign-in."""
    workspace = registry.get(user.id)
    if workspace is None:
        workspace = registry.open(user.id)
    return workspace

