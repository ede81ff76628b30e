"""
Notification API endpoints
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from subtrack.api.deps import get_workspace
from subtrack.application.workspace import UserWorkspace
from subtrack.domain.records import Notification


router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    is_read: bool
    related_id: str | None
    created_at: datetime | None


class NotificationListResponse(BaseModel):
    unread_count: int
    items: list[NotificationResponse]


class CountResponse(BaseModel):
    count: int


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        title=n.title,
        message=n.message,
        type=n.type,
        is_read=n.is_read,
        related_id=n.related_id,
        created_at=n.created_at,
    )


@router.get("/", response_model=NotificationListResponse)
def list_notifications(unread_only: bool = False, workspace: UserWorkspace = Depends(get_workspace)):
    """Newest first"""
    store = workspace.notification_store
    items = store.unread if unread_only else store.items
    return NotificationListResponse(
        unread_count=store.unread_count,
        items=[_to_response(n) for n in items],
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(notification_id: str, workspace: UserWorkspace = Depends(get_workspace)):
    return _to_response(workspace.notification_store.mark_read(notification_id))


@router.post("/read-all", response_model=CountResponse)
def mark_all_read(workspace: UserWorkspace = Depends(get_workspace)):
    return CountResponse(count=workspace.notification_store.mark_all_read())


@router.delete("/{notification_id}", status_code=204)
def delete_notification(notification_id: str, workspace: UserWorkspace = Depends(get_workspace)):
    workspace.notification_store.delete(notification_id)
    return Response(status_code=204)


@router.delete("/", response_model=CountResponse)
def clear_all(workspace: UserWorkspace = Depends(get_workspace)):
    return CountResponse(count=workspace.notification_store.clear_all())
