"""
Subscription API endpoints
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, field_validator

from subtrack.api.deps import get_current_user, get_store, get_workspace
from subtrack.application.subscriptions import (
    CreateSubscriptionUseCase, UpdateSubscriptionUseCase, ToggleSubscriptionStatusUseCase,
    DeleteSubscriptionUseCase, SubscriptionValidationError, subscription_payment_history,
)
from subtrack.application.workspace import UserWorkspace
from subtrack.domain.billing import BILLING_CYCLES, CYCLE_MONTHLY, days_between
from subtrack.domain.records import Subscription, DEFAULT_REMINDER_DAYS
from subtrack.infrastructure.db.models import User
from subtrack.infrastructure.remote_store import RemoteStore


router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


# === Request/Response models ===

class CreateSubscriptionRequest(BaseModel):
    name: str
    amount: str
    next_billing_date: date
    billing_cycle: str = CYCLE_MONTHLY
    category_id: str | None = None
    reminder_days: int = DEFAULT_REMINDER_DAYS
    description: str | None = None

    @field_validator("billing_cycle")
    @classmethod
    def validate_billing_cycle(cls, v: str) -> str:
        v = v.lower()
        if v not in BILLING_CYCLES:
            raise ValueError(f"billing_cycle must be one of {', '.join(BILLING_CYCLES)}, got: {v}")
        return v


class UpdateSubscriptionRequest(BaseModel):
    name: str | None = None
    amount: str | None = None
    next_billing_date: date | None = None
    billing_cycle: str | None = None
    category_id: str | None = None
    status: str | None = None
    reminder_days: int | None = None
    description: str | None = None


class SubscriptionResponse(BaseModel):
    id: str
    name: str
    amount: Decimal
    monthly_amount: Decimal
    billing_cycle: str
    category_id: str | None
    status: str
    next_billing_date: date | None
    days_until: int | None
    reminder_days: int
    description: str | None


class PaymentResponse(BaseModel):
    date: date
    amount: Decimal
    status: str


class SubscriptionDetailResponse(SubscriptionResponse):
    payment_history: list[PaymentResponse]


def _to_response(sub: Subscription, today: date) -> dict:
    return dict(
        id=sub.id,
        name=sub.name,
        amount=sub.amount,
        monthly_amount=sub.monthly_amount,
        billing_cycle=sub.billing_cycle,
        category_id=sub.category_id,
        status=sub.status,
        next_billing_date=sub.next_billing_date,
        days_until=days_between(today, sub.next_billing_date) if sub.next_billing_date else None,
        reminder_days=sub.reminder_days,
        description=sub.description,
    )


# === Endpoints ===

@router.get("/", response_model=list[SubscriptionResponse])
def list_subscriptions(
    status: str | None = None,
    workspace: UserWorkspace = Depends(get_workspace),
):
    """Subscriptions sorted by name, optionally filtered by status"""
    today = workspace.today()
    return [
        SubscriptionResponse(**_to_response(s, today))
        for s in workspace.subscriptions.items
        if status is None or s.status == status
    ]


@router.post("/", response_model=SubscriptionResponse, status_code=201)
def create_subscription(
    req: CreateSubscriptionRequest,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    try:
        sub = CreateSubscriptionUseCase(store).execute(user_id=user.id, **req.model_dump())
    except SubscriptionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SubscriptionResponse(**_to_response(sub, workspace.today()))


@router.get("/{subscription_id}", response_model=SubscriptionDetailResponse)
def get_subscription(subscription_id: str, workspace: UserWorkspace = Depends(get_workspace)):
    sub = next((s for s in workspace.subscriptions.items if s.id == subscription_id), None)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")

    today = workspace.today()
    return SubscriptionDetailResponse(
        **_to_response(sub, today),
        payment_history=[PaymentResponse(**p) for p in subscription_payment_history(sub, today)],
    )


@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
def update_subscription(
    subscription_id: str,
    req: UpdateSubscriptionRequest,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    changes = req.model_dump(exclude_unset=True)
    try:
        sub = UpdateSubscriptionUseCase(store, workspace.engine).execute(subscription_id, user.id, **changes)
    except SubscriptionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SubscriptionResponse(**_to_response(sub, workspace.today()))


@router.post("/{subscription_id}/toggle-status", response_model=SubscriptionResponse)
def toggle_subscription_status(
    subscription_id: str,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    """active ↔ inactive; deactivation emits a cancellation notification"""
    sub = ToggleSubscriptionStatusUseCase(store, workspace.engine).execute(subscription_id, user.id)
    return SubscriptionResponse(**_to_response(sub, workspace.today()))


@router.delete("/{subscription_id}", status_code=204)
def delete_subscription(
    subscription_id: str,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
):
    DeleteSubscriptionUseCase(store).execute(subscription_id, user.id)
    return Response(status_code=204)
