"""
Dashboard API — derived view models over the user's synced collections
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from subtrack.api.deps import get_workspace
from subtrack.application.sync import ERROR
from subtrack.application.workspace import UserWorkspace


router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


class SummaryResponse(BaseModel):
    total_monthly_spend: Decimal
    per_category_spend: dict[str, Decimal]
    active_count: int
    inactive_count: int
    upcoming_renewal_count: int
    window_days: int


class BudgetStatusResponse(BaseModel):
    category_id: str
    name: str
    budget: Decimal
    spend: Decimal
    remaining: Decimal
    percentage_used: float
    alert: str | None


class AlertResponse(BaseModel):
    category: str
    type: str
    message: str


class OverviewResponse(BaseModel):
    total_budget: Decimal
    current_spend: Decimal
    percentage_used: float
    remaining: Decimal


class UpcomingResponse(BaseModel):
    id: str
    name: str
    amount: Decimal
    next_billing_date: date
    days_until: int


class CategoryStatResponse(BaseModel):
    category_id: str
    name: str
    color: str | None
    spend: Decimal
    share: float


class MonthResponse(BaseModel):
    label: str
    amount: Decimal


class TrendResponse(BaseModel):
    percentage: float
    direction: str


class DashboardResponse(BaseModel):
    summary: SummaryResponse
    budgets: list[BudgetStatusResponse]
    alerts: list[AlertResponse]
    overview: OverviewResponse
    upcoming: list[UpcomingResponse]
    due_soon: list[UpcomingResponse]
    category_stats: list[CategoryStatResponse]
    history: list[MonthResponse]
    trend: TrendResponse
    unread_notifications: int


class SyncStatusResponse(BaseModel):
    subscriptions: str
    categories: str
    notifications: str
    errors: dict[str, str]


@router.get("/", response_model=DashboardResponse)
def get_dashboard(workspace: UserWorkspace = Depends(get_workspace)):
    failed = [c.table for c in (workspace.subscriptions, workspace.categories) if c.status == ERROR]
    if failed:
        raise HTTPException(status_code=503, detail=f"Could not load: {', '.join(failed)}")

    d = workspace.dashboard()
    today = workspace.today()
    return DashboardResponse(
        summary=SummaryResponse(**vars(d.summary)),
        budgets=[
            BudgetStatusResponse(
                category_id=b.category_id,
                name=b.name,
                budget=b.budget,
                spend=b.spend,
                remaining=b.remaining,
                percentage_used=b.percentage_used,
                alert=b.alert.type if b.alert else None,
            )
            for b in d.budgets
        ],
        alerts=[AlertResponse(**vars(a)) for a in d.alerts],
        overview=OverviewResponse(**vars(d.overview)),
        upcoming=[
            UpcomingResponse(
                id=s.id,
                name=s.name,
                amount=s.amount,
                next_billing_date=s.next_billing_date,
                days_until=(s.next_billing_date - today).days,
            )
            for s in d.upcoming
        ],
        due_soon=[
            UpcomingResponse(
                id=p.subscription.id,
                name=p.subscription.name,
                amount=p.subscription.amount,
                next_billing_date=p.subscription.next_billing_date,
                days_until=p.days_until,
            )
            for p in d.due_soon
        ],
        category_stats=[CategoryStatResponse(**vars(s)) for s in d.category_stats],
        history=[MonthResponse(label=m.label, amount=m.amount) for m in d.history],
        trend=TrendResponse(**vars(d.trend)),
        unread_notifications=d.unread_notifications,
    )


@router.get("/sync", response_model=SyncStatusResponse)
def sync_status(workspace: UserWorkspace = Depends(get_workspace)):
    collections = (workspace.subscriptions, workspace.categories, workspace.notifications)
    return SyncStatusResponse(
        subscriptions=workspace.subscriptions.status,
        categories=workspace.categories.status,
        notifications=workspace.notifications.status,
        errors={c.table: c.error for c in collections if c.error},
    )


@router.post("/sync/refresh", response_model=SyncStatusResponse)
def refresh(workspace: UserWorkspace = Depends(get_workspace)):
    """Manual retry after a failed fetch"""
    workspace.refresh()
    return sync_status(workspace)
