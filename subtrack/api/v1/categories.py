"""
Category API endpoints
"""
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from subtrack.api.deps import get_current_user, get_store, get_workspace
from subtrack.application.budget import evaluate_budgets
from subtrack.application.categories import (
    CreateCategoryUseCase, UpdateCategoryUseCase, UpdateAllBudgetsUseCase, DeleteCategoryUseCase,
    CategoryValidationError,
)
from subtrack.application.workspace import UserWorkspace
from subtrack.domain.records import Category
from subtrack.infrastructure.db.models import User
from subtrack.infrastructure.remote_store import RemoteStore


router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


# === Request/Response models ===

class CreateCategoryRequest(BaseModel):
    name: str
    budget: str = "0"
    color: str | None = None


class UpdateCategoryRequest(BaseModel):
    name: str | None = None
    budget: str | None = None
    color: str | None = None


class UpdateBudgetsRequest(BaseModel):
    budgets: dict[str, str]  # category_id → budget


class CategoryResponse(BaseModel):
    id: str
    name: str
    budget: Decimal
    color: str | None
    spend: Decimal
    percentage_used: float


def _to_responses(categories: list[Category], workspace: UserWorkspace) -> list[CategoryResponse]:
    statuses = {
        s.category_id: s
        for s in evaluate_budgets(workspace.subscriptions.items, workspace.categories.items)
    }
    responses = []
    for c in categories:
        status = statuses.get(c.id)
        responses.append(CategoryResponse(
            id=c.id,
            name=c.name,
            budget=c.budget,
            color=c.color,
            spend=status.spend if status else Decimal("0"),
            percentage_used=status.percentage_used if status else 0.0,
        ))
    return responses


# === Endpoints ===

@router.get("/", response_model=list[CategoryResponse])
def list_categories(workspace: UserWorkspace = Depends(get_workspace)):
    """Categories sorted by name, with derived spend"""
    return _to_responses(workspace.categories.items, workspace)


@router.post("/", response_model=CategoryResponse, status_code=201)
def create_category(
    req: CreateCategoryRequest,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    try:
        category = CreateCategoryUseCase(store).execute(
            user_id=user.id, name=req.name, budget=req.budget, color=req.color,
        )
    except CategoryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_responses([category], workspace)[0]


@router.put("/budgets", response_model=list[CategoryResponse])
def update_all_budgets(
    req: UpdateBudgetsRequest,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    """Bulk budget edit"""
    try:
        categories = UpdateAllBudgetsUseCase(store).execute(user.id, req.budgets)
    except CategoryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_responses(categories, workspace)


@router.patch("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: str,
    req: UpdateCategoryRequest,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
    workspace: UserWorkspace = Depends(get_workspace),
):
    try:
        category = UpdateCategoryUseCase(store).execute(
            category_id, user.id, **req.model_dump(exclude_unset=True),
        )
    except CategoryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_responses([category], workspace)[0]


@router.delete("/{category_id}", status_code=204)
def delete_category(
    category_id: str,
    user: User = Depends(get_current_user),
    store: RemoteStore = Depends(get_store),
):
    DeleteCategoryUseCase(store).execute(category_id, user.id)
    return Response(status_code=204)
