"""
Tests for category use cases
"""
from datetime import date
from decimal import Decimal

import pytest

from subtrack.application.categories import (
    CreateCategoryUseCase, UpdateCategoryUseCase, UpdateAllBudgetsUseCase, DeleteCategoryUseCase,
    CategoryValidationError, DEFAULT_COLOR,
)
from subtrack.infrastructure.remote_store import RowNotFoundError

USER = 1


@pytest.fixture
def video(remote_store):
    return CreateCategoryUseCase(remote_store).execute(user_id=USER, name="Video", budget="30")


def test_create_defaults(video):
    assert video.name == "Video"
    assert video.budget == Decimal("30")
    assert video.color == DEFAULT_COLOR


def test_duplicate_name_rejected(remote_store, video):
    with pytest.raises(CategoryValidationError, match="already exists"):
        CreateCategoryUseCase(remote_store).execute(user_id=USER, name=" Video ")


def test_same_name_for_other_user_is_fine(remote_store, video):
    other = CreateCategoryUseCase(remote_store).execute(user_id=2, name="Video")
    assert other.id != video.id


@pytest.mark.parametrize("kwargs", [
    {"name": ""},
    {"name": "Music", "budget": "-1"},
    {"name": "Music", "color": "red"},
])
def test_create_validation(remote_store, kwargs):
    with pytest.raises(CategoryValidationError):
        CreateCategoryUseCase(remote_store).execute(user_id=USER, **kwargs)


def test_update(remote_store, video):
    updated = UpdateCategoryUseCase(remote_store).execute(video.id, USER, name="Streaming", color="#112233")
    assert updated.name == "Streaming"
    assert updated.color == "#112233"
    assert updated.budget == Decimal("30")


def test_update_to_existing_name_rejected(remote_store, video):
    music = CreateCategoryUseCase(remote_store).execute(user_id=USER, name="Music")
    with pytest.raises(CategoryValidationError):
        UpdateCategoryUseCase(remote_store).execute(music.id, USER, name="Video")


def test_update_keeping_own_name(remote_store, video):
    updated = UpdateCategoryUseCase(remote_store).execute(video.id, USER, name="Video", budget="40")
    assert updated.budget == Decimal("40")


def test_update_missing(remote_store):
    with pytest.raises(RowNotFoundError):
        UpdateCategoryUseCase(remote_store).execute("missing", USER, budget="5")


def test_update_all_budgets(remote_store, video):
    music = CreateCategoryUseCase(remote_store).execute(user_id=USER, name="Music", budget="10")
    result = UpdateAllBudgetsUseCase(remote_store).execute(USER, {video.id: "50", music.id: "15.50"})
    assert {c.name: c.budget for c in result} == {"Video": Decimal("50"), "Music": Decimal("15.50")}


def test_update_all_budgets_validates_before_writing(remote_store, video):
    with pytest.raises(CategoryValidationError):
        UpdateAllBudgetsUseCase(remote_store).execute(USER, {video.id: "50", "other": "abc"})
    assert remote_store.get("categories", USER, video.id)["budget"] == Decimal("30")


def test_update_all_budgets_unknown_id_writes_nothing(remote_store, video):
    with pytest.raises(RowNotFoundError):
        UpdateAllBudgetsUseCase(remote_store).execute(USER, {video.id: "99", "missing-id": "5"})
    assert remote_store.get("categories", USER, video.id)["budget"] == Decimal("30")


def test_update_all_budgets_ignores_other_users_ids(remote_store, video):
    with pytest.raises(RowNotFoundError):
        UpdateAllBudgetsUseCase(remote_store).execute(2, {video.id: "99"})
    assert remote_store.get("categories", USER, video.id)["budget"] == Decimal("30")


def test_delete_keeps_subscriptions(remote_store, video):
    remote_store.insert("subscriptions", USER, {
        "name": "Netflix", "amount": Decimal("10"), "category_id": video.id,
        "next_billing_date": date(2026, 4, 1),
    })
    DeleteCategoryUseCase(remote_store).execute(video.id, USER)
    assert remote_store.select("categories", USER) == []
    assert remote_store.select("subscriptions", USER)[0]["category_id"] == video.id
