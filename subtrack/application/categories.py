"""
Category use cases - create, edit, delete, bulk budget update

Deleting a category leaves subscriptions pointing at it untouched; aggregates
drop the dangling reference from per-category breakdowns.
"""
import logging
import re
from typing import Any

from subtrack.domain.records import Category
from subtrack.infrastructure.remote_store import RemoteStore, RowNotFoundError
from subtrack.utils.validation import parse_amount

logger = logging.getLogger(__name__)

TABLE = "categories"
DEFAULT_COLOR = "#6366F1"

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


class CategoryValidationError(ValueError):
    pass


def _clean_name(value) -> str:
    name = (value or "").strip()
    if not name:
        raise CategoryValidationError("Name cannot be empty")
    return name


def _clean_budget(value):
    try:
        return parse_amount(value)
    except ValueError as e:
        raise CategoryValidationError(f"Budget: {e}") from e


def _clean_color(value) -> str:
    if not value:
        return DEFAULT_COLOR
    if not _COLOR_RE.match(value):
        raise CategoryValidationError(f"color must be a hex value like #6366F1, got: {value}")
    return value


class CreateCategoryUseCase:
    """
    Use case: new category with a monthly budget

    Names are unique per user.
    """

    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(self, user_id: int, name: str, budget=0, color: str | None = None) -> Category:
        name = _clean_name(name)
        if self.store.get_one(TABLE, user_id, {"name": name}) is not None:
            raise CategoryValidationError(f"Category already exists: {name}")

        row = self.store.insert(TABLE, user_id, {
            "name": name,
            "budget": _clean_budget(budget),
            "color": _clean_color(color),
        })
        logger.info("Category created: user_id=%s id=%s", user_id, row["id"])
        return Category.from_row(row)


class UpdateCategoryUseCase:
    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(self, category_id: str, user_id: int, **changes) -> Category:
        values: dict[str, Any] = {}
        if "name" in changes:
            name = _clean_name(changes.pop("name"))
            existing = self.store.get_one(TABLE, user_id, {"name": name})
            if existing is not None and str(existing["id"]) != category_id:
                raise CategoryValidationError(f"Category already exists: {name}")
            values["name"] = name
        if "budget" in changes:
            values["budget"] = _clean_budget(changes.pop("budget"))
        if "color" in changes:
            values["color"] = _clean_color(changes.pop("color"))
        if changes:
            raise CategoryValidationError(f"Unknown field(s): {', '.join(sorted(changes))}")

        if not values:
            row = self.store.get(TABLE, user_id, category_id)
            if row is None:
                raise RowNotFoundError(f"Category not found: {category_id}")
            return Category.from_row(row)

        return Category.from_row(self.store.update(TABLE, user_id, category_id, values))


class UpdateAllBudgetsUseCase:
    """Bulk budget edit from the budget screen: {category_id: budget}."""

    def __init__(self, store: RemoteStore):
        self.store = store
        self.update = UpdateCategoryUseCase(store)

    def execute(self, user_id: int, budgets: dict[str, Any]) -> list[Category]:
        # Validate everything before the first write
        cleaned = {category_id: _clean_budget(budget) for category_id, budget in budgets.items()}
        known = {row["id"] for row in self.store.select(TABLE, user_id)}
        missing = sorted(set(cleaned) - known)
        if missing:
            raise RowNotFoundError(f"Category not found: {', '.join(missing)}")
        return [
            self.update.execute(category_id, user_id, budget=budget)
            for category_id, budget in cleaned.items()
        ]


class DeleteCategoryUseCase:
    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(self, category_id: str, user_id: int) -> None:
        self.store.delete(TABLE, user_id, category_id)
        logger.info("Category deleted: user_id=%s id=%s", user_id, category_id)
