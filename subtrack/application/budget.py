"""
Budget evaluation — category budgets joined with derived category spend.

Utilization:  spend > 0 and budget > 0  →  spend / budget × 100,  otherwise 0
Alerts:       ≥ 100 % danger, 90–100 % warning, below that nothing
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from subtrack.domain.billing import ZERO
from subtrack.domain.records import Category, Subscription
from subtrack.application.spending import per_category_spend, total_monthly_spend
from subtrack.utils.money import format_money

WARNING_THRESHOLD = 90.0
DANGER_THRESHOLD = 100.0

ALERT_WARNING = "warning"
ALERT_DANGER = "danger"


@dataclass(frozen=True)
class BudgetAlert:
    category: str
    type: str
    message: str


@dataclass(frozen=True)
class CategoryBudgetStatus:
    category_id: str
    name: str
    budget: Decimal
    spend: Decimal
    percentage_used: float
    alert: BudgetAlert | None = None

    @property
    def remaining(self) -> Decimal:
        return max(self.budget - self.spend, ZERO)


@dataclass(frozen=True)
class BudgetOverview:
    total_budget: Decimal
    current_spend: Decimal
    percentage_used: float
    remaining: Decimal


def percentage_used(spend: Decimal, budget: Decimal) -> float:
    """Never NaN/Infinity: a zero budget reads as 0 %."""
    if spend > 0 and budget > 0:
        return float(spend / budget * 100)
    return 0.0


def classify(percentage: float) -> str | None:
    if percentage >= DANGER_THRESHOLD:
        return ALERT_DANGER
    if percentage >= WARNING_THRESHOLD:
        return ALERT_WARNING
    return None


def build_alert(name: str, spend: Decimal, budget: Decimal, percentage: float) -> BudgetAlert | None:
    level = classify(percentage)
    if level == ALERT_DANGER:
        return BudgetAlert(
            category=name,
            type=ALERT_DANGER,
            message=f"{name} is over budget by {format_money(spend - budget)}",
        )
    if level == ALERT_WARNING:
        return BudgetAlert(
            category=name,
            type=ALERT_WARNING,
            message=f"{name} is at {percentage:.1f}% of budget",
        )
    return None


def evaluate_budgets(
    subscriptions: Iterable[Subscription], categories: Iterable[Category],
) -> list[CategoryBudgetStatus]:
    """One status per category, in the order the categories were given."""
    categories = list(categories)
    spend_by_category = per_category_spend(subscriptions, categories)

    statuses = []
    for category in categories:
        spend = spend_by_category.get(category.id, ZERO)
        pct = percentage_used(spend, category.budget)
        statuses.append(CategoryBudgetStatus(
            category_id=category.id,
            name=category.name,
            budget=category.budget,
            spend=spend,
            percentage_used=pct,
            alert=build_alert(category.name, spend, category.budget, pct),
        ))
    return statuses


def budget_alerts(subscriptions: Iterable[Subscription], categories: Iterable[Category]) -> list[BudgetAlert]:
    return [s.alert for s in evaluate_budgets(subscriptions, categories) if s.alert is not None]


def budget_overview(subscriptions: Iterable[Subscription], categories: Iterable[Category]) -> BudgetOverview:
    """Whole-account view: sum of category budgets vs. total monthly spend."""
    total_budget = sum((c.budget for c in categories), ZERO)
    current = total_monthly_spend(subscriptions)
    return BudgetOverview(
        total_budget=total_budget,
        current_spend=current,
        percentage_used=percentage_used(current, total_budget),
        remaining=max(total_budget - current, ZERO),
    )
