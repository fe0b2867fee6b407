# budget_tracker/budgets.py
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List

from budget_tracker.classifier import SpendClassification
from budget_tracker.core.models import BudgetSource, CategoryBudget
from budget_tracker.utils import previous_month

logger = logging.getLogger(__name__)


def rollover_carry(budget: CategoryBudget, prior_month_spend: float) -> float:
    """Unspent part of last month's base limit, zero when rollover is off."""
    if not budget.rollover:
        return 0.0
    limit = max(0.0, budget.monthly_limit)
    return max(0.0, limit - max(0.0, prior_month_spend))


def effective_limit(budget: CategoryBudget, prior_month_spend: float) -> float:
    """Return this month's cap for ``budget``.

    With rollover enabled the unspent remainder of the prior month's base
    limit is added on top. Only the base limit carries over, so the cap is at
    most twice the base. A limit of 0 is returned as 0; callers treat that as
    "no cap configured".
    """
    if budget.monthly_limit < 0:
        logger.warning(
            "Budget for %s has negative limit %s; using 0",
            budget.category,
            budget.monthly_limit,
        )
    if prior_month_spend < 0:
        logger.warning(
            "Prior month spend for %s is negative (%s); using 0",
            budget.category,
            prior_month_spend,
        )
    limit = max(0.0, budget.monthly_limit)
    return limit + rollover_carry(budget, prior_month_spend)


def budget_status(
    budgets: Iterable[CategoryBudget],
    classification: SpendClassification,
    today: date,
) -> List[Dict[str, object]]:
    """Per-category figures for the month containing ``today``."""
    current = classification.spend_by_category(today.month, today.year)
    prior = classification.spend_by_category(*previous_month(today.month, today.year))

    rows = []
    for budget in budgets:
        spent = current.get(budget.category, 0.0)
        prior_spent = prior.get(budget.category, 0.0)
        limit = effective_limit(budget, prior_spent)
        rows.append(
            {
                "category": budget.category,
                "monthly_limit": budget.monthly_limit,
                "rollover": budget.rollover,
                "prior_month_spend": prior_spent,
                "carry": rollover_carry(budget, prior_spent),
                "effective_limit": limit,
                "spent": spent,
                "remaining": limit - spent,
                "ratio": spent / limit if limit > 0 else None,
            }
        )
    return rows


def total_funding(sources: Iterable[BudgetSource]) -> float:
    return sum(max(0.0, source.amount) for source in sources)
