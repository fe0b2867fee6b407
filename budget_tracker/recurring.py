# budget_tracker/recurring.py
from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import List

from budget_tracker.core.models import RecurringRule, Transaction

SAFETY_CAP = 12


@dataclass
class AdvanceResult:
    materialized: List[Transaction]
    updated_rule: RecurringRule

    @property
    def changed(self) -> bool:
        return bool(self.materialized)


def _add_months(original_date: date, months: int) -> date:
    month_index = original_date.month - 1 + months
    year = original_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(original_date.day, monthrange(year, month)[1])
    return date(year, month, day)


def next_date(current_date: date, frequency: str) -> date:
    if frequency == "daily":
        return current_date + timedelta(days=1)
    if frequency == "weekly":
        return current_date + timedelta(weeks=1)
    if frequency == "monthly":
        return _add_months(current_date, 1)
    if frequency == "yearly":
        return _add_months(current_date, 12)
    raise ValueError(f"Unsupported frequency '{frequency}'.")


def advance(
    rule: RecurringRule, today: date, max_occurrences: int = SAFETY_CAP
) -> AdvanceResult:
    """Materialize every occurrence of ``rule`` due on or before ``today``.

    At most ``max_occurrences`` transactions are produced per call; a rule
    further behind than that keeps a past due date and catches up on later
    calls. Nothing is persisted here.
    """
    if rule.next_due_date is None:
        raise ValueError(f"Recurring rule {rule.id!r} has no next due date")

    materialized = []
    current = rule.next_due_date
    while current <= today and len(materialized) < max_occurrences:
        materialized.append(
            Transaction(
                id=f"{rule.id}-{current.isoformat()}",
                date=current,
                description=rule.description,
                amount=rule.amount,
                category=rule.category,
                type=rule.type,
            )
        )
        current = next_date(current, rule.frequency)

    return AdvanceResult(
        materialized=materialized,
        updated_rule=replace(rule, next_due_date=current),
    )


def project(rule: RecurringRule, until: date, limit: int = 100) -> List[date]:
    """List upcoming due dates of ``rule`` up to ``until`` (inclusive)."""
    if rule.next_due_date is None:
        return []
    dates = []
    current = rule.next_due_date
    while current <= until and len(dates) < limit:
        dates.append(current)
        current = next_date(current, rule.frequency)
    return dates
