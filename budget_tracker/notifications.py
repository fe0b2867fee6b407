# budget_tracker/notifications.py
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Set

from budget_tracker.budgets import effective_limit
from budget_tracker.classifier import SpendClassification, classify
from budget_tracker.core.models import (
    ALLOCATION,
    INFO,
    WARNING,
    CategoryBudget,
    Notification,
    RecurringRule,
    Transaction,
)
from budget_tracker.utils import days_until, dedupe_by_id, format_amount, previous_month

ALERT_WINDOW_DAYS = 3
BUDGET_ALERT_THRESHOLD = 0.9


def _in_window(target: Optional[date], today: date, window_days: int) -> bool:
    if target is None:
        return False
    return 0 <= days_until(target, today) <= window_days


def _recurring_notifications(rules, today, window_days, currency):
    for rule in rules:
        if not _in_window(rule.next_due_date, today, window_days):
            continue
        due = rule.next_due_date.isoformat()
        is_allocation = rule.type == ALLOCATION
        if is_allocation:
            message = (
                f"💰 Allocation due: {rule.description} "
                f"({currency} {format_amount(rule.amount)}) on {due}"
            )
        else:
            message = f"Upcoming: {rule.description} due on {due}"
        yield Notification(
            id=f"rec-{rule.id}-{due}",
            message=message,
            severity=INFO,
            date=today,
            kind="recurring",
            description=rule.description,
            amount=rule.amount,
            due_date=rule.next_due_date,
            allocation=is_allocation,
        )


def _allocation_notifications(pending, today, window_days, currency):
    for tx in pending:
        if not _in_window(tx.date, today, window_days):
            continue
        yield Notification(
            id=f"alloc-{tx.id}",
            message=(
                f"💰 Incoming allocation: {tx.description} "
                f"({currency} {format_amount(tx.amount)}) on {tx.date.isoformat()}"
            ),
            severity=INFO,
            date=today,
            kind="allocation",
            description=tx.description,
            amount=tx.amount,
            due_date=tx.date,
            allocation=True,
        )


def _budget_notifications(budgets, classification, today, threshold):
    current = classification.spend_by_category(today.month, today.year)
    prior = classification.spend_by_category(*previous_month(today.month, today.year))
    month_index = today.month - 1
    for budget in budgets:
        limit = effective_limit(budget, prior.get(budget.category, 0.0))
        if limit <= 0:
            continue
        spent = current.get(budget.category, 0.0)
        ratio = spent / limit
        if ratio < threshold:
            continue
        yield Notification(
            id=f"budget-{budget.category}-{month_index}",
            message=(
                f"Budget Alert: {budget.category} is at "
                f"{round(ratio * 100)}% of monthly cap."
            ),
            severity=WARNING,
            date=today,
            kind="budget",
            description=budget.category,
            amount=spent,
        )


def derive(
    rules: Iterable[RecurringRule],
    transactions: Iterable[Transaction],
    budgets: Iterable[CategoryBudget],
    today: date,
    *,
    window_days: int = ALERT_WINDOW_DAYS,
    threshold: float = BUDGET_ALERT_THRESHOLD,
    currency: str = "LKR",
    classification: SpendClassification | None = None,
) -> List[Notification]:
    """Compute the notification set for ``today``.

    Order is recurring rules, then pending allocations, then budget caps. Ids
    are stable for the same underlying event, and a pass never returns two
    notifications sharing an id.
    """
    if classification is None:
        classification = classify(transactions, today)
    notifications: List[Notification] = []
    notifications.extend(_recurring_notifications(rules, today, window_days, currency))
    notifications.extend(
        _allocation_notifications(
            classification.pending_allocations, today, window_days, currency
        )
    )
    notifications.extend(
        _budget_notifications(budgets, classification, today, threshold)
    )
    return dedupe_by_id(notifications)


class NotificationFeed:
    """Session view of derived notifications.

    Keeps the latest list for the notification menu and remembers which ids
    were already surfaced as toasts so a recomputed notification never pops
    up twice in one session.
    """

    def __init__(self) -> None:
        self.notifications: List[Notification] = []
        self._surfaced: Set[str] = set()

    @staticmethod
    def _is_important(notification: Notification) -> bool:
        return notification.allocation or notification.severity == WARNING

    def push(self, notifications: Iterable[Notification]) -> List[Notification]:
        """Replace the current list and return notifications not yet surfaced."""
        self.notifications = list(notifications)
        fresh = []
        for notification in self.notifications:
            if not self._is_important(notification):
                continue
            if notification.id in self._surfaced:
                continue
            self._surfaced.add(notification.id)
            fresh.append(notification)
        return fresh

    def seen(self, notification_id: str) -> bool:
        return notification_id in self._surfaced

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def mark_all_read(self) -> None:
        for notification in self.notifications:
            notification.read = True

    def clear(self) -> None:
        self.notifications = []
