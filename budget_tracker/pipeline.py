# budget_tracker/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from budget_tracker.alerts import AlertDispatcher
from budget_tracker.classifier import SpendClassification, classify
from budget_tracker.core.models import Notification, RecurringRule, Snapshot, Transaction
from budget_tracker.database import CreateTransaction, Operation, UpdateRecurringRule
from budget_tracker.notifications import (
    ALERT_WINDOW_DAYS,
    BUDGET_ALERT_THRESHOLD,
    NotificationFeed,
    derive,
)
from budget_tracker.recurring import SAFETY_CAP, advance
from budget_tracker.utils import dedupe_by_id

logger = logging.getLogger(__name__)

RECURRING_ERROR = "Could not process recurring transactions"

Committer = Callable[[List[Operation]], None]


@dataclass
class RecurringReport:
    transactions: List[Transaction] = field(default_factory=list)
    updated_rules: Dict[str, RecurringRule] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def materialized(self) -> int:
        return len(self.transactions)

    def apply(self, snapshot: Snapshot) -> Snapshot:
        """Return ``snapshot`` with the committed work folded in.

        Occurrences whose id the store already held were ignored on insert,
        so they are not added twice here either.
        """
        if not self.updated_rules:
            return snapshot
        return replace(
            snapshot,
            recurring=[self.updated_rules.get(r.id, r) for r in snapshot.recurring],
            transactions=dedupe_by_id(list(snapshot.transactions) + self.transactions),
        )


def process_recurring(
    rules: Iterable[RecurringRule],
    today: date,
    commit: Committer,
    max_occurrences: int = SAFETY_CAP,
) -> RecurringReport:
    """Advance every due rule, committing each rule's work as one batch.

    A rule whose batch fails keeps its old due date in the store and is
    picked up again on the next refresh.
    """
    report = RecurringReport()
    for rule in rules:
        try:
            result = advance(rule, today, max_occurrences)
        except ValueError as exc:
            logger.error("Skipping recurring rule %s: %s", rule.id, exc)
            report.errors.append(f"{RECURRING_ERROR}: {rule.description or rule.id}")
            continue
        if not result.changed:
            continue

        ops: List[Operation] = [CreateTransaction(tx) for tx in result.materialized]
        ops.append(UpdateRecurringRule(rule.id, result.updated_rule.next_due_date))
        try:
            commit(ops)
        except Exception:
            logger.exception("Error processing recurring rule %s", rule.id)
            report.errors.append(f"{RECURRING_ERROR}: {rule.description or rule.id}")
            continue

        report.transactions.extend(result.materialized)
        report.updated_rules[rule.id] = result.updated_rule
        logger.info(
            "Materialized %d transaction(s) for %s; next due %s",
            len(result.materialized),
            rule.id,
            result.updated_rule.next_due_date,
        )
    return report


@dataclass
class RefreshResult:
    today: date
    notifications: List[Notification]
    toasts: List[Notification]
    alerts_sent: List[str]
    classification: SpendClassification
    recurring: RecurringReport = field(default_factory=RecurringReport)


class DashboardSession:
    """Recompute notifications whenever the data or the date changes.

    The store pushes full snapshots through :meth:`on_snapshot`; a caller may
    also call :meth:`tick` with the current date so that crossing midnight
    re-derives notifications even when no data changed.
    """

    def __init__(
        self,
        dispatcher: Optional[AlertDispatcher] = None,
        commit: Optional[Committer] = None,
        *,
        window_days: int = ALERT_WINDOW_DAYS,
        threshold: float = BUDGET_ALERT_THRESHOLD,
        safety_cap: int = SAFETY_CAP,
        currency: str = "LKR",
    ) -> None:
        self.dispatcher = dispatcher
        self.commit = commit
        self.window_days = window_days
        self.threshold = threshold
        self.safety_cap = safety_cap
        self.currency = currency
        self.feed = NotificationFeed()
        self.snapshot: Optional[Snapshot] = None
        self.today: Optional[date] = None
        self.last_result: Optional[RefreshResult] = None

    def on_snapshot(self, snapshot: Snapshot, today: date) -> RefreshResult:
        self.snapshot = snapshot
        self.today = today
        return self.refresh()

    def tick(self, today: date) -> Optional[RefreshResult]:
        """Re-run derivation if the calendar day moved on."""
        if self.snapshot is None or today == self.today:
            return None
        self.today = today
        return self.refresh()

    def refresh(self) -> RefreshResult:
        if self.snapshot is None or self.today is None:
            raise RuntimeError("No snapshot received yet")
        snapshot, today = self.snapshot, self.today

        report = RecurringReport()
        if self.commit is not None and snapshot.recurring:
            report = process_recurring(
                snapshot.recurring, today, self.commit, self.safety_cap
            )
            snapshot = self.snapshot = report.apply(snapshot)

        classification = classify(snapshot.transactions, today)
        notifications = derive(
            snapshot.recurring,
            snapshot.transactions,
            snapshot.budgets,
            today,
            window_days=self.window_days,
            threshold=self.threshold,
            currency=self.currency,
            classification=classification,
        )
        toasts = self.feed.push(notifications)

        sent: List[str] = []
        if self.dispatcher is not None:
            sent = self.dispatcher.dispatch_all(notifications, snapshot.settings)

        self.last_result = RefreshResult(
            today=today,
            notifications=notifications,
            toasts=toasts,
            alerts_sent=sent,
            classification=classification,
            recurring=report,
        )
        return self.last_result
