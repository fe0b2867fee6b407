# budget_tracker/classifier.py
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List

from budget_tracker.core.models import ALLOCATION, EXPENSE, Transaction
from budget_tracker.utils import as_day, in_month

logger = logging.getLogger(__name__)


@dataclass
class SpendClassification:
    """Transactions split into realized spend and pending allocations.

    Records without a usable date land in ``skipped`` and count nowhere.
    """

    today: date
    realized_spend: List[Transaction] = field(default_factory=list)
    pending_allocations: List[Transaction] = field(default_factory=list)
    skipped: List[Transaction] = field(default_factory=list)

    def spend_by_category(self, month: int, year: int) -> Dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for tx in self.realized_spend:
            if in_month(as_day(tx.date), month, year):
                totals[tx.category] += _contribution(tx)
        return dict(totals)

    def totals(self) -> Dict[str, float]:
        allocations = sum(
            _contribution(tx) for tx in self.realized_spend if tx.type == ALLOCATION
        )
        expenses = sum(
            _contribution(tx) for tx in self.realized_spend if tx.type == EXPENSE
        )
        return {
            "allocations": allocations,
            "expenses": expenses,
            "balance": allocations - expenses,
            "pending": sum(_contribution(tx) for tx in self.pending_allocations),
        }


def _contribution(tx: Transaction) -> float:
    if tx.amount < 0:
        logger.warning(
            "Transaction %s has negative amount %s; counting it as zero",
            tx.id,
            tx.amount,
        )
        return 0.0
    return tx.amount


def classify(transactions: Iterable[Transaction], today: date) -> SpendClassification:
    today = as_day(today)
    result = SpendClassification(today=today)
    for tx in transactions:
        tx_date = as_day(tx.date)
        if tx_date is None:
            logger.warning("Transaction %s has no usable date; skipping", tx.id)
            result.skipped.append(tx)
            continue
        if tx.type == ALLOCATION and tx_date > today:
            result.pending_allocations.append(tx)
        elif tx.type in (EXPENSE, ALLOCATION):
            result.realized_spend.append(tx)
        else:
            logger.warning("Transaction %s has unknown type %r; skipping", tx.id, tx.type)
            result.skipped.append(tx)
    return result
