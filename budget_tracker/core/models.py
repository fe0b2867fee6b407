# budget_tracker/core/models.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

logger = logging.getLogger(__name__)

EXPENSE = "expense"
ALLOCATION = "allocation"
TRANSACTION_TYPES = (EXPENSE, ALLOCATION)

FREQUENCIES = ("daily", "weekly", "monthly", "yearly")

BUDGET_SOURCE_NAMES = ("Primary Budget", "Principle Grants", "Group Grants")

INFO = "info"
WARNING = "warning"


def parse_date(value) -> Optional[date]:
    """Return ``value`` as a ``date`` or ``None`` when it cannot be parsed."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            logger.warning("Unparseable date %r", value)
            return None
    logger.warning("Unrecognized date value %r", value)
    return None


def parse_amount(value) -> float:
    """Return ``value`` as a float, falling back to 0.0 for garbage."""
    if value is None or value == "":
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        logger.warning("Unparseable amount %r", value)
        return 0.0
    if amount != amount:  # NaN
        logger.warning("Unparseable amount %r", value)
        return 0.0
    return amount


@dataclass
class Transaction:
    id: str
    date: Optional[date]
    description: str
    amount: float
    category: str
    type: str = EXPENSE
    company: Optional[str] = None
    invoice_no: Optional[str] = None
    po_no: Optional[str] = None

    @classmethod
    def from_dict(cls, record: dict) -> "Transaction":
        return cls(
            id=str(record.get("id", "")),
            date=parse_date(record.get("date")),
            description=record.get("description", "") or "",
            amount=parse_amount(record.get("amount")),
            category=record.get("category", "") or "",
            type=record.get("type", EXPENSE) or EXPENSE,
            company=record.get("company"),
            invoice_no=record.get("invoice_no", record.get("invoiceNo")),
            po_no=record.get("po_no", record.get("poNo")),
        )


@dataclass
class RecurringRule:
    id: str
    description: str
    amount: float
    category: str
    type: str
    frequency: str
    next_due_date: Optional[date]

    @classmethod
    def from_dict(cls, record: dict) -> "RecurringRule":
        return cls(
            id=str(record.get("id", "")),
            description=record.get("description", "") or "",
            amount=parse_amount(record.get("amount")),
            category=record.get("category", "") or "",
            type=record.get("type", EXPENSE) or EXPENSE,
            frequency=(record.get("frequency") or "monthly").lower(),
            next_due_date=parse_date(
                record.get("next_due_date", record.get("nextDueDate"))
            ),
        )


@dataclass
class CategoryBudget:
    """Spending cap for one expense category.

    ``category`` is the business key; ``doc_id`` is whatever id the store
    assigned to the row and is never used for lookups by the core.
    """

    category: str
    monthly_limit: float = 0.0
    rollover: bool = False
    doc_id: Optional[str] = None

    @classmethod
    def from_dict(cls, record: dict) -> "CategoryBudget":
        return cls(
            category=record.get("category", "") or "",
            monthly_limit=parse_amount(
                record.get("monthly_limit", record.get("limit"))
            ),
            rollover=bool(record.get("rollover", False)),
            doc_id=record.get("doc_id"),
        )


@dataclass
class BudgetSource:
    id: str
    name: str
    amount: float
    description: str = ""


@dataclass
class Category:
    id: str
    name: str
    color: str
    type: str


@dataclass
class SavingsGoal:
    """Money reserved ahead of time for a big-ticket item."""

    id: str
    name: str
    target_amount: float
    current_amount: float = 0.0
    target_date: Optional[date] = None
    color: str = ""

    @property
    def progress(self) -> float:
        """Percent of the target reached, capped at 100."""
        if self.target_amount <= 0:
            return 100.0 if self.current_amount > 0 else 0.0
        return min(self.current_amount / self.target_amount * 100, 100.0)

    @property
    def remaining(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)

    @property
    def is_completed(self) -> bool:
        return self.current_amount >= self.target_amount

    @classmethod
    def from_dict(cls, record: dict) -> "SavingsGoal":
        return cls(
            id=str(record.get("id", "")),
            name=record.get("name", "") or "",
            target_amount=parse_amount(
                record.get("target_amount", record.get("targetAmount"))
            ),
            current_amount=parse_amount(
                record.get("current_amount", record.get("currentAmount"))
            ),
            target_date=parse_date(
                record.get("target_date", record.get("targetDate"))
            ),
            color=record.get("color", "") or "",
        )


@dataclass
class Notification:
    id: str
    message: str
    severity: str
    date: date
    kind: str
    read: bool = False
    description: str = ""
    amount: float = 0.0
    due_date: Optional[date] = None
    allocation: bool = False


@dataclass
class AppSettings:
    alert_email: str = ""
    email_service_id: str = ""
    email_template_id: str = ""
    email_public_key: str = ""

    @property
    def email_config(self) -> dict:
        return {
            "service_id": self.email_service_id,
            "template_id": self.email_template_id,
            "public_key": self.email_public_key,
        }

    @property
    def email_configured(self) -> bool:
        return bool(self.alert_email) and all(self.email_config.values())


@dataclass
class Snapshot:
    """Full current state of every collection the core reads."""

    transactions: list = field(default_factory=list)
    recurring: list = field(default_factory=list)
    budgets: list = field(default_factory=list)
    sources: list = field(default_factory=list)
    categories: list = field(default_factory=list)
    savings: list = field(default_factory=list)
    settings: AppSettings = field(default_factory=AppSettings)
