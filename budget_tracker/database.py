import hashlib
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from datetime import date
from typing import Iterable, List, Optional, Union

from budget_tracker.core.models import (
    BUDGET_SOURCE_NAMES,
    EXPENSE,
    FREQUENCIES,
    TRANSACTION_TYPES,
    AppSettings,
    BudgetSource,
    Category,
    CategoryBudget,
    RecurringRule,
    SavingsGoal,
    Snapshot,
    Transaction,
)

logger = logging.getLogger(__name__)

INITIAL_CATEGORIES = [
    ("1", "Business Promotion & Advertising", "#ef4444", "expense"),
    ("2", "Other Marketing Expense", "#f59e0b", "expense"),
    ("3", "Software/SaaS", "#3b82f6", "expense"),
    ("4", "Events", "#8b5cf6", "expense"),
    ("7", "Quarterly Budget", "#059669", "allocation"),
    ("8", "Extra Grant", "#0ea5e9", "allocation"),
    ("9", "ROI Reinvestment", "#14b8a6", "allocation"),
]

INITIAL_BUDGETS = [
    ("Business Promotion & Advertising", 6000000.0, True),
    ("Other Marketing Expense", 200000.0, True),
    ("Software/SaaS", 500000.0, False),
    ("Events", 1000000.0, True),
]


class StoreError(RuntimeError):
    """Raised when a write could not be applied to the store."""


@dataclass
class CreateTransaction:
    transaction: Transaction


@dataclass
class UpdateRecurringRule:
    rule_id: str
    next_due_date: date


Operation = Union[CreateTransaction, UpdateRecurringRule]


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            date TEXT,
            description TEXT NOT NULL DEFAULT '',
            amount REAL NOT NULL DEFAULT 0,
            category TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL DEFAULT 'expense',
            company TEXT,
            invoice_no TEXT,
            po_no TEXT
        );
        CREATE TABLE IF NOT EXISTS recurring (
            id TEXT PRIMARY KEY,
            description TEXT NOT NULL DEFAULT '',
            amount REAL NOT NULL DEFAULT 0,
            category TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL DEFAULT 'expense',
            frequency TEXT NOT NULL,
            next_due_date TEXT
        );
        CREATE TABLE IF NOT EXISTS budgets (
            doc_id TEXT PRIMARY KEY,
            category TEXT NOT NULL UNIQUE,
            monthly_limit REAL NOT NULL DEFAULT 0,
            rollover INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE IF NOT EXISTS budget_sources (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            amount REAL NOT NULL DEFAULT 0,
            description TEXT NOT NULL DEFAULT ''
        );
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            color TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL,
            UNIQUE(name, type)
        );
        CREATE TABLE IF NOT EXISTS savings (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            target_amount REAL NOT NULL DEFAULT 0,
            current_amount REAL NOT NULL DEFAULT 0,
            target_date TEXT,
            color TEXT NOT NULL DEFAULT ''
        );
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT
        );
        CREATE TABLE IF NOT EXISTS sent_markers (
            key TEXT PRIMARY KEY
        );
        """
    )
    conn.commit()


def _connect(db_path) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    _init_db(conn)
    return conn


def _new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _insert_transaction(conn: sqlite3.Connection, tx: Transaction) -> None:
    conn.execute(
        """
        INSERT OR IGNORE INTO transactions
        (id, date, description, amount, category, type, company, invoice_no, po_no)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            tx.id,
            _iso(tx.date),
            tx.description.strip(),
            float(tx.amount),
            tx.category,
            tx.type,
            tx.company,
            tx.invoice_no,
            tx.po_no,
        ),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def fetch_transactions(db_path) -> List[Transaction]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            """
            SELECT id, date, description, amount, category, type,
                   company, invoice_no, po_no
            FROM transactions
            ORDER BY date DESC, id
            """
        ).fetchall()
    finally:
        conn.close()
    return [
        Transaction.from_dict(
            {
                "id": r[0],
                "date": r[1],
                "description": r[2],
                "amount": r[3],
                "category": r[4],
                "type": r[5],
                "company": r[6],
                "invoice_no": r[7],
                "po_no": r[8],
            }
        )
        for r in rows
    ]


def fetch_recurring(db_path) -> List[RecurringRule]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            """
            SELECT id, description, amount, category, type, frequency, next_due_date
            FROM recurring
            ORDER BY id
            """
        ).fetchall()
    finally:
        conn.close()
    return [
        RecurringRule.from_dict(
            {
                "id": r[0],
                "description": r[1],
                "amount": r[2],
                "category": r[3],
                "type": r[4],
                "frequency": r[5],
                "next_due_date": r[6],
            }
        )
        for r in rows
    ]


def fetch_budgets(db_path) -> List[CategoryBudget]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            "SELECT doc_id, category, monthly_limit, rollover FROM budgets ORDER BY category"
        ).fetchall()
    finally:
        conn.close()
    return [
        CategoryBudget(
            category=r[1], monthly_limit=float(r[2]), rollover=bool(r[3]), doc_id=r[0]
        )
        for r in rows
    ]


def fetch_sources(db_path) -> List[BudgetSource]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            "SELECT id, name, amount, description FROM budget_sources ORDER BY name"
        ).fetchall()
    finally:
        conn.close()
    return [BudgetSource(id=r[0], name=r[1], amount=float(r[2]), description=r[3]) for r in rows]


def list_categories(db_path) -> List[Category]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            "SELECT id, name, color, type FROM categories ORDER BY type, name"
        ).fetchall()
    finally:
        conn.close()
    return [Category(id=r[0], name=r[1], color=r[2], type=r[3]) for r in rows]


def _savings_from_row(r) -> SavingsGoal:
    return SavingsGoal.from_dict(
        {
            "id": r[0],
            "name": r[1],
            "target_amount": r[2],
            "current_amount": r[3],
            "target_date": r[4],
            "color": r[5],
        }
    )


def fetch_savings(db_path) -> List[SavingsGoal]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            """
            SELECT id, name, target_amount, current_amount, target_date, color
            FROM savings
            ORDER BY target_date, name
            """
        ).fetchall()
    finally:
        conn.close()
    return [_savings_from_row(r) for r in rows]


def fetch_settings(db_path) -> AppSettings:
    conn = _connect(db_path)
    try:
        rows = dict(conn.execute("SELECT key, value FROM settings").fetchall())
    finally:
        conn.close()
    return AppSettings(
        alert_email=rows.get("alert_email") or "",
        email_service_id=rows.get("email_service_id") or "",
        email_template_id=rows.get("email_template_id") or "",
        email_public_key=rows.get("email_public_key") or "",
    )


def fetch_snapshot(db_path) -> Snapshot:
    """Read every collection the dashboard needs in one go."""
    return Snapshot(
        transactions=fetch_transactions(db_path),
        recurring=fetch_recurring(db_path),
        budgets=fetch_budgets(db_path),
        sources=fetch_sources(db_path),
        categories=list_categories(db_path),
        savings=fetch_savings(db_path),
        settings=fetch_settings(db_path),
    )


def snapshot_signature(db_path) -> str:
    """Digest of the full store contents, used to detect changes by polling."""
    conn = _connect(db_path)
    try:
        parts: list[str] = []
        for table in (
            "transactions",
            "recurring",
            "budgets",
            "budget_sources",
            "categories",
            "savings",
            "settings",
        ):
            rows = conn.execute(f"SELECT * FROM {table} ORDER BY 1").fetchall()
            parts.append(f"{table}:{rows!r}")
    finally:
        conn.close()
    return hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_transaction(db_path, fields: dict) -> Transaction:
    """Insert a new transaction and return it with its assigned id."""
    record = dict(fields)
    record.setdefault("id", _new_id())
    tx = Transaction.from_dict(record)
    if tx.date is None:
        raise ValueError(f"Transaction requires a valid date: {fields}")
    if tx.amount < 0:
        raise ValueError("Transaction amount must not be negative")
    if tx.type not in TRANSACTION_TYPES:
        raise ValueError(f"Unsupported transaction type '{tx.type}'")
    conn = _connect(db_path)
    try:
        _insert_transaction(conn, tx)
        conn.commit()
    finally:
        conn.close()
    return tx


def delete_transaction(db_path, tx_id: str) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute("DELETE FROM transactions WHERE id = ?", (tx_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def add_recurring_rule(db_path, fields: dict) -> RecurringRule:
    record = dict(fields)
    record.setdefault("id", _new_id())
    rule = RecurringRule.from_dict(record)
    if rule.next_due_date is None:
        raise ValueError(f"Recurring rule requires a next due date: {fields}")
    if rule.frequency not in FREQUENCIES:
        raise ValueError(f"Unsupported frequency '{rule.frequency}'")
    conn = _connect(db_path)
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO recurring
            (id, description, amount, category, type, frequency, next_due_date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rule.id,
                rule.description,
                float(rule.amount),
                rule.category,
                rule.type,
                rule.frequency,
                _iso(rule.next_due_date),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    return rule


def delete_recurring_rule(db_path, rule_id: str) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute("DELETE FROM recurring WHERE id = ?", (rule_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def update_recurring_rule(db_path, rule_id: str, next_due_date: date) -> None:
    batch_commit(db_path, [UpdateRecurringRule(rule_id, next_due_date)])


def batch_commit(db_path, ops: Iterable[Operation]) -> None:
    """Apply ``ops`` in a single transaction: all of them or none."""
    ops = list(ops)
    if not ops:
        return
    conn = _connect(db_path)
    try:
        with conn:
            for op in ops:
                if isinstance(op, CreateTransaction):
                    _insert_transaction(conn, op.transaction)
                elif isinstance(op, UpdateRecurringRule):
                    cur = conn.execute(
                        "UPDATE recurring SET next_due_date = ? WHERE id = ?",
                        (op.next_due_date.isoformat(), op.rule_id),
                    )
                    if cur.rowcount == 0:
                        raise StoreError(f"Recurring rule not found: {op.rule_id}")
                else:
                    raise StoreError(f"Unsupported operation: {op!r}")
    except sqlite3.Error as exc:
        raise StoreError(f"Batch commit failed: {exc}") from exc
    finally:
        conn.close()


def update_category_budget(
    db_path, category: str, limit: float, rollover: bool
) -> CategoryBudget:
    """Create or update the budget keyed by ``category``."""
    if limit < 0:
        raise ValueError("Budget limit must not be negative")
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT doc_id FROM budgets WHERE category = ?", (category,)
        ).fetchone()
        doc_id = row[0] if row else _new_id()
        conn.execute(
            """
            INSERT INTO budgets (doc_id, category, monthly_limit, rollover)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(category) DO UPDATE SET
                monthly_limit = excluded.monthly_limit,
                rollover = excluded.rollover
            """,
            (doc_id, category, float(limit), int(bool(rollover))),
        )
        conn.commit()
    finally:
        conn.close()
    return CategoryBudget(category, float(limit), bool(rollover), doc_id)


def update_budget_source(
    db_path,
    source_id: Optional[str],
    name: str,
    amount: float,
    description: str = "",
) -> BudgetSource:
    """Create or update a funding source; there is at most one per ``name``."""
    if name not in BUDGET_SOURCE_NAMES:
        raise ValueError(f"Unknown budget source '{name}'")
    conn = _connect(db_path)
    try:
        if source_id is None:
            row = conn.execute(
                "SELECT id FROM budget_sources WHERE name = ?", (name,)
            ).fetchone()
            source_id = row[0] if row else _new_id()
        conn.execute(
            """
            INSERT INTO budget_sources (id, name, amount, description)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                amount = excluded.amount,
                description = excluded.description
            """,
            (source_id, name, float(amount), description),
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        raise StoreError(f"Could not save budget source {name}: {exc}") from exc
    finally:
        conn.close()
    return BudgetSource(source_id, name, float(amount), description)


def add_category(db_path, name: str, color: str, type: str) -> Category:
    """Add a category; expense categories also get an uncapped budget row."""
    if type not in TRANSACTION_TYPES:
        raise ValueError(f"Unsupported category type '{type}'")
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT id FROM categories WHERE name = ? AND type = ?", (name, type)
        ).fetchone()
        if row:
            cat_id = row[0]
        else:
            cat_id = _new_id()
            conn.execute(
                "INSERT INTO categories (id, name, color, type) VALUES (?, ?, ?, ?)",
                (cat_id, name, color, type),
            )
        if type == EXPENSE:
            conn.execute(
                """
                INSERT OR IGNORE INTO budgets (doc_id, category, monthly_limit, rollover)
                VALUES (?, ?, 0, 0)
                """,
                (_new_id(), name),
            )
        conn.commit()
    finally:
        conn.close()
    return Category(cat_id, name, color, type)


def delete_category(db_path, cat_id: str) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute("DELETE FROM categories WHERE id = ?", (cat_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def add_savings_goal(db_path, fields: dict) -> SavingsGoal:
    """Create a reserved-funds goal; the target must be positive."""
    record = dict(fields)
    record.setdefault("id", _new_id())
    goal = SavingsGoal.from_dict(record)
    if not goal.name.strip():
        raise ValueError(f"Savings goal requires a name: {fields}")
    if goal.target_amount <= 0:
        raise ValueError("Savings target must be greater than zero")
    if goal.current_amount < 0:
        raise ValueError("Savings amount must not be negative")
    conn = _connect(db_path)
    try:
        conn.execute(
            """
            INSERT INTO savings
            (id, name, target_amount, current_amount, target_date, color)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                goal.id,
                goal.name.strip(),
                float(goal.target_amount),
                float(goal.current_amount),
                _iso(goal.target_date),
                goal.color,
            ),
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        raise StoreError(f"Could not save savings goal {goal.name}: {exc}") from exc
    finally:
        conn.close()
    return goal


def contribute_to_savings_goal(db_path, goal_id: str, amount: float) -> Optional[SavingsGoal]:
    """Add ``amount`` to a goal's current amount; a negative amount withdraws.

    Returns the updated goal, or ``None`` when no goal has ``goal_id``.
    """
    conn = _connect(db_path)
    try:
        with conn:
            row = conn.execute(
                "SELECT current_amount FROM savings WHERE id = ?", (goal_id,)
            ).fetchone()
            if row is None:
                return None
            if row[0] + amount < 0:
                raise ValueError(
                    f"Cannot withdraw {-amount} from a goal holding {row[0]}"
                )
            conn.execute(
                "UPDATE savings SET current_amount = current_amount + ? WHERE id = ?",
                (float(amount), goal_id),
            )
            updated = conn.execute(
                """
                SELECT id, name, target_amount, current_amount, target_date, color
                FROM savings WHERE id = ?
                """,
                (goal_id,),
            ).fetchone()
    finally:
        conn.close()
    return _savings_from_row(updated)


def delete_savings_goal(db_path, goal_id: str) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute("DELETE FROM savings WHERE id = ?", (goal_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def save_settings(db_path, settings: AppSettings) -> None:
    conn = _connect(db_path)
    try:
        conn.executemany(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            [
                ("alert_email", settings.alert_email),
                ("email_service_id", settings.email_service_id),
                ("email_template_id", settings.email_template_id),
                ("email_public_key", settings.email_public_key),
            ],
        )
        conn.commit()
    finally:
        conn.close()


def seed_defaults(db_path) -> bool:
    """Insert the starter categories and budgets into an empty store."""
    conn = _connect(db_path)
    try:
        if conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]:
            return False
        conn.executemany(
            "INSERT INTO categories (id, name, color, type) VALUES (?, ?, ?, ?)",
            INITIAL_CATEGORIES,
        )
        conn.executemany(
            """
            INSERT OR IGNORE INTO budgets (doc_id, category, monthly_limit, rollover)
            VALUES (?, ?, ?, ?)
            """,
            [(_new_id(), c, limit, int(r)) for c, limit, r in INITIAL_BUDGETS],
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Seeded default categories and budgets into %s", db_path)
    return True


class SqliteMarkerStore:
    """Sent-alert markers kept in the same SQLite file."""

    def __init__(self, db_path) -> None:
        self.db_path = db_path

    def has(self, key: str) -> bool:
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT 1 FROM sent_markers WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return row is not None

    def set(self, key: str) -> None:
        conn = _connect(self.db_path)
        try:
            conn.execute("INSERT OR IGNORE INTO sent_markers (key) VALUES (?)", (key,))
            conn.commit()
        finally:
            conn.close()
