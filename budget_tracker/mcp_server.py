from __future__ import annotations

import anyio
from mcp.server.fastmcp import FastMCP

from dataclasses import asdict
from datetime import date

from pathlib import Path

from budget_tracker.budgets import budget_status
from budget_tracker.classifier import classify
from budget_tracker.database import fetch_snapshot
from budget_tracker.notifications import derive

server = FastMCP(name="Budgetwatch", instructions="Expose team budget alerts as MCP tools")


def _parse_day(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def _require_db(db_path: str) -> None:
    if not Path(db_path).exists():
        raise FileNotFoundError(f"Database not found: {db_path}")


@server.tool(
    name="get_notifications",
    description="Derive upcoming-allocation and budget-cap notifications",
)
async def get_notifications(db_path: str, today: str | None = None) -> list[dict]:
    """Return the notifications for ``today`` without changing the store.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    today:
        Optional ISO date used as the reference day; defaults to today.
    """
    ref = _parse_day(today)
    _require_db(db_path)

    def _run() -> list[dict]:
        snapshot = fetch_snapshot(db_path)
        notifications = derive(
            snapshot.recurring, snapshot.transactions, snapshot.budgets, ref
        )
        payload = []
        for n in notifications:
            item = asdict(n)
            item["date"] = n.date.isoformat()
            item["due_date"] = n.due_date.isoformat() if n.due_date else None
            payload.append(item)
        return payload

    return await anyio.to_thread.run_sync(_run)


@server.tool(
    name="get_budget_status",
    description="Spend against the effective cap of every category this month",
)
async def get_budget_status(db_path: str, today: str | None = None) -> list[dict]:
    ref = _parse_day(today)
    _require_db(db_path)

    def _run() -> list[dict]:
        snapshot = fetch_snapshot(db_path)
        classification = classify(snapshot.transactions, ref)
        return budget_status(snapshot.budgets, classification, ref)

    return await anyio.to_thread.run_sync(_run)


def main() -> None:
    server.run()


if __name__ == "__main__":
    main()
