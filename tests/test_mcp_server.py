import anyio
import pytest

from budget_tracker.database import create_transaction, update_category_budget
from budget_tracker.mcp_server import get_budget_status, get_notifications


def _setup_db(tmp_path):
    db_path = tmp_path / "tx.db"
    update_category_budget(db_path, "Ads", 1000.0, True)
    create_transaction(db_path, {
        "id": "feb", "date": "2025-02-10", "description": "Feb", "amount": 400,
        "category": "Ads", "type": "expense",
    })
    create_transaction(db_path, {
        "id": "mar", "date": "2025-03-03", "description": "Mar", "amount": 1500,
        "category": "Ads", "type": "expense",
    })
    create_transaction(db_path, {
        "id": "q2", "date": "2025-03-16", "description": "Q2", "amount": 20000,
        "category": "Quarterly Budget", "type": "allocation",
    })
    return db_path


def test_get_notifications(tmp_path):
    db_path = _setup_db(tmp_path)

    async def run():
        return await get_notifications(str(db_path), today="2025-03-15")

    res = anyio.run(run)
    assert [n["id"] for n in res] == ["alloc-q2", "budget-Ads-2"]
    assert res[0]["due_date"] == "2025-03-16"
    assert res[1]["severity"] == "warning"


def test_get_budget_status(tmp_path):
    db_path = _setup_db(tmp_path)

    async def run():
        return await get_budget_status(str(db_path), today="2025-03-15")

    (row,) = anyio.run(run)
    assert row["category"] == "Ads"
    assert row["effective_limit"] == 1600.0
    assert row["spent"] == 1500.0


def test_missing_db_and_bad_dates(tmp_path):
    async def missing():
        return await get_notifications(str(tmp_path / "nope.db"))

    with pytest.raises(FileNotFoundError):
        anyio.run(missing)

    async def bad_date():
        return await get_budget_status(str(tmp_path / "nope.db"), today="13/01/2025")

    with pytest.raises(ValueError):
        anyio.run(bad_date)
