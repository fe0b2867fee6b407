from datetime import date

import pytest

from budget_tracker.core.models import SavingsGoal
from budget_tracker.database import (
    add_savings_goal,
    contribute_to_savings_goal,
    delete_savings_goal,
    fetch_savings,
    fetch_snapshot,
    snapshot_signature,
)


def test_progress_is_capped_and_completion_flagged():
    goal = SavingsGoal("g", "Q4 Blitz", 1000.0, 250.0, date(2025, 12, 1))
    assert goal.progress == 25.0
    assert goal.remaining == 750.0
    assert not goal.is_completed

    goal.current_amount = 1500.0
    assert goal.progress == 100.0
    assert goal.remaining == 0.0
    assert goal.is_completed


def test_from_dict_accepts_camel_case_fields():
    goal = SavingsGoal.from_dict(
        {
            "id": "g1",
            "name": "Rebrand",
            "targetAmount": "5000",
            "currentAmount": 100,
            "targetDate": "2025-09-30",
            "color": "#059669",
        }
    )
    assert goal.target_amount == 5000.0
    assert goal.current_amount == 100.0
    assert goal.target_date == date(2025, 9, 30)


def test_add_contribute_and_delete(tmp_path):
    db_path = tmp_path / "tx.db"
    before = snapshot_signature(db_path)
    goal = add_savings_goal(
        db_path,
        {"name": "Expo booth", "target_amount": 800, "target_date": "2025-06-01"},
    )
    assert snapshot_signature(db_path) != before
    assert fetch_snapshot(db_path).savings == [goal]

    updated = contribute_to_savings_goal(db_path, goal.id, 300)
    assert updated.current_amount == 300.0
    updated = contribute_to_savings_goal(db_path, goal.id, 500)
    assert updated.is_completed
    assert fetch_savings(db_path)[0].current_amount == 800.0

    assert contribute_to_savings_goal(db_path, "missing", 10) is None
    assert delete_savings_goal(db_path, goal.id) is True
    assert delete_savings_goal(db_path, goal.id) is False
    assert fetch_savings(db_path) == []


def test_withdrawal_cannot_go_below_zero(tmp_path):
    db_path = tmp_path / "tx.db"
    goal = add_savings_goal(
        db_path,
        {"name": "Events", "target_amount": 100, "current_amount": 40},
    )
    with pytest.raises(ValueError):
        contribute_to_savings_goal(db_path, goal.id, -50)
    assert contribute_to_savings_goal(db_path, goal.id, -40).current_amount == 0.0


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "", "target_amount": 100},
        {"name": "Zero", "target_amount": 0},
        {"name": "Seed", "target_amount": 100, "current_amount": -1},
    ],
)
def test_add_rejects_invalid_goals(tmp_path, fields):
    with pytest.raises(ValueError):
        add_savings_goal(tmp_path / "tx.db", fields)
