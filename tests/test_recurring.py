from datetime import date, timedelta

import pytest

from budget_tracker.core.models import RecurringRule
from budget_tracker.recurring import advance, next_date, project


def _rule(frequency="monthly", next_due_date=date(2025, 1, 1), **kw):
    fields = dict(
        id="r1",
        description="Retainer",
        amount=500.0,
        category="Software/SaaS",
        type="expense",
        frequency=frequency,
        next_due_date=next_due_date,
    )
    fields.update(kw)
    return RecurringRule(**fields)


def test_advance_monthly_catches_up_through_today():
    result = advance(_rule(), date(2025, 3, 15))
    assert [tx.date for tx in result.materialized] == [
        date(2025, 1, 1),
        date(2025, 2, 1),
        date(2025, 3, 1),
    ]
    assert result.updated_rule.next_due_date == date(2025, 4, 1)
    tx = result.materialized[0]
    assert (tx.description, tx.amount, tx.category, tx.type) == (
        "Retainer",
        500.0,
        "Software/SaaS",
        "expense",
    )


def test_advance_daily_weekly_yearly_steps():
    daily = advance(_rule("daily", date(2025, 1, 1)), date(2025, 1, 3))
    assert [tx.date for tx in daily.materialized] == [
        date(2025, 1, 1),
        date(2025, 1, 2),
        date(2025, 1, 3),
    ]
    assert daily.updated_rule.next_due_date == date(2025, 1, 4)

    weekly = advance(_rule("weekly", date(2025, 1, 1)), date(2025, 1, 15))
    assert [tx.date for tx in weekly.materialized] == [
        date(2025, 1, 1),
        date(2025, 1, 8),
        date(2025, 1, 15),
    ]

    yearly = advance(_rule("yearly", date(2024, 2, 29)), date(2024, 3, 1))
    assert len(yearly.materialized) == 1
    assert yearly.updated_rule.next_due_date == date(2025, 2, 28)


def test_monthly_step_clamps_to_month_end():
    assert next_date(date(2025, 1, 31), "monthly") == date(2025, 2, 28)
    assert next_date(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
    assert next_date(date(2025, 12, 15), "monthly") == date(2026, 1, 15)


def test_advance_nothing_due_keeps_date():
    rule = _rule(next_due_date=date(2025, 5, 1))
    result = advance(rule, date(2025, 4, 30))
    assert result.materialized == []
    assert not result.changed
    assert result.updated_rule.next_due_date == date(2025, 5, 1)


def test_advance_is_idempotent_after_persisting():
    today = date(2025, 3, 15)
    first = advance(_rule(), today)
    second = advance(first.updated_rule, today)
    assert len(first.materialized) == 3
    assert second.materialized == []
    assert second.updated_rule.next_due_date == first.updated_rule.next_due_date


def test_advance_safety_cap_leaves_backlog():
    today = date(2025, 6, 1)
    rule = _rule("daily", today - timedelta(days=1000))
    result = advance(rule, today)
    assert len(result.materialized) == 12
    assert result.updated_rule.next_due_date == today - timedelta(days=988)

    again = advance(result.updated_rule, today)
    assert len(again.materialized) == 12
    assert again.materialized[0].date == today - timedelta(days=988)


def test_materialized_ids_are_deterministic():
    result = advance(_rule(), date(2025, 1, 1))
    assert [tx.id for tx in result.materialized] == ["r1-2025-01-01"]


def test_advance_rejects_bad_rules():
    with pytest.raises(ValueError):
        advance(_rule("fortnightly"), date(2025, 1, 1))
    with pytest.raises(ValueError):
        advance(_rule(next_due_date=None), date(2025, 1, 1))


def test_project_lists_future_dates_without_mutating():
    rule = _rule("weekly", date(2025, 1, 1))
    assert project(rule, date(2025, 1, 20)) == [
        date(2025, 1, 1),
        date(2025, 1, 8),
        date(2025, 1, 15),
    ]
    assert rule.next_due_date == date(2025, 1, 1)
