from datetime import date

import yaml
from click.testing import CliRunner

from budget_tracker.cli import main as cli
from budget_tracker.database import fetch_snapshot


def write_import_file(path):
    data = {
        "categories": [
            {"name": "Ads", "color": "#ef4444", "type": "expense"},
            {"name": "Quarterly Budget", "color": "#059669", "type": "allocation"},
        ],
        "budgets": [{"category": "Ads", "limit": 1000, "rollover": False}],
        "sources": [{"name": "Primary Budget", "amount": 50000, "description": "FY25"}],
        "transactions": [
            {
                "date": "2025-03-03",
                "description": "Roar AD X",
                "amount": 950,
                "category": "Ads",
                "type": "expense",
            },
            {
                "id": "q2",
                "date": "2025-03-17",
                "description": "Q2 Marketing Allocation",
                "amount": 20000,
                "category": "Quarterly Budget",
                "type": "allocation",
            },
        ],
        "recurring": [
            {
                "id": "saas",
                "description": "SaaS seats",
                "amount": 100,
                "category": "Ads",
                "type": "expense",
                "frequency": "monthly",
                "next_due_date": "2025-02-01",
            }
        ],
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f)


def _invoke(db_path, *args):
    runner = CliRunner()
    return runner.invoke(
        cli,
        ["--config", str(db_path.parent / "missing.yaml"), "--db", str(db_path), *args],
    )


def test_import_then_refresh(tmp_path):
    db_path = tmp_path / "budget.db"
    import_path = tmp_path / "data.yaml"
    write_import_file(import_path)

    res = _invoke(db_path, "import", str(import_path))
    assert res.exit_code == 0, res.output
    assert "2 transactions" in res.output

    res = _invoke(db_path, "refresh", "--today", "2025-03-15", "--no-email")
    assert res.exit_code == 0, res.output
    assert "Materialized 2 recurring transaction(s)." in res.output
    assert "[alloc-q2]" in res.output
    assert "[budget-Ads-2]" in res.output

    snapshot = fetch_snapshot(db_path)
    assert snapshot.recurring[0].next_due_date == date(2025, 4, 1)
    assert len(snapshot.transactions) == 4


def test_notifications_is_read_only(tmp_path):
    db_path = tmp_path / "budget.db"
    import_path = tmp_path / "data.yaml"
    write_import_file(import_path)
    _invoke(db_path, "import", str(import_path))

    res = _invoke(db_path, "notifications", "--today", "2025-03-15")
    assert res.exit_code == 0, res.output
    assert "[alloc-q2]" in res.output
    assert fetch_snapshot(db_path).recurring[0].next_due_date == date(2025, 2, 1)


def test_budgets_report(tmp_path):
    db_path = tmp_path / "budget.db"
    import_path = tmp_path / "data.yaml"
    write_import_file(import_path)
    _invoke(db_path, "import", str(import_path))

    res = _invoke(db_path, "budgets", "--today", "2025-03-15")
    assert res.exit_code == 0, res.output
    assert "Ads: LKR 950.00 of 1,000.00 (95%)" in res.output
    assert "Total funding: LKR 50,000.00" in res.output


def test_add_and_delete_transaction(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(
        db_path,
        "add-transaction",
        "--date", "2025-03-01",
        "--description", "Booth",
        "--amount", "400",
        "--category", "Events",
    )
    assert res.exit_code == 0, res.output
    tx_id = res.output.strip().split()[-1].rstrip(".")

    res = _invoke(db_path, "delete-transaction", tx_id)
    assert res.exit_code == 0, res.output
    res = _invoke(db_path, "delete-transaction", tx_id)
    assert res.exit_code != 0


def test_rejects_negative_amount(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(
        db_path,
        "add-transaction",
        "--date", "2025-03-01",
        "--description", "Refund",
        "--amount=-5",
        "--category", "Events",
    )
    assert res.exit_code != 0
    assert "must not be negative" in res.output


def test_settings_toggle_email(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(db_path, "settings")
    assert "Email alerts: disabled" in res.output

    res = _invoke(
        db_path,
        "settings",
        "--alert-email", "team@example.com",
        "--service-id", "svc",
        "--template-id", "tpl",
        "--public-key", "pk",
    )
    assert res.exit_code == 0, res.output
    assert "Email alerts: enabled" in res.output


def test_init_seeds_defaults(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(db_path, "init")
    assert res.exit_code == 0, res.output
    assert "Initialized" in res.output
    res = _invoke(db_path, "set-budget", "Events", "--limit", "2000", "--rollover")
    assert res.exit_code == 0, res.output
    budgets = {b.category: b for b in fetch_snapshot(db_path).budgets}
    assert budgets["Events"].monthly_limit == 2000.0
    assert budgets["Events"].rollover is True


def test_upcoming_lists_projection(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(
        db_path,
        "add-recurring",
        "--description", "Retainer",
        "--amount", "100",
        "--category", "Ads",
        "--frequency", "weekly",
        "--next-due-date", "2025-03-01",
    )
    assert res.exit_code == 0, res.output
    res = _invoke(db_path, "upcoming", "--until", "2025-03-10")
    assert res.output.splitlines() == [
        "2025-03-01 Retainer (expense) 100.00",
        "2025-03-08 Retainer (expense) 100.00",
    ]


def test_set_budget_command_is_registered(tmp_path):
    db_path = tmp_path / "budget.db"
    assert "set-budget" in cli.commands
    res = _invoke(db_path, "set-budget", "Ads", "--limit=-1")
    assert res.exit_code != 0
    assert "must not be negative" in res.output


def test_import_rejects_unknown_settings_key_before_writing(tmp_path):
    db_path = tmp_path / "budget.db"
    import_path = tmp_path / "data.yaml"
    with open(import_path, "w") as f:
        yaml.safe_dump(
            {
                "categories": [{"name": "Ads", "type": "expense"}],
                "settings": {"alert_emial": "team@example.com"},
            },
            f,
        )
    res = _invoke(db_path, "import", str(import_path))
    assert res.exit_code != 0
    assert "Unknown settings key(s): alert_emial" in res.output
    assert fetch_snapshot(db_path).categories == []


def test_import_accepts_camel_case_settings(tmp_path):
    db_path = tmp_path / "budget.db"
    import_path = tmp_path / "data.yaml"
    with open(import_path, "w") as f:
        yaml.safe_dump(
            {
                "settings": {
                    "alertEmail": "team@example.com",
                    "emailServiceId": "svc",
                    "emailTemplateId": "tpl",
                    "emailPublicKey": "pk",
                }
            },
            f,
        )
    res = _invoke(db_path, "import", str(import_path))
    assert res.exit_code == 0, res.output
    assert fetch_snapshot(db_path).settings.email_configured


def test_savings_goal_lifecycle(tmp_path):
    db_path = tmp_path / "budget.db"
    res = _invoke(
        db_path,
        "add-savings", "Q4 Blitz",
        "--target", "1000",
        "--current", "250",
        "--target-date", "2025-12-01",
    )
    assert res.exit_code == 0, res.output
    goal_id = res.output.strip().split()[-1].rstrip(".")

    res = _invoke(db_path, "savings")
    assert f"[{goal_id}] Q4 Blitz: LKR 250.00 of 1,000.00 (25%, by 2025-12-01)" in res.output

    res = _invoke(db_path, "contribute", goal_id, "--amount", "750")
    assert res.exit_code == 0, res.output
    assert "Target reached." in res.output
    assert "(done," in _invoke(db_path, "savings").output

    res = _invoke(db_path, "contribute", goal_id, "--amount=-2000")
    assert res.exit_code != 0

    res = _invoke(db_path, "delete-savings", goal_id)
    assert res.exit_code == 0, res.output
    assert "No savings goals." in _invoke(db_path, "savings").output
    assert _invoke(db_path, "contribute", goal_id, "--amount", "1").exit_code != 0
