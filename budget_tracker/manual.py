# budget_tracker/manual.py
import yaml

from budget_tracker.core.models import AppSettings
from budget_tracker.database import (
    add_category,
    add_recurring_rule,
    add_savings_goal,
    create_transaction,
    save_settings,
    update_budget_source,
    update_category_budget,
)


def load_manual_data(path):
    """Load a YAML file of categories, budgets, sources, transactions,
    recurring rules, savings goals and settings."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}")
    return data


SETTINGS_KEYS = {
    "alert_email": "alert_email",
    "alertEmail": "alert_email",
    "email_service_id": "email_service_id",
    "emailServiceId": "email_service_id",
    "email_template_id": "email_template_id",
    "emailTemplateId": "email_template_id",
    "email_public_key": "email_public_key",
    "emailPublicKey": "email_public_key",
}


def _settings_from_entry(entry):
    if not isinstance(entry, dict):
        raise ValueError(f"Expected a mapping for 'settings', got: {entry!r}")
    unknown = sorted(str(k) for k in entry if k not in SETTINGS_KEYS)
    if unknown:
        raise ValueError(f"Unknown settings key(s): {', '.join(unknown)}")
    values = {SETTINGS_KEYS[k]: str(v) if v is not None else "" for k, v in entry.items()}
    return AppSettings(**values)


def import_manual_data(path, db_path):
    """Write everything in the YAML file at ``path`` into the store.

    The settings section is checked before anything is written. Returns a
    count of imported records per section.
    """
    data = load_manual_data(path)
    settings = _settings_from_entry(data["settings"]) if data.get("settings") else None
    counts = {}

    for entry in data.get('categories') or []:
        if not entry.get('name'):
            raise ValueError(f"Missing 'name' in category entry: {entry}")
        add_category(
            db_path,
            entry['name'],
            entry.get('color', '#78716c'),
            entry.get('type', 'expense'),
        )
    counts['categories'] = len(data.get('categories') or [])

    for entry in data.get('budgets') or []:
        if not entry.get('category'):
            raise ValueError(f"Missing 'category' in budget entry: {entry}")
        update_category_budget(
            db_path,
            entry['category'],
            float(entry.get('limit', 0.0)),
            bool(entry.get('rollover', False)),
        )
    counts['budgets'] = len(data.get('budgets') or [])

    for entry in data.get('sources') or []:
        update_budget_source(
            db_path,
            entry.get('id'),
            entry.get('name'),
            float(entry.get('amount', 0.0)),
            entry.get('description', ''),
        )
    counts['sources'] = len(data.get('sources') or [])

    for entry in data.get('transactions') or []:
        if not entry.get('date'):
            raise ValueError(f"Missing 'date' in transaction entry: {entry}")
        create_transaction(db_path, entry)
    counts['transactions'] = len(data.get('transactions') or [])

    for entry in data.get('recurring') or []:
        if not entry.get('next_due_date'):
            raise ValueError(f"Missing 'next_due_date' in recurring entry: {entry}")
        add_recurring_rule(db_path, entry)
    counts['recurring'] = len(data.get('recurring') or [])

    for entry in data.get('savings') or []:
        add_savings_goal(db_path, entry)
    counts['savings'] = len(data.get('savings') or [])

    if settings is not None:
        save_settings(db_path, settings)
        counts['settings'] = 1

    return counts
