from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

import yaml

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "budgetwatch.db",
    "app_link": "http://localhost:8000/",
    "currency": "LKR",
    "alert_window_days": 3,
    "budget_alert_threshold": 0.9,
    "recurring_safety_cap": 12,
    "poll_seconds": 10,
    "email": {
        "provider_url": "https://api.emailjs.com/api/v1.0/email/send",
        "timeout": 10,
    },
}

ENV_OVERRIDES = {
    "BUDGETWATCH_DB_PATH": "db_path",
    "BUDGETWATCH_APP_LINK": "app_link",
}


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = value
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def load_config(path: str | Path | None = None) -> Dict[str, object]:
    """Load YAML config from ``path``, filling gaps from ``DEFAULT_CONFIG``.

    A missing file is not an error; environment variables listed in
    ``ENV_OVERRIDES`` win over both.
    """
    data: Dict[str, object] = {}
    if path is not None:
        target = Path(path)
        if target.exists():
            with target.open("r", encoding="utf-8") as fp:
                data = yaml.safe_load(fp) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {target} must contain a mapping")
    config = _merge_defaults(data, DEFAULT_CONFIG)
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config[key] = value
    return config


def save_config(config: Dict[str, object], path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)
