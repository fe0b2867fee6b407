# budget_tracker/cli.py
import logging
import os
import time
from datetime import date

import click
from dotenv import load_dotenv

from budget_tracker.ai import generate_advice
from budget_tracker.alerts import AlertDispatcher
from budget_tracker.budgets import budget_status, total_funding
from budget_tracker.classifier import classify
from budget_tracker.config import load_config
from budget_tracker.core.models import (
    BUDGET_SOURCE_NAMES,
    FREQUENCIES,
    TRANSACTION_TYPES,
    AppSettings,
)
from budget_tracker.database import (
    StoreError,
    add_category,
    add_recurring_rule,
    add_savings_goal,
    batch_commit,
    create_transaction,
    contribute_to_savings_goal,
    delete_category,
    delete_recurring_rule,
    delete_savings_goal,
    delete_transaction,
    fetch_savings,
    fetch_settings,
    fetch_snapshot,
    save_settings,
    seed_defaults,
    snapshot_signature,
    update_budget_source,
    update_category_budget,
    SqliteMarkerStore,
)
from budget_tracker.emailjs import EmailJSSender
from budget_tracker.manual import import_manual_data
from budget_tracker.pipeline import DashboardSession
from budget_tracker.recurring import project
from budget_tracker.utils import format_amount

logger = logging.getLogger(__name__)


def _parse_today(value):
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"Invalid date: {value}") from exc


def _build_session(cfg, db_path, send_alerts=True):
    dispatcher = None
    if send_alerts:
        email_cfg = cfg.get('email', {})
        sender = EmailJSSender(
            url=email_cfg.get('provider_url', EmailJSSender.url),
            timeout=float(email_cfg.get('timeout', 10)),
        )
        dispatcher = AlertDispatcher(
            sender,
            SqliteMarkerStore(db_path),
            app_link=cfg['app_link'],
            currency=cfg['currency'],
        )
    return DashboardSession(
        dispatcher,
        lambda ops: batch_commit(db_path, ops),
        window_days=int(cfg['alert_window_days']),
        threshold=float(cfg['budget_alert_threshold']),
        safety_cap=int(cfg['recurring_safety_cap']),
        currency=cfg['currency'],
    )


def _echo_result(result):
    for msg in result.recurring.errors:
        click.echo(f"⚠️  {msg}", err=True)
    if result.recurring.materialized:
        click.echo(
            f"Materialized {result.recurring.materialized} recurring transaction(s)."
        )
    if not result.notifications:
        click.echo("No new notifications.")
    for n in result.notifications:
        marker = '!' if n.severity == 'warning' else '-'
        click.echo(f"{marker} [{n.id}] {n.message}")
    if result.alerts_sent:
        click.echo(f"Sent {len(result.alerts_sent)} email alert(s).")


@click.group()
@click.option(
    '--config', 'config_path',
    default='config.yaml',
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (optional; defaults apply when missing)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with API tokens and overrides'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides config)'
)
@click.pass_context
def main(ctx, config_path, env_file, db_path):
    """
    Track team budgets: record transactions, roll recurring schedules
    forward, and raise allocation and budget-cap alerts.
    """
    if env_file:
        load_dotenv(env_file)
    logging.basicConfig(
        level=os.getenv("BUDGETWATCH_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if db_path:
        cfg['db_path'] = db_path
    ctx.obj = cfg


@main.command()
@click.pass_obj
def init(cfg):
    """Create the database and seed the default categories and budgets."""
    if seed_defaults(cfg['db_path']):
        click.echo(f"Initialized {cfg['db_path']} with default categories.")
    else:
        click.echo(f"{cfg['db_path']} already has categories; nothing seeded.")


@main.command()
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD)')
@click.option('--no-email', is_flag=True, default=False, help='Do not send email alerts')
@click.pass_obj
def refresh(cfg, today, no_email):
    """Process due recurring rules, derive notifications and send alerts."""
    session = _build_session(cfg, cfg['db_path'], send_alerts=not no_email)
    result = session.on_snapshot(fetch_snapshot(cfg['db_path']), _parse_today(today))
    _echo_result(result)


@main.command()
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD)')
@click.pass_obj
def notifications(cfg, today):
    """Show notifications without touching the store or sending email."""
    session = _build_session(cfg, cfg['db_path'], send_alerts=False)
    session.commit = None
    result = session.on_snapshot(fetch_snapshot(cfg['db_path']), _parse_today(today))
    _echo_result(result)


@main.command()
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD)')
@click.pass_obj
def budgets(cfg, today):
    """Show this month's spend against each category's effective cap."""
    ref = _parse_today(today)
    snapshot = fetch_snapshot(cfg['db_path'])
    classification = classify(snapshot.transactions, ref)
    currency = cfg['currency']
    for row in budget_status(snapshot.budgets, classification, ref):
        ratio = f"{row['ratio'] * 100:.0f}%" if row['ratio'] is not None else "no cap"
        click.echo(
            f"{row['category']}: {currency} {format_amount(row['spent'])} of "
            f"{format_amount(row['effective_limit'])} ({ratio})"
            + (f", carry {format_amount(row['carry'])}" if row['rollover'] else "")
        )
    totals = classification.totals()
    click.echo(f"Total funding: {currency} {format_amount(total_funding(snapshot.sources))}")
    click.echo(f"Allocated (to date): {currency} {format_amount(totals['allocations'])}")
    click.echo(f"Spent: {currency} {format_amount(totals['expenses'])}")
    click.echo(f"Remaining: {currency} {format_amount(totals['balance'])}")


@main.command()
@click.option('--until', required=True, help='Last date to project (YYYY-MM-DD)')
@click.pass_obj
def upcoming(cfg, until):
    """List future due dates of every recurring rule."""
    end = _parse_today(until)
    snapshot = fetch_snapshot(cfg['db_path'])
    for rule in snapshot.recurring:
        try:
            dates = project(rule, end)
        except ValueError as exc:
            click.echo(f"⚠️  {rule.description}: {exc}", err=True)
            continue
        for due in dates:
            click.echo(f"{due.isoformat()} {rule.description} ({rule.type}) {format_amount(rule.amount)}")


@main.command('add-transaction')
@click.option('--date', 'tx_date', required=True)
@click.option('--description', required=True)
@click.option('--amount', required=True, type=float)
@click.option('--category', required=True)
@click.option('--type', 'tx_type', default='expense', type=click.Choice(TRANSACTION_TYPES))
@click.option('--company', default=None)
@click.option('--invoice-no', default=None)
@click.option('--po-no', default=None)
@click.pass_obj
def add_transaction_cmd(cfg, tx_date, description, amount, category, tx_type,
                        company, invoice_no, po_no):
    """Record a single expense or allocation."""
    try:
        tx = create_transaction(cfg['db_path'], {
            'date': _parse_today(tx_date),
            'description': description,
            'amount': amount,
            'category': category,
            'type': tx_type,
            'company': company,
            'invoice_no': invoice_no,
            'po_no': po_no,
        })
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added transaction {tx.id}.")


@main.command('delete-transaction')
@click.argument('tx_id')
@click.pass_obj
def delete_transaction_cmd(cfg, tx_id):
    """Delete a transaction by id."""
    if not delete_transaction(cfg['db_path'], tx_id):
        raise click.ClickException(f"No transaction with id {tx_id}")
    click.echo(f"Deleted transaction {tx_id}.")


@main.command('add-recurring')
@click.option('--description', required=True)
@click.option('--amount', required=True, type=float)
@click.option('--category', required=True)
@click.option('--type', 'tx_type', default='expense', type=click.Choice(TRANSACTION_TYPES))
@click.option('--frequency', default='monthly', type=click.Choice(FREQUENCIES))
@click.option('--next-due-date', required=True)
@click.pass_obj
def add_recurring_cmd(cfg, description, amount, category, tx_type, frequency, next_due_date):
    """Add a recurring transaction rule."""
    try:
        rule = add_recurring_rule(cfg['db_path'], {
            'description': description,
            'amount': amount,
            'category': category,
            'type': tx_type,
            'frequency': frequency,
            'next_due_date': _parse_today(next_due_date),
        })
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added recurring rule {rule.id}.")


@main.command('delete-recurring')
@click.argument('rule_id')
@click.pass_obj
def delete_recurring_cmd(cfg, rule_id):
    """Delete a recurring rule; already materialized transactions stay."""
    if not delete_recurring_rule(cfg['db_path'], rule_id):
        raise click.ClickException(f"No recurring rule with id {rule_id}")
    click.echo(f"Deleted recurring rule {rule_id}.")


@main.command('set-budget')
@click.argument('category')
@click.option('--limit', required=True, type=float)
@click.option('--rollover/--no-rollover', default=False)
@click.pass_obj
def set_budget(cfg, category, limit, rollover):
    """Set the monthly cap and rollover flag of a category."""
    try:
        update_category_budget(cfg['db_path'], category, limit, rollover)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Budget for {category} set to {format_amount(limit)}.")


@main.command('set-source')
@click.argument('name', type=click.Choice(BUDGET_SOURCE_NAMES))
@click.option('--amount', required=True, type=float)
@click.option('--description', default='')
@click.pass_obj
def set_source(cfg, name, amount, description):
    """Record the amount of a funding source."""
    try:
        update_budget_source(cfg['db_path'], None, name, amount, description)
    except (ValueError, StoreError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{name} set to {format_amount(amount)}.")


@main.command('add-category')
@click.argument('name')
@click.option('--type', 'cat_type', default='expense', type=click.Choice(TRANSACTION_TYPES))
@click.option('--color', default='#78716c')
@click.pass_obj
def add_category_cmd(cfg, name, cat_type, color):
    """Add an expense or allocation category."""
    add_category(cfg['db_path'], name, color, cat_type)
    click.echo(f"Added {cat_type} category {name}.")


@main.command('delete-category')
@click.argument('cat_id')
@click.pass_obj
def delete_category_cmd(cfg, cat_id):
    """Delete a category by id. Its budget row and past transactions stay."""
    if not delete_category(cfg['db_path'], cat_id):
        raise click.ClickException(f"No category with id {cat_id}")
    click.echo(f"Deleted category {cat_id}.")


@main.command()
@click.pass_obj
def savings(cfg):
    """List reserved-funds goals and their progress."""
    goals = fetch_savings(cfg['db_path'])
    if not goals:
        click.echo("No savings goals.")
    currency = cfg['currency']
    for goal in goals:
        status = "done" if goal.is_completed else f"{goal.progress:.0f}%"
        due = goal.target_date.isoformat() if goal.target_date else "no date"
        click.echo(
            f"[{goal.id}] {goal.name}: {currency} {format_amount(goal.current_amount)} "
            f"of {format_amount(goal.target_amount)} ({status}, by {due})"
        )


@main.command('add-savings')
@click.argument('name')
@click.option('--target', required=True, type=float, help='Target amount')
@click.option('--current', default=0.0, type=float, help='Amount already reserved')
@click.option('--target-date', required=True, help='Need-by date (YYYY-MM-DD)')
@click.option('--color', default='#059669')
@click.pass_obj
def add_savings_cmd(cfg, name, target, current, target_date, color):
    """Reserve funds for a future big-ticket item."""
    try:
        goal = add_savings_goal(cfg['db_path'], {
            'name': name,
            'target_amount': target,
            'current_amount': current,
            'target_date': _parse_today(target_date),
            'color': color,
        })
    except (ValueError, StoreError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Added savings goal {goal.id}.")


@main.command()
@click.argument('goal_id')
@click.option('--amount', required=True, type=float, help='Negative to withdraw')
@click.pass_obj
def contribute(cfg, goal_id, amount):
    """Add to (or take from) a savings goal."""
    try:
        goal = contribute_to_savings_goal(cfg['db_path'], goal_id, amount)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if goal is None:
        raise click.ClickException(f"No savings goal with id {goal_id}")
    click.echo(
        f"{goal.name}: {format_amount(goal.current_amount)} of "
        f"{format_amount(goal.target_amount)} ({goal.progress:.0f}%)."
    )
    if goal.is_completed:
        click.echo("Target reached.")


@main.command('delete-savings')
@click.argument('goal_id')
@click.pass_obj
def delete_savings_cmd(cfg, goal_id):
    """Delete a savings goal by id."""
    if not delete_savings_goal(cfg['db_path'], goal_id):
        raise click.ClickException(f"No savings goal with id {goal_id}")
    click.echo(f"Deleted savings goal {goal_id}.")


@main.command()
@click.option('--alert-email', default=None)
@click.option('--service-id', default=None)
@click.option('--template-id', default=None)
@click.option('--public-key', default=None)
@click.pass_obj
def settings(cfg, alert_email, service_id, template_id, public_key):
    """Show or update alert email settings."""
    current = fetch_settings(cfg['db_path'])
    updated = AppSettings(
        alert_email=current.alert_email if alert_email is None else alert_email,
        email_service_id=current.email_service_id if service_id is None else service_id,
        email_template_id=current.email_template_id if template_id is None else template_id,
        email_public_key=current.email_public_key if public_key is None else public_key,
    )
    if updated != current:
        save_settings(cfg['db_path'], updated)
    click.echo(f"Alert email: {updated.alert_email or '(not set)'}")
    click.echo(f"Email alerts: {'enabled' if updated.email_configured else 'disabled'}")


@main.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def import_cmd(cfg, path):
    """Import categories, budgets and transactions from a YAML file."""
    try:
        counts = import_manual_data(path, cfg['db_path'])
    except (ValueError, StoreError) as exc:
        raise click.ClickException(f"Error importing {path}: {exc}") from exc
    summary = ", ".join(f"{count} {name}" for name, count in counts.items())
    click.echo(f"Imported {summary}.")


@main.command()
@click.pass_obj
def advice(cfg):
    """Ask an LLM for burn-rate and reallocation advice."""
    snapshot = fetch_snapshot(cfg['db_path'])
    text = generate_advice(snapshot.transactions, snapshot.budgets)
    click.echo("\nAI Advice:\n" + text)


@main.command()
@click.option('--interval', default=None, type=float, help='Seconds between polls')
@click.option('--no-email', is_flag=True, default=False)
@click.pass_obj
def watch(cfg, interval, no_email):
    """
    Poll the store and recompute notifications whenever data or the date
    changes.
    """
    db_path = cfg['db_path']
    poll_seconds = interval if interval is not None else float(cfg['poll_seconds'])
    session = _build_session(cfg, db_path, send_alerts=not no_email)
    last_sig = None
    while True:
        try:
            sig = snapshot_signature(db_path)
            if sig != last_sig:
                result = session.on_snapshot(fetch_snapshot(db_path), date.today())
                last_sig = snapshot_signature(db_path)
            else:
                result = session.tick(date.today())
            if result is not None:
                for toast in result.toasts:
                    click.echo(f"🔔 {toast.message}")
                for msg in result.recurring.errors:
                    click.echo(f"⚠️  {msg}", err=True)
        except StoreError as exc:
            click.echo(f"Store error: {exc}", err=True)
        time.sleep(poll_seconds)
