# budget_tracker/alerts.py
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Protocol

from budget_tracker.core.models import AppSettings, Notification
from budget_tracker.utils import format_amount

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    """Anything that can deliver one templated email."""

    def send(self, recipient: str, template_params: dict, config: dict) -> bool:
        """Return True once the provider accepted the message."""


class MarkerStore(Protocol):
    def has(self, key: str) -> bool:
        ...

    def set(self, key: str) -> None:
        ...


class InMemoryMarkerStore:
    def __init__(self) -> None:
        self._keys: set[str] = set()

    def has(self, key: str) -> bool:
        return key in self._keys

    def set(self, key: str) -> None:
        self._keys.add(key)


def marker_key(notification_id: str) -> str:
    return f"alert_sent_{notification_id}"


class AlertDispatcher:
    """Email allocation alerts at most once per notification id.

    The sent marker is written only after the provider confirms delivery, so a
    failed send is retried on the next derivation cycle.
    """

    def __init__(
        self,
        sender: EmailSender,
        markers: MarkerStore,
        app_link: str = "",
        currency: str = "LKR",
    ) -> None:
        self.sender = sender
        self.markers = markers
        self.app_link = app_link
        self.currency = currency
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, notification_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(notification_id, threading.Lock())

    def template_params(self, notification: Notification, recipient: str) -> dict:
        due = notification.due_date.isoformat() if notification.due_date else ""
        amount = format_amount(notification.amount)
        return {
            "to_email": recipient,
            "description": notification.description,
            "amount": amount,
            "date": due,
            "message": (
                f"Incoming allocation of {self.currency} {amount} due on {due}"
            ),
            "app_link": self.app_link,
        }

    def dispatch(self, notification: Notification, settings: AppSettings) -> bool:
        if not notification.allocation:
            return False
        if not settings.alert_email:
            return False
        if not all(settings.email_config.values()):
            logger.warning(
                "Missing email provider configuration; skipping alert %s",
                notification.id,
            )
            return False

        lock = self._lock_for(notification.id)
        if not lock.acquire(blocking=False):
            logger.debug("Alert %s already being dispatched", notification.id)
            return False
        try:
            key = marker_key(notification.id)
            if self.markers.has(key):
                return False

            logger.info(
                "Sending allocation alert %s to %s",
                notification.id,
                settings.alert_email,
            )
            params = self.template_params(notification, settings.alert_email)
            try:
                sent = self.sender.send(
                    settings.alert_email, params, settings.email_config
                )
            except Exception:
                logger.exception("Failed to send alert %s", notification.id)
                return False
            if not sent:
                logger.error("Email provider rejected alert %s", notification.id)
                return False

            self.markers.set(key)
            return True
        finally:
            lock.release()

    def dispatch_all(
        self, notifications: Iterable[Notification], settings: AppSettings
    ) -> List[str]:
        """Dispatch every allocation notification; return the ids sent."""
        sent = []
        for notification in notifications:
            try:
                if self.dispatch(notification, settings):
                    sent.append(notification.id)
            except Exception:
                logger.exception("Alert %s could not be dispatched", notification.id)
        return sent
