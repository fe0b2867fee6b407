from datetime import date

from budget_tracker.alerts import AlertDispatcher, InMemoryMarkerStore, marker_key
from budget_tracker.core.models import AppSettings, Notification

SETTINGS = AppSettings(
    alert_email="team@example.com",
    email_service_id="svc",
    email_template_id="tpl",
    email_public_key="pk",
)


class FakeSender:
    def __init__(self, results=None):
        self.calls = []
        self.results = list(results or [])

    def send(self, recipient, template_params, config):
        self.calls.append((recipient, template_params, config))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True


def _alloc(id="alloc-a1"):
    return Notification(
        id=id,
        message="Incoming allocation",
        severity="info",
        date=date(2025, 3, 15),
        kind="allocation",
        description="Q2 Marketing Allocation",
        amount=20000000.0,
        due_date=date(2025, 3, 17),
        allocation=True,
    )


def test_dispatch_sends_once():
    sender = FakeSender()
    markers = InMemoryMarkerStore()
    dispatcher = AlertDispatcher(sender, markers, app_link="https://budget.example/")

    assert dispatcher.dispatch(_alloc(), SETTINGS) is True
    assert dispatcher.dispatch(_alloc(), SETTINGS) is False
    assert len(sender.calls) == 1
    assert markers.has(marker_key("alloc-a1"))

    recipient, params, config = sender.calls[0]
    assert recipient == "team@example.com"
    assert params["amount"] == "20,000,000.00"
    assert params["date"] == "2025-03-17"
    assert params["description"] == "Q2 Marketing Allocation"
    assert params["app_link"] == "https://budget.example/"
    assert config == {"service_id": "svc", "template_id": "tpl", "public_key": "pk"}


def test_missing_configuration_is_a_noop():
    sender = FakeSender()
    dispatcher = AlertDispatcher(sender, InMemoryMarkerStore())
    assert dispatcher.dispatch(_alloc(), AppSettings()) is False
    partial = AppSettings(alert_email="team@example.com", email_service_id="svc")
    assert dispatcher.dispatch(_alloc(), partial) is False
    assert sender.calls == []


def test_budget_warnings_are_not_emailed():
    sender = FakeSender()
    dispatcher = AlertDispatcher(sender, InMemoryMarkerStore())
    warning = Notification(
        id="budget-Ads-2",
        message="Budget Alert",
        severity="warning",
        date=date(2025, 3, 15),
        kind="budget",
    )
    assert dispatcher.dispatch(warning, SETTINGS) is False
    assert sender.calls == []


def test_failed_send_leaves_marker_unset_and_retries():
    sender = FakeSender(results=[False, RuntimeError("network down"), True])
    markers = InMemoryMarkerStore()
    dispatcher = AlertDispatcher(sender, markers)

    assert dispatcher.dispatch(_alloc(), SETTINGS) is False
    assert not markers.has(marker_key("alloc-a1"))
    assert dispatcher.dispatch(_alloc(), SETTINGS) is False
    assert not markers.has(marker_key("alloc-a1"))
    assert dispatcher.dispatch(_alloc(), SETTINGS) is True
    assert markers.has(marker_key("alloc-a1"))
    assert len(sender.calls) == 3


def test_dispatch_all_continues_after_failure():
    sender = FakeSender(results=[RuntimeError("boom"), True])
    dispatcher = AlertDispatcher(sender, InMemoryMarkerStore())
    sent = dispatcher.dispatch_all([_alloc("alloc-a1"), _alloc("alloc-a2")], SETTINGS)
    assert sent == ["alloc-a2"]


def test_in_flight_dispatch_is_not_repeated():
    sender = FakeSender()
    dispatcher = AlertDispatcher(sender, InMemoryMarkerStore())
    lock = dispatcher._lock_for("alloc-a1")
    lock.acquire()
    try:
        assert dispatcher.dispatch(_alloc(), SETTINGS) is False
    finally:
        lock.release()
    assert sender.calls == []
