import logging
import uuid

from booky import domain
from booky.domain import AccountingFact
from booky.stripe import notify
from booky.stripe.models import Event


class RecordingNotifier:
    def __init__(self):
        self.notifications = []

    def send(self, notification):
        self.notifications.append(notification)


class FailingNotifier:
    def send(self, notification):
        raise RuntimeError("delivery down")


def _review_fact(group, fact_type, reason=None, status=domain.FACT_STATUS_NEEDS_REVIEW):
    return AccountingFact(source_group_id=group, fact_type=fact_type, status=status, review_reason=reason)


def test_notify_webhook_failure_sends_compliance_alert():
    notifier = RecordingNotifier()
    company_id = uuid.uuid4()
    notify.notify_webhook_failure(
        notifier, company_id, Event(id="evt_123", type="charge.succeeded"), RuntimeError("boom")
    )

    assert len(notifier.notifications) == 1
    got = notifier.notifications[0]
    assert got.category == notify.Category.WEBHOOK_INGESTION_ERROR
    assert got.severity == notify.Severity.ERROR
    assert got.company_id == str(company_id)
    assert len(got.action_lines) > 0
    assert "Error: boom" in got.summary_lines
    assert "Stripe account: self" in got.detail_lines


def test_failure_without_error_or_notifier_sends_nothing():
    notifier = RecordingNotifier()
    notify.notify_webhook_failure(notifier, uuid.uuid4(), Event(id="evt_1", type="x"), None)
    assert notifier.notifications == []


def test_webhook_review_lines_includes_needs_review_reasons():
    lines = notify.webhook_review_lines(
        [_review_fact("charge:ch_123:sale", "sale_review_obs", "missing VAT evidence")]
    )
    assert lines == [
        "Source group charge:ch_123:sale (sale_review_obs) is marked needs_review: missing VAT evidence"
    ]


def test_webhook_review_lines_dedupes_sorts_and_skips_other_statuses():
    facts = [
        _review_fact("b", "t", "  "),
        _review_fact("a", "t", "why"),
        _review_fact("a", "t", "why"),
        _review_fact("c", "t", "ok", status="pending"),
    ]
    assert notify.webhook_review_lines(facts) == [
        "Source group a (t) is marked needs_review: why",
        "Source group b (t) is marked needs_review",
    ]


def test_review_notification_counts_concerns():
    notification = notify.webhook_review_notification(
        "company", Event(id="evt_9", type="charge.updated"), [_review_fact("a", "t"), _review_fact("b", "t")]
    )
    assert notification.category == notify.Category.WEBHOOK_REVIEW_REQUIRED
    assert notification.subject == "Stripe transaction needs accounting review: charge.updated"
    assert notification.summary_lines[0] == "Webhook event evt_9 produced 2 review concern(s)."


def test_review_notification_skipped_without_review_facts():
    notifier = RecordingNotifier()
    notify.notify_webhook_review_facts(
        notifier, uuid.uuid4(), Event(id="evt_1", type="x"), [_review_fact("a", "t", status="posted")]
    )
    assert notifier.notifications == []
    assert notify.webhook_review_notification("c", Event(), []) is None


def test_delivery_failure_is_logged(caplog):
    logger = logging.getLogger("booky.tests.notify")
    with caplog.at_level(logging.ERROR, logger="booky.tests.notify"):
        notify.notify_webhook_failure(
            FailingNotifier(), uuid.uuid4(), Event(id="evt_7", type="x"), "boom", logger
        )
    assert "send webhook failure notification" in caplog.text
    assert "evt_7" in caplog.text