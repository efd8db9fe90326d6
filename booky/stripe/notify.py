"""Alerts about webhook processing failures and facts needing review."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from booky import domain
from booky.domain import AccountingFact
from booky.stripe.helpers import stripe_account_id
from booky.stripe.models import Event


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


class Category(str, enum.Enum):
    WEBHOOK_INGESTION_ERROR = "webhook_ingestion_error"
    WEBHOOK_REVIEW_REQUIRED = "webhook_review_required"


@dataclass
class Notification:
    severity: Severity
    category: Category
    company_id: str
    subject: str
    summary_lines: list[str] = field(default_factory=list)
    detail_lines: list[str] = field(default_factory=list)
    action_lines: list[str] = field(default_factory=list)


class Notifier(Protocol):
    """Something that delivers notifications; raises when delivery fails."""

    def send(self, notification: Notification) -> None:
        """Deliver one notification."""


def webhook_failure_notification(
    company_id: object, evt: Event, error: Union[BaseException, str]
) -> Notification:
    """The alert sent when a webhook event could not be processed."""
    return Notification(
        severity=Severity.ERROR,
        category=Category.WEBHOOK_INGESTION_ERROR,
        company_id=str(company_id),
        subject=f"Stripe webhook processing failed: {evt.type}",
        summary_lines=[
            f"Webhook event {evt.id} could not be processed.",
            f"Error: {error}",
            "Investigate promptly so the source transaction is not missed in bookkeeping.",
        ],
        detail_lines=[
            f"Stripe event type: {evt.type}",
            f"Stripe account: {stripe_account_id(evt)}",
        ],
        action_lines=[
            "Check the application logs for the full processing error and confirm the Stripe event "
            "payload is valid for the current code/config.",
            "If the failure is due to missing config or Bokio account mapping, correct config first and "
            "then resend the webhook or trigger a fresh Stripe update for the same object.",
            "Do not insert or edit bookkeeping facts directly in PostgreSQL as a normal recovery step.",
        ],
    )


def webhook_review_lines(facts: Iterable[AccountingFact]) -> list[str]:
    """One sorted, de-duplicated line per fact that needs review."""
    lines: set[str] = set()
    for fact in facts:
        if fact.status != domain.FACT_STATUS_NEEDS_REVIEW:
            continue
        line = f"Source group {fact.source_group_id} ({fact.fact_type}) is marked needs_review"
        if fact.review_reason is not None and fact.review_reason.strip():
            line += ": " + fact.review_reason.strip()
        lines.add(line)
    return sorted(lines)


def webhook_review_notification(
    company_id: object, evt: Event, facts: Iterable[AccountingFact]
) -> Optional[Notification]:
    """The alert for facts needing review, or None when there are none."""
    details = webhook_review_lines(facts)
    if not details:
        return None
    return Notification(
        severity=Severity.WARNING,
        category=Category.WEBHOOK_REVIEW_REQUIRED,
        company_id=str(company_id),
        subject=f"Stripe transaction needs accounting review: {evt.type}",
        summary_lines=[
            f"Webhook event {evt.id} produced {len(details)} review concern(s).",
            "Review these transactions before the next bookkeeping close so evidence and VAT treatment "
            "stay complete.",
        ],
        detail_lines=details,
        action_lines=[
            "Open the charge/refund/dispute/payout in Stripe and compare it with the review_reason in "
            "this alert.",
            "If the problem is missing VAT, country, or customer evidence, correct that in Stripe or your "
            "upstream integration and trigger a fresh Stripe update so booky rebuilds the facts.",
            "If the problem is missing Bokio account mapping, update the service config and rerun the "
            "accounting day after a fresh normalization event exists.",
            "Daily close is rerun through POST /admin/runs/daily-close?date=YYYY-MM-DD with "
            "Authorization: Bearer <BOOKY_ADMIN_TOKEN>.",
            "There is currently no separate approve-in-review UI; the supported workflow is to correct "
            "the source/config and let a new normalization replace the review facts.",
        ],
    )


def _deliver(
    notifier: Notifier, notification: Notification, what: str, evt: Event, logger: Optional[logging.Logger]
) -> None:
    try:
        notifier.send(notification)
    except Exception as exc:  # delivery problems must not break ingestion
        if logger is not None:
            logger.error("%s: event_id=%s error=%s", what, evt.id, exc)


def notify_webhook_failure(
    notifier: Optional[Notifier],
    company_id: object,
    evt: Event,
    error: Union[BaseException, str, None],
    logger: Optional[logging.Logger] = None,
) -> None:
    """Send a failure alert; delivery errors are logged, not raised."""
    if notifier is None or error is None:
        return
    notification = webhook_failure_notification(company_id, evt, error)
    _deliver(notifier, notification, "send webhook failure notification", evt, logger)


def notify_webhook_review_facts(
    notifier: Optional[Notifier],
    company_id: object,
    evt: Event,
    facts: Iterable[AccountingFact],
    logger: Optional[logging.Logger] = None,
) -> None:
    """Send a review alert if any fact needs review; delivery errors are logged."""
    if notifier is None:
        return
    notification = webhook_review_notification(company_id, evt, facts)
    if notification is None:
        return
    _deliver(notifier, notification, "send webhook review notification", evt, logger)