"""HTTP client for the Stripe API and webhook signature checks."""

from __future__ import annotations

import hashlib
import hmac
import json
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any, Optional, TypeVar, Union
from urllib.parse import urlencode, urljoin, urlsplit

import requests

from booky.config import StripeConfig
from booky.stripe.helpers import extract_id
from booky.stripe.models import (
    BalanceTransactionAPI,
    Charge,
    CheckoutSession,
    Customer,
    Event,
    Invoice,
    PaymentIntent,
    Payout,
    Refund,
    TaxID,
)

T = TypeVar("T")

REQUEST_TIMEOUT_SECONDS = 30.0
SIGNATURE_TOLERANCE_SECONDS = 5 * 60
SETTLE_ATTEMPTS = 5
SETTLE_BACKOFF_SECONDS = 0.25

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class StripeError(Exception):
    """Base class for failures talking to Stripe or reading its payloads."""


class WebhookSignatureInvalid(StripeError):
    def __init__(self, message: str = "invalid stripe webhook signature") -> None:
        super().__init__(message)


class WebhookSignatureMismatch(StripeError):
    def __init__(self, message: str = "stripe webhook signature mismatch") -> None:
        super().__init__(message)


class WebhookSignatureExpired(StripeError):
    def __init__(self, message: str = "stripe webhook signature expired") -> None:
        super().__init__(message)


class WebhookSignatureInFuture(StripeError):
    def __init__(
        self, message: str = "stripe webhook signature timestamp is too far in the future"
    ) -> None:
        super().__init__(message)


class InvalidEvent(StripeError):
    def __init__(self, detail: str = "") -> None:
        message = "invalid stripe event payload"
        super().__init__(f"{message}: {detail}" if detail else message)


class StripeAPIError(StripeError):
    """A non-2xx answer from the Stripe API."""

    def __init__(self, path: str, status_code: int, body: str) -> None:
        super().__init__(f"stripe api {path} returned {status_code}: {body}")
        self.path = path
        self.status_code = status_code
        self.body = body


def _query(params: Sequence[tuple[str, str]]) -> str:
    """Encode parameters sorted by key, keeping the order of repeated keys."""
    return urlencode(sorted(params, key=lambda item: item[0]))


def _encode(data: Any) -> bytes:
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def _decode(parser: Callable[[Any], T], data: Any, what: str) -> T:
    try:
        return parser(data)
    except (ValueError, TypeError) as exc:
        raise StripeError(f"decode {what}: {exc}") from exc


def parse_stripe_signature(header: str) -> tuple[int, list[str]]:
    """Split a Stripe-Signature header into its timestamp and v1 signatures."""
    timestamp = 0
    signatures: list[str] = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            if not _INT_PATTERN.fullmatch(value):
                raise WebhookSignatureInvalid(f"invalid stripe signature timestamp: {value!r}")
            parsed = int(value)
            if not _INT64_MIN <= parsed <= _INT64_MAX:
                raise WebhookSignatureInvalid(f"invalid stripe signature timestamp: {value!r} out of range")
            timestamp = parsed
        elif key == "v1":
            signatures.append(value)
    if timestamp == 0 or not signatures:
        raise WebhookSignatureInvalid()
    return timestamp, signatures


class Client:
    """Reads Stripe objects over HTTP and verifies webhook payloads."""

    def __init__(self, cfg: StripeConfig, session: Optional[requests.Session] = None) -> None:
        self._api_key = cfg.api_key
        self._webhook_secret = cfg.webhook_secret
        self._base_url = cfg.api_base_url.rstrip("/")
        self._session = session if session is not None else requests.Session()

    def verify_webhook(self, payload: Union[bytes, str], signature_header: str) -> None:
        """Raise unless the payload carries a fresh, matching HMAC-SHA256 signature."""
        if not self._webhook_secret:
            raise StripeError("stripe webhook secret is not configured")
        timestamp, signatures = parse_stripe_signature(signature_header)
        age = time.time() - timestamp
        if age > SIGNATURE_TOLERANCE_SECONDS:
            raise WebhookSignatureExpired()
        if age < -SIGNATURE_TOLERANCE_SECONDS:
            raise WebhookSignatureInFuture()
        body = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        signed = f"{timestamp}.".encode("ascii") + body
        expected = hmac.new(self._webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        expected_bytes = expected.encode("ascii")
        if any(hmac.compare_digest(expected_bytes, sig.encode("utf-8")) for sig in signatures):
            return
        raise WebhookSignatureMismatch()

    def parse_event(self, payload: Union[bytes, str]) -> Event:
        """Decode a webhook event; it must have an id and a type."""
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise StripeError(f"decode stripe event: {exc}") from exc
        event = _decode(Event.from_dict, data, "stripe event")
        if not event.id or not event.type:
            raise InvalidEvent("missing id or type")
        return event

    def get_charge(self, charge_id: str) -> tuple[Charge, bytes]:
        data, raw = self._get_json(f"/v1/charges/{charge_id}")
        return _decode(Charge.from_dict, data, "stripe response"), raw

    def get_payment_intent(self, payment_intent_id: str) -> tuple[PaymentIntent, bytes]:
        data, raw = self._get_json(f"/v1/payment_intents/{payment_intent_id}")
        return _decode(PaymentIntent.from_dict, data, "stripe response"), raw

    def get_checkout_session(self, session_id: str) -> tuple[CheckoutSession, bytes]:
        """Fetch a session with its line items; the raw form is of the enriched session."""
        data, _ = self._get_json(f"/v1/checkout/sessions/{session_id}")
        session = _decode(CheckoutSession.from_dict, data, "stripe response")
        enriched = self._enrich_checkout_session(session)
        return enriched, _encode(enriched.to_dict())

    def list_checkout_sessions_by_payment_intent(
        self, payment_intent_id: str
    ) -> tuple[list[CheckoutSession], list[bytes]]:
        return self._list_checkout_sessions([("limit", "100"), ("payment_intent", payment_intent_id)])

    def list_checkout_sessions_by_subscription(
        self, subscription_id: str
    ) -> tuple[list[CheckoutSession], list[bytes]]:
        return self._list_checkout_sessions([("limit", "100"), ("subscription", subscription_id)])

    def get_invoice(self, invoice_id: str) -> tuple[Invoice, bytes]:
        """Fetch an invoice with line taxes and products expanded."""
        query = _query(
            [
                ("expand[]", "lines.data.taxes"),
                ("expand[]", "lines.data.price.product"),
                ("expand[]", "lines.data.pricing.price_details.product"),
            ]
        )
        data, raw = self._get_json(f"/v1/invoices/{invoice_id}?{query}")
        return _decode(Invoice.from_dict, data, "stripe response"), raw

    def get_refund(self, refund_id: str) -> tuple[Refund, bytes]:
        data, raw = self._get_json(f"/v1/refunds/{refund_id}")
        return _decode(Refund.from_dict, data, "stripe response"), raw

    def get_customer(self, customer_id: str) -> tuple[Customer, bytes]:
        data, raw = self._get_json(f"/v1/customers/{customer_id}")
        return _decode(Customer.from_dict, data, "stripe response"), raw

    def list_customer_tax_ids(self, customer_id: str) -> tuple[list[TaxID], list[bytes]]:
        """A customer's tax ids, each with its own raw JSON."""
        data, _ = self._get_json(f"/v1/customers/{customer_id}/tax_ids?limit=100")
        items = self._list_data(data)
        tax_ids = [_decode(TaxID.from_dict, item, "customer tax id") for item in items]
        return tax_ids, [_encode(item) for item in items]

    def get_payout(self, payout_id: str) -> tuple[Payout, bytes]:
        data, raw = self._get_json(f"/v1/payouts/{payout_id}")
        return _decode(Payout.from_dict, data, "stripe response"), raw

    def get_balance_transaction(self, balance_transaction_id: str) -> tuple[BalanceTransactionAPI, bytes]:
        data, raw = self._get_json(f"/v1/balance_transactions/{balance_transaction_id}")
        return _decode(BalanceTransactionAPI.from_dict, data, "stripe response"), raw

    def _get_json(self, path: str) -> tuple[Any, bytes]:
        endpoint = urljoin(self._base_url, path)
        try:
            response = self._session.get(
                endpoint,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise StripeError(f"call stripe api: {exc}") from exc
        body = response.content
        if not 200 <= response.status_code < 300:
            text = body.decode("utf-8", errors="replace").strip()
            raise StripeAPIError(urlsplit(endpoint).path, response.status_code, text)
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise StripeError(f"decode stripe response: {exc}") from exc
        return data, body

    @staticmethod
    def _list_data(data: Any) -> list[Any]:
        if data is None:
            return []
        if not isinstance(data, dict):
            raise StripeError("decode stripe response: expected object")
        items = data.get("data")
        if items is None:
            return []
        if not isinstance(items, list):
            raise StripeError("decode stripe response: field 'data' is not an array")
        return items

    def _list_checkout_sessions(
        self, params: Sequence[tuple[str, str]]
    ) -> tuple[list[CheckoutSession], list[bytes]]:
        data, _ = self._get_json(f"/v1/checkout/sessions?{_query(params)}")
        sessions: list[CheckoutSession] = []
        raws: list[bytes] = []
        for item in self._list_data(data):
            session = _decode(CheckoutSession.from_dict, item, "checkout session")
            enriched = self._enrich_checkout_session(session)
            sessions.append(enriched)
            raws.append(_encode(enriched.to_dict()))
        return sessions, raws

    def _enrich_checkout_session(self, session: CheckoutSession) -> CheckoutSession:
        query = _query([("limit", "100"), ("expand[]", "data.price.product")])
        data, _ = self._get_json(f"/v1/checkout/sessions/{session.id}/line_items?{query}")
        line_items = _decode(
            lambda d: CheckoutSession.from_dict({"line_items": d}).line_items, data, "stripe response"
        )
        return replace(session, line_items=line_items)


def wait_for_settled_charge(client: Client, charge_id: str) -> tuple[Charge, bytes]:
    """Fetch a charge, retrying a few times until it has a balance transaction.

    Returns the last charge fetched even if it never settled.
    """
    charge, raw = client.get_charge(charge_id)
    for attempt in range(SETTLE_ATTEMPTS):
        if attempt > 0:
            charge, raw = client.get_charge(charge_id)
        if extract_id(charge.balance_transaction):
            return charge, raw
        if attempt == SETTLE_ATTEMPTS - 1:
            break
        time.sleep((attempt + 1) * SETTLE_BACKOFF_SECONDS)
    return charge, raw