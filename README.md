# booky

A library for turning Stripe payment data into bookkeeping evidence. It
verifies and parses Stripe webhooks, fetches related objects from the Stripe
API, converts balance transactions to SEK öre, gathers VAT evidence around a
charge, and classifies each sale into a tax case (Swedish, EU B2B, EU B2C or
outside the EU) together with an evidence dossier.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `booky.support`: helpers for country codes and metadata maps:
  `normalize_country`, `country_prefix`, `is_eu_country`,
  `is_goods_category`, `merge_string_maps`, `map_string`, `map_truthy`,
  `parse_bool`, `truthy_string` and `location_or_utc`.
- `booky.config`: `Config` with its `AppConfig`, `StripeConfig` and
  `BokioConfig` sections. `Config.location()` returns the configured time
  zone and raises `ValueError` for an unknown one.
- `booky.domain`: records such as `ObjectSnapshot`, `TaxCase`,
  `TaxCaseObject`, `ManualTaxEvidence`, `BalanceTransaction`,
  `AccountingFact`, `IngestResult` and `ExpandedCase`, plus `merge_ingest`.
- `booky.tax.payloads`: typed views of Stripe invoices, checkout sessions,
  payment intents, charges, refunds, customers and tax ids.
- `booky.tax.evidence`: `SnapshotIndex` and the functions that resolve the
  root object, sale type, country, buyer VAT number, automatic tax and Stripe
  Tax summary from snapshots.
- `booky.tax.resolver`: `build_case`, which produces a `BuildResult` holding
  the `TaxCase`, its object links and an `EvidenceDossier`;
  `classify_status`, `resolve_reportability` and `resolve_buyer_is_business`.
- `booky.stripe.models`: Stripe API objects (`Event`, `Charge`, `Invoice`,
  `CheckoutSession`, `BalanceTransactionAPI`, ...) with `from_dict`
  constructors.
- `booky.stripe.client`: the HTTP `Client`, `parse_stripe_signature`,
  `wait_for_settled_charge` and the `StripeError` exception family.
- `booky.stripe.helpers`: `convert_balance_transaction`,
  `amount_to_sek_ore`, `settled_gross_sek_ore`, `settled_fee_sek_ore`,
  `proportional_amount`, `dedupe_snapshots`, `explicit_vat_from_tax_case`
  and time helpers.
- `booky.stripe.evidence`: `build_sale_classification_input` and
  `sale_evidence_from_charge`, which collect country, B2B and VAT evidence
  around a charge from its invoice, customer and tax ids.
- `booky.stripe.notify`: `Notification`, the `Notifier` protocol and the
  alerts for failed webhooks and facts that need review.

## Verifying and reading webhooks

```python
from booky.config import StripeConfig
from booky.stripe.client import Client

cfg = StripeConfig(
    api_key="placeholder",
    webhook_secret="secret",
    api_base_url="https://api.stripe.com",
)
client = Client(cfg)

client.verify_webhook(payload, signature_header)
event = client.parse_event(payload)
charge, raw = client.get_charge("ch_123")
```

`verify_webhook` raises `WebhookSignatureInvalid`, `WebhookSignatureMismatch`,
`WebhookSignatureExpired` or `WebhookSignatureInFuture` (timestamps more than
five minutes off either way are rejected). `parse_event` raises `InvalidEvent`
when the id or type is missing. A non-2xx API answer raises `StripeAPIError`.
All of these derive from `StripeError`.

`wait_for_settled_charge(client, charge_id)` refetches a charge a few times,
with a short growing pause, until it has a balance transaction, and returns
the last charge fetched either way.

## Building a tax case

```python
import json
import uuid

from booky.domain import ObjectSnapshot
from booky.tax.resolver import build_case

session = {
    "id": "cs_123",
    "currency": "eur",
    "amount_total": 11900,
    "customer_details": {"address": {"country": "DE"}},
    "automatic_tax": {"enabled": True, "status": "complete"},
    "total_details": {"amount_tax": 1900},
    "line_items": {"data": [{"price": {"product": {"type": "service"}}}]},
}
snapshots = [ObjectSnapshot("checkout_session", "cs_123", payload=json.dumps(session).encode())]

result = build_case(uuid.uuid4(), False, snapshots, [], None)
print(result.case.tax_status, result.case.reportability_state)  # EU_DE_B2C reportable
```

A case lacking the evidence needed to report it gets `needs_manual_evidence`
or `needs_review`, with a `review_reason` saying what is missing. Manual
evidence (`ManualTaxEvidence`) passed to `build_case` can supply the sale
type, a fallback country, a buyer VAT number and whether the buyer is a
business.

## Notifications

`notify_webhook_failure` and `notify_webhook_review_facts` build a
`Notification` and hand it to any object with a `send(notification)` method.
Errors raised by `send` are logged to the given logger and not raised.

## What the package does not do

- It stores nothing: there is no database layer, and tax cases, snapshots,
  balance transactions and facts are returned as records for the caller to
  keep.
- It does not route webhook events to handlers or build the accounting
  entries for sales, refunds, disputes or payouts.
- It runs no HTTP server and has no command-line program.
- It ships no `Notifier` that delivers e-mail or other messages; the caller
  provides one.