"""Conversions between Stripe amounts, times and stored records."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone, tzinfo
from types import MappingProxyType
from typing import Any, Optional

from booky import support
from booky.config import Config
from booky.domain import BalanceTransaction, ObjectSnapshot, TaxCase
from booky.stripe.models import BalanceTransactionAPI, Event, StripeRef

_DEFAULT_CURRENCY_EXPONENT = 2
_CURRENCY_EXPONENTS: Mapping[str, int] = MappingProxyType({"JPY": 0})


def _round(value: float) -> int:
    """Round half away from zero."""
    whole = math.trunc(value)
    if abs(value - whole) >= 0.5:
        whole += 1 if value > 0 else -1
    return int(whole)


def event_time(unix_seconds: int) -> datetime:
    """A Unix timestamp as an aware UTC datetime."""
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)


def event_time_in_location(unix_seconds: int, loc: tzinfo) -> datetime:
    """A Unix timestamp as an aware datetime in ``loc``."""
    return datetime.fromtimestamp(unix_seconds, tz=loc)


def posting_time(cfg: Config, unix_seconds: int) -> datetime:
    """Timestamp in the configured zone, or UTC if the zone cannot be loaded."""
    try:
        loc = cfg.location()
    except ValueError:
        return event_time(unix_seconds)
    return event_time_in_location(unix_seconds, loc)


def stripe_account_id(evt: Event) -> str:
    """The connected account of an event, or "self" for the platform account."""
    return evt.account or "self"


def extract_id(value: Any) -> str:
    """The id of a reference given as a string, a StripeRef or an expanded object."""
    if isinstance(value, str):
        return value
    if isinstance(value, StripeRef):
        return value.id
    if isinstance(value, Mapping):
        found = value.get("id")
        if isinstance(found, str):
            return found
    return ""


def currency_exponent(currency: str) -> int:
    """Number of minor-unit digits of a currency."""
    code = currency.strip().upper()
    return _CURRENCY_EXPONENTS.get(code, _DEFAULT_CURRENCY_EXPONENT)


def amount_to_sek_ore(amount_minor: int, bt: BalanceTransaction) -> int:
    """Convert a minor-unit amount to öre using a balance transaction's settled values."""
    if bt.currency.upper() == "SEK" or bt.currency == "":
        return amount_minor
    if bt.amount_sek_ore is not None and bt.amount_minor != 0 and amount_minor == bt.amount_minor:
        return bt.amount_sek_ore
    if bt.fee_sek_ore is not None and bt.fee_minor != 0 and amount_minor == bt.fee_minor:
        return bt.fee_sek_ore
    if bt.net_sek_ore is not None and bt.net_minor != 0 and amount_minor == bt.net_minor:
        return bt.net_sek_ore
    if bt.exchange_rate is not None:
        return _round(float(amount_minor) * bt.exchange_rate)
    return 0


def settled_gross_sek_ore(bt: BalanceTransaction) -> int:
    """Absolute gross amount of a balance transaction in öre."""
    if bt.amount_sek_ore is not None:
        return abs(bt.amount_sek_ore)
    if bt.currency.upper() == "SEK":
        return abs(bt.amount_minor)
    return abs(amount_to_sek_ore(bt.amount_minor, bt))


def settled_fee_sek_ore(bt: BalanceTransaction) -> int:
    """Absolute fee of a balance transaction in öre."""
    if bt.fee_sek_ore is not None:
        return abs(bt.fee_sek_ore)
    if bt.currency.upper() == "SEK":
        return abs(bt.fee_minor)
    return abs(amount_to_sek_ore(bt.fee_minor, bt))


def proportional_amount(total: int, part_minor: int, whole_minor: int) -> int:
    """The share ``part_minor / whole_minor`` of ``total``, rounded; 0 if whole is 0."""
    if whole_minor == 0:
        return 0
    return _round(float(total) * float(part_minor) / float(whole_minor))


def convert_balance_transaction(
    cfg: Config, evt: Event, bt: BalanceTransactionAPI, raw: bytes
) -> BalanceTransaction:
    """Turn an API balance transaction into the stored record with öre amounts."""
    currency = bt.currency.upper()
    skeleton = BalanceTransaction(currency=currency)
    amount_sek = amount_to_sek_ore(bt.amount, skeleton)
    fee_sek = amount_to_sek_ore(bt.fee, skeleton)
    net_sek = amount_to_sek_ore(bt.net, skeleton)
    if currency != "SEK" and bt.exchange_rate is not None:
        amount_sek = _round(float(bt.amount) * bt.exchange_rate)
        fee_sek = _round(float(bt.fee) * bt.exchange_rate)
        net_sek = _round(float(bt.net) * bt.exchange_rate)
    loc = support.location_or_utc(cfg)
    return BalanceTransaction(
        id=bt.id,
        stripe_account_id=stripe_account_id(evt),
        source_object_type=bt.source.object,
        source_object_id=bt.source.id,
        type=bt.type,
        reporting_category=bt.reporting_category,
        status=bt.status,
        currency=currency,
        currency_exponent=currency_exponent(currency),
        amount_minor=bt.amount,
        fee_minor=bt.fee,
        net_minor=bt.net,
        amount_sek_ore=amount_sek,
        fee_sek_ore=fee_sek,
        net_sek_ore=net_sek,
        exchange_rate=bt.exchange_rate,
        occurred_at=event_time_in_location(bt.created, loc),
        available_on=event_time_in_location(bt.available_on, loc) if bt.available_on > 0 else None,
        source_event_id=evt.id,
        payload=raw,
    )


def dedupe_snapshots(snapshots: Iterable[ObjectSnapshot]) -> list[ObjectSnapshot]:
    """Keep the first snapshot of each object type and id, in order."""
    seen: set[tuple[str, str]] = set()
    out: list[ObjectSnapshot] = []
    for snapshot in snapshots:
        key = (snapshot.object_type, snapshot.object_id)
        if key in seen:
            continue
        seen.add(key)
        out.append(snapshot)
    return out


def explicit_vat_from_tax_case(tax_case: TaxCase, bt: BalanceTransaction) -> Optional[int]:
    """The Stripe-computed VAT of a tax case in öre, if it is known."""
    if not tax_case.stripe_tax_amount_known or tax_case.stripe_tax_amount_minor is None:
        return None
    total = tax_case.stripe_tax_amount_minor
    if tax_case.source_currency is not None and tax_case.source_currency.upper() != "SEK":
        total = amount_to_sek_ore(total, bt)
    return total