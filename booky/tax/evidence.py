"""Collect tax evidence from stored Stripe object snapshots."""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from booky import support
from booky.domain import NIL_UUID, ManualTaxEvidence, ObjectSnapshot, TaxCaseObject
from booky.tax.payloads import (
    CheckoutSession,
    Charge,
    Customer,
    Invoice,
    PaymentIntent,
    ProductDetails,
    Refund,
    Shipping,
    TaxId,
)

T = TypeVar("T")

GOODS = "GOODS"
SERVICES = "SERVICES"
SALE_TYPE_UNRESOLVED = "sale type could not be resolved"


def _decode(payload: bytes, parser: Callable[[Any], T]) -> Optional[T]:
    try:
        return parser(json.loads(payload))
    except (ValueError, TypeError):
        return None


def _str_ptr(value: str) -> Optional[str]:
    value = value.strip()
    return value or None


@dataclass
class SnapshotIndex:
    """The first decodable snapshot of each object type, plus every tax id."""

    invoice: Optional[Invoice] = None
    checkout_session: Optional[CheckoutSession] = None
    payment_intent: Optional[PaymentIntent] = None
    charge: Optional[Charge] = None
    refund: Optional[Refund] = None
    customer: Optional[Customer] = None
    tax_ids: list[TaxId] = field(default_factory=list)

    @classmethod
    def from_snapshots(cls, snapshots: Iterable[ObjectSnapshot]) -> "SnapshotIndex":
        index = cls()
        singles: dict[str, tuple[str, Callable[[Any], Any]]] = {
            "invoice": ("invoice", Invoice.from_dict),
            "checkout_session": ("checkout_session", CheckoutSession.from_dict),
            "payment_intent": ("payment_intent", PaymentIntent.from_dict),
            "charge": ("charge", Charge.from_dict),
            "refund": ("refund", Refund.from_dict),
            "customer": ("customer", Customer.from_dict),
        }
        for snapshot in snapshots:
            if snapshot.object_type == "tax_id":
                tax_id = _decode(snapshot.payload, TaxId.from_dict)
                if tax_id is not None:
                    index.tax_ids.append(tax_id)
                continue
            entry = singles.get(snapshot.object_type)
            if entry is None:
                continue
            attribute, parser = entry
            if getattr(index, attribute) is None:
                setattr(index, attribute, _decode(snapshot.payload, parser))
        return index


@dataclass(frozen=True)
class StripeTaxSummary:
    known: bool = False
    amount_minor: Optional[int] = None
    reverse_charge: bool = False
    zero_rated: bool = False
    reasons: list[str] = field(default_factory=list)


def resolve_root(index: SnapshotIndex) -> tuple[str, str]:
    """Pick the object a tax case is anchored on: invoice, session, intent, then charge."""
    candidates = (
        ("invoice", index.invoice),
        ("checkout_session", index.checkout_session),
        ("payment_intent", index.payment_intent),
        ("charge", index.charge),
    )
    for object_type, obj in candidates:
        if obj is not None and obj.id.strip():
            return object_type, obj.id.strip()
    return "unknown", "unknown"


def build_object_links(
    existing_id: Optional[uuid.UUID],
    root_type: str,
    root_id: str,
    snapshots: Iterable[ObjectSnapshot],
) -> list[TaxCaseObject]:
    """One link per distinct snapshot object, sorted by role, type and id."""
    case_id = existing_id if existing_id is not None else NIL_UUID
    links: dict[tuple[str, str], TaxCaseObject] = {}
    for snapshot in snapshots:
        key = (snapshot.object_type, snapshot.object_id)
        if key in links:
            continue
        is_root = snapshot.object_type == root_type and snapshot.object_id == root_id
        links[key] = TaxCaseObject(
            tax_case_id=case_id,
            object_type=snapshot.object_type,
            object_id=snapshot.object_id,
            object_role="root" if is_root else "supporting",
        )
    return sorted(links.values(), key=lambda o: (o.object_role, o.object_type, o.object_id))


def merged_metadata(index: SnapshotIndex) -> dict[str, str]:
    """Metadata of all objects; invoice wins over session, intent, charge and customer."""
    return support.merge_string_maps(
        index.customer.metadata if index.customer else None,
        index.charge.metadata if index.charge else None,
        index.payment_intent.metadata if index.payment_intent else None,
        index.checkout_session.metadata if index.checkout_session else None,
        index.invoice.metadata if index.invoice else None,
    )


def normalize_sale_type(value: str) -> str:
    """Map a free-form category to GOODS, SERVICES or ""."""
    lowered = value.strip().lower()
    if lowered in ("goods", "physical", "physical_goods"):
        return GOODS
    if lowered in ("services", "service", "digital_services", "digital"):
        return SERVICES
    return ""


def sale_type_from_product(product: ProductDetails) -> str:
    """Derive a sale type from a product's type, shippability, tax code or metadata."""
    kind = product.type.strip().lower()
    if kind == "service":
        return SERVICES
    if kind == "good":
        return GOODS
    if product.shippable:
        return GOODS
    if product.tax_code.strip() == "txcd_10103000":
        return SERVICES
    return normalize_sale_type(support.map_string(product.metadata, "booky_sale_category", "sale_category"))


def _invoice_line_sale_type(invoice: Optional[Invoice]) -> str:
    if invoice is None:
        return ""
    for line in invoice.lines:
        if line.price is not None:
            value = sale_type_from_product(line.price.product)
            if value:
                return value
        if line.pricing_product is not None:
            value = sale_type_from_product(line.pricing_product)
            if value:
                return value
    return ""


def _checkout_line_sale_type(session: Optional[CheckoutSession]) -> str:
    if session is None:
        return ""
    for item in session.line_items:
        if item.price is None:
            continue
        value = sale_type_from_product(item.price.product)
        if value:
            return value
    return ""


def _shipping_country(shipping: Optional[Shipping]) -> str:
    return "" if shipping is None else support.normalize_country(shipping.address.country)


def has_shipping_evidence(index: SnapshotIndex) -> bool:
    """Whether any invoice, session or customer carries a shipping country."""
    return bool(
        _shipping_country(index.invoice.customer_shipping if index.invoice else None)
        or _shipping_country(index.checkout_session.shipping_details if index.checkout_session else None)
        or _shipping_country(index.customer.shipping if index.customer else None)
    )


def resolve_sale_type(
    index: SnapshotIndex,
    metadata: Mapping[str, str],
    manual: Sequence[ManualTaxEvidence],
) -> tuple[Optional[str], str]:
    """Return the sale type, or None and the reason it could not be resolved."""
    for evidence in manual or ():
        if evidence.sale_type is not None and evidence.sale_type.strip():
            value = normalize_sale_type(evidence.sale_type)
            if value:
                return value, ""
    value = _invoice_line_sale_type(index.invoice) or _checkout_line_sale_type(index.checkout_session)
    if value:
        return value, ""
    raw = support.map_string(metadata, "booky_sale_category", "sale_category")
    if raw:
        value = normalize_sale_type(raw)
        if value:
            return value, ""
    if has_shipping_evidence(index):
        return GOODS, ""
    return None, SALE_TYPE_UNRESOLVED


def _invoice_country(invoice: Optional[Invoice], prefer_shipping: bool) -> tuple[str, str]:
    if invoice is None:
        return "", ""
    shipping = _shipping_country(invoice.customer_shipping)
    if prefer_shipping and shipping:
        return shipping, "invoice.customer_shipping"
    if invoice.customer_address is not None and invoice.customer_address.country.strip():
        return support.normalize_country(invoice.customer_address.country), "invoice.customer_address"
    if not prefer_shipping and shipping:
        return shipping, "invoice.customer_shipping"
    return "", ""


def _checkout_country(session: Optional[CheckoutSession], prefer_shipping: bool) -> tuple[str, str]:
    if session is None:
        return "", ""
    shipping = _shipping_country(session.shipping_details)
    if prefer_shipping and shipping:
        return shipping, "checkout.shipping_details"
    if session.customer_details is not None and session.customer_details.address.country.strip():
        return support.normalize_country(session.customer_details.address.country), "checkout.customer_details"
    if not prefer_shipping and shipping:
        return shipping, "checkout.shipping_details"
    return "", ""


def _customer_country(customer: Optional[Customer], prefer_shipping: bool) -> tuple[str, str]:
    if customer is None:
        return "", ""
    shipping = _shipping_country(customer.shipping)
    if prefer_shipping and shipping:
        return shipping, "customer.shipping"
    if customer.address is not None and customer.address.country.strip():
        return support.normalize_country(customer.address.country), "customer.address"
    if not prefer_shipping and shipping:
        return shipping, "customer.shipping"
    return "", ""


def _charge_country(charge: Optional[Charge]) -> tuple[str, str]:
    if charge is None:
        return "", ""
    if charge.customer_details is not None and charge.customer_details.address.country.strip():
        return support.normalize_country(charge.customer_details.address.country), "charge.customer_details"
    if charge.billing_address.country.strip():
        return support.normalize_country(charge.billing_address.country), "charge.billing_details"
    return "", ""


def resolve_country(
    index: SnapshotIndex,
    sale_type: Optional[str],
    manual: Sequence[ManualTaxEvidence],
) -> tuple[Optional[str], Optional[str]]:
    """Return the customer country and where it came from; goods prefer shipping."""
    prefer_shipping = sale_type == GOODS
    for country, source in (
        _invoice_country(index.invoice, prefer_shipping),
        _checkout_country(index.checkout_session, prefer_shipping),
        _customer_country(index.customer, prefer_shipping),
        _charge_country(index.charge),
    ):
        if country:
            return _str_ptr(country), _str_ptr(source)
    for evidence in manual or ():
        if evidence.country is not None and evidence.country.strip():
            source = "manual_tax_evidence"
            if evidence.country_source is not None and evidence.country_source.strip():
                source = evidence.country_source.strip()
            return support.normalize_country(evidence.country), source
    return None, None


def _tax_id_verified(item: TaxId) -> bool:
    return item.verification is not None and item.verification.status.strip().lower() == "verified"


def _has_verified_tax_id(items: Iterable[TaxId], wanted: str) -> bool:
    target = wanted.strip().lower()
    return any(item.value.strip().lower() == target and _tax_id_verified(item) for item in items)


def resolve_buyer_vat(
    index: SnapshotIndex, manual: Sequence[ManualTaxEvidence]
) -> tuple[Optional[str], bool]:
    """Return the buyer's VAT number (upper-cased) and whether it is verified."""
    if index.invoice is not None:
        for customer_tax_id in index.invoice.customer_tax_ids:
            if customer_tax_id.value.strip():
                value = customer_tax_id.value.strip().upper()
                return value, _has_verified_tax_id(index.tax_ids, value)
    if index.checkout_session is not None and index.checkout_session.customer_details is not None:
        for tax_id in index.checkout_session.customer_details.tax_ids:
            if tax_id.value.strip():
                return tax_id.value.strip().upper(), _tax_id_verified(tax_id)
    for tax_id in index.tax_ids:
        if tax_id.value.strip():
            return tax_id.value.strip().upper(), _tax_id_verified(tax_id)
    for evidence in manual or ():
        if evidence.buyer_vat_number is not None and evidence.buyer_vat_number.strip():
            return evidence.buyer_vat_number.strip().upper(), bool(evidence.buyer_vat_verified)
    return None, False


def resolve_customer_tax_exempt(index: SnapshotIndex) -> str:
    """Tax-exempt status from the invoice, then the charge, then the customer."""
    if index.invoice is not None and index.invoice.customer_tax_exempt.strip():
        return index.invoice.customer_tax_exempt.strip()
    if index.charge is not None and index.charge.customer_tax_exempt.strip():
        return index.charge.customer_tax_exempt.strip()
    if index.customer is not None:
        return index.customer.tax_exempt.strip()
    return ""


def resolve_automatic_tax(index: SnapshotIndex) -> tuple[bool, Optional[str]]:
    """Automatic-tax flag and status from the invoice, else the checkout session."""
    if index.invoice is not None:
        return index.invoice.automatic_tax.enabled, _str_ptr(index.invoice.automatic_tax.status)
    if index.checkout_session is not None:
        tax = index.checkout_session.automatic_tax
        return tax.enabled, _str_ptr(tax.status)
    return False, None


def _automatic_tax_complete(enabled: bool, status: str) -> bool:
    return enabled and status.strip().lower() == "complete"


def resolve_stripe_tax(index: SnapshotIndex) -> StripeTaxSummary:
    """Summarise the tax Stripe computed, with sorted unique taxability reasons."""
    reasons: set[str] = set()
    total = 0
    known = False
    if index.invoice is not None:
        for line in index.invoice.lines:
            for tax in line.taxes:
                total += tax.amount
                known = True
                reason = tax.taxability_reason.strip().lower()
                if reason:
                    reasons.add(reason)
        tax_info = index.invoice.automatic_tax
        if not known and _automatic_tax_complete(tax_info.enabled, tax_info.status):
            known = True
    elif index.checkout_session is not None:
        total = index.checkout_session.amount_tax
        tax_info = index.checkout_session.automatic_tax
        known = _automatic_tax_complete(tax_info.enabled, tax_info.status) or total > 0
    ordered = sorted(reasons)
    return StripeTaxSummary(
        known=known,
        amount_minor=total if known else None,
        reverse_charge="reverse_charge" in reasons,
        zero_rated="zero_rated" in reasons,
        reasons=ordered,
    )


def resolve_source_currency(index: SnapshotIndex) -> Optional[str]:
    """Upper-cased currency of the first object that names one."""
    for obj in (index.invoice, index.checkout_session, index.payment_intent, index.charge, index.refund):
        if obj is not None and obj.currency.strip():
            return obj.currency.strip().upper()
    return None


def resolve_source_amount(index: SnapshotIndex) -> Optional[int]:
    """The first non-zero total among invoice, session, intent, charge and refund."""
    candidates = (
        index.invoice.total if index.invoice else 0,
        index.checkout_session.amount_total if index.checkout_session else 0,
        index.payment_intent.amount if index.payment_intent else 0,
        index.charge.amount if index.charge else 0,
        index.refund.amount if index.refund else 0,
    )
    return next((amount for amount in candidates if amount != 0), None)


def resolve_invoice_pdf(index: SnapshotIndex) -> Optional[str]:
    """The invoice PDF URL, if any."""
    if index.invoice is None:
        return None
    return _str_ptr(index.invoice.invoice_pdf)


def resolve_payment_method_country(index: SnapshotIndex) -> str:
    """Normalised country of the card used for the charge, or ""."""
    if index.charge is None:
        return ""
    return support.normalize_country(index.charge.card_country)