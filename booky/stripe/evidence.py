"""Tax evidence gathered around a Stripe charge for sale classification."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional

from booky import support
from booky.domain import BalanceTransaction
from booky.stripe.helpers import amount_to_sek_ore, settled_gross_sek_ore
from booky.stripe.models import Charge, ChargeEvidenceBundle, Customer, Invoice, TaxID

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class SaleEvidence:
    """Facts about a sale that back up its VAT treatment."""

    country_evidence: bool = False
    country_source: str = ""
    vat_mode: str = ""
    sale_category: str = ""
    oss_applied: bool = False
    export_evidence: bool = False
    customer_vat_id: str = ""
    customer_vat_validated: bool = False
    customer_tax_exempt: str = ""
    automatic_tax_enabled: bool = False
    automatic_tax_status: str = ""
    stripe_tax_amount_known: bool = False
    stripe_tax_reverse_charge: bool = False
    stripe_tax_zero_rated: bool = False
    taxability_reasons: list[str] = field(default_factory=list)
    allow_country_fallback: bool = False


@dataclass
class SaleClassificationInput:
    """What the accounting rules need to classify a sale."""

    country: str = ""
    is_b2b: bool = False
    gross_sek_ore: int = 0
    explicit_vat_sek_ore: Optional[int] = None
    evidence: SaleEvidence = field(default_factory=SaleEvidence)


def _parse_int64(value: str) -> Optional[int]:
    if not _INT_PATTERN.fullmatch(value):
        return None
    parsed = int(value)
    if not _INT64_MIN <= parsed <= _INT64_MAX:
        return None
    return parsed


def _invoice_metadata(invoice: Optional[Invoice]) -> Optional[Mapping[str, str]]:
    return None if invoice is None else invoice.metadata


def _customer_metadata(customer: Optional[Customer]) -> Optional[Mapping[str, str]]:
    return None if customer is None else customer.metadata


def _charge_metadata(charge: Charge, bundle: ChargeEvidenceBundle) -> dict[str, str]:
    return support.merge_string_maps(
        _customer_metadata(bundle.customer), _invoice_metadata(bundle.invoice), charge.metadata
    )


def _sale_category(metadata: Mapping[str, str]) -> str:
    return support.map_string(metadata, "booky_sale_category", "sale_category")


def _invoice_customer_country(invoice: Optional[Invoice]) -> str:
    if invoice is None or invoice.customer_address is None:
        return ""
    return support.normalize_country(invoice.customer_address.country)


def _invoice_shipping_country(invoice: Optional[Invoice]) -> str:
    if invoice is None or invoice.customer_shipping is None:
        return ""
    return support.normalize_country(invoice.customer_shipping.address.country)


def _customer_country(customer: Optional[Customer]) -> str:
    if customer is None or customer.address is None:
        return ""
    return support.normalize_country(customer.address.country)


def _customer_shipping_country(customer: Optional[Customer]) -> str:
    if customer is None or customer.shipping is None:
        return ""
    return support.normalize_country(customer.shipping.address.country)


def _is_eu_vat_tax_id(kind: str) -> bool:
    return kind.strip().lower() == "eu_vat"


def _tax_id_verified(tax_id: TaxID) -> bool:
    return tax_id.verification is not None and tax_id.verification.status.strip().lower() == "verified"


def _matching_tax_id_verified(tax_ids: list[TaxID], value: str) -> bool:
    target = value.strip().upper()
    for tax_id in tax_ids:
        if tax_id.value.strip().upper() == target:
            return _tax_id_verified(tax_id)
    return False


def invoice_tax_summary(invoice: Optional[Invoice]) -> tuple[bool, int, list[str]]:
    """Whether Stripe Tax is known for an invoice, its total and the taxability reasons."""
    if invoice is None:
        return False, 0, []
    total = 0
    known = False
    reasons: set[str] = set()
    for line in invoice.lines:
        for tax in line.taxes:
            known = True
            total += tax.amount
            reason = tax.taxability_reason.strip()
            if reason:
                reasons.add(reason.lower())
    if (
        not known
        and invoice.automatic_tax.enabled
        and invoice.automatic_tax.status.strip().lower() == "complete"
    ):
        known = True
    return known, total, sorted(reasons)


def _has_invoice_taxability_reason(invoice: Optional[Invoice], wanted: str) -> bool:
    _, _, reasons = invoice_tax_summary(invoice)
    return wanted.strip().lower() in reasons


def explicit_vat_from_invoice(invoice: Optional[Invoice], bt: BalanceTransaction) -> Optional[int]:
    """The Stripe Tax total of an invoice in öre, if it is known."""
    known, total, _ = invoice_tax_summary(invoice)
    if not known:
        return None
    if bt.currency.upper() != "SEK":
        return amount_to_sek_ore(total, bt)
    return total


def explicit_vat_from_metadata(
    metadata: Mapping[str, str], bt: BalanceTransaction
) -> Optional[int]:
    """VAT given in metadata, either in öre or in the settlement's minor unit."""
    for key in ("tax_amount_ore", "vat_amount_ore"):
        value = metadata.get(key)
        if value is None or not value.strip():
            continue
        parsed = _parse_int64(value)
        if parsed is not None:
            return parsed
    for key in ("tax_amount_minor", "vat_amount_minor"):
        value = metadata.get(key)
        if value is None or not value.strip():
            continue
        parsed = _parse_int64(value)
        if parsed is not None:
            return amount_to_sek_ore(parsed, bt)
    return None


def explicit_vat_from_charge_evidence(
    charge: Charge, bundle: ChargeEvidenceBundle, bt: BalanceTransaction
) -> Optional[int]:
    """VAT in öre from the invoice's Stripe Tax, falling back to metadata."""
    vat = explicit_vat_from_invoice(bundle.invoice, bt)
    if vat is not None:
        return vat
    return explicit_vat_from_metadata(_charge_metadata(charge, bundle), bt)


def resolve_country_evidence(
    charge: Charge,
    bundle: ChargeEvidenceBundle,
    sale_category: str,
    metadata: Mapping[str, str],
) -> tuple[str, str]:
    """The customer's country and where it came from, or ("", "")."""
    country = support.normalize_country(support.map_string(metadata, "market_country"))
    if country:
        return country, "metadata.market_country"
    country = support.normalize_country(support.map_string(metadata, "market_code"))
    if len(country) == 2:
        return country, "metadata.market_code"

    prefer_shipping = support.is_goods_category(sale_category)
    shipping_sources = (
        (_invoice_shipping_country(bundle.invoice), "invoice.customer_shipping"),
        (_customer_shipping_country(bundle.customer), "customer.shipping"),
    )
    address_sources = (
        (_invoice_customer_country(bundle.invoice), "invoice.customer_address"),
        (_customer_country(bundle.customer), "customer.address"),
    )
    ordered = shipping_sources + address_sources if prefer_shipping else address_sources + shipping_sources
    for found, source in ordered:
        if found:
            return found, source

    if charge.customer_details_address is not None and charge.customer_details_address.country.strip():
        return support.normalize_country(charge.customer_details_address.country), "charge.customer_details"
    if charge.billing_address.country.strip():
        return support.normalize_country(charge.billing_address.country), "charge.billing_details"
    return "", ""


def customer_tax_exempt_from_evidence(charge: Charge, bundle: ChargeEvidenceBundle) -> str:
    """The customer's tax-exempt status from invoice, charge or customer, in that order."""
    if bundle.invoice is not None and bundle.invoice.customer_tax_exempt.strip():
        return bundle.invoice.customer_tax_exempt.strip()
    if charge.customer_tax_exempt.strip():
        return charge.customer_tax_exempt.strip()
    if bundle.customer is not None:
        return bundle.customer.tax_exempt.strip()
    return ""


def resolve_customer_vat_evidence(
    metadata: Mapping[str, str], bundle: ChargeEvidenceBundle
) -> tuple[str, bool]:
    """The buyer's EU VAT id, upper-cased, and whether it is verified."""
    value = support.map_string(metadata, "booky_customer_vat_id", "customer_vat_id")
    if value:
        return value.upper(), support.map_truthy(metadata, "booky_customer_vat_valid", "customer_vat_valid")
    if bundle.invoice is not None:
        for tax_id in bundle.invoice.customer_tax_ids:
            if not _is_eu_vat_tax_id(tax_id.type) or not tax_id.value.strip():
                continue
            return tax_id.value.strip().upper(), _matching_tax_id_verified(
                bundle.customer_tax_ids, tax_id.value
            )
    for tax_id in bundle.customer_tax_ids:
        if not _is_eu_vat_tax_id(tax_id.type) or not tax_id.value.strip():
            continue
        return tax_id.value.strip().upper(), _tax_id_verified(tax_id)
    return "", False


def is_b2b_sale(charge: Charge, bundle: ChargeEvidenceBundle, metadata: Mapping[str, str]) -> bool:
    """Whether the buyer is a business, by metadata or VAT evidence."""
    raw = (metadata.get("is_b2b") or "").strip()
    if raw:
        return support.parse_bool(raw)
    vat_id, vat_validated = resolve_customer_vat_evidence(metadata, bundle)
    if vat_validated:
        return True
    return bool(vat_id) and customer_tax_exempt_from_evidence(charge, bundle).lower() == "reverse"


def sale_classification_inputs(charge: Charge, bundle: ChargeEvidenceBundle) -> tuple[str, bool]:
    """The customer's country and whether the sale is B2B."""
    metadata = _charge_metadata(charge, bundle)
    country, _ = resolve_country_evidence(charge, bundle, _sale_category(metadata), metadata)
    return country, is_b2b_sale(charge, bundle, metadata)


def _charge_has_country_evidence(charge: Charge, bundle: ChargeEvidenceBundle) -> bool:
    metadata = _charge_metadata(charge, bundle)
    country, _ = resolve_country_evidence(charge, bundle, _sale_category(metadata), metadata)
    return bool(country)


def sale_evidence_from_charge(charge: Charge, bundle: ChargeEvidenceBundle) -> SaleEvidence:
    """Collect every piece of VAT evidence around a charge."""
    metadata = _charge_metadata(charge, bundle)
    sale_category = _sale_category(metadata)
    country, country_source = resolve_country_evidence(charge, bundle, sale_category, metadata)
    vat_id, vat_validated = resolve_customer_vat_evidence(metadata, bundle)
    tax_known, _, reasons = invoice_tax_summary(bundle.invoice)
    tax_exempt = customer_tax_exempt_from_evidence(charge, bundle)
    invoice = bundle.invoice
    automatic_enabled = invoice is not None and invoice.automatic_tax.enabled
    automatic_status = invoice.automatic_tax.status.strip() if invoice is not None else ""

    return SaleEvidence(
        country_evidence=_charge_has_country_evidence(charge, bundle),
        country_source=country_source,
        vat_mode=support.map_string(metadata, "booky_vat_mode", "vat_mode"),
        sale_category=sale_category,
        oss_applied=support.map_truthy(metadata, "booky_oss_applied", "oss_applied"),
        export_evidence=support.map_truthy(metadata, "booky_export_evidence", "export_evidence"),
        customer_vat_id=vat_id,
        customer_vat_validated=vat_validated,
        customer_tax_exempt=tax_exempt,
        automatic_tax_enabled=automatic_enabled,
        automatic_tax_status=automatic_status,
        stripe_tax_amount_known=tax_known,
        stripe_tax_reverse_charge=_has_invoice_taxability_reason(invoice, "reverse_charge")
        or (tax_known and tax_exempt.lower() == "reverse" and bool(vat_id)),
        stripe_tax_zero_rated=_has_invoice_taxability_reason(invoice, "zero_rated"),
        taxability_reasons=reasons,
        allow_country_fallback=support.map_truthy(
            metadata, "booky_allow_country_fallback", "allow_country_fallback"
        )
        or (automatic_enabled and automatic_status.lower() == "complete" and bool(country)),
    )


def build_sale_classification_input(
    charge: Charge, bundle: ChargeEvidenceBundle, bt: BalanceTransaction
) -> SaleClassificationInput:
    """Everything needed to classify the sale behind a settled charge."""
    country, is_b2b = sale_classification_inputs(charge, bundle)
    return SaleClassificationInput(
        country=country,
        is_b2b=is_b2b,
        gross_sek_ore=settled_gross_sek_ore(bt),
        explicit_vat_sek_ore=explicit_vat_from_charge_evidence(charge, bundle, bt),
        evidence=sale_evidence_from_charge(charge, bundle),
    )