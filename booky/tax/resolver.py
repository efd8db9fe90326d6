"""Build a tax case and its evidence dossier from Stripe object snapshots."""

from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from booky import domain, support
from booky.domain import ManualTaxEvidence, ObjectSnapshot, TaxCase, TaxCaseObject
from booky.tax import evidence
from booky.tax.evidence import SnapshotIndex


def _uuid_text(value: Optional[uuid.UUID]) -> Optional[str]:
    return None if value is None else str(value)


def _object_to_dict(obj: TaxCaseObject) -> dict[str, Any]:
    return {
        "tax_case_id": _uuid_text(obj.tax_case_id),
        "object_type": obj.object_type,
        "object_id": obj.object_id,
        "object_role": obj.object_role,
    }


def _manual_to_dict(item: ManualTaxEvidence) -> dict[str, Any]:
    return {
        "id": _uuid_text(item.id),
        "tax_case_id": _uuid_text(item.tax_case_id),
        "country": item.country,
        "country_source": item.country_source,
        "sale_type": item.sale_type,
        "buyer_vat_number": item.buyer_vat_number,
        "buyer_vat_verified": item.buyer_vat_verified,
        "buyer_is_business": item.buyer_is_business,
    }


@dataclass
class EvidenceDossier:
    """Everything the tax decision was based on, kept alongside the case."""

    root_object_type: str = ""
    root_object_id: str = ""
    status: Optional[str] = None
    reportability_state: str = ""
    review_reason: Optional[str] = None
    sale_type: Optional[str] = None
    country: Optional[str] = None
    country_source: Optional[str] = None
    buyer_vat_number: Optional[str] = None
    buyer_vat_verified: bool = False
    buyer_is_business: bool = False
    automatic_tax: dict[str, Any] = field(default_factory=dict)
    stripe_tax: dict[str, Any] = field(default_factory=dict)
    invoice_pdf_url: Optional[str] = None
    corroborating: dict[str, Any] = field(default_factory=dict)
    objects: list[TaxCaseObject] = field(default_factory=list)
    manual_evidence: list[ManualTaxEvidence] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form; empty optional fields are left out."""
        out: dict[str, Any] = {
            "root": {"object_type": self.root_object_type, "object_id": self.root_object_id},
        }
        if self.status is not None:
            out["status"] = self.status
        out["reportability_state"] = self.reportability_state
        for key in ("review_reason", "sale_type", "country", "country_source", "buyer_vat_number"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        out["buyer_vat_verified"] = self.buyer_vat_verified
        out["buyer_is_business"] = self.buyer_is_business
        if self.automatic_tax:
            out["automatic_tax"] = dict(self.automatic_tax)
        if self.stripe_tax:
            out["stripe_tax"] = dict(self.stripe_tax)
        if self.invoice_pdf_url is not None:
            out["invoice_pdf_url"] = self.invoice_pdf_url
        if self.corroborating:
            out["corroborating"] = dict(self.corroborating)
        out["objects"] = [_object_to_dict(obj) for obj in self.objects]
        if self.manual_evidence:
            out["manual_evidence"] = [_manual_to_dict(item) for item in self.manual_evidence]
        return out


@dataclass
class BuildResult:
    case: TaxCase
    objects: list[TaxCaseObject]
    dossier: EvidenceDossier


def _review_text(value: str) -> Optional[str]:
    value = value.strip()
    return value or None


def resolve_buyer_is_business(
    vat_number: Optional[str],
    vat_verified: bool,
    reverse_charge: bool,
    customer_tax_exempt: str,
    manual: Optional[Sequence[ManualTaxEvidence]],
) -> bool:
    """Whether the buyer is a business; manual evidence has the final word."""
    for item in manual or ():
        if item.buyer_is_business is not None:
            return item.buyer_is_business
    if vat_verified:
        return True
    if vat_number is not None and vat_number.strip():
        return True
    return reverse_charge or customer_tax_exempt.strip().lower() == "reverse"


def _manual_vat_confirmation(manual: Optional[Sequence[ManualTaxEvidence]]) -> bool:
    return any(item.buyer_vat_verified for item in manual or ())


def resolve_reportability(
    country: Optional[str],
    sale_type: Optional[str],
    business: bool,
    vat_number: Optional[str],
    vat_verified: bool,
    tax_known: bool,
    manual: Optional[Sequence[ManualTaxEvidence]],
) -> tuple[str, str]:
    """Return the reportability state and, unless reportable, the reason."""
    if country is None or not country.strip():
        return domain.NEEDS_MANUAL_EVIDENCE, "missing customer country evidence"
    if sale_type is None or not sale_type.strip():
        return domain.NEEDS_REVIEW, "sale type could not be resolved"
    other_eu = support.is_eu_country(country) and country != "SE"
    if other_eu and business:
        if vat_number is None or not vat_number.strip():
            return domain.NEEDS_MANUAL_EVIDENCE, "EU B2B sale requires buyer VAT number"
        if not vat_verified and not _manual_vat_confirmation(manual):
            return (
                domain.NEEDS_MANUAL_EVIDENCE,
                "EU B2B sale requires verified or manually confirmed buyer VAT number",
            )
    if other_eu and not business and not tax_known:
        return domain.NEEDS_MANUAL_EVIDENCE, "EU B2C sale requires Stripe Tax evidence"
    return domain.REPORTABLE, ""


def classify_status(country: Optional[str], business: bool) -> Optional[str]:
    """Tax status label such as SE_B2C, EU_DE_B2B or OUTSIDE_EU."""
    if country is None or not country.strip():
        return None
    code = support.normalize_country(country)
    if code == "SE":
        return domain.TAX_STATUS_SE_B2B if business else domain.TAX_STATUS_SE_B2C
    if support.is_eu_country(code):
        return f"EU_{code}_B2B" if business else f"EU_{code}_B2C"
    return domain.TAX_STATUS_OUTSIDE_EU


def build_case(
    company_id: uuid.UUID,
    livemode: bool,
    snapshots: Sequence[ObjectSnapshot],
    manual: Optional[Sequence[ManualTaxEvidence]],
    existing_id: Optional[uuid.UUID],
) -> BuildResult:
    """Resolve the tax treatment of a sale from its snapshots and manual evidence."""
    manual_list = list(manual or [])
    index = SnapshotIndex.from_snapshots(snapshots)
    root_type, root_id = evidence.resolve_root(index)
    objects = evidence.build_object_links(existing_id, root_type, root_id, snapshots)

    metadata = evidence.merged_metadata(index)
    sale_type, sale_type_reason = evidence.resolve_sale_type(index, metadata, manual_list)
    country, country_source = evidence.resolve_country(index, sale_type, manual_list)
    vat_number, vat_verified = evidence.resolve_buyer_vat(index, manual_list)
    customer_tax_exempt = evidence.resolve_customer_tax_exempt(index)
    automatic_tax_enabled, automatic_tax_status = evidence.resolve_automatic_tax(index)
    stripe_tax = evidence.resolve_stripe_tax(index)
    business = resolve_buyer_is_business(
        vat_number, vat_verified, stripe_tax.reverse_charge, customer_tax_exempt, manual_list
    )

    reportability, review_reason = resolve_reportability(
        country, sale_type, business, vat_number, vat_verified, stripe_tax.known, manual_list
    )
    status = classify_status(country, business)
    if reportability == domain.NEEDS_REVIEW and not review_reason and sale_type_reason:
        review_reason = sale_type_reason

    invoice_pdf = evidence.resolve_invoice_pdf(index)
    dossier = EvidenceDossier(
        root_object_type=root_type,
        root_object_id=root_id,
        status=status,
        reportability_state=reportability,
        review_reason=_review_text(review_reason),
        sale_type=sale_type,
        country=country,
        country_source=country_source,
        buyer_vat_number=vat_number,
        buyer_vat_verified=vat_verified,
        buyer_is_business=business,
        automatic_tax={"enabled": automatic_tax_enabled, "status": automatic_tax_status or ""},
        stripe_tax={
            "amount_known": stripe_tax.known,
            "amount_minor": stripe_tax.amount_minor,
            "reverse_charge": stripe_tax.reverse_charge,
            "zero_rated": stripe_tax.zero_rated,
            "taxability_reasons": list(stripe_tax.reasons),
        },
        invoice_pdf_url=invoice_pdf,
        corroborating={
            "payment_method_country": evidence.resolve_payment_method_country(index),
            "customer_tax_exempt": customer_tax_exempt,
        },
        objects=objects,
        manual_evidence=manual_list,
    )
    dossier_json = json.dumps(dossier.to_dict(), separators=(",", ":")).encode("utf-8")

    case_id = existing_id if existing_id is not None and existing_id != domain.NIL_UUID else uuid.uuid4()
    for obj in objects:
        obj.tax_case_id = case_id

    case = TaxCase(
        id=case_id,
        bokio_company_id=company_id,
        root_object_type=root_type,
        root_object_id=root_id,
        livemode=livemode,
        source_currency=evidence.resolve_source_currency(index),
        source_amount_minor=evidence.resolve_source_amount(index),
        sale_type=sale_type,
        country=country,
        country_source=country_source,
        buyer_vat_number=vat_number,
        buyer_vat_verified=vat_verified,
        buyer_is_business=business,
        tax_status=status,
        reportability_state=reportability,
        review_reason=_review_text(review_reason),
        automatic_tax_enabled=automatic_tax_enabled,
        automatic_tax_status=automatic_tax_status,
        stripe_tax_amount_known=stripe_tax.known,
        stripe_tax_amount_minor=stripe_tax.amount_minor,
        stripe_tax_reverse_charge=stripe_tax.reverse_charge,
        stripe_tax_zero_rated=stripe_tax.zero_rated,
        invoice_pdf_url=invoice_pdf,
        dossier=dossier_json,
    )
    return BuildResult(case=case, objects=objects, dossier=dossier)