"""Records shared by the tax and Stripe ingestion code."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

NIL_UUID = uuid.UUID(int=0)

REPORTABLE = "reportable"
NEEDS_REVIEW = "needs_review"
NEEDS_MANUAL_EVIDENCE = "needs_manual_evidence"

TAX_STATUS_SE_B2B = "SE_B2B"
TAX_STATUS_SE_B2C = "SE_B2C"
TAX_STATUS_OUTSIDE_EU = "OUTSIDE_EU"

FACT_STATUS_NEEDS_REVIEW = "needs_review"


@dataclass
class ObjectSnapshot:
    object_type: str
    object_id: str
    livemode: bool = False
    payload: bytes = b""


@dataclass
class TaxCaseObject:
    tax_case_id: uuid.UUID = NIL_UUID
    object_type: str = ""
    object_id: str = ""
    object_role: str = ""


@dataclass
class ManualTaxEvidence:
    id: uuid.UUID = NIL_UUID
    tax_case_id: uuid.UUID = NIL_UUID
    country: Optional[str] = None
    country_source: Optional[str] = None
    sale_type: Optional[str] = None
    buyer_vat_number: Optional[str] = None
    buyer_vat_verified: Optional[bool] = None
    buyer_is_business: Optional[bool] = None


@dataclass
class TaxCase:
    id: uuid.UUID = NIL_UUID
    bokio_company_id: uuid.UUID = NIL_UUID
    root_object_type: str = ""
    root_object_id: str = ""
    livemode: bool = False
    source_currency: Optional[str] = None
    source_amount_minor: Optional[int] = None
    sale_type: Optional[str] = None
    country: Optional[str] = None
    country_source: Optional[str] = None
    buyer_vat_number: Optional[str] = None
    buyer_vat_verified: bool = False
    buyer_is_business: bool = False
    tax_status: Optional[str] = None
    reportability_state: str = ""
    review_reason: Optional[str] = None
    automatic_tax_enabled: bool = False
    automatic_tax_status: Optional[str] = None
    stripe_tax_amount_known: bool = False
    stripe_tax_amount_minor: Optional[int] = None
    stripe_tax_reverse_charge: bool = False
    stripe_tax_zero_rated: bool = False
    invoice_pdf_url: Optional[str] = None
    dossier: bytes = b""


@dataclass
class BalanceTransaction:
    id: str = ""
    stripe_account_id: str = ""
    source_object_type: str = ""
    source_object_id: str = ""
    type: str = ""
    reporting_category: str = ""
    status: str = ""
    currency: str = ""
    currency_exponent: int = 2
    amount_minor: int = 0
    fee_minor: int = 0
    net_minor: int = 0
    amount_sek_ore: Optional[int] = None
    fee_sek_ore: Optional[int] = None
    net_sek_ore: Optional[int] = None
    exchange_rate: Optional[float] = None
    occurred_at: Optional[datetime] = None
    available_on: Optional[datetime] = None
    source_event_id: str = ""
    payload: bytes = b""


@dataclass
class AccountingFact:
    source_group_id: str = ""
    fact_type: str = ""
    status: str = ""
    review_reason: Optional[str] = None
    tax_case_id: Optional[uuid.UUID] = None


@dataclass
class IngestResult:
    snapshots: list[ObjectSnapshot] = field(default_factory=list)
    balance_txs: list[BalanceTransaction] = field(default_factory=list)
    tax_cases: list[TaxCase] = field(default_factory=list)
    tax_case_objects: list[TaxCaseObject] = field(default_factory=list)
    facts: list[AccountingFact] = field(default_factory=list)


@dataclass
class ExpandedCase:
    case: TaxCase
    objects: list[TaxCaseObject] = field(default_factory=list)
    manual_evidence: list[ManualTaxEvidence] = field(default_factory=list)


def merge_ingest(*parts: IngestResult) -> IngestResult:
    """Concatenate the lists of several ingest results, in order."""
    merged = IngestResult()
    for part in parts:
        merged.snapshots.extend(part.snapshots)
        merged.balance_txs.extend(part.balance_txs)
        merged.tax_cases.extend(part.tax_cases)
        merged.tax_case_objects.extend(part.tax_case_objects)
        merged.facts.extend(part.facts)
    return merged