import json
import uuid

import pytest

from booky import domain
from booky.domain import ManualTaxEvidence, ObjectSnapshot
from booky.tax.resolver import (
    build_case,
    classify_status,
    resolve_buyer_is_business,
    resolve_reportability,
)


def snapshot(object_type, object_id, payload):
    return ObjectSnapshot(object_type=object_type, object_id=object_id, payload=json.dumps(payload).encode())


def _invoice_payload(**extra):
    payload = {
        "id": "in_123",
        "customer_address": {"country": "DE"},
        "customer_tax_exempt": "reverse",
        "customer_tax_ids": [{"type": "eu_vat", "value": "DE123456789"}],
        "automatic_tax": {"enabled": True, "status": "complete"},
        "lines": {"data": [{"taxes": [{"amount": 0, "taxability_reason": "reverse_charge"}]}]},
        "metadata": {"sale_category": "services"},
    }
    payload.update(extra)
    return payload


def test_build_case_checkout_b2c():
    snapshots = [
        snapshot(
            "checkout_session",
            "cs_123",
            {
                "id": "cs_123",
                "currency": "eur",
                "amount_total": 11900,
                "customer_details": {"address": {"country": "DE"}},
                "automatic_tax": {"enabled": True, "status": "complete"},
                "total_details": {"amount_tax": 1900},
                "line_items": {"data": [{"price": {"product": {"type": "service"}}}]},
            },
        )
    ]
    result = build_case(uuid.uuid4(), False, snapshots, None, None)
    assert result.case.tax_status == "EU_DE_B2C"
    assert result.case.reportability_state == domain.REPORTABLE
    assert result.case.sale_type == "SERVICES"
    assert result.case.source_currency == "EUR"
    assert result.case.source_amount_minor == 11900
    assert result.case.stripe_tax_amount_minor == 1900


def test_build_case_checkout_se_with_vat_is_b2b_and_uses_line_item_sale_type():
    snapshots = [
        snapshot(
            "checkout_session",
            "cs_se",
            {
                "id": "cs_se",
                "currency": "eur",
                "amount_total": 2249,
                "customer_details": {
                    "address": {"country": "SE"},
                    "tax_ids": [{"type": "eu_vat", "value": "SE123456789123"}],
                },
                "automatic_tax": {"enabled": True, "status": "complete"},
                "total_details": {"amount_tax": 450},
                "line_items": {
                    "data": [{"price": {"product": {"tax_code": "txcd_10103000", "type": "service"}}}]
                },
            },
        )
    ]
    result = build_case(uuid.uuid4(), False, snapshots, None, None)
    assert result.case.tax_status == domain.TAX_STATUS_SE_B2B
    assert result.case.buyer_is_business is True
    assert result.case.sale_type == "SERVICES"
    assert result.case.reportability_state == domain.REPORTABLE


def test_build_case_invoice_b2b_with_verified_vat():
    snapshots = [
        snapshot("invoice", "in_123", _invoice_payload(customer="cus_123", currency="eur", total=10000)),
        snapshot(
            "tax_id",
            "txi_123",
            {
                "id": "txi_123",
                "customer": "cus_123",
                "type": "eu_vat",
                "value": "DE123456789",
                "verification": {"status": "verified"},
            },
        ),
    ]
    result = build_case(uuid.uuid4(), False, snapshots, None, None)
    assert result.case.tax_status == "EU_DE_B2B"
    assert result.case.buyer_vat_verified is True
    assert result.case.reportability_state == domain.REPORTABLE
    assert result.case.stripe_tax_reverse_charge is True


def test_build_case_requires_manual_evidence_for_unverified_eu_b2b():
    result = build_case(uuid.uuid4(), False, [snapshot("invoice", "in_123", _invoice_payload())], None, None)
    assert result.case.reportability_state == domain.NEEDS_MANUAL_EVIDENCE
    assert result.case.review_reason == "EU B2B sale requires verified or manually confirmed buyer VAT number"


def test_build_case_uses_manual_country_fallback():
    manual = [
        ManualTaxEvidence(
            tax_case_id=uuid.uuid4(),
            country="NO",
            country_source="manual",
            buyer_is_business=False,
            sale_type="services",
        )
    ]
    snapshots = [snapshot("payment_intent", "pi_123", {"id": "pi_123", "currency": "nok", "amount": 2500})]
    result = build_case(uuid.uuid4(), False, snapshots, manual, None)
    assert result.case.tax_status == domain.TAX_STATUS_OUTSIDE_EU
    assert result.case.country == "NO"
    assert result.case.country_source == "manual"


def test_build_case_reuses_existing_id_for_case_and_objects():
    existing = uuid.uuid4()
    snapshots = [
        snapshot("invoice", "in_123", _invoice_payload()),
        snapshot("customer", "cus_1", {"id": "cus_1"}),
    ]
    result = build_case(uuid.uuid4(), True, snapshots, None, existing)
    assert result.case.id == existing
    assert result.case.livemode is True
    assert [o.tax_case_id for o in result.objects] == [existing, existing]
    assert [(o.object_role, o.object_type) for o in result.objects] == [
        ("root", "invoice"),
        ("supporting", "customer"),
    ]


def test_build_case_without_country_writes_dossier():
    snapshots = [snapshot("charge", "ch_1", {"id": "ch_1", "currency": "sek", "amount": 500})]
    result = build_case(uuid.uuid4(), False, snapshots, None, None)
    assert result.case.reportability_state == domain.NEEDS_MANUAL_EVIDENCE
    assert result.case.tax_status is None
    stored = json.loads(result.case.dossier)
    assert stored["root"] == {"object_type": "charge", "object_id": "ch_1"}
    assert stored["review_reason"] == "missing customer country evidence"
    assert "status" not in stored
    assert "manual_evidence" not in stored
    assert stored["stripe_tax"]["amount_minor"] is None
    assert result.dossier.to_dict()["reportability_state"] == domain.NEEDS_MANUAL_EVIDENCE


@pytest.mark.parametrize(
    "country, business, expected",
    [
        (None, True, None),
        ("  ", False, None),
        (" se ", True, "SE_B2B"),
        ("SE", False, "SE_B2C"),
        ("fr", True, "EU_FR_B2B"),
        ("DE", False, "EU_DE_B2C"),
        ("US", True, "OUTSIDE_EU"),
    ],
)
def test_classify_status(country, business, expected):
    assert classify_status(country, business) == expected


def test_resolve_reportability_rules():
    assert resolve_reportability(None, "GOODS", False, None, False, True, []) == (
        domain.NEEDS_MANUAL_EVIDENCE,
        "missing customer country evidence",
    )
    assert resolve_reportability("DE", None, False, None, False, True, []) == (
        domain.NEEDS_REVIEW,
        "sale type could not be resolved",
    )
    assert resolve_reportability("DE", "SERVICES", True, None, False, True, []) == (
        domain.NEEDS_MANUAL_EVIDENCE,
        "EU B2B sale requires buyer VAT number",
    )
    confirmed = [ManualTaxEvidence(buyer_vat_verified=True)]
    assert resolve_reportability("DE", "SERVICES", True, "DE1", False, True, confirmed) == (
        domain.REPORTABLE,
        "",
    )
    assert resolve_reportability("DE", "SERVICES", False, None, False, False, []) == (
        domain.NEEDS_MANUAL_EVIDENCE,
        "EU B2C sale requires Stripe Tax evidence",
    )
    assert resolve_reportability("SE", "SERVICES", False, None, False, False, []) == (domain.REPORTABLE, "")


def test_resolve_buyer_is_business():
    assert resolve_buyer_is_business("DE1", True, True, "reverse", [ManualTaxEvidence(buyer_is_business=False)]) is False
    assert resolve_buyer_is_business(None, True, False, "", []) is True
    assert resolve_buyer_is_business("DE1", False, False, "", None) is True
    assert resolve_buyer_is_business(None, False, False, " Reverse ", []) is True
    assert resolve_buyer_is_business(None, False, True, "", []) is True
    assert resolve_buyer_is_business("  ", False, False, "none", []) is False