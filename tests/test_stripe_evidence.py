from booky.domain import BalanceTransaction
from booky.stripe import evidence
from booky.stripe.models import (
    Address,
    AutomaticTax,
    Charge,
    ChargeEvidenceBundle,
    Customer,
    Invoice,
    InvoiceCustomerTaxID,
    InvoiceLine,
    InvoiceLineTax,
    Shipping,
    TaxID,
    TaxIDVerification,
)


def test_build_sale_classification_input_uses_stripe_tax_invoice_evidence():
    charge = Charge(id="ch_123", amount=11900, currency="eur")
    bundle = ChargeEvidenceBundle(
        invoice=Invoice(
            customer_address=Address(country="DE"),
            automatic_tax=AutomaticTax(enabled=True, status="complete"),
            lines=[InvoiceLine(taxes=[InvoiceLineTax(amount=1900, taxability_reason="standard_rated")])],
        )
    )
    bt = BalanceTransaction(currency="EUR", amount_minor=11900, exchange_rate=11.0)

    result = evidence.build_sale_classification_input(charge, bundle, bt)

    assert result.country == "DE"
    assert result.is_b2b is False
    assert result.explicit_vat_sek_ore == 20900
    assert result.evidence.automatic_tax_enabled is True
    assert result.evidence.automatic_tax_status == "complete"
    assert result.evidence.stripe_tax_amount_known is True
    assert result.evidence.allow_country_fallback is True
    assert result.gross_sek_ore == 130900


def test_sale_evidence_uses_invoice_vat_id_and_verification():
    charge = Charge(customer_tax_exempt="reverse")
    bundle = ChargeEvidenceBundle(
        invoice=Invoice(
            customer_address=Address(country="DE"),
            customer_tax_exempt="reverse",
            customer_tax_ids=[InvoiceCustomerTaxID(type="eu_vat", value="DE123456789")],
            automatic_tax=AutomaticTax(enabled=True, status="complete"),
            lines=[InvoiceLine(taxes=[InvoiceLineTax(amount=0, taxability_reason="reverse_charge")])],
        ),
        customer_tax_ids=[
            TaxID(type="eu_vat", value="DE123456789", verification=TaxIDVerification(status="verified"))
        ],
    )

    result = evidence.sale_evidence_from_charge(charge, bundle)
    _, is_b2b = evidence.sale_classification_inputs(charge, bundle)

    assert is_b2b is True
    assert result.customer_vat_id == "DE123456789"
    assert result.customer_vat_validated is True
    assert result.stripe_tax_reverse_charge is True
    assert result.taxability_reasons == ["reverse_charge"]


def test_sale_classification_inputs_prefer_shipping_country_for_goods():
    charge = Charge(billing_address=Address(country="FR"), metadata={"sale_category": "goods"})
    bundle = ChargeEvidenceBundle(
        invoice=Invoice(
            customer_address=Address(country="FR"),
            customer_shipping=Shipping(address=Address(country="DE")),
        )
    )

    country, _ = evidence.sale_classification_inputs(charge, bundle)

    assert country == "DE"


def test_services_prefer_billing_address_over_shipping():
    charge = Charge(metadata={"sale_category": "services"})
    bundle = ChargeEvidenceBundle(
        invoice=Invoice(
            customer_address=Address(country="FR"),
            customer_shipping=Shipping(address=Address(country="DE")),
        )
    )
    metadata = {"sale_category": "services"}
    assert evidence.resolve_country_evidence(charge, bundle, "services", metadata) == (
        "FR",
        "invoice.customer_address",
    )


def test_metadata_market_country_wins():
    charge = Charge(billing_address=Address(country="FR"))
    bundle = ChargeEvidenceBundle()
    assert evidence.resolve_country_evidence(charge, bundle, "", {"market_country": " se "}) == (
        "SE",
        "metadata.market_country",
    )


def test_market_code_must_be_two_letters():
    charge = Charge(billing_address=Address(country="fr"))
    bundle = ChargeEvidenceBundle()
    assert evidence.resolve_country_evidence(charge, bundle, "", {"market_code": "no"}) == (
        "NO",
        "metadata.market_code",
    )
    assert evidence.resolve_country_evidence(charge, bundle, "", {"market_code": "EU_B2B"}) == (
        "FR",
        "charge.billing_details",
    )


def test_charge_customer_details_before_billing_and_empty_fallback():
    charge = Charge(
        customer_details_address=Address(country="dk"), billing_address=Address(country="FR")
    )
    assert evidence.resolve_country_evidence(charge, ChargeEvidenceBundle(), "", {}) == (
        "DK",
        "charge.customer_details",
    )
    assert evidence.resolve_country_evidence(Charge(), ChargeEvidenceBundle(), "", {}) == ("", "")


def test_customer_shipping_used_for_goods():
    bundle = ChargeEvidenceBundle(
        customer=Customer(address=Address(country="FI"), shipping=Shipping(address=Address(country="NL")))
    )
    assert evidence.resolve_country_evidence(Charge(), bundle, "physical", {}) == ("NL", "customer.shipping")
    assert evidence.resolve_country_evidence(Charge(), bundle, "", {}) == ("FI", "customer.address")


def test_explicit_vat_from_metadata_ore_and_minor():
    bt = BalanceTransaction(currency="EUR", exchange_rate=2.0)
    assert evidence.explicit_vat_from_metadata({"tax_amount_ore": "500"}, bt) == 500
    assert evidence.explicit_vat_from_metadata({"vat_amount_minor": "100"}, bt) == 200
    assert evidence.explicit_vat_from_metadata({"tax_amount_ore": "abc", "vat_amount_ore": "7"}, bt) == 7
    assert evidence.explicit_vat_from_metadata({"tax_amount_ore": " "}, bt) is None


def test_explicit_vat_falls_back_to_charge_metadata():
    charge = Charge(metadata={"vat_amount_ore": "2500"})
    bt = BalanceTransaction(currency="SEK")
    assert evidence.explicit_vat_from_charge_evidence(charge, ChargeEvidenceBundle(), bt) == 2500


def test_explicit_vat_from_invoice_keeps_sek_amount():
    invoice = Invoice(lines=[InvoiceLine(taxes=[InvoiceLineTax(amount=300), InvoiceLineTax(amount=200)])])
    assert evidence.explicit_vat_from_invoice(invoice, BalanceTransaction(currency="SEK")) == 500
    assert evidence.explicit_vat_from_invoice(None, BalanceTransaction(currency="SEK")) is None


def test_invoice_tax_summary():
    assert evidence.invoice_tax_summary(None) == (False, 0, [])
    complete = Invoice(automatic_tax=AutomaticTax(enabled=True, status="Complete"))
    assert evidence.invoice_tax_summary(complete) == (True, 0, [])
    invoice = Invoice(
        lines=[
            InvoiceLine(
                taxes=[
                    InvoiceLineTax(amount=10, taxability_reason="Zero_Rated"),
                    InvoiceLineTax(amount=5, taxability_reason="reverse_charge"),
                    InvoiceLineTax(amount=1, taxability_reason="zero_rated"),
                ]
            )
        ]
    )
    assert evidence.invoice_tax_summary(invoice) == (True, 16, ["reverse_charge", "zero_rated"])


def test_customer_tax_exempt_priority():
    bundle = ChargeEvidenceBundle(customer=Customer(tax_exempt=" exempt "))
    assert evidence.customer_tax_exempt_from_evidence(Charge(), bundle) == "exempt"
    assert evidence.customer_tax_exempt_from_evidence(Charge(customer_tax_exempt="none"), bundle) == "none"
    with_invoice = ChargeEvidenceBundle(invoice=Invoice(customer_tax_exempt="reverse"), customer=Customer())
    assert evidence.customer_tax_exempt_from_evidence(Charge(customer_tax_exempt="none"), with_invoice) == "reverse"
    assert evidence.customer_tax_exempt_from_evidence(Charge(), ChargeEvidenceBundle()) == ""


def test_is_b2b_metadata_override():
    bundle = ChargeEvidenceBundle(
        customer_tax_ids=[TaxID(type="eu_vat", value="de1", verification=TaxIDVerification(status="verified"))]
    )
    assert evidence.is_b2b_sale(Charge(), bundle, {"is_b2b": "false"}) is False
    assert evidence.is_b2b_sale(Charge(), ChargeEvidenceBundle(), {"is_b2b": " true "}) is True
    assert evidence.is_b2b_sale(Charge(), bundle, {}) is True


def test_customer_vat_evidence_from_metadata_and_tax_ids():
    assert evidence.resolve_customer_vat_evidence(
        {"customer_vat_id": " de999 ", "customer_vat_valid": "yes"}, ChargeEvidenceBundle()
    ) == ("DE999", True)
    bundle = ChargeEvidenceBundle(
        customer_tax_ids=[
            TaxID(type="us_ein", value="12"),
            TaxID(type="EU_VAT", value=" fr123 ", verification=TaxIDVerification(status="pending")),
        ]
    )
    assert evidence.resolve_customer_vat_evidence({}, bundle) == ("FR123", False)
    assert evidence.resolve_customer_vat_evidence({}, ChargeEvidenceBundle()) == ("", False)