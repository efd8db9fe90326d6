"""Stripe API objects as the ingestion code reads them."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what}: expected object, got {type(value).__name__}")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected string, got {type(value).__name__}")
    return value


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r}: expected integer, got {type(value).__name__}")
    return value


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r}: expected boolean, got {type(value).__name__}")
    return value


def _optional_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    if data.get(key) is None:
        return None
    return _bool(data, key)


def _optional_float(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r}: expected number, got {type(value).__name__}")
    return float(value)


def _obj(data: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    return _mapping(value, f"field {key!r}")


def _list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r}: expected array, got {type(value).__name__}")
    return value


def _str_map(data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = _obj(data, key)
    if value is None:
        return {}
    result: dict[str, str] = {}
    for name, item in value.items():
        if item is None:
            result[name] = ""
        elif isinstance(item, str):
            result[name] = item
        else:
            raise ValueError(f"field {key!r}.{name}: expected string")
    return result


def _any_map(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = _obj(data, key)
    return dict(value) if value is not None else {}


def _optional(data: Mapping[str, Any], key: str, parser: Callable[[Mapping[str, Any]], T]) -> Optional[T]:
    value = _obj(data, key)
    return None if value is None else parser(value)


def _required(data: Mapping[str, Any], key: str, parser: Callable[[Mapping[str, Any]], T]) -> T:
    value = _obj(data, key)
    return parser(value if value is not None else {})


def _items(data: Mapping[str, Any], key: str, parser: Callable[[Mapping[str, Any]], T]) -> list[T]:
    return [parser(_mapping(item, f"item of {key!r}")) for item in _list(data, key)]


def _raw_ref(data: Mapping[str, Any], key: str) -> Any:
    """An id or expanded object, kept as received."""
    value = data.get(key)
    if value is None or isinstance(value, (str, Mapping)):
        return value
    raise ValueError(f"field {key!r}: expected string or object, got {type(value).__name__}")


@dataclass
class Address:
    country: str = ""


def _address(data: Mapping[str, Any]) -> Address:
    return Address(country=_str(data, "country"))


def _address_dict(address: Optional[Address]) -> Optional[dict[str, Any]]:
    return None if address is None else {"country": address.country}


@dataclass
class Shipping:
    address: Address = field(default_factory=Address)


def _shipping(data: Mapping[str, Any]) -> Shipping:
    return Shipping(address=_required(data, "address", _address))


def _shipping_dict(shipping: Optional[Shipping]) -> Optional[dict[str, Any]]:
    return None if shipping is None else {"address": _address_dict(shipping.address)}


@dataclass
class StripeRef:
    id: str = ""
    object: str = ""

    @classmethod
    def from_value(cls, value: Any) -> "StripeRef":
        """Build from an id string, an expanded object or null."""
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(id=value)
        data = _mapping(value, "reference")
        return cls(id=_str(data, "id"), object=_str(data, "object"))


@dataclass
class Event:
    id: str = ""
    type: str = ""
    api_version: str = ""
    created: int = 0
    livemode: bool = False
    account: str = ""
    data_object: Any = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Event":
        data = _mapping(data, "event")
        envelope = _obj(data, "data")
        return cls(
            id=_str(data, "id"),
            type=_str(data, "type"),
            api_version=_str(data, "api_version"),
            created=_int(data, "created"),
            livemode=_bool(data, "livemode"),
            account=_str(data, "account"),
            data_object=None if envelope is None else envelope.get("object"),
        )


@dataclass
class CheckoutProduct:
    id: str = ""
    tax_code: str = ""
    type: str = ""
    shippable: Optional[bool] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "CheckoutProduct":
        """Build from a product id string, an expanded product object or null."""
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(id=value)
        data = _mapping(value, "product")
        return cls(
            id=_str(data, "id"),
            tax_code=_str(data, "tax_code"),
            type=_str(data, "type"),
            shippable=_optional_bool(data, "shippable"),
            metadata=_str_map(data, "metadata"),
        )

    def _to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tax_code": self.tax_code,
            "type": self.type,
            "shippable": self.shippable,
            "metadata": dict(self.metadata),
        }


@dataclass
class CheckoutPrice:
    id: str = ""
    type: str = ""
    product: CheckoutProduct = field(default_factory=CheckoutProduct)
    metadata: dict[str, str] = field(default_factory=dict)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "product": self.product._to_dict(),
            "metadata": dict(self.metadata),
        }


def _price(data: Mapping[str, Any]) -> CheckoutPrice:
    return CheckoutPrice(
        id=_str(data, "id"),
        type=_str(data, "type"),
        product=CheckoutProduct.from_value(data.get("product")),
        metadata=_str_map(data, "metadata"),
    )


@dataclass
class CheckoutLineItem:
    description: str = ""
    price: CheckoutPrice = field(default_factory=CheckoutPrice)
    quantity: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


def _line_item(data: Mapping[str, Any]) -> CheckoutLineItem:
    return CheckoutLineItem(
        description=_str(data, "description"),
        price=_required(data, "price", _price),
        quantity=_int(data, "quantity"),
        metadata=_any_map(data, "metadata"),
    )


@dataclass
class AutomaticTax:
    enabled: bool = False
    status: str = ""


def _automatic_tax(data: Mapping[str, Any]) -> AutomaticTax:
    return AutomaticTax(enabled=_bool(data, "enabled"), status=_str(data, "status"))


@dataclass
class TaxIDVerification:
    status: str = ""


@dataclass
class TaxID:
    id: str = ""
    customer: str = ""
    country: str = ""
    type: str = ""
    value: str = ""
    verification: Optional[TaxIDVerification] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "TaxID":
        data = _mapping(data, "tax id")
        return cls(
            id=_str(data, "id"),
            customer=_str(data, "customer"),
            country=_str(data, "country"),
            type=_str(data, "type"),
            value=_str(data, "value"),
            verification=_optional(data, "verification", lambda v: TaxIDVerification(status=_str(v, "status"))),
        )

    def _to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer": self.customer,
            "country": self.country,
            "type": self.type,
            "value": self.value,
            "verification": None if self.verification is None else {"status": self.verification.status},
        }


@dataclass
class CheckoutSession:
    id: str = ""
    created: int = 0
    currency: str = ""
    amount_total: int = 0
    customer: str = ""
    customer_details_address: Optional[Address] = None
    customer_details_tax_ids: list[TaxID] = field(default_factory=list)
    shipping_details: Optional[Shipping] = None
    automatic_tax: AutomaticTax = field(default_factory=AutomaticTax)
    amount_tax: int = 0
    invoice: str = ""
    payment_intent: str = ""
    payment_link: str = ""
    subscription: str = ""
    line_items: list[CheckoutLineItem] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CheckoutSession":
        data = _mapping(data, "checkout session")
        details = _obj(data, "customer_details")
        return cls(
            id=_str(data, "id"),
            created=_int(data, "created"),
            currency=_str(data, "currency"),
            amount_total=_int(data, "amount_total"),
            customer=_str(data, "customer"),
            customer_details_address=None if details is None else _required(details, "address", _address),
            customer_details_tax_ids=[] if details is None else _items(details, "tax_ids", TaxID.from_dict),
            shipping_details=_optional(data, "shipping_details", _shipping),
            automatic_tax=_required(data, "automatic_tax", _automatic_tax),
            amount_tax=_required(data, "total_details", lambda d: _int(d, "amount_tax")),
            invoice=_str(data, "invoice"),
            payment_intent=_str(data, "payment_intent"),
            payment_link=_str(data, "payment_link"),
            subscription=_str(data, "subscription"),
            line_items=_required(data, "line_items", lambda items: _items(items, "data", _line_item)),
            metadata=_str_map(data, "metadata"),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form with every field, matching the API's layout."""
        details = None
        if self.customer_details_address is not None:
            details = {
                "address": _address_dict(self.customer_details_address),
                "tax_ids": [tax_id._to_dict() for tax_id in self.customer_details_tax_ids],
            }
        return {
            "id": self.id,
            "created": self.created,
            "currency": self.currency,
            "amount_total": self.amount_total,
            "customer": self.customer,
            "customer_details": details,
            "shipping_details": _shipping_dict(self.shipping_details),
            "automatic_tax": {"enabled": self.automatic_tax.enabled, "status": self.automatic_tax.status},
            "total_details": {"amount_tax": self.amount_tax},
            "invoice": self.invoice,
            "payment_intent": self.payment_intent,
            "payment_link": self.payment_link,
            "subscription": self.subscription,
            "line_items": {
                "data": [
                    {
                        "description": item.description,
                        "price": item.price._to_dict(),
                        "quantity": item.quantity,
                        "metadata": dict(item.metadata),
                    }
                    for item in self.line_items
                ]
            },
            "metadata": dict(self.metadata),
        }


@dataclass
class PaymentIntent:
    id: str = ""
    created: int = 0
    currency: str = ""
    amount: int = 0
    customer: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    latest_charge: StripeRef = field(default_factory=StripeRef)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PaymentIntent":
        data = _mapping(data, "payment intent")
        return cls(
            id=_str(data, "id"),
            created=_int(data, "created"),
            currency=_str(data, "currency"),
            amount=_int(data, "amount"),
            customer=_str(data, "customer"),
            metadata=_str_map(data, "metadata"),
            latest_charge=StripeRef.from_value(data.get("latest_charge")),
        )


@dataclass
class InvoiceCustomerTaxID:
    type: str = ""
    value: str = ""


@dataclass
class InvoiceLineTax:
    amount: int = 0
    taxability_reason: str = ""


@dataclass
class InvoiceLine:
    taxes: list[InvoiceLineTax] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    price: Optional[CheckoutPrice] = None
    pricing_product: Optional[CheckoutProduct] = None


def _invoice_line(data: Mapping[str, Any]) -> InvoiceLine:
    pricing_product = None
    pricing = _obj(data, "pricing")
    if pricing is not None:
        details = _obj(pricing, "price_details")
        if details is not None:
            pricing_product = CheckoutProduct.from_value(details.get("product"))
    return InvoiceLine(
        taxes=_items(
            data,
            "taxes",
            lambda t: InvoiceLineTax(amount=_int(t, "amount"), taxability_reason=_str(t, "taxability_reason")),
        ),
        metadata=_str_map(data, "metadata"),
        price=_optional(data, "price", _price),
        pricing_product=pricing_product,
    )


@dataclass
class Invoice:
    id: str = ""
    customer: str = ""
    subscription: str = ""
    customer_tax_exempt: str = ""
    customer_address: Optional[Address] = None
    customer_shipping: Optional[Shipping] = None
    customer_tax_ids: list[InvoiceCustomerTaxID] = field(default_factory=list)
    automatic_tax: AutomaticTax = field(default_factory=AutomaticTax)
    lines: list[InvoiceLine] = field(default_factory=list)
    invoice_pdf: str = ""
    status: str = ""
    currency: str = ""
    subtotal: int = 0
    total: int = 0
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Invoice":
        data = _mapping(data, "invoice")
        return cls(
            id=_str(data, "id"),
            customer=_str(data, "customer"),
            subscription=_str(data, "subscription"),
            customer_tax_exempt=_str(data, "customer_tax_exempt"),
            customer_address=_optional(data, "customer_address", _address),
            customer_shipping=_optional(data, "customer_shipping", _shipping),
            customer_tax_ids=_items(
                data,
                "customer_tax_ids",
                lambda t: InvoiceCustomerTaxID(type=_str(t, "type"), value=_str(t, "value")),
            ),
            automatic_tax=_required(data, "automatic_tax", _automatic_tax),
            lines=_required(data, "lines", lambda lines: _items(lines, "data", _invoice_line)),
            invoice_pdf=_str(data, "invoice_pdf"),
            status=_str(data, "status"),
            currency=_str(data, "currency"),
            subtotal=_int(data, "subtotal"),
            total=_int(data, "total"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass
class Customer:
    id: str = ""
    address: Optional[Address] = None
    shipping: Optional[Shipping] = None
    tax_exempt: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Customer":
        data = _mapping(data, "customer")
        return cls(
            id=_str(data, "id"),
            address=_optional(data, "address", _address),
            shipping=_optional(data, "shipping", _shipping),
            tax_exempt=_str(data, "tax_exempt"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass
class Refund:
    id: str = ""
    charge: str = ""
    amount: int = 0
    currency: str = ""
    created: int = 0
    balance_transaction: Any = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Refund":
        data = _mapping(data, "refund")
        return cls(
            id=_str(data, "id"),
            charge=_str(data, "charge"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            created=_int(data, "created"),
            balance_transaction=_raw_ref(data, "balance_transaction"),
            metadata=_str_map(data, "metadata"),
        )


def _card_country(data: Mapping[str, Any]) -> str:
    details = _obj(data, "payment_method_details")
    if details is None:
        return ""
    card = _obj(details, "card")
    return "" if card is None else _str(card, "country")


@dataclass
class Charge:
    id: str = ""
    amount: int = 0
    currency: str = ""
    created: int = 0
    balance_transaction: Any = None
    billing_address: Address = field(default_factory=Address)
    customer_details_address: Optional[Address] = None
    customer_tax_exempt: str = ""
    customer: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    refunds: list[Refund] = field(default_factory=list)
    card_country: str = ""
    payment_intent: str = ""
    invoice: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Charge":
        data = _mapping(data, "charge")
        return cls(
            id=_str(data, "id"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            created=_int(data, "created"),
            balance_transaction=_raw_ref(data, "balance_transaction"),
            billing_address=_required(data, "billing_details", lambda d: _required(d, "address", _address)),
            customer_details_address=_optional(
                data, "customer_details", lambda d: _required(d, "address", _address)
            ),
            customer_tax_exempt=_str(data, "customer_tax_exempt"),
            customer=_str(data, "customer"),
            metadata=_str_map(data, "metadata"),
            refunds=_required(data, "refunds", lambda r: _items(r, "data", Refund.from_dict)),
            card_country=_card_country(data),
            payment_intent=_str(data, "payment_intent"),
            invoice=_str(data, "invoice"),
        )


@dataclass
class Dispute:
    id: str = ""
    amount: int = 0
    currency: str = ""
    created: int = 0
    charge: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    balance_transaction_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Dispute":
        data = _mapping(data, "dispute")
        return cls(
            id=_str(data, "id"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            created=_int(data, "created"),
            charge=_str(data, "charge"),
            metadata=_str_map(data, "metadata"),
            balance_transaction_ids=_items(data, "balance_transactions", lambda bt: _str(bt, "id")),
        )


@dataclass
class Payout:
    id: str = ""
    amount: int = 0
    currency: str = ""
    created: int = 0
    arrival_date: int = 0
    balance_transaction: Any = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Payout":
        data = _mapping(data, "payout")
        return cls(
            id=_str(data, "id"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            created=_int(data, "created"),
            arrival_date=_int(data, "arrival_date"),
            balance_transaction=_raw_ref(data, "balance_transaction"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass
class BalanceTransactionAPI:
    id: str = ""
    amount: int = 0
    fee: int = 0
    net: int = 0
    currency: str = ""
    type: str = ""
    reporting_category: str = ""
    status: str = ""
    exchange_rate: Optional[float] = None
    available_on: int = 0
    created: int = 0
    source: StripeRef = field(default_factory=StripeRef)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "BalanceTransactionAPI":
        data = _mapping(data, "balance transaction")
        return cls(
            id=_str(data, "id"),
            amount=_int(data, "amount"),
            fee=_int(data, "fee"),
            net=_int(data, "net"),
            currency=_str(data, "currency"),
            type=_str(data, "type"),
            reporting_category=_str(data, "reporting_category"),
            status=_str(data, "status"),
            exchange_rate=_optional_float(data, "exchange_rate"),
            available_on=_int(data, "available_on"),
            created=_int(data, "created"),
            source=StripeRef.from_value(data.get("source")),
        )


@dataclass
class ChargeEvidenceBundle:
    """Objects around a charge that carry tax evidence."""

    invoice: Optional[Invoice] = None
    customer: Optional[Customer] = None
    customer_tax_ids: list[TaxID] = field(default_factory=list)