"""Typed views of the Stripe objects the tax resolver reads."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


def _as_mapping(value: Any, what: str) -> Mapping[str, Any]:
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


def _obj(data: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    return _as_mapping(value, f"field {key!r}")


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
    return [parser(_as_mapping(item, f"item of {key!r}")) for item in _list(data, key)]


@dataclass(frozen=True)
class Address:
    country: str = ""


def _address(data: Mapping[str, Any]) -> Address:
    return Address(country=_str(data, "country"))


@dataclass(frozen=True)
class Shipping:
    address: Address = field(default_factory=Address)


def _shipping(data: Mapping[str, Any]) -> Shipping:
    return Shipping(address=_required(data, "address", _address))


@dataclass(frozen=True)
class TaxIdVerification:
    status: str = ""


@dataclass(frozen=True)
class TaxId:
    id: str = ""
    country: str = ""
    type: str = ""
    value: str = ""
    verification: Optional[TaxIdVerification] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "TaxId":
        data = _as_mapping(data, "tax id")
        return cls(
            id=_str(data, "id"),
            country=_str(data, "country"),
            type=_str(data, "type"),
            value=_str(data, "value"),
            verification=_optional(data, "verification", lambda v: TaxIdVerification(status=_str(v, "status"))),
        )


@dataclass(frozen=True)
class CustomerTaxId:
    type: str = ""
    value: str = ""


@dataclass(frozen=True)
class Customer:
    id: str = ""
    address: Optional[Address] = None
    shipping: Optional[Shipping] = None
    tax_exempt: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Customer":
        data = _as_mapping(data, "customer")
        return cls(
            id=_str(data, "id"),
            address=_optional(data, "address", _address),
            shipping=_optional(data, "shipping", _shipping),
            tax_exempt=_str(data, "tax_exempt"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass(frozen=True)
class CustomerDetails:
    address: Address = field(default_factory=Address)
    tax_ids: list[TaxId] = field(default_factory=list)


def _customer_details(data: Mapping[str, Any]) -> CustomerDetails:
    return CustomerDetails(
        address=_required(data, "address", _address),
        tax_ids=_items(data, "tax_ids", TaxId.from_dict),
    )


@dataclass(frozen=True)
class ProductDetails:
    id: str = ""
    tax_code: str = ""
    type: str = ""
    shippable: Optional[bool] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "ProductDetails":
        """Build from a product id string, an expanded product object or null."""
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(id=value)
        data = _as_mapping(value, "product")
        return cls(
            id=_str(data, "id"),
            tax_code=_str(data, "tax_code"),
            type=_str(data, "type"),
            shippable=_optional_bool(data, "shippable"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass(frozen=True)
class PriceDetails:
    id: str = ""
    type: str = ""
    product: ProductDetails = field(default_factory=ProductDetails)
    metadata: dict[str, str] = field(default_factory=dict)


def _price(data: Mapping[str, Any]) -> PriceDetails:
    return PriceDetails(
        id=_str(data, "id"),
        type=_str(data, "type"),
        product=ProductDetails.from_value(data.get("product")),
        metadata=_str_map(data, "metadata"),
    )


@dataclass(frozen=True)
class AutomaticTax:
    enabled: bool = False
    status: str = ""


def _automatic_tax(data: Mapping[str, Any]) -> AutomaticTax:
    return AutomaticTax(enabled=_bool(data, "enabled"), status=_str(data, "status"))


@dataclass(frozen=True)
class InvoiceLineTax:
    amount: int = 0
    taxability_reason: str = ""


@dataclass(frozen=True)
class InvoiceLine:
    taxes: list[InvoiceLineTax] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    price: Optional[PriceDetails] = None
    pricing_product: Optional[ProductDetails] = None


def _invoice_line(data: Mapping[str, Any]) -> InvoiceLine:
    pricing_product = None
    pricing = _obj(data, "pricing")
    if pricing is not None:
        details = _obj(pricing, "price_details")
        if details is not None:
            pricing_product = ProductDetails.from_value(details.get("product"))
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


@dataclass(frozen=True)
class Invoice:
    id: str = ""
    customer: str = ""
    currency: str = ""
    subtotal: int = 0
    total: int = 0
    customer_tax_exempt: str = ""
    customer_address: Optional[Address] = None
    customer_shipping: Optional[Shipping] = None
    customer_tax_ids: list[CustomerTaxId] = field(default_factory=list)
    automatic_tax: AutomaticTax = field(default_factory=AutomaticTax)
    lines: list[InvoiceLine] = field(default_factory=list)
    invoice_pdf: str = ""
    status: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Invoice":
        data = _as_mapping(data, "invoice")
        return cls(
            id=_str(data, "id"),
            customer=_str(data, "customer"),
            currency=_str(data, "currency"),
            subtotal=_int(data, "subtotal"),
            total=_int(data, "total"),
            customer_tax_exempt=_str(data, "customer_tax_exempt"),
            customer_address=_optional(data, "customer_address", _address),
            customer_shipping=_optional(data, "customer_shipping", _shipping),
            customer_tax_ids=_items(
                data, "customer_tax_ids", lambda t: CustomerTaxId(type=_str(t, "type"), value=_str(t, "value"))
            ),
            automatic_tax=_required(data, "automatic_tax", _automatic_tax),
            lines=_required(data, "lines", lambda lines: _items(lines, "data", _invoice_line)),
            invoice_pdf=_str(data, "invoice_pdf"),
            status=_str(data, "status"),
            metadata=_str_map(data, "metadata"),
        )


@dataclass(frozen=True)
class CheckoutLineItem:
    description: str = ""
    price: Optional[PriceDetails] = None
    quantity: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


def _checkout_line_item(data: Mapping[str, Any]) -> CheckoutLineItem:
    return CheckoutLineItem(
        description=_str(data, "description"),
        price=_optional(data, "price", _price),
        quantity=_int(data, "quantity"),
        metadata=_any_map(data, "metadata"),
    )


@dataclass(frozen=True)
class CheckoutSession:
    id: str = ""
    customer: str = ""
    currency: str = ""
    amount_total: int = 0
    customer_details: Optional[CustomerDetails] = None
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
        data = _as_mapping(data, "checkout session")
        return cls(
            id=_str(data, "id"),
            customer=_str(data, "customer"),
            currency=_str(data, "currency"),
            amount_total=_int(data, "amount_total"),
            customer_details=_optional(data, "customer_details", _customer_details),
            shipping_details=_optional(data, "shipping_details", _shipping),
            automatic_tax=_required(data, "automatic_tax", _automatic_tax),
            amount_tax=_required(data, "total_details", lambda d: _int(d, "amount_tax")),
            invoice=_str(data, "invoice"),
            payment_intent=_str(data, "payment_intent"),
            payment_link=_str(data, "payment_link"),
            subscription=_str(data, "subscription"),
            line_items=_required(data, "line_items", lambda items: _items(items, "data", _checkout_line_item)),
            metadata=_str_map(data, "metadata"),
        )


@dataclass(frozen=True)
class PaymentIntent:
    id: str = ""
    currency: str = ""
    amount: int = 0
    customer: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    latest_charge: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PaymentIntent":
        """Parse a payment intent; ``latest_charge`` must be an expanded object or null."""
        data = _as_mapping(data, "payment intent")
        return cls(
            id=_str(data, "id"),
            currency=_str(data, "currency"),
            amount=_int(data, "amount"),
            customer=_str(data, "customer"),
            metadata=_str_map(data, "metadata"),
            latest_charge=_required(data, "latest_charge", lambda ref: _str(ref, "id")),
        )


@dataclass(frozen=True)
class Refund:
    id: str = ""
    charge: str = ""
    amount: int = 0
    currency: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Refund":
        data = _as_mapping(data, "refund")
        return cls(
            id=_str(data, "id"),
            charge=_str(data, "charge"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            metadata=_str_map(data, "metadata"),
        )


def _card_country(data: Mapping[str, Any]) -> str:
    details = _obj(data, "payment_method_details")
    if details is None:
        return ""
    card = _obj(details, "card")
    return "" if card is None else _str(card, "country")


@dataclass(frozen=True)
class Charge:
    id: str = ""
    amount: int = 0
    currency: str = ""
    customer: str = ""
    invoice: str = ""
    payment_intent: str = ""
    customer_tax_exempt: str = ""
    customer_details: Optional[CustomerDetails] = None
    billing_address: Address = field(default_factory=Address)
    card_country: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    refunds: list[Refund] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Charge":
        data = _as_mapping(data, "charge")
        return cls(
            id=_str(data, "id"),
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            customer=_str(data, "customer"),
            invoice=_str(data, "invoice"),
            payment_intent=_str(data, "payment_intent"),
            customer_tax_exempt=_str(data, "customer_tax_exempt"),
            customer_details=_optional(data, "customer_details", _customer_details),
            billing_address=_required(data, "billing_details", lambda d: _required(d, "address", _address)),
            card_country=_card_country(data),
            metadata=_str_map(data, "metadata"),
            refunds=_required(data, "refunds", lambda r: _items(r, "data", Refund.from_dict)),
        )