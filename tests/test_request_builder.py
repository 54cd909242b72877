"""Tests for building Klarna session and capture payloads from orders."""

from collections.abc import Callable
from decimal import Decimal

import pytest

from conftest import usd
from klarna_payments.application.request_builder import RequestBuilder, build_locale
from klarna_payments.domain.exceptions import InvalidArgumentError, NonKlarnaOrderError
from klarna_payments.domain.klarna import OrderLineType
from klarna_payments.domain.order import (
    Address,
    Adjustment,
    Order,
    OrderItem,
    Price,
    PurchasedEntity,
    Shipment,
    Store,
)


def _eur(number: str) -> Price:
    return Price(number=Decimal(number), currency_code="EUR")


def _tax(amount: Price, percentage: str | None = "24") -> Adjustment:
    return Adjustment(type="tax", label="VAT", amount=amount, percentage=percentage)


# ---------------------------------------------------------------------------
# Session request
# ---------------------------------------------------------------------------


def test_session_request_for_minimal_order(order: Order) -> None:
    """A 2.00 USD single-item order without tax or addresses."""
    session = RequestBuilder().create_session_request(order)

    assert session.purchase_country == "US"
    assert session.purchase_currency == "USD"
    assert session.order_amount == 200
    assert session.order_tax_amount == 0
    assert session.locale == "en-US"
    assert session.billing_address is None
    assert session.shipping_address is None
    assert session.options is None
    assert len(session.order_lines) == 1

    line = session.order_lines[0]
    assert line.name == "Test"
    assert line.quantity == 1
    assert line.unit_price == 200
    assert line.total_amount == 200
    assert line.tax_rate is None
    assert line.reference is None


def test_session_request_merchant_urls(order: Order) -> None:
    urls = RequestBuilder().create_session_request(order).merchant_urls

    assert urls.confirmation == (
        "https://shop.example.com/checkout/1/payment/return?commerce_payment_gateway=klarna_payments"
    )
    assert urls.notification == (
        "https://shop.example.com/payment/notify/klarna_payments?step=payment&commerce_order=1"
    )


def test_session_request_without_gateway(make_order: Callable[..., Order]) -> None:
    with pytest.raises(NonKlarnaOrderError):
        RequestBuilder().create_session_request(make_order(payment_gateway=None))


def test_billing_address_overrides_purchase_country(make_order: Callable[..., Order]) -> None:
    order = make_order(
        billing_profile=Address(
            given_name="Jane",
            family_name="Doe",
            address_line1="Mannerheimintie 1",
            locality="Helsinki",
            postal_code="00100",
            country_code="FI",
        ),
    )

    session = RequestBuilder(language="fi").create_session_request(order)

    assert session.purchase_country == "FI"
    assert session.locale == "fi-FI"
    assert session.billing_address.model_dump(exclude_none=True) == {
        "email": "customer@example.com",
        "given_name": "Jane",
        "family_name": "Doe",
        "street_address": "Mannerheimintie 1",
        "city": "Helsinki",
        "postal_code": "00100",
        "country": "FI",
    }


def test_shipping_address_keeps_store_country(make_order: Callable[..., Order]) -> None:
    order = make_order(shipping_profile=Address(locality="Stockholm", country_code="SE"))

    session = RequestBuilder().create_session_request(order)

    assert session.purchase_country == "US"
    assert session.shipping_address.city == "Stockholm"
    assert session.shipping_address.country == "SE"


def test_locale_is_unset_without_purchase_country(make_order: Callable[..., Order]) -> None:
    order = make_order(store=Store(id="default"))

    session = RequestBuilder().create_session_request(order)

    assert session.purchase_country is None
    assert session.locale is None


def test_item_tax_and_reference(make_order: Callable[..., Order]) -> None:
    """Only tax adjustments count; product variations are referenced by SKU."""
    item = OrderItem(
        id="7",
        title="Tee",
        quantity=2,
        unit_price=_eur("12.40"),
        adjusted_unit_price=_eur("10.00"),
        adjusted_total_price=_eur("20.00"),
        adjustments=[
            _tax(_eur("4.80")),
            Adjustment(type="promotion", label="Sale", amount=_eur("-4.80")),
        ],
        purchased_entity=PurchasedEntity(
            entity_type="commerce_product_variation", id="7", sku="TEE-M"
        ),
    )
    order = make_order(total_price=_eur("20.00"), items=[item])

    session = RequestBuilder().create_session_request(order)
    line = session.order_lines[0]

    assert line.unit_price == 1000
    assert line.total_amount == 2000
    assert line.tax_rate == 240000
    assert line.total_tax_amount == 480
    assert line.reference == "TEE-M"
    assert session.order_tax_amount == 480


def test_reference_falls_back_to_entity_type_and_id(make_order: Callable[..., Order]) -> None:
    item = OrderItem(
        id="1",
        title="Gift card",
        quantity=1,
        unit_price=usd("2.00"),
        purchased_entity=PurchasedEntity(entity_type="commerce_gift_card", id="42"),
    )

    session = RequestBuilder().create_session_request(make_order(items=[item]))

    assert session.order_lines[0].reference == "commerce_gift_card:42"


def test_multiple_tax_adjustments_are_summed(make_order: Callable[..., Order]) -> None:
    item = OrderItem(
        id="1",
        title="Test",
        quantity=1,
        unit_price=usd("10.00"),
        adjustments=[_tax(usd("0.50"), "5"), _tax(usd("0.30"), "3"), _tax(usd("0.00"), None)],
    )

    line = RequestBuilder().create_session_request(make_order(items=[item])).order_lines[0]

    assert line.tax_rate == 80000
    assert line.total_tax_amount == 80


def test_shipping_line(make_order: Callable[..., Order]) -> None:
    shipment = Shipment(id="1", amount=_eur("10.00"), adjustments=[_tax(_eur("2.40"))])
    order = make_order(total_price=_eur("12.00"), items=[
        OrderItem(id="1", title="Test", quantity=1, unit_price=_eur("2.00")),
    ], shipments=[shipment])

    session = RequestBuilder(shipping_label="Versand").create_session_request(order)

    assert len(session.order_lines) == 2
    line = session.order_lines[1]
    assert line.name == "Versand"
    assert line.type == OrderLineType.shipping_fee
    assert line.quantity == 1
    assert line.unit_price == 1000
    assert line.total_amount == 1000
    assert line.tax_rate == 240000
    assert line.total_tax_amount == 240
    assert session.order_amount == 1200
    assert session.order_tax_amount == 240


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def test_options_are_normalized(order: Order) -> None:
    order.payment_gateway.configuration.options = {
        "color_button": "ff9900",
        "color_border": "#A1B2C3",
        "color_text": "",
        "radius_border": "5px",
    }

    options = RequestBuilder().create_session_request(order).options

    assert options.model_dump(exclude_none=True) == {
        "color_button": "#ff9900",
        "color_border": "#A1B2C3",
        "radius_border": "5px",
    }


def test_empty_options_are_omitted(order: Order) -> None:
    order.payment_gateway.configuration.options = {"color_button": None, "color_text": ""}

    assert RequestBuilder().create_session_request(order).options is None


@pytest.mark.parametrize("color", ["#fff", "red", "#12345G", "#1234567"])
def test_invalid_color_option(order: Order, color: str) -> None:
    order.payment_gateway.configuration.options = {"color_button": color}

    with pytest.raises(InvalidArgumentError):
        RequestBuilder().create_session_request(order)


# ---------------------------------------------------------------------------
# Locale
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("country", "language", "expected"),
    [
        ("xx-unknown", "ru", "en-US"),
        ("US", "en", "en-US"),
        ("de", "de", "de-DE"),
        ("DE", "en", "en-DE"),
        ("DE", "fr", "de-DE"),
        ("ch", "it", "it-CH"),
        ("no", "nn", "nb-NO"),
    ],
)
def test_build_locale(country: str, language: str, expected: str) -> None:
    assert build_locale(country, language) == expected


# ---------------------------------------------------------------------------
# Capture request
# ---------------------------------------------------------------------------


def test_capture_request_uses_balance(make_order: Callable[..., Order]) -> None:
    order = make_order(total_price=usd("10.00"), total_paid=usd("2.50"), items=[
        OrderItem(id="1", title="Test", quantity=2, unit_price=usd("5.00")),
    ])

    capture = RequestBuilder().create_capture_request(order)

    assert capture.captured_amount == 750
    assert len(capture.order_lines) == 1
    assert capture.order_lines[0].quantity == 2
    assert capture.order_lines[0].total_amount == 1000
