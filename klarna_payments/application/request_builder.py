import re

from klarna_payments.application.unit_converter import to_amount, to_tax_rate
from klarna_payments.domain.exceptions import InvalidArgumentError
from klarna_payments.domain.gateway import GatewayConfig, resolve_gateway_plugin
from klarna_payments.domain.klarna import (
    Address,
    Capture,
    MerchantUrls,
    OrderLine,
    OrderLineType,
    Options,
    Session,
)
from klarna_payments.domain.order import Address as OrderAddress
from klarna_payments.domain.order import Adjustment, Order, OrderItem, Shipment

DEFAULT_LOCALE = "en-US"

# Country -> interface language -> RFC 1766 locale. The first entry of each
# country is its fallback language.
LOCALES: dict[str, dict[str, str]] = {
    "at": {"de": "de-AT", "en": "en-AT"},
    "dk": {"da": "da-DK", "en": "en-DK"},
    "de": {"de": "de-DE", "en": "en-DE"},
    "fi": {"fi": "fi-FI", "en": "en-FI", "sv": "sv-FI"},
    "nl": {"nl": "nl-NL", "en": "en-NL"},
    "no": {"nb": "nb-NO", "nn": "nb-NO", "en": "en-NO"},
    "se": {"sv": "sv-SE", "en": "en-SE"},
    "ch": {"de": "de-CH", "fr": "fr-CH", "it": "it-CH", "en": "en-CH"},
    "gb": {"en": "en-GB"},
    "us": {"en": "en-US"},
    "au": {"en": "en-AU"},
    "be": {"nl": "nl-BE", "fr": "fr-BE"},
    "es": {"es": "es-ES"},
    "it": {"it": "it-IT"},
}

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def build_locale(country: str, language: str) -> str:
    """Map a purchase country and interface language to an RFC 1766 locale."""
    languages = LOCALES.get(country.lower())

    if not languages:
        return DEFAULT_LOCALE
    return languages.get(language.lower(), next(iter(languages.values())))


def _build_options(config: GatewayConfig) -> Options | None:
    values: dict[str, str] = {}

    for key, value in config.options.items():
        if not value:
            continue
        if key.startswith("color_"):
            match = _HEX_COLOR.match(value.strip())
            if not match:
                raise InvalidArgumentError(f"Invalid color for {key}: {value!r}")
            value = f"#{match.group(1)}"
        values[key] = value

    return Options(**values) if values else None


def _map_address(order: Order, addr: OrderAddress) -> Address:
    data = {
        "email": order.email,
        "family_name": addr.family_name,
        "given_name": addr.given_name,
        "city": addr.locality,
        "country": addr.country_code,
        "postal_code": addr.postal_code,
        "street_address": addr.address_line1,
        "street_address2": addr.address_line2,
        "region": addr.administrative_area,
        "organization_name": addr.organization,
    }
    return Address(**{key: value for key, value in data.items() if value})


def _tax_totals(adjustments: list[Adjustment]) -> tuple[int, int] | None:
    """Return the summed (tax rate, tax amount) of ``adjustments``, if any."""
    if not adjustments:
        return None

    rate = sum(to_tax_rate(a.percentage or "0") for a in adjustments)
    amount = sum(to_amount(a.amount) for a in adjustments)
    return rate, amount


def _reference(item: OrderItem) -> str | None:
    entity = item.purchased_entity
    if entity is None:
        return None
    # Product variations are referenced by SKU, anything else by type:id.
    return entity.sku or f"{entity.entity_type}:{entity.id}"


def _create_order_line(item: OrderItem) -> OrderLine:
    line = OrderLine(
        name=item.title,
        quantity=item.quantity,
        unit_price=to_amount(item.adjusted_unit_price),
        total_amount=to_amount(item.adjusted_total_price),
        reference=_reference(item),
    )

    if taxes := _tax_totals(item.get_adjustments(["tax"])):
        line.tax_rate, line.total_tax_amount = taxes
    return line


def _create_shipping_line(shipment: Shipment, label: str) -> OrderLine:
    amount = to_amount(shipment.amount)
    line = OrderLine(
        name=label,
        quantity=1,
        unit_price=amount,
        total_amount=amount,
        type=OrderLineType.shipping_fee,
    )

    if taxes := _tax_totals(shipment.get_adjustments(["tax"])):
        line.tax_rate, line.total_tax_amount = taxes
    return line


class RequestBuilder:
    """Builds Klarna request payloads from a commerce ``Order``."""

    def __init__(self, language: str = "en", shipping_label: str = "Shipping") -> None:
        self._language = language
        self._shipping_label = shipping_label

    def create_session_request(self, order: Order) -> Session:
        """Build the credit session create/update payload for ``order``."""
        config = resolve_gateway_plugin(order)

        session = Session(
            purchase_country=order.store.country_code,
            purchase_currency=order.total_price.currency_code,
            order_amount=to_amount(order.total_price),
            merchant_urls=MerchantUrls(
                confirmation=config.get_return_uri(order, "checkout.return"),
                notification=config.get_return_uri(
                    order, "notify", {"step": "complete"}
                ),
            ),
            options=_build_options(config),
        )

        profiles = order.collect_profiles()

        if billing := profiles.get("billing"):
            session.billing_address = _map_address(order, billing)
            # The billing address decides the purchase country when known.
            if session.billing_address.country:
                session.purchase_country = session.billing_address.country

        if shipping := profiles.get("shipping"):
            session.shipping_address = _map_address(order, shipping)

        if session.purchase_country:
            session.locale = build_locale(session.purchase_country, self._language)

        order_lines = [_create_order_line(item) for item in order.items]
        order_lines += [
            _create_shipping_line(shipment, self._shipping_label)
            for shipment in order.shipments
        ]

        session.order_lines = order_lines
        session.order_tax_amount = sum(line.total_tax_amount or 0 for line in order_lines)
        return session

    def create_capture_request(self, order: Order) -> Capture:
        """Build a capture payload for the order's outstanding balance."""
        return Capture(
            order_lines=[_create_order_line(item) for item in order.items],
            captured_amount=to_amount(order.balance),
        )
