from decimal import Decimal
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .exceptions import InvalidArgumentError
from .gateway import PaymentGateway


class Price(BaseModel):
    """Decimal amount in a single ISO 4217 currency."""

    number: Decimal
    currency_code: str

    def _assert_same_currency(self, other: "Price") -> None:
        if other.currency_code != self.currency_code:
            raise InvalidArgumentError(
                f"Currency mismatch: {self.currency_code} != {other.currency_code}"
            )

    def add(self, other: "Price") -> "Price":
        self._assert_same_currency(other)
        return Price(number=self.number + other.number, currency_code=self.currency_code)

    def subtract(self, other: "Price") -> "Price":
        self._assert_same_currency(other)
        return Price(number=self.number - other.number, currency_code=self.currency_code)

    def multiply(self, factor: int | str | Decimal) -> "Price":
        return Price(number=self.number * Decimal(factor), currency_code=self.currency_code)

    def is_zero(self) -> bool:
        return self.number == 0

    def is_positive(self) -> bool:
        return self.number > 0

    def greater_than(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.number > other.number

    def less_than(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.number < other.number


class Address(BaseModel):
    """Postal address collected on a customer profile."""

    given_name: str | None = None
    family_name: str | None = None
    organization: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    locality: str | None = None  # city
    administrative_area: str | None = None  # region / state
    postal_code: str | None = None
    country_code: str | None = None


class Adjustment(BaseModel):
    type: str  # e.g. "tax", "promotion", "shipping"
    label: str = ""
    amount: Price
    percentage: str | None = None  # e.g. "24" for 24%


class PurchasedEntity(BaseModel):
    entity_type: str  # e.g. "commerce_product_variation"
    id: str
    sku: str | None = None


class OrderItem(BaseModel):
    id: str
    title: str
    quantity: int = Field(..., ge=1)
    unit_price: Price
    adjusted_unit_price: Price | None = None
    adjusted_total_price: Price | None = None
    adjustments: list[Adjustment] = Field(default_factory=list)
    purchased_entity: PurchasedEntity | None = None

    @model_validator(mode="after")
    def _default_adjusted_prices(self) -> Self:
        # Without explicit post-discount prices the item is priced as listed.
        if self.adjusted_unit_price is None:
            self.adjusted_unit_price = self.unit_price
        if self.adjusted_total_price is None:
            self.adjusted_total_price = self.adjusted_unit_price.multiply(self.quantity)
        return self

    @property
    def total_price(self) -> Price:
        return self.unit_price.multiply(self.quantity)

    def get_adjustments(self, types: list[str] | None = None) -> list[Adjustment]:
        if types is None:
            return list(self.adjustments)
        return [a for a in self.adjustments if a.type in types]


class Shipment(BaseModel):
    id: str
    title: str | None = None
    amount: Price
    adjustments: list[Adjustment] = Field(default_factory=list)

    def get_adjustments(self, types: list[str] | None = None) -> list[Adjustment]:
        if types is None:
            return list(self.adjustments)
        return [a for a in self.adjustments if a.type in types]


class Store(BaseModel):
    id: str
    country_code: str | None = None  # country of the store address


class Payment(BaseModel):
    """Local payment record kept by the commerce system."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    uuid: str = Field(default_factory=lambda: str(uuid4()))
    order_id: str
    payment_gateway_id: str
    amount: Price
    refunded_amount: Price | None = None
    state: str = "new"  # authorization, completed, partially_refunded, ...
    remote_id: str | None = None
    test: bool = True


class Order(BaseModel):
    """Commerce order handed to the Klarna integration."""

    id: str
    uuid: str = Field(default_factory=lambda: str(uuid4()))
    order_number: str | None = None
    state: str = "draft"
    email: str | None = None
    store: Store
    total_price: Price
    total_paid: Price | None = None
    items: list[OrderItem] = Field(default_factory=list)
    shipments: list[Shipment] = Field(default_factory=list)
    billing_profile: Address | None = None
    shipping_profile: Address | None = None
    payment_gateway: PaymentGateway | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def balance(self) -> Price:
        if self.total_paid is None:
            return self.total_price
        return self.total_price.subtract(self.total_paid)

    def is_paid(self) -> bool:
        """Return True once the balance is zero or negative."""
        return not self.balance.is_positive()

    def collect_profiles(self) -> dict[str, Address]:
        profiles: dict[str, Address] = {}
        if self.billing_profile:
            profiles["billing"] = self.billing_profile
        if self.shipping_profile:
            profiles["shipping"] = self.shipping_profile
        return profiles

    def get_data(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set_data(self, key: str, value: Any) -> Self:
        self.data[key] = value
        return self
