"""DTOs for the Klarna Payments and Order Management API payloads."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class OrderLineType(StrEnum):
    physical = "physical"
    discount = "discount"
    shipping_fee = "shipping_fee"
    sales_tax = "sales_tax"
    digital = "digital"
    gift_card = "gift_card"
    store_credit = "store_credit"
    surcharge = "surcharge"


class OrderStatus(StrEnum):
    AUTHORIZED = "AUTHORIZED"
    PART_CAPTURED = "PART_CAPTURED"
    CAPTURED = "CAPTURED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    CLOSED = "CLOSED"


class FraudStatus(StrEnum):
    ACCEPTED = "ACCEPTED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class OrderLine(BaseModel):
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: int
    total_amount: int
    tax_rate: int | None = None
    total_tax_amount: int | None = None
    reference: str | None = None
    type: OrderLineType | None = None
    total_discount_amount: int | None = None
    quantity_unit: str | None = None
    image_url: str | None = None
    product_url: str | None = None


class Address(BaseModel):
    email: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    organization_name: str | None = None
    street_address: str | None = None
    street_address2: str | None = None
    postal_code: str | None = None
    city: str | None = None
    region: str | None = None
    country: str | None = None
    phone: str | None = None
    title: str | None = None


class MerchantUrls(BaseModel):
    confirmation: str | None = None
    notification: str | None = None
    push: str | None = None
    authorization: str | None = None


class Options(BaseModel):
    """Widget styling options; colours are ``#RRGGBB``."""

    color_button: str | None = None
    color_button_text: str | None = None
    color_checkbox: str | None = None
    color_checkbox_checkmark: str | None = None
    color_header: str | None = None
    color_link: str | None = None
    color_border: str | None = None
    color_border_selected: str | None = None
    color_text: str | None = None
    color_details: str | None = None
    color_text_secondary: str | None = None
    radius_border: str | None = None


class Attachment(BaseModel):
    content_type: str
    body: str


class Session(BaseModel):
    """Credit session request, and the shape of a read-session response."""

    purchase_country: str | None = None
    purchase_currency: str | None = None
    locale: str | None = None
    order_amount: int | None = None
    order_tax_amount: int | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)
    merchant_urls: MerchantUrls | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    options: Options | None = None
    attachment: Attachment | None = None
    merchant_reference1: str | None = None
    merchant_reference2: str | None = None
    # Read-only values returned by Klarna.
    session_id: str | None = None
    client_token: str | None = None
    status: str | None = None
    expires_at: datetime | None = None
    payment_method_categories: list[dict] | None = None


class MerchantSession(BaseModel):
    """Response of the create-session endpoint."""

    session_id: str
    client_token: str | None = None
    payment_method_categories: list[dict] = Field(default_factory=list)


class CreateOrderRequest(BaseModel):
    """Payload exchanging an authorization token for a Klarna order."""

    purchase_country: str | None = None
    purchase_currency: str | None = None
    locale: str | None = None
    order_amount: int | None = None
    order_tax_amount: int | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)
    merchant_urls: MerchantUrls | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    attachment: Attachment | None = None
    merchant_reference1: str | None = None
    merchant_reference2: str | None = None
    auto_capture: bool | None = None

    @classmethod
    def from_session(cls, session: Session) -> "CreateOrderRequest":
        return cls.model_validate(session.model_dump(exclude_none=True))


class PaymentOrder(BaseModel):
    """Response of the authorization create-order endpoint."""

    order_id: str
    redirect_url: str | None = None
    fraud_status: FraudStatus | None = None
    authorized_payment_method: dict | None = None


class Capture(BaseModel):
    captured_amount: int | None = None
    description: str | None = None
    reference: str | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)
    shipping_delay: int | None = None


class Refund(BaseModel):
    refunded_amount: int
    description: str | None = None
    reference: str | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)


class UpdateMerchantReferences(BaseModel):
    merchant_reference1: str | None = None
    merchant_reference2: str | None = None


class RemoteCapture(BaseModel):
    """A capture as listed on a Klarna order."""

    capture_id: str
    klarna_reference: str | None = None
    captured_amount: int
    captured_at: datetime | None = None
    description: str | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)


class RemoteOrder(BaseModel):
    """Order Management view of a Klarna order."""

    order_id: str
    status: OrderStatus
    fraud_status: FraudStatus | None = None
    order_amount: int
    original_order_amount: int | None = None
    captured_amount: int | None = None
    refunded_amount: int | None = None
    remaining_authorized_amount: int | None = None
    purchase_currency: str | None = None
    locale: str | None = None
    merchant_reference1: str | None = None
    merchant_reference2: str | None = None
    order_lines: list[OrderLine] = Field(default_factory=list)
    captures: list[RemoteCapture] = Field(default_factory=list)
