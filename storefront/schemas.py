from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.models import OrderStatus, PaymentMethod, PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Payment metadata

class RefundRecord(CamelModel):
    refund_id: str
    amount: Decimal
    reason: str | None = None
    created_at: datetime


class PaymentMetadata(CamelModel):
    session_id: str | None = None
    session_url: str | None = None
    refunds: list[RefundRecord] = Field(default_factory=list)

    @classmethod
    def load(cls, raw: dict | None) -> "PaymentMetadata":
        return cls.model_validate(raw or {})

    def with_refund(self, record: RefundRecord) -> "PaymentMetadata":
        return self.model_copy(update={"refunds": [*self.refunds, record]})

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# Requests

class OrderItemRequest(CamelModel):
    product_id: str
    quantity: int = Field(gt=0)


class CreateOrderRequest(CamelModel):
    shipping_address_id: str
    items: list[OrderItemRequest] = Field(min_length=1)
    notes: str | None = None


class UpdateOrderRequest(CamelModel):
    shipping_address_id: str | None = None
    notes: str | None = None


class UpdateOrderStatusRequest(CamelModel):
    status: OrderStatus


class CheckoutRequest(CamelModel):
    order_id: str
    success_url: str
    cancel_url: str
    ip_address: str | None = None


class RefundRequest(CamelModel):
    amount: Decimal | None = None
    reason: str | None = None


# Responses

class ProductSummary(CamelModel):
    id: str
    name: str


class OrderItemResponse(CamelModel):
    id: str
    product_id: str
    quantity: int
    price: Decimal
    total: Decimal
    product: ProductSummary | None = None


class ShippingAddressResponse(CamelModel):
    id: str
    full_name: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None


class OrderResponse(CamelModel):
    id: str
    order_number: str
    user_id: str
    status: OrderStatus
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    shipping_address_id: str
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemResponse] = Field(default_factory=list)
    shipping_address: ShippingAddressResponse | None = None


class CheckoutSessionResponse(CamelModel):
    session_id: str
    url: str | None = None


class PaymentResponse(CamelModel):
    id: str
    order_id: str
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None = None
    provider_payment_id: str | None = None
    refunded_amount: Decimal
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    failure_reason: str | None = None
    # The ORM attribute cannot be called "metadata"
    payment_metadata: dict | None = Field(
        default=None,
        validation_alias="payment_metadata",
        serialization_alias="metadata",
    )


class RefundResponse(CamelModel):
    message: str
    refunded_amount: Decimal
    total_refunded: Decimal
    refund_id: str
