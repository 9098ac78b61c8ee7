from typing import List, Optional
from datetime import datetime

import bleach
from pydantic import Field, field_validator

from app.models.order import PaymentMethod
from app.schemas.cart import Cart, CamelModel


def _clean(value: str) -> str:
    return bleach.clean(value, tags=[], attributes={}, strip=True).strip()


class ShippingDetails(CamelModel):
    full_name: str = Field(..., max_length=100)
    address_line1: str = Field(..., max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(..., max_length=100)
    region: str = Field(..., max_length=100)
    postal_code: str = Field(..., max_length=20)
    phone: str = Field(..., max_length=30)

    @field_validator("full_name", "address_line1", "city", "region", "postal_code", "phone")
    @classmethod
    def validate_required(cls, value: str) -> str:
        sanitized = _clean(value)
        if not sanitized:
            raise ValueError("Field is required")
        return sanitized

    @field_validator("address_line2")
    @classmethod
    def validate_optional(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _clean(value) or None


class CheckoutRequest(CamelModel):
    shipping: ShippingDetails
    payment_method: PaymentMethod
    # Cart line keys ("productId:size"); omitted means the whole cart, [] is rejected
    selected_items: Optional[List[str]] = None


class BuyNowRequest(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = 1
    size: Optional[str] = None
    shipping: ShippingDetails
    payment_method: PaymentMethod


class OrderItemResponse(CamelModel):
    product_id: str
    name: str
    brand: Optional[str] = None
    price: float
    quantity: int
    subtotal: float
    size: Optional[str] = None


class OrderResponse(CamelModel):
    order_id: str
    user_id: int
    email: str
    items: List[OrderItemResponse]
    total_qty: int
    total_amount: float
    shipping: ShippingDetails
    status: str
    payment_method: str
    payment_status: str
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class InventoryShortfall(CamelModel):
    product_id: str
    name: str
    size: Optional[str] = None
    quantity: int


class CheckoutResponse(CamelModel):
    order: OrderResponse
    redirect: Optional[str] = None
    cart: Optional[Cart] = None
    inventory_shortfalls: List[InventoryShortfall] = Field(default_factory=list)


def order_to_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=order.order_id,
        user_id=order.user_id,
        email=order.email,
        items=[
            OrderItemResponse(
                product_id=item.product_id,
                name=item.name,
                brand=item.brand,
                price=float(item.price),
                quantity=item.quantity,
                subtotal=float(item.subtotal),
                size=item.size,
            )
            for item in order.items
        ],
        total_qty=order.total_qty,
        total_amount=float(order.total_amount),
        shipping=ShippingDetails(**order.shipping),
        status=order.status.value,
        payment_method=order.payment_method.value,
        payment_status=order.payment_status.value,
        paid_at=order.paid_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
