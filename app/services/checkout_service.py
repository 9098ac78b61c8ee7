"""Checkout / order engine.

Turns cart lines (or a single "buy now" item) into an immutable order:

1. re-read live stock for every line and abort with ``InsufficientStock``
   before anything is written;
2. insert the order with its item snapshot and initial payment state;
3. decrement inventory once per line, independently.

Step 3 runs after the order is committed. A decrement that is rejected
(another checkout took the last units) or that errors is not rolled back into
the order; it is logged and reported in ``CheckoutResult.shortfalls`` for an
operator to reconcile.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InsufficientStock, OrderNotFound, OutOfStock, ProductNotFound, ValidationError
from app.core.permissions import Action, Actor, authorize, require
from app.models.order import (
    DEFERRED_PAYMENT_METHODS,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from app.models.product import Product
from app.schemas.cart import Cart
from app.schemas.order import ShippingDetails
from app.services import cart_service
from app.services.inventory_service import (
    available_stock,
    decrement_size_stock,
    decrement_stock,
    find_product,
    get_product_or_404,
)

logger = structlog.get_logger()


@dataclass
class CheckoutLine:
    product_ref: str
    quantity: int
    size: Optional[str] = None
    key: Optional[str] = None
    # Display snapshot from the cart; taken from the product when missing
    name: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None


@dataclass
class Shortfall:
    product_id: str
    name: str
    size: Optional[str]
    quantity: int


@dataclass
class CheckoutResult:
    order: Order
    cart: Optional[Cart] = None
    shortfalls: List[Shortfall] = field(default_factory=list)
    redirect_to: Optional[str] = None


def payment_display_path(order_id: str) -> str:
    return f"{settings.API_V1_STR}/payments/gcash/{order_id}"


def initial_payment_state(
    method: PaymentMethod, now: datetime
) -> Tuple[OrderStatus, PaymentStatus, Optional[datetime]]:
    if method == PaymentMethod.CARD:
        return OrderStatus.TO_SHIP, PaymentStatus.PAID, now
    if method == PaymentMethod.GCASH:
        return OrderStatus.TO_PAY, PaymentStatus.PENDING, None
    if method == PaymentMethod.COD:
        return OrderStatus.TO_SHIP, PaymentStatus.UNPAID, None
    raise ValidationError(f"Unsupported payment method: {method}", field="paymentMethod")


def _require_size(product: Product, size: Optional[str]) -> None:
    if product.sizes and not size:
        raise ValidationError(f"Please select a size for {product.name}", field="size")


def validate_stock(db: Session, lines: List[CheckoutLine]) -> List[Tuple[CheckoutLine, Product]]:
    """Re-read live stock for every line; raise on the first shortfall."""
    # Drop anything cached in this session so the comparison uses live rows.
    db.expire_all()

    requested: Dict[Tuple[int, Optional[str]], int] = {}
    resolved = []
    for line in lines:
        product = find_product(db, line.product_ref)
        if product is None:
            raise ProductNotFound(str(line.product_ref))
        _require_size(product, line.size)

        stock_key = (product.id, line.size if product.sizes else None)
        requested[stock_key] = requested.get(stock_key, 0) + line.quantity
        live = available_stock(product, line.size)
        if live < requested[stock_key]:
            logger.info(
                "checkout_insufficient_stock",
                product_id=product.product_id,
                size=line.size,
                requested=requested[stock_key],
                available=live,
            )
            raise InsufficientStock(product.name, requested[stock_key], live, line.size)
        resolved.append((line, product))
    return resolved


def _decrement(db: Session, product: Product, line: CheckoutLine) -> bool:
    if product.sizes and line.size:
        return decrement_size_stock(db, product.id, line.size, line.quantity)
    return decrement_stock(db, product.id, line.quantity)


def create_order(
    db: Session,
    actor: Actor,
    lines: List[CheckoutLine],
    shipping: ShippingDetails,
    payment_method: PaymentMethod,
    now: Optional[datetime] = None,
) -> CheckoutResult:
    require(actor, Action.ORDER_CHECKOUT)
    if not lines:
        raise ValidationError("Your cart is empty.", field="items")
    for line in lines:
        if line.quantity < 1:
            raise ValidationError(f"Quantity must be at least 1 for {line.name or line.product_ref}", field="quantity")

    resolved = validate_stock(db, lines)

    now = now or datetime.utcnow()
    status, payment_status, paid_at = initial_payment_state(payment_method, now)

    order = Order(
        order_id=str(uuid.uuid4()),
        user_id=actor.user_id,
        email=actor.email,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        paid_at=paid_at,
        shipping_full_name=shipping.full_name,
        shipping_address_line1=shipping.address_line1,
        shipping_address_line2=shipping.address_line2,
        shipping_city=shipping.city,
        shipping_region=shipping.region,
        shipping_postal_code=shipping.postal_code,
        shipping_phone=shipping.phone,
        created_at=now,
        updated_at=now,
    )

    total_qty = 0
    total_amount = 0.0
    for position, (line, product) in enumerate(resolved):
        price = line.price if line.price is not None else float(product.price)
        subtotal = round(price * line.quantity, 2)
        total_qty += line.quantity
        total_amount += subtotal
        order.items.append(
            OrderItem(
                position=position,
                product_id=product.product_id,
                name=line.name or product.name,
                brand=line.brand if line.name else product.brand,
                price=price,
                quantity=line.quantity,
                subtotal=subtotal,
                size=line.size,
            )
        )
    order.total_qty = total_qty
    order.total_amount = round(total_amount, 2)

    try:
        db.add(order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "order_created",
        order_id=order.order_id,
        user_id=actor.user_id,
        payment_method=payment_method.value,
        status=status.value,
        total_amount=order.total_amount,
    )

    shortfalls = []
    for line, product in resolved:
        try:
            applied = _decrement(db, product, line)
            db.commit()
        except Exception:
            db.rollback()
            applied = False
            logger.exception(
                "stock_decrement_failed",
                order_id=order.order_id,
                product_id=product.product_id,
                size=line.size,
                quantity=line.quantity,
            )
        else:
            if not applied:
                logger.error(
                    "stock_decrement_rejected",
                    order_id=order.order_id,
                    product_id=product.product_id,
                    size=line.size,
                    quantity=line.quantity,
                )
        if not applied:
            shortfalls.append(
                Shortfall(
                    product_id=product.product_id,
                    name=line.name or product.name,
                    size=line.size,
                    quantity=line.quantity,
                )
            )

    db.refresh(order)
    redirect_to = None
    if payment_method in DEFERRED_PAYMENT_METHODS:
        redirect_to = payment_display_path(order.order_id)

    return CheckoutResult(order=order, shortfalls=shortfalls, redirect_to=redirect_to)


def checkout_cart(
    db: Session,
    actor: Actor,
    cart: Cart,
    selected_keys: Optional[List[str]],
    shipping: ShippingDetails,
    payment_method: PaymentMethod,
) -> CheckoutResult:
    """Convert the selected cart lines (all when ``selected_keys`` is None) into an order."""
    selected = cart_service.select_lines(cart, selected_keys)
    lines = [
        CheckoutLine(
            product_ref=line.product_id,
            quantity=line.quantity,
            size=line.size,
            key=line.key,
            name=line.name,
            brand=line.brand,
            price=line.price,
        )
        for line in selected
    ]

    result = create_order(db, actor, lines, shipping, payment_method)
    result.cart = cart_service.remove_lines(cart, [line.key for line in lines])
    return result


def checkout_single_item(
    db: Session,
    actor: Actor,
    product_ref,
    quantity: int,
    size: Optional[str],
    shipping: ShippingDetails,
    payment_method: PaymentMethod,
) -> CheckoutResult:
    """Buy-now flow: one product, quantity clamped to what is in stock."""
    require(actor, Action.ORDER_CHECKOUT)
    size = (size or "").strip() or None
    product = get_product_or_404(db, product_ref)
    _require_size(product, size)

    stock = available_stock(product, size)
    if stock <= 0:
        raise OutOfStock(product.name, size)

    qty = min(max(quantity, 1), stock)
    line = CheckoutLine(product_ref=product.product_id, quantity=qty, size=size)
    return create_order(db, actor, [line], shipping, payment_method)


def list_customer_orders(db: Session, actor: Actor) -> List[Order]:
    return (
        db.query(Order)
        .filter(Order.user_id == actor.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_customer_order(db: Session, actor: Actor, order_id: str) -> Order:
    order = db.query(Order).filter(Order.order_id == order_id).first()
    if not order or not authorize(actor, Action.ORDER_VIEW, order):
        raise OrderNotFound()
    return order
