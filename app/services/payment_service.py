"""Simulated deferred payment (GCash-style mobile confirmation).

The checkout device shows a scannable reference and polls
:func:`poll_payment_status`; the payer's device calls :func:`confirm_payment`.
Confirmation is the only code path, apart from an operator override, that marks
a deferred order as paid.
"""
from datetime import datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy import case, literal, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import Conflict, OrderNotFound
from app.models.order import (
    DEFERRED_PAYMENT_METHODS,
    TERMINAL_STATUSES,
    Order,
    OrderStatus,
    PaymentStatus,
)
from app.services.checkout_service import payment_display_path

logger = structlog.get_logger()


def _get_deferred_order(db: Session, order_id: str) -> Order:
    order = (
        db.query(Order)
        .populate_existing()
        .filter(Order.order_id == order_id)
        .first()
    )
    if not order or order.payment_method not in DEFERRED_PAYMENT_METHODS:
        raise OrderNotFound()
    return order


def confirmation_reference(order_id: str) -> str:
    """Absolute URL the payer's device opens to confirm."""
    return f"{settings.PUBLIC_BASE_URL}{payment_display_path(order_id)}/confirm"


def order_detail_path(order_id: str) -> str:
    return f"{settings.API_V1_STR}/orders/{order_id}"


def get_order_for_payment(db: Session, order_id: str) -> Tuple[Order, str]:
    order = _get_deferred_order(db, order_id)
    return order, confirmation_reference(order.order_id)


def poll_payment_status(db: Session, order_id: str) -> dict:
    order = _get_deferred_order(db, order_id)
    paid = order.payment_status == PaymentStatus.PAID
    return {
        "paid": paid,
        "next": order_detail_path(order.order_id) if paid else None,
    }


def confirm_payment(db: Session, order_id: str, now: Optional[datetime] = None) -> Tuple[Order, bool]:
    """Mark a deferred order paid. Returns ``(order, applied)``.

    Repeated calls leave the first ``paid_at`` in place and report
    ``applied=False``.
    """
    order = _get_deferred_order(db, order_id)
    if order.payment_status == PaymentStatus.PAID:
        logger.info("payment_already_confirmed", order_id=order.order_id)
        return order, False
    if order.status in TERMINAL_STATUSES:
        raise Conflict(f"Order can no longer be paid (status: {order.status.value}).")

    now = now or datetime.utcnow()
    result = db.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.payment_status != PaymentStatus.PAID,
            Order.status.notin_(list(TERMINAL_STATUSES)),
        )
        .values(
            payment_status=PaymentStatus.PAID,
            # Only an order still waiting on payment advances
            status=case(
                (Order.status == OrderStatus.TO_PAY, literal(OrderStatus.TO_SHIP, Order.__table__.c.status.type)),
                else_=Order.status,
            ),
            paid_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)

    applied = result.rowcount == 1
    if applied:
        logger.info("payment_confirmed", order_id=order.order_id, paid_at=now.isoformat())
    else:
        logger.info("payment_already_confirmed", order_id=order.order_id)
    return order, applied
