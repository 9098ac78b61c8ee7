from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, OrderNotFound, ValidationError
from app.core.permissions import Action, Actor, require
from app.models.order import TERMINAL_STATUSES, Order, OrderItem, OrderStatus, PaymentStatus
from app.models.order_status_history import OrderStatusHistory
from app.models.product import Product

logger = structlog.get_logger()

# Operator override that records a payment without moving fulfillment
PAID_OVERRIDE = "paid"
VOIDING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUND})

DASHBOARD_RECENT_ORDERS = 5
DASHBOARD_TOP_PRODUCTS = 5


def _parse_status(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized == PAID_OVERRIDE:
        return normalized
    try:
        return OrderStatus(normalized).value
    except ValueError:
        raise ValidationError(f"Invalid status: {value}", field="status")


def _date_bounds(query, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        query = query.filter(Order.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Order.created_at <= datetime.combine(end_date, time.max))
    return query


def _last_months(today: date, count: int) -> List[Tuple[int, int]]:
    """(year, month) pairs ending with the current month, oldest first."""
    index = today.year * 12 + today.month - 1
    return [(i // 12, i % 12 + 1) for i in range(index - count + 1, index + 1)]


def _completed_revenue_by_day(db: Session, since: datetime) -> Dict[str, float]:
    day = func.date(Order.created_at)
    rows = (
        db.query(day.label("day"), func.sum(Order.total_amount).label("revenue"))
        .filter(Order.status == OrderStatus.COMPLETED, Order.created_at >= since)
        .group_by(day)
        .all()
    )
    return {str(row.day): float(row.revenue or 0) for row in rows}


class OrderTrackingService:

    @staticmethod
    def get_order(db: Session, actor: Actor, order_id: str) -> Order:
        require(actor, Action.ORDER_LIST_ALL)
        order = db.query(Order).filter(Order.order_id == order_id).first()
        if not order:
            raise OrderNotFound()
        return order

    @staticmethod
    def set_status(
        db: Session,
        actor: Actor,
        order_id: str,
        new_status: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Apply an operator status change and its payment side effects.

        * ``paid``: payment recorded (``to_pay`` orders advance to ``to_ship``)
        * ``cancelled`` / ``refund``: payment voided
        * forward progress: payment fields untouched
        """
        require(actor, Action.ORDER_SET_STATUS)
        requested = _parse_status(new_status)

        order = db.query(Order).filter(Order.order_id == order_id).first()
        if not order:
            raise OrderNotFound()

        old_status = order.status
        old_payment_status = order.payment_status
        if old_status in TERMINAL_STATUSES and requested not in {s.value for s in VOIDING_STATUSES}:
            raise Conflict(f"Order is already {old_status.value}.")

        now = now or datetime.utcnow()
        if requested == PAID_OVERRIDE:
            if order.payment_status != PaymentStatus.PAID:
                order.payment_status = PaymentStatus.PAID
                order.paid_at = now
            if order.status == OrderStatus.TO_PAY:
                order.status = OrderStatus.TO_SHIP
        else:
            target = OrderStatus(requested)
            order.status = target
            if target in VOIDING_STATUSES:
                order.payment_status = PaymentStatus.UNPAID
                order.paid_at = None

        order.updated_at = now
        db.add(
            OrderStatusHistory(
                order_id=order.id,
                old_status=old_status.value,
                new_status=requested,
                old_payment_status=old_payment_status.value,
                new_payment_status=order.payment_status.value,
                changed_by=actor.user_id,
                notes=notes,
                created_at=now,
            )
        )
        db.commit()
        db.refresh(order)

        logger.info(
            "order_status_updated",
            order_id=order.order_id,
            old_status=old_status.value,
            new_status=order.status.value,
            payment_status=order.payment_status.value,
            operator_id=actor.user_id,
        )
        return order

    @staticmethod
    def list_orders(
        db: Session,
        actor: Actor,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        require(actor, Action.ORDER_LIST_ALL)
        query = db.query(Order)
        if status and status != "all":
            try:
                query = query.filter(Order.status == OrderStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status: {status}", field="status")
        query = _date_bounds(query, start_date, end_date)

        total = query.count()
        orders = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    @staticmethod
    def get_status_history(db: Session, actor: Actor, order_id: str) -> List[OrderStatusHistory]:
        order = OrderTrackingService.get_order(db, actor, order_id)
        return list(order.status_history)

    @staticmethod
    def sales_overview(
        db: Session,
        actor: Actor,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Daily totals plus an overall summary for the reporting page."""
        require(actor, Action.REPORT_VIEW)
        day = func.date(Order.created_at)
        query = db.query(
            day.label("day"),
            func.sum(Order.total_amount).label("total_sales"),
            func.count(Order.id).label("order_count"),
        )
        if status and status != "all":
            try:
                query = query.filter(Order.status == OrderStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status: {status}", field="status")
        query = _date_bounds(query, start_date, end_date)

        daily = [
            {
                "date": str(row.day),
                "total_sales": round(float(row.total_sales or 0), 2),
                "order_count": int(row.order_count),
            }
            for row in query.group_by(day).order_by(day).all()
        ]

        total_sales = round(sum(d["total_sales"] for d in daily), 2)
        total_orders = sum(d["order_count"] for d in daily)
        return {
            "daily": daily,
            "summary": {
                "total_sales": total_sales,
                "total_orders": total_orders,
                "average_order_value": round(total_sales / total_orders, 2) if total_orders else 0.0,
            },
        }

    @staticmethod
    def dashboard(db: Session, actor: Actor, now: Optional[datetime] = None) -> dict:
        """Back office summary built from orders.

        Revenue figures only count completed orders. Recent orders are
        returned as ORM rows for the caller to render.
        """
        require(actor, Action.REPORT_VIEW)
        now = now or datetime.utcnow()
        today = now.date()
        completed = Order.status == OrderStatus.COMPLETED

        total_orders = db.query(func.count(Order.id)).scalar() or 0
        total_products = db.query(func.count(Product.id)).scalar() or 0
        total_revenue = (
            db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(completed).scalar()
        )

        recent_orders = (
            db.query(Order)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(DASHBOARD_RECENT_ORDERS)
            .all()
        )

        counts = dict(db.query(Order.status, func.count(Order.id)).group_by(Order.status).all())
        status_counts = {status.value: int(counts.get(status, 0)) for status in OrderStatus}

        quantity = func.sum(OrderItem.quantity).label("total_qty")
        top_rows = (
            db.query(
                OrderItem.product_id,
                func.max(OrderItem.name).label("name"),
                quantity,
                func.sum(OrderItem.subtotal).label("total_revenue"),
            )
            .join(Order, OrderItem.order_id == Order.id)
            .filter(completed)
            .group_by(OrderItem.product_id)
            .order_by(quantity.desc(), OrderItem.product_id)
            .limit(DASHBOARD_TOP_PRODUCTS)
            .all()
        )
        top_products = [
            {
                "product_id": row.product_id,
                "name": row.name,
                "total_qty": int(row.total_qty),
                "total_revenue": round(float(row.total_revenue or 0), 2),
            }
            for row in top_rows
        ]

        months = _last_months(today, 12)
        daily = _completed_revenue_by_day(db, datetime.combine(date(*months[0], 1), time.min))

        days = [today - timedelta(days=offset) for offset in range(6, -1, -1)]
        revenue_last_7_days = [
            {"label": day.isoformat(), "revenue": round(daily.get(day.isoformat(), 0.0), 2)}
            for day in days
        ]

        by_month: Dict[str, float] = {}
        for day, revenue in daily.items():
            by_month[day[:7]] = by_month.get(day[:7], 0.0) + revenue
        revenue_last_12_months = [
            {"label": f"{year:04d}-{month:02d}", "revenue": round(by_month.get(f"{year:04d}-{month:02d}", 0.0), 2)}
            for year, month in months
        ]

        return {
            "total_orders": int(total_orders),
            "total_products": int(total_products),
            "total_revenue": round(float(total_revenue or 0), 2),
            "recent_orders": recent_orders,
            "status_counts": status_counts,
            "top_products": top_products,
            "revenue_last_7_days": revenue_last_7_days,
            "revenue_last_12_months": revenue_last_12_months,
        }
