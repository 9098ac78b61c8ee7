from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import require_operator
from app.core.permissions import Action, Actor, require
from app.core.rate_limiter import limiter
from app.db.session import get_db
from app.models.order import Order
from app.models.user import User
from app.schemas.order import order_to_response
from app.schemas.order_tracking import (
    DailySales,
    DashboardStats,
    OrderStatusHistoryResponse,
    OrderStatusUpdate,
    SalesSummary,
)
from app.services import inventory_service
from app.services.order_tracking_service import OrderTrackingService
from app.utils.response import paginated_response, success

router = APIRouter()


def _admin_order(db: Session, order: Order) -> dict:
    data = order_to_response(order).model_dump(by_alias=True)
    account = db.get(User, order.user_id)
    data["userEmail"] = account.email if account else (order.email or "Unknown")
    return data


# ============= DASHBOARD =============

@router.get("/dashboard")
@limiter.limit("60/minute")
def get_dashboard(
    request: Request,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Order counts, revenue and top sellers"""
    stats = OrderTrackingService.dashboard(db, current_admin)
    recent_orders = stats.pop("recent_orders")
    data = DashboardStats(**stats).model_dump(by_alias=True)
    data["recentOrders"] = [_admin_order(db, order) for order in recent_orders]
    return success(data=data, message="Dashboard data retrieved")


# ============= ORDER MANAGEMENT =============

@router.get("/orders")
@limiter.limit("60/minute")
def get_all_orders(
    request: Request,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Get all orders, newest first"""
    orders, total = OrderTrackingService.list_orders(
        db, current_admin, status=status, start_date=start_date, end_date=end_date, page=page, limit=limit
    )
    return paginated_response([_admin_order(db, order) for order in orders], total, page, limit)


@router.get("/orders/{order_id}")
@limiter.limit("60/minute")
def get_order_detail_admin(
    request: Request,
    order_id: str,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Get order details"""
    order = OrderTrackingService.get_order(db, current_admin, order_id)
    return success(data=_admin_order(db, order), message="Order details retrieved successfully")


@router.get("/orders/{order_id}/history")
@limiter.limit("60/minute")
def get_order_history(
    request: Request,
    order_id: str,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Status changes recorded for an order"""
    history = OrderTrackingService.get_status_history(db, current_admin, order_id)
    return success(
        data=[
            OrderStatusHistoryResponse.model_validate(entry, from_attributes=True).model_dump(by_alias=True)
            for entry in history
        ],
        message="Order history retrieved",
    )


@router.put(
    "/orders/{order_id}/status",
    summary="Update order status (admin)",
    description="""
Sets the fulfillment status. Payment fields follow the status:

1. `paid` records the payment (a `to_pay` order moves to `to_ship`)
2. `cancelled` / `refund` void the payment
3. forward progress leaves payment untouched
""",
    responses={
        200: {"description": "Order status updated successfully"},
        403: {"description": "Admin access required"},
        404: {"description": "Order not found"},
        409: {"description": "Order is in a terminal state"},
        422: {"description": "Invalid status"},
    },
    tags=["Admin"],
)
@limiter.limit("30/minute")
def update_order_status(
    request: Request,
    order_id: str,
    payload: OrderStatusUpdate,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Update order status"""
    order = OrderTrackingService.set_status(db, current_admin, order_id, payload.status, payload.notes)
    return success(data=_admin_order(db, order), message="Order status updated successfully")


# ============= PRODUCTS =============

@router.delete("/products/{product_ref}")
@limiter.limit("20/minute")
def delete_product(
    request: Request,
    product_ref: str,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Delete a product no order refers to"""
    require(current_admin, Action.PRODUCT_DELETE)
    product_id = inventory_service.delete_product(db, product_ref)
    return success(data={"productId": product_id}, message="Product deleted successfully")


# ============= REPORTS =============

@router.get("/reports/sales")
@limiter.limit("60/minute")
def sales_overview(
    request: Request,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_admin: Actor = Depends(require_operator),
    db: Session = Depends(get_db),
):
    """Admin: Daily sales totals and summary"""
    report = OrderTrackingService.sales_overview(
        db, current_admin, status=status, start_date=start_date, end_date=end_date
    )
    data = {
        "daily": [DailySales(**day).model_dump(by_alias=True) for day in report["daily"]],
        "summary": SalesSummary(**report["summary"]).model_dump(by_alias=True),
        "filters": {
            "status": status or "all",
            "startDate": start_date,
            "endDate": end_date,
        },
    }
    return success(data=data, message="Sales overview retrieved")
