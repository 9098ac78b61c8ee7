from typing import Dict, List, Optional
from datetime import datetime

from pydantic import Field

from app.schemas.cart import CamelModel


class OrderStatusUpdate(CamelModel):
    # Validated by the admin service so the error names the value
    status: str = Field(..., min_length=1)
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderStatusHistoryResponse(CamelModel):
    old_status: Optional[str] = None
    new_status: str
    old_payment_status: Optional[str] = None
    new_payment_status: Optional[str] = None
    changed_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


class PaymentPollResponse(CamelModel):
    paid: bool
    next: Optional[str] = None


class DailySales(CamelModel):
    date: str
    total_sales: float
    order_count: int


class SalesSummary(CamelModel):
    total_sales: float
    total_orders: int
    average_order_value: float


class RevenuePoint(CamelModel):
    label: str
    revenue: float


class TopProduct(CamelModel):
    product_id: str
    name: str
    total_qty: int
    total_revenue: float


class DashboardStats(CamelModel):
    total_orders: int
    total_products: int
    total_revenue: float
    status_counts: Dict[str, int]
    top_products: List[TopProduct]
    revenue_last_7_days: List[RevenuePoint]
    revenue_last_12_months: List[RevenuePoint]
