from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid
from app.db.base_class import Base


class OrderStatus(str, enum.Enum):
    TO_PAY = "to_pay"
    TO_SHIP = "to_ship"
    TO_RECEIVE = "to_receive"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUND = "refund"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUND})


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    PENDING = "pending"
    UNPAID = "unpaid"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    GCASH = "gcash"  # Deferred, confirmed from a second device
    COD = "cod"  # Cash on Delivery


DEFERRED_PAYMENT_METHODS = frozenset({PaymentMethod.GCASH})


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(36), unique=True, nullable=False, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)  # Snapshot at order time

    # Totals
    total_qty = Column(Integer, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)

    # Shipping
    shipping_full_name = Column(String(100), nullable=False)
    shipping_address_line1 = Column(String(255), nullable=False)
    shipping_address_line2 = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=False)
    shipping_region = Column(String(100), nullable=False)
    shipping_postal_code = Column(String(20), nullable=False)
    shipping_phone = Column(String(30), nullable=False)

    # Status & Payment
    status = Column(
        Enum(OrderStatus, values_callable=_enum_values, native_enum=False, length=20),
        default=OrderStatus.TO_PAY,
        nullable=False,
        index=True,
    )
    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
    )
    payment_status = Column(
        Enum(PaymentStatus, values_callable=_enum_values, native_enum=False, length=20),
        default=PaymentStatus.UNPAID,
        nullable=False,
    )
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
    )

    @property
    def shipping(self) -> dict:
        return {
            "full_name": self.shipping_full_name,
            "address_line1": self.shipping_address_line1,
            "address_line2": self.shipping_address_line2,
            "city": self.shipping_city,
            "region": self.shipping_region,
            "postal_code": self.shipping_postal_code,
            "phone": self.shipping_phone,
        }


Index('idx_order_status_created', Order.status, Order.created_at)


class OrderItem(Base):
    """Frozen snapshot of a purchased line; never re-derived from Product."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Weak reference: no foreign key to products
    product_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    size = Column(String(20), nullable=True)

    # Relationships
    order = relationship("Order", back_populates="items")
