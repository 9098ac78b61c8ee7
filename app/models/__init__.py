from app.models.user import User, UserRole
from app.models.product import Product, ProductSize
from app.models.cart import SessionCart
from app.models.order import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from app.models.order_status_history import OrderStatusHistory
