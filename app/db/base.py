from app.db.base_class import Base


# IMPORT ALL MODELS HERE (THIS REGISTERS THEM WITH Base.metadata)
from app.models.user import User
from app.models.product import Product, ProductSize
from app.models.cart import SessionCart
from app.models.order import Order, OrderItem
from app.models.order_status_history import OrderStatusHistory
