from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from app.db.base_class import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Stable identifier, independent of the row id
    product_id = Column(String(36), unique=True, index=True, nullable=False, default=lambda: str(uuid.uuid4()))

    name = Column(String(200), nullable=False, index=True)
    brand = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)

    price = Column(Numeric(10, 2), nullable=False)

    # Cached sum of size stock when sizes exist
    stock = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    sizes = relationship(
        "ProductSize",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductSize.id",
    )

    def size_entry(self, label):
        return next((s for s in self.sizes if s.label == label), None)


Index('idx_product_category_name', Product.category, Product.name)


class ProductSize(Base):
    """Per-size stock for a product"""
    __tablename__ = "product_sizes"
    __table_args__ = (
        UniqueConstraint("product_id", "label", name="uq_product_sizes_product_label"),
        CheckConstraint("stock >= 0", name="ck_product_sizes_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    label = Column(String(20), nullable=False)  # S, M, L, 38, 40, etc.
    stock = Column(Integer, default=0, nullable=False)

    # Relationships
    product = relationship("Product", back_populates="sizes")
