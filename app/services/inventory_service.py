"""Product stock access for the cart and checkout engines.

Stock is only ever lowered through conditional ``UPDATE`` statements
(``stock = stock - :qty WHERE stock >= :qty``) so concurrent checkouts cannot
lose updates or push a counter below zero. A ``False`` return from a
decrement means the row did not have enough stock and nothing changed.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import Conflict, ProductNotFound
from app.models.order import OrderItem
from app.models.product import Product, ProductSize

logger = structlog.get_logger()


def find_product(db: Session, product_ref) -> Optional[Product]:
    """Resolve by stable product id, falling back to the row id."""
    if product_ref is None:
        return None
    ref = str(product_ref).strip()
    if not ref:
        return None

    product = db.query(Product).filter(Product.product_id == ref).first()
    if product is None and ref.isdigit():
        product = db.get(Product, int(ref))
    return product


def get_product_or_404(db: Session, product_ref) -> Product:
    product = find_product(db, product_ref)
    if not product:
        raise ProductNotFound(str(product_ref))
    return product


def available_stock(product: Product, size: Optional[str] = None) -> int:
    if product.sizes and size:
        entry = product.size_entry(size)
        return entry.stock if entry else 0
    return product.stock


def _log_stock_depletion_warning(db: Session, product_pk: int) -> None:
    stock = db.query(Product.stock).filter(Product.id == product_pk).scalar()
    if stock is None:
        return
    if stock <= 0:
        logger.warning("stock_depleted", product_pk=product_pk, stock=stock)
    elif stock <= settings.LOW_STOCK_WARNING_THRESHOLD:
        logger.warning("stock_depletion_warning", product_pk=product_pk, stock=stock)


def recompute_total_stock(db: Session, product_pk: int) -> None:
    size_total = (
        select(func.coalesce(func.sum(ProductSize.stock), 0))
        .where(ProductSize.product_id == product_pk)
        .scalar_subquery()
    )
    db.execute(
        update(Product)
        .where(Product.id == product_pk)
        .values(stock=size_total, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def decrement_stock(db: Session, product_pk: int, qty: int) -> bool:
    result = db.execute(
        update(Product)
        .where(Product.id == product_pk, Product.stock >= qty)
        .values(stock=Product.stock - qty, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    _log_stock_depletion_warning(db, product_pk)
    return True


def decrement_size_stock(db: Session, product_pk: int, size_label: str, qty: int) -> bool:
    result = db.execute(
        update(ProductSize)
        .where(
            ProductSize.product_id == product_pk,
            ProductSize.label == size_label,
            ProductSize.stock >= qty,
        )
        .values(stock=ProductSize.stock - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    recompute_total_stock(db, product_pk)
    _log_stock_depletion_warning(db, product_pk)
    return True


def delete_product(db: Session, product_ref) -> str:
    """Delete a product that no order references. Returns its product id."""
    product = get_product_or_404(db, product_ref)

    referenced = (
        db.query(OrderItem.id)
        .filter(OrderItem.product_id == product.product_id)
        .first()
    )
    if referenced is not None:
        raise Conflict("Cannot delete this product because it is already used in one or more orders.")

    product_id = product.product_id
    db.delete(product)
    db.commit()
    logger.info("product_deleted", product_id=product_id)
    return product_id
