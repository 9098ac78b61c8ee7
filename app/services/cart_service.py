"""Cart engine.

A :class:`~app.schemas.cart.Cart` is a plain value: every operation takes a
cart and returns a new one with totals recomputed. Persisting the result to
the session or the account record is left to the caller (see
``app.services.cart_store``).
"""
from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import OutOfStock, ValidationError
from app.models.product import Product
from app.schemas.cart import Cart, CartLine
from app.services.inventory_service import available_stock, find_product, get_product_or_404

logger = structlog.get_logger()


def _normalize_size(size: Optional[str]) -> Optional[str]:
    if size is None:
        return None
    return size.strip() or None


def _find_line(cart: Cart, product_ids: Iterable[str], size: Optional[str]) -> Optional[CartLine]:
    ids = set(product_ids)
    return next(
        (line for line in cart.items if line.product_id in ids and (line.size or None) == size),
        None,
    )


def recalculate(cart: Cart) -> Cart:
    total_qty = 0
    total_amount = 0.0
    for line in cart.items:
        line.subtotal = round(line.price * line.quantity, 2)
        total_qty += line.quantity
        total_amount += line.subtotal

    cart.total_qty = total_qty
    cart.total_amount = round(total_amount, 2)
    return cart


def add_item(db: Session, cart: Cart, product_ref, quantity: int = 1, size: Optional[str] = None) -> Cart:
    cart = cart.model_copy(deep=True)
    size = _normalize_size(size)
    product = get_product_or_404(db, product_ref)
    if product.sizes and not size:
        raise ValidationError(f"Please select a size for {product.name}", field="size")

    stock = available_stock(product, size)
    if stock <= 0:
        raise OutOfStock(product.name, size)

    qty = max(1, quantity)
    existing = _find_line(cart, [product.product_id], size)
    if existing:
        existing.quantity = min(existing.quantity + qty, stock)
    else:
        cart.items.append(
            CartLine(
                product_id=product.product_id,
                name=product.name,
                brand=product.brand,
                price=float(product.price),
                image_url=product.image_url or settings.PLACEHOLDER_IMAGE_URL,
                size=size,
                quantity=min(qty, stock),
            )
        )

    return recalculate(cart)


def _line_ids(product_ref, product: Optional[Product]) -> set:
    """Cart lines store the stable id; a row id ref is resolved to it."""
    ids = {str(product_ref)}
    if product:
        ids.add(product.product_id)
    return ids


def update_quantity(db: Session, cart: Cart, product_ref, size: Optional[str], quantity: int) -> Cart:
    """Set a line's quantity, clamped to live stock. Below one removes it."""
    cart = cart.model_copy(deep=True)
    size = _normalize_size(size)
    product = find_product(db, product_ref)
    ids = _line_ids(product_ref, product)

    if quantity >= 1:
        line = _find_line(cart, ids, size)
        if line:
            max_stock = available_stock(product, size) if product else quantity
            line.quantity = min(quantity, max_stock)

    cart.items = [
        line
        for line in cart.items
        if not (line.product_id in ids and (line.size or None) == size and (quantity < 1 or line.quantity < 1))
    ]
    return recalculate(cart)


def remove_item(db: Session, cart: Cart, product_ref, size: Optional[str] = None) -> Tuple[Cart, bool]:
    cart = cart.model_copy(deep=True)
    size = _normalize_size(size)
    ids = _line_ids(product_ref, find_product(db, product_ref))
    remaining = [line for line in cart.items if not (line.product_id in ids and (line.size or None) == size)]
    removed = len(remaining) != len(cart.items)
    cart.items = remaining
    return recalculate(cart), removed


def clear(cart: Optional[Cart] = None) -> Cart:
    return Cart()


def select_lines(cart: Cart, keys: Optional[List[str]]) -> List[CartLine]:
    """Lines picked for checkout; ``None`` selects the whole cart."""
    if keys is None:
        return [line.model_copy() for line in cart.items]
    if not keys:
        raise ValidationError("Your cart is empty.", field="selectedItems")

    by_key = {line.key: line for line in cart.items}
    unknown = [key for key in keys if key not in by_key]
    if unknown:
        raise ValidationError(f"Item not in cart: {unknown[0]}", field="selectedItems")

    seen = set()
    selected = []
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        selected.append(by_key[key].model_copy())
    return selected


def remove_lines(cart: Cart, keys: Iterable[str]) -> Cart:
    cart = cart.model_copy(deep=True)
    drop = set(keys)
    cart.items = [line for line in cart.items if line.key not in drop]
    return recalculate(cart)


def merge_carts(db: Session, account_cart: Optional[Cart], guest_cart: Optional[Cart]) -> Cart:
    """Merge a guest cart into the stored account cart at login.

    Quantities are summed per (productId, size) and capped at live stock.
    Lines whose product is gone or sold out are dropped.
    """
    merged = (account_cart or Cart()).model_copy(deep=True)
    for guest_line in (guest_cart or Cart()).items:
        existing = _find_line(merged, [guest_line.product_id], guest_line.size or None)
        if existing:
            existing.quantity += guest_line.quantity
        else:
            merged.items.append(guest_line.model_copy())

    kept = []
    for line in merged.items:
        product = find_product(db, line.product_id)
        if not product:
            logger.info("cart_merge_dropped_line", product_id=line.product_id, reason="not_found")
            continue
        stock = available_stock(product, line.size)
        if stock <= 0:
            logger.info("cart_merge_dropped_line", product_id=line.product_id, reason="out_of_stock")
            continue
        line.quantity = min(line.quantity, stock)
        kept.append(line)

    merged.items = kept
    return recalculate(merged)
