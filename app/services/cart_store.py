import secrets
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.models.cart import SessionCart
from app.models.user import User
from app.schemas.cart import Cart

logger = structlog.get_logger()


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def _parse(data, **context) -> Optional[Cart]:
    if not data:
        return None
    try:
        return Cart.model_validate(data)
    except PydanticValidationError:
        logger.warning("cart_payload_invalid", **context)
        return None


def load_session_cart(db: Session, session_id: Optional[str]) -> Optional[Cart]:
    if not session_id:
        return None
    row = db.query(SessionCart).filter(SessionCart.session_id == session_id).first()
    if not row:
        return None
    return _parse(row.data, session_id=session_id)


def load_account_cart(user: Optional[User]) -> Optional[Cart]:
    if user is None:
        return None
    return _parse(user.cart, user_id=user.id)


def load_cart(db: Session, session_id: Optional[str], user: Optional[User] = None) -> Cart:
    """Session copy first, then the account mirror, else an empty cart."""
    cart = load_session_cart(db, session_id)
    if cart is None:
        cart = load_account_cart(user)
    return cart or Cart()


def save_session_cart(db: Session, session_id: str, cart: Cart) -> None:
    row = db.query(SessionCart).filter(SessionCart.session_id == session_id).first()
    if row:
        row.data = cart.to_storage()
    else:
        db.add(SessionCart(session_id=session_id, data=cart.to_storage()))
    db.commit()


def persist_to_account(db: Session, user: Optional[User], cart: Cart) -> bool:
    """Mirror the cart into the account record; failures are only logged."""
    if user is None:
        return False
    try:
        user.cart = cart.to_storage()
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("cart_persist_failed", user_id=user.id)
        return False
