from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.api.deps import actor_for, get_cart_session_id, get_optional_user
from app.core.config import settings
from app.core.permissions import Action, require
from app.core.rate_limiter import limiter
from app.db.session import get_db
from app.models.user import User
from app.schemas.cart import Cart, CartItemAdd, CartItemRemove, CartItemUpdate
from app.services import cart_service
from app.services.cart_store import load_cart, new_session_id, persist_to_account, save_session_cart
from app.utils.response import success

router = APIRouter()


def attach_session(response: Response, session_id: str) -> None:
    response.headers[settings.CART_SESSION_HEADER] = session_id
    response.set_cookie(
        settings.CART_SESSION_COOKIE,
        session_id,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def store_cart(
    response: Response,
    db: Session,
    session_id: Optional[str],
    user: Optional[User],
    cart: Cart,
) -> str:
    """Write the cart to the session and mirror it to the account."""
    session_id = session_id or new_session_id()
    save_session_cart(db, session_id, cart)
    persist_to_account(db, user, cart)
    attach_session(response, session_id)
    return session_id


def cart_payload(cart: Cart, **extra) -> dict:
    data = {
        "cart": cart.model_dump(by_alias=True),
        "cartCount": cart.total_qty,
        "cartAmount": cart.total_amount,
    }
    data.update(extra)
    return data


@router.get("/", response_model=dict)
@limiter.limit("120/minute")
def get_cart(
    request: Request,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Get the visitor's cart"""
    cart = load_cart(db, session_id, current_user)
    return success(data=cart_payload(cart), message="Cart retrieved")


@router.post("/add", response_model=dict)
@limiter.limit("60/minute")
def add_to_cart(
    request: Request,
    response: Response,
    payload: CartItemAdd,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Add item to cart"""
    require(actor_for(current_user), Action.CART_MUTATE)
    cart = load_cart(db, session_id, current_user)
    cart = cart_service.add_item(db, cart, payload.product_id, payload.quantity, payload.size)
    store_cart(response, db, session_id, current_user, cart)
    return success(data=cart_payload(cart), message="Item added to cart")


@router.post("/update", response_model=dict)
@limiter.limit("60/minute")
def update_cart_item(
    request: Request,
    response: Response,
    payload: CartItemUpdate,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Update cart item quantity; below one removes the line"""
    require(actor_for(current_user), Action.CART_MUTATE)
    cart = load_cart(db, session_id, current_user)
    cart = cart_service.update_quantity(db, cart, payload.product_id, payload.size, payload.quantity)
    store_cart(response, db, session_id, current_user, cart)
    return success(data=cart_payload(cart), message="Cart updated")


@router.post("/remove", response_model=dict)
@limiter.limit("60/minute")
def remove_from_cart(
    request: Request,
    response: Response,
    payload: CartItemRemove,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Remove item from cart"""
    require(actor_for(current_user), Action.CART_MUTATE)
    cart = load_cart(db, session_id, current_user)
    cart, removed = cart_service.remove_item(db, cart, payload.product_id, payload.size)
    store_cart(response, db, session_id, current_user, cart)
    return success(
        data=cart_payload(cart, removed=removed),
        message="Item removed from cart" if removed else "Item was not in cart",
    )


@router.post("/clear", response_model=dict)
@limiter.limit("30/minute")
def clear_cart(
    request: Request,
    response: Response,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Clear entire cart"""
    require(actor_for(current_user), Action.CART_MUTATE)
    cart = cart_service.clear()
    store_cart(response, db, session_id, current_user, cart)
    return success(data=cart_payload(cart), message="Cart cleared")
