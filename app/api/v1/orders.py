from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import actor_for, get_cart_session_id, get_current_user
from app.api.v1.cart import store_cart
from app.core.rate_limiter import limiter
from app.db.session import get_db
from app.models.user import User
from app.schemas.order import (
    BuyNowRequest,
    CheckoutRequest,
    CheckoutResponse,
    InventoryShortfall,
    order_to_response,
)
from app.services import checkout_service
from app.services.cart_store import load_cart
from app.services.checkout_service import CheckoutResult
from app.utils.response import success

router = APIRouter()


def _checkout_payload(result: CheckoutResult) -> dict:
    body = CheckoutResponse(
        order=order_to_response(result.order),
        redirect=result.redirect_to,
        cart=result.cart,
        inventory_shortfalls=[
            InventoryShortfall(
                product_id=s.product_id,
                name=s.name,
                size=s.size,
                quantity=s.quantity,
            )
            for s in result.shortfalls
        ],
    )
    return body.model_dump(by_alias=True)


def _checkout_message(result: CheckoutResult) -> str:
    if result.redirect_to:
        return "Order created. Confirm the payment on your phone."
    return f"Your order {result.order.order_id} has been placed successfully."


@router.post(
    "/checkout",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Checkout selected cart items",
    description="""
Creates an order from the cart (or the selected cart lines).

Process:
1. Re-checks live stock for every selected line
2. Creates the order with an item snapshot and initial payment state
3. Decrements inventory per line
4. Removes only the processed lines from the cart
5. For deferred payment, returns a redirect to the payment page
""",
    responses={
        201: {"description": "Order created"},
        401: {"description": "Authentication required"},
        409: {"description": "Insufficient stock"},
        422: {"description": "Empty cart, unknown line or missing shipping field"},
    },
    tags=["Orders"],
)
@limiter.limit("10/minute")
def checkout(
    request: Request,
    response: Response,
    payload: CheckoutRequest,
    session_id: Optional[str] = Depends(get_cart_session_id),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Checkout from the cart"""
    cart = load_cart(db, session_id, current_user)
    result = checkout_service.checkout_cart(
        db,
        actor_for(current_user),
        cart,
        payload.selected_items,
        payload.shipping,
        payload.payment_method,
    )
    store_cart(response, db, session_id, current_user, result.cart)
    return success(data=_checkout_payload(result), message=_checkout_message(result))


@router.post("/buy-now", response_model=dict, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def buy_now(
    request: Request,
    payload: BuyNowRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Place an order for a single product without touching the cart"""
    result = checkout_service.checkout_single_item(
        db,
        actor_for(current_user),
        payload.product_id,
        payload.quantity,
        payload.size,
        payload.shipping,
        payload.payment_method,
    )
    return success(data=_checkout_payload(result), message=_checkout_message(result))


@router.get("/", response_model=dict)
@limiter.limit("30/minute")
def get_user_orders(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get user's order history"""
    orders = checkout_service.list_customer_orders(db, actor_for(current_user))
    return success(
        data=[order_to_response(order).model_dump(by_alias=True) for order in orders],
        message="Orders retrieved",
    )


@router.get("/{order_id}", response_model=dict)
@limiter.limit("30/minute")
def get_order_detail(
    request: Request,
    order_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get order details"""
    order = checkout_service.get_customer_order(db, actor_for(current_user), order_id)
    return success(data=order_to_response(order).model_dump(by_alias=True), message="Order detail retrieved")
