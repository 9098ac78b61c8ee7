from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.rate_limiter import limiter
from app.db.session import get_db
from app.schemas.order import order_to_response
from app.schemas.order_tracking import PaymentPollResponse
from app.services import payment_service
from app.utils.response import success

router = APIRouter()


@router.get("/gcash/{order_id}", response_model=dict)
@limiter.limit("60/minute")
def show_payment(
    request: Request,
    order_id: str,
    db: Session = Depends(get_db),
):
    """Order awaiting mobile confirmation, with the reference to scan"""
    order, reference = payment_service.get_order_for_payment(db, order_id)
    return success(
        data={
            "order": order_to_response(order).model_dump(by_alias=True),
            "reference": reference,
        },
        message="Scan the code with your phone to pay",
    )


@router.get("/gcash/{order_id}/status", response_model=dict)
@limiter.limit("240/minute")
def poll_payment(
    request: Request,
    order_id: str,
    db: Session = Depends(get_db),
):
    """Polled by the checkout page until the payment lands"""
    result = PaymentPollResponse(**payment_service.poll_payment_status(db, order_id))
    return success(data=result.model_dump(by_alias=True))


@router.post("/gcash/{order_id}/confirm", response_model=dict)
@limiter.limit("30/minute")
def confirm_payment(
    request: Request,
    order_id: str,
    db: Session = Depends(get_db),
):
    """Called from the payer's device; safe to repeat"""
    order, applied = payment_service.confirm_payment(db, order_id)
    return success(
        data={
            "order": order_to_response(order).model_dump(by_alias=True),
            "alreadyPaid": not applied,
            "next": payment_service.order_detail_path(order.order_id),
        },
        message="Payment successful" if applied else "Payment already confirmed",
    )
