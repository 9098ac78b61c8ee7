from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, OrderNotFound
from app.models.order import OrderStatus, PaymentMethod, PaymentStatus
from app.services import checkout_service, payment_service
from app.services.checkout_service import CheckoutLine
from app.services.order_tracking_service import OrderTrackingService
from conftest import SHIPPING_PAYLOAD, actor_of, auth_headers


def _place_order(db: Session, user, product, shipping, method=PaymentMethod.GCASH):
    return checkout_service.create_order(
        db,
        actor_of(user),
        [CheckoutLine(product_ref=product.product_id, quantity=1)],
        shipping,
        method,
    ).order


def test_confirm_payment_is_idempotent(db_session: Session, customer, make_product, shipping):
    order = _place_order(db_session, customer, make_product(), shipping)
    first_time = datetime(2026, 5, 1, 9, 30, 0)

    order, applied = payment_service.confirm_payment(db_session, order.order_id, now=first_time)
    assert applied is True
    assert order.payment_status == PaymentStatus.PAID
    assert order.status == OrderStatus.TO_SHIP
    assert order.paid_at == first_time

    order, applied = payment_service.confirm_payment(db_session, order.order_id, now=datetime(2026, 5, 2))
    assert applied is False
    assert order.paid_at == first_time


def test_confirm_payment_keeps_later_fulfillment_status(
    db_session: Session, customer, operator, make_product, shipping
):
    order = _place_order(db_session, customer, make_product(), shipping)
    OrderTrackingService.set_status(db_session, actor_of(operator), order.order_id, "to_ship")
    OrderTrackingService.set_status(db_session, actor_of(operator), order.order_id, "to_receive")

    order, applied = payment_service.confirm_payment(db_session, order.order_id)

    assert applied is True
    assert order.status == OrderStatus.TO_RECEIVE
    assert order.payment_status == PaymentStatus.PAID
    assert order.paid_at is not None


def test_confirm_payment_rejects_non_deferred_orders(db_session: Session, customer, make_product, shipping):
    order = _place_order(db_session, customer, make_product(), shipping, PaymentMethod.COD)

    with pytest.raises(OrderNotFound):
        payment_service.confirm_payment(db_session, order.order_id)


def test_confirm_payment_rejects_cancelled_order(db_session: Session, customer, operator, make_product, shipping):
    order = _place_order(db_session, customer, make_product(), shipping)
    OrderTrackingService.set_status(db_session, actor_of(operator), order.order_id, "cancelled")

    with pytest.raises(Conflict):
        payment_service.confirm_payment(db_session, order.order_id)


def test_confirmation_reference_is_absolute():
    reference = payment_service.confirmation_reference("abc")

    assert reference == "http://localhost:8000/api/v1/payments/gcash/abc/confirm"


def test_gcash_lifecycle_over_http(client: TestClient, customer, make_product):
    product = make_product(stock=3)

    placed = client.post(
        "/api/v1/orders/buy-now",
        json={
            "productId": product.product_id,
            "quantity": 1,
            "shipping": SHIPPING_PAYLOAD,
            "paymentMethod": "gcash",
        },
        headers=auth_headers(customer),
    )
    assert placed.status_code == 201
    body = placed.json()["data"]
    order_id = body["order"]["orderId"]
    assert body["order"]["status"] == "to_pay"
    assert body["order"]["paymentStatus"] == "pending"
    assert body["redirect"] == f"/api/v1/payments/gcash/{order_id}"

    page = client.get(f"/api/v1/payments/gcash/{order_id}")
    assert page.status_code == 200
    assert page.json()["data"]["reference"].endswith(f"/payments/gcash/{order_id}/confirm")

    poll = client.get(f"/api/v1/payments/gcash/{order_id}/status")
    assert poll.json()["data"] == {"paid": False, "next": None}

    confirmed = client.post(f"/api/v1/payments/gcash/{order_id}/confirm")
    assert confirmed.status_code == 200
    data = confirmed.json()["data"]
    assert data["alreadyPaid"] is False
    assert data["order"]["paymentStatus"] == "paid"
    assert data["order"]["status"] == "to_ship"
    paid_at = data["order"]["paidAt"]

    again = client.post(f"/api/v1/payments/gcash/{order_id}/confirm")
    assert again.json()["data"]["alreadyPaid"] is True
    assert again.json()["message"] == "Payment already confirmed"
    assert again.json()["data"]["order"]["paidAt"] == paid_at

    poll = client.get(f"/api/v1/payments/gcash/{order_id}/status")
    assert poll.json()["data"] == {"paid": True, "next": f"/api/v1/orders/{order_id}"}


def test_payment_page_unknown_order(client: TestClient):
    response = client.get("/api/v1/payments/gcash/does-not-exist")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["message"] == "Order not found."
