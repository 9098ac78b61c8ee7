from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import Forbidden, InsufficientStock, OrderNotFound, OutOfStock, ValidationError
from app.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from app.models.product import Product
from app.schemas.cart import Cart
from app.services import cart_service, checkout_service
from app.services.checkout_service import CheckoutLine
from conftest import actor_of


def _stock(db: Session, product: Product) -> int:
    db.expire_all()
    return db.get(Product, product.id).stock


def test_second_checkout_fails_when_stock_ran_out(db_session: Session, customer, make_product, shipping):
    product = make_product(stock=5)
    actor = actor_of(customer)
    line = CheckoutLine(product_ref=product.product_id, quantity=3)

    first = checkout_service.create_order(db_session, actor, [line], shipping, PaymentMethod.COD)
    assert first.shortfalls == []
    assert _stock(db_session, product) == 2

    with pytest.raises(InsufficientStock) as exc_info:
        checkout_service.create_order(db_session, actor, [line], shipping, PaymentMethod.COD)

    assert exc_info.value.status_code == 409
    assert exc_info.value.errors[0]["available"] == 2
    assert "Not enough stock for" in exc_info.value.message
    assert _stock(db_session, product) == 2
    assert db_session.query(Order).count() == 1


def test_stock_check_sums_repeated_lines(db_session: Session, customer, make_product, shipping):
    product = make_product(stock=4)
    lines = [
        CheckoutLine(product_ref=product.product_id, quantity=2),
        CheckoutLine(product_ref=product.product_id, quantity=3),
    ]

    with pytest.raises(InsufficientStock):
        checkout_service.create_order(db_session, actor_of(customer), lines, shipping, PaymentMethod.CARD)

    assert _stock(db_session, product) == 4


@pytest.mark.parametrize(
    "method,status,payment_status,paid",
    [
        (PaymentMethod.CARD, OrderStatus.TO_SHIP, PaymentStatus.PAID, True),
        (PaymentMethod.GCASH, OrderStatus.TO_PAY, PaymentStatus.PENDING, False),
        (PaymentMethod.COD, OrderStatus.TO_SHIP, PaymentStatus.UNPAID, False),
    ],
)
def test_initial_payment_state(
    db_session: Session, customer, make_product, shipping, method, status, payment_status, paid
):
    product = make_product()
    now = datetime(2026, 3, 1, 12, 0, 0)

    result = checkout_service.create_order(
        db_session,
        actor_of(customer),
        [CheckoutLine(product_ref=product.product_id, quantity=1)],
        shipping,
        method,
        now=now,
    )

    order = result.order
    assert order.status == status
    assert order.payment_status == payment_status
    assert (order.paid_at == now) if paid else (order.paid_at is None)
    if method == PaymentMethod.GCASH:
        assert result.redirect_to == f"/api/v1/payments/gcash/{order.order_id}"
    else:
        assert result.redirect_to is None


def test_order_snapshot_and_totals(db_session: Session, customer, make_product, shipping):
    shoe = make_product(name="Shoe", price="120.50", stock=5)
    sock = make_product(name="Sock", price="10.00", stock=5)
    lines = [
        CheckoutLine(product_ref=shoe.product_id, quantity=2),
        CheckoutLine(product_ref=sock.product_id, quantity=3),
    ]

    order = checkout_service.create_order(db_session, actor_of(customer), lines, shipping, PaymentMethod.CARD).order

    assert order.total_qty == 5
    assert order.total_amount == Decimal("271.00")
    assert [item.name for item in order.items] == ["Shoe", "Sock"]
    assert order.email == customer.email
    assert order.shipping["city"] == "Quezon City"

    shoe.price = Decimal("999.00")
    db_session.commit()
    db_session.refresh(order)
    assert order.items[0].price == Decimal("120.50")


def test_sized_checkout_keeps_cached_total(db_session: Session, customer, make_product, shipping):
    product = make_product(sizes={"40": 2, "41": 3})

    checkout_service.create_order(
        db_session,
        actor_of(customer),
        [CheckoutLine(product_ref=product.product_id, quantity=2, size="41")],
        shipping,
        PaymentMethod.COD,
    )

    db_session.expire_all()
    product = db_session.get(Product, product.id)
    assert product.size_entry("41").stock == 1
    assert product.stock == sum(entry.stock for entry in product.sizes) == 3


def test_sized_checkout_requires_size(db_session: Session, customer, make_product, shipping):
    product = make_product(sizes={"40": 2})

    with pytest.raises(ValidationError):
        checkout_service.create_order(
            db_session,
            actor_of(customer),
            [CheckoutLine(product_ref=product.product_id, quantity=1)],
            shipping,
            PaymentMethod.COD,
        )


def test_empty_checkout_rejected(db_session: Session, customer, shipping):
    with pytest.raises(ValidationError) as exc_info:
        checkout_service.create_order(db_session, actor_of(customer), [], shipping, PaymentMethod.CARD)

    assert exc_info.value.message == "Your cart is empty."


def test_operator_cannot_checkout(db_session: Session, operator, make_product, shipping):
    product = make_product()

    with pytest.raises(Forbidden):
        checkout_service.create_order(
            db_session,
            actor_of(operator),
            [CheckoutLine(product_ref=product.product_id, quantity=1)],
            shipping,
            PaymentMethod.CARD,
        )


def test_rejected_decrement_is_reported_not_rolled_back(
    db_session: Session, customer, make_product, shipping, monkeypatch
):
    product = make_product(stock=5)
    monkeypatch.setattr(checkout_service, "decrement_stock", lambda db, pk, qty: False)

    result = checkout_service.create_order(
        db_session,
        actor_of(customer),
        [CheckoutLine(product_ref=product.product_id, quantity=2)],
        shipping,
        PaymentMethod.COD,
    )

    assert db_session.query(Order).count() == 1
    assert [(s.product_id, s.quantity) for s in result.shortfalls] == [(product.product_id, 2)]
    assert _stock(db_session, product) == 5


def test_checkout_cart_removes_only_selected_lines(db_session: Session, customer, make_product, shipping):
    shoe = make_product(name="Shoe", stock=5)
    sock = make_product(name="Sock", stock=5)
    cart = cart_service.add_item(db_session, Cart(), shoe.product_id, 1)
    cart = cart_service.add_item(db_session, cart, sock.product_id, 2)
    shoe_key = cart.items[0].key

    result = checkout_service.checkout_cart(
        db_session, actor_of(customer), cart, [shoe_key], shipping, PaymentMethod.CARD
    )

    assert [item.name for item in result.order.items] == ["Shoe"]
    assert [line.name for line in result.cart.items] == ["Sock"]
    assert result.cart.total_qty == 2
    assert _stock(db_session, sock) == 5


def test_checkout_cart_whole_cart_empties_it(db_session: Session, customer, make_product, shipping):
    shoe = make_product(stock=5)
    cart = cart_service.add_item(db_session, Cart(), shoe.product_id, 2)

    result = checkout_service.checkout_cart(db_session, actor_of(customer), cart, None, shipping, PaymentMethod.COD)

    assert result.cart.items == []
    assert result.order.total_qty == 2


def test_failed_checkout_leaves_cart_untouched(db_session: Session, customer, make_product, shipping):
    shoe = make_product(stock=5)
    cart = cart_service.add_item(db_session, Cart(), shoe.product_id, 3)
    shoe.stock = 1
    db_session.commit()

    with pytest.raises(InsufficientStock):
        checkout_service.checkout_cart(db_session, actor_of(customer), cart, None, shipping, PaymentMethod.COD)

    assert cart.items[0].quantity == 3


def test_buy_now_clamps_quantity(db_session: Session, customer, make_product, shipping):
    product = make_product(stock=2)

    result = checkout_service.checkout_single_item(
        db_session, actor_of(customer), product.product_id, 5, None, shipping, PaymentMethod.CARD
    )

    assert result.order.total_qty == 2
    assert _stock(db_session, product) == 0


def test_buy_now_out_of_stock(db_session: Session, customer, make_product, shipping):
    product = make_product(stock=0)

    with pytest.raises(OutOfStock):
        checkout_service.checkout_single_item(
            db_session, actor_of(customer), product.product_id, 1, None, shipping, PaymentMethod.CARD
        )


def test_customer_sees_only_own_orders(db_session: Session, customer, make_user, make_product, shipping):
    other = make_user("other@example.com")
    product = make_product(stock=5)
    line = CheckoutLine(product_ref=product.product_id, quantity=1)
    mine = checkout_service.create_order(db_session, actor_of(customer), [line], shipping, PaymentMethod.COD).order

    assert [o.order_id for o in checkout_service.list_customer_orders(db_session, actor_of(customer))] == [mine.order_id]
    assert checkout_service.list_customer_orders(db_session, actor_of(other)) == []
    with pytest.raises(OrderNotFound):
        checkout_service.get_customer_order(db_session, actor_of(other), mine.order_id)
