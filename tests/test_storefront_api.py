from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.product import Product
from app.models.user import User
from conftest import PASSWORD, SHIPPING_PAYLOAD, auth_headers


def _session_header(response) -> dict:
    return {"X-Cart-Session": response.headers["X-Cart-Session"]}


def test_guest_cart_lives_in_session(client: TestClient, make_product):
    product = make_product(price="75.00", stock=4)

    added = client.post("/api/v1/cart/add", json={"productId": product.product_id, "quantity": 2})
    assert added.status_code == 200
    assert added.json()["data"]["cartCount"] == 2
    assert added.json()["data"]["cartAmount"] == 150.0
    session = _session_header(added)

    fetched = client.get("/api/v1/cart/", headers=session)
    items = fetched.json()["data"]["cart"]["items"]
    assert [(i["productId"], i["quantity"]) for i in items] == [(product.product_id, 2)]

    removed = client.post("/api/v1/cart/remove", json={"productId": product.product_id}, headers=session)
    assert removed.json()["data"]["removed"] is True
    assert removed.json()["data"]["cartCount"] == 0


def test_add_out_of_stock_returns_conflict(client: TestClient, make_product):
    product = make_product(stock=0)

    response = client.post("/api/v1/cart/add", json={"productId": product.product_id})

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "OUT_OF_STOCK"
    assert "timestamp" in body


def test_operator_cannot_use_cart(client: TestClient, operator, make_product):
    product = make_product()

    response = client.post(
        "/api/v1/cart/add", json={"productId": product.product_id}, headers=auth_headers(operator)
    )

    assert response.status_code == 403


def test_login_merges_guest_cart_into_account(client: TestClient, db_session: Session, customer, make_product):
    shoe = make_product(name="Shoe", stock=10)
    sock = make_product(name="Sock", stock=10)
    customer.cart = {
        "items": [
            {"productId": shoe.product_id, "name": "Shoe", "price": 100.0, "quantity": 1, "subtotal": 100.0}
        ],
        "totalQty": 1,
        "totalAmount": 100.0,
    }
    db_session.commit()

    guest = client.post("/api/v1/cart/add", json={"productId": shoe.product_id, "quantity": 2})
    session = _session_header(guest)
    client.post("/api/v1/cart/add", json={"productId": sock.product_id}, headers=session)

    login = client.post(
        "/api/v1/auth/login",
        json={"email": customer.email, "password": PASSWORD},
        headers=session,
    )

    assert login.status_code == 200
    data = login.json()["data"]
    assert data["access_token"]
    quantities = {i["name"]: i["quantity"] for i in data["cart"]["items"]}
    assert quantities == {"Shoe": 3, "Sock": 1}
    assert data["cartCount"] == 4

    db_session.expire_all()
    stored = db_session.get(User, customer.id).cart
    assert stored["totalQty"] == 4


def test_login_rejects_bad_password(client: TestClient, customer):
    response = client.post("/api/v1/auth/login", json={"email": customer.email, "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password"


def test_checkout_selected_lines_over_http(client: TestClient, db_session: Session, customer, make_product):
    shoe = make_product(name="Shoe", price="100.00", stock=5)
    sock = make_product(name="Sock", price="10.00", stock=5)
    headers = auth_headers(customer)

    added = client.post("/api/v1/cart/add", json={"productId": shoe.product_id, "quantity": 2}, headers=headers)
    headers.update(_session_header(added))
    client.post("/api/v1/cart/add", json={"productId": sock.product_id, "quantity": 1}, headers=headers)

    response = client.post(
        "/api/v1/orders/checkout",
        json={
            "shipping": SHIPPING_PAYLOAD,
            "paymentMethod": "card",
            "selectedItems": [f"{shoe.product_id}:"],
        },
        headers=headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["order"]["totalQty"] == 2
    assert data["order"]["totalAmount"] == 200.0
    assert data["order"]["paymentStatus"] == "paid"
    assert data["redirect"] is None
    assert data["inventoryShortfalls"] == []
    assert [i["name"] for i in data["cart"]["items"]] == ["Sock"]

    cart = client.get("/api/v1/cart/", headers=headers).json()["data"]
    assert cart["cartCount"] == 1

    db_session.expire_all()
    assert db_session.get(Product, shoe.id).stock == 3

    orders = client.get("/api/v1/orders/", headers=headers).json()["data"]
    assert [o["orderId"] for o in orders] == [data["order"]["orderId"]]


def test_checkout_requires_login(client: TestClient, make_product):
    response = client.post(
        "/api/v1/orders/checkout",
        json={"shipping": SHIPPING_PAYLOAD, "paymentMethod": "card"},
    )

    assert response.status_code == 401


def test_checkout_empty_cart(client: TestClient, customer):
    response = client.post(
        "/api/v1/orders/checkout",
        json={"shipping": SHIPPING_PAYLOAD, "paymentMethod": "cod"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 422
    assert response.json()["message"] == "Your cart is empty."


def test_checkout_with_nothing_selected_places_no_order(client: TestClient, db_session: Session, customer, make_product):
    product = make_product(stock=5)
    headers = auth_headers(customer)
    added = client.post("/api/v1/cart/add", json={"productId": product.product_id, "quantity": 2}, headers=headers)
    headers.update(_session_header(added))

    response = client.post(
        "/api/v1/orders/checkout",
        json={"shipping": SHIPPING_PAYLOAD, "paymentMethod": "card", "selectedItems": []},
        headers=headers,
    )

    assert response.status_code == 422
    assert response.json()["message"] == "Your cart is empty."
    assert db_session.query(Order).count() == 0
    assert client.get("/api/v1/cart/", headers=headers).json()["data"]["cartCount"] == 2


def test_checkout_rejects_blank_shipping_field(client: TestClient, customer, make_product):
    product = make_product()
    shipping = dict(SHIPPING_PAYLOAD, city="<b></b>")

    response = client.post(
        "/api/v1/orders/buy-now",
        json={"productId": product.product_id, "shipping": shipping, "paymentMethod": "card"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_insufficient_stock_at_checkout(client: TestClient, db_session: Session, customer, make_product):
    product = make_product(name="Runner", stock=3)
    headers = auth_headers(customer)
    added = client.post("/api/v1/cart/add", json={"productId": product.product_id, "quantity": 3}, headers=headers)
    headers.update(_session_header(added))
    product.stock = 1
    db_session.commit()

    response = client.post(
        "/api/v1/orders/checkout",
        json={"shipping": SHIPPING_PAYLOAD, "paymentMethod": "card"},
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Not enough stock for: Runner"
    assert db_session.query(Order).count() == 0
    cart = client.get("/api/v1/cart/", headers=headers).json()["data"]
    assert cart["cartCount"] == 3


def test_customer_cannot_read_someone_elses_order(client: TestClient, customer, make_user, make_product):
    other = make_user("other@example.com")
    product = make_product()
    placed = client.post(
        "/api/v1/orders/buy-now",
        json={"productId": product.product_id, "shipping": SHIPPING_PAYLOAD, "paymentMethod": "cod"},
        headers=auth_headers(customer),
    )
    order_id = placed.json()["data"]["order"]["orderId"]

    assert client.get(f"/api/v1/orders/{order_id}", headers=auth_headers(customer)).status_code == 200
    assert client.get(f"/api/v1/orders/{order_id}", headers=auth_headers(other)).status_code == 404


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers
