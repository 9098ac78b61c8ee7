import os
import tempfile
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_storefront.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-storefront-suite")

import app.models  # noqa: F401
from app.core.permissions import Actor, ActorRole
from app.core.security import create_access_token, hash_password
from app.db.base_class import Base
from app.db.session import get_db
from app.main import app
from app.models.product import Product, ProductSize
from app.models.user import User, UserRole
from app.schemas.order import ShippingDetails

PASSWORD = "StrongPass1"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session):
    def _make(email: str = "shopper@example.com", role: UserRole = UserRole.CUSTOMER) -> User:
        user = User(
            email=email,
            full_name="Test User",
            password_hash=hash_password(PASSWORD),
            role=role,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_product(db_session: Session):
    def _make(name: str = "Court Classic", price: str = "100.00", stock: int = 5, sizes=None) -> Product:
        product = Product(
            name=name,
            brand="Stride",
            category="sneakers",
            price=Decimal(price),
            stock=sum(sizes.values()) if sizes else stock,
        )
        if sizes:
            product.sizes = [ProductSize(label=label, stock=qty) for label, qty in sizes.items()]
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture()
def customer(make_user) -> User:
    return make_user("shopper@example.com")


@pytest.fixture()
def operator(make_user) -> User:
    return make_user("admin@example.com", role=UserRole.ADMIN)


def actor_of(user: User) -> Actor:
    role = ActorRole.OPERATOR if user.role == UserRole.ADMIN else ActorRole.CUSTOMER
    return Actor(user_id=user.id, email=user.email, role=role)


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def shipping() -> ShippingDetails:
    return ShippingDetails(
        full_name="Juan Dela Cruz",
        address_line1="12 Rizal Street",
        city="Quezon City",
        region="NCR",
        postal_code="1100",
        phone="09171234567",
    )


SHIPPING_PAYLOAD = {
    "fullName": "Juan Dela Cruz",
    "addressLine1": "12 Rizal Street",
    "city": "Quezon City",
    "region": "NCR",
    "postalCode": "1100",
    "phone": "09171234567",
}
