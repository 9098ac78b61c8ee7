from decimal import Decimal

from sqlalchemy.orm import Session
import logging
from app.models.user import User, UserRole
from app.models.product import Product, ProductSize
from app.core.config import settings
from app.core.security import hash_password

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Court Classic Low",
        "brand": "Stride",
        "category": "sneakers",
        "price": Decimal("3499.00"),
        "sizes": {"40": 4, "41": 6, "42": 5},
    },
    {
        "name": "Trail Runner GTX",
        "brand": "Summit",
        "category": "running",
        "price": Decimal("5299.00"),
        "sizes": {"41": 3, "43": 2},
    },
    {
        "name": "Cotton Crew Socks",
        "brand": "Stride",
        "category": "accessories",
        "price": Decimal("299.00"),
        "stock": 25,
    },
]


def seed_operator(db: Session) -> None:
    email = settings.DEFAULT_ADMIN_EMAIL.strip().lower()
    admin = db.query(User).filter(User.email == email).first()
    if admin:
        return

    seed_password = (settings.DEFAULT_ADMIN_PASSWORD or "").strip()
    if not seed_password:
        message = (
            "Missing admin bootstrap credentials: set DEFAULT_ADMIN_PASSWORD "
            "or create an admin user manually before launch."
        )
        if settings.is_production:
            logger.error("%s env=%s", message, settings.ENVIRONMENT)
            raise RuntimeError(message)
        logger.warning("%s env=%s", message, settings.ENVIRONMENT)
        return

    db.add(
        User(
            email=email,
            password_hash=hash_password(seed_password),
            full_name="Store Admin",
            role=UserRole.ADMIN,
            is_active=True,
        )
    )
    logger.info("admin_user_created email=%s", email)


def seed_products(db: Session) -> None:
    for data in SAMPLE_PRODUCTS:
        if db.query(Product).filter(Product.name == data["name"]).first():
            continue

        sizes = data.get("sizes") or {}
        product = Product(
            name=data["name"],
            brand=data["brand"],
            category=data["category"],
            price=data["price"],
            stock=sum(sizes.values()) if sizes else data.get("stock", 0),
        )
        product.sizes = [ProductSize(label=label, stock=stock) for label, stock in sizes.items()]
        db.add(product)
        logger.info("product_created name=%s", data["name"])


def init_db(db: Session, with_samples: bool = True) -> None:
    """Initialize database with default data"""
    seed_operator(db)
    if with_samples and not settings.is_production:
        seed_products(db)

    db.commit()
    logger.info("database_initialized")


if __name__ == "__main__":
    from app.db.session import SessionLocal
    db = SessionLocal()
    init_db(db)
    db.close()
