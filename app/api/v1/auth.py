from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import actor_for, get_cart_session_id
from app.api.v1.cart import cart_payload, store_cart
from app.core.config import settings
from app.core.exceptions import Forbidden, Unauthorized
from app.core.rate_limiter import limiter
from app.core.security import create_access_token, verify_password
from app.db.session import get_db
from app.models.user import User
from app.services import cart_service
from app.services.cart_store import load_account_cart, load_session_cart
from app.utils.response import success

router = APIRouter()


class UserLogin(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


@router.post("/login")
@limiter.limit("10/minute")
def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    session_id: Optional[str] = Depends(get_cart_session_id),
    db: Session = Depends(get_db),
):
    """Issue an access token and fold the guest cart into the account cart"""
    user = db.query(User).filter(User.email == credentials.email.strip().lower()).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise Unauthorized("Incorrect email or password")

    if not user.is_active:
        raise Forbidden("Account is inactive")

    access_token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    response.set_cookie(
        "access_token",
        access_token,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

    data = {
        "user": {
            "id": user.id,
            "userId": user.user_id,
            "email": user.email,
            "role": user.role.value,
        },
        "access_token": access_token,
    }

    if not actor_for(user).is_operator:
        cart = cart_service.merge_carts(db, load_account_cart(user), load_session_cart(db, session_id))
        store_cart(response, db, session_id, user, cart)
        data.update(cart_payload(cart))

    return success(data=data, message="Login successful")
