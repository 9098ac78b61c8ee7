from typing import Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import Forbidden, Unauthorized
from app.core.permissions import Actor, ActorRole
from app.core.security import decode_token
from app.db.session import get_db
from app.models.user import User, UserRole

logger = structlog.get_logger()


def _extract_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return request.cookies.get("access_token")


def _load_user(db: Session, token: str) -> User:
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid authentication credentials")

    try:
        user = db.get(User, int(user_id))
    except (TypeError, ValueError):
        raise Unauthorized("Invalid authentication credentials")
    if not user:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Forbidden("Account is inactive")
    return user


def actor_for(user: Optional[User]) -> Optional[Actor]:
    if user is None:
        return None
    role = ActorRole.OPERATOR if user.role == UserRole.ADMIN else ActorRole.CUSTOMER
    return Actor(user_id=user.id, email=user.email, role=role)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Get current authenticated user from bearer token or cookie."""
    token = _extract_token(request)
    if not token:
        raise Unauthorized()
    return _load_user(db, token)


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """Like get_current_user, but anonymous visitors get None."""
    token = _extract_token(request)
    if not token:
        return None
    return _load_user(db, token)


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    return actor_for(current_user)


def require_operator(request: Request, current_user: User = Depends(get_current_user)) -> Actor:
    actor = actor_for(current_user)
    if not actor.is_operator:
        raise Forbidden("Admin access required")

    logger.info(
        "admin_action",
        action=f"{request.method} {request.url.path}",
        admin_user_id=current_user.id,
        client_ip=request.client.host if request.client else None,
    )
    return actor


def get_cart_session_id(request: Request) -> Optional[str]:
    return (
        request.headers.get(settings.CART_SESSION_HEADER)
        or request.cookies.get(settings.CART_SESSION_COOKIE)
        or None
    )
