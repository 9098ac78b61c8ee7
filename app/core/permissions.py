"""Capability checks for storefront actions.

Every engine call receives an explicit :class:`Actor`. Whether the actor may
perform an action is decided by :func:`authorize`, a pure function of
``(actor, action, resource)``; nothing here reads request or session state.
"""
import enum
from dataclasses import dataclass
from typing import Any, Optional

from app.core.exceptions import Forbidden


class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    OPERATOR = "operator"


class Action(str, enum.Enum):
    CART_MUTATE = "cart.mutate"
    ORDER_CHECKOUT = "order.checkout"
    ORDER_VIEW = "order.view"
    ORDER_LIST_ALL = "order.list_all"
    ORDER_SET_STATUS = "order.set_status"
    PRODUCT_DELETE = "product.delete"
    REPORT_VIEW = "report.view"


CUSTOMER_ACTIONS = frozenset({Action.CART_MUTATE, Action.ORDER_CHECKOUT, Action.ORDER_VIEW})
OPERATOR_ACTIONS = frozenset(
    {
        Action.ORDER_VIEW,
        Action.ORDER_LIST_ALL,
        Action.ORDER_SET_STATUS,
        Action.PRODUCT_DELETE,
        Action.REPORT_VIEW,
    }
)


@dataclass(frozen=True)
class Actor:
    user_id: int
    email: str
    role: ActorRole

    @property
    def is_operator(self) -> bool:
        return self.role == ActorRole.OPERATOR


def authorize(actor: Optional[Actor], action: Action, resource: Any = None) -> bool:
    """Return whether ``actor`` may perform ``action`` on ``resource``.

    Anonymous visitors may only mutate their own session cart. Customers see
    only orders they own; operators are kept out of the shopping flow.
    """
    if actor is None:
        return action == Action.CART_MUTATE

    if actor.is_operator:
        return action in OPERATOR_ACTIONS

    if action not in CUSTOMER_ACTIONS:
        return False
    if action == Action.ORDER_VIEW and resource is not None:
        return getattr(resource, "user_id", None) == actor.user_id
    return True


def require(actor: Optional[Actor], action: Action, resource: Any = None) -> None:
    if not authorize(actor, action, resource):
        raise Forbidden()
