from fastapi import status
from typing import Any, List, Optional


class APIError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class NotFound(APIError):
    def __init__(self, message: str = "Not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class ProductNotFound(NotFound):
    def __init__(self, product_ref: Optional[str] = None):
        super().__init__("Product not found.")
        if product_ref is not None:
            self.errors = [{"product_id": product_ref}]


class OrderNotFound(NotFound):
    def __init__(self):
        super().__init__("Order not found.")


class OutOfStock(APIError):
    """Nothing left to add, raised at cart-add time."""

    def __init__(self, name: str, size: Optional[str] = None):
        message = f"{name} is out of stock."
        if size:
            message = f"{name} (size {size}) is out of stock."
        super().__init__(
            status.HTTP_409_CONFLICT,
            message,
            errors=[{"code": "OUT_OF_STOCK", "item": name, "size": size}],
        )


class InsufficientStock(APIError):
    """Live stock is below the requested quantity at commit time."""

    def __init__(self, name: str, requested: int, available: int, size: Optional[str] = None):
        label = f"{name} (size {size})" if size else name
        super().__init__(
            status.HTTP_409_CONFLICT,
            f"Not enough stock for: {label}",
            errors=[
                {
                    "code": "INSUFFICIENT_STOCK",
                    "item": name,
                    "size": size,
                    "requested": requested,
                    "available": available,
                }
            ],
        )
        self.item = name
        self.requested = requested
        self.available = available


class ValidationError(APIError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            message,
            errors=[{"field": field}] if field else [],
        )
        self.field = field


class Conflict(APIError):
    def __init__(self, message: str):
        super().__init__(status.HTTP_409_CONFLICT, message)


class Forbidden(APIError):
    def __init__(self, message: str = "You are not allowed to perform this action."):
        super().__init__(status.HTTP_403_FORBIDDEN, message)


class Unauthorized(APIError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message)
