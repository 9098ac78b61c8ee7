from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def line_key(product_id: str, size: Optional[str]) -> str:
    return f"{product_id}:{size or ''}"


class CartLine(CamelModel):
    product_id: str
    name: str
    brand: Optional[str] = None
    price: float
    image_url: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(..., ge=1)
    subtotal: float = 0.0

    @property
    def key(self) -> str:
        return line_key(self.product_id, self.size)


class Cart(CamelModel):
    items: List[CartLine] = Field(default_factory=list)
    total_qty: int = 0
    total_amount: float = 0.0

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CartItemAdd(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = 1
    size: Optional[str] = None


class CartItemUpdate(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int
    size: Optional[str] = None


class CartItemRemove(CamelModel):
    product_id: str = Field(..., min_length=1)
    size: Optional[str] = None


class CartAck(CamelModel):
    cart_count: int
    cart_amount: float
