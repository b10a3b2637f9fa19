# cart_service/db/schemas.py
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CartItemBase(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)


class CartItemCreate(CartItemBase):
    kind: Literal["product", "service"] = "product"
    store_id: Optional[int] = None
    name: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: float
    kind: str
    store_id: Optional[int] = None
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
