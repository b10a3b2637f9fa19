# account_service/db/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# Профиль пользователя
class Profile(BaseModel):
    id: int
    email: str
    f_name: Optional[str] = None
    l_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    wallet_balance: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


# Схема для элементов заказа
class OrderItemBase(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    kind: Literal["product", "service"] = "product"
    name: Optional[str] = None


class OrderItem(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: float
    kind: str
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Данные для оформления заказа
class OrderCreate(BaseModel):
    payment_method: Literal["wallet", "cash_on_delivery", "digital_payment", "offline_payment"] = "wallet"
    order_type: Literal["delivery", "take_away", "parcel"] = "delivery"
    store_id: int
    order_amount: Decimal = Field(gt=0)
    address: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_person_number: Optional[str] = None
    contact_person_email: Optional[str] = None
    guest_id: Optional[str] = None
    items: List[OrderItemBase] = Field(min_length=1)


class Order(BaseModel):
    id: int
    status: str
    payment_method: str
    order_type: str
    order_amount: float
    store_id: int
    created_at: Optional[datetime] = None
    order_items: List[OrderItem] = []

    model_config = ConfigDict(from_attributes=True)
