# storefront/models.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LineKind(str, Enum):
    product = "product"
    service = "service"  # услуги без выбора количества


class CartLine(BaseModel):
    """One quantity-bearing entry of a cart.

    ``line_id`` is assigned by the cart service; a line without it exists only
    locally and carries a time-derived ``temp_id`` instead.
    """

    line_id: Optional[int] = None
    temp_id: Optional[int] = None
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    kind: LineKind = LineKind.product
    store_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def key(self) -> Optional[int]:
        return self.line_id if self.line_id is not None else self.temp_id

    @property
    def is_synced(self) -> bool:
        return self.line_id is not None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Owner(BaseModel):
    """The identity a cart and its orders belong to: an account or a guest."""

    model_config = ConfigDict(frozen=True)

    account_id: Optional[int] = None
    token: Optional[str] = None
    guest_id: Optional[str] = None

    @classmethod
    def account(cls, account_id: int, token: str) -> "Owner":
        return cls(account_id=account_id, token=token)

    @classmethod
    def guest(cls, guest_id: str) -> "Owner":
        return cls(guest_id=guest_id)

    @property
    def is_guest(self) -> bool:
        return self.token is None

    @property
    def key(self) -> str:
        return f"guest:{self.guest_id}" if self.is_guest else f"user:{self.account_id}"

    def auth_headers(self) -> Dict[str, str]:
        return {} if self.is_guest else {"Authorization": f"Bearer {self.token}"}

    def query_params(self) -> Dict[str, str]:
        return {"guest_id": self.guest_id} if self.is_guest and self.guest_id else {}


class Profile(BaseModel):
    f_name: Optional[str] = None
    l_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    wallet_balance: Optional[Decimal] = None

    @property
    def full_name(self) -> str:
        return f"{self.f_name or ''} {self.l_name or ''}".strip()


class OrderLine(BaseModel):
    product_id: int
    quantity: int
    price: Decimal
    kind: LineKind = LineKind.product
    name: Optional[str] = None

    @classmethod
    def from_cart_line(cls, line: CartLine) -> "OrderLine":
        return cls(
            product_id=line.product_id,
            quantity=line.quantity,
            price=line.unit_price,
            kind=line.kind,
            name=line.name,
        )


class OrderContext(BaseModel):
    """Everything the order service needs to place an order in one request."""

    payment_method: str = "wallet"
    order_type: str = "delivery"
    store_id: int
    order_amount: Decimal
    address: str
    contact_person_name: str = ""
    contact_person_number: str = ""
    contact_person_email: str = ""
    guest_id: Optional[str] = None
    items: List[OrderLine]


class Order(BaseModel):
    order_id: Optional[int] = None
    amount: Decimal
    payment_method: str
    status: str = "pending"
    created_at: Optional[datetime] = None
    lines: List[OrderLine] = []


class CreateResult(BaseModel):
    """Outcome of creating a cart line: the new line, or a conflict."""

    conflict: bool = False
    line_id: Optional[int] = None

    @classmethod
    def created(cls, line_id: int) -> "CreateResult":
        return cls(line_id=line_id)

    @classmethod
    def conflicted(cls) -> "CreateResult":
        return cls(conflict=True)
