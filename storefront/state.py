# storefront/state.py
from dataclasses import dataclass, field
from typing import List, Optional

from storefront.cart_view import LocalCartView
from storefront.models import Order, Owner
from storefront.wallet import WalletAccount


@dataclass
class Preferences:
    """Values remembered on the device between requests."""

    auth_token: Optional[str] = None
    guest_id: Optional[str] = None
    store_id: Optional[int] = None
    checkout_address: Optional[str] = None
    checkout_phone: Optional[str] = None


@dataclass
class StorefrontState:
    """Everything one owner's cart and checkout read and write."""

    owner: Owner
    wallet: WalletAccount
    preferences: Preferences = field(default_factory=Preferences)
    cart: LocalCartView = field(default_factory=LocalCartView)
    orders: List[Order] = field(default_factory=list)
    checkout_in_flight: bool = False
