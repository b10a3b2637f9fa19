# storefront/shop.py
import logging
from decimal import Decimal
from typing import Any, List, Optional

from storefront import config
from storefront.checkout import CheckoutOrchestrator, CheckoutResult, cart_total
from storefront.errors import GatewayError
from storefront.models import CartLine, Order, Owner
from storefront.reconciler import CartMutation, CartReconciler
from storefront.session import Session
from storefront.state import Preferences, StorefrontState
from storefront.wallet import WalletAccount

logger = logging.getLogger(__name__)


async def _opening_balance(session: Session, owner: Owner) -> Decimal:
    if owner.is_guest:
        return config.INITIAL_WALLET_BALANCE
    profile = await session.load_profile(owner)
    if profile.wallet_balance is None:
        return config.INITIAL_WALLET_BALANCE
    return profile.wallet_balance


class Shop:
    """Cart and checkout of one owner, as the UI sees them."""

    def __init__(self, state: StorefrontState, session: Session, cart_gateway, order_gateway,
                 clear_delay: float = config.CART_CLEAR_DELAY) -> None:
        self.state = state
        self.session = session
        self.order_gateway = order_gateway
        self.reconciler = CartReconciler(cart_gateway, state)
        self.orchestrator = CheckoutOrchestrator(
            cart_gateway, order_gateway, session, state, clear_delay=clear_delay,
        )

    @classmethod
    async def open(cls, preferences: Preferences, account_gateway, cart_gateway, order_gateway,
                   balance: Optional[Decimal] = None, **kwargs: Any) -> "Shop":
        """Resolve the owner and load its cart and orders.

        An account's wallet starts from the balance stored in its profile;
        guests and accounts without one get ``INITIAL_WALLET_BALANCE``.
        Fetching the profile also has the account service check the token,
        so a rejected token fails here with :class:`GatewayError`.
        """
        session = Session(preferences, account_gateway)
        owner = await session.resolve_owner()
        if balance is None:
            balance = await _opening_balance(session, owner)
        state = StorefrontState(owner=owner, wallet=WalletAccount(balance), preferences=preferences)
        shop = cls(state, session, cart_gateway, order_gateway, **kwargs)
        await shop.refresh()
        return shop

    async def refresh(self) -> None:
        await self.reconciler.refresh()
        try:
            self.state.orders = await self.order_gateway.history(self.state.owner)
        except GatewayError as e:
            logger.warning("order history of %s unavailable: %s", self.state.owner.key, e)

    async def add_to_cart(self, product: Any, quantity: int = 1) -> CartMutation:
        return await self.reconciler.add_to_cart(product, quantity)

    async def update_quantity(self, line_id: int, quantity: int) -> CartMutation:
        return await self.reconciler.update_quantity(line_id, quantity)

    async def remove_line(self, line_id: int) -> CartMutation:
        return await self.reconciler.remove_line(line_id)

    async def checkout(self, payment_method: str = "wallet",
                       tax_multiplier: Optional[Decimal] = None) -> CheckoutResult:
        if tax_multiplier is None:
            return await self.orchestrator.checkout(payment_method)
        return await self.orchestrator.checkout(payment_method, tax_multiplier)

    def cart_view(self) -> List[CartLine]:
        return self.state.cart.lines

    @property
    def cart_total(self) -> Decimal:
        return cart_total(self.state.cart.lines)

    @property
    def item_count(self) -> int:
        return self.state.cart.item_count

    @property
    def wallet_balance(self) -> Decimal:
        return self.state.wallet.balance

    @property
    def orders(self) -> List[Order]:
        return list(self.state.orders)
