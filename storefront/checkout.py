# storefront/checkout.py
"""Checkout: validate the cart, debit the wallet, place the order, clear the cart.

The wallet is debited before the order is placed so the pending spend shows
at once. If placing the order fails for any reason the prior balance is put
back and the cart is left alone. Once the order is placed the local cart is
cleared after a short delay, leaving the success screen time to show what
was bought; the order service empties the remote cart itself.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from storefront import config
from storefront.errors import (
    CheckoutInProgressError,
    GatewayError,
    MalformedResponseError,
    StorefrontError,
    ValidationError,
)
from storefront.models import CartLine, Order, OrderContext, OrderLine
from storefront.session import Session
from storefront.state import StorefrontState

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    idle = "idle"
    validating = "validating"
    wallet_debited = "wallet_debited"
    order_submitted = "order_submitted"
    committed = "committed"


@dataclass
class CheckoutResult:
    success: bool
    message: str
    state: CheckoutState
    order: Optional[Order] = None
    snapshot: List[CartLine] = field(default_factory=list)
    charged: Decimal = Decimal("0")

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.snapshot)


def cart_total(lines: List[CartLine]) -> Decimal:
    return sum((line.unit_price * line.quantity for line in lines), Decimal("0"))


class CheckoutOrchestrator:
    def __init__(
        self,
        cart_gateway,
        order_gateway,
        session: Session,
        state: StorefrontState,
        clear_delay: float = config.CART_CLEAR_DELAY,
        default_store_id: int = config.DEFAULT_STORE_ID,
        default_address: str = config.DEFAULT_DELIVERY_ADDRESS,
    ) -> None:
        self.cart_gateway = cart_gateway
        self.order_gateway = order_gateway
        self.session = session
        self.state = state
        self.clear_delay = clear_delay
        self.default_store_id = default_store_id
        self.default_address = default_address
        self.phase = CheckoutState.idle
        self.clear_task: Optional[asyncio.Task] = None

    async def checkout(self, payment_method: str = "wallet",
                       tax_multiplier: Decimal = Decimal("1")) -> CheckoutResult:
        """Run one checkout for the state's owner.

        Only one checkout per owner runs at a time; a second attempt while
        one is in flight fails at once and touches nothing.
        """
        if self.state.checkout_in_flight:
            error = CheckoutInProgressError("Checkout already in progress")
            logger.warning("%s for %s", error, self.state.owner.key)
            return CheckoutResult(False, str(error), self.phase)

        self.state.checkout_in_flight = True
        try:
            return await self._run(payment_method, Decimal(tax_multiplier))
        finally:
            self.state.checkout_in_flight = False

    async def _run(self, payment_method: str, tax_multiplier: Decimal) -> CheckoutResult:
        owner = self.state.owner
        wallet = self.state.wallet
        self.phase = CheckoutState.validating
        try:
            if tax_multiplier <= 0:
                raise ValidationError("Tax multiplier must be positive")
            snapshot = await self._authoritative_snapshot()
            total = cart_total(snapshot)
            context = await self._order_context(snapshot, total, payment_method)
            charge = total * tax_multiplier
            previous_balance = wallet.debit(charge)
        except StorefrontError as e:
            self.phase = CheckoutState.idle
            logger.info("checkout for %s rejected: %s", owner.key, e)
            return CheckoutResult(False, str(e), self.phase)

        self.phase = CheckoutState.wallet_debited
        try:
            order_id = await self.order_gateway.submit(owner, context)
        except MalformedResponseError as e:
            # Заказ принят сервером, номер не прочитан
            logger.error("order for %s placed but its id is unreadable: %s", owner.key, e)
            order_id = None
        except GatewayError as e:
            self._compensate(previous_balance)
            logger.error("order placement for %s failed: %s", owner.key, e)
            return CheckoutResult(False, f"Order placement failed: {e}", self.phase)
        except BaseException:
            self._compensate(previous_balance)
            raise

        self.phase = CheckoutState.order_submitted
        order = Order(
            order_id=order_id,
            amount=total,
            payment_method=payment_method,
            lines=list(context.items),
        )
        await self._refresh_orders(order)

        self.phase = CheckoutState.committed
        logger.info("order %s committed for %s, charged %s", order_id, owner.key, charge)
        self._schedule_clear()
        return CheckoutResult(True, "Order confirmed!", self.phase, order=order, snapshot=snapshot, charged=charge)

    async def _authoritative_snapshot(self) -> List[CartLine]:
        if self.state.cart.is_empty():
            raise ValidationError("Cart is empty")

        lines = await self.cart_gateway.list(self.state.owner)
        total = cart_total(lines)
        if not lines or not total.is_finite() or total <= 0:
            raise ValidationError("Invalid cart total")
        return lines

    async def _order_context(self, lines: List[CartLine], total: Decimal, payment_method: str) -> OrderContext:
        owner = self.state.owner
        prefs = self.state.preferences
        profile = await self.session.load_profile(owner)

        store_id = lines[0].store_id
        if store_id is None:
            store_id = prefs.store_id if prefs.store_id is not None else self.default_store_id

        address = (
            (prefs.checkout_address or "").strip()
            or (profile.address or "").strip()
            or self.default_address
        )
        phone = (prefs.checkout_phone or "").strip() or (profile.phone or "").strip()

        return OrderContext(
            payment_method=payment_method,
            store_id=store_id,
            order_amount=total,
            address=address,
            contact_person_name=profile.full_name,
            contact_person_number=phone,
            contact_person_email=profile.email or "",
            guest_id=owner.guest_id if owner.is_guest else None,
            items=[OrderLine.from_cart_line(line) for line in lines],
        )

    def _compensate(self, previous_balance: Decimal) -> None:
        self.state.wallet.restore(previous_balance)
        self.phase = CheckoutState.idle

    async def _refresh_orders(self, placed: Order) -> None:
        try:
            self.state.orders = await self.order_gateway.history(self.state.owner)
        except GatewayError as e:
            logger.warning("order %s placed but history refresh failed: %s", placed.order_id, e)
            self.state.orders = [placed] + [o for o in self.state.orders if o.order_id != placed.order_id]

    def _schedule_clear(self) -> None:
        if self.clear_task is not None and not self.clear_task.done():
            self.clear_task.cancel()
        self.clear_task = asyncio.create_task(self._clear_later())

    async def _clear_later(self) -> None:
        await asyncio.sleep(self.clear_delay)
        self.state.cart.clear()
        logger.debug("local cart of %s cleared after checkout", self.state.owner.key)
