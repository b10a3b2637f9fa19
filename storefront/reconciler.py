# storefront/reconciler.py
"""Keeps the local cart in step with the cart service.

Adds, quantity changes and removals go to the cart service first, and the
local view is then replaced by the service's listing. A duplicate add comes
back as a conflict and is turned into a quantity bump of the existing line.
When the service cannot be reached the change is applied to the local view
only (degraded mode) and the next successful listing overwrites it.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from storefront.errors import GatewayError, ValidationError, is_legacy_conflict_message
from storefront.models import CartLine, LineKind
from storefront.pricing import normalize_price, read_field
from storefront.state import StorefrontState

logger = logging.getLogger(__name__)


class CartAction(str, Enum):
    added = "added"
    merged = "merged"
    updated = "updated"
    removed = "removed"
    unchanged = "unchanged"


@dataclass
class CartMutation:
    """What a cart operation did, for the UI to report."""

    action: CartAction
    message: str
    degraded: bool = False
    line: Optional[CartLine] = None


@dataclass
class _Requested:
    product_id: int
    quantity: int
    unit_price: Decimal
    kind: LineKind
    store_id: Optional[int]
    name: str


def _requested(product: Any, quantity: int) -> _Requested:
    product_id = read_field(product, "id")
    if product_id is None:
        product_id = read_field(product, "product_id")
    if product_id is None:
        raise ValidationError("Product has no id")

    kind = read_field(product, "kind") or read_field(product, "type")
    store_id = read_field(product, "store_id")
    return _Requested(
        product_id=int(product_id),
        quantity=quantity,
        unit_price=normalize_price(product),
        kind=LineKind.service if kind == LineKind.service else LineKind.product,
        store_id=int(store_id) if store_id is not None else None,
        name=read_field(product, "name") or f"Item #{product_id}",
    )


def _check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    return quantity


class CartReconciler:
    def __init__(self, gateway, state: StorefrontState, clock: Callable[[], float] = time.time) -> None:
        self.gateway = gateway
        self.state = state
        self._clock = clock

    @property
    def _cart(self):
        return self.state.cart

    async def refresh(self) -> bool:
        """Replace the local view with the service's listing; False if unreachable."""
        try:
            lines = await self.gateway.list(self.state.owner)
        except GatewayError as e:
            logger.warning("cart refresh for %s failed: %s", self.state.owner.key, e)
            return False

        dropped = [line for line in self._cart.lines if not line.is_synced]
        if dropped:
            logger.info("dropping %d local-only cart lines for %s", len(dropped), self.state.owner.key)
        self._cart.replace(lines)
        return True

    async def add_to_cart(self, product: Any, quantity: int = 1) -> CartMutation:
        req = _requested(product, _check_quantity(quantity))
        if req.store_id is not None:
            self.state.preferences.store_id = req.store_id

        try:
            result = await self.gateway.create(
                self.state.owner, req.product_id, req.quantity, req.unit_price,
                req.kind, req.store_id, req.name,
            )
        except GatewayError as e:
            if not is_legacy_conflict_message(e):
                return self._add_locally(req, e)
            logger.info("add of product %s reported as existing by message: %s", req.product_id, e)
            return await self._bump_or_fallback(req)

        if result.conflict:
            return await self._bump_or_fallback(req)

        optimistic = CartLine(
            line_id=result.line_id,
            product_id=req.product_id,
            quantity=req.quantity,
            unit_price=req.unit_price,
            kind=req.kind,
            store_id=req.store_id,
            name=req.name,
        )
        self._cart.merge(optimistic)
        await self.refresh()
        return CartMutation(CartAction.added, f"{req.quantity}x {req.name}", line=optimistic)

    async def _bump_or_fallback(self, req: _Requested) -> CartMutation:
        try:
            return await self._bump_existing(req)
        except GatewayError as e:
            return self._add_locally(req, e)

    async def _bump_existing(self, req: _Requested) -> CartMutation:
        existing = self._cart.find_by_product(req.product_id, synced_only=True)
        if existing is None:
            remote = await self.gateway.list(self.state.owner)
            existing = next((line for line in remote if line.product_id == req.product_id), None)

        if existing is None:
            logger.warning("conflict for product %s but no existing line in %s", req.product_id, self.state.owner.key)
            await self.refresh()
            return CartMutation(CartAction.unchanged, "Cart changed on the server, please try again")

        # Цена существующей строки не меняется при увеличении количества
        next_quantity = existing.quantity + req.quantity
        unit_price = existing.unit_price or req.unit_price
        await self.gateway.update(self.state.owner, existing.line_id, next_quantity, unit_price)
        await self.refresh()
        merged = existing.model_copy(update={"quantity": next_quantity, "unit_price": unit_price})
        return CartMutation(CartAction.merged, f"+{req.quantity}x {req.name}", line=merged)

    def _add_locally(self, req: _Requested, error: GatewayError) -> CartMutation:
        logger.warning("cart service unavailable, adding product %s locally: %s", req.product_id, error)
        had_line = self._cart.find_by_product(req.product_id) is not None
        line = self._cart.add_local(CartLine(
            temp_id=int(self._clock() * 1000),
            product_id=req.product_id,
            quantity=req.quantity,
            unit_price=req.unit_price,
            kind=req.kind,
            store_id=req.store_id,
            name=req.name,
        ))
        action = CartAction.merged if had_line else CartAction.added
        return CartMutation(action, f"Server sync failed: {error}", degraded=True, line=line)

    async def update_quantity(self, line_id: int, quantity: int) -> CartMutation:
        _check_quantity(quantity)
        line = self._cart.find(line_id)
        if line is None:
            raise ValidationError("Cart line not found")

        if not line.is_synced:
            updated = self._cart.set_quantity_local(line_id, quantity)
            return CartMutation(CartAction.updated, "Saved on this device only", degraded=True, line=updated)

        try:
            await self.gateway.update(self.state.owner, line.line_id, quantity, normalize_price(line))
        except GatewayError as e:
            logger.warning("quantity update of line %s kept locally: %s", line_id, e)
            updated = self._cart.set_quantity_local(line_id, quantity)
            return CartMutation(CartAction.updated, f"Server sync failed: {e}", degraded=True, line=updated)

        await self.refresh()
        return CartMutation(CartAction.updated, "Cart updated", line=self._cart.find(line_id))

    async def remove_line(self, line_id: int) -> CartMutation:
        line = self._cart.find(line_id)
        if line is None:
            raise ValidationError("Cart line not found")

        if not line.is_synced:
            self._cart.discard_local(line_id)
            return CartMutation(CartAction.removed, "Removed from cart", degraded=True, line=line)

        try:
            await self.gateway.delete(self.state.owner, line.line_id)
        except GatewayError as e:
            logger.warning("removal of line %s kept locally: %s", line_id, e)
            self._cart.discard_local(line_id)
            return CartMutation(CartAction.removed, f"Server sync failed: {e}", degraded=True, line=line)

        await self.refresh()
        return CartMutation(CartAction.removed, "Removed from cart", line=line)
