# storefront/main.py
import asyncio
import hmac
import logging
import os
from collections import OrderedDict
from contextlib import asynccontextmanager
from decimal import Decimal
from functools import partial
from typing import Any, AsyncGenerator, Dict, Optional, Tuple

from fastapi import Cookie, Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from storefront import config
from storefront.errors import GatewayError, ValidationError
from storefront.gateways import HttpAccountGateway, HttpCartGateway, HttpOrderGateway
from storefront.models import CartLine, Owner
from storefront.reconciler import CartMutation
from storefront.session import account_id_from_token
from storefront.shop import Shop
from storefront.state import Preferences

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


class ShopRegistry:
    """One Shop per owner, sharing the service clients.

    Shops are kept in least-recently-used order and the oldest are dropped
    once more than ``max_shops`` are open; a shop in the middle of a checkout
    is never dropped. Concurrent first requests of one owner share a single
    opening. A cached account shop is handed out for a different token only
    after the account service has accepted that token.
    """

    def __init__(self, cart_gateway=None, order_gateway=None, account_gateway=None,
                 clear_delay: float = config.CART_CLEAR_DELAY,
                 max_shops: int = config.SHOP_CACHE_SIZE) -> None:
        self.cart_gateway = cart_gateway or HttpCartGateway()
        self.order_gateway = order_gateway or HttpOrderGateway()
        self.account_gateway = account_gateway or HttpAccountGateway()
        self.clear_delay = clear_delay
        self.max_shops = max_shops
        self._shops: "OrderedDict[str, Shop]" = OrderedDict()
        self._opening: Dict[Tuple[str, Optional[str]], asyncio.Future] = {}

    async def shop_for(self, token: Optional[str], guest_id: Optional[str]) -> Shop:
        if token:
            key = Owner.account(account_id_from_token(token), token).key
        elif guest_id:
            key = Owner.guest(guest_id).key
        else:
            return self._remember(await self._open(None, None))

        shop = self._shops.get(key)
        if shop is not None:
            if token and not _same_token(shop.state.owner.token, token):
                await self._confirm(shop, token)
            if key in self._shops:
                self._shops.move_to_end(key)
            return shop

        # Токен входит в ключ: чужой токен не получает результат чужой проверки
        opening_key = (key, token or None)
        pending = self._opening.get(opening_key)
        if pending is None:
            pending = asyncio.ensure_future(self._open(token, guest_id))
            pending.add_done_callback(partial(self._opened, opening_key))
            self._opening[opening_key] = pending
        opened = await asyncio.shield(pending)

        shop = self._shops.get(key, opened)
        if token and not _same_token(shop.state.owner.token, token):
            # Токен уже принят при открытии opened
            self._rebind(shop, token)
        return shop

    async def _open(self, token: Optional[str], guest_id: Optional[str]) -> Shop:
        preferences = Preferences(auth_token=token or None, guest_id=guest_id or None)
        shop = await Shop.open(
            preferences, self.account_gateway, self.cart_gateway, self.order_gateway,
            clear_delay=self.clear_delay,
        )
        logger.info("opened shop for %s", shop.state.owner.key)
        return shop

    def _opened(self, opening_key: Tuple[str, Optional[str]], pending: asyncio.Future) -> None:
        self._opening.pop(opening_key, None)
        if pending.cancelled():
            return
        if pending.exception() is not None:
            logger.warning("opening shop for %s failed: %s", opening_key[0], pending.exception())
            return
        self._remember(pending.result())

    async def _confirm(self, shop: Shop, token: str) -> None:
        owner = Owner.account(shop.state.owner.account_id, token)
        await self.account_gateway.profile(owner)
        self._rebind(shop, token)

    @staticmethod
    def _rebind(shop: Shop, token: str) -> None:
        state = shop.state
        state.owner = Owner.account(state.owner.account_id, token)
        state.preferences.auth_token = token
        logger.info("new token accepted for %s", state.owner.key)

    def _remember(self, shop: Shop) -> Shop:
        key = shop.state.owner.key
        current = self._shops.setdefault(key, shop)
        self._shops.move_to_end(key)
        for old_key in list(self._shops):
            if len(self._shops) <= self.max_shops:
                break
            if old_key != key and not self._shops[old_key].state.checkout_in_flight:
                del self._shops[old_key]
                logger.info("dropped shop of %s", old_key)
        return current

    async def aclose(self) -> None:
        for gateway in (self.cart_gateway, self.order_gateway, self.account_gateway):
            close = getattr(gateway, "aclose", None)
            if close is not None:
                await close()


def _same_token(known: Optional[str], presented: str) -> bool:
    return known is not None and hmac.compare_digest(known.encode(), presented.encode())


_registry: Optional[ShopRegistry] = None


def get_registry() -> ShopRegistry:
    global _registry
    if _registry is None:
        _registry = ShopRegistry()
    return _registry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    yield
    if _registry is not None:
        await _registry.aclose()


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AddToCartRequest(BaseModel):
    product: Dict[str, Any]
    quantity: int = 1


class UpdateQuantityRequest(BaseModel):
    line_id: int
    quantity: int


class RemoveLineRequest(BaseModel):
    line_id: int


class CheckoutRequest(BaseModel):
    payment_method: str = "wallet"
    tax_multiplier: Optional[Decimal] = None


async def get_shop(
    response: Response,
    access_token: Optional[str] = Cookie(default=None),
    guest_id: Optional[str] = Cookie(default=None),
    registry: ShopRegistry = Depends(get_registry),
) -> Shop:
    try:
        shop = await registry.shop_for(access_token, guest_id)
    except ValidationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except GatewayError as e:
        if e.status_code in (401, 403, 404):
            raise HTTPException(status_code=401, detail="Invalid token")
        raise HTTPException(status_code=503, detail=str(e))

    owner = shop.state.owner
    if owner.is_guest and owner.guest_id != guest_id:
        # Новый гость: запомнить идентификатор в браузере
        response.set_cookie("guest_id", owner.guest_id)
    return shop


def _line_payload(line: CartLine) -> dict:
    return {
        "key": line.key,
        "line_id": line.line_id,
        "product_id": line.product_id,
        "quantity": line.quantity,
        "unit_price": float(line.unit_price),
        "subtotal": float(line.subtotal),
        "kind": line.kind.value,
        "store_id": line.store_id,
        "name": line.name,
        "synced": line.is_synced,
    }


def _cart_payload(shop: Shop) -> dict:
    return {
        "items": [_line_payload(line) for line in shop.cart_view()],
        "item_count": shop.item_count,
        "total": float(shop.cart_total),
    }


def _mutation_payload(mutation: CartMutation, shop: Shop) -> dict:
    return {
        "action": mutation.action.value,
        "message": mutation.message,
        "degraded": mutation.degraded,
        "cart": _cart_payload(shop),
    }


@app.get("/cart")
async def get_cart(shop: Shop = Depends(get_shop)):
    return _cart_payload(shop)


@app.post("/cart/add")
async def add_to_cart(data: AddToCartRequest, shop: Shop = Depends(get_shop)):
    try:
        mutation = await shop.add_to_cart(data.product, data.quantity)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _mutation_payload(mutation, shop)


@app.post("/cart/update")
async def update_cart(data: UpdateQuantityRequest, shop: Shop = Depends(get_shop)):
    try:
        mutation = await shop.update_quantity(data.line_id, data.quantity)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _mutation_payload(mutation, shop)


@app.post("/cart/remove")
async def remove_from_cart(data: RemoveLineRequest, shop: Shop = Depends(get_shop)):
    try:
        mutation = await shop.remove_line(data.line_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _mutation_payload(mutation, shop)


@app.post("/checkout")
async def checkout(data: CheckoutRequest, shop: Shop = Depends(get_shop)):
    result = await shop.checkout(data.payment_method, data.tax_multiplier)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return {
        "success": True,
        "message": result.message,
        "order_id": result.order.order_id,
        "charged": float(result.charged),
        "item_count": result.item_count,
        "items": [_line_payload(line) for line in result.snapshot],
        "balance": float(shop.wallet_balance),
    }


@app.get("/orders")
async def list_orders(shop: Shop = Depends(get_shop)):
    return [
        {
            "order_id": order.order_id,
            "amount": float(order.amount),
            "payment_method": order.payment_method,
            "status": order.status,
            "created_at": order.created_at.isoformat() if order.created_at else None,
            "items": [
                {"product_id": line.product_id, "quantity": line.quantity,
                 "price": float(line.price), "name": line.name}
                for line in order.lines
            ],
        }
        for order in shop.orders
    ]


@app.get("/wallet")
async def wallet(shop: Shop = Depends(get_shop)):
    return {"balance": float(shop.wallet_balance)}


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return {"status": "storefront running"}
