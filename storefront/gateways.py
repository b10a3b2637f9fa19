# storefront/gateways.py
"""HTTP clients for the cart and account services.

Every failure surfaces as :class:`~storefront.errors.GatewayError`;
network failures and timeouts as its subclass
:class:`~storefront.errors.TransportError`. A duplicate cart line is not an
error: :meth:`HttpCartGateway.create` reports it as a conflict result.
A success answer whose body cannot be read raises
:class:`~storefront.errors.MalformedResponseError`.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, List, Optional

import httpx

from storefront import config
from storefront.errors import GatewayError, MalformedResponseError, TransportError
from storefront.models import (
    CartLine,
    CreateResult,
    LineKind,
    Order,
    OrderContext,
    OrderLine,
    Owner,
    Profile,
)
from storefront.pricing import normalize_price

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    429: "Too Many Requests",
    500: "Server Error",
}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return _STATUS_MESSAGES.get(response.status_code, response.reason_phrase or "Request failed")


class _HttpGateway:
    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = config.REQUEST_TIMEOUT) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, url: str, owner: Optional[Owner] = None,
                    allow: tuple = (), **kwargs) -> httpx.Response:
        if owner is not None:
            kwargs["headers"] = {**owner.auth_headers(), **kwargs.get("headers", {})}
            kwargs["params"] = {**owner.query_params(), **kwargs.get("params", {})}
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out: %s", method, url, e)
            raise TransportError("Request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransportError("Network Error") from e

        logger.debug("%s %s -> %s", method, url, response.status_code)
        if response.is_error and response.status_code not in allow:
            raise GatewayError(_error_message(response), status_code=response.status_code)
        return response

    @staticmethod
    @contextmanager
    def _reading(response: httpx.Response) -> Iterator[None]:
        # pydantic ValidationError тоже ValueError
        try:
            yield
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("unreadable answer from %s: %r", response.url, e)
            raise MalformedResponseError("Malformed response", status_code=response.status_code) from e


def _cart_line(item: dict) -> CartLine:
    nested = item.get("item") or {}
    kind = item.get("kind") or LineKind.product
    return CartLine(
        line_id=int(item["id"]),
        product_id=int(item.get("product_id", item.get("item_id"))),
        quantity=int(item.get("quantity") or 1),
        unit_price=normalize_price(item),
        kind=kind if kind in (LineKind.product, LineKind.service) else LineKind.product,
        store_id=item.get("store_id", nested.get("store_id")),
        name=item.get("name", nested.get("name")),
    )


class HttpCartGateway(_HttpGateway):
    """Client of the authoritative cart store."""

    def __init__(self, base_url: str = config.CART_SERVICE_URL, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)

    async def list(self, owner: Owner) -> List[CartLine]:
        response = await self._send("GET", "/cart/list", owner)
        with self._reading(response):
            data = response.json()
            if isinstance(data, dict):
                data = data.get("cart_items") or []
            return [_cart_line(item) for item in data]

    async def create(self, owner: Owner, product_id: int, quantity: int, unit_price: Decimal,
                     kind: LineKind = LineKind.product, store_id: Optional[int] = None,
                     name: Optional[str] = None) -> CreateResult:
        payload = {
            "product_id": product_id,
            "quantity": quantity,
            "price": str(unit_price),
            "kind": LineKind(kind).value,
            "store_id": store_id,
            "name": name,
        }
        response = await self._send("POST", "/cart/add", owner, allow=(409,), json=payload)
        if response.status_code == 409:
            return CreateResult.conflicted()
        with self._reading(response):
            return CreateResult.created(int(response.json()["id"]))

    async def update(self, owner: Owner, line_id: int, quantity: int, unit_price: Decimal) -> None:
        await self._send("PUT", f"/cart/update/{line_id}", owner,
                         json={"quantity": quantity, "price": str(unit_price)})

    async def delete(self, owner: Owner, line_id: int) -> None:
        await self._send("DELETE", f"/cart/remove/{line_id}", owner)


def _order(data: dict) -> Order:
    return Order(
        order_id=data["id"],
        amount=normalize_price(data.get("order_amount")),
        payment_method=data.get("payment_method", "wallet"),
        status=data.get("status", "pending"),
        created_at=data.get("created_at"),
        lines=[
            OrderLine(
                product_id=item["product_id"],
                quantity=item["quantity"],
                price=normalize_price(item),
                kind=item.get("kind", LineKind.product),
                name=item.get("name"),
            )
            for item in data.get("order_items", [])
        ],
    )


class HttpOrderGateway(_HttpGateway):
    """Places orders and reads order history."""

    def __init__(self, base_url: str = config.ACCOUNT_SERVICE_URL, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)

    async def submit(self, owner: Owner, context: OrderContext) -> int:
        """Place the order and return its id.

        A success answer without a readable id raises
        :class:`~storefront.errors.MalformedResponseError`; the order is placed
        all the same.
        """
        response = await self._send("POST", "/order/place", owner, json=context.model_dump(mode="json"))
        with self._reading(response):
            return int(response.json()["order_id"])

    async def history(self, owner: Owner) -> List[Order]:
        response = await self._send("GET", "/order/list", owner)
        with self._reading(response):
            return [_order(data) for data in response.json()]


class HttpAccountGateway(_HttpGateway):
    """Guest identities and account profiles."""

    def __init__(self, base_url: str = config.ACCOUNT_SERVICE_URL, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)

    async def request_guest_id(self) -> str:
        response = await self._send("POST", "/auth/guest/request")
        with self._reading(response):
            return str(response.json()["guest_id"])

    async def profile(self, owner: Owner) -> Profile:
        response = await self._send("GET", "/customer/info", owner)
        with self._reading(response):
            return Profile.model_validate(response.json())
