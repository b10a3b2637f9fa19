from decimal import Decimal

import httpx
import pytest

from storefront.checkout import CheckoutOrchestrator
from storefront.errors import GatewayError, MalformedResponseError, TransportError
from storefront.gateways import HttpAccountGateway, HttpCartGateway, HttpOrderGateway
from storefront.models import OrderContext, OrderLine, Owner
from storefront.reconciler import CartAction, CartReconciler
from storefront.session import Session
from storefront.state import Preferences, StorefrontState
from storefront.wallet import WalletAccount

GUEST = Owner.guest("1700000000000123")


def _mock_gateway(handler, gateway_class=HttpCartGateway):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://mock")
    return gateway_class(client=client)


def _context():
    return OrderContext(store_id=1, order_amount=Decimal("5"), address="123 Main St", guest_id=GUEST.guest_id,
                        items=[OrderLine(product_id=7, quantity=1, price=Decimal("5"))])


async def test_create_list_update_delete(cart_client):
    gateway = HttpCartGateway(client=cart_client)

    created = await gateway.create(GUEST, 7, 2, Decimal("12.50"), name="Pizza", store_id=3)
    assert not created.conflict

    [line] = await gateway.list(GUEST)
    assert line.line_id == created.line_id
    assert line.unit_price == Decimal("12.5")
    assert line.store_id == 3

    await gateway.update(GUEST, line.line_id, 5, line.unit_price)
    assert (await gateway.list(GUEST))[0].quantity == 5

    await gateway.delete(GUEST, line.line_id)
    assert await gateway.list(GUEST) == []


async def test_duplicate_create_is_a_conflict(cart_client):
    gateway = HttpCartGateway(client=cart_client)
    await gateway.create(GUEST, 7, 1, Decimal("1"))

    result = await gateway.create(GUEST, 7, 1, Decimal("1"))

    assert result.conflict
    assert result.line_id is None


async def test_error_detail_becomes_message(cart_client):
    gateway = HttpCartGateway(client=cart_client)
    await gateway.create(GUEST, 7, 1, Decimal("1"))

    with pytest.raises(GatewayError) as info:
        await gateway.update(GUEST, 999, 1, Decimal("1"))

    assert info.value.status_code == 404
    assert str(info.value) == "Product not found in the cart"


async def test_network_failure_is_a_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError, match="Network Error"):
        await _mock_gateway(handler).list(GUEST)


async def test_timeout_is_a_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransportError, match="Request timed out"):
        await _mock_gateway(handler).list(GUEST)


async def test_message_field_and_status_fallback():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(400, json={"message": "Item already exists"})
        return httpx.Response(500, text="boom")

    gateway = _mock_gateway(handler)
    with pytest.raises(GatewayError, match="Item already exists"):
        await gateway.create(GUEST, 1, 1, Decimal("1"))
    with pytest.raises(GatewayError, match="Server Error"):
        await gateway.list(GUEST)


async def test_wrapped_listing_and_item_id():
    def handler(request):
        assert request.url.params["guest_id"] == GUEST.guest_id
        return httpx.Response(200, json={"cart_items": [
            {"id": 3, "item_id": 9, "quantity": 2, "price": "₿ 4.00", "item": {"name": "Tea", "store_id": 1}},
        ]})

    [line] = await _mock_gateway(handler).list(GUEST)

    assert (line.line_id, line.product_id, line.quantity) == (3, 9, 2)
    assert line.unit_price == Decimal("4.00")
    assert (line.name, line.store_id) == ("Tea", 1)


async def test_placed_order_without_id_is_malformed():
    def handler(request):
        return httpx.Response(200, json={"message": "Order placed"})

    gateway = _mock_gateway(handler, HttpOrderGateway)
    with pytest.raises(MalformedResponseError) as info:
        await gateway.submit(GUEST, _context())

    assert isinstance(info.value, GatewayError)
    assert info.value.status_code == 200


async def test_unreadable_listing_is_malformed():
    def handler(request):
        return httpx.Response(200, json=[{"id": 1}])

    with pytest.raises(MalformedResponseError):
        await _mock_gateway(handler).list(GUEST)


async def test_non_json_profile_is_malformed():
    def handler(request):
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(MalformedResponseError):
        await _mock_gateway(handler, HttpAccountGateway).profile(Owner.account(1, "abc"))


async def test_unreadable_listing_after_create_degrades_the_add():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"id": 5})
        return httpx.Response(200, json={"cart_items": "oops"})

    state = StorefrontState(owner=GUEST, wallet=WalletAccount(Decimal("0")),
                            preferences=Preferences(guest_id=GUEST.guest_id))
    reconciler = CartReconciler(_mock_gateway(handler), state)

    mutation = await reconciler.add_to_cart({"id": 7, "name": "Pizza", "price": 3})

    assert mutation.action == CartAction.added
    assert [(line.line_id, line.quantity) for line in state.cart.lines] == [(5, 1)]


async def test_bearer_token_sent_for_accounts():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={"email": "ann@example.com", "f_name": "Ann", "id": 1})

    gateway = _mock_gateway(handler, HttpAccountGateway)
    profile = await gateway.profile(Owner.account(1, "abc"))

    assert seen["authorization"] == "Bearer abc"
    assert profile.full_name == "Ann"


async def test_reconciler_and_checkout_against_services(cart_client, account_client, cleared_carts):
    cart_gateway = HttpCartGateway(client=cart_client)
    order_gateway = HttpOrderGateway(client=account_client)
    account_gateway = HttpAccountGateway(client=account_client)
    state = StorefrontState(owner=GUEST, wallet=WalletAccount(Decimal("100")),
                            preferences=Preferences(guest_id=GUEST.guest_id))
    reconciler = CartReconciler(cart_gateway, state)
    orchestrator = CheckoutOrchestrator(cart_gateway, order_gateway,
                                        Session(state.preferences, account_gateway), state, clear_delay=0)

    pizza = {"id": 7, "name": "Pizza", "price": "₿ 12.50", "store_id": 3}
    assert (await reconciler.add_to_cart(pizza)).action == CartAction.added
    assert (await reconciler.add_to_cart(pizza)).action == CartAction.merged
    assert [(line.product_id, line.quantity) for line in state.cart.lines] == [(7, 2)]

    result = await orchestrator.checkout()
    await orchestrator.clear_task

    assert result.success, result.message
    assert state.wallet.balance == Decimal("75")
    assert cleared_carts == [(None, GUEST.guest_id)]
    [order] = state.orders
    assert order.order_id == result.order.order_id
    assert order.amount == Decimal("25")
    assert [(line.product_id, line.quantity) for line in order.lines] == [(7, 2)]
    assert state.cart.is_empty()
