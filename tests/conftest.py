"""Shared pytest fixtures: in-memory gateways and service apps on sqlite."""

import os

os.environ.setdefault("CART_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ACCOUNT_DATABASE_URL", "sqlite+aiosqlite://")

from decimal import Decimal
from typing import Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from account_service import main as account_main
from account_service.auth_utils import create_access_token
from account_service.db import database as account_database
from cart_service import main as cart_main
from cart_service.db import database as cart_database
from storefront.checkout import CheckoutOrchestrator
from storefront.errors import GatewayError
from storefront.models import CartLine, CreateResult, LineKind, Order, Owner, Profile
from storefront.reconciler import CartReconciler
from storefront.session import Session
from storefront.state import Preferences, StorefrontState
from storefront.wallet import WalletAccount


class FakeCartGateway:
    """Cart store in memory; a product appears at most once per owner."""

    def __init__(self):
        self.carts: Dict[str, List[CartLine]] = {}
        self.calls: List[str] = []
        self.error: Optional[GatewayError] = None
        self.failing: set = set()
        self._next_id = 1

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None and (not self.failing or name in self.failing):
            raise self.error

    def fail(self, error: GatewayError, *methods: str) -> None:
        self.error = error
        self.failing = set(methods)

    def recover(self) -> None:
        self.error = None
        self.failing = set()

    def seed(self, owner: Owner, product_id: int, quantity: int, unit_price: Decimal, name: str = "Item") -> CartLine:
        line = CartLine(line_id=self._next_id, product_id=product_id, quantity=quantity,
                        unit_price=Decimal(unit_price), store_id=1, name=name)
        self._next_id += 1
        self.carts.setdefault(owner.key, []).append(line)
        return line

    async def list(self, owner: Owner) -> List[CartLine]:
        self._call("list")
        return [line.model_copy() for line in self.carts.get(owner.key, [])]

    async def create(self, owner, product_id, quantity, unit_price, kind=LineKind.product,
                     store_id=None, name=None) -> CreateResult:
        self._call("create")
        lines = self.carts.setdefault(owner.key, [])
        if any(line.product_id == product_id for line in lines):
            return CreateResult.conflicted()
        line = CartLine(line_id=self._next_id, product_id=product_id, quantity=quantity,
                        unit_price=unit_price, kind=kind, store_id=store_id, name=name)
        self._next_id += 1
        lines.append(line)
        return CreateResult.created(line.line_id)

    async def update(self, owner, line_id, quantity, unit_price) -> None:
        self._call("update")
        lines = self.carts.get(owner.key, [])
        for index, line in enumerate(lines):
            if line.line_id == line_id:
                lines[index] = line.model_copy(update={"quantity": quantity, "unit_price": unit_price})
                return
        raise GatewayError("Product not found in the cart", status_code=404)

    async def delete(self, owner, line_id) -> None:
        self._call("delete")
        lines = self.carts.get(owner.key, [])
        self.carts[owner.key] = [line for line in lines if line.line_id != line_id]


class FakeOrderGateway:
    def __init__(self, cart_gateway: Optional[FakeCartGateway] = None):
        self.cart_gateway = cart_gateway
        self.submitted = []
        self.orders: Dict[str, List[Order]] = {}
        self.submit_error: Optional[GatewayError] = None
        self.history_error: Optional[GatewayError] = None

    async def submit(self, owner, context) -> int:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(context)
        order = Order(order_id=len(self.submitted), amount=context.order_amount,
                      payment_method=context.payment_method, lines=list(context.items))
        self.orders.setdefault(owner.key, []).insert(0, order)
        if self.cart_gateway is not None:
            self.cart_gateway.carts.pop(owner.key, None)
        return order.order_id

    async def history(self, owner) -> List[Order]:
        if self.history_error is not None:
            raise self.history_error
        return list(self.orders.get(owner.key, []))


class FakeAccountGateway:
    def __init__(self):
        self.profiles: Dict[int, Profile] = {}
        self.error: Optional[GatewayError] = None
        self.issued = 0
        # None: any token is accepted
        self.valid_tokens: Optional[set] = None
        self.profile_calls = 0

    async def request_guest_id(self) -> str:
        if self.error is not None:
            raise self.error
        self.issued += 1
        return f"1700000000000{self.issued:03d}"

    async def profile(self, owner) -> Profile:
        self.profile_calls += 1
        if self.error is not None:
            raise self.error
        if self.valid_tokens is not None and owner.token not in self.valid_tokens:
            raise GatewayError("Invalid token", status_code=401)
        return self.profiles.get(owner.account_id, Profile())


@pytest.fixture
def guest():
    return Owner.guest("1700000000000123")


@pytest.fixture
def cart_gateway():
    return FakeCartGateway()


@pytest.fixture
def order_gateway(cart_gateway):
    return FakeOrderGateway(cart_gateway)


@pytest.fixture
def account_gateway():
    return FakeAccountGateway()


@pytest.fixture
def state(guest):
    return StorefrontState(owner=guest, wallet=WalletAccount(Decimal("100")),
                           preferences=Preferences(guest_id=guest.guest_id))


@pytest.fixture
def session(state, account_gateway):
    return Session(state.preferences, account_gateway)


@pytest.fixture
def reconciler(cart_gateway, state):
    return CartReconciler(cart_gateway, state, clock=lambda: 1700000000.5)


@pytest.fixture
async def orchestrator(cart_gateway, order_gateway, session, state):
    orchestrator = CheckoutOrchestrator(cart_gateway, order_gateway, session, state, clear_delay=0)
    yield orchestrator
    if orchestrator.clear_task is not None:
        await orchestrator.clear_task


def _sqlite_sessions():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return engine, sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def cart_sessions():
    engine, factory = _sqlite_sessions()
    async with engine.begin() as conn:
        await conn.run_sync(cart_database.Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest.fixture
async def cart_client(cart_sessions):
    async def override_get_db():
        async with cart_sessions() as session:
            yield session

    cart_main.app.dependency_overrides[cart_database.get_db] = override_get_db
    transport = httpx.ASGITransport(app=cart_main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://cart_service") as client:
        yield client
    cart_main.app.dependency_overrides.clear()


@pytest.fixture
async def account_sessions():
    engine, factory = _sqlite_sessions()
    async with engine.begin() as conn:
        await conn.run_sync(account_database.Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest.fixture
def cleared_carts(monkeypatch):
    """Owners whose remote cart the account service asked to clear."""
    calls = []

    async def fake_clear_remote_cart(token, guest_id):
        calls.append((token, guest_id))

    monkeypatch.setattr(account_main, "clear_remote_cart", fake_clear_remote_cart)
    return calls


@pytest.fixture
async def account_client(account_sessions, cleared_carts):
    async def override_get_db():
        async with account_sessions() as session:
            yield session

    account_main.app.dependency_overrides[account_database.get_db] = override_get_db
    transport = httpx.ASGITransport(app=account_main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://account_service") as client:
        yield client
    account_main.app.dependency_overrides.clear()


@pytest.fixture
def bearer():
    def headers(user_id: int) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'id': user_id})}"}
    return headers
