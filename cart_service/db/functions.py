# cart_service/db/functions.py
import logging

from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from cart_service.db.models import Cart, CartItem
from cart_service.db.schemas import CartItemCreate, CartItemUpdate

logger = logging.getLogger(__name__)

ITEM_EXISTS_DETAIL = "Item already exists"


# Получение корзины по ключу владельца
async def get_cart_by_owner(db: AsyncSession, owner_key: str):
    result = await db.execute(select(Cart).filter(Cart.owner_key == owner_key))
    return result.scalar_one_or_none()


async def get_or_create_cart(db: AsyncSession, owner_key: str) -> Cart:
    """
    Получить корзину владельца, создав её при первом обращении.
    Если корзину параллельно создал другой запрос, берём уже существующую.
    """
    cart = await get_cart_by_owner(db, owner_key)
    if cart:
        return cart

    cart = Cart(owner_key=owner_key)
    db.add(cart)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        cart = await get_cart_by_owner(db, owner_key)
        if cart is None:
            raise
        return cart
    await db.refresh(cart)
    return cart


async def get_cart_items(db: AsyncSession, owner_key: str):
    """
    Получить товары из корзины владельца. Пустая или ещё не созданная корзина даёт пустой список.
    """
    cart = await get_cart_by_owner(db, owner_key)
    if not cart:
        return []

    result = await db.execute(
        select(CartItem).filter(CartItem.cart_id == cart.id).order_by(CartItem.id)
    )
    items = result.scalars().all()
    logger.debug("cart %s has %d items", owner_key, len(items))
    return items


async def get_cart_item(db: AsyncSession, owner_key: str, line_id: int) -> CartItem:
    cart = await get_cart_by_owner(db, owner_key)
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")

    result = await db.execute(
        select(CartItem).filter(CartItem.id == line_id, CartItem.cart_id == cart.id)
    )
    cart_item = result.scalar_one_or_none()
    if not cart_item:
        raise HTTPException(status_code=404, detail="Product not found in the cart")
    return cart_item


# Добавление товара в корзину
async def add_product_to_cart(db: AsyncSession, owner_key: str, item: CartItemCreate) -> CartItem:
    """
    Создать строку корзины. Повторное добавление того же товара отклоняется с 409,
    клиент сам решает, как объединить количество.
    """
    cart = await get_or_create_cart(db, owner_key)

    existing = await db.execute(
        select(CartItem).filter(CartItem.product_id == item.product_id, CartItem.cart_id == cart.id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=ITEM_EXISTS_DETAIL)

    new_item = CartItem(
        cart_id=cart.id,
        product_id=item.product_id,
        quantity=item.quantity,
        price=item.price,
        kind=item.kind,
        store_id=item.store_id,
        name=item.name,
    )
    db.add(new_item)
    try:
        await db.commit()
    except IntegrityError:
        # Параллельный запрос успел вставить ту же строку
        await db.rollback()
        logger.info("duplicate add for product %s in cart %s", item.product_id, owner_key)
        raise HTTPException(status_code=409, detail=ITEM_EXISTS_DETAIL)
    await db.refresh(new_item)
    return new_item


# Обновление количества и цены строки
async def update_cart_item(db: AsyncSession, owner_key: str, line_id: int, data: CartItemUpdate) -> CartItem:
    cart_item = await get_cart_item(db, owner_key, line_id)
    cart_item.quantity = data.quantity
    cart_item.price = data.price
    await db.commit()
    await db.refresh(cart_item)
    return cart_item


# Удаление строки из корзины
async def remove_cart_item(db: AsyncSession, owner_key: str, line_id: int) -> None:
    cart_item = await get_cart_item(db, owner_key, line_id)
    await db.delete(cart_item)
    await db.commit()


async def clear_owner_cart(db: AsyncSession, owner_key: str) -> int:
    """Очистка корзины владельца, возвращает число удалённых строк."""
    cart = await get_cart_by_owner(db, owner_key)
    if not cart:
        return 0

    result = await db.execute(delete(CartItem).filter(CartItem.cart_id == cart.id))
    await db.commit()
    return result.rowcount or 0
