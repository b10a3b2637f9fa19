# account_service/db/functions.py
import logging
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from account_service.db.models import User, Order, OrderItem
from account_service.db.schemas import OrderCreate

logger = logging.getLogger(__name__)

# Допустимое расхождение суммы заказа и суммы строк
AMOUNT_TOLERANCE = Decimal("0.01")


# Функция для получения пользователя по ID
async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(select(User).filter(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, user_data: dict):
    db_user = User(**user_data)
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user


# Функция для создания нового заказа
async def create_order(db: AsyncSession, owner_key: str, user_id: Optional[int], order_data: OrderCreate):
    """
    Создать заказ вместе со всеми его элементами одной транзакцией.
    Сумма заказа должна совпадать с суммой строк.
    """
    if user_id is not None and not await get_user_by_id(db, user_id):
        raise HTTPException(status_code=404, detail="User not found")

    lines_total = sum((item.price * item.quantity for item in order_data.items), Decimal("0"))
    if abs(lines_total - order_data.order_amount) > AMOUNT_TOLERANCE:
        raise HTTPException(status_code=400, detail="Order amount does not match order items")

    new_order = Order(
        owner_key=owner_key,
        user_id=user_id,
        status="pending",
        payment_method=order_data.payment_method,
        order_type=order_data.order_type,
        order_amount=order_data.order_amount,
        store_id=order_data.store_id,
        address=order_data.address,
        contact_person_name=order_data.contact_person_name,
        contact_person_number=order_data.contact_person_number,
        contact_person_email=order_data.contact_person_email,
        order_items=[
            OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                kind=item.kind,
                name=item.name,
            )
            for item in order_data.items
        ],
    )
    db.add(new_order)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(new_order)
    logger.info("order %s created for %s, amount %s", new_order.id, owner_key, order_data.order_amount)
    return new_order


# Функция для получения всех заказов владельца вместе с элементами
async def get_owner_orders(db: AsyncSession, owner_key: str, skip: int = 0, limit: int = 100):
    result = await db.execute(
        select(Order)
        .filter(Order.owner_key == owner_key)
        .options(selectinload(Order.order_items))
        .order_by(Order.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()
