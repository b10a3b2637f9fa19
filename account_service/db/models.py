# account_service/db/models.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Numeric
from sqlalchemy.orm import relationship

from account_service.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


# Модель пользователя
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    f_name = Column(String, nullable=True)
    l_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    wallet_balance = Column(Numeric(12, 2), nullable=True)  # Пусто: баланс по умолчанию
    is_active = Column(Boolean, default=True)  # Активен ли пользователь

    orders = relationship("Order", back_populates="user")


# Модель заказов
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    owner_key = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # Пусто для гостей
    created_at = Column(DateTime(timezone=True), default=_utcnow)  # Дата создания заказа
    status = Column(String, default="pending")  # Статус заказа
    payment_method = Column(String, nullable=False)
    order_type = Column(String, nullable=False, default="delivery")
    order_amount = Column(Numeric(12, 2), nullable=False)
    store_id = Column(Integer, nullable=False)
    address = Column(String, nullable=True)
    contact_person_name = Column(String, nullable=True)
    contact_person_number = Column(String, nullable=True)
    contact_person_email = Column(String, nullable=True)

    user = relationship("User", back_populates="orders")
    order_items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


# Элементы заказа, копия строк корзины на момент оформления
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Integer, default=1)  # Количество товара
    price = Column(Numeric(10, 2), nullable=False)
    kind = Column(String, nullable=False, default="product")
    name = Column(String, nullable=True)

    order = relationship("Order", back_populates="order_items")
