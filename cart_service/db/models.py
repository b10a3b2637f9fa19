# cart_service/db/models.py
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from cart_service.db.database import Base


class Cart(Base):
    __tablename__ = 'carts'

    id = Column(Integer, primary_key=True, index=True)
    # "user:<id>" или "guest:<guest_id>"
    owner_key = Column(String, unique=True, nullable=False, index=True)

    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")


class CartItem(Base):
    __tablename__ = 'cart_items'
    # Одна строка на товар в корзине, параллельные добавления сходятся на этом ограничении
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),)

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=False)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    kind = Column(String, nullable=False, default="product")
    store_id = Column(Integer, nullable=True)
    name = Column(String, nullable=True)

    cart = relationship("Cart", back_populates="items")
