# cart_service/main.py
import logging
from contextlib import asynccontextmanager
import os
from typing import AsyncGenerator, List, Optional

import jwt
from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cart_service.db.database import get_db
from cart_service.db.functions import (
    add_product_to_cart,
    clear_owner_cart,
    get_cart_items,
    remove_cart_item,
    update_cart_item,
)
from cart_service.db.init_db import init_db
from cart_service.db.schemas import CartItemCreate, CartItemResponse, CartItemUpdate

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "your_secret_key")
ALGORITHM = "HS256"
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def verify_token(token: str):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("id")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def get_owner_key(token: Optional[str] = Depends(oauth2_scheme), guest_id: Optional[str] = Query(default=None)) -> str:
    """Владелец корзины: пользователь по токену, иначе гость по guest_id."""
    if token:
        return f"user:{verify_token(token)}"
    if guest_id and guest_id.strip():
        return f"guest:{guest_id.strip()}"
    raise HTTPException(status_code=401, detail="Owner is not identified")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    await init_db()
    yield


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/cart/list", response_model=List[CartItemResponse])
async def list_cart(owner_key: str = Depends(get_owner_key), db: AsyncSession = Depends(get_db)):
    return await get_cart_items(db, owner_key)


# Добавление товара в корзину
@app.post("/cart/add", response_model=CartItemResponse)
async def add_to_cart(item: CartItemCreate, owner_key: str = Depends(get_owner_key), db: AsyncSession = Depends(get_db)):
    cart_item = await add_product_to_cart(db, owner_key, item)
    logger.info("cart %s: added product %s x%s as line %s", owner_key, item.product_id, item.quantity, cart_item.id)
    return cart_item


# Обновление количества товара в корзине
@app.put("/cart/update/{line_id}", response_model=CartItemResponse)
async def update_cart_line(
    line_id: int,
    data: CartItemUpdate,
    owner_key: str = Depends(get_owner_key),
    db: AsyncSession = Depends(get_db),
):
    return await update_cart_item(db, owner_key, line_id, data)


# Удаление товара из корзины
@app.delete("/cart/remove/{line_id}")
async def remove_cart_line(line_id: int, owner_key: str = Depends(get_owner_key), db: AsyncSession = Depends(get_db)):
    await remove_cart_item(db, owner_key, line_id)
    return {"success": True, "message": "Product deleted from cart"}


@app.delete("/cart/clear")
async def clear_cart(owner_key: str = Depends(get_owner_key), db: AsyncSession = Depends(get_db)):
    removed = await clear_owner_cart(db, owner_key)
    logger.info("cart %s cleared, %d lines removed", owner_key, removed)
    return {"success": True, "removed": removed}


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return {"status": "cart_service running"}
