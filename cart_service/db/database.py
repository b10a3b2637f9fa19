# cart_service/db/database.py
import os
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

load_dotenv()

DATABASE_URL = os.getenv("CART_DATABASE_URL") or (
    f"postgresql+asyncpg://{os.getenv('CART_DB_USER')}:{os.getenv('CART_DB_PASSWORD')}"
    f"@{os.getenv('CART_DB_HOST')}:{os.getenv('CART_DB_PORT')}/{os.getenv('CART_DB_NAME')}"
)

# Асинхронный движок
engine = create_async_engine(DATABASE_URL, echo=os.getenv("CART_DB_ECHO") == "1")

SessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db():
    async with SessionLocal() as session:
        yield session
