# account_service/db/database.py
import os
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

load_dotenv()

DATABASE_URL = os.getenv("ACCOUNT_DATABASE_URL") or (
    f"postgresql+asyncpg://{os.getenv('ACCOUNT_DB_USER')}:{os.getenv('ACCOUNT_DB_PASSWORD')}"
    f"@{os.getenv('ACCOUNT_DB_HOST')}:{os.getenv('ACCOUNT_DB_PORT')}/{os.getenv('ACCOUNT_DB_NAME')}"
)

engine = create_async_engine(DATABASE_URL, echo=os.getenv("ACCOUNT_DB_ECHO") == "1")

SessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


# Генератор сессий
async def get_db():
    async with SessionLocal() as session:
        yield session
