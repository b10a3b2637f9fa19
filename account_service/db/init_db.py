# account_service/db/init_db.py
from account_service.db.database import engine, Base
from account_service.db import models  # noqa: F401


async def init_db():
    async with engine.begin() as conn:
        # Создание всех таблиц
        await conn.run_sync(Base.metadata.create_all)
