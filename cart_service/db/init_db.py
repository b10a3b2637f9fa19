# cart_service/db/init_db.py
from cart_service.db.database import engine, Base
from cart_service.db import models  # noqa: F401


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
