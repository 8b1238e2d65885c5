import asyncio

from backend.app.core.base import Base
from backend.app.core.database import engine
from backend.app.models import user, wallet, product, order, subscription  # noqa: F401


async def reset():
    print("Dropping all tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        print("Tables dropped.")

        await conn.run_sync(Base.metadata.create_all)
        print("Schema recreated.")
    await engine.dispose()
    # Alembic history is not touched; run `alembic stamp head` afterwards on a managed database
    print("Database is empty and ready.")


if __name__ == "__main__":
    asyncio.run(reset())
