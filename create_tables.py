"""
create_tables.py
----------------
One-shot script to create all database tables and the demo identity.
Use this for quick setup; there are no migrations.

Usage:
    python create_tables.py
"""

import asyncio

from assistant_platform.core.config import settings
from assistant_platform.core.logging import configure_logging, get_logger
from assistant_platform.db.session import dispose_engine, get_engine, get_session_factory
from assistant_platform.models import Base, Tenant, User, UserRole  # Imports all models so metadata is populated

logger = get_logger(__name__)


async def seed_demo_identity() -> None:
    """Requests without identity hints act as this user in this tenant."""
    async with get_session_factory()() as session:
        if await session.get(Tenant, settings.DEMO_TENANT_ID) is None:
            session.add(
                Tenant(id=settings.DEMO_TENANT_ID, name="Demo Company", slug="demo")
            )
        if await session.get(User, settings.DEMO_USER_ID) is None:
            session.add(
                User(
                    id=settings.DEMO_USER_ID,
                    tenant_id=settings.DEMO_TENANT_ID,
                    email="demo@example.com",
                    name="Demo User",
                    role=UserRole.user.value,
                )
            )
        await session.commit()


async def create_all_tables() -> None:
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_demo_identity()
    await dispose_engine()
    logger.info("All tables created", demo_tenant_id=settings.DEMO_TENANT_ID)


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_all_tables())
