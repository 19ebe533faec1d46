"""
Database Session — Async SQLAlchemy
=====================================
"""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from tenantguard.config import settings
from tenantguard.db.models import Base

engine = create_async_engine(settings.database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(bind=None):
    """Create all tables (dev convenience; migrations are managed outside this service)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
