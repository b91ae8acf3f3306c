from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    pool_pre_ping=True,
    pool_recycle=3600,
    max_overflow=settings.db_max_overflow,
    echo=settings.log_level.lower() == "debug",
)

# Objects stay readable after the service commits
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
