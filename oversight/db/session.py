from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import sessionmaker
from oversight.core.config import settings

engine_kwargs = {"echo": settings.SQL_ECHO, "future": True}
if settings.DATABASE_URL.startswith("postgresql+asyncpg"):
    engine_kwargs.update(
        connect_args={"statement_cache_size": 0},
        pool_pre_ping=True,
        pool_recycle=1800,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

async_session_factory = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

async def get_session() -> AsyncSession:
    async with async_session_factory() as session:
        yield session
