from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from origination.core.settings import settings
from origination.db.url import is_sqlite_url


def build_engine(url: str, **kwargs) -> AsyncEngine:
    if is_sqlite_url(url):
        kwargs.setdefault("poolclass", NullPool)
    return create_async_engine(url, future=True, echo=False, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False, autoflush=False)


engine = build_engine(settings.database_url)
AsyncSessionLocal = build_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal
