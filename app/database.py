"""
Database engine, session factory, and declarative base.

  - engine: the one async engine for the process
  - AsyncSessionLocal: factory for request-scoped sessions
  - Base: declarative base every ORM model inherits from
  - get_db(): FastAPI dependency yielding one session per request

SQLite (through aiosqlite) is the default store. Pointing DATABASE_URL at
PostgreSQL with the asyncpg driver needs no code change; the row locks
taken by the funding engine only become real locks there.

Engine lifecycle:
  Created when this module is first imported, disposed exactly once by the
  lifespan handler in app/main.py.

Request transaction:
  Everything a request does runs in the transaction of the session that
  get_db() hands out. Services that write commit it themselves before
  returning: get_db's teardown runs after the response has been sent, so
  a commit failing there could no longer change the status code. The
  teardown commit only flushes what nobody committed, and any exception,
  domain errors included, rolls the transaction back so a rejected request
  leaves nothing behind.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


# DEBUG echoes every SQL statement to the log
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# Objects stay readable after commit; an expired attribute would need a
# lazy load, which async sessions cannot do implicitly.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base; its metadata holds every table for create_all()."""
    pass


async def get_db():
    """
    Yield a session whose transaction spans the whole request.

        @router.get("/accounts")
        async def list_accounts(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
