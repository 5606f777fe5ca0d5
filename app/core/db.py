"""Async engine and request-scoped sessions."""

from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

# Understood by libpq/psycopg2, rejected by asyncpg (SSL goes through connect_args instead)
_LIBPQ_ONLY_PARAMS = ("sslmode", "channel_binding")


def to_driver_url(url: str, driver: str) -> str:
    """The same Postgres URL with ``postgresql+<driver>`` as scheme.

    Hosted Postgres providers hand out ``postgres://`` or ``postgresql://``
    URLs; the app engine needs asyncpg and Alembic needs psycopg2.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme
    if scheme in ("postgres", "postgresql") or scheme.startswith("postgresql+"):
        scheme = f"postgresql+{driver}"
    query = parse_qs(parsed.query, keep_blank_values=True)
    if driver == "asyncpg":
        for param in _LIBPQ_ONLY_PARAMS:
            query.pop(param, None)
    return urlunparse(parsed._replace(scheme=scheme, query=urlencode(query, doseq=True)))


engine = create_async_engine(
    to_driver_url(settings.database_url, "asyncpg"),
    echo=settings.env == "development",
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
    connect_args={"ssl": True} if settings.database_ssl else {},
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Commit when the handler returns, roll back when it raises.

    Booking inserts commit on their own inside the store; this commit covers
    status changes, schedules and event type edits.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
