import time
import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from token_relay.config import DATABASE_URL as RAW_DATABASE_URL

logger = logging.getLogger("token_relay.database")

Base = declarative_base()


def _normalize_async_database_url(database_url: str | None) -> str:
    """Ensure SQLAlchemy async engine always uses the asyncpg dialect."""
    if not database_url:
        return ""
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return database_url


DATABASE_URL = _normalize_async_database_url(RAW_DATABASE_URL)


def _attach_query_logging(engine):
    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def before_cursor_execute(
        conn, cursor, statement, parameters, context, executemany
    ):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info["query_start_time"].pop(-1)
        total = time.time() - start_time
        logger.info(
            f"DB_QUERY SUCCESS | duration_ms={total * 1000:.2f} | query={statement[:200]}..."
        )

    @event.listens_for(engine.sync_engine, "handle_error")
    def handle_error(context):
        if (
            context.connection is not None
            and context.connection.info.get("query_start_time")
        ):
            start_time = context.connection.info["query_start_time"].pop(-1)
            total = time.time() - start_time
            logger.error(
                f"DB_QUERY ERROR | duration_ms={total * 1000:.2f} | error={context.original_exception}"
            )


engine = None
async_session_maker = None

if DATABASE_URL:
    try:
        engine = create_async_engine(
            DATABASE_URL,
            pool_size=5,
            max_overflow=5,
            pool_timeout=5,
            pool_recycle=600,
            pool_pre_ping=True,
            echo=False,
        )
        _attach_query_logging(engine)
        async_session_maker = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
    except Exception as e:
        # Leave the engine unset; the app falls back to the in-memory store.
        logger.error(f"Failed configuring async engine: {e}")
        engine = None
        async_session_maker = None


async def init_models() -> None:
    """Create the token table if it does not exist yet."""
    if engine is None:
        return

    # Registers the mapped tables on Base.metadata
    from token_relay.models import token  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured.")


async def dispose_engine() -> None:
    if engine is not None:
        await engine.dispose()
