from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.middleware import install_query_counter


def install_sqlite_savepoints(engine) -> None:
    """
    Make SAVEPOINTs (``session.begin_nested()``) behave on SQLite.

    The pysqlite/aiosqlite drivers defer BEGIN until the first DML
    statement, which breaks nested transactions.  Driver-level
    transaction handling is switched off and SQLAlchemy emits BEGIN
    itself.  Foreign keys are also switched on so ``ON DELETE CASCADE``
    is honoured.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)
if engine.dialect.name == "sqlite":
    install_sqlite_savepoints(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield one session per request.  The request is the transaction: it
    commits when the handler returns and rolls back on any exception,
    so a failed operation never leaves partial multi-row state behind.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
