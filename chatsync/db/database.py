from sqlalchemy import event
from sqlmodel import create_engine, Session, SQLModel
from chatsync.core.config import settings
import os
import logging

logger = logging.getLogger(__name__)

# Only use connect_args if we are using SQLite
engine_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}
else:
    engine_args.update({
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    })


def enforce_foreign_keys(engine) -> None:
    """SQLite ignores declared foreign keys unless each connection opts in."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _foreign_keys_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(settings.DATABASE_URL, echo=False, **engine_args)
enforce_foreign_keys(engine)


def get_session():
    """Provide database session"""
    with Session(engine) as session:
        yield session


def init_db():
    """Create the data/ directory for SQLite, then create all tables"""
    if settings.DATABASE_URL.startswith("sqlite:///./"):
        os.makedirs(os.path.dirname(settings.DATABASE_URL[len("sqlite:///"):]), exist_ok=True)

    # Import models so they register with SQLModel.metadata
    from chatsync.db import models  # noqa: F401

    try:
        SQLModel.metadata.create_all(engine)
        logger.info("✅ Database tables created/verified")
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {e}")
        raise
