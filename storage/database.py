import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from scheduler import settings
from .tables import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: str = None) -> Engine:
    url = url or settings.DATABASE_URL
    options = {"pool_pre_ping": True, "echo": False}
    if url.startswith("sqlite"):
        # Worker threads share the pool; a busy writer makes others wait instead of failing at once
        options["connect_args"] = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT}

    engine = create_engine(url, **options)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")

    if settings.DB_LOG_SLOW_QUERIES:
        enable_slow_query_logging(engine, settings.DB_SLOW_QUERY_THRESHOLD)
    return engine


def enable_slow_query_logging(engine: Engine, threshold: float) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > threshold:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:200]}...")

    logger.info(f"Slow query logging enabled (threshold: {threshold}s)")


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_database(engine: Engine) -> None:
    """Create missing tables. Safe to call on every startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
