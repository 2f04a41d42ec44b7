import logging
import os
import time
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import QueuePool

logger = logging.getLogger(__name__)

# -------------------------------
# Base class for models (SINGLE declaration)
# -------------------------------
Base = declarative_base()

# -------------------------------
# Configuration
# -------------------------------
def get_database_url() -> str:
    """
    Get database URL from environment or fallback to local.

    Priority:
    1. DATABASE_URL from environment (for production)
    2. POSTGRES_URL from environment (alternative)
    3. Local development URL
    """
    cloud_url = os.getenv("DATABASE_URL")
    if cloud_url:
        # Heroku-style URLs are rejected by SQLAlchemy 1.4+
        if cloud_url.startswith("postgres://"):
            cloud_url = cloud_url.replace("postgres://", "postgresql://", 1)
        return cloud_url

    postgres_url = os.getenv("POSTGRES_URL")
    if postgres_url:
        return postgres_url

    db_user = os.getenv("DB_USER", "postgres")
    db_password = os.getenv("DB_PASSWORD", "postgres")
    db_host = os.getenv("DB_HOST", "localhost")
    db_port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "backoffice_db")

    return f"postgresql+psycopg2://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development") == "production"

# -------------------------------
# Engine Configuration
# -------------------------------
def create_database_engine(url: Optional[str] = None) -> Engine:
    """
    Create and configure the SQLAlchemy engine.

    The engine is the process-wide storage handle: create it once at startup,
    hand it to whoever needs sessions, and dispose it at shutdown.
    """
    database_url = url or get_database_url()

    engine_args = {
        "echo": False,
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 300,
        "pool_size": 20,
        "max_overflow": 40,
        "pool_timeout": 30,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        }
    }

    engine_args["poolclass"] = QueuePool

    if is_production():
        engine_args.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_recycle": 1800,  # 30 minutes
        })

    if database_url.startswith("sqlite"):
        engine_args.pop("pool_size", None)
        engine_args.pop("max_overflow", None)
        engine_args.pop("pool_recycle", None)
        # timeout: seconds a writer waits on a locked database file
        engine_args["connect_args"] = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_url, **engine_args)

    sql_echo = os.getenv("SQL_ECHO", "false").lower() == "true" and not is_production()
    if sql_echo:
        @event.listens_for(engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault("query_start_time", []).append(time.time())
            logger.debug("SQL: %s", statement)
            if parameters:
                logger.debug("Params: %s", parameters)

        @event.listens_for(engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            total = time.time() - conn.info["query_start_time"].pop(-1)
            logger.debug("Execution time: %.3fs", total)

    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine

# -------------------------------
# Session Factory
# -------------------------------
def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,  # Better for web apps
    )

# -------------------------------
# FastAPI Dependency
# -------------------------------
def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency function that yields a database session from the
    session factory installed on the application at startup.

    Usage in FastAPI:
        db: Session = Depends(get_db)
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

# -------------------------------
# Database Health Check
# -------------------------------
def check_database_connection(engine: Engine) -> bool:
    """
    Check if database is accessible.
    Returns True if successful, False otherwise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database connection error")
        return False

# -------------------------------
# Database Initialization
# -------------------------------
def init_db(engine: Engine) -> None:
    """
    Initialize database by creating all tables.

    WARNING: Only use in development!
    For production, use Alembic migrations.
    """
    # Register the tables on Base.metadata
    from backoffice import models  # noqa: F401

    if not check_database_connection(engine):
        raise RuntimeError("Cannot connect to database")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created")
