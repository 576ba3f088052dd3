"""
Database session management with SQLAlchemy.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
from contextlib import contextmanager

from quotereview.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (tests, local tinkering) has no server-side pool to tune
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database session."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Initialize database connection and run startup tasks.

    Schema is managed by Alembic migrations (`alembic upgrade head`).
    In DEBUG mode missing tables are created automatically.
    Demo data is seeded only when SEED_DEMO=true.
    """
    from sqlalchemy import inspect, text
    from quotereview.core.logging import get_logger

    logger = get_logger(__name__)

    if not settings.DATABASE_URL.startswith("sqlite"):
        from quotereview.db.preflight import run_db_preflight
        run_db_preflight()

    # Import models to register them
    from quotereview.db import models  # noqa

    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()
    required_tables = ['users', 'quotations', 'quotation_versions', 'quotation_history']

    missing = [t for t in required_tables if t not in existing_tables]
    if missing:
        logger.warning(f"Database schema missing tables: {missing}. Run 'alembic upgrade head'.")
        if settings.DEBUG:
            logger.warning("DEBUG=true: Auto-creating tables (NOT for production!)")
            Base.metadata.create_all(bind=engine)
        else:
            return
    else:
        logger.info(f"Database schema verified: {len(existing_tables)} tables found")

    if 'alembic_version' in existing_tables:
        try:
            with engine.connect() as conn:
                version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
                logger.info(f"Alembic migration version: {version}")
        except Exception as e:
            logger.warning(f"Could not read migration version: {e}")

    if settings.SEED_DEMO:
        from quotereview.db.seed import seed_demo_data
        logger.info("SEED_DEMO=true: Seeding demo data...")
        seed_demo_data()
