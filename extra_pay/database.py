"""Database engine, session factory and the declarative base."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from extra_pay.config import Settings, get_settings


def build_engine(settings: Settings) -> Engine:
    """Engine for the configured URL. SQLite is shared across FastAPI's worker threads."""
    if settings.database_url.startswith("sqlite"):
        return create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False}
        )
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow
    )


engine = build_engine(get_settings())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a session per request; the caller commits."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
