import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
    pool_recycle=1800,  # recycle connections every 30 min (avoid stale)
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def rollback_quietly(db: Session, event: str = "db_rollback_failed") -> None:
    """Откат после проглоченной ошибки БД: сессия запроса должна остаться пригодной (Postgres abort)."""
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.warning(event, exc_info=True)
