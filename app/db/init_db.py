"""Create database tables (local/dev setups without migrations)."""
import logging

from sqlalchemy.engine import Engine

from app.db.base import Base
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.consumed_payment import ConsumedOneTimePayment  # noqa: F401
from app.models.one_time_purchase import OneTimePurchase  # noqa: F401
from app.models.pdf_operation import PdfOperation  # noqa: F401
from app.models.user import User  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables registered on Base.metadata."""
    if bind is None:
        from app.db.session import engine

        bind = engine
    Base.metadata.create_all(bind=bind)
    logger.info("db_tables_created", extra={"count": len(Base.metadata.tables)})
