"""
Ledger of spent one-time credits.
purchase_id уникален: одна покупка оплачивает не более одной операции без watermark.
Строки не обновляются и не удаляются (аудит).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from app.db.base import Base


class ConsumedOneTimePayment(Base):
    __tablename__ = "consumed_one_time_payments"
    __table_args__ = (UniqueConstraint("purchase_id", name="uq_consumed_purchase_id"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    purchase_id = Column(String, nullable=False)
    operation_type = Column(String, nullable=False)  # MERGE, SPLIT, COMPRESS, ...
    consumed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
