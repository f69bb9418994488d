"""
OneTimePurchase - completed one-time watermark-removal checkouts.
purchase_id выдаётся на success-редиректе; stripe_session_id уникален (повторный редирект
возвращает тот же purchase_id).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class OneTimePurchase(Base):
    __tablename__ = "one_time_purchases"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    purchase_id = Column(String, unique=True, nullable=False, index=True)
    stripe_session_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, nullable=True, index=True)  # гость = None
    amount_total = Column(Integer, nullable=True)  # в центах
    currency = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
