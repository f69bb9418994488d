from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


PAID_PLANS = ("monthly", "yearly")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="USER")  # USER / ADMIN

    # Управляется webhook'ами Stripe; "free" | "monthly" | "yearly"
    subscription_plan = Column(String, nullable=False, default="free")
    subscription_status = Column(String, nullable=True)  # active / canceled / past_due / ...
    # NB: истёкший period_end перекрывает plan при каждой проверке, отдельно не хранится
    subscription_current_period_end = Column(DateTime(timezone=True), nullable=True)
    stripe_customer_id = Column(String, unique=True, nullable=True)
    stripe_subscription_id = Column(String, unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def is_admin(self) -> bool:
        return self.role == "ADMIN"
