"""
Admin API schemas.
"""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class UserAdminOut(BaseModel):
    """User as seen by admins."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    role: str
    subscription_plan: str
    subscription_status: str | None = None
    subscription_current_period_end: datetime | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime


class UserAdminUpdate(BaseModel):
    """Partial update; only set fields are applied."""
    role: Literal["USER", "ADMIN"] | None = None
    subscription_plan: Literal["free", "monthly", "yearly"] | None = None
    subscription_status: str | None = None
    subscription_current_period_end: datetime | None = None
    name: str | None = None


class AuditLogOut(BaseModel):
    """Audit log entry."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_type: str
    actor_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    payload: dict[str, Any]
    created_at: datetime


class AdminOperationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str
    file_name: str | None = None
    file_size: int = 0
    status: str
    created_at: datetime
