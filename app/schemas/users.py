from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AccessInfoOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_authenticated: bool = Field(..., serialization_alias="isAuthenticated")
    is_admin: bool = Field(False, serialization_alias="isAdmin")
    has_unlimited_access: bool = Field(False, serialization_alias="hasUnlimitedAccess")
    access_type: Literal["guest", "free", "subscription", "admin"] = Field(..., serialization_alias="accessType")
    plan: str = "free"
    subscription_status: str | None = Field(None, serialization_alias="subscriptionStatus")
    subscription_end_date: datetime | None = Field(None, serialization_alias="subscriptionEndDate")


class OperationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    file_name: str | None = Field(None, serialization_alias="fileName")
    file_size: int = Field(0, serialization_alias="fileSize")
    status: str
    result_url: str | None = Field(None, serialization_alias="resultUrl")
    created_at: datetime = Field(..., serialization_alias="createdAt")


class UserStatsOut(BaseModel):
    operations_this_month: int = Field(..., serialization_alias="operationsThisMonth")
    recent_operations: list[OperationOut] = Field(default_factory=list, serialization_alias="recentOperations")
    subscription: str
    subscription_status: str | None = Field(None, serialization_alias="subscriptionStatus")
    current_period_end: datetime | None = Field(None, serialization_alias="currentPeriodEnd")
    has_stripe_subscription: bool = Field(False, serialization_alias="hasStripeSubscription")
