from pydantic import BaseModel, Field


class CheckoutIn(BaseModel):
    plan: str | None = None


class OneTimeCheckoutIn(BaseModel):
    return_to: str | None = Field(None, alias="returnTo")


class ChangePlanIn(BaseModel):
    new_plan: str | None = Field(None, alias="newPlan")


class OneTimeSuccessOut(BaseModel):
    purchase_id: str = Field(..., serialization_alias="purchaseId")
    credits_remaining: int = Field(1, serialization_alias="creditsRemaining")
    return_to: str = Field(..., serialization_alias="returnTo")


class UsageOut(BaseModel):
    current_month: int = Field(..., serialization_alias="currentMonth")
    limit: int
    reset_date: str = Field(..., serialization_alias="resetDate")
