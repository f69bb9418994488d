"""
Тарифы: monthly / yearly (подписка) и oneTime (разовая оплата снятия watermark).
Price id берутся из настроек.
"""
from dataclasses import dataclass

from app.core.config import settings
from app.errors.exceptions import InvalidPlanError

SUBSCRIPTION_PLANS = ("monthly", "yearly")
ONE_TIME_PLAN = "oneTime"


@dataclass(frozen=True)
class Plan:
    key: str
    name: str
    price: float
    interval: str  # month / year / one_time

    @property
    def price_id(self) -> str:
        return {
            "monthly": settings.stripe_monthly_price_id,
            "yearly": settings.stripe_yearly_price_id,
            ONE_TIME_PLAN: settings.stripe_one_time_price_id,
        }[self.key]


PLANS: dict[str, Plan] = {
    "monthly": Plan("monthly", "Monthly Pro", 1.99, "month"),
    "yearly": Plan("yearly", "Yearly Pro", 19.99, "year"),
    ONE_TIME_PLAN: Plan(ONE_TIME_PLAN, "One-Time Watermark Removal", 2.49, "one_time"),
}


def get_plan(key: str | None) -> Plan:
    plan = PLANS.get(key or "")
    if plan is None:
        raise InvalidPlanError()
    return plan


def get_price_id(key: str | None) -> str:
    plan = get_plan(key)
    if not plan.price_id:
        raise InvalidPlanError(f"Plan {plan.key} is not configured")
    return plan.price_id


def plan_for_price(lookup_key: str | None, price_id: str | None, interval: str | None) -> str:
    """lookup_key цены -> price id из настроек -> интервал; по умолчанию monthly."""
    if lookup_key in SUBSCRIPTION_PLANS:
        return lookup_key
    for key in SUBSCRIPTION_PLANS:
        if price_id and price_id == PLANS[key].price_id:
            return key
    if interval == "year":
        return "yearly"
    return "monthly"
