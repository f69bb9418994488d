"""
Stripe billing: checkout (подписка и разовая оплата), смена плана, отмена/возобновление,
запись one-time покупок. Webhook'и - в app.services.billing.webhook.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.errors.exceptions import FileValidationError, NotFoundError, PaymentProviderError
from app.models.one_time_purchase import OneTimePurchase
from app.models.user import User
from app.paywall.access import effective_plan
from app.services.audit.service import AuditService
from app.services.billing.plans import ONE_TIME_PLAN, get_plan, get_price_id
from app.services.users.service import UserService

logger = logging.getLogger(__name__)

DEFAULT_RETURN_TO = "/tools/compress"


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """obj[key] для StripeObject и dict; отсутствующее/None -> default."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def from_timestamp(value: Any) -> datetime | None:
    try:
        ts = int(value)
    except (TypeError, ValueError):
        return None
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def first_subscription_item(subscription: Any) -> Any:
    items = stripe_field(stripe_field(subscription, "items"), "data", [])
    return items[0] if items else None


def subscription_period_end(subscription: Any) -> datetime | None:
    """current_period_end подписки; в новых версиях API он на item."""
    value = stripe_field(subscription, "current_period_end")
    if value is None:
        value = stripe_field(first_subscription_item(subscription), "current_period_end")
    return from_timestamp(value)


def safe_return_to(value: str | None) -> str:
    """Только относительный путь сайта: без схемы и protocol-relative //host."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return DEFAULT_RETURN_TO
    return value


class BillingService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.users = UserService(db)
        stripe.api_key = settings.stripe_secret_key

    # ----- Customers -----

    def ensure_customer(self, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id
        try:
            customer = stripe.Customer.create(email=user.email, name=user.name or None, metadata={"user_id": user.id})
        except stripe.StripeError as e:
            logger.error("stripe_customer_create_failed", extra={"user_id": user.id, "error": str(e)})
            raise PaymentProviderError("Error creating checkout session") from e
        self.users.set_stripe_customer(user, customer["id"])
        return customer["id"]

    # ----- Subscription checkout -----

    def create_checkout(self, user: User, plan_key: str | None) -> dict:
        """Активная подписка -> смена цены с прорацией; иначе checkout session."""
        price_id = get_price_id(plan_key)
        plan = get_plan(plan_key)
        if plan.key == ONE_TIME_PLAN:
            return self.create_one_time_checkout(user, None)

        customer_id = self.ensure_customer(user)

        if user.stripe_subscription_id and user.subscription_status == "active":
            try:
                if self._switch_price(user, plan.key, price_id) is not None:
                    return {"success": True, "message": "Plan updated successfully"}
            except stripe.StripeError as e:
                # падаем в новую checkout session
                logger.warning(
                    "stripe_subscription_switch_failed",
                    extra={"user_id": user.id, "plan": plan.key, "error": str(e)},
                )

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{settings.public_base_url}/billing?success=true",
                cancel_url=f"{settings.public_base_url}/pricing?canceled=true",
                metadata={"user_id": user.id, "plan": plan.key},
            )
        except stripe.StripeError as e:
            logger.error("stripe_checkout_failed", extra={"user_id": user.id, "plan": plan.key, "error": str(e)})
            raise PaymentProviderError("Error creating checkout session") from e
        logger.info("stripe_checkout_created", extra={"user_id": user.id, "plan": plan.key})
        return {"url": session["url"]}

    def _switch_price(self, user: User, plan_key: str, price_id: str) -> User | None:
        """None - подписка в Stripe не active, цену не меняем."""
        subscription = stripe.Subscription.retrieve(user.stripe_subscription_id)
        if stripe_field(subscription, "status") != "active":
            return None
        item = first_subscription_item(subscription)
        updated = stripe.Subscription.modify(
            user.stripe_subscription_id,
            items=[{"id": item["id"], "price": price_id}],
            proration_behavior="create_prorations",
        )
        user = self.users.update_subscription(
            user,
            plan=plan_key,
            status=stripe_field(updated, "status"),
            period_end=subscription_period_end(updated),
        )
        AuditService(self.db).log(
            "user", user.id, "plan_changed", "user", user.id, {"plan": plan_key, "price_id": price_id}
        )
        return user

    def change_plan(self, user: User, new_plan: str | None) -> dict:
        if not new_plan:
            raise FileValidationError("Plan not specified")
        plan = get_plan(new_plan)
        if plan.key == ONE_TIME_PLAN:
            raise FileValidationError("Invalid plan selected")
        price_id = get_price_id(new_plan)
        if not user.stripe_subscription_id:
            raise FileValidationError("No active subscription found")
        if user.subscription_plan == plan.key:
            raise FileValidationError("You are already on this plan")
        try:
            updated = self._switch_price(user, plan.key, price_id)
        except stripe.StripeError as e:
            logger.error("stripe_change_plan_failed", extra={"user_id": user.id, "plan": plan.key, "error": str(e)})
            raise PaymentProviderError("Failed to change plan") from e
        if updated is None:
            raise FileValidationError("Subscription is not active")
        return {"success": True, "message": f"Successfully changed plan to {plan.key}", "newPlan": plan.key}

    # ----- Cancel / reactivate -----

    def cancel(self, user: User) -> dict:
        if user.stripe_subscription_id and user.subscription_status == "active":
            try:
                subscription = stripe.Subscription.modify(user.stripe_subscription_id, cancel_at_period_end=True)
            except stripe.StripeError as e:
                logger.error("stripe_cancel_failed", extra={"user_id": user.id, "error": str(e)})
                raise PaymentProviderError("Failed to cancel subscription") from e
            # статус остаётся active до конца периода
            AuditService(self.db).log("user", user.id, "subscription_cancel_requested", "user", user.id, {})
            period_end = subscription_period_end(subscription)
            return {
                "success": True,
                "message": "Subscription will be cancelled at the end of the current billing period.",
                "cancelAt": period_end.isoformat() if period_end else None,
            }

        user.subscription_current_period_end = None
        self.users.update_subscription(user, plan="free", status="inactive", clear_subscription=True)
        AuditService(self.db).log("user", user.id, "subscription_reset_to_free", "user", user.id, {})
        return {"success": True, "message": "You are now on the free plan."}

    def reactivate(self, user: User) -> dict:
        if not user.stripe_subscription_id:
            raise FileValidationError("No subscription found")
        try:
            stripe.Subscription.modify(user.stripe_subscription_id, cancel_at_period_end=False)
        except stripe.StripeError as e:
            logger.error("stripe_reactivate_failed", extra={"user_id": user.id, "error": str(e)})
            raise PaymentProviderError("Failed to reactivate subscription") from e
        self.users.update_subscription(user, status="active")
        AuditService(self.db).log("user", user.id, "subscription_reactivated", "user", user.id, {})
        return {"success": True}

    def subscription_info(self, user: User, now: datetime | None = None) -> dict:
        now = now or datetime.now(timezone.utc)
        record = self.users.find_access_record(user.email)
        plan = effective_plan(record, now)
        expired = plan == "free" and (user.subscription_plan or "free") != "free"
        period_end = user.subscription_current_period_end

        cancel_at_period_end = user.subscription_status == "canceled" and not expired
        if user.stripe_subscription_id:
            try:
                subscription = stripe.Subscription.retrieve(user.stripe_subscription_id)
                cancel_at_period_end = bool(stripe_field(subscription, "cancel_at_period_end", False))
            except stripe.StripeError as e:
                logger.warning("stripe_subscription_fetch_failed", extra={"user_id": user.id, "error": str(e)})

        return {
            "plan": plan,
            "status": "inactive" if expired else user.subscription_status,
            "currentPeriodEnd": period_end.isoformat() if period_end else None,
            "cancelAtPeriodEnd": cancel_at_period_end,
            "stripeCustomerId": user.stripe_customer_id,
            "stripeSubscriptionId": user.stripe_subscription_id,
        }

    # ----- One-time payment -----

    def create_one_time_checkout(self, user: User | None, return_to: str | None) -> dict:
        price_id = get_price_id(ONE_TIME_PLAN)
        return_to = safe_return_to(return_to)
        success_url = (
            f"{settings.public_base_url}/api/stripe/one-time-success"
            f"?session_id={{CHECKOUT_SESSION_ID}}&returnTo={quote(return_to, safe='')}"
        )
        metadata = {"plan": ONE_TIME_PLAN, "returnTo": return_to}
        if user is not None:
            metadata["user_id"] = user.id
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="payment",
                success_url=success_url,
                cancel_url=f"{settings.public_base_url}{return_to}?canceled=true",
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error("stripe_one_time_checkout_failed", extra={"error": str(e)})
            raise PaymentProviderError("Error creating checkout session") from e
        return {"url": session["url"]}

    def complete_one_time_purchase(self, session_id: str | None, user: User | None = None) -> OneTimePurchase:
        """Success-редирект: сессия оплачена -> purchase id (один и тот же для повторных запросов)."""
        if not session_id:
            raise FileValidationError("Missing session_id")
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.warning("stripe_session_fetch_failed", extra={"error": str(e)})
            raise NotFoundError("Checkout session not found") from e
        if stripe_field(session, "mode") != "payment" or stripe_field(session, "payment_status") != "paid":
            raise FileValidationError("Payment has not been completed")
        return self.record_one_time_purchase(session, user_id=user.id if user else None)

    def record_one_time_purchase(self, session: Any, user_id: str | None = None) -> OneTimePurchase:
        session_id = stripe_field(session, "id")
        existing = self._purchase_by_session(session_id)
        if existing is not None:
            return existing
        metadata = stripe_field(session, "metadata", {})
        purchase = OneTimePurchase(
            purchase_id=f"purchase_{uuid4().hex}",
            stripe_session_id=session_id,
            user_id=user_id or stripe_field(metadata, "user_id"),
            amount_total=stripe_field(session, "amount_total"),
            currency=stripe_field(session, "currency"),
        )
        self.db.add(purchase)
        try:
            self.db.commit()
        except IntegrityError:
            # success-редирект и webhook пришли одновременно
            self.db.rollback()
            return self._purchase_by_session(session_id)
        self.db.refresh(purchase)
        logger.info(
            "one_time_purchase_recorded",
            extra={"purchase_id": purchase.purchase_id, "user_id": purchase.user_id},
        )
        return purchase

    def _purchase_by_session(self, session_id: str) -> OneTimePurchase | None:
        return (
            self.db.query(OneTimePurchase)
            .filter(OneTimePurchase.stripe_session_id == session_id)
            .one_or_none()
        )
