"""
Stripe webhook: проверка подписи, дедупликация по event id (Redis SET NX), синхронизация
подписки пользователя и запись one-time покупок. Каждое изменение пользователя пишется в audit.
"""
from __future__ import annotations

import logging
from typing import Any

import stripe
from sqlalchemy.orm import Session

from app.core.config import settings
from app.errors.exceptions import FileValidationError, WebhookProcessingError
from app.models.user import User
from app.services.audit.service import AuditService
from app.services.billing.plans import plan_for_price
from app.services.billing.service import (
    BillingService,
    first_subscription_item,
    stripe_field,
    subscription_period_end,
)
from app.services.idempotency import IdempotencyStore
from app.services.users.service import UserService
from app.utils.metrics import stripe_webhook_events_total

logger = logging.getLogger(__name__)


def construct_event(payload: bytes, signature: str | None) -> Any:
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise FileValidationError("Webhook secret not configured")
    if not signature:
        raise FileValidationError("Webhook signature verification failed")
    try:
        return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("stripe_webhook_signature_invalid", extra={"error": str(e)})
        raise FileValidationError("Webhook signature verification failed") from e


def subscription_plan(subscription: Any) -> str:
    price = stripe_field(first_subscription_item(subscription), "price")
    return plan_for_price(
        stripe_field(price, "lookup_key"),
        stripe_field(price, "id"),
        stripe_field(stripe_field(price, "recurring"), "interval"),
    )


class StripeWebhookHandler:
    def __init__(self, db: Session, store: IdempotencyStore | None = None) -> None:
        self.db = db
        self.users = UserService(db)
        self.audit = AuditService(db)
        self.store = store or IdempotencyStore()
        stripe.api_key = settings.stripe_secret_key

    def handle(self, event: Any) -> str:
        """processed / duplicate / ignored. Ошибка обработки снимает отметку дедупликации."""
        event_id = stripe_field(event, "id")
        event_type = stripe_field(event, "type", "unknown")

        if not self.store.check_and_set(f"stripe_event:{event_id}"):
            logger.info("stripe_webhook_duplicate", extra={"event_id": event_id, "event_type": event_type})
            stripe_webhook_events_total.labels(event_type=event_type, outcome="duplicate").inc()
            return "duplicate"

        handler = {
            "customer.subscription.created": self._on_subscription_changed,
            "customer.subscription.updated": self._on_subscription_changed,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
            "checkout.session.completed": self._on_checkout_completed,
        }.get(event_type)

        if handler is None:
            logger.info("stripe_webhook_ignored", extra={"event_id": event_id, "event_type": event_type})
            stripe_webhook_events_total.labels(event_type=event_type, outcome="ignored").inc()
            return "ignored"

        obj = stripe_field(stripe_field(event, "data"), "object")
        try:
            handler(event_id, obj)
        except Exception as e:
            self.store.release(f"stripe_event:{event_id}")
            stripe_webhook_events_total.labels(event_type=event_type, outcome="error").inc()
            logger.exception("stripe_webhook_failed", extra={"event_id": event_id, "event_type": event_type})
            raise WebhookProcessingError() from e

        stripe_webhook_events_total.labels(event_type=event_type, outcome="processed").inc()
        logger.info("stripe_webhook_processed", extra={"event_id": event_id, "event_type": event_type})
        return "processed"

    # ----- Lookup -----

    def _find_user(self, customer_id: str | None) -> User | None:
        """Сначала по stripe_customer_id, затем по email клиента в Stripe."""
        if not customer_id:
            return None
        user = self.users.get_by_stripe_customer_id(customer_id)
        if user is not None:
            return user
        customer = stripe.Customer.retrieve(customer_id)
        email = stripe_field(customer, "email")
        if not email:
            return None
        user = self.users.get_by_email(email)
        if user is not None:
            self.users.set_stripe_customer(user, customer_id)
        return user

    def _audit(self, event_id: str, action: str, user: User, payload: dict) -> None:
        self.audit.log("stripe", event_id, action, "user", user.id, payload)

    # ----- Handlers -----

    def _on_subscription_changed(self, event_id: str, subscription: Any) -> None:
        customer_id = stripe_field(subscription, "customer")
        user = self._find_user(customer_id)
        if user is None:
            logger.warning("stripe_webhook_user_not_found", extra={"event_id": event_id})
            return

        status = stripe_field(subscription, "status")
        if status == "active":
            plan = subscription_plan(subscription)
            period_end = subscription_period_end(subscription)
            self.users.update_subscription(
                user,
                plan=plan,
                status=status,
                period_end=period_end,
                subscription_id=stripe_field(subscription, "id"),
            )
            self._audit(event_id, "subscription_synced", user, {
                "plan": plan,
                "status": status,
                "period_end": period_end.isoformat() if period_end else None,
            })
        else:
            # неактивная подписка: только статус, план и период не трогаем
            self.users.update_subscription(user, status=status, subscription_id=stripe_field(subscription, "id"))
            self._audit(event_id, "subscription_status_changed", user, {"status": status})

    def _on_subscription_deleted(self, event_id: str, subscription: Any) -> None:
        subscription_id = stripe_field(subscription, "id")
        user = self.users.get_by_stripe_subscription_id(subscription_id) if subscription_id else None
        if user is None:
            logger.warning("stripe_webhook_user_not_found", extra={"event_id": event_id})
            return
        self.users.update_subscription(user, plan="free", status="canceled", clear_subscription=True)
        self._audit(event_id, "subscription_deleted", user, {"subscription_id": subscription_id})

    def _on_invoice_paid(self, event_id: str, invoice: Any) -> None:
        subscription_id = stripe_field(invoice, "subscription")
        customer_id = stripe_field(invoice, "customer")
        if not subscription_id or not customer_id:
            return
        user = self._find_user(customer_id)
        if user is None:
            logger.warning("stripe_webhook_user_not_found", extra={"event_id": event_id})
            return
        subscription = stripe.Subscription.retrieve(subscription_id)
        plan = subscription_plan(subscription)
        period_end = subscription_period_end(subscription)
        self.users.update_subscription(
            user,
            plan=plan,
            status="active",
            period_end=period_end,
            subscription_id=subscription_id,
        )
        self._audit(event_id, "invoice_paid", user, {
            "plan": plan,
            "amount_paid": stripe_field(invoice, "amount_paid"),
            "currency": stripe_field(invoice, "currency"),
        })

    def _on_invoice_failed(self, event_id: str, invoice: Any) -> None:
        subscription_id = stripe_field(invoice, "subscription")
        user = self.users.get_by_stripe_subscription_id(subscription_id) if subscription_id else None
        if user is None:
            return
        self.users.update_subscription(user, status="past_due")
        self._audit(event_id, "invoice_payment_failed", user, {"subscription_id": subscription_id})

    def _on_checkout_completed(self, event_id: str, session: Any) -> None:
        mode = stripe_field(session, "mode")
        if mode == "payment":
            if stripe_field(session, "payment_status") == "paid":
                BillingService(self.db).record_one_time_purchase(session)
            return

        customer_id = stripe_field(session, "customer")
        subscription_id = stripe_field(session, "subscription")
        if not customer_id or not subscription_id:
            return
        user = self._find_user(customer_id)
        if user is None:
            logger.warning("stripe_webhook_user_not_found", extra={"event_id": event_id})
            return
        subscription = stripe.Subscription.retrieve(subscription_id)
        plan = subscription_plan(subscription)
        status = stripe_field(subscription, "status")
        self.users.update_subscription(
            user,
            plan=plan,
            status=status,
            period_end=subscription_period_end(subscription),
            subscription_id=subscription_id,
        )
        self._audit(event_id, "checkout_completed", user, {"plan": plan, "status": status})
