"""Tests for plans и BillingService (Stripe замокан)."""
from unittest.mock import patch

import pytest
import stripe

from app.errors.exceptions import FileValidationError, InvalidPlanError, NotFoundError, PaymentProviderError
from app.models.audit_log import AuditLog
from app.models.one_time_purchase import OneTimePurchase
from app.models.user import User
from app.services.billing import plans
from app.services.billing.service import BillingService, from_timestamp, safe_return_to, stripe_field


@pytest.fixture
def prices():
    with patch.object(plans, "settings") as s:
        s.stripe_monthly_price_id = "price_month"
        s.stripe_yearly_price_id = "price_year"
        s.stripe_one_time_price_id = "price_once"
        yield s


@pytest.fixture
def user(db_session):
    u = User(email="payer@example.com", stripe_customer_id="cus_1")
    db_session.add(u)
    db_session.commit()
    return u


class TestPlans:
    def test_unknown_plan(self):
        with pytest.raises(InvalidPlanError):
            plans.get_plan("weekly")

    def test_unconfigured_price(self):
        with patch.object(plans, "settings") as s:
            s.stripe_monthly_price_id = ""
            with pytest.raises(InvalidPlanError):
                plans.get_price_id("monthly")

    def test_plan_for_price_by_lookup_key(self, prices):
        assert plans.plan_for_price("yearly", "price_other", "month") == "yearly"

    def test_plan_for_price_by_configured_id(self, prices):
        assert plans.plan_for_price(None, "price_year", None) == "yearly"

    def test_plan_for_price_defaults_to_monthly(self, prices):
        assert plans.plan_for_price(None, "price_unknown", "month") == "monthly"


class TestHelpers:
    def test_stripe_field_on_dict_and_none(self):
        assert stripe_field({"a": 1}, "a") == 1
        assert stripe_field({"a": None}, "a", "d") == "d"
        assert stripe_field(None, "a", 0) == 0

    def test_from_timestamp(self):
        assert from_timestamp(None) is None
        assert from_timestamp("bad") is None
        assert from_timestamp(0) is None
        assert from_timestamp(86400).year == 1970

    def test_safe_return_to(self):
        assert safe_return_to("/tools/merge") == "/tools/merge"
        assert safe_return_to("https://evil.example") == "/tools/compress"
        assert safe_return_to("//evil.example") == "/tools/compress"
        assert safe_return_to(None) == "/tools/compress"


class TestCheckout:
    def test_new_subscription_checkout(self, db_session, user, prices):
        with patch.object(stripe.checkout.Session, "create", return_value={"url": "https://checkout/x"}) as create:
            result = BillingService(db_session).create_checkout(user, "monthly")
        assert result == {"url": "https://checkout/x"}
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["customer"] == "cus_1"
        assert kwargs["line_items"] == [{"price": "price_month", "quantity": 1}]

    def test_active_subscription_switches_price(self, db_session, user, prices):
        user.stripe_subscription_id = "sub_1"
        user.subscription_status = "active"
        user.subscription_plan = "monthly"
        db_session.commit()
        current = {"id": "sub_1", "status": "active", "items": {"data": [{"id": "si_1"}]}}
        updated = {"id": "sub_1", "status": "active", "current_period_end": 1767225600, "items": {"data": []}}
        with patch.object(stripe.Subscription, "retrieve", return_value=current), \
                patch.object(stripe.Subscription, "modify", return_value=updated) as modify, \
                patch.object(stripe.checkout.Session, "create") as create:
            result = BillingService(db_session).create_checkout(user, "yearly")
        assert result["success"] is True
        modify.assert_called_once_with(
            "sub_1", items=[{"id": "si_1", "price": "price_year"}], proration_behavior="create_prorations"
        )
        create.assert_not_called()
        db_session.refresh(user)
        assert user.subscription_plan == "yearly"
        assert db_session.query(AuditLog).filter(AuditLog.action == "plan_changed").count() == 1

    def test_inactive_stripe_subscription_falls_back_to_checkout(self, db_session, user, prices):
        user.stripe_subscription_id = "sub_1"
        user.subscription_status = "active"
        db_session.commit()
        with patch.object(stripe.Subscription, "retrieve", return_value={"status": "canceled"}), \
                patch.object(stripe.checkout.Session, "create", return_value={"url": "https://checkout/y"}):
            result = BillingService(db_session).create_checkout(user, "yearly")
        assert result == {"url": "https://checkout/y"}

    def test_stripe_error_is_provider_error(self, db_session, user, prices):
        with patch.object(stripe.checkout.Session, "create", side_effect=stripe.StripeError("down")):
            with pytest.raises(PaymentProviderError):
                BillingService(db_session).create_checkout(user, "monthly")

    def test_creates_customer_when_missing(self, db_session, prices):
        u = User(email="new@example.com")
        db_session.add(u)
        db_session.commit()
        with patch.object(stripe.Customer, "create", return_value={"id": "cus_new"}), \
                patch.object(stripe.checkout.Session, "create", return_value={"url": "u"}):
            BillingService(db_session).create_checkout(u, "monthly")
        db_session.refresh(u)
        assert u.stripe_customer_id == "cus_new"


class TestChangePlan:
    def test_same_plan_rejected(self, db_session, user, prices):
        user.stripe_subscription_id = "sub_1"
        user.subscription_plan = "monthly"
        db_session.commit()
        with pytest.raises(FileValidationError) as exc:
            BillingService(db_session).change_plan(user, "monthly")
        assert exc.value.detail == "You are already on this plan"

    def test_no_subscription(self, db_session, user, prices):
        with pytest.raises(FileValidationError):
            BillingService(db_session).change_plan(user, "yearly")


class TestCancel:
    def test_cancel_active_at_period_end(self, db_session, user):
        user.stripe_subscription_id = "sub_1"
        user.subscription_status = "active"
        db_session.commit()
        with patch.object(stripe.Subscription, "modify", return_value={"current_period_end": 1767225600}) as modify:
            result = BillingService(db_session).cancel(user)
        modify.assert_called_once_with("sub_1", cancel_at_period_end=True)
        assert result["cancelAt"].startswith("2026-01-01")
        db_session.refresh(user)
        assert user.subscription_status == "active"

    def test_cancel_without_subscription_resets_to_free(self, db_session, user):
        user.subscription_plan = "monthly"
        user.subscription_status = "past_due"
        db_session.commit()
        BillingService(db_session).cancel(user)
        db_session.refresh(user)
        assert user.subscription_plan == "free"
        assert user.subscription_status == "inactive"
        assert user.subscription_current_period_end is None


class TestOneTime:
    def test_one_time_checkout_success_url(self, db_session, prices):
        with patch.object(stripe.checkout.Session, "create", return_value={"url": "u"}) as create:
            BillingService(db_session).create_one_time_checkout(None, "/tools/merge")
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert "session_id={CHECKOUT_SESSION_ID}" in kwargs["success_url"]
        assert "returnTo=%2Ftools%2Fmerge" in kwargs["success_url"]
        assert "user_id" not in kwargs["metadata"]

    def test_complete_is_idempotent_per_session(self, db_session, user):
        session = {"id": "cs_1", "mode": "payment", "payment_status": "paid", "amount_total": 249, "currency": "usd"}
        with patch.object(stripe.checkout.Session, "retrieve", return_value=session):
            svc = BillingService(db_session)
            first = svc.complete_one_time_purchase("cs_1", user)
            second = svc.complete_one_time_purchase("cs_1", user)
        assert first.purchase_id == second.purchase_id
        assert first.user_id == user.id
        assert db_session.query(OneTimePurchase).count() == 1

    def test_unpaid_session_rejected(self, db_session):
        with patch.object(stripe.checkout.Session, "retrieve", return_value={"mode": "payment", "payment_status": "unpaid"}):
            with pytest.raises(FileValidationError):
                BillingService(db_session).complete_one_time_purchase("cs_x")

    def test_unknown_session(self, db_session):
        with patch.object(stripe.checkout.Session, "retrieve", side_effect=stripe.StripeError("no such session")):
            with pytest.raises(NotFoundError):
                BillingService(db_session).complete_one_time_purchase("cs_missing")

    def test_missing_session_id(self, db_session):
        with pytest.raises(FileValidationError):
            BillingService(db_session).complete_one_time_purchase(None)
