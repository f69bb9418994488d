"""
Decision только: resolve_access(auth, one_time_claim, lookup) -> AccessDecision.
Без записи в БД. Порядок: subscription -> oneTime claim -> free.
Claim не проверяется по ledger: решение оптимистичное, авторитетна запись при списании.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from app.models.user import PAID_PLANS
from app.paywall.models import AccessDecision, AuthContext, UserAccessRecord

logger = logging.getLogger(__name__)

AccessRecordLookup = Callable[[str], UserAccessRecord | None]


def _as_utc(value: datetime) -> datetime:
    # SQLite возвращает naive datetime; считаем его UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_subscription_expired(record: UserAccessRecord, now: datetime | None = None) -> bool:
    if record.subscription_period_end is None:
        return False
    now = now or datetime.now(timezone.utc)
    return _as_utc(now) > _as_utc(record.subscription_period_end)


def effective_plan(record: UserAccessRecord, now: datetime | None = None) -> str:
    """Истёкший period_end перекрывает сохранённый план."""
    if is_subscription_expired(record, now):
        return "free"
    return record.subscription_plan or "free"


def resolve_access(
    auth: AuthContext,
    one_time_claim: bool,
    lookup: AccessRecordLookup,
    *,
    now: datetime | None = None,
) -> AccessDecision:
    """
    Решает, отдавать ли результат без watermark и каким путём.

    - anonymous: доступ только по claim
    - paid (monthly/yearly, не истёк): subscription, claim не списываем
    - иначе claim -> oneTime (списать после успеха)
    - иначе free (watermark)

    Пользователь с сессией, но без записи в БД (или ошибка чтения) -> как anonymous.
    """
    if auth.is_anonymous:
        return _anonymous_decision(one_time_claim)

    try:
        record = lookup(auth.email)
    except Exception:
        logger.exception("access_record_lookup_failed", extra={"user_id": auth.user_id})
        return _anonymous_decision(one_time_claim)

    if record is None:
        logger.warning("access_record_missing", extra={"user_id": auth.user_id})
        return _anonymous_decision(one_time_claim)

    is_paid_user = effective_plan(record, now) in PAID_PLANS

    if is_paid_user:
        return AccessDecision(
            has_watermark_free_access=True,
            access_type="subscription",
            should_consume_credit=False,
            is_paid_user=True,
            user_id=record.user_id,
        )

    if one_time_claim:
        return AccessDecision(
            has_watermark_free_access=True,
            access_type="oneTime",
            should_consume_credit=True,
            user_id=record.user_id,
        )

    return AccessDecision(
        has_watermark_free_access=False,
        access_type="free",
        should_consume_credit=False,
        user_id=record.user_id,
    )


def _anonymous_decision(one_time_claim: bool) -> AccessDecision:
    return AccessDecision(
        has_watermark_free_access=one_time_claim,
        access_type="oneTime" if one_time_claim else "free",
        should_consume_credit=one_time_claim,
    )
