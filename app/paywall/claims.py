"""
One-time claim: извлечение из запроса и (опционально) строгая проверка.
Заголовок X-One-Time-Access: true + purchase id из X-Purchase-Id или cookie one-time-purchase-id.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import Request

from app.db.session import rollback_quietly
from app.models.one_time_purchase import OneTimePurchase
from app.paywall.config import is_strict_claim_verification
from app.paywall.ledger import CreditLedger
from app.paywall.models import OneTimeClaim

logger = logging.getLogger(__name__)

ONE_TIME_ACCESS_HEADER = "X-One-Time-Access"
PURCHASE_ID_HEADER = "X-Purchase-Id"
PURCHASE_ID_COOKIE = "one-time-purchase-id"
CREDIT_CONSUMED_HEADER = "X-One-Time-Credit-Consumed"


def extract_one_time_claim(request: Request) -> OneTimeClaim:
    claimed = request.headers.get(ONE_TIME_ACCESS_HEADER, "").strip().lower() == "true"
    purchase_id = request.headers.get(PURCHASE_ID_HEADER) or request.cookies.get(PURCHASE_ID_COOKIE)
    purchase_id = (purchase_id or "").strip() or None
    return OneTimeClaim(claimed=claimed, purchase_id=purchase_id)


def claim_grants_access(claim: OneTimeClaim, db: Session) -> bool:
    """
    Булев флаг для resolve_access.

    По умолчанию достаточно заявки с purchase id (без purchase id кредит нечем списать).
    В строгом режиме purchase id должен быть в one_time_purchases и ещё не списан.
    Ошибка БД в строгом режиме -> доверяем заявке (доступность важнее).
    """
    if not claim.claimed or not claim.purchase_id:
        return False
    if not is_strict_claim_verification():
        return True
    try:
        purchase = (
            db.query(OneTimePurchase.id)
            .filter(OneTimePurchase.purchase_id == claim.purchase_id)
            .first()
        )
        if purchase is None:
            logger.warning("one_time_claim_unknown_purchase", extra={"purchase_id": claim.purchase_id})
            return False
        if CreditLedger(db).is_consumed(claim.purchase_id):
            logger.info("one_time_claim_already_consumed", extra={"purchase_id": claim.purchase_id})
            return False
        return True
    except SQLAlchemyError:
        rollback_quietly(db, "one_time_claim_rollback_failed")
        logger.exception("one_time_claim_check_failed", extra={"purchase_id": claim.purchase_id})
        return True
