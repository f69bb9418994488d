"""
Аудит списаний: record_consumption вызывается оркестратором по факту записи в ledger.
"""
from __future__ import annotations

import logging

from app.paywall.models import ConsumptionResult
from app.utils.metrics import credit_consumptions_total

logger = logging.getLogger(__name__)


def record_consumption(
    purchase_id: str | None,
    operation_type: str,
    result: ConsumptionResult,
    *,
    user_id: str | None = None,
) -> None:
    """Записать событие списания one-time кредита для аналитики."""
    credit_consumptions_total.labels(result=result.value).inc()
    logger.info(
        "paywall_credit_consumption",
        extra={
            "purchase_id": purchase_id,
            "operation_type": operation_type,
            "result": result.value,
            "user_id": user_id,
        },
    )
