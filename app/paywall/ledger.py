"""
Ledger one-time кредитов: consume_credit(purchase_id, operation_type) -> ConsumptionResult.
Вызывать только ПОСЛЕ успешной операции. Уникальность purchase_id в БД - единственный
механизм корректности при гонках и ретраях: дубль = уже списано, не ошибка.
Прочие ошибки хранилища логируются и глотаются - ответ клиенту не меняется.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import rollback_quietly
from app.models.consumed_payment import ConsumedOneTimePayment
from app.paywall.models import ConsumptionResult

logger = logging.getLogger(__name__)


class CreditLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def consume_credit(self, purchase_id: str | None, operation_type: str) -> ConsumptionResult:
        if not purchase_id:
            logger.warning("credit_consume_without_purchase_id", extra={"operation_type": operation_type})
            return ConsumptionResult.FAILED

        entry = ConsumedOneTimePayment(
            purchase_id=purchase_id,
            operation_type=operation_type,
            consumed_at=datetime.now(timezone.utc),
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except IntegrityError:
            rollback_quietly(self.db, "credit_ledger_rollback_failed")
            logger.info(
                "credit_already_consumed",
                extra={"purchase_id": purchase_id, "operation_type": operation_type},
            )
            return ConsumptionResult.ALREADY_CONSUMED
        except SQLAlchemyError:
            rollback_quietly(self.db, "credit_ledger_rollback_failed")
            logger.exception(
                "credit_consume_failed",
                extra={"purchase_id": purchase_id, "operation_type": operation_type},
            )
            return ConsumptionResult.FAILED

        logger.info("credit_consumed", extra={"purchase_id": purchase_id, "operation_type": operation_type})
        return ConsumptionResult.CONSUMED

    def is_consumed(self, purchase_id: str) -> bool:
        return (
            self.db.query(ConsumedOneTimePayment.id)
            .filter(ConsumedOneTimePayment.purchase_id == purchase_id)
            .first()
            is not None
        )
