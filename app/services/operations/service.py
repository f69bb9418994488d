"""
PDF operation orchestrator.

validate -> resolve access -> (free plan limit) -> transform -> consume credit -> log -> respond.
Списание кредита и запись истории - best-effort: их ошибки не меняют успешный ответ.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse, Response

from app.core.config import settings
from app.db.session import rollback_quietly
from app.errors.exceptions import FileValidationError, PayloadTooLargeError, UsageLimitExceededError
from app.paywall.access import resolve_access
from app.paywall.audit import record_consumption
from app.paywall.claims import CREDIT_CONSUMED_HEADER, claim_grants_access
from app.paywall.config import get_free_monthly_operation_limit
from app.paywall.ledger import CreditLedger
from app.paywall.models import AccessDecision, AuthContext, ConsumptionResult, OneTimeClaim, UserAccessRecord
from app.pdf.errors import PdfTransformError
from app.pdf.operations import InputFile
from app.services.history.service import OperationLogService, month_start
from app.services.users.service import UserService
from app.utils.metrics import (
    access_decisions_total,
    bookkeeping_failures_total,
    pdf_operation_duration_seconds,
    pdf_operations_total,
)

logger = logging.getLogger(__name__)

Transform = Callable[[list[InputFile], AccessDecision, Mapping[str, str]], Response]


@dataclass(frozen=True)
class OperationConfig:
    operation_type: str
    min_files: int = 1
    max_files: int = 1
    accept: str = "pdf"  # pdf | image

    @property
    def noun(self) -> str:
        return self.operation_type.lower()


OPERATIONS: dict[str, OperationConfig] = {
    "MERGE": OperationConfig("MERGE", min_files=2, max_files=settings.max_merge_files),
    "SPLIT": OperationConfig("SPLIT"),
    "COMPRESS": OperationConfig("COMPRESS"),
    "REARRANGE": OperationConfig("REARRANGE"),
    "REACT_EDIT": OperationConfig("REACT_EDIT"),
    "IMAGE_TO_PDF": OperationConfig("IMAGE_TO_PDF", min_files=1, max_files=settings.max_images, accept="image"),
    "PDF_TO_WORD": OperationConfig("PDF_TO_WORD"),
    "PDF_TO_EXCEL": OperationConfig("PDF_TO_EXCEL"),
    "PDF_TO_POWERPOINT": OperationConfig("PDF_TO_POWERPOINT"),
    "PDF_TO_IMAGE": OperationConfig("PDF_TO_IMAGE"),
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}s are" if count > 1 else f"{count} {word} is"


def next_month_start(now: datetime | None = None) -> datetime:
    start = month_start(now)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


class PDFOperationService:
    def __init__(self, db: Session, config: OperationConfig) -> None:
        self.db = db
        self.config = config

    # ----- Validating -----

    def validate(self, files: list[InputFile]) -> None:
        cfg = self.config
        word = "image" if cfg.accept == "image" else "PDF file"
        if len(files) < cfg.min_files:
            raise FileValidationError(f"At least {_plural(cfg.min_files, word)} required for {cfg.noun}")
        if len(files) > cfg.max_files:
            raise FileValidationError(f"Maximum {_plural(cfg.max_files, word)} allowed for {cfg.noun}")

        allowed = settings.allowed_image_types_set if cfg.accept == "image" else {"application/pdf"}
        for f in files:
            if (f.content_type or "").lower() not in allowed:
                if cfg.accept == "image":
                    raise FileValidationError(f"File {f.name} is not a supported image (JPEG, PNG, WEBP)")
                raise FileValidationError(f"File {f.name} is not a valid PDF")
            if f.size > settings.max_file_size_bytes:
                raise PayloadTooLargeError(
                    f"File {f.name} is too large. Maximum size is {settings.max_file_size_mb}MB"
                )

    # ----- ResolvingAccess -----

    def resolve(self, auth: AuthContext, claim: OneTimeClaim) -> AccessDecision:
        claimed = claim_grants_access(claim, self.db)
        decision = resolve_access(auth, claimed, self._lookup_access_record)
        access_decisions_total.labels(access_type=decision.access_type).inc()
        logger.info(
            "access_resolved",
            extra={
                "user_id": decision.user_id,
                "operation_type": self.config.operation_type,
                "access_type": decision.access_type,
            },
        )
        return decision

    def _lookup_access_record(self, email: str) -> UserAccessRecord | None:
        try:
            return UserService(self.db).find_access_record(email)
        except SQLAlchemyError:
            rollback_quietly(self.db, "access_lookup_rollback_failed")
            raise

    def enforce_usage_limit(self, decision: AccessDecision, now: datetime | None = None) -> None:
        """Лимит бесплатных операций в месяц; только для залогиненных без watermark-free доступа."""
        if decision.has_watermark_free_access or not decision.user_id:
            return
        limit = get_free_monthly_operation_limit()
        try:
            used = OperationLogService(self.db).count_completed_this_month(decision.user_id, now)
        except SQLAlchemyError:
            rollback_quietly(self.db, "usage_limit_rollback_failed")
            logger.exception("usage_limit_check_failed", extra={"user_id": decision.user_id})
            return
        if used >= limit:
            pdf_operations_total.labels(operation_type=self.config.operation_type, status="rejected").inc()
            raise UsageLimitExceededError(
                extra={
                    "usage": {
                        "used": used,
                        "limit": limit,
                        "resetDate": next_month_start(now or datetime.now(timezone.utc)).isoformat(),
                    }
                }
            )

    # ----- Whole flow -----

    def handle(
        self,
        auth: AuthContext,
        claim: OneTimeClaim,
        files: list[InputFile],
        form: Mapping[str, str],
        transform: Transform,
    ) -> Response:
        op = self.config.operation_type
        self.validate(files)
        decision = self.resolve(auth, claim)
        self.enforce_usage_limit(decision)

        started = time.monotonic()
        try:
            response = transform(files, decision, form)
        except PdfTransformError as e:
            pdf_operations_total.labels(operation_type=op, status="failed").inc()
            logger.warning(
                "pdf_operation_failed",
                extra={"operation_type": op, "user_id": decision.user_id, "error": e.category},
            )
            self._log_operation(decision, files, status="FAILED")
            return JSONResponse({"error": e.message}, status_code=e.status_code)
        except Exception:
            pdf_operations_total.labels(operation_type=op, status="failed").inc()
            logger.exception("pdf_operation_error", extra={"operation_type": op, "user_id": decision.user_id})
            self._log_operation(decision, files, status="FAILED")
            return JSONResponse({"error": "Internal server error"}, status_code=500)
        finally:
            pdf_operation_duration_seconds.labels(operation_type=op).observe(time.monotonic() - started)

        pdf_operations_total.labels(operation_type=op, status="succeeded").inc()

        if decision.should_consume_credit:
            result = self._consume_credit(claim.purchase_id, decision)
            if result in (ConsumptionResult.CONSUMED, ConsumptionResult.ALREADY_CONSUMED):
                response.headers[CREDIT_CONSUMED_HEADER] = "true"

        self._log_operation(decision, files, status="COMPLETED")
        logger.info(
            "pdf_operation_completed",
            extra={
                "operation_type": op,
                "user_id": decision.user_id,
                "access_type": decision.access_type,
                "file_count": len(files),
                "size_bytes": sum(f.size for f in files),
            },
        )
        return response

    # ----- Bookkeeping -----

    def _consume_credit(self, purchase_id: str | None, decision: AccessDecision) -> ConsumptionResult:
        op = self.config.operation_type
        try:
            result = CreditLedger(self.db).consume_credit(purchase_id, op)
        except Exception:
            logger.exception("credit_consume_unexpected_error", extra={"purchase_id": purchase_id, "operation_type": op})
            result = ConsumptionResult.FAILED
        if result == ConsumptionResult.FAILED:
            bookkeeping_failures_total.labels(kind="ledger").inc()
        record_consumption(purchase_id, op, result, user_id=decision.user_id)
        return result

    def _log_operation(self, decision: AccessDecision, files: list[InputFile], *, status: str) -> None:
        if not decision.user_id:
            return
        if len(files) == 1:
            file_name = files[0].name
        else:
            file_name = f"{self.config.noun}-{len(files)}-files.pdf"
        entry = OperationLogService(self.db).append(
            decision.user_id,
            self.config.operation_type,
            file_name,
            sum(f.size for f in files),
            status=status,
        )
        if entry is None:
            bookkeeping_failures_total.labels(kind="operation_log").inc()
