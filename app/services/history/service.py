"""
История операций пользователя (pdf_operations): запись best-effort, чтение для /api/user и /admin.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import rollback_quietly
from app.models.pdf_operation import PdfOperation

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


def month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class OperationLogService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def append(
        self,
        user_id: str,
        operation_type: str,
        file_name: str | None,
        size_bytes: int,
        status: str = "COMPLETED",
    ) -> PdfOperation | None:
        """Ошибка записи логируется и не влияет на ответ клиенту."""
        entry = PdfOperation(
            user_id=user_id,
            type=operation_type,
            file_name=file_name,
            file_size=size_bytes,
            status=status,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError:
            rollback_quietly(self.db, "operation_log_rollback_failed")
            logger.exception(
                "operation_log_failed",
                extra={"user_id": user_id, "operation_type": operation_type},
            )
            return None
        return entry

    def list_for_user(self, user_id: str, limit: int = HISTORY_LIMIT) -> list[PdfOperation]:
        return (
            self.db.query(PdfOperation)
            .filter(PdfOperation.user_id == user_id)
            .order_by(PdfOperation.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_for_user(self, user_id: str, operation_id: str) -> PdfOperation | None:
        return (
            self.db.query(PdfOperation)
            .filter(PdfOperation.id == operation_id, PdfOperation.user_id == user_id)
            .one_or_none()
        )

    def delete_for_user(self, user_id: str, operation_id: str) -> bool:
        entry = self.get_for_user(user_id, operation_id)
        if entry is None:
            return False
        self.db.delete(entry)
        self.db.commit()
        return True

    def clear_for_user(self, user_id: str) -> int:
        deleted = (
            self.db.query(PdfOperation)
            .filter(PdfOperation.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def count_completed_this_month(self, user_id: str, now: datetime | None = None) -> int:
        return (
            self.db.query(func.count(PdfOperation.id))
            .filter(
                PdfOperation.user_id == user_id,
                PdfOperation.status == "COMPLETED",
                PdfOperation.created_at >= month_start(now),
            )
            .scalar()
            or 0
        )

    def count_this_month(self, user_id: str, now: datetime | None = None) -> int:
        return (
            self.db.query(func.count(PdfOperation.id))
            .filter(PdfOperation.user_id == user_id, PdfOperation.created_at >= month_start(now))
            .scalar()
            or 0
        )

    def status_breakdown(self) -> dict:
        rows = self.db.query(PdfOperation.status, func.count(PdfOperation.id)).group_by(PdfOperation.status).all()
        by_status = {status: count for status, count in rows}
        by_type = dict(
            self.db.query(PdfOperation.type, func.count(PdfOperation.id)).group_by(PdfOperation.type).all()
        )
        total = sum(by_status.values())
        completed = by_status.get("COMPLETED", 0)
        return {
            "total": total,
            "completed": completed,
            "failed": by_status.get("FAILED", 0),
            "processing": by_status.get("PROCESSING", 0),
            "by_type": by_type,
            "success_rate": round(completed / total * 100, 2) if total else 0.0,
        }

    def recent(self, limit: int = 20) -> list[PdfOperation]:
        return self.db.query(PdfOperation).order_by(PdfOperation.created_at.desc()).limit(limit).all()

    def paginate(self, *, offset: int = 0, limit: int = 50, operation_type: str | None = None) -> tuple[list[PdfOperation], int]:
        q = self.db.query(PdfOperation)
        if operation_type:
            q = q.filter(PdfOperation.type == operation_type)
        total = q.count()
        items = q.order_by(PdfOperation.created_at.desc()).offset(offset).limit(limit).all()
        return items, total
