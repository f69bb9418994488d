"""
Admin API: сводная статистика, операции, пользователи, аналитика. Только role=ADMIN.
"""
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.api.deps import require_admin
from app.db.session import get_db
from app.errors.exceptions import NotFoundError
from app.models.consumed_payment import ConsumedOneTimePayment
from app.models.one_time_purchase import OneTimePurchase
from app.models.pdf_operation import PdfOperation
from app.models.user import PAID_PLANS, User
from app.schemas.admin import AdminOperationOut, AuditLogOut, UserAdminOut, UserAdminUpdate
from app.services.audit.service import AuditService
from app.services.history.service import OperationLogService, month_start
from app.services.users.service import UserService


router = APIRouter(prefix="/admin", tags=["admin"])


def _active_paid_filter(now: datetime):
    return (
        User.subscription_plan.in_(PAID_PLANS),
        User.subscription_status == "active",
        or_(User.subscription_current_period_end.is_(None), User.subscription_current_period_end > now),
    )


@router.get("/stats")
def stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    now = datetime.now(timezone.utc)
    start = month_start(now)
    by_plan = dict(
        db.query(User.subscription_plan, func.count(User.id))
        .filter(*_active_paid_filter(now))
        .group_by(User.subscription_plan)
        .all()
    )
    return {
        "users": {
            "total": db.query(func.count(User.id)).scalar() or 0,
            "new_this_month": db.query(func.count(User.id)).filter(User.created_at >= start).scalar() or 0,
        },
        "subscriptions": {
            "active": sum(by_plan.values()),
            "monthly": by_plan.get("monthly", 0),
            "yearly": by_plan.get("yearly", 0),
        },
        "operations": {
            "total": db.query(func.count(PdfOperation.id)).scalar() or 0,
            "this_month": db.query(func.count(PdfOperation.id)).filter(PdfOperation.created_at >= start).scalar() or 0,
        },
        "one_time": {
            "purchases": db.query(func.count(OneTimePurchase.id)).scalar() or 0,
            "consumed": db.query(func.count(ConsumedOneTimePayment.id)).scalar() or 0,
        },
    }


# ---------- Operations (stats/recent before list) ----------
@router.get("/operations/stats")
def operations_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    breakdown = OperationLogService(db).status_breakdown()
    return {
        "total": breakdown["total"],
        "completed": breakdown["completed"],
        "failed": breakdown["failed"],
        "processing": breakdown["processing"],
        "byType": breakdown["by_type"],
        "successRate": breakdown["success_rate"],
    }


@router.get("/operations/recent", response_model=list[AdminOperationOut])
def operations_recent(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    limit: int = Query(20, ge=1, le=100),
) -> list[AdminOperationOut]:
    return [AdminOperationOut.model_validate(op) for op in OperationLogService(db).recent(limit)]


@router.get("/operations")
def operations_list(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    type: str | None = None,
) -> dict:
    items, total = OperationLogService(db).paginate(
        offset=(page - 1) * page_size, limit=page_size, operation_type=type
    )
    return {
        "items": [AdminOperationOut.model_validate(op).model_dump(mode="json") for op in items],
        "total": total,
        "page": page,
        "pages": (total + page_size - 1) // page_size,
    }


# ---------- Users ----------
@router.get("/users")
def users_list(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    search: str | None = None,
) -> dict:
    users, total = UserService(db).list_users(search=search, offset=(page - 1) * page_size, limit=page_size)
    user_ids = [u.id for u in users]
    op_counts = {}
    if user_ids:
        op_counts = dict(
            db.query(PdfOperation.user_id, func.count(PdfOperation.id))
            .filter(PdfOperation.user_id.in_(user_ids))
            .group_by(PdfOperation.user_id)
            .all()
        )
    items = []
    for u in users:
        item = UserAdminOut.model_validate(u).model_dump(mode="json")
        item["operations_count"] = op_counts.get(u.id, 0)
        items.append(item)
    return {"items": items, "total": total, "page": page, "pages": (total + page_size - 1) // page_size}


@router.get("/users/{user_id}")
def user_detail(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    user = UserService(db).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    log = OperationLogService(db)
    return {
        "user": UserAdminOut.model_validate(user).model_dump(mode="json"),
        "operations": [AdminOperationOut.model_validate(op).model_dump(mode="json") for op in log.list_for_user(user.id, limit=20)],
        "operations_this_month": log.count_this_month(user.id),
        "audit": [
            AuditLogOut.model_validate(e).model_dump(mode="json")
            for e in AuditService(db).list_for_entity("user", user.id)
        ],
    }


@router.patch("/users/{user_id}", response_model=UserAdminOut)
def user_update(
    user_id: str,
    payload: UserAdminUpdate = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserAdminOut:
    users = UserService(db)
    user = users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    fields = payload.model_dump(exclude_unset=True)
    user = users.update_admin(user, fields)
    AuditService(db).log("admin", admin.id, "user_updated", "user", user.id, payload.model_dump(mode="json", exclude_unset=True))
    return UserAdminOut.model_validate(user)


# ---------- Analytics ----------
def _daily_series(db: Session, column, since: datetime, days: int, now: datetime) -> list[dict]:
    rows = (
        db.query(func.date(column).label("day"), func.count().label("cnt"))
        .filter(column >= since)
        .group_by(func.date(column))
        .all()
    )
    counts = {str(row.day): row.cnt for row in rows}
    series = []
    for i in range(days):
        d = (now - timedelta(days=days - 1 - i)).date()
        series.append({"date": str(d), "count": counts.get(str(d), 0)})
    return series


@router.get("/analytics")
def analytics(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    days: int = Query(30, ge=1, le=365),
) -> dict:
    now = datetime.now(timezone.utc)
    since = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

    total_ops = db.query(func.count(PdfOperation.id)).filter(PdfOperation.created_at >= since).scalar() or 0
    type_rows = (
        db.query(PdfOperation.type, func.count(PdfOperation.id).label("cnt"))
        .filter(PdfOperation.created_at >= since)
        .group_by(PdfOperation.type)
        .order_by(func.count(PdfOperation.id).desc())
        .all()
    )
    top_types = [
        {"type": row.type, "count": row.cnt, "percentage": round(row.cnt / total_ops * 100) if total_ops else 0}
        for row in type_rows
    ]
    consumed_by_type = dict(
        db.query(ConsumedOneTimePayment.operation_type, func.count(ConsumedOneTimePayment.id))
        .filter(ConsumedOneTimePayment.consumed_at >= since)
        .group_by(ConsumedOneTimePayment.operation_type)
        .all()
    )
    plan_rows = db.query(User.subscription_plan, func.count(User.id)).group_by(User.subscription_plan).all()
    return {
        "days": days,
        "operations": _daily_series(db, PdfOperation.created_at, since, days, now),
        "signups": _daily_series(db, User.created_at, since, days, now),
        "top_operation_types": top_types,
        "one_time_consumed_by_type": consumed_by_type,
        "plan_distribution": {plan: count for plan, count in plan_rows},
    }
