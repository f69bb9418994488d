from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context, require_user
from app.db.session import get_db
from app.errors.exceptions import NotFoundError
from app.models.user import PAID_PLANS, User
from app.paywall.access import effective_plan
from app.paywall.models import AuthContext
from app.schemas.users import AccessInfoOut, OperationOut, UserStatsOut
from app.services.history.service import OperationLogService
from app.services.users.service import UserService


router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/access-info", response_model=AccessInfoOut)
def access_info(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)) -> AccessInfoOut:
    if auth.is_anonymous:
        return AccessInfoOut(is_authenticated=False, access_type="guest")

    users = UserService(db)
    user = users.get_by_email(auth.email)
    if user is None:
        return AccessInfoOut(is_authenticated=True, access_type="free")

    plan = effective_plan(users.find_access_record(user.email), datetime.now(timezone.utc))
    if user.is_admin():
        access_type, unlimited = "admin", True
    elif plan in PAID_PLANS:
        access_type, unlimited = "subscription", True
    else:
        access_type, unlimited = "free", False

    return AccessInfoOut(
        is_authenticated=True,
        is_admin=user.is_admin(),
        has_unlimited_access=unlimited,
        access_type=access_type,
        plan="pro" if user.is_admin() else plan,
        subscription_status=user.subscription_status,
        subscription_end_date=user.subscription_current_period_end,
    )


@router.get("/history", response_model=list[OperationOut])
def history(user: User = Depends(require_user), db: Session = Depends(get_db)) -> list[OperationOut]:
    return [OperationOut.model_validate(op) for op in OperationLogService(db).list_for_user(user.id)]


@router.delete("/history")
def clear_history(user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict:
    deleted = OperationLogService(db).clear_for_user(user.id)
    return {"success": True, "deleted": deleted}


@router.get("/history/{operation_id}", response_model=OperationOut)
def history_item(operation_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)) -> OperationOut:
    op = OperationLogService(db).get_for_user(user.id, operation_id)
    if op is None:
        raise NotFoundError("Operation not found")
    return OperationOut.model_validate(op)


@router.delete("/history/{operation_id}")
def delete_history_item(operation_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict:
    if not OperationLogService(db).delete_for_user(user.id, operation_id):
        raise NotFoundError("Operation not found")
    return {"success": True}


@router.get("/stats", response_model=UserStatsOut)
def stats(user: User = Depends(require_user), db: Session = Depends(get_db)) -> UserStatsOut:
    log = OperationLogService(db)
    record = UserService(db).find_access_record(user.email)
    return UserStatsOut(
        operations_this_month=log.count_this_month(user.id),
        recent_operations=[OperationOut.model_validate(op) for op in log.list_for_user(user.id, limit=5)],
        subscription=effective_plan(record),
        subscription_status=user.subscription_status,
        current_period_end=user.subscription_current_period_end,
        has_stripe_subscription=bool(user.stripe_subscription_id),
    )
