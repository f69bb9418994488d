from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_user
from app.db.session import get_db
from app.models.user import PAID_PLANS, User
from app.paywall.access import effective_plan
from app.paywall.config import get_free_monthly_operation_limit
from app.schemas.billing import ChangePlanIn, UsageOut
from app.services.billing.service import BillingService
from app.services.history.service import OperationLogService
from app.services.operations.service import next_month_start
from app.services.users.service import UserService


router = APIRouter(prefix="/api/billing", tags=["billing"])

UNLIMITED_USAGE = 999999


@router.get("/subscription")
def subscription(user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict:
    return BillingService(db).subscription_info(user)


@router.get("/usage", response_model=UsageOut)
def usage(user: User = Depends(require_user), db: Session = Depends(get_db)) -> UsageOut:
    now = datetime.now(timezone.utc)
    plan = effective_plan(UserService(db).find_access_record(user.email), now)
    return UsageOut(
        current_month=OperationLogService(db).count_completed_this_month(user.id, now),
        limit=UNLIMITED_USAGE if plan in PAID_PLANS else get_free_monthly_operation_limit(),
        reset_date=next_month_start(now).isoformat(),
    )


@router.post("/cancel")
def cancel(user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict:
    return BillingService(db).cancel(user)


@router.post("/reactivate")
def reactivate(user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict:
    return BillingService(db).reactivate(user)


@router.post("/change-plan")
def change_plan(
    payload: ChangePlanIn = Body(...),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> dict:
    return BillingService(db).change_plan(user, payload.new_plan)
