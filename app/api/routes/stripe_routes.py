from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_auth_context, require_user
from app.db.session import get_db
from app.models.user import User
from app.paywall.claims import PURCHASE_ID_COOKIE
from app.paywall.models import AuthContext
from app.schemas.billing import CheckoutIn, OneTimeCheckoutIn, OneTimeSuccessOut
from app.services.billing.service import BillingService, safe_return_to
from app.services.billing.webhook import StripeWebhookHandler, construct_event
from app.services.users.service import UserService


router = APIRouter(prefix="/api/stripe", tags=["stripe"])

PURCHASE_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


def _optional_user(auth: AuthContext, db: Session) -> User | None:
    if auth.is_anonymous:
        return None
    return UserService(db).get_by_email(auth.email)


@router.post("/checkout")
def checkout(
    payload: CheckoutIn = Body(...),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> dict:
    return BillingService(db).create_checkout(user, payload.plan)


@router.post("/one-time-checkout")
def one_time_checkout(
    payload: OneTimeCheckoutIn | None = Body(None),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> dict:
    return BillingService(db).create_one_time_checkout(_optional_user(auth, db), payload.return_to if payload else None)


@router.get("/one-time-success")
def one_time_success(
    session_id: str | None = Query(None),
    return_to: str | None = Query(None, alias="returnTo"),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Оплаченная сессия -> purchase id в cookie и в теле (клиент шлёт его в X-Purchase-Id)."""
    purchase = BillingService(db).complete_one_time_purchase(session_id, _optional_user(auth, db))
    body = OneTimeSuccessOut(purchase_id=purchase.purchase_id, return_to=safe_return_to(return_to))
    response = JSONResponse(body.model_dump(by_alias=True))
    response.set_cookie(
        PURCHASE_ID_COOKIE,
        purchase.purchase_id,
        max_age=PURCHASE_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/webhook")
async def webhook(request: Request, db: Session = Depends(get_db)) -> dict:
    payload = await request.body()
    event = construct_event(payload, request.headers.get("stripe-signature"))
    outcome = await run_in_threadpool(StripeWebhookHandler(db).handle, event)
    return {"received": True, "outcome": outcome}
