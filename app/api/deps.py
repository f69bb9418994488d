from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.errors.exceptions import ForbiddenError, UnauthorizedError
from app.models.user import User
from app.paywall.models import AuthContext
from app.services.auth.session import read_session_token, token_from_request
from app.services.users.service import UserService


def get_auth_context(request: Request) -> AuthContext:
    return read_session_token(token_from_request(request))


def require_user(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> User:
    if auth.is_anonymous:
        raise UnauthorizedError()
    user = UserService(db).get_by_email(auth.email)
    if user is None:
        raise UnauthorizedError("User not found")
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin():
        raise ForbiddenError("Admin access required")
    return user
