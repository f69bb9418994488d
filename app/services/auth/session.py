"""
Signed session tokens (itsdangerous). Payload {user_id, email}; выдаёт внешний логин,
API только проверяет подпись и срок.
"""
import logging

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from starlette.requests import Request

from app.core.config import settings
from app.paywall.models import AuthContext

logger = logging.getLogger("auth")

_serializer = URLSafeTimedSerializer(settings.session_secret, salt="user-session")


def create_session_token(user_id: str, email: str) -> str:
    return _serializer.dumps({"user_id": user_id, "email": email})


def read_session_token(token: str | None) -> AuthContext:
    """Невалидный или просроченный токен = anonymous, без ошибки."""
    if not token:
        return AuthContext.anonymous()
    try:
        data = _serializer.loads(token, max_age=settings.session_ttl)
    except SignatureExpired:
        logger.info("session_token_expired")
        return AuthContext.anonymous()
    except BadSignature:
        logger.warning("session_token_invalid")
        return AuthContext.anonymous()
    if not isinstance(data, dict) or not data.get("email"):
        return AuthContext.anonymous()
    return AuthContext(user_id=data.get("user_id"), email=data["email"])


def token_from_request(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(settings.session_cookie_name)
