import logging
from enum import Enum
from typing import Optional

from fastapi import Request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings
from errors import Forbidden, Unauthenticated


logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


class AuthResult(str, Enum):
    authorized = "authorized"
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session-token")


def issue_session_token(user_id: str) -> str:
    return _serializer().dumps({"u": user_id})


def read_session_token(token: str) -> Optional[str]:
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.session_max_age_secs)
    except BadSignature:
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id


def authorize(acting_user_id: Optional[str], owner_id: Optional[str]) -> AuthResult:
    if not acting_user_id:
        return AuthResult.unauthenticated
    if not owner_id or acting_user_id != owner_id:
        return AuthResult.forbidden
    return AuthResult.authorized


def session_user_id(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    token = None
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
    if not token:
        token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    return read_session_token(token)


def require_owner(request: Request, user_id: str) -> str:
    """FastAPI dependency guarding every ``/users/{userId}`` route."""
    acting = session_user_id(request)
    result = authorize(acting, user_id)
    if result is AuthResult.unauthenticated:
        raise Unauthenticated()
    if result is AuthResult.forbidden:
        logger.warning(
            f"forbidden: acting={acting} owner={user_id} path={request.url.path}"
        )
        raise Forbidden()
    return user_id
