"""
Access Control Service.

Password hashing, signed bearer tokens, authentication and login.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

import jwt
from passlib.context import CryptContext

from ujian.config import settings
from ujian.errors import Forbidden, Unauthenticated, ValidationFailed
from ujian.models.user import UserRole
from ujian.schemas import LoginRequest, LoginResponse, UserRecord
from ujian.storage import Gateway
from ujian.utils import utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_CREDENTIALS = "Invalid credentials"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Stored value is not a recognizable hash
        return False


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None,
                        now: Optional[datetime] = None) -> str:
    issued_at = now or utcnow()
    expires_at = issued_at + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {"sub": user_id, "iat": issued_at, "exp": expires_at}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> str:
    """Return the user id encoded in ``token``."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise Unauthenticated("Invalid token")
    return subject


def authenticate(gateway: Gateway, token: Optional[str]) -> UserRecord:
    if not token:
        raise Unauthenticated("No token provided")

    user = gateway.users.get_by_id(decode_access_token(token))
    if user is None:
        raise Unauthenticated("User not found")
    if user.is_suspended:
        raise Forbidden("Account suspended")
    return user


def require_role(user: UserRecord, allowed_roles: Iterable[UserRole]) -> None:
    allowed = list(allowed_roles)
    if user.role not in allowed:
        names = " or ".join(role.value for role in allowed)
        raise Forbidden(f"Access denied. Required role: {names}")


def login(gateway: Gateway, request: LoginRequest, clock: Callable[[], datetime] = utcnow) -> LoginResponse:
    """
    Log a user in and issue a fresh token.

    Teachers and owners use username + password; students use username + NISN.
    Every mismatch gets the same message so callers cannot probe which field
    was wrong.
    """
    if request.role == UserRole.STUDENT:
        if not request.username or not request.nisn:
            raise ValidationFailed("Username and NISN required for student")
        user = gateway.users.find_by_nisn(request.nisn)
        if user is None or user.role != UserRole.STUDENT:
            raise Unauthenticated(INVALID_CREDENTIALS)
        if user.username.strip().lower() != request.username.strip().lower():
            raise Unauthenticated(INVALID_CREDENTIALS)
    else:
        if not request.username or not request.password:
            raise ValidationFailed("Username and password required")
        user = gateway.users.find_by_username(request.username, [request.role])
        if user is None or not verify_password(request.password, user.password_hash):
            raise Unauthenticated(INVALID_CREDENTIALS)

    if user.is_suspended:
        raise Forbidden("Account suspended. Contact administrator.")

    user = gateway.users.update(user.id, {"last_active": clock(), "is_online": True})
    logger.info("🔑 %s %s logged in", user.role.value, user.username)
    return LoginResponse(token=create_access_token(user.id), user=user.summary())


def logout(gateway: Gateway, user: UserRecord) -> None:
    gateway.users.update(user.id, {"is_online": False})
