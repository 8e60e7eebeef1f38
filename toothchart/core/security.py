from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from toothchart.core.settings import settings

_passwords = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(ValueError):
    pass


def hash_password(password: str) -> str:
    return _passwords.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return _passwords.verify(password, hashed)


def _signing_key() -> str:
    return settings.secret_key or ""


def create_access_token(
    user_id: int,
    *,
    role: Optional[str] = None,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(issued.timestamp()),
        "exp": int((issued + lifetime).timestamp()),
    }
    if role:
        claims["role"] = role
    if email:
        claims["email"] = email
    return jwt.encode(claims, _signing_key(), algorithm=settings.jwt_alg)


def user_id_from_token(token: str) -> int:
    """Return the user id a token was issued for, or raise ``InvalidTokenError``."""
    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[settings.jwt_alg])
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc
    subject = claims.get("sub")
    if not subject or not str(subject).isdigit():
        raise InvalidTokenError("Invalid token")
    return int(subject)
