from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from toothchart.core.security import InvalidTokenError, user_id_from_token
from toothchart.db.session import get_db
from toothchart.models.user import Role, User


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    db: Session = Depends(get_db), authorization: str | None = Header(default=None)
) -> User:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Missing bearer token")
    try:
        user_id = user_id_from_token(token.strip())
    except InvalidTokenError:
        raise _unauthorized("Invalid token")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Inactive user")
    return user


def require_roles(*roles: Role):
    allowed = {Role(role) for role in roles}

    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _inner
