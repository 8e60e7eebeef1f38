import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from toothchart.core.security import create_access_token
from toothchart.db.session import get_db
from toothchart.schemas.auth import LoginRequest, Token
from toothchart.services.users import LoginOutcome, check_login

logger = logging.getLogger("toothchart.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    outcome, user = check_login(db, payload.email, payload.password)
    if outcome is LoginOutcome.disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    if outcome is not LoginOutcome.ok:
        logger.info("Rejected login for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return Token(access_token=create_access_token(user.id, role=user.role.value, email=user.email))
