"""
FastAPI dependencies.
"""

from typing import Generator, Optional
from datetime import date

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.database import SessionLocal
from budgenudge.models.user import User
from budgenudge.services import scan_service
from budgenudge.services.sms_service import SmsTransport, get_sms_transport


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Reject trigger calls that do not carry the configured bearer secret."""
    if not settings.cron_secret:
        return
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_user(user_id: str, db: Session = Depends(get_db)) -> User:
    """Resolve the ``user_id`` path parameter or 404."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_transport() -> SmsTransport:
    """SMS transport for request-driven sends."""
    return get_sms_transport()


def get_today() -> date:
    """The local calendar day that sends are claimed against."""
    return scan_service.local_now().date()
