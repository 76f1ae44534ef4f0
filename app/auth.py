"""
Admin sign-up / sign-in / sign-out.

A signed-in admin holds an opaque bearer token. The mere presence of a valid
session is what allows mutating operations.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.db import get_db
from app.live_match.errors import LeagueError
from app.models import AdminSession, AdminUser
from config.settings import settings

logger = logging.getLogger("auth")


class AuthError(LeagueError):
    """Sign-up or sign-in failed."""


class DuplicateAccountError(AuthError):
    def __init__(self, email: str):
        super().__init__(f"An account already exists for {email}")


class InvalidCredentialsError(AuthError):
    def __init__(self):
        super().__init__("Invalid email or password")


def sign_up(db: Session, email: str, password: str) -> AdminUser:
    """Create an admin account."""
    email = email.strip().lower()
    if db.query(AdminUser).filter(AdminUser.email == email).first():
        raise DuplicateAccountError(email)

    user = AdminUser(email=email, password_hash=generate_password_hash(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Admin account created: {email}")
    return user


def sign_in(db: Session, email: str, password: str) -> AdminSession:
    """Check credentials and open a session."""
    email = email.strip().lower()
    user = db.query(AdminUser).filter(AdminUser.email == email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.warning(f"Failed sign-in for {email}")
        raise InvalidCredentialsError()

    now = datetime.utcnow()
    session = AdminSession(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(hours=settings.session_ttl_hours),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def sign_out(db: Session, token: str) -> bool:
    """Close a session. Returns False if it did not exist."""
    session = db.get(AdminSession, token)
    if session is None:
        return False
    db.delete(session)
    db.commit()
    return True


def resolve_session(db: Session, token: Optional[str]) -> Optional[AdminSession]:
    """The live session for a token, or None. Expired sessions are removed."""
    if not token:
        return None
    session = db.get(AdminSession, token)
    if session is None:
        return None
    if session.expires_at <= datetime.utcnow():
        db.delete(session)
        db.commit()
        return None
    return session


def _extract_token(authorization: Optional[str], admin_token: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value:
            return value.strip()
    return admin_token


# ===== FASTAPI DEPENDENCIES =====

def current_session(
    authorization: Optional[str] = Header(default=None),
    x_admin_token: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[AdminSession]:
    """Session for the request, or None when anonymous."""
    return resolve_session(db, _extract_token(authorization, x_admin_token))


def require_session(session: Optional[AdminSession] = Depends(current_session)) -> AdminSession:
    """Reject anonymous requests with 401."""
    if session is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    return session
