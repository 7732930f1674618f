"""Admin accounts, server-side sessions and the request auth gate."""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from nuvyra_admin.database import settings
from nuvyra_admin.models import AdminSession, AdminUser

LOGGER = logging.getLogger(__name__)

LOGIN_PATH = "/login"
ADMIN_PREFIX = "/admin"
DEFAULT_ADMIN_PATH = "/admin/products"

PBKDF2_ITERATIONS = 260_000


class AuthError(Exception):
    """Raised when credentials are rejected."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_password(password: str, *, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    candidate = hash_password(password, salt=salt, iterations=rounds)
    return hmac.compare_digest(candidate.split("$", 3)[3], expected)


def ensure_admin_user(db: Session, email: str, password: str) -> AdminUser:
    email = email.strip().lower()
    user = db.query(AdminUser).filter(AdminUser.email == email).first()
    if user is not None:
        return user
    user = AdminUser(email=email, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    LOGGER.info("Created admin account %s", email)
    return user


def sign_in(db: Session, email: str, password: str) -> AdminSession:
    email = (email or "").strip().lower()
    user = db.query(AdminUser).filter(AdminUser.email == email).first()
    if user is None or not verify_password(password or "", user.password_hash):
        LOGGER.warning("Rejected sign-in for %s", email or "<empty>")
        raise AuthError("Invalid email or password.")

    # Purge expired sessions.
    db.query(AdminSession).filter(AdminSession.expires_at <= _utcnow()).delete(synchronize_session=False)
    session = AdminSession(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        expires_at=_utcnow() + timedelta(hours=settings.session_ttl_hours),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    LOGGER.info("Admin %s signed in", email)
    return session


def sign_out(db: Session, token: Optional[str]) -> None:
    if not token:
        return
    db.query(AdminSession).filter(AdminSession.token == token).delete(synchronize_session=False)
    db.commit()


def get_current_user(db: Session, token: Optional[str]) -> Optional[AdminUser]:
    if not token:
        return None
    session = db.query(AdminSession).filter(AdminSession.token == token).first()
    if session is None:
        return None
    if _as_utc(session.expires_at) <= _utcnow():
        db.delete(session)
        db.commit()
        return None
    return db.get(AdminUser, session.user_id)


def is_admin_path(path: str) -> bool:
    return path == ADMIN_PREFIX or path.startswith(ADMIN_PREFIX + "/")


def post_login_target(requested: Optional[str]) -> str:
    """Only follow redirects back into the admin area; anything else goes to the landing page."""
    if requested and is_admin_path(requested):
        return requested
    return DEFAULT_ADMIN_PATH


def resolve_gate(path: str, authenticated: bool) -> Optional[str]:
    """Return where the request should be redirected, or None to let it through."""
    if is_admin_path(path):
        if not authenticated:
            return f"{LOGIN_PATH}?redirect={quote(path, safe='/')}"
        return None
    if path == LOGIN_PATH:
        return DEFAULT_ADMIN_PATH if authenticated else None
    if path == "/":
        return DEFAULT_ADMIN_PATH if authenticated else LOGIN_PATH
    return None
