import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models, crud
from .config import get_settings
from .database import get_db

security_logger = logging.getLogger("security")

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__rounds=4,
    argon2__memory_cost=65536,
    argon2__parallelism=1,
)

bearer_scheme = HTTPBearer(auto_error=False)


class SecurityConfig:
    SESSION_TOKEN_BYTES = 48
    MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class AdminContext:
    """Authenticated admin for the current request, passed explicitly into services."""
    id: int
    username: str
    role: models.AdminRole
    full_name: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    token: Optional[str] = None


# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unknown/legacy hash formats should not crash login; treat as non-match
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_session_token() -> str:
    return secrets.token_urlsafe(SecurityConfig.SESSION_TOKEN_BYTES)


def authenticate_admin(db: Session, username: str, password: str) -> Optional[models.AdminUser]:
    admin = crud.get_admin_by_username(db, username)
    if not admin or not verify_password(password, admin.password_hash):
        security_logger.warning(f"Failed admin login for '{username}'")
        return None
    return admin


def open_session(db: Session, admin: models.AdminUser) -> models.AdminSession:
    ttl = timedelta(hours=get_settings().session_ttl_hours)
    expires_at = datetime.now(timezone.utc) + ttl
    return crud.create_admin_session(db, admin.id, generate_session_token(), expires_at)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# Dependencies for FastAPI
def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AdminContext:
    """Resolve the bearer token to a live admin session."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception

    session = crud.get_active_session(db, credentials.credentials)
    if session is None:
        raise credentials_exception

    admin = crud.get_admin_user(db, session.admin_id)
    if admin is None:
        raise credentials_exception

    return AdminContext(
        id=admin.id,
        username=admin.username,
        role=admin.role,
        full_name=admin.full_name,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        token=credentials.credentials,
    )


def require_role(*allowed_roles: models.AdminRole):
    """Dependency factory for role-based access control"""
    def role_dependency(current_admin: AdminContext = Depends(get_current_admin)) -> AdminContext:
        if current_admin.role not in allowed_roles:
            security_logger.warning(
                f"Admin '{current_admin.username}' ({current_admin.role.value}) denied; requires {[r.value for r in allowed_roles]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(r.value for r in allowed_roles)}"
            )
        return current_admin

    return role_dependency
