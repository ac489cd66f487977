# slot_booking/routers/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_logger
from ..database import get_db
from ..models import AuditAction
from ..security import AdminContext, get_current_admin

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


@router.post("/admin/login", response_model=schemas.AdminLoginResponse)
def admin_login(credentials: schemas.AdminLogin, request: Request, db: Session = Depends(get_db)):
    admin = security.authenticate_admin(db, credentials.username, credentials.password)
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = security.open_session(db, admin)
    actor = AdminContext(
        id=admin.id,
        username=admin.username,
        role=admin.role,
        full_name=admin.full_name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )
    audit_logger.log(db, actor, AuditAction.LOGIN, "admin_session", admin.id)
    logger.info(f"Admin '{admin.username}' logged in")

    return schemas.AdminLoginResponse(
        token=session.token,
        expires_at=session.expires_at,
        admin=schemas.AdminIdentity.model_validate(admin),
    )


@router.post("/admin/logout", response_model=schemas.MessageResponse)
def admin_logout(db: Session = Depends(get_db), current_admin: AdminContext = Depends(get_current_admin)):
    crud.delete_session(db, current_admin.token)
    audit_logger.log(db, current_admin, AuditAction.LOGOUT, "admin_session", current_admin.id)
    return {"message": "Logged out"}


@router.get("/admin/verify", response_model=schemas.AdminVerifyResponse)
def verify_admin(current_admin: AdminContext = Depends(get_current_admin)):
    return schemas.AdminVerifyResponse(admin=schemas.AdminIdentity(
        id=current_admin.id,
        username=current_admin.username,
        role=current_admin.role,
        full_name=current_admin.full_name,
    ))


@router.post("/user/login", response_model=schemas.UserLoginResponse)
def user_login(payload: schemas.UserLogin, db: Session = Depends(get_db)):
    """Public sign-in: there is no password, the profile cache is simply refreshed."""
    profile = crud.upsert_profile(db, payload.army_number, payload.name, payload.mobile)
    return schemas.UserLoginResponse(user=schemas.ProfileResponse.model_validate(profile))
