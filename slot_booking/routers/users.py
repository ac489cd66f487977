# slot_booking/routers/users.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..models import AdminRole
from ..security import AdminContext, require_role
from ..services import admin_user_service

require_admin = require_role(AdminRole.ADMIN)

router = APIRouter(
    prefix="/admin/users",
    tags=["Users"],
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=schemas.AdminUserList)
def read_all_users(
    role: Optional[AdminRole] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    users, total = admin_user_service.list_users(db, role=role, search=search, limit=limit, offset=offset)
    return {"users": users, "total": total, "limit": limit, "offset": offset}


@router.get("/stats", response_model=schemas.AdminUserStats)
def read_user_stats(db: Session = Depends(get_db)):
    return admin_user_service.user_stats(db)


@router.post("", response_model=schemas.AdminUserResponse, status_code=status.HTTP_201_CREATED)
def create_new_user(
    payload: schemas.AdminUserCreate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(require_admin),
):
    return admin_user_service.create_user(db, current_admin, payload)


@router.get("/{user_id}", response_model=schemas.AdminUserResponse)
def read_user(user_id: int, db: Session = Depends(get_db)):
    return admin_user_service.get_user(db, user_id)


@router.put("/{user_id}/role", response_model=schemas.AdminUserResponse)
def update_user_role(
    user_id: int,
    payload: schemas.AdminUserRoleUpdate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(require_admin),
):
    return admin_user_service.update_role(db, current_admin, user_id, payload.role)


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_existing_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(require_admin),
):
    admin_user_service.delete_user(db, current_admin, user_id)
    return {"message": "User deleted successfully"}
