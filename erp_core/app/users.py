from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .logging_config import get_logger
from .security import (
    get_db, get_current_user, verify_password, get_password_hash, validate_password,
    require_permission, Permission, ROLE_PERMISSIONS,
)
from . import models, schemas

router = APIRouter(prefix="/api/users", tags=["users"])
log = get_logger(__name__)


@router.get("/me", response_model=schemas.UserOut)
def me_user(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
def change_password(
    pw: schemas.ChangePasswordIn,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if not verify_password(pw.old_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Old password is incorrect")
    if pw.new_password == pw.old_password:
        raise HTTPException(status_code=400, detail="New password must differ from the old one")
    problems = validate_password(pw.new_password)
    if problems:
        raise HTTPException(status_code=400, detail="; ".join(problems))

    current_user.password_hash = get_password_hash(pw.new_password)
    db.commit()
    log.info("password_changed", user_id=current_user.id)
    return {"success": True}


@router.get("", response_model=List[schemas.UserOut])
def list_users(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.USER_MANAGE)),
):
    return db.query(models.User).order_by(models.User.username).all()


@router.put("/{user_id}", response_model=schemas.UserOut)
def update_user(
    user_id: int,
    user_in: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.USER_MANAGE)),
):
    """Change a user's name, role or active flag."""
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    changes = user_in.model_dump(exclude_unset=True)
    if changes.get("role") is not None and changes["role"] not in ROLE_PERMISSIONS:
        raise HTTPException(status_code=400, detail=f"Unknown role '{changes['role']}'")
    if user.id == current_user.id and changes.get("is_active") is False:
        raise HTTPException(status_code=400, detail="You cannot disable your own account")

    for name, value in changes.items():
        if value is not None:
            setattr(user, name, value)
    db.commit()
    db.refresh(user)
    log.info("user_updated", user_id=user.id, fields=sorted(changes), by=current_user.id)
    return user
