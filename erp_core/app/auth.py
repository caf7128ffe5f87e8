from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from . import models, schemas
from .config import SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE
from .logging_config import get_logger
from .security import (
    get_db, get_current_user, verify_password, get_password_hash, create_access_token,
    require_permission, get_user_permissions, validate_password, Permission, ROLE_PERMISSIONS,
    ACCESS_TOKEN_EXPIRE_MINUTES,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])
log = get_logger(__name__)


async def _read_credentials(request: Request):
    """Credentials from a JSON body or an OAuth2 form post."""
    ctype = (request.headers.get("content-type") or "").lower()
    if "application/json" in ctype:
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Missing username or password")
        return body.get("username"), body.get("password")

    form = await request.form()
    return form.get("username"), form.get("password")


@router.post("/login", response_model=schemas.Token)
async def login(request: Request, response: Response, db: Session = Depends(get_db)):
    """Check credentials, return a token and set it as the session cookie."""
    username, password = await _read_credentials(request)
    if not username or not password:
        raise HTTPException(status_code=400, detail="Missing username or password")

    user = db.query(models.User).filter(models.User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        log.warning("login_failed", username=username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User account is disabled")

    access_token = create_access_token({"sub": user.username, "role": user.role})
    response.set_cookie(
        SESSION_COOKIE_NAME,
        access_token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )
    log.info("login_succeeded", user_id=user.id)
    return {"access_token": access_token, "token_type": "bearer", "role": user.role}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"success": True}


@router.get("/session", response_model=schemas.SessionOut)
def session(current_user: models.User = Depends(get_current_user)):
    return {"user": current_user, "permissions": sorted(get_user_permissions(current_user))}


@router.post("/register", response_model=schemas.UserOut, status_code=201)
def register(
    user_in: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Permission.USER_MANAGE)),
):
    existing = db.query(models.User).filter(
        (models.User.username == user_in.username) | (models.User.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="User with that username or email already exists")

    if user_in.role not in ROLE_PERMISSIONS:
        raise HTTPException(status_code=400, detail=f"Unknown role '{user_in.role}'")
    problems = validate_password(user_in.password)
    if problems:
        raise HTTPException(status_code=400, detail="; ".join(problems))

    user = models.User(
        name=user_in.name,
        email=user_in.email,
        username=user_in.username,
        password_hash=get_password_hash(user_in.password),
        role=user_in.role,
        is_system_admin=user_in.is_system_admin and current_user.is_system_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("user_registered", user_id=user.id, role=user.role, by=current_user.id)
    return user
