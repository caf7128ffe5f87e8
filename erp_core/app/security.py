"""
Authentication and Authorization
================================
- Secret key management
- bcrypt password hashing
- JWT session tokens (HttpOnly cookie or bearer header)
- Role-based access control with fine-grained permissions
"""

import os
import secrets
import hashlib
import warnings
from datetime import datetime, timedelta
from typing import Optional, Set

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
import bcrypt
from sqlalchemy.orm import Session

from .config import ENVIRONMENT, SESSION_COOKIE_NAME, TOKEN_EXPIRE_MINUTES
from .db import SessionLocal


# =============================================================================
# CONFIGURATION
# =============================================================================

def get_secret_key() -> str:
    """
    Signing key from ERP_SECRET_KEY.

    Missing key is fatal in production; development falls back to a fixed
    key so sessions survive reloads.
    """
    secret = os.getenv("ERP_SECRET_KEY")

    if not secret:
        if ENVIRONMENT == "production":
            raise RuntimeError(
                "ERP_SECRET_KEY environment variable must be set in production! "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
            )
        warnings.warn(
            "Using development secret key. Set ERP_SECRET_KEY for production!",
            RuntimeWarning
        )
        secret = hashlib.sha256(b"erp-dev-mode-insecure-key").hexdigest()

    if len(secret) < 32:
        raise RuntimeError("ERP_SECRET_KEY must be at least 32 characters")

    return secret


SECRET_KEY = get_secret_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = TOKEN_EXPIRE_MINUTES


# =============================================================================
# PASSWORD SECURITY
# =============================================================================

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72  # bcrypt only looks at the first 72 bytes


def validate_password(password: str) -> list[str]:
    """Return the policy violations for a new password (empty when fine)."""
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must not exceed {MAX_PASSWORD_LENGTH} bytes")
    if password.isdigit() or password.isalpha():
        errors.append("Password must mix letters and digits")
    return errors


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12)).decode('utf-8')


# =============================================================================
# TOKEN MANAGEMENT
# =============================================================================

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()

    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
        "type": "access"
    })

    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a session token.

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token",
            headers={"WWW-Authenticate": "Bearer"}
        )


# =============================================================================
# ROLE-BASED ACCESS CONTROL (RBAC)
# =============================================================================

class Permission:
    """Fine-grained permissions for roll-stock operations"""

    INVENTORY_VIEW = "inventory:view"
    INVENTORY_CREATE = "inventory:create"
    INVENTORY_UPDATE = "inventory:update"
    INVENTORY_DELETE = "inventory:delete"

    INSPECTION_VIEW = "inspection:view"
    INSPECTION_PERFORM = "inspection:perform"

    CUSTOMER_VIEW = "customer:view"
    CUSTOMER_MANAGE = "customer:manage"

    SALES_VIEW = "sales:view"
    SALES_CREATE = "sales:create"
    SALES_UPDATE = "sales:update"
    SALES_DELETE = "sales:delete"

    SHIPMENT_VIEW = "shipment:view"
    SHIPMENT_PROCESS = "shipment:process"

    FINANCE_VIEW = "finance:view"
    FINANCE_MANAGE = "finance:manage"
    FINANCE_POST = "finance:post"

    REPORT_VIEW = "report:view"
    REPORT_EXPORT = "report:export"

    USER_MANAGE = "user:manage"


ALL_PERMISSIONS: Set[str] = {
    value for key, value in vars(Permission).items() if key.isupper()
}

ROLE_PERMISSIONS: dict[str, Set[str]] = {
    "Admin": set(ALL_PERMISSIONS),

    "Inventory Manager": {
        Permission.INVENTORY_VIEW, Permission.INVENTORY_CREATE,
        Permission.INVENTORY_UPDATE, Permission.INVENTORY_DELETE,
        Permission.INSPECTION_VIEW,
        Permission.SALES_VIEW, Permission.SHIPMENT_VIEW,
        Permission.REPORT_VIEW,
    },

    "QC Inspector": {
        Permission.INVENTORY_VIEW,
        Permission.INSPECTION_VIEW, Permission.INSPECTION_PERFORM,
        Permission.REPORT_VIEW,
    },

    "Sales": {
        Permission.INVENTORY_VIEW,
        Permission.CUSTOMER_VIEW, Permission.CUSTOMER_MANAGE,
        Permission.SALES_VIEW, Permission.SALES_CREATE,
        Permission.SALES_UPDATE, Permission.SALES_DELETE,
        Permission.SHIPMENT_VIEW,
        Permission.REPORT_VIEW,
    },

    "Shipping": {
        Permission.INVENTORY_VIEW,
        Permission.CUSTOMER_VIEW, Permission.SALES_VIEW,
        Permission.SHIPMENT_VIEW, Permission.SHIPMENT_PROCESS,
    },

    "Accountant": {
        Permission.CUSTOMER_VIEW, Permission.SALES_VIEW,
        Permission.FINANCE_VIEW, Permission.FINANCE_MANAGE, Permission.FINANCE_POST,
        Permission.REPORT_VIEW, Permission.REPORT_EXPORT,
    },

    "User": {
        Permission.INVENTORY_VIEW,
        Permission.SALES_VIEW,
        Permission.SHIPMENT_VIEW,
    },
}


def get_role_permissions(role: str) -> Set[str]:
    return ROLE_PERMISSIONS.get(role, set())


def get_user_permissions(user) -> Set[str]:
    if user.is_system_admin:
        return set(ALL_PERMISSIONS)
    return get_role_permissions(user.role)


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================

def get_db():
    """Database session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
):
    """
    Resolve the session user from the session cookie or a bearer token.

    401 when there is no session, the token is bad, or the user row is gone.
    """
    from . import models  # Avoid circular import

    token = request.cookies.get(SESSION_COOKIE_NAME) or bearer
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = decode_token(token)

    username = payload.get("sub")
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = db.query(models.User).filter(models.User.username == username).first()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled"
        )

    return user


def require_permission(*required_permissions: str):
    """
    Dependency that requires the session user to hold every listed permission.
    System admins pass unconditionally.
    """
    async def permission_checker(current_user=Depends(get_current_user)):
        missing = set(required_permissions) - get_user_permissions(current_user)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}"
            )
        return current_user

    return permission_checker
