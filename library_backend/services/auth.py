import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from library_backend.config import settings
from library_backend.database import get_db
from library_backend.models.enums import UserRole, UserStatus
from library_backend.models.user import User
from library_backend.services.errors import UnauthorizedError, ForbiddenError
from library_backend.utils.timezone import now_utc

logger = logging.getLogger(__name__)

# HTTP Bearer token - auto_error=False so we can handle errors ourselves
security = HTTPBearer(auto_error=False)

# Password hashing context - using bcrypt with automatic salt generation
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = now_utc() + expires_delta
    else:
        expire = now_utc() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

def create_token_for(user: User) -> str:
    return create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = UnauthorizedError(
        "Could not validate credentials. Please provide a valid Authorization header with Bearer token."
    )

    if credentials is None:
        auth_header = request.headers.get("Authorization")
        if auth_header:
            logger.warning(f"Authorization header present but invalid format: {auth_header[:50]}")
        else:
            logger.warning("Authorization header missing")
        raise credentials_exception

    try:
        token = credentials.credentials
        if not token:
            raise credentials_exception

        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id: Optional[str] = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception
    if user.status != UserStatus.ACTIVE:
        logger.warning(f"Rejected token for user {user.id} with status {user.status.value}")
        raise UnauthorizedError("Account is not active")
    return user

def require_roles(*roles: UserRole):
    """Dependency factory that admits only the given roles.

    SUPER_ADMIN passes every gate that admits ADMIN.
    """
    allowed = set(roles)
    if UserRole.ADMIN in allowed:
        allowed.add(UserRole.SUPER_ADMIN)

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError(
                f"This action requires one of the roles: {', '.join(sorted(r.value for r in allowed))}"
            )
        return current_user

    return checker
