from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from library_backend.database import get_db
from library_backend.models.user import User
from library_backend.schemas.auth import RegisterRequest, LoginRequest
from library_backend.schemas.common import ApiResponse, ok
from library_backend.services import users as user_service
from library_backend.services.auth import get_current_user

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new member account. Staff must approve it before login."""
    user = user_service.register(db, user_data)
    return ok(
        {"user": user.to_dict()},
        "Registration successful. Your account is pending approval."
    )

@router.post("/login", response_model=ApiResponse)
async def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """Login and get access token."""
    return ok(user_service.login(db, credentials.email, credentials.password), "Login successful")

@router.get("/me", response_model=ApiResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return ok({"user": current_user.to_dict()})
