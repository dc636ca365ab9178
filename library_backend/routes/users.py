from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import UserRole, UserStatus
from library_backend.models.user import User
from library_backend.schemas.auth import CreateUserRequest, UpdateUserRequest, SuspendUserRequest
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.services import users as user_service
from library_backend.services.auth import get_current_user, require_roles

router = APIRouter(prefix="/api/users", tags=["Users"])

admin_only = require_roles(UserRole.ADMIN)
staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)

@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: CreateUserRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    user = user_service.create_user(db, current_user, user_data)
    return ok({"user": user.to_dict()}, "User created successfully")

@router.get("", response_model=ApiResponse)
async def list_users(
    role: Optional[UserRole] = Query(None),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search by name or email"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    items, pagination = user_service.list_users(db, role, user_status, search, page, limit)
    return paged([user.to_dict() for user in items], pagination)

@router.patch("/me", response_model=ApiResponse)
async def update_me(
    user_data: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = user_service.update_user(db, current_user.id, current_user, user_data)
    return ok({"user": user.to_dict()}, "Profile updated successfully")

@router.get("/{user_id}", response_model=ApiResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a user with borrowing statistics. Members may only view themselves."""
    return ok({"user": user_service.get_user(db, user_id, current_user)})

@router.patch("/{user_id}", response_model=ApiResponse)
async def update_user(
    user_id: str,
    user_data: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = user_service.update_user(db, user_id, current_user, user_data)
    return ok({"user": user.to_dict()}, "User updated successfully")

@router.delete("/{user_id}", response_model=ApiResponse)
async def delete_user(
    user_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    user_service.delete_user(db, user_id, current_user)
    return ok(message="User deleted successfully")

@router.post("/{user_id}/approve", response_model=ApiResponse)
async def approve_user(
    user_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    user = user_service.approve_user(db, user_id, current_user)
    return ok({"user": user.to_dict()}, "User approved successfully")

@router.post("/{user_id}/suspend", response_model=ApiResponse)
async def suspend_user(
    user_id: str,
    body: SuspendUserRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    user = user_service.suspend_user(db, user_id, current_user, body.reason)
    return ok({"user": user.to_dict()}, "User suspended successfully")

@router.post("/{user_id}/activate", response_model=ApiResponse)
async def activate_user(
    user_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    user = user_service.activate_user(db, user_id, current_user)
    return ok({"user": user.to_dict()}, "User activated successfully")
