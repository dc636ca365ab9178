from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import SettingCategory, UserRole
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok
from library_backend.schemas.setting import UpdateSettingRequest
from library_backend.services import system_settings
from library_backend.services.auth import require_roles

router = APIRouter(prefix="/api/settings", tags=["Settings"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

@router.get("", response_model=ApiResponse)
async def list_settings(
    category: Optional[SettingCategory] = Query(None),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    settings = system_settings.list_settings(db, category)
    return ok({"settings": [system_settings.serialize(setting) for setting in settings]})

@router.get("/{key}", response_model=ApiResponse)
async def get_setting(
    key: str,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok({"setting": system_settings.serialize(system_settings.get_setting(db, key))})

@router.patch("/{key}", response_model=ApiResponse)
async def update_setting(
    key: str,
    body: UpdateSettingRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    setting = system_settings.update_setting(db, key, body.value)
    return ok({"setting": system_settings.serialize(setting)}, "Setting updated successfully")

@router.post("/{key}/reset", response_model=ApiResponse)
async def reset_setting(
    key: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    setting = system_settings.reset_setting(db, key)
    return ok({"setting": system_settings.serialize(setting)}, "Setting reset to default")
