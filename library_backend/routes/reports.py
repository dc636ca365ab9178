from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import UserRole
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok
from library_backend.services import reports
from library_backend.services.auth import require_roles
from library_backend.services.reports import GroupByPeriod

router = APIRouter(prefix="/api/reports", tags=["Reports"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

@router.get("/dashboard", response_model=ApiResponse)
async def dashboard(current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    return ok(reports.dashboard(db))

@router.get("/users/active", response_model=ApiResponse)
async def active_users(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(reports.active_users(db, start_date, end_date, limit))

@router.get("/users/overdue", response_model=ApiResponse)
async def overdue_users(current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    return ok(reports.overdue_users(db))

@router.get("/books/popular", response_model=ApiResponse)
async def popular_books(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = Query(None),
    genre: Optional[str] = Query(None),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(reports.popular_books(db, start_date, end_date, limit, category, genre))

@router.get("/books/low-circulation", response_model=ApiResponse)
async def low_circulation_books(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(reports.low_circulation_books(db, limit))

@router.get("/books/categories", response_model=ApiResponse)
async def category_distribution(current_user: User = Depends(staff_only), db: Session = Depends(get_db)):
    return ok(reports.category_distribution(db))

@router.get("/circulation", response_model=ApiResponse)
async def circulation(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    group_by: GroupByPeriod = Query(GroupByPeriod.MONTH, alias="groupBy"),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(reports.circulation(db, start_date, end_date, group_by))

@router.get("/financial/summary", response_model=ApiResponse)
async def financial_summary(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return ok(reports.financial_summary(db, start_date, end_date))
