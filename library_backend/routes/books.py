from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import CopyStatus, UserRole
from library_backend.models.user import User
from library_backend.schemas.book import (
    BookCreate, BookUpdate, BulkImportRequest, UpdateInventoryRequest,
    AddCopiesRequest, UpdateCopyRequest, UpdateCopyStatusRequest
)
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.services import catalog
from library_backend.services.auth import get_current_user, require_roles

router = APIRouter(prefix="/api/books", tags=["Books"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

# Book endpoints
@router.get("", response_model=ApiResponse)
async def list_books(
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    category: Optional[str] = Query(None, description="Filter by category"),
    genre: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    availability: Optional[str] = Query(None, pattern="^(available|unavailable)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db)
):
    """Public catalog listing with search, filters and pagination."""
    items, pagination = catalog.list_books(
        db, search, category, genre, language, is_active, availability,
        page, limit, sort_by, sort_order
    )
    return paged([book.to_dict() for book in items], pagination)

@router.get("/isbn/{isbn}", response_model=ApiResponse)
async def get_book_by_isbn(isbn: str, db: Session = Depends(get_db)):
    return ok({"book": catalog.get_book_by_isbn(db, isbn).to_dict()})

@router.get("/{book_id}", response_model=ApiResponse)
async def get_book(book_id: str, db: Session = Depends(get_db)):
    return ok({"book": catalog.get_book(db, book_id).to_dict()})

@router.get("/{book_id}/stats", response_model=ApiResponse)
async def get_book_stats(
    book_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok(catalog.get_book_stats(db, book_id))

@router.get("/{book_id}/availability", response_model=ApiResponse)
async def check_availability(book_id: str, db: Session = Depends(get_db)):
    return ok(catalog.check_availability(db, book_id))

@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    """Add a book to the catalog along with its initial copies."""
    book = catalog.create_book(db, book_data)
    return ok({"book": book.to_dict()}, "Book created successfully")

@router.post("/bulk-import", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def bulk_import(
    import_data: BulkImportRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    result = catalog.bulk_import(db, import_data.books)
    return ok(result, f"Imported {result['createdCount']} of {len(import_data.books)} books")

@router.patch("/{book_id}", response_model=ApiResponse)
async def update_book(
    book_id: str,
    book_data: BookUpdate,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    book = catalog.update_book(db, book_id, book_data)
    return ok({"book": book.to_dict()}, "Book updated successfully")

@router.patch("/{book_id}/inventory", response_model=ApiResponse)
async def update_inventory(
    book_id: str,
    inventory_data: UpdateInventoryRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    """Set the number of copies, adding or removing AVAILABLE copies."""
    book = catalog.update_inventory(db, book_id, inventory_data.quantity)
    return ok({"book": book.to_dict()}, "Inventory updated successfully")

@router.delete("/{book_id}", response_model=ApiResponse)
async def delete_book(
    book_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    book = catalog.delete_book(db, book_id)
    return ok({"book": book.to_dict()}, "Book deleted successfully")

# Copy endpoints
@router.post("/{book_id}/copies", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def add_copies(
    book_id: str,
    copy_data: AddCopiesRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    copies = catalog.add_copies(db, book_id, copy_data)
    return ok(
        {"copies": [copy.to_dict() for copy in copies], "count": len(copies)},
        f"{len(copies)} copies added successfully"
    )

@router.get("/{book_id}/copies", response_model=ApiResponse)
async def list_copies(
    book_id: str,
    copy_status: Optional[CopyStatus] = Query(None, alias="status"),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    copies = catalog.list_copies(db, book_id, copy_status)
    return ok({"copies": [copy.to_dict() for copy in copies], "count": len(copies)})

@router.get("/{book_id}/copies/{copy_id}", response_model=ApiResponse)
async def get_copy(
    book_id: str,
    copy_id: str,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok({"copy": catalog.get_copy(db, book_id, copy_id).to_dict()})

@router.patch("/{book_id}/copies/{copy_id}", response_model=ApiResponse)
async def update_copy(
    book_id: str,
    copy_id: str,
    copy_data: UpdateCopyRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    copy = catalog.update_copy(db, book_id, copy_id, copy_data)
    return ok({"copy": copy.to_dict()}, "Copy updated successfully")

@router.patch("/{book_id}/copies/{copy_id}/status", response_model=ApiResponse)
async def update_copy_status(
    book_id: str,
    copy_id: str,
    status_data: UpdateCopyStatusRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    copy = catalog.update_copy_status(db, book_id, copy_id, status_data)
    return ok({"copy": copy.to_dict()}, f"Copy status updated to {copy.status.value}")

@router.delete("/{book_id}/copies/{copy_id}", response_model=ApiResponse)
async def delete_copy(
    book_id: str,
    copy_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    catalog.delete_copy(db, book_id, copy_id)
    return ok(message="Copy deleted successfully")
