import re
from decimal import Decimal
from pydantic import AfterValidator, Field
from typing import Annotated, List, Optional
from library_backend.models.enums import BookCondition, CopyStatus
from library_backend.schemas.common import CamelModel

_ISBN_PATTERN = re.compile(r"^(\d{9}[\dX]|\d{13})$")

def normalize_isbn(value: str) -> str:
    digits = value.replace("-", "").replace(" ", "").upper()
    if not _ISBN_PATTERN.match(digits):
        raise ValueError("ISBN must be 10 or 13 digits")
    return digits

Isbn = Annotated[str, AfterValidator(normalize_isbn)]

class BookBase(CamelModel):
    publisher: Optional[str] = Field(None, max_length=200)
    publication_year: Optional[int] = Field(None, ge=1000, le=9999)
    genre: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    cover_image_url: Optional[str] = Field(None, max_length=500)
    loan_period_days: Optional[int] = Field(None, ge=1, le=365)
    fine_per_day: Optional[Decimal] = Field(None, ge=0)
    max_renewals: Optional[int] = Field(None, ge=0, le=20)
    security_deposit: Optional[Decimal] = Field(None, ge=0)

class BookCreate(BookBase):
    isbn: Isbn
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    language: str = Field("English", max_length=50)
    book_value: Decimal = Field(Decimal("0"), ge=0)
    total_copies: int = Field(1, ge=0, le=100)
    shelf_location: Optional[str] = Field(None, max_length=50)
    section: Optional[str] = Field(None, max_length=50)

class BookUpdate(BookBase):
    isbn: Optional[Isbn] = None
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    language: Optional[str] = Field(None, max_length=50)
    book_value: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None

class AddCopiesRequest(CamelModel):
    count: int = Field(1, ge=1, le=100)
    shelf_location: Optional[str] = Field(None, max_length=50)
    section: Optional[str] = Field(None, max_length=50)
    condition: BookCondition = BookCondition.GOOD

class UpdateCopyRequest(CamelModel):
    shelf_location: Optional[str] = Field(None, max_length=50)
    section: Optional[str] = Field(None, max_length=50)
    condition: Optional[BookCondition] = None
    condition_notes: Optional[str] = None

class UpdateCopyStatusRequest(CamelModel):
    status: CopyStatus
    reason: Optional[str] = None

class UpdateInventoryRequest(CamelModel):
    quantity: int = Field(..., ge=0, le=1000)

class BulkImportRequest(CamelModel):
    books: List[BookCreate] = Field(..., min_length=1, max_length=500)
