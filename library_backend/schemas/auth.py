from pydantic import EmailStr, Field
from typing import Optional
from library_backend.models.enums import UserRole
from library_backend.schemas.common import CamelModel

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)

class LoginRequest(CamelModel):
    email: EmailStr
    password: str

class CreateUserRequest(RegisterRequest):
    role: UserRole = UserRole.USER

class UpdateUserRequest(CamelModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRole] = None

class SuspendUserRequest(CamelModel):
    reason: str = Field(..., min_length=1)
