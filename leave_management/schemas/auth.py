from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from leave_management.models.employee import EmployeeRole
from leave_management.schemas.employee import EmployeeResponse


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)


class AdminUserCreate(SignupRequest):
    role: EmployeeRole = EmployeeRole.EMPLOYEE


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    employee: EmployeeResponse
