from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Any, Dict, Optional
from datetime import datetime
from leave_management.models.employee import EmployeeRole


class EmployeeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    department: Optional[str] = None


class EmployeeResponse(EmployeeSummary):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: EmployeeRole
    photo_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class EmployeeSelfUpdate(BaseModel):
    """Fields an employee may change on their own record. Anything else is rejected."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    photo_url: Optional[str] = Field(None, max_length=500)


class EmployeeAdminUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role: Optional[EmployeeRole] = None
    department: Optional[str] = Field(None, max_length=100)
    photo_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None
