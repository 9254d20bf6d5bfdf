from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime


class LeaveTypeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    default_allocation_days: int = Field(0, ge=0, le=366)
    accrual_rules: Optional[Dict[str, Any]] = None
    is_active: bool = True


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_allocation_days: Optional[int] = Field(None, ge=0, le=366)
    accrual_rules: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class LeaveTypeResponse(LeaveTypeSummary):
    description: Optional[str] = None
    default_allocation_days: int
    accrual_rules: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
