from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from leave_management.models.leave_request import LeaveStatus
from leave_management.schemas.employee import EmployeeSummary
from leave_management.schemas.leave_type import LeaveTypeSummary
from leave_management.schemas.document import LeaveDocumentResponse

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500


class LeaveRequestCreate(BaseModel):
    leave_type_id: int
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=REASON_MIN_LENGTH, max_length=REASON_MAX_LENGTH)


class LeaveRequestUpdate(BaseModel):
    """Owner edits while pending. `status` only accepts "cancelled"."""
    model_config = ConfigDict(extra="forbid")

    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, min_length=REASON_MIN_LENGTH, max_length=REASON_MAX_LENGTH)
    status: Optional[Literal["cancelled"]] = None


class LeaveDecisionRequest(BaseModel):
    leave_id: int
    action: Literal["approved", "rejected"]
    comments: Optional[str] = Field(None, max_length=1000)


class LeaveDecisionComment(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days_count: int
    reason: Optional[str] = None
    status: LeaveStatus
    approver_id: Optional[int] = None
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    last_modified_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    requester: Optional[EmployeeSummary] = None
    leave_type: Optional[LeaveTypeSummary] = None


class LeaveRequestDetail(LeaveRequestResponse):
    documents: List[LeaveDocumentResponse] = []


class LeaveListResponse(BaseModel):
    leaves: List[LeaveRequestResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class CalendarLeave(BaseModel):
    leave_id: int
    employee_id: int
    employee_name: str
    department: Optional[str] = None
    leave_type: str
    start_date: date
    end_date: date
    days_count: int
    status: LeaveStatus


class LeaveBalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    leave_type_id: int
    year: int
    allocated_days: int
    used_days: int
    carried_forward_days: int
    available_days: int
    leave_type: Optional[LeaveTypeSummary] = None


class LeaveBalanceAdjust(BaseModel):
    allocated_days: Optional[int] = Field(None, ge=0)
    carried_forward_days: Optional[int] = Field(None, ge=0)


class AvailableDaysResponse(BaseModel):
    employee_id: int
    leave_type_id: int
    year: int
    available_days: int


class BalanceInitializeRequest(BaseModel):
    year: Optional[int] = Field(None, ge=2000, le=2100)


class BalanceInitializeResult(BaseModel):
    year: int
    employees: int
    created: int


class LeaveStatistics(BaseModel):
    """Organisation-wide figures for HR/admin, personal figures for everyone else."""
    scope: Literal["organization", "personal"]
    year: int
    stats: Dict[str, Any]
