from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Any, Dict, Optional


class ReportFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    department: Optional[str] = None
    leave_type_id: Optional[int] = None


class ReportResponse(BaseModel):
    report_type: str
    filters: ReportFilters
    generated_at: datetime
    result: Dict[str, Any]


class OrgStatisticsResponse(BaseModel):
    year: int
    last_refreshed: datetime
    stale: bool
    statistics: Dict[str, Any]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None
