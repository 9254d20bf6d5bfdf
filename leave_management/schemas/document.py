from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from leave_management.models.company_document import NotificationFrequency, NotifierStatus


class LeaveDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    leave_request_id: int
    file_name: str
    file_size: int
    file_type: str
    storage_path: str
    uploaded_by: int
    uploaded_at: datetime


class UploadFailure(BaseModel):
    file_name: str
    code: str
    message: str


class DocumentUploadResult(BaseModel):
    """Per-file outcome of a multi-file upload. Failures do not undo successes."""
    uploaded: List[LeaveDocumentResponse]
    failed: List[UploadFailure]


class CompanyDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    document_type: str
    expiry_date: Optional[datetime] = None
    uploaded_by: int
    storage_path: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    is_public: bool
    created_at: Optional[datetime] = None


class NotifierCreate(BaseModel):
    notification_frequency: NotificationFrequency = NotificationFrequency.WEEKLY
    custom_frequency_days: Optional[int] = Field(None, gt=0, le=365)


class NotifierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    document_id: int
    notification_frequency: NotificationFrequency
    custom_frequency_days: Optional[int] = None
    last_notification_sent: Optional[datetime] = None
    status: NotifierStatus


class ExpiryNotification(BaseModel):
    document: str
    recipients: List[str]
    days_until_expiry: int


class ExpiryCheckResult(BaseModel):
    notifications_sent: int
    notifications: List[ExpiryNotification]
    checked_at: datetime
    details: Optional[Dict[str, Any]] = None
