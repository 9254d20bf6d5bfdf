# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    auth_user, employee, department,
    leave_type, leave_balance, leave_request, leave_document,
    company_document, notification, audit_log, org_statistics
)

# Explicit class exports for cleaner imports
from .auth_user import AuthUser
from .employee import Employee, EmployeeRole
from .department import Department
from .leave_type import LeaveType
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus
from .leave_document import LeaveDocument
from .company_document import CompanyDocument, DocumentNotifier, NotificationLog
from .notification import Notification
from .audit_log import AuditLog
from .org_statistics import OrgStatisticsSnapshot

__all__ = [
    "AuthUser",
    "Employee",
    "EmployeeRole",
    "Department",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveDocument",
    "CompanyDocument",
    "DocumentNotifier",
    "NotificationLog",
    "Notification",
    "AuditLog",
    "OrgStatisticsSnapshot",
]
