"""
Row-level authorization.

Every rule is expressed against a `Principal`, the caller's identity resolved
once per request by `load_principal` (a single-row lookup of the caller's own
employee record). Policies never look the caller up again inside the query
they guard, so a rule protecting `employees` cannot recurse into itself.

Two shapes of rule live here:
- checks (`can_*`) applied to one loaded row,
- scopes (`scope_*`) applied to list queries as filters.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from leave_management.core.exceptions import AccessDeniedError
from leave_management.models.employee import Employee, EmployeeRole, ELEVATED_ROLES
from leave_management.models.leave_request import LeaveRequest
from leave_management.models.leave_document import LeaveDocument
from leave_management.models.company_document import CompanyDocument


@dataclass(frozen=True)
class Principal:
    employee_id: int
    auth_user_id: str
    email: str
    role: EmployeeRole
    department: Optional[str]
    is_active: bool = True

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == EmployeeRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == EmployeeRole.MANAGER


def load_principal(db: Session, auth_user_id: str) -> Optional[Principal]:
    row = (
        db.query(
            Employee.id,
            Employee.auth_user_id,
            Employee.email,
            Employee.role,
            Employee.department,
            Employee.is_active,
        )
        .filter(Employee.auth_user_id == auth_user_id)
        .first()
    )
    if row is None:
        return None
    return Principal(
        employee_id=row.id,
        auth_user_id=row.auth_user_id,
        email=row.email,
        role=row.role,
        department=row.department,
        is_active=row.is_active,
    )


def principal_for(employee: Employee) -> Principal:
    return Principal(
        employee_id=employee.id,
        auth_user_id=employee.auth_user_id,
        email=employee.email,
        role=employee.role,
        department=employee.department,
        is_active=employee.is_active,
    )


def require(allowed: bool, message: str = "Insufficient permissions") -> None:
    if not allowed:
        raise AccessDeniedError(message)


def shares_department(principal: Principal, department: Optional[str]) -> bool:
    # NULL departments never match, not even each other
    return principal.department is not None and department is not None and principal.department == department


# --- Employees -------------------------------------------------------------

def can_view_employee(principal: Principal, employee: Employee) -> bool:
    if principal.is_elevated or employee.id == principal.employee_id:
        return True
    return principal.is_manager and shares_department(principal, employee.department)


def scope_employees(query: Query, principal: Principal) -> Query:
    if principal.is_elevated:
        return query
    if principal.is_manager and principal.department is not None:
        return query.filter(or_(Employee.id == principal.employee_id, Employee.department == principal.department))
    return query.filter(Employee.id == principal.employee_id)


# --- Leave requests --------------------------------------------------------

def can_view_leave(principal: Principal, leave: LeaveRequest) -> bool:
    if principal.is_elevated or leave.requester_id == principal.employee_id:
        return True
    return principal.is_manager and shares_department(principal, leave.requester.department)


def can_decide_leave(principal: Principal, leave: LeaveRequest) -> bool:
    if principal.is_elevated:
        return True
    return principal.is_manager and shares_department(principal, leave.requester.department)


def is_leave_owner(principal: Principal, leave: LeaveRequest) -> bool:
    return leave.requester_id == principal.employee_id


def scoped_leave_query(db: Session, principal: Principal) -> Query:
    """Leaves joined to their requester, restricted to what the principal may read."""
    query = db.query(LeaveRequest).join(Employee, LeaveRequest.requester_id == Employee.id)
    if principal.is_elevated:
        return query
    if principal.is_manager and principal.department is not None:
        return query.filter(or_(LeaveRequest.requester_id == principal.employee_id, Employee.department == principal.department))
    return query.filter(LeaveRequest.requester_id == principal.employee_id)


def can_view_balances_of(principal: Principal, employee: Employee) -> bool:
    return can_view_employee(principal, employee)


# --- Documents -------------------------------------------------------------

def can_view_leave_document(principal: Principal, document: LeaveDocument) -> bool:
    return document.uploaded_by == principal.employee_id or can_view_leave(principal, document.leave)


def can_delete_leave_document(principal: Principal, document: LeaveDocument) -> bool:
    """Admins delete anything; uploaders delete their own (pending state checked by the caller)."""
    return principal.is_admin or document.uploaded_by == principal.employee_id


def can_view_company_document(principal: Principal, document: CompanyDocument) -> bool:
    return principal.is_elevated or document.is_public or document.uploaded_by == principal.employee_id


def scope_company_documents(query: Query, principal: Principal) -> Query:
    if principal.is_elevated:
        return query
    return query.filter(or_(CompanyDocument.is_public.is_(True), CompanyDocument.uploaded_by == principal.employee_id))
