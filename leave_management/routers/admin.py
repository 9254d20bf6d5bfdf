from datetime import date
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional

from leave_management.core.exceptions import AccessDeniedError
from leave_management.core.limiter import limiter, ADMIN_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse, MessageOut
from leave_management.database import get_db
from leave_management.models.audit_log import AuditLog
from leave_management.models.employee import EmployeeRole
from leave_management.routers.auth_deps import require_hr_or_admin
from leave_management.schemas.auth import AdminUserCreate
from leave_management.schemas.department import DepartmentCreate, DepartmentResponse, DepartmentUpdate
from leave_management.schemas.document import ExpiryCheckResult
from leave_management.schemas.employee import EmployeeAdminUpdate, EmployeeResponse
from leave_management.schemas.leave import (
    BalanceInitializeRequest,
    BalanceInitializeResult,
    LeaveBalanceAdjust,
    LeaveBalanceResponse,
)
from leave_management.schemas.leave_type import LeaveTypeCreate, LeaveTypeResponse, LeaveTypeUpdate
from leave_management.schemas.report import AuditLogResponse
from leave_management.services.balances import BalanceService
from leave_management.services.catalog import DepartmentService, LeaveTypeService
from leave_management.services.documents import DocumentService
from leave_management.services.identity import IdentityService

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_hr_or_admin())]
)


# --- Accounts and employees --------------------------------------------------

@router.post("/users", response_model=DataResponse[EmployeeResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(ADMIN_LIMIT)
def create_user(
    request: Request,
    payload: AdminUserCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    """Create an account with an explicit role. Only admins may create admins."""
    if payload.role == EmployeeRole.ADMIN and not principal.is_admin:
        raise AccessDeniedError("Only admins can grant the admin role")
    employee = IdentityService(db, principal).signup(payload, role=payload.role)
    return {"data": employee}


@router.patch("/employees/{employee_id}", response_model=DataResponse[EmployeeResponse])
@limiter.limit(ADMIN_LIMIT)
def update_employee(
    request: Request,
    employee_id: int,
    payload: EmployeeAdminUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": IdentityService(db, principal).admin_update(employee_id, payload)}


# --- Leave types -------------------------------------------------------------

@router.post("/leave-types", response_model=DataResponse[LeaveTypeResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(ADMIN_LIMIT)
def create_leave_type(
    request: Request,
    payload: LeaveTypeCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": LeaveTypeService(db, principal).create_type(payload)}


@router.patch("/leave-types/{leave_type_id}", response_model=DataResponse[LeaveTypeResponse])
@limiter.limit(ADMIN_LIMIT)
def update_leave_type(
    request: Request,
    leave_type_id: int,
    payload: LeaveTypeUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": LeaveTypeService(db, principal).update_type(leave_type_id, payload)}


@router.delete("/leave-types/{leave_type_id}", response_model=DataResponse[MessageOut])
@limiter.limit(ADMIN_LIMIT)
def delete_leave_type(
    request: Request,
    leave_type_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    LeaveTypeService(db, principal).delete_type(leave_type_id)
    return {"data": {"message": "Leave type deleted"}}


# --- Balances ----------------------------------------------------------------

@router.post("/leave-balances/initialize", response_model=DataResponse[BalanceInitializeResult])
@limiter.limit(ADMIN_LIMIT)
def initialize_balances(
    request: Request,
    payload: BalanceInitializeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    """Creates missing balance rows for every active employee and leave type. Existing rows are kept."""
    year = payload.year or date.today().year
    employees, created = BalanceService(db, principal).initialize_year(year)
    return {"data": {"year": year, "employees": employees, "created": created}}


@router.patch("/leave-balances/{balance_id}", response_model=DataResponse[LeaveBalanceResponse])
@limiter.limit(ADMIN_LIMIT)
def adjust_balance(
    request: Request,
    balance_id: int,
    payload: LeaveBalanceAdjust,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": BalanceService(db, principal).adjust(balance_id, payload)}


# --- Departments -------------------------------------------------------------

@router.post("/departments", response_model=DataResponse[DepartmentResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(ADMIN_LIMIT)
def create_department(
    request: Request,
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": DepartmentService(db, principal).create_department(payload)}


@router.patch("/departments/{department_id}", response_model=DataResponse[DepartmentResponse])
@limiter.limit(ADMIN_LIMIT)
def update_department(
    request: Request,
    department_id: int,
    payload: DepartmentUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": DepartmentService(db, principal).update_department(department_id, payload)}


# --- Operations --------------------------------------------------------------

@router.post("/documents/check-expiry", response_model=DataResponse[ExpiryCheckResult])
@limiter.limit(ADMIN_LIMIT)
def check_document_expiry(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    return {"data": DocumentService(db, principal).check_document_expiry()}


@router.get("/audit-logs", response_model=DataResponse[List[AuditLogResponse]])
def get_audit_logs(
    db: Session = Depends(get_db),
    entity_type: Optional[str] = Query(None, description="Filter by entity type (e.g. 'leave_request')"),
    action: Optional[str] = Query(None, description="Filter by action name"),
    actor_id: Optional[int] = Query(None, description="Filter by acting employee"),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
):
    """
    Audit trail. READ-ONLY.
    """
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if action:
        query = query.filter(AuditLog.action == action)
    if actor_id:
        query = query.filter(AuditLog.actor_id == actor_id)

    return {"data": query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()}
