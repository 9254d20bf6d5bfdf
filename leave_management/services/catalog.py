"""
Reference data maintained by HR/admin: leave types and departments.
"""
from typing import List

from sqlalchemy import func

from leave_management.core.exceptions import ConstraintViolationError, NotFoundError
from leave_management.models.department import Department
from leave_management.models.leave_balance import LeaveBalance
from leave_management.models.leave_request import LeaveRequest
from leave_management.models.leave_type import LeaveType
from leave_management.schemas.department import DepartmentCreate, DepartmentUpdate
from leave_management.schemas.leave_type import LeaveTypeCreate, LeaveTypeUpdate
from leave_management.services.audit import AuditService
from leave_management.services.base import BaseService


def _leave_type_state(leave_type: LeaveType) -> dict:
    return {
        "name": leave_type.name,
        "description": leave_type.description,
        "default_allocation_days": leave_type.default_allocation_days,
        "accrual_rules": leave_type.accrual_rules,
        "is_active": leave_type.is_active,
    }


class LeaveTypeService(BaseService):

    def list_types(self, include_inactive: bool = False) -> List[LeaveType]:
        query = self.db.query(LeaveType)
        if not include_inactive:
            query = query.filter(LeaveType.is_active.is_(True))
        return query.order_by(LeaveType.name).all()

    def get_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("Leave type")
        return leave_type

    def create_type(self, payload: LeaveTypeCreate) -> LeaveType:
        self._assert_unique_name(payload.name)
        leave_type = LeaveType(**payload.model_dump())
        self.db.add(leave_type)
        self.db.flush()
        AuditService.log(
            self.db, self.principal,
            action="create_leave_type",
            entity_type="leave_type",
            entity_id=leave_type.id,
            after_state=_leave_type_state(leave_type),
        )
        self.db.commit()
        self.db.refresh(leave_type)
        self.log_info("Leave type created", leave_type_id=leave_type.id)
        return leave_type

    def update_type(self, leave_type_id: int, payload: LeaveTypeUpdate) -> LeaveType:
        leave_type = self.get_type(leave_type_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != leave_type.name:
            self._assert_unique_name(changes["name"])

        before = _leave_type_state(leave_type)
        for field, value in changes.items():
            # name, allocation and active flag are NOT NULL
            if value is None and field in ("name", "default_allocation_days", "is_active"):
                continue
            setattr(leave_type, field, value)
        AuditService.log(
            self.db, self.principal,
            action="update_leave_type",
            entity_type="leave_type",
            entity_id=leave_type.id,
            before_state=before,
            after_state=_leave_type_state(leave_type),
        )
        self.db.commit()
        self.db.refresh(leave_type)
        return leave_type

    def delete_type(self, leave_type_id: int) -> None:
        """Hard delete for unused types; referenced types must be deactivated instead."""
        leave_type = self.get_type(leave_type_id)
        in_use = (
            self.db.query(func.count(LeaveRequest.id)).filter(LeaveRequest.leave_type_id == leave_type_id).scalar()
            + self.db.query(func.count(LeaveBalance.id)).filter(LeaveBalance.leave_type_id == leave_type_id).scalar()
        )
        if in_use:
            raise ConstraintViolationError(
                "Leave type is referenced by requests or balances; deactivate it instead",
                details={"references": in_use},
            )
        AuditService.log(
            self.db, self.principal,
            action="delete_leave_type",
            entity_type="leave_type",
            entity_id=leave_type.id,
            before_state=_leave_type_state(leave_type),
        )
        self.db.delete(leave_type)
        self.db.commit()

    def _assert_unique_name(self, name: str) -> None:
        exists = self.db.query(LeaveType.id).filter(func.lower(LeaveType.name) == name.lower()).first()
        if exists:
            raise ConstraintViolationError(
                f"Leave type '{name}' already exists",
                details={"fields": {"name": "already exists"}},
            )


class DepartmentService(BaseService):

    def list_departments(self, include_inactive: bool = False) -> List[Department]:
        query = self.db.query(Department)
        if not include_inactive:
            query = query.filter(Department.is_active.is_(True))
        return query.order_by(Department.name).all()

    def create_department(self, payload: DepartmentCreate) -> Department:
        self._assert_unique_name(payload.name)
        department = Department(**payload.model_dump())
        self.db.add(department)
        self.db.flush()
        AuditService.log(
            self.db, self.principal,
            action="create_department",
            entity_type="department",
            entity_id=department.id,
            details={"name": department.name},
        )
        self.db.commit()
        self.db.refresh(department)
        return department

    def update_department(self, department_id: int, payload: DepartmentUpdate) -> Department:
        department = self.db.get(Department, department_id)
        if department is None:
            raise NotFoundError("Department")
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != department.name:
            self._assert_unique_name(changes["name"])
        for field, value in changes.items():
            if value is None and field in ("name", "is_active"):
                continue
            setattr(department, field, value)
        AuditService.log(
            self.db, self.principal,
            action="update_department",
            entity_type="department",
            entity_id=department.id,
            details=changes,
        )
        self.db.commit()
        self.db.refresh(department)
        return department

    def _assert_unique_name(self, name: str) -> None:
        exists = self.db.query(Department.id).filter(func.lower(Department.name) == name.lower()).first()
        if exists:
            raise ConstraintViolationError(
                f"Department '{name}' already exists",
                details={"fields": {"name": "already exists"}},
            )
