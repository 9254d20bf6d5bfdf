"""
Leave balance ledger: per (employee, leave type, year) day counters.
"""
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import joinedload

from leave_management.core.exceptions import NotFoundError
from leave_management.core.permissions import can_view_balances_of, require, scope_employees
from leave_management.database import utcnow
from leave_management.models.employee import Employee
from leave_management.models.leave_balance import LeaveBalance
from leave_management.models.leave_type import LeaveType
from leave_management.schemas.leave import LeaveBalanceAdjust
from leave_management.services.audit import AuditService
from leave_management.services.base import BaseService

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class BalanceService(BaseService):

    def get_available_days(self, employee_id: int, leave_type_id: int, year: int) -> int:
        """allocated + carried_forward - used, or 0 when the employee has no row for that year."""
        balance = self._find(employee_id, leave_type_id, year)
        if balance is None:
            return 0
        return balance.available_days

    def increment_used_days(self, employee_id: int, leave_type_id: int, days: int, year: int) -> None:
        """
        Adds `days` to used_days in a single INSERT ... ON CONFLICT DO UPDATE, creating
        the row with zero allocation when absent. Concurrent approvals for the same
        (employee, type, year) are serialized by the database on the unique key.
        Inactive leave types are not rejected here.
        """
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Balance upsert is not supported on dialect '{dialect}'")

        table = LeaveBalance.__table__
        stmt = insert(table).values(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            year=year,
            allocated_days=0,
            used_days=days,
            carried_forward_days=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.employee_id, table.c.leave_type_id, table.c.year],
            set_={"used_days": table.c.used_days + days, "updated_at": utcnow()},
        )
        # pending ORM changes must reach the database before the raw statement
        self.db.flush()
        self.db.execute(stmt)
        self.log_info(
            "Leave balance used days incremented",
            employee_id=employee_id, leave_type_id=leave_type_id, year=year, days=days,
        )

    def initialize_employee_balances(self, employee: Employee, year: int) -> int:
        """Creates missing rows for every active leave type. Existing rows are left alone."""
        existing = {
            type_id for (type_id,) in self.db.query(LeaveBalance.leave_type_id).filter(
                LeaveBalance.employee_id == employee.id,
                LeaveBalance.year == year,
            )
        }
        created = 0
        for leave_type in self.db.query(LeaveType).filter(LeaveType.is_active.is_(True)).all():
            if leave_type.id in existing:
                continue
            self.db.add(LeaveBalance(
                employee_id=employee.id,
                leave_type_id=leave_type.id,
                year=year,
                allocated_days=leave_type.default_allocation_days,
                used_days=0,
                carried_forward_days=0,
            ))
            created += 1
        return created

    def initialize_year(self, year: int) -> Tuple[int, int]:
        """Bulk initialisation for all active employees. Returns (employees, rows created)."""
        employees = self.db.query(Employee).filter(Employee.is_active.is_(True)).all()
        created = sum(self.initialize_employee_balances(employee, year) for employee in employees)
        AuditService.log(
            self.db, self.principal,
            action="initialize_leave_balances",
            entity_type="leave_balance",
            entity_id=None,
            details={"year": year, "employees": len(employees), "created": created},
        )
        self.db.commit()
        self.log_info("Leave balances initialized", year=year, employees=len(employees), created=created)
        return len(employees), created

    def list_balances(self, employee_id: Optional[int] = None, year: Optional[int] = None) -> List[LeaveBalance]:
        query = (
            self.db.query(LeaveBalance)
            .join(Employee, LeaveBalance.employee_id == Employee.id)
            .options(joinedload(LeaveBalance.leave_type))
        )
        query = scope_employees(query, self.principal)
        if employee_id is not None:
            query = query.filter(LeaveBalance.employee_id == employee_id)
        if year is not None:
            query = query.filter(LeaveBalance.year == year)
        return query.order_by(LeaveBalance.employee_id, LeaveBalance.year.desc(), LeaveBalance.leave_type_id).all()

    def available_for(self, employee_id: Optional[int], leave_type_id: int, year: Optional[int]) -> dict:
        employee_id = employee_id or self.principal.employee_id
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee")
        require(can_view_balances_of(self.principal, employee), "You cannot view this employee's balances")
        if self.db.get(LeaveType, leave_type_id) is None:
            raise NotFoundError("Leave type")
        year = year or date.today().year
        return {
            "employee_id": employee_id,
            "leave_type_id": leave_type_id,
            "year": year,
            "available_days": self.get_available_days(employee_id, leave_type_id, year),
        }

    def adjust(self, balance_id: int, payload: LeaveBalanceAdjust) -> LeaveBalance:
        balance = self.db.get(LeaveBalance, balance_id)
        if balance is None:
            raise NotFoundError("Leave balance")
        before = {"allocated_days": balance.allocated_days, "carried_forward_days": balance.carried_forward_days}
        for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(balance, field, value)
        AuditService.log(
            self.db, self.principal,
            action="adjust_leave_balance",
            entity_type="leave_balance",
            entity_id=balance.id,
            before_state=before,
            after_state={"allocated_days": balance.allocated_days, "carried_forward_days": balance.carried_forward_days},
        )
        self.db.commit()
        self.db.refresh(balance)
        return balance

    def _find(self, employee_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        ).first()
