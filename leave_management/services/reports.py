"""
On-demand reports over leave requests and balances. Each report takes the same
filters (date range, department, leave type) and returns a JSON-ready dict.
"""
from collections import defaultdict
from datetime import date
from typing import Callable, Dict

from sqlalchemy.orm import joinedload

from leave_management.core.exceptions import InvalidReportTypeError, ValidationError
from leave_management.database import utcnow
from leave_management.models.employee import Employee
from leave_management.models.leave_balance import LeaveBalance
from leave_management.models.leave_request import LeaveRequest, LeaveStatus
from leave_management.schemas.report import ReportFilters
from leave_management.services.base import BaseService


class ReportService(BaseService):

    def generate(self, report_type: str, filters: ReportFilters) -> dict:
        generators: Dict[str, Callable[[ReportFilters], dict]] = {
            "leave-usage": self.leave_usage,
            "leave-by-type": self.leave_by_type,
            "leave-by-department": self.leave_by_department,
            "leave-trends": self.leave_trends,
            "employee-balances": self.employee_balances,
        }
        generator = generators.get(report_type)
        if generator is None:
            raise InvalidReportTypeError(report_type, sorted(generators))
        if filters.start_date and filters.end_date and filters.end_date < filters.start_date:
            raise ValidationError("Invalid report window", fields={"end_date": "must be on or after start_date"})

        result = generator(filters)
        self.log_info("Report generated", report_type=report_type)
        return {
            "report_type": report_type,
            "filters": filters,
            "generated_at": utcnow(),
            "result": result,
        }

    def leave_usage(self, filters: ReportFilters) -> dict:
        leaves = self._leaves(filters, (LeaveStatus.APPROVED, LeaveStatus.PENDING))
        approved_days = sum(leave.days_count for leave in leaves if leave.status == LeaveStatus.APPROVED)
        pending_days = sum(leave.days_count for leave in leaves if leave.status == LeaveStatus.PENDING)
        return {
            "total_requests": len(leaves),
            "total_days": approved_days + pending_days,
            "approved_days": approved_days,
            "pending_days": pending_days,
            "requests": [
                {
                    "id": leave.id,
                    "employee": leave.requester.name,
                    "department": leave.requester.department,
                    "leave_type": leave.leave_type.name,
                    "start_date": leave.start_date.isoformat(),
                    "end_date": leave.end_date.isoformat(),
                    "days": leave.days_count,
                    "status": leave.status.value,
                }
                for leave in leaves
            ],
        }

    def leave_by_type(self, filters: ReportFilters) -> dict:
        return self._grouped(filters, lambda leave: leave.leave_type.name)

    def leave_by_department(self, filters: ReportFilters) -> dict:
        return self._grouped(filters, lambda leave: leave.requester.department or "Unassigned")

    def leave_trends(self, filters: ReportFilters) -> dict:
        grouped = self._grouped(filters, lambda leave: leave.start_date.strftime("%Y-%m"))
        return dict(sorted(grouped.items()))

    def employee_balances(self, filters: ReportFilters) -> dict:
        year = filters.start_date.year if filters.start_date else date.today().year
        query = self.db.query(Employee).filter(Employee.is_active.is_(True))
        if filters.department:
            query = query.filter(Employee.department == filters.department)
        employees = query.order_by(Employee.name, Employee.id).all()

        balances = defaultdict(list)
        balance_query = (
            self.db.query(LeaveBalance)
            .options(joinedload(LeaveBalance.leave_type))
            .filter(LeaveBalance.year == year, LeaveBalance.employee_id.in_([e.id for e in employees]))
        )
        if filters.leave_type_id:
            balance_query = balance_query.filter(LeaveBalance.leave_type_id == filters.leave_type_id)
        for balance in balance_query.order_by(LeaveBalance.leave_type_id):
            balances[balance.employee_id].append({
                "leave_type": balance.leave_type.name,
                "allocated": balance.allocated_days + balance.carried_forward_days,
                "used": balance.used_days,
                "remaining": balance.available_days,
            })

        return {
            "year": year,
            "employees": [
                {
                    "employee_id": employee.id,
                    "name": employee.name,
                    "department": employee.department,
                    "balances": balances.get(employee.id, []),
                }
                for employee in employees
            ],
        }

    def _grouped(self, filters: ReportFilters, key: Callable[[LeaveRequest], str]) -> dict:
        groups = defaultdict(lambda: {"count": 0, "days": 0})
        for leave in self._leaves(filters, (LeaveStatus.APPROVED,)):
            group = groups[key(leave)]
            group["count"] += 1
            group["days"] += leave.days_count
        return dict(groups)

    def _leaves(self, filters: ReportFilters, statuses) -> list:
        query = (
            self.db.query(LeaveRequest)
            .join(Employee, LeaveRequest.requester_id == Employee.id)
            .options(joinedload(LeaveRequest.requester), joinedload(LeaveRequest.leave_type))
            .filter(LeaveRequest.status.in_(statuses))
        )
        if filters.start_date:
            query = query.filter(LeaveRequest.end_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(LeaveRequest.start_date <= filters.end_date)
        if filters.department:
            query = query.filter(Employee.department == filters.department)
        if filters.leave_type_id:
            query = query.filter(LeaveRequest.leave_type_id == filters.leave_type_id)
        return query.order_by(LeaveRequest.start_date, LeaveRequest.id).all()
