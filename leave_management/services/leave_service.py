"""
Leave request lifecycle.

    pending --approve--> approved   (terminal)
    pending --reject---> rejected   (terminal)
    pending --cancel---> cancelled  (terminal, requester only)

Every mutation runs as one transaction: guards, the state change, provenance
fields, balance upsert, audit entry and notification commit together.
"""
from collections import Counter
from contextlib import contextmanager
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from leave_management.core.config import settings
from leave_management.core.exceptions import (
    InsufficientBalanceError,
    InvalidStatusError,
    NotFoundError,
    OverlappingLeaveError,
    ValidationError,
)
from leave_management.core.permissions import (
    can_decide_leave,
    can_view_leave,
    is_leave_owner,
    require,
    scoped_leave_query,
)
from leave_management.database import utcnow
from leave_management.models.employee import Employee
from leave_management.models.leave_request import ACTIVE_STATUSES, OVERLAP_GUARD_MESSAGE, LeaveRequest, LeaveStatus
from leave_management.models.leave_type import LeaveType
from leave_management.schemas.leave import LeaveRequestCreate, LeaveRequestUpdate
from leave_management.services.audit import AuditService
from leave_management.services.balances import BalanceService
from leave_management.services.base import BaseService
from leave_management.services.notification import NotificationService
from leave_management.services.org_statistics import compute_summary
from leave_management.services.storage import get_storage, LEAVE_DOCUMENTS_BUCKET


def count_business_days(start: date, end: date) -> int:
    """Monday-Friday days in the inclusive range."""
    if end < start:
        return 0
    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    days = full_weeks * 5
    for offset in range(remainder):
        if (start + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            days += 1
    return days


def _leave_state(leave: LeaveRequest) -> dict:
    return {
        "status": leave.status,
        "leave_type_id": leave.leave_type_id,
        "start_date": leave.start_date,
        "end_date": leave.end_date,
        "days_count": leave.days_count,
        "reason": leave.reason,
        "approver_id": leave.approver_id,
        "approved_at": leave.approved_at,
    }


class LeaveService(BaseService):

    # --- Reads -------------------------------------------------------------

    def list_leaves(
        self,
        status: Optional[LeaveStatus] = None,
        requester_id: Optional[int] = None,
        approver_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[LeaveRequest], int]:
        query = scoped_leave_query(self.db, self.principal)
        if status is not None:
            query = query.filter(LeaveRequest.status == status)
        if requester_id is not None:
            query = query.filter(LeaveRequest.requester_id == requester_id)
        if approver_id is not None:
            query = query.filter(LeaveRequest.approver_id == approver_id)

        total = query.count()
        leaves = (
            query.options(joinedload(LeaveRequest.requester), joinedload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return leaves, total

    def get_leave(self, leave_id: int) -> LeaveRequest:
        leave = self._load(leave_id)
        require(can_view_leave(self.principal, leave), "You cannot view this leave request")
        return leave

    def team_calendar(self, start: date, end: date, department: Optional[str] = None) -> List[dict]:
        """Approved and pending leaves intersecting [start, end], within the caller's visibility."""
        if end < start:
            raise ValidationError("Invalid calendar window", fields={"end_date": "must be on or after start_date"})
        query = scoped_leave_query(self.db, self.principal).filter(
            LeaveRequest.status.in_(ACTIVE_STATUSES),
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        )
        if department:
            query = query.filter(Employee.department == department)
        leaves = query.options(joinedload(LeaveRequest.leave_type)).order_by(LeaveRequest.start_date, LeaveRequest.id).all()
        return [
            {
                "leave_id": leave.id,
                "employee_id": leave.requester_id,
                "employee_name": leave.requester.name,
                "department": leave.requester.department,
                "leave_type": leave.leave_type.name,
                "start_date": leave.start_date,
                "end_date": leave.end_date,
                "days_count": leave.days_count,
                "status": leave.status,
            }
            for leave in leaves
        ]

    def statistics(self, year: Optional[int] = None) -> dict:
        year = year or date.today().year
        if self.principal.is_elevated:
            return {"scope": "organization", "year": year, "stats": compute_summary(self.db, year)}

        year_filter = (
            LeaveRequest.requester_id == self.principal.employee_id,
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )
        by_status = Counter({
            status.value: count
            for status, count in self.db.query(LeaveRequest.status, func.count(LeaveRequest.id))
            .filter(*year_filter).group_by(LeaveRequest.status)
        })
        days_taken = self.db.query(func.coalesce(func.sum(LeaveRequest.days_count), 0)).filter(
            *year_filter, LeaveRequest.status == LeaveStatus.APPROVED
        ).scalar()
        balances = BalanceService(self.db, self.principal).list_balances(
            employee_id=self.principal.employee_id, year=year
        )
        return {
            "scope": "personal",
            "year": year,
            "stats": {
                "total_requests": sum(by_status.values()),
                "by_status": {status.value: by_status.get(status.value, 0) for status in LeaveStatus},
                "total_days_taken": int(days_taken or 0),
                "balances": [
                    {
                        "leave_type_id": balance.leave_type_id,
                        "leave_type": balance.leave_type.name,
                        "allocated_days": balance.allocated_days,
                        "carried_forward_days": balance.carried_forward_days,
                        "used_days": balance.used_days,
                        "available_days": balance.available_days,
                    }
                    for balance in balances
                ],
            },
        }

    # --- Transitions -------------------------------------------------------

    def create_leave(self, payload: LeaveRequestCreate) -> LeaveRequest:
        requester_id = self.principal.employee_id
        self._active_leave_type(payload.leave_type_id)
        days = self._validated_days(payload.start_date, payload.end_date)

        self._lock_requester(requester_id)
        self._assert_no_overlap(requester_id, payload.start_date, payload.end_date)

        if settings.enforce_leave_balance:
            available = BalanceService(self.db).get_available_days(
                requester_id, payload.leave_type_id, payload.start_date.year
            )
            if days > available:
                raise InsufficientBalanceError(days, available)

        leave = LeaveRequest(
            requester_id=requester_id,
            leave_type_id=payload.leave_type_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            days_count=days,
            reason=payload.reason,
            status=LeaveStatus.PENDING,
        )
        self.db.add(leave)
        with self._overlap_guard(requester_id, payload.start_date, payload.end_date):
            self.db.flush()
        AuditService.log(
            self.db, self.principal,
            action="create_leave",
            entity_type="leave_request",
            entity_id=leave.id,
            after_state=_leave_state(leave),
        )
        self.db.commit()
        self.db.refresh(leave)
        self.log_info("Leave request created", leave_id=leave.id, days=days)
        return leave

    def update_leave(self, leave_id: int, payload: LeaveRequestUpdate) -> LeaveRequest:
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("status") == LeaveStatus.CANCELLED.value:
            if len(changes) > 1:
                raise ValidationError(
                    "Cancellation cannot be combined with other changes",
                    fields={"status": "send cancellation on its own"},
                )
            return self.cancel_leave(leave_id)
        changes.pop("status", None)

        leave = self._load_for_owner(leave_id, action="edit")
        before = _leave_state(leave)

        values = {
            "leave_type_id": changes.get("leave_type_id") or leave.leave_type_id,
            "start_date": changes.get("start_date") or leave.start_date,
            "end_date": changes.get("end_date") or leave.end_date,
            "reason": changes["reason"] if changes.get("reason") is not None else leave.reason,
        }
        if values["leave_type_id"] != leave.leave_type_id:
            self._active_leave_type(values["leave_type_id"])
        values["days_count"] = self._validated_days(values["start_date"], values["end_date"])

        if all(getattr(leave, field) == value for field, value in values.items()):
            return leave

        self._lock_requester(leave.requester_id)
        self._assert_no_overlap(leave.requester_id, values["start_date"], values["end_date"], exclude_id=leave.id)

        values.update(last_modified_at=utcnow(), last_modified_by=self.actor_id)
        with self._overlap_guard(leave.requester_id, values["start_date"], values["end_date"], exclude_id=leave.id):
            self._transition_pending(leave, "edit", values)
        AuditService.log(
            self.db, self.principal,
            action="update_leave",
            entity_type="leave_request",
            entity_id=leave.id,
            before_state=before,
            after_state=_leave_state(leave),
        )
        self.db.commit()
        self.db.refresh(leave)
        return leave

    def cancel_leave(self, leave_id: int) -> LeaveRequest:
        leave = self._load_for_owner(leave_id, action="cancel")
        before = _leave_state(leave)
        self._transition_pending(leave, "cancel", {
            "status": LeaveStatus.CANCELLED,
            "last_modified_at": utcnow(),
            "last_modified_by": self.actor_id,
        })
        AuditService.log(
            self.db, self.principal,
            action="cancel_leave",
            entity_type="leave_request",
            entity_id=leave.id,
            before_state=before,
            after_state=_leave_state(leave),
        )
        self.db.commit()
        self.db.refresh(leave)
        self.log_info("Leave request cancelled", leave_id=leave.id)
        return leave

    def delete_leave(self, leave_id: int) -> None:
        leave = self._load_for_owner(leave_id, action="delete")
        storage_paths = [document.storage_path for document in leave.documents]
        # Claims the row so a decision racing the deletion cannot commit first
        self._transition_pending(leave, "delete", {"last_modified_at": utcnow(), "last_modified_by": self.actor_id})
        AuditService.log(
            self.db, self.principal,
            action="delete_leave",
            entity_type="leave_request",
            entity_id=leave.id,
            before_state=_leave_state(leave),
            details={"documents": len(storage_paths)},
        )
        self.db.delete(leave)
        self.db.commit()

        storage = get_storage()
        for path in storage_paths:
            storage.remove(LEAVE_DOCUMENTS_BUCKET, path)
        self.log_info("Leave request deleted", leave_id=leave_id, documents=len(storage_paths))

    def decide(self, leave_id: int, action: LeaveStatus, comments: Optional[str] = None) -> LeaveRequest:
        """
        Approve or reject. Approval charges the balance of the start date's year.

        The status change is a conditional UPDATE on `status = 'pending'`; of two
        concurrent decisions only the one that claims the row charges the balance.
        """
        if action not in (LeaveStatus.APPROVED, LeaveStatus.REJECTED):
            raise ValidationError("Invalid action", fields={"action": "must be approved or rejected"})
        verb = "approve" if action == LeaveStatus.APPROVED else "reject"

        leave = self.db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()
        if leave is None:
            raise NotFoundError("Leave request")
        require(
            can_decide_leave(self.principal, leave),
            "Only a manager in the requester's department or HR/admin can decide this request",
        )
        if not leave.is_pending:
            raise InvalidStatusError(leave.status.value, verb)

        before = _leave_state(leave)
        self._transition_pending(leave, verb, {
            "status": action,
            "approver_id": self.actor_id,
            "approved_at": utcnow(),
            "comments": comments,
        })

        if action == LeaveStatus.APPROVED:
            BalanceService(self.db, self.principal).increment_used_days(
                leave.requester_id, leave.leave_type_id, leave.days_count, leave.start_date.year
            )

        AuditService.log(
            self.db, self.principal,
            action=f"{verb}_leave",
            entity_type="leave_request",
            entity_id=leave.id,
            before_state=before,
            after_state=_leave_state(leave),
            details={"requester_id": leave.requester_id, "comments": comments},
        )
        NotificationService.notify_leave_decision(self.db, leave)

        self.db.commit()
        self.db.refresh(leave)
        self.log_info("Leave request decided", leave_id=leave.id, status=leave.status.value)
        return leave

    # --- Guards ------------------------------------------------------------

    def _transition_pending(self, leave: LeaveRequest, action: str, values: dict) -> None:
        """
        Writes `values` only if the row is still pending. A request decided or cancelled
        by another transaction since it was loaded raises InvalidStatusError; a deleted
        one raises NotFoundError.
        """
        leave_id = leave.id
        claimed = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == leave_id, LeaveRequest.status == LeaveStatus.PENDING)
            .update(values, synchronize_session=False)
        )
        if not claimed:
            # rollback expires `leave`; it may no longer exist
            self.db.rollback()
            current = self.db.query(LeaveRequest.status).filter(LeaveRequest.id == leave_id).scalar()
            self.log_warning("Leave request changed concurrently", leave_id=leave_id, action=action)
            if current is None:
                raise NotFoundError("Leave request")
            raise InvalidStatusError(current.value, action)
        self.db.expire(leave)

    @contextmanager
    def _overlap_guard(self, requester_id: int, start: date, end: date, exclude_id: Optional[int] = None):
        """Turns the database overlap trigger into OverlappingLeaveError."""
        try:
            yield
        except IntegrityError as exc:
            if OVERLAP_GUARD_MESSAGE not in str(exc.orig):
                raise
            self.db.rollback()
            self._assert_no_overlap(requester_id, start, end, exclude_id=exclude_id)
            raise OverlappingLeaveError([]) from exc

    def _load(self, leave_id: int) -> LeaveRequest:
        leave = (
            self.db.query(LeaveRequest)
            .options(joinedload(LeaveRequest.requester), joinedload(LeaveRequest.leave_type))
            .filter(LeaveRequest.id == leave_id)
            .first()
        )
        if leave is None:
            raise NotFoundError("Leave request")
        return leave

    def _load_for_owner(self, leave_id: int, action: str) -> LeaveRequest:
        leave = self._load(leave_id)
        require(is_leave_owner(self.principal, leave), f"Only the requester can {action} this leave request")
        if not leave.is_pending:
            raise InvalidStatusError(leave.status.value, action)
        return leave

    def _active_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise ValidationError(
                "Leave type is not available",
                fields={"leave_type_id": "must reference an active leave type"},
            )
        return leave_type

    @staticmethod
    def _validated_days(start: date, end: date) -> int:
        if end < start:
            raise ValidationError("Invalid date range", fields={"end_date": "must be on or after start_date"})
        days = count_business_days(start, end)
        if days <= 0:
            raise ValidationError("Leave must include at least one working day", fields={"start_date": "range has no working days"})
        return days

    def _lock_requester(self, requester_id: int) -> None:
        # Serializes concurrent submissions of one requester (row lock; SQLite relies on the overlap triggers)
        self.db.query(Employee.id).filter(Employee.id == requester_id).with_for_update().first()

    def _assert_no_overlap(self, requester_id: int, start: date, end: date, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(LeaveRequest.id).filter(
            LeaveRequest.requester_id == requester_id,
            LeaveRequest.status.in_(ACTIVE_STATUSES),
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        )
        if exclude_id is not None:
            query = query.filter(LeaveRequest.id != exclude_id)
        conflicts = [row.id for row in query.all()]
        if conflicts:
            self.log_warning("Overlapping leave request rejected", requester_id=requester_id, conflicts=conflicts)
            raise OverlappingLeaveError(conflicts)
