"""
Organisation statistics snapshot.

The snapshot is recomputed from employees, leave requests and leave types and
stored as one JSON row. Commits that touch those tables mark it stale; the
refresher thread picks up stale marks after a debounce and recomputes in its
own session. Readers never wait for a refresh.
"""
import logging
import threading
from collections import Counter, defaultdict
from datetime import date, timedelta
from typing import Callable, Optional

from sqlalchemy import event, func
from sqlalchemy.orm import Session

from leave_management.core.config import settings
from leave_management.database import as_utc, utcnow
from leave_management.models.employee import Employee, EmployeeRole
from leave_management.models.leave_request import LeaveRequest, LeaveStatus
from leave_management.models.leave_type import LeaveType
from leave_management.models.org_statistics import OrgStatisticsSnapshot, SNAPSHOT_ID

logger = logging.getLogger(__name__)

OVERDUE_PENDING_HOURS = 48
TOP_REQUESTERS = 10
_DIRTY_FLAG = "org_statistics_dirty"
_TRACKED_MODELS = (Employee, LeaveRequest, LeaveType)


def _year_bounds(year: int):
    return date(year, 1, 1), date(year, 12, 31)


def compute_summary(db: Session, year: int) -> dict:
    start, end = _year_bounds(year)
    in_year = (LeaveRequest.start_date >= start, LeaveRequest.start_date <= end)

    by_status = dict(
        db.query(LeaveRequest.status, func.count(LeaveRequest.id))
        .filter(*in_year)
        .group_by(LeaveRequest.status)
        .all()
    )
    days_taken = db.query(func.coalesce(func.sum(LeaveRequest.days_count), 0)).filter(
        *in_year, LeaveRequest.status == LeaveStatus.APPROVED
    ).scalar()
    by_type = (
        db.query(LeaveType.name, func.count(LeaveRequest.id), func.coalesce(func.sum(LeaveRequest.days_count), 0))
        .join(LeaveRequest, LeaveRequest.leave_type_id == LeaveType.id)
        .filter(*in_year, LeaveRequest.status == LeaveStatus.APPROVED)
        .group_by(LeaveType.name)
        .all()
    )
    return {
        "total_employees": db.query(func.count(Employee.id)).filter(Employee.is_active.is_(True)).scalar(),
        "total_leaves_pending": by_status.get(LeaveStatus.PENDING, 0),
        "total_leaves_approved": by_status.get(LeaveStatus.APPROVED, 0),
        "total_days_taken": int(days_taken or 0),
        "by_leave_type": {name: {"count": count, "days": int(days)} for name, count, days in by_type},
    }


def compute_org_statistics(db: Session, year: Optional[int] = None) -> dict:
    year = year or date.today().year
    start, end = _year_bounds(year)
    now = utcnow()

    employees = db.query(Employee).all()
    leaves = (
        db.query(LeaveRequest)
        .filter(LeaveRequest.start_date >= start, LeaveRequest.start_date <= end)
        .all()
    )
    leave_types = db.query(LeaveType).filter(LeaveType.is_active.is_(True)).order_by(LeaveType.name).all()
    employees_by_id = {employee.id: employee for employee in employees}
    approved = [leave for leave in leaves if leave.status == LeaveStatus.APPROVED]

    # employees
    role_counts = Counter(employee.role.value for employee in employees)
    employee_stats = {
        "total": len(employees),
        "active": sum(1 for employee in employees if employee.is_active),
        "inactive": sum(1 for employee in employees if not employee.is_active),
        "by_role": {role.value: role_counts.get(role.value, 0) for role in EmployeeRole},
    }

    departments = defaultdict(lambda: {"employees": 0, "managers": []})
    for employee in employees:
        if not employee.is_active:
            continue
        entry = departments[employee.department or "Unassigned"]
        entry["employees"] += 1
        if employee.role == EmployeeRole.MANAGER:
            entry["managers"].append(employee.name)

    # leaves in the year
    status_counts = Counter(leave.status.value for leave in leaves)
    current_year_leave_stats = {
        "by_status": {status.value: status_counts.get(status.value, 0) for status in LeaveStatus},
        "total_requests": len(leaves),
        "total_days_requested": sum(leave.days_count for leave in leaves),
        "total_days_approved": sum(leave.days_count for leave in approved),
    }

    leave_type_stats = {}
    for leave_type in leave_types:
        of_type = [leave for leave in leaves if leave.leave_type_id == leave_type.id]
        approved_of_type = [leave for leave in of_type if leave.status == LeaveStatus.APPROVED]
        approved_days = sum(leave.days_count for leave in approved_of_type)
        leave_type_stats[leave_type.name] = {
            "requests": len(of_type),
            "approved": len(approved_of_type),
            "approved_days": approved_days,
            "average_days": round(approved_days / len(approved_of_type), 2) if approved_of_type else 0,
        }

    monthly_trends = {}
    for month in range(1, 13):
        of_month = [leave for leave in leaves if leave.start_date.month == month]
        approved_of_month = [leave for leave in of_month if leave.status == LeaveStatus.APPROVED]
        monthly_trends[f"{year}-{month:02d}"] = {
            "requests": len(of_month),
            "approved": len(approved_of_month),
            "approved_days": sum(leave.days_count for leave in approved_of_month),
        }

    days_by_requester = Counter()
    for leave in approved:
        days_by_requester[leave.requester_id] += leave.days_count
    top_requesters = [
        {
            "employee_id": employee_id,
            "name": employees_by_id[employee_id].name,
            "department": employees_by_id[employee_id].department,
            "approved_days": days,
        }
        for employee_id, days in days_by_requester.most_common(TOP_REQUESTERS)
    ]

    department_leave_stats = defaultdict(lambda: {"requests": 0, "approved_days": 0})
    for leave in leaves:
        # active employees with a department only
        requester = employees_by_id.get(leave.requester_id)
        if requester is None or not requester.is_active or not requester.department:
            continue
        entry = department_leave_stats[requester.department]
        entry["requests"] += 1
        if leave.status == LeaveStatus.APPROVED:
            entry["approved_days"] += leave.days_count

    return {
        "summary": compute_summary(db, year),
        "employee_stats": employee_stats,
        "department_stats": dict(departments),
        "current_year_leave_stats": current_year_leave_stats,
        "leave_type_stats": leave_type_stats,
        "monthly_trends": monthly_trends,
        "top_requesters": top_requesters,
        "department_leave_stats": dict(department_leave_stats),
        "approval_metrics": _approval_metrics(leaves, now),
    }


def _approval_metrics(leaves, now) -> dict:
    decided = [
        leave for leave in leaves
        if leave.status in (LeaveStatus.APPROVED, LeaveStatus.REJECTED) and leave.approved_at and leave.created_at
    ]
    approved_count = sum(1 for leave in decided if leave.status == LeaveStatus.APPROVED)
    hours = [
        (as_utc(leave.approved_at) - as_utc(leave.created_at)).total_seconds() / 3600
        for leave in decided
    ]
    overdue_before = now - timedelta(hours=OVERDUE_PENDING_HOURS)
    overdue = sum(
        1 for leave in leaves
        if leave.status == LeaveStatus.PENDING and leave.created_at and as_utc(leave.created_at) < overdue_before
    )
    return {
        "decided_requests": len(decided),
        "approved": approved_count,
        "rejected": len(decided) - approved_count,
        "approval_rate": round(approved_count * 100 / len(decided), 2) if decided else 0,
        "avg_approval_time_hours": round(sum(hours) / len(hours), 2) if hours else 0,
        "overdue_pending_requests": overdue,
    }


def refresh_snapshot(db: Session, year: Optional[int] = None) -> OrgStatisticsSnapshot:
    year = year or date.today().year
    payload = compute_org_statistics(db, year)
    snapshot = db.get(OrgStatisticsSnapshot, SNAPSHOT_ID)
    if snapshot is None:
        snapshot = OrgStatisticsSnapshot(id=SNAPSHOT_ID)
        db.add(snapshot)
    snapshot.year = year
    snapshot.payload = payload
    snapshot.last_refreshed = utcnow()
    db.commit()
    db.refresh(snapshot)
    logger.info(f"Organisation statistics refreshed for {year}")
    return snapshot


def read_snapshot(db: Session) -> OrgStatisticsSnapshot:
    """Returns the stored snapshot, computing it once when none exists yet."""
    snapshot = db.get(OrgStatisticsSnapshot, SNAPSHOT_ID)
    if snapshot is None:
        snapshot = refresher.refresh_now(db)
    return snapshot


class OrgStatisticsRefresher:
    """
    Coalesces stale marks and recomputes the snapshot on a daemon thread.
    In manual mode `start` is never called and only `refresh_now` recomputes.
    """

    def __init__(self, debounce_seconds: float):
        self.debounce_seconds = debounce_seconds
        self._stale = threading.Event()
        self._stop = threading.Event()
        self._refresh_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._session_factory: Optional[Callable[[], Session]] = None

    @property
    def is_stale(self) -> bool:
        return self._stale.is_set()

    def mark_stale(self) -> None:
        self._stale.set()

    def start(self, session_factory: Callable[[], Session]) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._session_factory = session_factory
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="org-statistics-refresher", daemon=True)
        self._thread.start()
        logger.info("Organisation statistics refresher started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        # wake the loop if it is waiting for work
        self._stale.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._stale.clear()
        logger.info("Organisation statistics refresher stopped")

    def refresh_now(self, db: Optional[Session] = None) -> OrgStatisticsSnapshot:
        with self._refresh_lock:
            self._stale.clear()
            if db is not None:
                return refresh_snapshot(db)
            session = self._session_factory()
            try:
                return refresh_snapshot(session)
            finally:
                session.close()

    def _run(self) -> None:
        while not self._stop.is_set():
            self._stale.wait()
            if self._stop.is_set():
                break
            # absorb bursts of writes into one recompute
            if self._stop.wait(self.debounce_seconds):
                break
            try:
                self.refresh_now()
            except Exception:
                logger.exception("Organisation statistics refresh failed")
                self.mark_stale()
                self._stop.wait(self.debounce_seconds)


refresher = OrgStatisticsRefresher(settings.stats_refresh_debounce_seconds)


@event.listens_for(Session, "after_flush")
def _track_statistics_changes(session, flush_context):
    for obj in (*session.new, *session.dirty, *session.deleted):
        if isinstance(obj, _TRACKED_MODELS):
            session.info[_DIRTY_FLAG] = True
            return


@event.listens_for(Session, "do_orm_execute")
def _track_bulk_statistics_changes(orm_execute_state):
    # conditional UPDATE / DELETE statements bypass the flush
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and issubclass(mapper.class_, _TRACKED_MODELS):
        orm_execute_state.session.info[_DIRTY_FLAG] = True


@event.listens_for(Session, "after_commit")
def _mark_statistics_stale(session):
    if session.info.pop(_DIRTY_FLAG, False):
        refresher.mark_stale()


@event.listens_for(Session, "after_rollback")
def _discard_statistics_changes(session):
    session.info.pop(_DIRTY_FLAG, None)
