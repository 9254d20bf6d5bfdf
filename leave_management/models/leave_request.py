from sqlalchemy import Column, Integer, String, Date, Enum, ForeignKey, DateTime, Text, JSON, CheckConstraint, DDL, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from leave_management.database import Base
import enum


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that occupy the requester's calendar
ACTIVE_STATUSES = (LeaveStatus.PENDING, LeaveStatus.APPROVED)


class LeaveRequest(Base):
    __tablename__ = "leaves"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_leaves_valid_date_range"),
        CheckConstraint("days_count > 0", name="ck_leaves_days_count_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_count = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(
        Enum(LeaveStatus, name="leave_status", values_callable=lambda statuses: [s.value for s in statuses]),
        default=LeaveStatus.PENDING,
        nullable=False,
        index=True,
    )

    approver_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    comments = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    extra = Column("metadata", JSON, nullable=True)

    # Provenance, written by the transaction that performs the change
    last_modified_at = Column(DateTime(timezone=True), nullable=True)
    last_modified_by = Column(Integer, ForeignKey("employees.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    requester = relationship("Employee", foreign_keys=[requester_id], back_populates="leaves")
    approver = relationship("Employee", foreign_keys=[approver_id])
    leave_type = relationship("LeaveType")
    documents = relationship(
        "LeaveDocument",
        back_populates="leave",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[LeaveDocument.uploaded_at.desc(), LeaveDocument.id.desc()]",
    )

    @property
    def is_pending(self) -> bool:
        return self.status == LeaveStatus.PENDING

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.start_date}..{self.end_date} {self.status.value if self.status else None}>"


# SQLite has no row locks, so the overlap rule is also enforced by triggers that run
# under the database write lock. PostgreSQL relies on the requester row lock instead.
OVERLAP_GUARD_MESSAGE = "leave_overlap"

_OVERLAP_CONDITION = (
    "EXISTS (SELECT 1 FROM leaves WHERE requester_id = NEW.requester_id"
    " {exclude_self}AND status IN ('pending', 'approved')"
    " AND start_date <= NEW.end_date AND end_date >= NEW.start_date)"
)

event.listen(
    LeaveRequest.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS trg_leaves_no_overlap_insert BEFORE INSERT ON leaves "
        "FOR EACH ROW WHEN NEW.status IN ('pending', 'approved') "
        f"BEGIN SELECT RAISE(ABORT, '{OVERLAP_GUARD_MESSAGE}') WHERE {_OVERLAP_CONDITION.format(exclude_self='')}; END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    LeaveRequest.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS trg_leaves_no_overlap_update "
        "BEFORE UPDATE OF start_date, end_date, status, requester_id ON leaves "
        "FOR EACH ROW WHEN NEW.status IN ('pending', 'approved') "
        f"BEGIN SELECT RAISE(ABORT, '{OVERLAP_GUARD_MESSAGE}') WHERE {_OVERLAP_CONDITION.format(exclude_self='AND id != NEW.id ')}; END"
    ).execute_if(dialect="sqlite"),
)
