"""
Employee Model.
The single authoritative identity-owner table: every leave, balance and
document row references an employee.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from leave_management.database import Base


class EmployeeRole(str, enum.Enum):
    """
    Roles, least to most privileged.

    - EMPLOYEE: self-service
    - MANAGER: decides leave for requesters in the same department
    - HR: organisation-wide read, approvals, catalog maintenance
    - ADMIN: everything HR can do, plus cross-department document management
    """
    EMPLOYEE = "employee"
    MANAGER = "manager"
    HR = "hr"
    ADMIN = "admin"


ELEVATED_ROLES = (EmployeeRole.HR, EmployeeRole.ADMIN)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String(36), ForeignKey("auth_users.id"), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    role = Column(
        Enum(EmployeeRole, name="user_role", values_callable=lambda roles: [r.value for r in roles]),
        default=EmployeeRole.EMPLOYEE,
        nullable=False,
        index=True,
    )
    department = Column(String(100), nullable=True, index=True)
    photo_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    extra = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    auth_user = relationship("AuthUser", back_populates="employee")
    leaves = relationship("LeaveRequest", back_populates="requester", foreign_keys="LeaveRequest.requester_id")
    balances = relationship("LeaveBalance", back_populates="employee")
    notifications = relationship("Notification", back_populates="employee")

    def __repr__(self):
        return f"<Employee {self.id}: {self.email} ({self.role.value if self.role else None})>"

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES
