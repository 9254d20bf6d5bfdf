from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from leave_management.database import Base


class LeaveBalance(Base):
    """
    Day counters per (employee, leave type, year).
    Available days may go negative; no CHECK constraint guards the arithmetic.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balances_employee_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    allocated_days = Column(Integer, default=0, nullable=False)
    used_days = Column(Integer, default=0, nullable=False)
    carried_forward_days = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    employee = relationship("Employee", back_populates="balances")
    leave_type = relationship("LeaveType")

    @property
    def available_days(self) -> int:
        return (self.allocated_days or 0) + (self.carried_forward_days or 0) - (self.used_days or 0)
