from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, CheckConstraint
from sqlalchemy.sql import func
from leave_management.database import Base


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        CheckConstraint("default_allocation_days >= 0", name="ck_leave_types_allocation_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    default_allocation_days = Column(Integer, default=0, nullable=False)
    accrual_rules = Column(JSON, nullable=True)  # opaque, e.g. {"accrual_type": "yearly", "max_carry_forward": 5}
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<LeaveType {self.name}>"
