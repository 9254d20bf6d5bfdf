"""
Company-wide documents (policies, certificates, contracts) and the expiry
notification subscriptions attached to them.
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, JSON, Text,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from leave_management.database import Base


class NotificationFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class NotifierStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DeliveryStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"
    RETRYING = "retrying"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class CompanyDocument(Base):
    __tablename__ = "company_documents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    document_type = Column(String(100), nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=True, index=True)
    uploaded_by = Column(Integer, ForeignKey("employees.id"), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    file_size = Column(Integer, nullable=True)
    file_type = Column(String(100), nullable=True)
    is_public = Column(Boolean, default=False, nullable=False)
    extra = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    uploader = relationship("Employee")
    notifiers = relationship("DocumentNotifier", back_populates="document", cascade="all, delete-orphan", passive_deletes=True)


class DocumentNotifier(Base):
    __tablename__ = "document_notifiers"
    __table_args__ = (
        UniqueConstraint("employee_id", "document_id", name="uq_document_notifiers_employee_document"),
        CheckConstraint(
            "custom_frequency_days IS NULL OR custom_frequency_days > 0",
            name="ck_document_notifiers_custom_frequency_positive",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("company_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_frequency = Column(
        Enum(NotificationFrequency, name="notification_frequency", values_callable=_values),
        default=NotificationFrequency.WEEKLY,
        nullable=False,
    )
    custom_frequency_days = Column(Integer, nullable=True)
    last_notification_sent = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(NotifierStatus, name="notifier_status", values_callable=_values),
        default=NotifierStatus.ACTIVE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    employee = relationship("Employee")
    document = relationship("CompanyDocument", back_populates="notifiers")


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    notifier_id = Column(Integer, ForeignKey("document_notifiers.id", ondelete="SET NULL"), nullable=True, index=True)
    document_id = Column(Integer, ForeignKey("company_documents.id", ondelete="SET NULL"), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())
    status = Column(
        Enum(DeliveryStatus, name="notification_delivery_status", values_callable=_values),
        default=DeliveryStatus.PENDING,
        nullable=False,
    )
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
