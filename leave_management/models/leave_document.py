from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from leave_management.database import Base, utcnow

MAX_LEAVE_DOCUMENT_SIZE = 5 * 1024 * 1024  # 5MB

LEAVE_DOCUMENT_MIME_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)

_mime_list = ", ".join(f"'{mime}'" for mime in LEAVE_DOCUMENT_MIME_TYPES)


class LeaveDocument(Base):
    __tablename__ = "leave_documents"
    __table_args__ = (
        CheckConstraint(f"file_size > 0 AND file_size <= {MAX_LEAVE_DOCUMENT_SIZE}", name="ck_leave_documents_file_size"),
        CheckConstraint("length(file_name) > 0 AND length(file_name) <= 255", name="ck_leave_documents_file_name_length"),
        CheckConstraint(f"file_type IN ({_mime_list})", name="ck_leave_documents_file_type"),
        CheckConstraint("length(storage_path) > 0", name="ck_leave_documents_storage_path"),
    )

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leaves.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    uploaded_by = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    leave = relationship("LeaveRequest", back_populates="documents")
    uploader = relationship("Employee")

    def __repr__(self):
        return f"<LeaveDocument {self.id}: {self.file_name}>"
