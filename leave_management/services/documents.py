"""
Document attachments for leave requests and company documents with expiry
notifications.

Blob and metadata are not written atomically: the object is stored first, then
the row is committed; when the commit fails the object is removed best-effort.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from leave_management.core.config import settings
from leave_management.core.exceptions import (
    AppException,
    ConstraintViolationError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from leave_management.core.permissions import (
    can_delete_leave_document,
    can_view_company_document,
    can_view_leave_document,
    is_leave_owner,
    require,
    scope_company_documents,
)
from leave_management.database import as_utc, utcnow
from leave_management.models.company_document import (
    CompanyDocument,
    DeliveryStatus,
    DocumentNotifier,
    NotificationFrequency,
    NotificationLog,
    NotifierStatus,
)
from leave_management.models.leave_document import LeaveDocument
from leave_management.models.leave_request import LeaveStatus
from leave_management.schemas.document import NotifierCreate
from leave_management.services.audit import AuditService
from leave_management.services.base import BaseService
from leave_management.services.leave_service import LeaveService
from leave_management.services.notification import NotificationService
from leave_management.services.storage import (
    COMPANY_DOCUMENTS_BUCKET,
    LEAVE_DOCUMENTS_BUCKET,
    IncomingFile,
    LocalStorage,
    build_object_path,
    get_storage,
)

_FREQUENCY_DAYS = {
    NotificationFrequency.WEEKLY: 7,
    NotificationFrequency.MONTHLY: 30,
}
DEFAULT_CUSTOM_FREQUENCY_DAYS = 7


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.ceil((later - earlier).total_seconds() / 86400)


class DocumentService(BaseService):

    def __init__(self, db, principal=None, storage: Optional[LocalStorage] = None):
        super().__init__(db, principal)
        self.storage = storage or get_storage()

    # --- Leave documents ---------------------------------------------------

    def upload_leave_documents(self, leave_id: int, files: List[IncomingFile]) -> Tuple[List[LeaveDocument], List[dict]]:
        """
        Stores each file independently. A failing file is reported and skipped;
        files stored before it stay, and the leave request is never rolled back.
        """
        leave = LeaveService(self.db, self.principal).get_leave(leave_id)
        require(is_leave_owner(self.principal, leave), "Only the requester can attach documents")
        if leave.status != LeaveStatus.PENDING:
            raise InvalidStatusError(leave.status.value, "attach documents to")
        if not files:
            raise ValidationError("No files provided", fields={"files": "at least one file is required"})

        uploaded, failed = [], []
        for incoming in files:
            try:
                uploaded.append(self._store_leave_document(leave_id, incoming))
            except AppException as exc:
                self.log_warning(
                    "Leave document upload failed",
                    leave_id=leave_id, file_name=incoming.file_name, error_code=exc.error_code,
                )
                failed.append({"file_name": incoming.file_name, "code": exc.error_code, "message": exc.message})
        return uploaded, failed

    def _store_leave_document(self, leave_id: int, incoming: IncomingFile) -> LeaveDocument:
        size = len(incoming.content)
        self.storage.validate(LEAVE_DOCUMENTS_BUCKET, incoming.file_name, incoming.content_type, size)
        path = build_object_path(self.actor_id, leave_id, incoming.file_name)
        self.storage.upload(LEAVE_DOCUMENTS_BUCKET, path, incoming.content, incoming.content_type)

        document = LeaveDocument(
            leave_request_id=leave_id,
            file_name=incoming.file_name,
            file_size=size,
            file_type=incoming.content_type,
            storage_path=path,
            uploaded_by=self.actor_id,
        )
        try:
            self.db.add(document)
            self.db.flush()
            AuditService.log(
                self.db, self.principal,
                action="upload_leave_document",
                entity_type="leave_document",
                entity_id=document.id,
                details={"leave_id": leave_id, "file_name": incoming.file_name, "file_size": size},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            self.log_error("Leave document metadata rejected", leave_id=leave_id, storage_path=path)
            self.storage.remove(LEAVE_DOCUMENTS_BUCKET, path)
            raise ConstraintViolationError("Document metadata was rejected") from exc
        self.db.refresh(document)
        return document

    def list_leave_documents(self, leave_id: int) -> List[LeaveDocument]:
        leave = LeaveService(self.db, self.principal).get_leave(leave_id)
        return list(leave.documents)

    def get_leave_document(self, document_id: int) -> LeaveDocument:
        document = (
            self.db.query(LeaveDocument)
            .options(joinedload(LeaveDocument.leave))
            .filter(LeaveDocument.id == document_id)
            .first()
        )
        if document is None:
            raise NotFoundError("Document")
        require(can_view_leave_document(self.principal, document), "You cannot access this document")
        return document

    def delete_leave_document(self, document_id: int) -> None:
        document = self.get_leave_document(document_id)
        require(can_delete_leave_document(self.principal, document), "You cannot delete this document")
        if not self.principal.is_admin and document.leave.status != LeaveStatus.PENDING:
            raise InvalidStatusError(document.leave.status.value, "delete documents of")

        path = document.storage_path
        AuditService.log(
            self.db, self.principal,
            action="delete_leave_document",
            entity_type="leave_document",
            entity_id=document.id,
            details={"leave_id": document.leave_request_id, "file_name": document.file_name},
        )
        self.db.delete(document)
        self.db.commit()
        self.storage.remove(LEAVE_DOCUMENTS_BUCKET, path)

    # --- Company documents -------------------------------------------------

    def upload_company_document(
        self,
        name: str,
        document_type: str,
        incoming: IncomingFile,
        expiry_date: Optional[datetime] = None,
        is_public: bool = False,
    ) -> CompanyDocument:
        size = len(incoming.content)
        self.storage.validate(COMPANY_DOCUMENTS_BUCKET, incoming.file_name, incoming.content_type, size)
        path = build_object_path(self.actor_id, document_type, incoming.file_name)
        self.storage.upload(COMPANY_DOCUMENTS_BUCKET, path, incoming.content, incoming.content_type)

        document = CompanyDocument(
            name=name,
            document_type=document_type,
            expiry_date=expiry_date,
            uploaded_by=self.actor_id,
            storage_path=path,
            file_size=size,
            file_type=incoming.content_type,
            is_public=is_public,
        )
        try:
            self.db.add(document)
            self.db.flush()
            AuditService.log(
                self.db, self.principal,
                action="upload_company_document",
                entity_type="company_document",
                entity_id=document.id,
                details={"name": name, "document_type": document_type},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            self.storage.remove(COMPANY_DOCUMENTS_BUCKET, path)
            raise ConstraintViolationError("Document metadata was rejected") from exc
        self.db.refresh(document)
        return document

    def list_company_documents(self, document_type: Optional[str] = None) -> List[CompanyDocument]:
        query = scope_company_documents(self.db.query(CompanyDocument), self.principal)
        if document_type:
            query = query.filter(CompanyDocument.document_type == document_type)
        return query.order_by(CompanyDocument.created_at.desc(), CompanyDocument.id.desc()).all()

    def get_company_document(self, document_id: int) -> CompanyDocument:
        document = self.db.get(CompanyDocument, document_id)
        if document is None:
            raise NotFoundError("Company document")
        require(can_view_company_document(self.principal, document), "You cannot access this document")
        return document

    def delete_company_document(self, document_id: int) -> None:
        document = self.get_company_document(document_id)
        path = document.storage_path
        AuditService.log(
            self.db, self.principal,
            action="delete_company_document",
            entity_type="company_document",
            entity_id=document.id,
            details={"name": document.name},
        )
        self.db.delete(document)
        self.db.commit()
        self.storage.remove(COMPANY_DOCUMENTS_BUCKET, path)

    # --- Expiry notifiers --------------------------------------------------

    def subscribe(self, document_id: int, payload: NotifierCreate) -> DocumentNotifier:
        """Creates or updates the caller's subscription to a document's expiry."""
        self.get_company_document(document_id)
        if payload.notification_frequency == NotificationFrequency.CUSTOM and payload.custom_frequency_days is None:
            raise ValidationError(
                "Custom frequency requires a number of days",
                fields={"custom_frequency_days": "required when notification_frequency is custom"},
            )

        notifier = self.db.query(DocumentNotifier).filter(
            DocumentNotifier.employee_id == self.actor_id,
            DocumentNotifier.document_id == document_id,
        ).first()
        if notifier is None:
            notifier = DocumentNotifier(employee_id=self.actor_id, document_id=document_id)
            self.db.add(notifier)
        notifier.notification_frequency = payload.notification_frequency
        notifier.custom_frequency_days = (
            payload.custom_frequency_days if payload.notification_frequency == NotificationFrequency.CUSTOM else None
        )
        notifier.status = NotifierStatus.ACTIVE
        self.db.commit()
        self.db.refresh(notifier)
        return notifier

    def list_notifiers(self, document_id: int) -> List[DocumentNotifier]:
        self.get_company_document(document_id)
        query = self.db.query(DocumentNotifier).filter(DocumentNotifier.document_id == document_id)
        if not self.principal.is_elevated:
            query = query.filter(DocumentNotifier.employee_id == self.actor_id)
        return query.order_by(DocumentNotifier.id).all()

    def unsubscribe(self, notifier_id: int) -> None:
        notifier = self.db.get(DocumentNotifier, notifier_id)
        if notifier is None:
            raise NotFoundError("Notifier")
        require(
            self.principal.is_elevated or notifier.employee_id == self.actor_id,
            "You cannot remove this notifier",
        )
        self.db.delete(notifier)
        self.db.commit()

    def check_document_expiry(self, now: Optional[datetime] = None) -> dict:
        """
        Notifies active subscribers of documents expiring within the configured window.
        A subscriber is due when never notified, or when at least 7 (weekly),
        30 (monthly) or custom_frequency_days (custom) days passed since the last notice.
        """
        now = now or utcnow()
        horizon = now + timedelta(days=settings.document_expiry_window_days)
        documents = (
            self.db.query(CompanyDocument)
            .options(joinedload(CompanyDocument.notifiers).joinedload(DocumentNotifier.employee))
            .filter(
                CompanyDocument.expiry_date.isnot(None),
                CompanyDocument.expiry_date >= now,
                CompanyDocument.expiry_date <= horizon,
            )
            .order_by(CompanyDocument.expiry_date)
            .all()
        )

        notifications = []
        for document in documents:
            days_until_expiry = _days_between(as_utc(document.expiry_date), now)
            recipients = []
            for notifier in document.notifiers:
                if notifier.status != NotifierStatus.ACTIVE or not self._is_due(notifier, now):
                    continue
                recipients.append(notifier.employee.email)
                notifier.last_notification_sent = now
                self.db.add(NotificationLog(
                    notifier_id=notifier.id,
                    document_id=document.id,
                    recipient_email=notifier.employee.email,
                    status=DeliveryStatus.SENT,
                    result={"days_until_expiry": days_until_expiry},
                ))
                NotificationService.create_notification(
                    self.db,
                    notifier.employee_id,
                    "Document expiring soon",
                    f"{document.name} expires in {days_until_expiry} day(s).",
                    "warning",
                    link=f"/documents/company/{document.id}",
                )
            if recipients:
                notifications.append({
                    "document": document.name,
                    "recipients": recipients,
                    "days_until_expiry": days_until_expiry,
                })

        self.db.commit()
        self.log_info("Document expiry check complete", documents=len(documents), notifications=len(notifications))
        return {
            "notifications_sent": len(notifications),
            "notifications": notifications,
            "checked_at": now,
        }

    @staticmethod
    def _is_due(notifier: DocumentNotifier, now: datetime) -> bool:
        if notifier.last_notification_sent is None:
            return True
        if notifier.notification_frequency == NotificationFrequency.CUSTOM:
            threshold = notifier.custom_frequency_days or DEFAULT_CUSTOM_FREQUENCY_DAYS
        else:
            threshold = _FREQUENCY_DAYS[notifier.notification_frequency]
        return _days_between(now, as_utc(notifier.last_notification_sent)) >= threshold
