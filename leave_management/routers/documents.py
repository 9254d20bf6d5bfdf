import logging
from datetime import datetime
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import List, Optional

from leave_management.core.limiter import limiter, DOCUMENT_UPLOAD_LIMIT, READ_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse, MessageOut
from leave_management.database import get_db
from leave_management.routers.auth_deps import get_current_principal, require_hr_or_admin
from leave_management.schemas.document import CompanyDocumentResponse, NotifierCreate, NotifierResponse
from leave_management.services.documents import DocumentService
from leave_management.services.storage import BUCKETS, COMPANY_DOCUMENTS_BUCKET, LEAVE_DOCUMENTS_BUCKET, IncomingFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


# --- Leave documents ---------------------------------------------------------

@router.get("/leave/{document_id}/download")
@limiter.limit(READ_LIMIT)
def download_leave_document(
    request: Request,
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    service = DocumentService(db, principal)
    document = service.get_leave_document(document_id)
    path = service.storage.open_path(LEAVE_DOCUMENTS_BUCKET, document.storage_path)
    return FileResponse(path, media_type=document.file_type, filename=document.file_name)


@router.delete("/leave/{document_id}", response_model=DataResponse[MessageOut])
def delete_leave_document(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Uploader while the leave is pending, or an admin at any time."""
    DocumentService(db, principal).delete_leave_document(document_id)
    return {"data": {"message": "Document deleted"}}


# --- Company documents -------------------------------------------------------

@router.get("/company", response_model=DataResponse[List[CompanyDocumentResponse]])
@limiter.limit(READ_LIMIT)
def list_company_documents(
    request: Request,
    document_type: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": DocumentService(db, principal).list_company_documents(document_type)}


@router.post("/company", response_model=DataResponse[CompanyDocumentResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(DOCUMENT_UPLOAD_LIMIT)
def upload_company_document(
    request: Request,
    file: UploadFile = File(...),
    name: str = Form(..., min_length=1, max_length=255),
    document_type: str = Form(..., min_length=1, max_length=100),
    expiry_date: Optional[datetime] = Form(None),
    is_public: bool = Form(False),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    logger.info(f"Company document upload: {file.filename} ({file.content_type})")
    incoming = IncomingFile.from_upload(file, BUCKETS[COMPANY_DOCUMENTS_BUCKET].max_file_size)
    document = DocumentService(db, principal).upload_company_document(
        name=name,
        document_type=document_type,
        incoming=incoming,
        expiry_date=expiry_date,
        is_public=is_public,
    )
    return {"data": document}


@router.get("/company/{document_id}", response_model=DataResponse[CompanyDocumentResponse])
def get_company_document(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": DocumentService(db, principal).get_company_document(document_id)}


@router.get("/company/{document_id}/download")
@limiter.limit(READ_LIMIT)
def download_company_document(
    request: Request,
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    service = DocumentService(db, principal)
    document = service.get_company_document(document_id)
    path = service.storage.open_path(COMPANY_DOCUMENTS_BUCKET, document.storage_path)
    return FileResponse(path, media_type=document.file_type, filename=path.name.split("_", 1)[-1])


@router.delete("/company/{document_id}", response_model=DataResponse[MessageOut])
def delete_company_document(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    DocumentService(db, principal).delete_company_document(document_id)
    return {"data": {"message": "Company document deleted"}}


# --- Expiry notifiers --------------------------------------------------------

@router.post("/company/{document_id}/notifiers", response_model=DataResponse[NotifierResponse], status_code=status.HTTP_201_CREATED)
def subscribe_to_document(
    document_id: int,
    payload: NotifierCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": DocumentService(db, principal).subscribe(document_id, payload)}


@router.get("/company/{document_id}/notifiers", response_model=DataResponse[List[NotifierResponse]])
def list_document_notifiers(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": DocumentService(db, principal).list_notifiers(document_id)}


@router.delete("/notifiers/{notifier_id}", response_model=DataResponse[MessageOut])
def unsubscribe(
    notifier_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    DocumentService(db, principal).unsubscribe(notifier_id)
    return {"data": {"message": "Notifier removed"}}
