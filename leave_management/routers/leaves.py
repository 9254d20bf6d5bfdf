from datetime import date
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional

from leave_management.core.limiter import (
    limiter,
    DOCUMENT_UPLOAD_LIMIT,
    LEAVE_APPROVAL_LIMIT,
    LEAVE_CREATION_LIMIT,
    READ_LIMIT,
)
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse, MessageOut
from leave_management.database import get_db
from leave_management.models.leave_request import LeaveStatus
from leave_management.routers.auth_deps import get_current_principal, require_approver
from leave_management.schemas.document import DocumentUploadResult, LeaveDocumentResponse
from leave_management.schemas.leave import (
    CalendarLeave,
    LeaveDecisionComment,
    LeaveDecisionRequest,
    LeaveListResponse,
    LeaveRequestCreate,
    LeaveRequestDetail,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    LeaveStatistics,
)
from leave_management.services.documents import DocumentService
from leave_management.services.storage import BUCKETS, LEAVE_DOCUMENTS_BUCKET, IncomingFile
from leave_management.services.leave_service import LeaveService

router = APIRouter(
    prefix="/leaves",
    tags=["leaves"]
)


@router.get("", response_model=DataResponse[LeaveListResponse])
@limiter.limit(READ_LIMIT)
def list_leaves(
    request: Request,
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    requester_id: Optional[int] = None,
    approver_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Leave requests visible to the caller, newest first.
    Employees see their own, managers their department, HR/admin everything.
    """
    leaves, total = LeaveService(db, principal).list_leaves(
        status=status_filter,
        requester_id=requester_id,
        approver_id=approver_id,
        limit=limit,
        offset=offset,
    )
    return {"data": {
        "leaves": leaves,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(leaves) < total,
    }}


@router.post("", response_model=DataResponse[LeaveRequestResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(LEAVE_CREATION_LIMIT)
def create_leave(
    request: Request,
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": LeaveService(db, principal).create_leave(payload)}


@router.get("/calendar", response_model=DataResponse[List[CalendarLeave]])
@limiter.limit(READ_LIMIT)
def team_calendar(
    request: Request,
    start_date: date,
    end_date: date,
    department: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_approver()),
):
    return {"data": LeaveService(db, principal).team_calendar(start_date, end_date, department)}


@router.get("/statistics", response_model=DataResponse[LeaveStatistics])
@limiter.limit(READ_LIMIT)
def leave_statistics(
    request: Request,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": LeaveService(db, principal).statistics(year)}


@router.post("/approve", response_model=DataResponse[LeaveRequestResponse])
@limiter.limit(LEAVE_APPROVAL_LIMIT)
def decide_leave(
    request: Request,
    payload: LeaveDecisionRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_approver()),
):
    """Approve or reject in one call: {leave_id, action: approved|rejected, comments}."""
    leave = LeaveService(db, principal).decide(payload.leave_id, LeaveStatus(payload.action), payload.comments)
    return {"data": leave}


@router.get("/{leave_id}", response_model=DataResponse[LeaveRequestDetail])
@limiter.limit(READ_LIMIT)
def get_leave(
    request: Request,
    leave_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": LeaveService(db, principal).get_leave(leave_id)}


@router.patch("/{leave_id}", response_model=DataResponse[LeaveRequestResponse])
def update_leave(
    leave_id: int,
    payload: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Edit a pending request, or cancel it with {"status": "cancelled"}."""
    return {"data": LeaveService(db, principal).update_leave(leave_id, payload)}


@router.delete("/{leave_id}", response_model=DataResponse[MessageOut])
def delete_leave(
    leave_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LeaveService(db, principal).delete_leave(leave_id)
    return {"data": {"message": "Leave request deleted"}}


@router.post("/{leave_id}/approve", response_model=DataResponse[LeaveRequestResponse])
@limiter.limit(LEAVE_APPROVAL_LIMIT)
def approve_leave(
    request: Request,
    leave_id: int,
    payload: Optional[LeaveDecisionComment] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_approver()),
):
    comments = payload.comments if payload else None
    return {"data": LeaveService(db, principal).decide(leave_id, LeaveStatus.APPROVED, comments)}


@router.post("/{leave_id}/reject", response_model=DataResponse[LeaveRequestResponse])
@limiter.limit(LEAVE_APPROVAL_LIMIT)
def reject_leave(
    request: Request,
    leave_id: int,
    payload: Optional[LeaveDecisionComment] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_approver()),
):
    comments = payload.comments if payload else None
    return {"data": LeaveService(db, principal).decide(leave_id, LeaveStatus.REJECTED, comments)}


@router.post("/{leave_id}/documents", response_model=DataResponse[DocumentUploadResult], status_code=status.HTTP_201_CREATED)
@limiter.limit(DOCUMENT_UPLOAD_LIMIT)
def upload_leave_documents(
    request: Request,
    leave_id: int,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Attach one or more files to a pending request. Each file is stored on its
    own; the response lists what was uploaded and what failed.
    """
    max_size = BUCKETS[LEAVE_DOCUMENTS_BUCKET].max_file_size
    incoming = [IncomingFile.from_upload(upload, max_size) for upload in files]
    uploaded, failed = DocumentService(db, principal).upload_leave_documents(leave_id, incoming)
    return {"data": {"uploaded": uploaded, "failed": failed}}


@router.get("/{leave_id}/documents", response_model=DataResponse[List[LeaveDocumentResponse]])
@limiter.limit(READ_LIMIT)
def list_leave_documents(
    request: Request,
    leave_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": DocumentService(db, principal).list_leave_documents(leave_id)}
