from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import List, Optional

from leave_management.core.limiter import limiter, DOCUMENT_UPLOAD_LIMIT, READ_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.models.employee import EmployeeRole
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.employee import EmployeeResponse, EmployeeSelfUpdate
from leave_management.services.identity import IdentityService
from leave_management.services.storage import BUCKETS, PROFILE_PHOTOS_BUCKET, IncomingFile, get_storage

router = APIRouter(
    prefix="/employees",
    tags=["employees"]
)


@router.get("", response_model=DataResponse[List[EmployeeResponse]])
@limiter.limit(READ_LIMIT)
def list_employees(
    request: Request,
    search: Optional[str] = Query(None, description="Matches name or email"),
    department: Optional[str] = None,
    role: Optional[EmployeeRole] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Employees visible to the caller: themselves (employee), their department
    (manager) or everyone (hr/admin).
    """
    employees, _ = IdentityService(db, principal).list_employees(
        search=search, department=department, role=role, is_active=is_active, limit=limit, offset=offset
    )
    return {"data": employees}


@router.patch("/me", response_model=DataResponse[EmployeeResponse])
def update_me(
    payload: EmployeeSelfUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": IdentityService(db, principal).update_self(payload)}


@router.post("/me/photo", response_model=DataResponse[EmployeeResponse])
@limiter.limit(DOCUMENT_UPLOAD_LIMIT)
def upload_my_photo(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Replace the caller's avatar (JPEG, PNG or WebP, up to 2MB); photo_url points at the stored image."""
    incoming = IncomingFile.from_upload(file, BUCKETS[PROFILE_PHOTOS_BUCKET].max_file_size)
    return {"data": IdentityService(db, principal).upload_photo(incoming)}


@router.get("/photos/{object_path:path}")
@limiter.limit(READ_LIMIT)
def download_photo(request: Request, object_path: str):
    path = get_storage().open_public(PROFILE_PHOTOS_BUCKET, object_path)
    return FileResponse(path)


@router.get("/{employee_id}", response_model=DataResponse[EmployeeResponse])
@limiter.limit(READ_LIMIT)
def get_employee(
    request: Request,
    employee_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": IdentityService(db, principal).get_employee(employee_id)}
