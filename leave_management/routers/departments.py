from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.department import DepartmentResponse
from leave_management.services.catalog import DepartmentService

router = APIRouter(
    prefix="/departments",
    tags=["departments"]
)


@router.get("", response_model=DataResponse[List[DepartmentResponse]])
def list_departments(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Active departments; inactive ones are listed for HR/admin on request."""
    include_inactive = include_inactive and principal.is_elevated
    return {"data": DepartmentService(db, principal).list_departments(include_inactive)}
