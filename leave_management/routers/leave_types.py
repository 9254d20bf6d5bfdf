from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.leave_type import LeaveTypeResponse
from leave_management.services.catalog import LeaveTypeService

router = APIRouter(
    prefix="/leave-types",
    tags=["leave types"]
)


@router.get("", response_model=DataResponse[List[LeaveTypeResponse]])
def list_leave_types(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    include_inactive = include_inactive and principal.is_elevated
    return {"data": LeaveTypeService(db, principal).list_types(include_inactive)}


@router.get("/{leave_type_id}", response_model=DataResponse[LeaveTypeResponse])
def get_leave_type(
    leave_type_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": LeaveTypeService(db, principal).get_type(leave_type_id)}
