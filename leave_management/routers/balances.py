from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from leave_management.core.limiter import limiter, READ_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.leave import AvailableDaysResponse, LeaveBalanceResponse
from leave_management.services.balances import BalanceService

router = APIRouter(
    prefix="/leave-balances",
    tags=["leave balances"]
)


@router.get("", response_model=DataResponse[List[LeaveBalanceResponse]])
@limiter.limit(READ_LIMIT)
def list_balances(
    request: Request,
    employee_id: Optional[int] = None,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"data": BalanceService(db, principal).list_balances(employee_id=employee_id, year=year)}


@router.get("/available", response_model=DataResponse[AvailableDaysResponse])
@limiter.limit(READ_LIMIT)
def available_days(
    request: Request,
    leave_type_id: int,
    employee_id: Optional[int] = None,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """allocated + carried forward - used; 0 when no balance row exists for the year."""
    return {"data": BalanceService(db, principal).available_for(employee_id, leave_type_id, year)}
