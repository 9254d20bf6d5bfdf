import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from leave_management.core.limiter import limiter, ADMIN_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.models.employee import Employee
from leave_management.routers.auth_deps import get_current_principal
from leave_management.schemas.auth import LoginRequest, SignupRequest, Token
from leave_management.schemas.employee import EmployeeResponse
from leave_management.services.identity import IdentityService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


@router.post("/signup", response_model=DataResponse[Token], status_code=status.HTTP_201_CREATED)
@limiter.limit(ADMIN_LIMIT)
def signup(request: Request, payload: SignupRequest, db: Session = Depends(get_db)):
    """Self-service registration. Always creates a plain employee."""
    employee = IdentityService(db).signup(payload)
    return {"data": IdentityService.issue_token(employee)}


@router.post("/login", response_model=DataResponse[Token])
@limiter.limit(ADMIN_LIMIT)
def login(request: Request, login_data: LoginRequest, db: Session = Depends(get_db)):
    # JSON body rather than form-data for frontend compatibility
    employee = IdentityService(db).authenticate(login_data.email, login_data.password)
    logger.info(f"Employee {employee.id} logged in")
    return {"data": IdentityService.issue_token(employee)}


@router.get("/me", response_model=DataResponse[EmployeeResponse])
def get_me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {"data": db.get(Employee, principal.employee_id)}
