"""
RBAC Dependencies.
Resolves the bearer token to a Principal and gates endpoints by role.
"""
import logging
from typing import Callable, List

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from leave_management.core.exceptions import AccessDeniedError, AuthenticationError
from leave_management.core.permissions import Principal, load_principal
from leave_management.database import get_db
from leave_management.models.employee import EmployeeRole
from leave_management.services import auth as auth_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_principal(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Principal:
    """
    Extracts and validates the caller from the JWT token.
    """
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise AuthenticationError()

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise AuthenticationError("Token has expired")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise AuthenticationError("Invalid token type")

    subject = payload.get("sub")
    if subject is None:
        logger.warning("Authentication failed: Missing subject in token")
        raise AuthenticationError("Missing subject in token")

    principal = load_principal(db, subject)
    if principal is None:
        logger.warning(f"Authentication failed: no employee for subject {subject}")
        raise AuthenticationError("User not found")
    if not principal.is_active:
        logger.warning(f"Authentication failed: employee {principal.employee_id} is inactive")
        raise AccessDeniedError("User is inactive")
    return principal


def require_role(allowed_roles: List[EmployeeRole]) -> Callable:
    """
    Dependency factory that checks if the caller has one of the allowed roles.

    Usage:
        @router.get("/admin-only")
        def admin_endpoint(principal: Principal = Depends(require_role([EmployeeRole.ADMIN]))):
            ...
    """
    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise AccessDeniedError(
                f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return principal
    return role_checker


def require_hr_or_admin():
    """Shorthand for the elevated roles."""
    return require_role([EmployeeRole.HR, EmployeeRole.ADMIN])


def require_approver():
    """Shorthand for roles that can decide leave requests."""
    return require_role([EmployeeRole.MANAGER, EmployeeRole.HR, EmployeeRole.ADMIN])
