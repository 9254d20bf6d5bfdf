"""
Accounts and employees: signup/login, the post-signup hook that creates the
employee row on first authentication, and employee maintenance.
"""
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from leave_management.core.config import settings
from leave_management.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConstraintViolationError,
    NotFoundError,
)
from leave_management.core.permissions import can_view_employee, require, scope_employees
from leave_management.database import utcnow
from leave_management.models.auth_user import AuthUser
from leave_management.models.employee import Employee, EmployeeRole
from leave_management.schemas.auth import SignupRequest
from leave_management.schemas.employee import EmployeeAdminUpdate, EmployeeSelfUpdate
from leave_management.services import auth as auth_service
from leave_management.services.audit import AuditService
from leave_management.services.balances import BalanceService
from leave_management.services.base import BaseService
from leave_management.services.storage import (
    PROFILE_PHOTOS_BUCKET,
    IncomingFile,
    LocalStorage,
    build_object_path,
    get_storage,
)

_REQUIRED_FIELDS = ("email", "name", "role", "is_active")
_AUDITED_FIELDS = ("email", "name", "first_name", "last_name", "role", "department", "photo_url", "is_active")
# avatars are served unauthenticated from the public photo bucket
PHOTO_URL_PREFIX = f"{settings.api_prefix}/employees/photos/"


def _employee_state(employee: Employee) -> dict:
    return {field: getattr(employee, field) for field in _AUDITED_FIELDS}


def photo_url_for(object_path: str) -> str:
    return PHOTO_URL_PREFIX + object_path


def photo_object_path(photo_url: Optional[str]) -> Optional[str]:
    """The stored object behind a photo URL, or None for URLs pointing elsewhere."""
    if photo_url and photo_url.startswith(PHOTO_URL_PREFIX):
        return photo_url[len(PHOTO_URL_PREFIX):]
    return None


class IdentityService(BaseService):

    # --- Accounts ----------------------------------------------------------

    def signup(self, payload: SignupRequest, role: EmployeeRole = EmployeeRole.EMPLOYEE) -> Employee:
        email = payload.email.lower()
        if self._find_account(email) is not None:
            raise ConstraintViolationError(
                "An account with this email already exists",
                details={"fields": {"email": "already registered"}},
            )

        account = AuthUser(email=email, hashed_password=auth_service.get_password_hash(payload.password))
        self.db.add(account)
        self.db.flush()

        employee = self.ensure_employee(account, profile=payload, role=role)
        AuditService.log(
            self.db, self.principal,
            action="create_account",
            entity_type="employee",
            entity_id=employee.id,
            details={"email": email, "role": role.value},
            actor_id=self.actor_id or employee.id,
        )
        self.db.commit()
        self.db.refresh(employee)
        self.log_info("Account created", employee_id=employee.id, role=role.value)
        return employee

    def ensure_employee(
        self,
        account: AuthUser,
        profile: Optional[SignupRequest] = None,
        role: EmployeeRole = EmployeeRole.EMPLOYEE,
    ) -> Employee:
        """
        Post-signup hook. The first authentication of an account creates its employee
        row and opens a balance for every active leave type in the current year.
        """
        employee = self.db.query(Employee).filter(Employee.auth_user_id == account.id).first()
        if employee is not None:
            return employee

        employee = Employee(
            auth_user_id=account.id,
            email=account.email,
            name=profile.name if profile else account.email.split("@")[0],
            first_name=profile.first_name if profile else None,
            last_name=profile.last_name if profile else None,
            department=profile.department if profile else None,
            role=role,
            is_active=True,
        )
        self.db.add(employee)
        self.db.flush()

        created = BalanceService(self.db, self.principal).initialize_employee_balances(employee, date.today().year)
        self.log_info("Employee onboarded", employee_id=employee.id, balances_created=created)
        return employee

    def authenticate(self, email: str, password: str) -> Employee:
        account = self._find_account(email.lower())
        if account is None or not auth_service.verify_password(password, account.hashed_password):
            AuditService.log(
                self.db,
                action="failed_login",
                entity_type="employee",
                entity_id=None,
                details={"email": email.lower(), "reason": "invalid_credentials"},
            )
            self.db.commit()
            self.log_warning("Login failed", email=email.lower())
            raise AuthenticationError("Incorrect email or password")

        employee = self.ensure_employee(account)
        if not employee.is_active:
            self.db.rollback()
            raise AccessDeniedError("User is inactive")

        account.last_sign_in_at = utcnow()
        AuditService.log(
            self.db,
            action="login",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=employee.id,
            actor_role=employee.role.value,
            details={"email": account.email},
        )
        self.db.commit()
        self.db.refresh(employee)
        return employee

    @staticmethod
    def issue_token(employee: Employee) -> dict:
        token = auth_service.create_access_token(data={
            "sub": employee.auth_user_id,
            "role": employee.role.value,
            "employee_id": employee.id,
        })
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
            "employee": employee,
        }

    # --- Employees ---------------------------------------------------------

    def list_employees(
        self,
        search: Optional[str] = None,
        department: Optional[str] = None,
        role: Optional[EmployeeRole] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Employee], int]:
        query = scope_employees(self.db.query(Employee), self.principal)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Employee.name).like(pattern),
                func.lower(Employee.email).like(pattern),
            ))
        if department:
            query = query.filter(Employee.department == department)
        if role:
            query = query.filter(Employee.role == role)
        if is_active is not None:
            query = query.filter(Employee.is_active.is_(is_active))
        total = query.count()
        employees = query.order_by(Employee.name, Employee.id).offset(offset).limit(limit).all()
        return employees, total

    def get_employee(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee")
        require(can_view_employee(self.principal, employee), "You cannot view this employee")
        return employee

    def update_self(self, payload: EmployeeSelfUpdate) -> Employee:
        employee = self.db.get(Employee, self.principal.employee_id)
        changes = payload.model_dump(exclude_unset=True)
        return self._apply_update(employee, changes, action="update_own_profile")

    def upload_photo(self, incoming: IncomingFile, storage: Optional[LocalStorage] = None) -> Employee:
        """
        Stores a new avatar in the public photo bucket and points photo_url at it.
        The previous avatar is removed once the new URL is committed.
        """
        storage = storage or get_storage()
        employee = self.db.get(Employee, self.principal.employee_id)
        storage.validate(PROFILE_PHOTOS_BUCKET, incoming.file_name, incoming.content_type, len(incoming.content))

        object_path = build_object_path(employee.id, "avatar", incoming.file_name)
        storage.upload(PROFILE_PHOTOS_BUCKET, object_path, incoming.content, incoming.content_type)
        previous_path = photo_object_path(employee.photo_url)
        try:
            employee = self._apply_update(employee, {"photo_url": photo_url_for(object_path)}, action="update_profile_photo")
        except SQLAlchemyError:
            self.db.rollback()
            storage.remove(PROFILE_PHOTOS_BUCKET, object_path)
            self.log_error("Profile photo update failed", employee_id=employee.id, object_path=object_path)
            raise

        if previous_path and previous_path != object_path:
            storage.remove(PROFILE_PHOTOS_BUCKET, previous_path)
        self.log_info("Profile photo updated", employee_id=employee.id, object_path=object_path)
        return employee

    def admin_update(self, employee_id: int, payload: EmployeeAdminUpdate) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee")

        changes = payload.model_dump(exclude_unset=True)
        new_role = changes.get("role")
        if new_role is not None and new_role != employee.role:
            if employee.id == self.principal.employee_id:
                raise AccessDeniedError("You cannot change your own role")
            if EmployeeRole.ADMIN in (new_role, employee.role) and not self.principal.is_admin:
                raise AccessDeniedError("Only admins can grant or revoke the admin role")
        if changes.get("is_active") is False and employee.id == self.principal.employee_id:
            raise AccessDeniedError("You cannot deactivate your own account")

        if "email" in changes and changes["email"]:
            email = changes["email"].lower()
            other = self._find_account(email)
            if other is not None and other.id != employee.auth_user_id:
                raise ConstraintViolationError(
                    "An account with this email already exists",
                    details={"fields": {"email": "already registered"}},
                )
            changes["email"] = email
            employee.auth_user.email = email

        if "metadata" in changes:
            employee.extra = changes.pop("metadata")
        return self._apply_update(employee, changes, action="update_employee")

    def _apply_update(self, employee: Employee, changes: dict, action: str) -> Employee:
        # explicit nulls on required columns mean "leave unchanged"
        changes = {k: v for k, v in changes.items() if not (k in _REQUIRED_FIELDS and v is None)}
        before = _employee_state(employee)
        for field, value in changes.items():
            setattr(employee, field, value)
        after = _employee_state(employee)
        if before != after:
            AuditService.log(
                self.db, self.principal,
                action=action,
                entity_type="employee",
                entity_id=employee.id,
                before_state=before,
                after_state=after,
            )
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def _find_account(self, email: str) -> Optional[AuthUser]:
        return self.db.query(AuthUser).filter(func.lower(AuthUser.email) == email).first()
