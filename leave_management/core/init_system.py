import logging
from leave_management.core.config import settings
from leave_management.database import SessionLocal
from leave_management.models.auth_user import AuthUser
from leave_management.models.employee import EmployeeRole
from leave_management.models.leave_type import LeaveType
from leave_management.schemas.auth import SignupRequest
from leave_management.services.identity import IdentityService

logger = logging.getLogger(__name__)

DEFAULT_LEAVE_TYPES = [
    {
        "name": "Annual Leave",
        "description": "Paid time off for vacation and personal matters",
        "default_allocation_days": 25,
        "accrual_rules": {"accrual_type": "yearly", "max_carry_forward": 5},
    },
    {
        "name": "Sick Leave",
        "description": "Time off for illness or medical appointments",
        "default_allocation_days": 10,
        "accrual_rules": {"accrual_type": "yearly", "max_carry_forward": 0, "requires_document_after_days": 3},
    },
    {
        "name": "Personal Leave",
        "description": "Time off for personal errands and emergencies",
        "default_allocation_days": 5,
        "accrual_rules": {"accrual_type": "yearly", "max_carry_forward": 0},
    },
    {
        "name": "Maternity Leave",
        "description": "Leave for childbirth and care of a newborn",
        "default_allocation_days": 90,
        "accrual_rules": {"accrual_type": "event", "max_carry_forward": 0},
    },
    {
        "name": "Paternity Leave",
        "description": "Leave for fathers after the birth or adoption of a child",
        "default_allocation_days": 14,
        "accrual_rules": {"accrual_type": "event", "max_carry_forward": 0},
    },
    {
        "name": "Bereavement Leave",
        "description": "Leave following the death of a family member",
        "default_allocation_days": 5,
        "accrual_rules": {"accrual_type": "event", "max_carry_forward": 0},
    },
]


def seed_default_leave_types(db) -> int:
    """Populates the leave type catalog when it is empty. Returns the number created."""
    if db.query(LeaveType.id).first() is not None:
        return 0
    for definition in DEFAULT_LEAVE_TYPES:
        db.add(LeaveType(is_active=True, **definition))
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_LEAVE_TYPES)} default leave types")
    return len(DEFAULT_LEAVE_TYPES)


def bootstrap_admin(db) -> bool:
    """Creates the admin account named by BOOTSTRAP_ADMIN_EMAIL once, if configured."""
    email, password = settings.bootstrap_admin_email, settings.bootstrap_admin_password
    if not email or not password:
        return False
    if db.query(AuthUser.id).filter(AuthUser.email == email.lower()).first() is not None:
        return False
    IdentityService(db).signup(
        SignupRequest(email=email, password=password, name="Administrator"),
        role=EmployeeRole.ADMIN,
    )
    logger.info(f"Created bootstrap admin: {email}")
    return True


def init_system_data():
    """
    Startup initialization: default leave types and the optional bootstrap admin.
    Failures are logged and do not prevent the API from starting.
    """
    db = SessionLocal()
    try:
        if settings.seed_leave_types:
            seed_default_leave_types(db)
        bootstrap_admin(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization: {str(e)}", exc_info=True)
    finally:
        db.close()
