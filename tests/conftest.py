import pytest
import os
import tempfile
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="leave-storage-")
os.environ["STATS_REFRESH_MODE"] = "manual"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_LEAVE_TYPES"] = "false"

from leave_management.database import Base, get_db
from leave_management.main import app
from leave_management.core.init_system import seed_default_leave_types
from leave_management.models.employee import EmployeeRole
from leave_management.models.leave_type import LeaveType
from leave_management.schemas.auth import SignupRequest
from leave_management.services.identity import IdentityService
from fastapi.testclient import TestClient
from factories import PASSWORD

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test; one shared connection via StaticPool."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def leave_types(db_session):
    """The six default leave types, keyed by name."""
    seed_default_leave_types(db_session)
    return {leave_type.name: leave_type for leave_type in db_session.query(LeaveType).all()}


@pytest.fixture(scope="function")
def annual_leave(leave_types):
    return leave_types["Annual Leave"]


@pytest.fixture(scope="function")
def make_employee(db_session, leave_types):
    """Factory creating an account + employee through the signup path."""
    def _make_employee(email, role=EmployeeRole.EMPLOYEE, department="Engineering", name=None):
        payload = SignupRequest(
            email=email,
            password=PASSWORD,
            name=name or email.split("@")[0].title(),
            department=department,
        )
        return IdentityService(db_session).signup(payload, role=role)
    return _make_employee


@pytest.fixture(scope="function")
def employee(make_employee):
    return make_employee("alice@acme.com")


@pytest.fixture(scope="function")
def colleague(make_employee):
    return make_employee("bob@acme.com")


@pytest.fixture(scope="function")
def manager(make_employee):
    return make_employee("maria@acme.com", role=EmployeeRole.MANAGER)


@pytest.fixture(scope="function")
def other_manager(make_employee):
    return make_employee("oscar@acme.com", role=EmployeeRole.MANAGER, department="Sales")


@pytest.fixture(scope="function")
def hr_user(make_employee):
    return make_employee("hana@acme.com", role=EmployeeRole.HR, department="People")


@pytest.fixture(scope="function")
def admin_user(make_employee):
    return make_employee("admin@acme.com", role=EmployeeRole.ADMIN, department="People")


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens for an employee."""
    def _get_token(employee):
        return IdentityService.issue_token(employee)["access_token"]
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _auth_headers(employee):
        return {"Authorization": f"Bearer {get_token(employee)}"}
    return _auth_headers



@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """Sessions on a file-backed database, for tests that need several connections or threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'leave.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture(scope="function")
def file_people(file_session_factory):
    """Seeded leave types plus an employee and a same-department manager in the file database."""
    with file_session_factory() as session:
        seed_default_leave_types(session)
        identity = IdentityService(session)
        people = {
            "employee": identity.signup(
                SignupRequest(email="alice@acme.com", password=PASSWORD, name="Alice", department="Engineering")
            ).id,
            "manager": identity.signup(
                SignupRequest(email="maria@acme.com", password=PASSWORD, name="Maria", department="Engineering"),
                role=EmployeeRole.MANAGER,
            ).id,
            "annual_leave": session.query(LeaveType).filter(LeaveType.name == "Annual Leave").one().id,
        }
    return people
