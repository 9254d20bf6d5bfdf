from datetime import timedelta
from fastapi import status

from leave_management.models.audit_log import AuditLog
from leave_management.models.leave_balance import LeaveBalance
from leave_management.services import auth as auth_service
from factories import PASSWORD


def test_signup_creates_employee_and_balances(client, db_session, leave_types):
    response = client.post("/api/auth/signup", json={
        "email": "new.hire@acme.com",
        "password": "Sup3rSecret!",
        "name": "New Hire",
        "department": "Engineering",
    })
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["employee"]["role"] == "employee"
    assert data["employee"]["department"] == "Engineering"

    balances = db_session.query(LeaveBalance).filter(LeaveBalance.employee_id == data["employee"]["id"]).all()
    assert len(balances) == len(leave_types)


def test_signup_rejects_duplicate_email(client, employee):
    response = client.post("/api/auth/signup", json={
        "email": employee.email.upper(),
        "password": "Sup3rSecret!",
        "name": "Impostor",
    })
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "DATABASE_CONSTRAINT"


def test_signup_validates_password_length(client):
    response = client.post("/api/auth/signup", json={"email": "short@acme.com", "password": "short", "name": "Short"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "password" in error["details"]["fields"]


def test_login_success(client, employee):
    response = client.post("/api/auth/login", json={"email": employee.email, "password": PASSWORD})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert "access_token" in data
    assert data["employee"]["id"] == employee.id

    payload = auth_service.decode_access_token(data["access_token"])
    assert payload["sub"] == employee.auth_user_id
    assert payload["type"] == "access"


def test_login_invalid_credentials_is_audited(client, db_session, employee):
    response = client.post("/api/auth/login", json={"email": employee.email, "password": "wrong-password"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert db_session.query(AuditLog).filter(AuditLog.action == "failed_login").count() == 1


def test_inactive_employee_cannot_login(client, db_session, employee):
    employee.is_active = False
    db_session.commit()
    response = client.post("/api/auth/login", json={"email": employee.email, "password": PASSWORD})
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


def test_me_requires_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"


def test_me_rejects_garbage_token(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_me_returns_current_employee(client, employee, auth_headers):
    response = client.get("/api/auth/me", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["email"] == employee.email


def test_expired_token_rejected(client, employee):
    token = auth_service.create_access_token({"sub": employee.auth_user_id}, expires_delta=timedelta(minutes=-5))
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["message"] == "Token has expired"
