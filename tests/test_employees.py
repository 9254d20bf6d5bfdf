from fastapi import status

from leave_management.models.audit_log import AuditLog
from leave_management.models.employee import EmployeeRole


def _emails(response):
    return sorted(employee["email"] for employee in response.json()["data"])


def test_employee_sees_only_self(client, employee, colleague, manager, auth_headers):
    response = client.get("/api/employees", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_200_OK
    assert _emails(response) == ["alice@acme.com"]

    response = client.get(f"/api/employees/{colleague.id}", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_manager_sees_own_department(client, employee, colleague, manager, other_manager, auth_headers):
    response = client.get("/api/employees", headers=auth_headers(manager))
    assert _emails(response) == ["alice@acme.com", "bob@acme.com", "maria@acme.com"]

    assert client.get(f"/api/employees/{employee.id}", headers=auth_headers(manager)).status_code == status.HTTP_200_OK
    assert client.get(f"/api/employees/{other_manager.id}", headers=auth_headers(manager)).status_code == status.HTTP_403_FORBIDDEN


def test_hr_sees_everyone_with_filters(client, employee, colleague, manager, other_manager, hr_user, auth_headers):
    headers = auth_headers(hr_user)
    assert len(client.get("/api/employees", headers=headers).json()["data"]) == 5

    response = client.get("/api/employees?department=Sales", headers=headers)
    assert _emails(response) == ["oscar@acme.com"]

    response = client.get("/api/employees?role=manager", headers=headers)
    assert _emails(response) == ["maria@acme.com", "oscar@acme.com"]

    response = client.get("/api/employees?search=BOB", headers=headers)
    assert _emails(response) == ["bob@acme.com"]


def test_list_limit_is_capped(client, hr_user, auth_headers):
    response = client.get("/api/employees?limit=101", headers=auth_headers(hr_user))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unknown_employee(client, hr_user, auth_headers):
    response = client.get("/api/employees/9999", headers=auth_headers(hr_user))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["code"] == "DATABASE_NOT_FOUND"


def test_self_update(client, db_session, employee, auth_headers):
    response = client.patch(
        "/api/employees/me",
        headers=auth_headers(employee),
        json={"first_name": "Alice", "last_name": "Liddell"},
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert (data["first_name"], data["last_name"]) == ("Alice", "Liddell")

    entry = db_session.query(AuditLog).filter(AuditLog.action == "update_own_profile").one()
    assert entry.before_state["last_name"] is None
    assert entry.after_state["last_name"] == "Liddell"


def test_self_update_cannot_escalate(client, employee, auth_headers):
    for field, value in (("role", "admin"), ("department", "People"), ("is_active", False)):
        response = client.patch("/api/employees/me", headers=auth_headers(employee), json={field: value})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert field in response.json()["error"]["details"]["fields"]


def test_hr_updates_employee(client, employee, hr_user, auth_headers):
    response = client.patch(
        f"/api/admin/employees/{employee.id}",
        headers=auth_headers(hr_user),
        json={"department": "Sales", "role": "manager"},
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["department"] == "Sales"
    assert data["role"] == EmployeeRole.MANAGER.value


def test_only_admin_grants_admin(client, employee, hr_user, admin_user, auth_headers):
    url = f"/api/admin/employees/{employee.id}"
    response = client.patch(url, headers=auth_headers(hr_user), json={"role": "admin"})
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.patch(url, headers=auth_headers(admin_user), json={"role": "admin"})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["role"] == "admin"


def test_cannot_change_own_role_or_deactivate_self(client, hr_user, auth_headers):
    url = f"/api/admin/employees/{hr_user.id}"
    assert client.patch(url, headers=auth_headers(hr_user), json={"role": "employee"}).status_code == status.HTTP_403_FORBIDDEN
    assert client.patch(url, headers=auth_headers(hr_user), json={"is_active": False}).status_code == status.HTTP_403_FORBIDDEN


def test_email_change_must_be_unique(client, employee, colleague, admin_user, auth_headers):
    response = client.patch(
        f"/api/admin/employees/{employee.id}",
        headers=auth_headers(admin_user),
        json={"email": "BOB@acme.com"},
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["details"]["fields"]["email"]


def test_deactivated_employee_cannot_log_in(client, employee, admin_user, auth_headers):
    client.patch(f"/api/admin/employees/{employee.id}", headers=auth_headers(admin_user), json={"is_active": False})
    response = client.post("/api/auth/login", json={"email": "alice@acme.com", "password": "Password123!"})
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_creates_users(client, hr_user, admin_user, leave_types, auth_headers):
    payload = {"email": "new.hire@acme.com", "password": "Password123!", "name": "New Hire", "department": "Sales"}
    response = client.post("/api/admin/users", headers=auth_headers(hr_user), json={**payload, "role": "manager"})
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["data"]["role"] == "manager"

    response = client.post(
        "/api/admin/users",
        headers=auth_headers(hr_user),
        json={**payload, "email": "root@acme.com", "role": "admin"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.post(
        "/api/admin/users",
        headers=auth_headers(admin_user),
        json={**payload, "email": "root@acme.com", "role": "admin"},
    )
    assert response.status_code == status.HTTP_201_CREATED


def test_admin_routes_reject_employees(client, employee, manager, auth_headers):
    for user in (employee, manager):
        response = client.get("/api/admin/audit-logs", headers=auth_headers(user))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


PNG = b"\x89PNG\r\n\x1a\n avatar"


def _upload_photo(client, headers, name="me.png", content=PNG, content_type="image/png"):
    return client.post("/api/employees/me/photo", headers=headers, files={"file": (name, content, content_type)})


def test_upload_profile_photo(client, db_session, employee, auth_headers):
    response = _upload_photo(client, auth_headers(employee), name="Me at work.png")
    assert response.status_code == status.HTTP_200_OK
    photo_url = response.json()["data"]["photo_url"]
    assert photo_url.startswith(f"/api/employees/photos/{employee.id}/avatar/")
    assert photo_url.endswith("_Me_at_work.png")

    # the photo bucket is public
    served = client.get(photo_url)
    assert served.status_code == status.HTTP_200_OK
    assert served.content == PNG

    entry = db_session.query(AuditLog).filter(AuditLog.action == "update_profile_photo").one()
    assert entry.after_state["photo_url"] == photo_url


def test_new_photo_replaces_previous(client, employee, auth_headers):
    headers = auth_headers(employee)
    first = _upload_photo(client, headers, name="old.png").json()["data"]["photo_url"]
    second = _upload_photo(client, headers, name="new.webp", content_type="image/webp").json()["data"]["photo_url"]
    assert second != first
    assert client.get(first).status_code == status.HTTP_404_NOT_FOUND
    assert client.get(second).status_code == status.HTTP_200_OK


def test_photo_upload_enforces_bucket_rules(client, employee, auth_headers):
    headers = auth_headers(employee)
    wrong_type = _upload_photo(client, headers, name="cv.pdf", content=b"%PDF", content_type="application/pdf")
    assert wrong_type.status_code == status.HTTP_400_BAD_REQUEST
    assert wrong_type.json()["error"]["code"] == "VALIDATION_FILE_TYPE"

    too_big = _upload_photo(client, headers, content=b"0" * (2 * 1024 * 1024 + 1))
    assert too_big.status_code == status.HTTP_400_BAD_REQUEST
    assert too_big.json()["error"]["code"] == "VALIDATION_FILE_SIZE"

    assert client.get(f"/api/employees/{employee.id}", headers=headers).json()["data"]["photo_url"] is None


def test_photo_upload_requires_authentication(client, employee):
    response = _upload_photo(client, {})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
