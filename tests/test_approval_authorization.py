from datetime import date, timedelta

import pytest
from fastapi import status

from leave_management.core.exceptions import AccessDeniedError
from leave_management.core.permissions import can_decide_leave, principal_for, shares_department
from leave_management.models.employee import EmployeeRole
from leave_management.models.leave_request import LeaveRequest, LeaveStatus
from leave_management.services.leave_service import LeaveService
from factories import create_leave, monday_of

YEAR = date.today().year


@pytest.fixture
def pending_leave(client, employee, annual_leave, auth_headers):
    start = monday_of(YEAR, 10)
    return create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=1))


def test_manager_of_other_department_forbidden(client, db_session, pending_leave, other_manager, auth_headers):
    response = client.post(f"/api/leaves/{pending_leave['id']}/approve", headers=auth_headers(other_manager))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"
    db_session.expire_all()
    assert db_session.get(LeaveRequest, pending_leave["id"]).status == LeaveStatus.PENDING


def test_same_department_manager_can_approve(client, pending_leave, manager, auth_headers):
    response = client.post(
        f"/api/leaves/{pending_leave['id']}/approve",
        headers=auth_headers(manager),
        json={"comments": "Enjoy"},
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["status"] == "approved"
    assert data["approver_id"] == manager.id


@pytest.mark.parametrize("approver_fixture", ["hr_user", "admin_user"])
def test_elevated_roles_approve_any_department(client, request, pending_leave, auth_headers, approver_fixture):
    approver = request.getfixturevalue(approver_fixture)
    response = client.post(f"/api/leaves/{pending_leave['id']}/approve", headers=auth_headers(approver))
    assert response.status_code == status.HTTP_200_OK


def test_employee_cannot_approve(client, pending_leave, colleague, auth_headers):
    response = client.post(f"/api/leaves/{pending_leave['id']}/approve", headers=auth_headers(colleague))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_decide_unknown_leave_is_not_found(client, manager, auth_headers):
    response = client.post("/api/leaves/approve", headers=auth_headers(manager), json={"leave_id": 424242, "action": "approved"})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["code"] == "DATABASE_NOT_FOUND"


def test_decide_rejects_unknown_action(client, pending_leave, manager, auth_headers):
    response = client.post(
        "/api/leaves/approve",
        headers=auth_headers(manager),
        json={"leave_id": pending_leave["id"], "action": "cancelled"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_manager_without_department_cannot_decide(db_session, make_employee, employee, annual_leave):
    lone_manager = make_employee("lone@acme.com", role=EmployeeRole.MANAGER, department=None)
    start = monday_of(YEAR, 10)
    leave = LeaveRequest(
        requester_id=employee.id, leave_type_id=annual_leave.id,
        start_date=start, end_date=start, days_count=1, status=LeaveStatus.PENDING,
    )
    db_session.add(leave)
    db_session.commit()

    with pytest.raises(AccessDeniedError):
        LeaveService(db_session, principal_for(lone_manager)).decide(leave.id, LeaveStatus.APPROVED)


def test_null_departments_never_match(make_employee):
    first = make_employee("first@acme.com", role=EmployeeRole.MANAGER, department=None)
    second = make_employee("second@acme.com", department=None)
    assert not shares_department(principal_for(first), second.department)


def test_policy_checks_loaded_row(db_session, employee, manager, other_manager, annual_leave):
    start = monday_of(YEAR, 10)
    leave = LeaveRequest(
        requester_id=employee.id, leave_type_id=annual_leave.id,
        start_date=start, end_date=start, days_count=1, status=LeaveStatus.PENDING,
    )
    db_session.add(leave)
    db_session.commit()
    assert can_decide_leave(principal_for(manager), leave)
    assert not can_decide_leave(principal_for(other_manager), leave)
    assert not can_decide_leave(principal_for(employee), leave)


def test_inactive_account_token_is_forbidden(client, db_session, employee, auth_headers):
    headers = auth_headers(employee)
    employee.is_active = False
    db_session.commit()
    response = client.get("/api/leaves", headers=headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
