from datetime import date, timedelta

from fastapi import status

from leave_management.core.permissions import principal_for
from leave_management.models.leave_balance import LeaveBalance
from leave_management.services.balances import BalanceService
from factories import create_leave, leave_payload, monday_of

YEAR = date.today().year


def _balance(db_session, employee, leave_type, year):
    db_session.expire_all()
    return db_session.query(LeaveBalance).filter(
        LeaveBalance.employee_id == employee.id,
        LeaveBalance.leave_type_id == leave_type.id,
        LeaveBalance.year == year,
    ).one_or_none()


def test_available_days_formula(db_session, employee, annual_leave):
    balance = _balance(db_session, employee, annual_leave, YEAR)
    balance.allocated_days = 20
    balance.carried_forward_days = 3
    balance.used_days = 5
    db_session.commit()
    assert BalanceService(db_session).get_available_days(employee.id, annual_leave.id, YEAR) == 18


def test_available_days_without_row_is_zero(db_session, employee, annual_leave):
    assert BalanceService(db_session).get_available_days(employee.id, annual_leave.id, 1999) == 0


def test_increment_creates_missing_row(db_session, employee, annual_leave):
    BalanceService(db_session).increment_used_days(employee.id, annual_leave.id, 4, 2030)
    db_session.commit()
    balance = _balance(db_session, employee, annual_leave, 2030)
    assert balance.allocated_days == 0
    assert balance.used_days == 4
    assert balance.available_days == -4


def test_increment_adds_to_existing_row(db_session, employee, annual_leave):
    service = BalanceService(db_session)
    service.increment_used_days(employee.id, annual_leave.id, 2, YEAR)
    service.increment_used_days(employee.id, annual_leave.id, 3, YEAR)
    db_session.commit()
    balance = _balance(db_session, employee, annual_leave, YEAR)
    assert balance.used_days == 5
    assert balance.available_days == 20


def test_approval_charges_balance_once(client, db_session, employee, manager, annual_leave, auth_headers):
    start = monday_of(YEAR, 10)
    leave = create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=4))

    response = client.post(f"/api/leaves/{leave['id']}/approve", headers=auth_headers(manager))
    assert response.status_code == status.HTTP_200_OK
    assert _balance(db_session, employee, annual_leave, YEAR).used_days == 5

    response = client.post(f"/api/leaves/{leave['id']}/approve", headers=auth_headers(manager))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "BUSINESS_INVALID_STATUS"
    assert _balance(db_session, employee, annual_leave, YEAR).used_days == 5


def test_approval_charges_year_of_start_date(client, db_session, employee, manager, annual_leave, auth_headers):
    # Wednesday 2025-12-31 to Friday 2026-01-02
    leave = create_leave(client, auth_headers(employee), annual_leave, date(2025, 12, 31), date(2026, 1, 2))
    assert leave["days_count"] == 3
    client.post(f"/api/leaves/{leave['id']}/approve", headers=auth_headers(manager))
    assert _balance(db_session, employee, annual_leave, 2025).used_days == 3


def test_rejection_does_not_touch_balance(client, db_session, employee, manager, annual_leave, auth_headers):
    start = monday_of(YEAR, 10)
    leave = create_leave(client, auth_headers(employee), annual_leave, start, start)
    client.post(f"/api/leaves/{leave['id']}/reject", headers=auth_headers(manager))
    assert _balance(db_session, employee, annual_leave, YEAR).used_days == 0


def test_list_balances_scoped_to_self(client, employee, colleague, leave_types, auth_headers):
    response = client.get(f"/api/leave-balances?year={YEAR}", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_200_OK
    balances = response.json()["data"]
    assert len(balances) == len(leave_types)
    assert {b["employee_id"] for b in balances} == {employee.id}

    response = client.get(f"/api/leave-balances?employee_id={colleague.id}", headers=auth_headers(employee))
    assert response.json()["data"] == []


def test_available_endpoint(client, employee, colleague, manager, annual_leave, auth_headers):
    response = client.get(f"/api/leave-balances/available?leave_type_id={annual_leave.id}", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["available_days"] == 25

    url = f"/api/leave-balances/available?leave_type_id={annual_leave.id}&employee_id={colleague.id}"
    assert client.get(url, headers=auth_headers(employee)).status_code == status.HTTP_403_FORBIDDEN
    assert client.get(url, headers=auth_headers(manager)).status_code == status.HTTP_200_OK


def test_initialize_year_creates_missing_rows_only(client, db_session, employee, hr_user, leave_types, annual_leave, auth_headers):
    existing = _balance(db_session, employee, annual_leave, YEAR)
    existing.allocated_days = 30
    db_session.commit()

    response = client.post("/api/admin/leave-balances/initialize", headers=auth_headers(hr_user), json={"year": YEAR})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["created"] == 0
    assert _balance(db_session, employee, annual_leave, YEAR).allocated_days == 30

    response = client.post("/api/admin/leave-balances/initialize", headers=auth_headers(hr_user), json={"year": 2030})
    data = response.json()["data"]
    assert data["employees"] == 2
    assert data["created"] == 2 * len(leave_types)


def test_adjust_balance(client, db_session, employee, admin_user, annual_leave, auth_headers):
    balance = _balance(db_session, employee, annual_leave, YEAR)
    response = client.patch(
        f"/api/admin/leave-balances/{balance.id}",
        headers=auth_headers(admin_user),
        json={"allocated_days": 28, "carried_forward_days": 2},
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["available_days"] == 30

    response = client.patch(f"/api/admin/leave-balances/{balance.id}", headers=auth_headers(employee), json={"allocated_days": 99})
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_balance_enforcement(client, db_session, employee, annual_leave, auth_headers, monkeypatch):
    from leave_management.core.config import settings
    monkeypatch.setattr(settings, "enforce_leave_balance", True)
    balance = _balance(db_session, employee, annual_leave, YEAR)
    balance.allocated_days = 2
    db_session.commit()

    start = monday_of(YEAR, 10)
    response = client.post("/api/leaves", headers=auth_headers(employee), json=leave_payload(annual_leave, start, start + timedelta(days=4)))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "BUSINESS_INSUFFICIENT_BALANCE"


def test_service_lists_balances_for_principal(db_session, employee, colleague, leave_types):
    balances = BalanceService(db_session, principal_for(employee)).list_balances(year=YEAR)
    assert len(balances) == len(leave_types)
    assert all(balance.available_days == balance.allocated_days for balance in balances)
