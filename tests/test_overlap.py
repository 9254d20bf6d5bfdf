from datetime import date, timedelta

from fastapi import status

from factories import create_leave, leave_payload, monday_of


def test_overlapping_pending_request_rejected(client, employee, annual_leave, auth_headers):
    first = create_leave(client, auth_headers(employee), annual_leave, date(2025, 6, 1), date(2025, 6, 5))
    response = client.post(
        "/api/leaves",
        headers=auth_headers(employee),
        json=leave_payload(annual_leave, date(2025, 6, 3), date(2025, 6, 4)),
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    error = response.json()["error"]
    assert error["code"] == "BUSINESS_DUPLICATE_REQUEST"
    assert error["details"]["conflicting_leave_ids"] == [first["id"]]


def test_overlap_with_approved_request_rejected(client, employee, manager, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    leave = create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=4))
    client.post(f"/api/leaves/{leave['id']}/approve", headers=auth_headers(manager))

    response = client.post(
        "/api/leaves",
        headers=auth_headers(employee),
        json=leave_payload(annual_leave, start + timedelta(days=4), start + timedelta(days=7)),
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_cancelled_and_rejected_requests_do_not_block(client, employee, manager, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    cancelled = create_leave(client, auth_headers(employee), annual_leave, start, start)
    client.patch(f"/api/leaves/{cancelled['id']}", headers=auth_headers(employee), json={"status": "cancelled"})
    rejected = create_leave(client, auth_headers(employee), annual_leave, start, start)
    client.post(f"/api/leaves/{rejected['id']}/reject", headers=auth_headers(manager))

    create_leave(client, auth_headers(employee), annual_leave, start, start)


def test_adjacent_ranges_do_not_overlap(client, employee, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=1))
    create_leave(client, auth_headers(employee), annual_leave, start + timedelta(days=2), start + timedelta(days=3))


def test_other_requesters_may_overlap(client, employee, colleague, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=4))
    create_leave(client, auth_headers(colleague), annual_leave, start, start + timedelta(days=4))


def test_edit_into_overlap_rejected(client, employee, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=1))
    second = create_leave(client, auth_headers(employee), annual_leave, start + timedelta(days=7), start + timedelta(days=8))

    response = client.patch(
        f"/api/leaves/{second['id']}",
        headers=auth_headers(employee),
        json={"start_date": (start + timedelta(days=1)).isoformat()},
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "BUSINESS_DUPLICATE_REQUEST"


def test_edit_does_not_conflict_with_itself(client, employee, annual_leave, auth_headers):
    start = monday_of(2025, 20)
    leave = create_leave(client, auth_headers(employee), annual_leave, start, start + timedelta(days=1))
    response = client.patch(
        f"/api/leaves/{leave['id']}",
        headers=auth_headers(employee),
        json={"end_date": (start + timedelta(days=3)).isoformat()},
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["days_count"] == 4
