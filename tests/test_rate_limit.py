from datetime import date, timedelta

import pytest
from fastapi import status

from leave_management.core.limiter import limiter, rate_limit_key
from factories import leave_payload, monday_of

YEAR = date.today().year


@pytest.fixture
def rate_limited():
    limiter.reset()
    limiter.enabled = True
    try:
        yield limiter
    finally:
        limiter.enabled = False
        limiter.reset()


def test_leave_creation_limited_per_caller(client, employee, colleague, annual_leave, auth_headers, rate_limited):
    headers = auth_headers(employee)
    responses = []
    for week in range(2, 13):
        start = monday_of(YEAR, week)
        responses.append(client.post("/api/leaves", headers=headers, json=leave_payload(annual_leave, start, start + timedelta(days=1))))

    assert all(r.status_code == status.HTTP_201_CREATED for r in responses[:10])
    assert responses[10].status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert responses[10].json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"

    # another caller has its own bucket
    start = monday_of(YEAR, 20)
    response = client.post("/api/leaves", headers=auth_headers(colleague), json=leave_payload(annual_leave, start, start))
    assert response.status_code == status.HTTP_201_CREATED


def test_disabled_limiter_lets_everything_through(client, employee, annual_leave, auth_headers):
    headers = auth_headers(employee)
    for week in range(2, 14):
        start = monday_of(YEAR, week)
        response = client.post("/api/leaves", headers=headers, json=leave_payload(annual_leave, start, start))
        assert response.status_code == status.HTTP_201_CREATED


class _FakeRequest:
    def __init__(self, headers, host="10.0.0.7"):
        self.headers = headers
        self.client = type("Client", (), {"host": host})()


def test_rate_limit_key_prefers_token():
    by_token = rate_limit_key(_FakeRequest({"Authorization": "Bearer abc"}))
    assert by_token.startswith("token:")
    assert by_token != rate_limit_key(_FakeRequest({"Authorization": "Bearer xyz"}))
    assert rate_limit_key(_FakeRequest({})) == "ip:10.0.0.7"
