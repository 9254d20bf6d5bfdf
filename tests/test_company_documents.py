from datetime import timedelta

import pytest
from fastapi import status

from leave_management.database import utcnow
from leave_management.models.company_document import DeliveryStatus, NotificationLog
from leave_management.core.permissions import principal_for
from leave_management.schemas.document import NotifierCreate
from leave_management.services.documents import DocumentService

POLICY = b"%PDF-1.4 travel policy"


def _upload(client, headers, name="Travel Policy", expires_in_days=None, is_public=False, document_type="policy"):
    data = {"name": name, "document_type": document_type, "is_public": str(is_public).lower()}
    if expires_in_days is not None:
        data["expiry_date"] = (utcnow() + timedelta(days=expires_in_days)).isoformat()
    return client.post(
        "/api/documents/company",
        headers=headers,
        data=data,
        files={"file": ("travel policy.pdf", POLICY, "application/pdf")},
    )


@pytest.fixture
def expiring_document(client, hr_user, auth_headers):
    response = _upload(client, auth_headers(hr_user), name="Fire Safety Certificate", expires_in_days=10)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]


def test_hr_uploads_company_document(client, hr_user, auth_headers):
    response = _upload(client, auth_headers(hr_user), is_public=True)
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["uploaded_by"] == hr_user.id
    assert data["is_public"] is True
    assert data["storage_path"].split("/")[:2] == [str(hr_user.id), "policy"]

    download = client.get(f"/api/documents/company/{data['id']}/download", headers=auth_headers(hr_user))
    assert download.status_code == status.HTTP_200_OK
    assert download.content == POLICY


def test_employees_cannot_upload(client, employee, auth_headers):
    response = _upload(client, auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_company_upload_rejects_bad_type(client, hr_user, auth_headers):
    response = client.post(
        "/api/documents/company",
        headers=auth_headers(hr_user),
        data={"name": "Installer", "document_type": "tools"},
        files={"file": ("setup.exe", b"MZ", "application/x-msdownload")},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "VALIDATION_FILE_TYPE"


def test_visibility_of_private_documents(client, employee, hr_user, auth_headers):
    public = _upload(client, auth_headers(hr_user), name="Handbook", is_public=True).json()["data"]
    private = _upload(client, auth_headers(hr_user), name="Salary Bands").json()["data"]

    listed = client.get("/api/documents/company", headers=auth_headers(employee)).json()["data"]
    assert [doc["id"] for doc in listed] == [public["id"]]
    assert client.get(f"/api/documents/company/{private['id']}", headers=auth_headers(employee)).status_code == status.HTTP_403_FORBIDDEN

    hr_listed = client.get("/api/documents/company", headers=auth_headers(hr_user)).json()["data"]
    assert {doc["id"] for doc in hr_listed} == {public["id"], private["id"]}


def test_filter_by_document_type(client, hr_user, auth_headers):
    _upload(client, auth_headers(hr_user), name="Handbook", document_type="handbook")
    _upload(client, auth_headers(hr_user), name="Insurance", document_type="certificate")
    listed = client.get("/api/documents/company?document_type=certificate", headers=auth_headers(hr_user)).json()["data"]
    assert [doc["name"] for doc in listed] == ["Insurance"]


def test_delete_company_document(client, employee, hr_user, expiring_document, auth_headers):
    url = f"/api/documents/company/{expiring_document['id']}"
    assert client.delete(url, headers=auth_headers(employee)).status_code == status.HTTP_403_FORBIDDEN
    assert client.delete(url, headers=auth_headers(hr_user)).status_code == status.HTTP_200_OK
    assert client.get(url, headers=auth_headers(hr_user)).status_code == status.HTTP_404_NOT_FOUND


def test_subscribe_and_update(client, hr_user, expiring_document, auth_headers):
    url = f"/api/documents/company/{expiring_document['id']}/notifiers"
    created = client.post(url, headers=auth_headers(hr_user), json={"notification_frequency": "weekly"})
    assert created.status_code == status.HTTP_201_CREATED

    updated = client.post(
        url,
        headers=auth_headers(hr_user),
        json={"notification_frequency": "custom", "custom_frequency_days": 3},
    )
    assert updated.json()["data"]["id"] == created.json()["data"]["id"]
    assert updated.json()["data"]["custom_frequency_days"] == 3

    listed = client.get(url, headers=auth_headers(hr_user)).json()["data"]
    assert len(listed) == 1


def test_custom_frequency_requires_days(client, hr_user, expiring_document, auth_headers):
    response = client.post(
        f"/api/documents/company/{expiring_document['id']}/notifiers",
        headers=auth_headers(hr_user),
        json={"notification_frequency": "custom"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "custom_frequency_days" in response.json()["error"]["details"]["fields"]


def test_unsubscribe(client, hr_user, admin_user, employee, expiring_document, auth_headers):
    url = f"/api/documents/company/{expiring_document['id']}/notifiers"
    notifier = client.post(url, headers=auth_headers(admin_user), json={}).json()["data"]

    response = client.delete(f"/api/documents/notifiers/{notifier['id']}", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    response = client.delete(f"/api/documents/notifiers/{notifier['id']}", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    assert client.get(url, headers=auth_headers(hr_user)).json()["data"] == []


def test_expiry_check_notifies_due_subscribers(client, db_session, hr_user, admin_user, expiring_document, auth_headers):
    url = f"/api/documents/company/{expiring_document['id']}/notifiers"
    client.post(url, headers=auth_headers(hr_user), json={"notification_frequency": "weekly"})
    client.post(url, headers=auth_headers(admin_user), json={"notification_frequency": "monthly"})
    # outside the window
    _upload(client, auth_headers(hr_user), name="Lease", expires_in_days=90)

    response = client.post("/api/admin/documents/check-expiry", headers=auth_headers(hr_user))
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["notifications_sent"] == 1
    notification = data["notifications"][0]
    assert notification["document"] == "Fire Safety Certificate"
    assert sorted(notification["recipients"]) == ["admin@acme.com", "hana@acme.com"]
    assert notification["days_until_expiry"] == 10

    logs = db_session.query(NotificationLog).all()
    assert len(logs) == 2
    assert all(log.status == DeliveryStatus.SENT for log in logs)

    inbox = client.get("/api/notifications", headers=auth_headers(hr_user)).json()["data"]
    assert inbox[0]["title"] == "Document expiring soon"

    # nobody is due again straight away
    again = client.post("/api/admin/documents/check-expiry", headers=auth_headers(hr_user)).json()["data"]
    assert again["notifications_sent"] == 0


def test_expiry_check_respects_frequency(db_session, hr_user, admin_user, expiring_document):
    service = DocumentService(db_session, principal_for(hr_user))
    service.subscribe(expiring_document["id"], NotifierCreate(notification_frequency="weekly"))
    DocumentService(db_session, principal_for(admin_user)).subscribe(expiring_document["id"], NotifierCreate(notification_frequency="monthly"))

    now = utcnow()
    assert len(service.check_document_expiry(now)["notifications"][0]["recipients"]) == 2

    # a week later only the weekly subscriber is due
    result = service.check_document_expiry(now + timedelta(days=7))
    assert result["notifications"][0]["recipients"] == ["hana@acme.com"]


def test_expired_documents_are_skipped(db_session, hr_user, expiring_document):
    service = DocumentService(db_session, principal_for(hr_user))
    service.subscribe(expiring_document["id"], NotifierCreate(notification_frequency="weekly"))
    assert service.check_document_expiry(utcnow() + timedelta(days=11))["notifications_sent"] == 0
