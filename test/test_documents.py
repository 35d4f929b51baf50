from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from database.models import UserRole, Document, DocumentStatus
from services.document_service import DocumentService
from conftest import recipient


PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"


@pytest.fixture
def setup(make_department, make_requirement, make_user):
    """A department with one requirement, its officer and one student."""
    department = make_department(code="CS", name="Computer Science")
    requirement = make_requirement(department, code="TRANSCRIPT", name="Academic Transcript", file_types=["pdf"])
    officer = make_user(UserRole.OFFICER, department=department, email="officer@eksu.edu.ng")
    student = make_user(UserRole.STUDENT, department=department, email="student@eksu.edu.ng")
    return department, requirement, officer, student


def upload(client, headers, department, requirement, filename="transcript.pdf", content=PDF_BYTES, **extra):
    data = {"department": str(department.id), "requirement": str(requirement.id)}
    data.update({key: str(value) for key, value in extra.items()})
    return client.post(
        "/api/documents",
        data=data,
        files={"file": (filename, content, "application/pdf")},
        headers=headers,
    )


def test_upload_creates_pending_document(client, setup, auth_headers, outbox):
    department, requirement, officer, student = setup
    response = upload(client, auth_headers(student), department, requirement)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["version"] == 1
    assert body["isLatest"] is True
    assert body["fileType"] == "pdf"
    assert body["student"] == student.id

    assert [recipient(message) for message in outbox] == [officer.email]

    session = client.get("/api/auth/session", headers=auth_headers(student)).json()
    assert session["user"]["clearanceStatus"] == "in-progress"


def test_reupload_keeps_single_latest_version(client, setup, auth_headers):
    department, requirement, officer, student = setup
    headers = auth_headers(student)

    upload(client, headers, department, requirement)
    second = upload(client, headers, department, requirement, filename="transcript_v2.pdf")
    assert second.json()["version"] == 2

    versions = client.get(f"/api/documents/student/{student.id}", headers=headers).json()["docs"]
    assert sorted(doc["version"] for doc in versions) == [1, 2]
    assert [doc["version"] for doc in versions if doc["isLatest"]] == [2]

    latest = client.get("/api/documents", headers=headers).json()["docs"]
    assert [doc["version"] for doc in latest] == [2]


def test_upload_for_another_student_forbidden(client, setup, make_user, auth_headers):
    department, requirement, officer, student = setup
    other = make_user(UserRole.STUDENT, department=department)

    response = upload(client, auth_headers(other), department, requirement, student=student.id)
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only upload your own documents"


def test_officers_cannot_upload(client, setup, auth_headers):
    department, requirement, officer, student = setup
    response = upload(client, auth_headers(officer), department, requirement)
    assert response.status_code == 403


def test_upload_rejects_disallowed_file_type(client, setup, auth_headers):
    department, requirement, officer, student = setup
    response = upload(client, auth_headers(student), department, requirement, filename="transcript.exe")
    assert response.status_code == 400
    assert response.json()["detail"].startswith("File type .exe is not allowed")


def test_upload_rejects_oversized_file(client, setup, make_requirement, auth_headers):
    department, _, officer, student = setup
    small = make_requirement(department, file_types=["pdf"], max_file_size_mb=1)
    response = upload(
        client, auth_headers(student), department, small, content=b"0" * (1024 * 1024 + 1)
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("File too large")


def test_upload_rejects_requirement_from_other_department(client, setup, make_department, make_requirement, auth_headers):
    department, _, officer, student = setup
    foreign = make_requirement(make_department(), file_types=["pdf"])
    response = upload(client, auth_headers(student), department, foreign)
    assert response.status_code == 400


def test_review_outside_department_forbidden(client, setup, make_department, make_user, auth_headers):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    outsider = make_user(UserRole.OFFICER, department=make_department())

    response = client.post(
        f"/api/documents/{document['id']}/review", json={"status": "approved"}, headers=auth_headers(outsider)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only review documents for your department"


def test_approval_emails_student(client, setup, auth_headers, outbox):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()

    response = client.post(
        f"/api/documents/{document['id']}/review",
        json={"status": "approved", "reviewNotes": "Looks good"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "approved"
    assert body["reviewedBy"]["id"] == officer.id
    assert body["reviewNotes"] == "Looks good"
    assert body["emailSent"] is True

    approval = outbox[-1]
    assert recipient(approval) == student.email
    assert approval["Subject"] == "Document Approved - transcript.pdf"


def test_decided_document_cannot_be_reviewed_again(client, setup, auth_headers):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    headers = auth_headers(officer)

    client.post(f"/api/documents/{document['id']}/review", json={"status": "approved"}, headers=headers)
    again = client.post(
        f"/api/documents/{document['id']}/review",
        json={"status": "rejected", "rejectionReason": "expired"},
        headers=headers,
    )
    assert again.status_code == 400
    assert again.json()["detail"] == "Document has already been approved"


def test_rejection_needs_reason(client, setup, auth_headers, outbox):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    headers = auth_headers(officer)

    missing = client.post(f"/api/documents/{document['id']}/review", json={"status": "rejected"}, headers=headers)
    assert missing.status_code == 400

    other = client.post(
        f"/api/documents/{document['id']}/review",
        json={"status": "rejected", "rejectionReason": "other"},
        headers=headers,
    )
    assert other.status_code == 400

    rejected = client.post(
        f"/api/documents/{document['id']}/review",
        json={"status": "rejected", "rejectionReason": "not-clear"},
        headers=headers,
    )
    assert rejected.status_code == 200
    assert rejected.json()["rejectionReason"] == "not-clear"
    assert outbox[-1]["Subject"] == "Document Rejected - transcript.pdf"


def test_under_review_then_approved(client, setup, auth_headers):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    headers = auth_headers(officer)

    reviewing = client.post(f"/api/documents/{document['id']}/review", json={"status": "under-review"}, headers=headers)
    assert reviewing.status_code == 200
    assert reviewing.json()["status"] == "under-review"

    approved = client.post(f"/api/documents/{document['id']}/review", json={"status": "approved"}, headers=headers)
    assert approved.status_code == 200


def test_only_latest_version_is_reviewable(client, setup, auth_headers):
    department, requirement, officer, student = setup
    student_headers = auth_headers(student)
    first = upload(client, student_headers, department, requirement).json()
    upload(client, student_headers, department, requirement, filename="transcript_v2.pdf")

    response = client.post(
        f"/api/documents/{first['id']}/review", json={"status": "approved"}, headers=auth_headers(officer)
    )
    assert response.status_code == 400


def test_delete_promotes_previous_version(client, setup, auth_headers):
    department, requirement, officer, student = setup
    headers = auth_headers(student)
    first = upload(client, headers, department, requirement).json()
    second = upload(client, headers, department, requirement, filename="transcript_v2.pdf").json()

    response = client.delete(f"/api/documents/{second['id']}", headers=headers)
    assert response.status_code == 200

    remaining = client.get(f"/api/documents/student/{student.id}", headers=headers).json()["docs"]
    assert [(doc["id"], doc["isLatest"]) for doc in remaining] == [(first["id"], True)]
    assert client.get(f"/api/documents/{second['id']}", headers=headers).status_code == 404


def test_students_cannot_delete_reviewed_documents(client, setup, auth_headers):
    department, requirement, officer, student = setup
    headers = auth_headers(student)
    document = upload(client, headers, department, requirement).json()
    client.post(f"/api/documents/{document['id']}/review", json={"status": "approved"}, headers=auth_headers(officer))

    assert client.delete(f"/api/documents/{document['id']}", headers=headers).status_code == 403


def test_document_visibility(client, setup, make_department, make_user, auth_headers):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    classmate = make_user(UserRole.STUDENT, department=department)
    outsider = make_user(UserRole.OFFICER, department=make_department())

    assert client.get(f"/api/documents/{document['id']}", headers=auth_headers(officer)).status_code == 200
    assert client.get(f"/api/documents/{document['id']}", headers=auth_headers(classmate)).status_code == 403
    assert client.get(f"/api/documents/{document['id']}", headers=auth_headers(outsider)).status_code == 403


def test_download_streams_local_file(client, setup, auth_headers):
    department, requirement, officer, student = setup
    headers = auth_headers(student)
    document = upload(client, headers, department, requirement).json()

    response = client.get(f"/api/documents/{document['id']}/download", headers=headers)
    assert response.status_code == 200
    assert response.content == PDF_BYTES


def test_document_stats(client, setup, auth_headers):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()
    client.post(f"/api/documents/{document['id']}/review", json={"status": "approved"}, headers=auth_headers(officer))

    stats = client.get("/api/documents/stats", headers=auth_headers(officer)).json()
    assert stats["total"] == 1
    assert stats["approved"] == 1
    assert stats["approvalRate"] == 100


def test_concurrent_version_clash_rejected(client, setup, auth_headers, monkeypatch):
    department, requirement, officer, student = setup
    headers = auth_headers(student)
    upload(client, headers, department, requirement)

    # A second request that read the version count before the first one committed
    monkeypatch.setattr(DocumentService, "next_version", staticmethod(lambda db, student_id, requirement_id: 1))
    clash = upload(client, headers, department, requirement, filename="transcript_v2.pdf")
    assert clash.status_code == 400

    versions = client.get(f"/api/documents/student/{student.id}", headers=headers).json()["docs"]
    assert [(doc["version"], doc["isLatest"]) for doc in versions] == [(1, True)]


def test_duplicate_version_rejected_by_database(database, setup):
    department, requirement, officer, student = setup
    with database.get_session() as db:
        for name in ("a.pdf", "b.pdf"):
            db.add(Document(
                file_name=name, student_id=student.id, department_id=department.id,
                requirement_id=requirement.id, storage_path=name, file_size=1, file_type="pdf",
                status=DocumentStatus.PENDING, version=1, is_latest=True, uploaded_at=datetime.utcnow(),
            ))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()


def test_review_succeeds_when_mail_provider_fails(client, setup, auth_headers, monkeypatch):
    department, requirement, officer, student = setup
    document = upload(client, auth_headers(student), department, requirement).json()

    async def refuse(message, *args, **kwargs):
        raise ConnectionError("SMTP server unavailable")

    monkeypatch.setattr(client.app.state.email_service.mail, "send_message", refuse)
    response = client.post(
        f"/api/documents/{document['id']}/review",
        json={"status": "approved"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["emailSent"] is False
