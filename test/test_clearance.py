import pytest

from database.models import UserRole, ClearanceRecord
from services.clearance_service import ClearanceSummary
from conftest import recipient


@pytest.fixture
def cleared_setup(make_department, make_requirement, make_user):
    department = make_department(code="LIB", name="Library")
    transcript = make_requirement(department, name="Transcript", file_types=["pdf"], display_order=1)
    receipt = make_requirement(department, name="Library Receipt", file_types=["pdf"], display_order=2)
    officer = make_user(UserRole.OFFICER, department=department)
    student = make_user(UserRole.STUDENT, department=department)
    return department, [transcript, receipt], officer, student


def submit_and_approve(client, auth_headers, department, requirement, officer, student):
    uploaded = client.post(
        "/api/documents",
        data={"department": str(department.id), "requirement": str(requirement.id)},
        files={"file": ("proof.pdf", b"%PDF-1.4 proof", "application/pdf")},
        headers=auth_headers(student),
    ).json()
    client.post(
        f"/api/documents/{uploaded['id']}/review",
        json={"status": "approved"},
        headers=auth_headers(officer),
    )
    return uploaded


def test_summary_rates():
    summary = ClearanceSummary(
        total_requirements=4, completed_documents=1, pending_documents=2,
        under_review_documents=0, rejected_documents=1,
    )
    assert summary.completion_rate == 25
    assert not summary.is_completed
    assert summary.to_dict()["completionRate"] == 25


def test_summary_without_requirements_is_not_complete():
    summary = ClearanceSummary(0, 0, 0, 0, 0)
    assert summary.completion_rate == 0
    assert not summary.is_completed


def test_student_clearance_overview(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    submit_and_approve(client, auth_headers, department, requirements[0], officer, student)

    response = client.get(f"/api/clearance/students/{student.id}", headers=auth_headers(student))
    assert response.status_code == 200
    body = response.json()
    assert body["statistics"]["totalRequirements"] == 2
    assert body["statistics"]["completedDocuments"] == 1
    assert body["statistics"]["completionRate"] == 50
    assert body["statistics"]["isCompleted"] is False
    assert [req["name"] for req in body["requirements"]] == ["Transcript", "Library Receipt"]
    assert body["student"]["clearanceStatus"] == "in-progress"


def test_premature_completion_rejected(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    submit_and_approve(client, auth_headers, department, requirements[0], officer, student)

    response = client.post(f"/api/clearance/students/{student.id}/complete", headers=auth_headers(officer))
    assert response.status_code == 400
    assert response.json()["detail"] == "Clearance cannot be completed: 1 of 2 requirements approved"

    manual = client.patch(
        f"/api/clearance/students/{student.id}/status",
        json={"status": "completed"},
        headers=auth_headers(officer),
    )
    assert manual.status_code == 400


def test_completion_flow(client, cleared_setup, auth_headers, outbox):
    department, requirements, officer, student = cleared_setup
    for requirement in requirements:
        submit_and_approve(client, auth_headers, department, requirement, officer, student)

    response = client.post(
        f"/api/clearance/students/{student.id}/complete",
        json={"notes": "All clear"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["student"]["clearanceStatus"] == "completed"
    assert body["statistics"]["isCompleted"] is True
    assert body["emailSent"] is True
    assert recipient(outbox[-1]) == student.email
    assert outbox[-1]["Subject"] == "Clearance Completed - EKSU Clearance System"

    again = client.post(f"/api/clearance/students/{student.id}/complete", headers=auth_headers(officer))
    assert again.status_code == 400


def test_timeline_records_each_step(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    for requirement in requirements:
        submit_and_approve(client, auth_headers, department, requirement, officer, student)
    client.post(f"/api/clearance/students/{student.id}/complete", headers=auth_headers(officer))

    response = client.get(f"/api/clearance/students/{student.id}/timeline", headers=auth_headers(student))
    assert response.status_code == 200
    types = [record["recordType"] for record in response.json()["records"]]
    assert types[0] == "final-clearance"
    assert types.count("document-upload") == 2
    assert types.count("document-approval") == 2
    assert types.count("department-clearance") == 1


def test_department_clearance_recorded_once(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    for requirement in requirements:
        submit_and_approve(client, auth_headers, department, requirement, officer, student)
    # A newer version approved again must not add a second department sign-off
    submit_and_approve(client, auth_headers, department, requirements[0], officer, student)

    records = client.get(
        f"/api/clearance/students/{student.id}/timeline", headers=auth_headers(officer)
    ).json()["records"]
    assert [r["recordType"] for r in records].count("department-clearance") == 1


def test_timeline_hidden_from_other_departments(client, cleared_setup, make_department, make_user, auth_headers):
    department, requirements, officer, student = cleared_setup
    outsider = make_user(UserRole.OFFICER, department=make_department())
    response = client.get(f"/api/clearance/students/{student.id}/timeline", headers=auth_headers(outsider))
    assert response.status_code == 403


def test_manual_record_types(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    headers = auth_headers(officer)

    logged = client.post(
        "/api/clearance/records",
        json={"student": student.id, "description": "Called student about missing receipt", "metadata": {"channel": "phone"}},
        headers=headers,
    )
    assert logged.status_code == 201
    assert logged.json()["recordType"] == "system-action"
    assert logged.json()["department"] == department.id
    assert logged.json()["metadata"] == {"channel": "phone"}

    forged = client.post(
        "/api/clearance/records",
        json={"student": student.id, "recordType": "final-clearance"},
        headers=headers,
    )
    assert forged.status_code == 400


def test_status_change_to_on_hold(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    response = client.patch(
        f"/api/clearance/students/{student.id}/status",
        json={"status": "on-hold", "notes": "Outstanding library fine"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    assert response.json()["clearanceStatus"] == "on-hold"


def test_clearance_stats_and_progress(client, cleared_setup, make_user, auth_headers, admin):
    department, requirements, officer, student = cleared_setup
    make_user(UserRole.STUDENT, department=department)
    submit_and_approve(client, auth_headers, department, requirements[0], officer, student)

    stats = client.get("/api/clearance/stats", headers=auth_headers(officer)).json()
    assert stats["totalStudents"] == 2
    assert stats["inProgress"] == 1
    assert stats["notStarted"] == 1

    progress = client.get("/api/clearance/progress", headers=auth_headers(admin)).json()
    by_id = {doc["id"]: doc for doc in progress["docs"]}
    assert by_id[student.id]["progress"]["completedDocuments"] == 1


def test_student_dashboard(client, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    submit_and_approve(client, auth_headers, department, requirements[0], officer, student)

    response = client.get("/api/dashboard/student", headers=auth_headers(student))
    assert response.status_code == 200
    body = response.json()
    assert body["statistics"]["completedDocuments"] == 1
    assert len(body["checklist"]) == 2


def test_status_patch_cannot_complete_clearance(client, cleared_setup, auth_headers, outbox):
    department, requirements, officer, student = cleared_setup
    for requirement in requirements:
        submit_and_approve(client, auth_headers, department, requirement, officer, student)
    sent_before = len(outbox)

    response = client.patch(
        f"/api/clearance/students/{student.id}/status",
        json={"status": "completed"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 400
    assert len(outbox) == sent_before

    overview = client.get(f"/api/clearance/students/{student.id}", headers=auth_headers(student)).json()
    assert overview["student"]["clearanceStatus"] == "in-progress"
    records = client.get(
        f"/api/clearance/students/{student.id}/timeline", headers=auth_headers(officer)
    ).json()["records"]
    assert "final-clearance" not in [record["recordType"] for record in records]


def test_clearance_records_are_write_once(client, database, cleared_setup, auth_headers):
    department, requirements, officer, student = cleared_setup
    created = client.post(
        "/api/clearance/records",
        json={"student": student.id, "description": "Original entry"},
        headers=auth_headers(officer),
    ).json()

    with database.get_session() as db:
        record = db.get(ClearanceRecord, created["id"])
        record.description = "Rewritten entry"
        with pytest.raises(ValueError):
            db.commit()
        db.rollback()

    with database.get_session() as db:
        assert db.get(ClearanceRecord, created["id"]).description == "Original entry"
