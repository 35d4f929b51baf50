from database.models import UserRole
from conftest import recipient


def student_payload(department, **overrides):
    payload = {
        "name": "Tolu Adeyemi",
        "email": "t.adeyemi@eksu.edu.ng",
        "matricNo": "CSC/2020/014",
        "department": department.id,
    }
    payload.update(overrides)
    return payload


def test_admin_creates_student_and_sends_welcome(client, make_department, auth_headers, admin, outbox):
    department = make_department(code="CS", name="Computer Science")
    response = client.post("/api/users/students", json=student_payload(department), headers=auth_headers(admin))

    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "student"
    assert body["matricNo"] == "CSC/2020/014"
    assert body["clearanceStatus"] == "not-started"
    assert body["hasSetPassword"] is False
    assert body["emailSent"] is True
    assert len(outbox) == 1
    assert recipient(outbox[0]) == "t.adeyemi@eksu.edu.ng"


def test_officer_creates_students_only_in_own_department(client, make_department, make_user, auth_headers):
    own, other = make_department(), make_department()
    officer = make_user(UserRole.OFFICER, department=own)
    headers = auth_headers(officer)

    created = client.post("/api/users/students", json=student_payload(own), headers=headers)
    assert created.status_code == 201

    denied = client.post(
        "/api/users/students",
        json=student_payload(other, email="x@eksu.edu.ng", matricNo="CSC/2020/015"),
        headers=headers,
    )
    assert denied.status_code == 403


def test_student_creation_validation(client, make_department, make_user, auth_headers, admin):
    department = make_department()
    existing = make_user(UserRole.STUDENT, department=department)
    headers = auth_headers(admin)

    duplicate = client.post("/api/users/students", json=student_payload(department, email=existing.email), headers=headers)
    assert duplicate.status_code == 400

    bad_matric = client.post("/api/users/students", json=student_payload(department, matricNo="no spaces allowed"), headers=headers)
    assert bad_matric.status_code == 400

    missing_email = client.post(
        "/api/users/students",
        json={"name": "No Email", "matricNo": "CSC/2020/099", "department": department.id},
        headers=headers,
    )
    assert missing_email.status_code == 400
    assert missing_email.json()["code"] == "BAD_REQUEST"


def test_students_cannot_create_users(client, make_department, make_user, auth_headers):
    department = make_department()
    student = make_user(UserRole.STUDENT, department=department)
    response = client.post("/api/users/students", json=student_payload(department), headers=auth_headers(student))
    assert response.status_code == 403


def test_officer_creation_limit(client, make_department, make_user, auth_headers):
    department = make_department(can_add_officers=True, officer_creation_limit=1)
    officer = make_user(UserRole.OFFICER, department=department)
    headers = auth_headers(officer)

    first = client.post(
        "/api/users/officers",
        json={"name": "New Officer", "email": "new.officer@eksu.edu.ng", "department": department.id},
        headers=headers,
    )
    assert first.status_code == 201
    assert first.json()["role"] == "officer"

    second = client.post(
        "/api/users/officers",
        json={"name": "Another Officer", "email": "another@eksu.edu.ng", "department": department.id},
        headers=headers,
    )
    assert second.status_code == 400
    assert second.json()["detail"] == "Officer creation limit reached"

    creation = client.get(f"/api/departments/{department.id}/can-create-officer", headers=headers)
    assert creation.json()["canCreate"] is False
    assert creation.json()["currentCount"] == 1


def test_failed_officer_creation_releases_slot(client, make_department, make_user, auth_headers):
    department = make_department(can_add_officers=True, officer_creation_limit=1)
    officer = make_user(UserRole.OFFICER, department=department)
    headers = auth_headers(officer)

    duplicate = client.post(
        "/api/users/officers",
        json={"name": "Dup", "email": officer.email, "department": department.id},
        headers=headers,
    )
    assert duplicate.status_code == 400

    creation = client.get(f"/api/departments/{department.id}/can-create-officer", headers=headers)
    assert creation.json()["canCreate"] is True


def test_officer_creation_requires_enabled_department(client, make_department, make_user, auth_headers):
    department = make_department(can_add_officers=False)
    officer = make_user(UserRole.OFFICER, department=department)
    response = client.post(
        "/api/users/officers",
        json={"name": "New Officer", "email": "new.officer@eksu.edu.ng", "department": department.id},
        headers=auth_headers(officer),
    )
    assert response.status_code == 403


def test_admin_creates_officers_without_limit(client, make_department, auth_headers, admin):
    department = make_department(can_add_officers=False)
    response = client.post(
        "/api/users/officers",
        json={"name": "Dean", "email": "dean@eksu.edu.ng", "role": "student-affairs", "department": department.id},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert response.json()["role"] == "student-affairs"


def test_bulk_import_reports_each_row(client, make_department, make_user, auth_headers, admin, outbox):
    department = make_department()
    taken = make_user(UserRole.STUDENT, department=department)
    rows = [
        student_payload(department, email="one@eksu.edu.ng", matricNo="BLK/001"),
        student_payload(department, email=taken.email, matricNo="BLK/002"),
        student_payload(department, email="three@eksu.edu.ng", matricNo="BLK/003"),
    ]

    response = client.post("/api/users/students/bulk", json={"students": rows}, headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total": 3, "success": 2, "error": 1}
    assert [r["success"] for r in body["results"]] == [True, False, True]

    recipients = [recipient(message) for message in outbox]
    assert recipients.count(admin.email) == 1
    assert "one@eksu.edu.ng" in recipients and "three@eksu.edu.ng" in recipients


def test_bulk_import_is_admin_only(client, make_department, make_user, auth_headers):
    department = make_department()
    officer = make_user(UserRole.OFFICER, department=department)
    response = client.post(
        "/api/users/students/bulk",
        json={"students": [student_payload(department)]},
        headers=auth_headers(officer),
    )
    assert response.status_code == 403


def test_soft_delete_suspends_and_signs_out(client, make_department, make_user, auth_headers, admin):
    department = make_department()
    student = make_user(UserRole.STUDENT, department=department)
    student_headers = auth_headers(student)
    admin_headers = auth_headers(admin)

    response = client.delete(f"/api/users/{student.id}", headers=admin_headers)
    assert response.status_code == 200

    fetched = client.get(f"/api/users/{student.id}", headers=admin_headers).json()
    assert fetched["status"] == "suspended"
    assert fetched["isActive"] is False
    assert client.get("/api/auth/session", headers=student_headers).status_code == 401


def test_admin_cannot_delete_self(client, auth_headers, admin):
    response = client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin))
    assert response.status_code == 400


def test_users_edit_only_own_basic_fields(client, make_department, make_user, auth_headers):
    student = make_user(UserRole.STUDENT, department=make_department())
    headers = auth_headers(student)

    renamed = client.patch(f"/api/users/{student.id}", json={"name": "Renamed Student"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Renamed Student"

    denied = client.patch(f"/api/users/{student.id}", json={"email": "new@eksu.edu.ng"}, headers=headers)
    assert denied.status_code == 403


def test_clearance_cannot_be_completed_by_user_update(client, make_department, make_user, auth_headers, admin):
    student = make_user(UserRole.STUDENT, department=make_department())
    response = client.patch(
        f"/api/users/{student.id}", json={"clearanceStatus": "completed"}, headers=auth_headers(admin)
    )
    assert response.status_code == 400


def test_officer_listing_is_scoped_to_department(client, make_department, make_user, auth_headers):
    own, other = make_department(), make_department()
    officer = make_user(UserRole.OFFICER, department=own)
    mine = make_user(UserRole.STUDENT, department=own)
    make_user(UserRole.STUDENT, department=other)
    headers = auth_headers(officer)

    listed = client.get("/api/users", params={"role": "student"}, headers=headers)
    assert listed.status_code == 200
    assert [doc["id"] for doc in listed.json()["docs"]] == [mine.id]

    assert client.get("/api/users", params={"department": other.id}, headers=headers).status_code == 403


def test_user_stats(client, make_department, make_user, auth_headers, admin):
    department = make_department()
    make_user(UserRole.STUDENT, department=department)
    make_user(UserRole.OFFICER, department=department)

    stats = client.get("/api/users/stats", headers=auth_headers(admin)).json()
    assert stats["students"] == 1
    assert stats["officers"] == 1
    assert stats["admins"] == 1
    assert stats["clearanceStats"]["notStarted"] == 1


def test_officer_without_department_is_denied_listings(client, make_department, make_user, auth_headers):
    make_user(UserRole.STUDENT, department=make_department())
    officer = make_user(UserRole.OFFICER)
    headers = auth_headers(officer)

    assert client.get("/api/users", headers=headers).status_code == 403
    assert client.get("/api/clearance/progress", headers=headers).status_code == 403
    assert client.get("/api/clearance/stats", headers=headers).status_code == 403
    assert client.get("/api/documents/stats", headers=headers).status_code == 403


def test_feature_access_by_area(client, make_department, make_user, auth_headers):
    department = make_department()
    student = make_user(UserRole.STUDENT, department=department)

    body = client.get(f"/api/users/{student.id}/can-access-features", headers=auth_headers(student)).json()
    assert body["canAccess"] is True
    assert body["studentFeatures"] is True
    assert body["officerFeatures"] is False
