from database.models import UserRole


def test_admin_creates_department(client, make_requirement, auth_headers, admin):
    requirement = make_requirement()
    response = client.post(
        "/api/departments",
        json={
            "name": "Computer Science",
            "code": "cs",
            "clearanceOrder": 1,
            "requirements": [requirement.id],
            "canAddOfficers": True,
            "officerCreationLimit": 3,
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "CS"
    assert body["requirements"] == [requirement.id]
    assert body["officersCreated"] == 0


def test_duplicate_department_code_rejected(client, make_department, auth_headers, admin):
    make_department(code="CS", name="Computer Science")
    response = client.post(
        "/api/departments",
        json={"name": "Computing", "code": " cs "},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "Department code CS already exists", "code": "BAD_REQUEST"}


def test_malformed_department_code_rejected(client, auth_headers, admin):
    response = client.post("/api/departments", json={"name": "Library", "code": "LI-B"}, headers=auth_headers(admin))
    assert response.status_code == 400


def test_only_admins_create_departments(client, make_department, make_user, auth_headers):
    officer = make_user(UserRole.OFFICER, department=make_department())
    response = client.post("/api/departments", json={"name": "Bursary", "code": "BUR"}, headers=auth_headers(officer))
    assert response.status_code == 403


def test_department_update_checks_code_uniqueness(client, make_department, auth_headers, admin):
    make_department(code="LIB")
    target = make_department(code="BUR")
    headers = auth_headers(admin)

    clash = client.patch(f"/api/departments/{target.id}", json={"code": "LIB"}, headers=headers)
    assert clash.status_code == 400

    renamed = client.patch(f"/api/departments/{target.id}", json={"name": "Bursary Office"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Bursary Office"


def test_officer_creation_fields_hidden_from_students(client, make_department, make_user, auth_headers):
    department = make_department(can_add_officers=True, officer_creation_limit=2)
    student = make_user(UserRole.STUDENT, department=department)
    officer = make_user(UserRole.OFFICER, department=department)

    as_student = client.get(f"/api/departments/{department.id}", headers=auth_headers(student)).json()
    assert "canAddOfficers" not in as_student
    as_officer = client.get(f"/api/departments/{department.id}", headers=auth_headers(officer)).json()
    assert as_officer["canAddOfficers"] is True
    assert as_officer["officerCreationLimit"] == 2


def test_department_stats_scope(client, make_department, make_user, auth_headers, admin):
    department, other = make_department(), make_department()
    make_user(UserRole.STUDENT, department=department)
    make_user(UserRole.STUDENT, department=department)
    officer = make_user(UserRole.OFFICER, department=department)
    outsider = make_user(UserRole.OFFICER, department=other)

    response = client.get(f"/api/departments/{department.id}/stats", headers=auth_headers(officer))
    assert response.status_code == 200
    statistics = response.json()["statistics"]
    assert statistics["totalStudents"] == 2
    assert statistics["totalDocuments"] == 0
    assert statistics["completionRate"] == 0

    assert client.get(f"/api/departments/{department.id}/stats", headers=auth_headers(outsider)).status_code == 403
    assert client.get(f"/api/departments/{department.id}/stats", headers=auth_headers(admin)).status_code == 200


def test_can_create_officer_reports_reason(client, make_department, make_user, auth_headers):
    disabled = make_department(can_add_officers=False)
    officer = make_user(UserRole.OFFICER, department=disabled)

    response = client.get(f"/api/departments/{disabled.id}/can-create-officer", headers=auth_headers(officer))
    assert response.json() == {"canCreate": False, "reason": "Department not enabled for officer creation"}


def test_officer_creation_enabled_listing(client, make_department, make_user, auth_headers):
    enabled = make_department(can_add_officers=True)
    make_department(can_add_officers=False)
    officer = make_user(UserRole.OFFICER, department=enabled)

    response = client.get("/api/departments/officer-creation-enabled", headers=auth_headers(officer))
    assert response.status_code == 200
    assert [dept["id"] for dept in response.json()["docs"]] == [enabled.id]


def test_department_with_students_cannot_be_deleted(client, make_department, make_user, auth_headers, admin):
    department = make_department()
    make_user(UserRole.STUDENT, department=department)
    headers = auth_headers(admin)

    assert client.delete(f"/api/departments/{department.id}", headers=headers).status_code == 400

    empty = make_department()
    assert client.delete(f"/api/departments/{empty.id}", headers=headers).status_code == 200
    assert client.get(f"/api/departments/{empty.id}", headers=headers).status_code == 404


def test_department_listing_is_paginated(client, make_department, make_user, auth_headers):
    for _ in range(3):
        make_department()
    student = make_user(UserRole.STUDENT)
    headers = auth_headers(student)

    first = client.get("/api/departments", params={"limit": 2}, headers=headers).json()
    assert len(first["docs"]) == 2
    assert first["hasMore"] is True

    second = client.get("/api/departments", params={"limit": 2, "cursor": first["nextCursor"]}, headers=headers).json()
    assert len(second["docs"]) == 1
    assert second["hasMore"] is False


def test_department_with_officers_cannot_be_deleted(client, make_department, make_user, auth_headers, admin):
    department = make_department()
    officer = make_user(UserRole.OFFICER, department=department)

    response = client.delete(f"/api/departments/{department.id}", headers=auth_headers(admin))
    assert response.status_code == 400
    assert client.get("/api/users", headers=auth_headers(officer)).status_code == 200
