from database.models import UserRole


def test_admin_creates_requirement(client, make_department, auth_headers, admin):
    department = make_department(code="BUR", name="Bursary")
    response = client.post(
        "/api/requirements",
        json={
            "name": "School Fees Receipt",
            "code": "fees_receipt",
            "documentType": "payment-receipt",
            "fileTypes": [".PDF", "jpg", "pdf"],
            "maxFileSize": 2,
            "departments": [department.id],
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "FEES_RECEIPT"
    assert body["fileTypes"] == ["pdf", "jpg"]
    assert body["departments"] == [department.id]


def test_requirement_validation(client, make_requirement, auth_headers, admin):
    make_requirement(code="TRANSCRIPT")
    headers = auth_headers(admin)

    duplicate = client.post("/api/requirements", json={"name": "Transcript", "code": "transcript"}, headers=headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Requirement code TRANSCRIPT already exists"

    bad_type = client.post(
        "/api/requirements", json={"name": "Binary", "code": "BIN", "fileTypes": ["exe"]}, headers=headers
    )
    assert bad_type.status_code == 400

    unknown_department = client.post(
        "/api/requirements", json={"name": "Orphan", "code": "ORPHAN", "departments": [999]}, headers=headers
    )
    assert unknown_department.status_code == 400


def test_requirements_filtered_by_department(client, make_department, make_requirement, make_user, auth_headers):
    library, bursary = make_department(), make_department()
    wanted = make_requirement(library)
    make_requirement(bursary)
    student = make_user(UserRole.STUDENT, department=library)

    response = client.get("/api/requirements", params={"department": library.id}, headers=auth_headers(student))
    assert response.status_code == 200
    assert [req["id"] for req in response.json()["docs"]] == [wanted.id]


def test_only_admins_manage_requirements(client, make_department, make_requirement, make_user, auth_headers):
    department = make_department()
    requirement = make_requirement(department)
    officer = make_user(UserRole.OFFICER, department=department)

    response = client.patch(
        f"/api/requirements/{requirement.id}", json={"name": "Renamed"}, headers=auth_headers(officer)
    )
    assert response.status_code == 403


def test_requirement_with_uploads_cannot_be_deleted(client, make_department, make_requirement, make_user, auth_headers, admin):
    department = make_department()
    used = make_requirement(department, file_types=["pdf"])
    unused = make_requirement(department)
    student = make_user(UserRole.STUDENT, department=department)
    client.post(
        "/api/documents",
        data={"department": str(department.id), "requirement": str(used.id)},
        files={"file": ("receipt.pdf", b"%PDF-1.4 receipt", "application/pdf")},
        headers=auth_headers(student),
    )
    headers = auth_headers(admin)

    assert client.delete(f"/api/requirements/{used.id}", headers=headers).status_code == 400

    deactivated = client.patch(f"/api/requirements/{used.id}", json={"status": "inactive"}, headers=headers)
    assert deactivated.json()["status"] == "inactive"

    assert client.delete(f"/api/requirements/{unused.id}", headers=headers).status_code == 200
    assert client.get(f"/api/requirements/{unused.id}", headers=headers).status_code == 404
