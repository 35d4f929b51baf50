import config
from database.models import User, UserRole, TokenPurpose
from services.auth_service import AuthService
from conftest import DEFAULT_PASSWORD, recipient


def issue(database, user, purpose):
    with database.get_session() as db:
        return AuthService.issue_token(db, db.get(User, user.id), purpose)


def test_login_sets_session_cookie(client, make_department, make_user):
    student = make_user(UserRole.STUDENT, department=make_department())

    response = client.post("/api/auth/login", json={"email": student.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == student.email
    assert body["redirectTo"] == "/dashboard/student"
    assert config.AUTH_COOKIE_NAME in response.cookies

    session = client.get("/api/auth/session")
    assert session.status_code == 200
    assert session.json()["user"]["id"] == student.id
    assert session.json()["capabilities"]["upload_documents"] is True


def test_login_rejects_wrong_password(client, make_user):
    officer = make_user(UserRole.OFFICER)
    response = client.post("/api/auth/login", json={"email": officer.email, "password": "Wrong12345"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid email or password", "code": "UNAUTHORIZED"}


def test_login_requires_password_setup(client, make_user):
    student = make_user(UserRole.STUDENT, password=None)
    response = client.post("/api/auth/login", json={"email": student.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 403


def test_logout_revokes_session(client, make_user, auth_headers):
    headers = auth_headers(make_user(UserRole.ADMIN))
    assert client.get("/api/auth/session", headers=headers).status_code == 200

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/session", headers=headers).status_code == 401


def test_session_requires_authentication(client):
    response = client.get("/api/auth/session")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_magic_link_sets_password_once(client, database, make_user):
    student = make_user(UserRole.STUDENT, password=None)
    token = issue(database, student, TokenPurpose.MAGIC_LINK)

    first = client.post("/api/auth/magic-link/verify", json={"token": token, "password": "NewPass123"})
    assert first.status_code == 200
    assert first.json()["email"] == student.email

    second = client.post("/api/auth/magic-link/verify", json={"token": token, "password": "OtherPass456"})
    assert second.status_code == 400

    login = client.post("/api/auth/login", json={"email": student.email, "password": "NewPass123"})
    assert login.status_code == 200


def test_weak_password_leaves_magic_link_usable(client, database, make_user):
    student = make_user(UserRole.STUDENT, password=None)
    token = issue(database, student, TokenPurpose.MAGIC_LINK)

    weak = client.post("/api/auth/magic-link/verify", json={"token": token, "password": "short"})
    assert weak.status_code == 400

    retry = client.post("/api/auth/magic-link/verify", json={"token": token, "password": "LongEnough1"})
    assert retry.status_code == 200


def test_reset_token_cannot_be_used_as_magic_link(client, database, make_user):
    student = make_user(UserRole.STUDENT)
    token = issue(database, student, TokenPurpose.PASSWORD_RESET)
    response = client.post("/api/auth/magic-link/verify", json={"token": token, "password": "NewPass123"})
    assert response.status_code == 400


def test_magic_link_request_does_not_reveal_accounts(client, outbox):
    response = client.post("/api/auth/magic-link", json={"email": "nobody@eksu.edu.ng"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert outbox == []


def test_magic_link_request_emails_registered_user(client, make_department, make_user, outbox):
    student = make_user(UserRole.STUDENT, department=make_department(), password=None)
    response = client.post("/api/auth/magic-link", json={"email": student.email})
    assert response.status_code == 200
    assert len(outbox) == 1
    assert recipient(outbox[0]) == student.email
    assert "Set Your Password" in outbox[0]["Subject"]


def test_password_reset_flow(client, database, make_user, auth_headers, outbox):
    officer = make_user(UserRole.OFFICER)
    old_session = auth_headers(officer)

    requested = client.post("/api/auth/password-reset", json={"email": officer.email})
    assert requested.status_code == 200
    assert len(outbox) == 1
    assert "Password Reset" in outbox[0]["Subject"]

    token = issue(database, officer, TokenPurpose.PASSWORD_RESET)
    confirmed = client.post("/api/auth/password-reset/confirm", json={"token": token, "password": "Fresh2025pw"})
    assert confirmed.status_code == 200

    assert client.get("/api/auth/session", headers=old_session).status_code == 401
    login = client.post("/api/auth/login", json={"email": officer.email, "password": "Fresh2025pw"})
    assert login.status_code == 200


def test_has_set_password_visible_to_self_and_admin(client, make_user, auth_headers, admin):
    student = make_user(UserRole.STUDENT, password=None)
    other = make_user(UserRole.STUDENT)

    response = client.get(f"/api/auth/users/{student.id}/has-set-password", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["hasSetPassword"] is False

    forbidden = client.get(f"/api/auth/users/{student.id}/has-set-password", headers=auth_headers(other))
    assert forbidden.status_code == 403


def test_dashboard_page_redirects_without_cookie(client):
    response = client.get("/dashboard/student", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/login"


def test_dashboard_page_redirects_to_role_dashboard(client, make_user):
    make_user(UserRole.OFFICER, email="officer@eksu.edu.ng")
    client.post("/api/auth/login", json={"email": "officer@eksu.edu.ng", "password": DEFAULT_PASSWORD})

    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/dashboard/officer"

    login_page = client.get("/login", follow_redirects=False)
    assert login_page.status_code == 307
    assert login_page.headers["location"] == "/dashboard"


def test_verify_email_page_reports_token_owner(client, database, make_user):
    student = make_user(UserRole.STUDENT, password=None)
    token = issue(database, student, TokenPurpose.MAGIC_LINK)

    response = client.get("/verify-email", params={"token": token})
    assert response.status_code == 200
    assert response.json()["valid"] is True
    assert response.json()["email"] == student.email

    assert client.get("/verify-email", params={"token": "bogus"}).json()["valid"] is False
