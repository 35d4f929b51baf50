"""
Shared fixtures: an in-memory database per test, an app client with mail
capture, and factories for departments, requirements and users.
"""
import itertools
from email.utils import parseaddr

import pytest
from fastapi.testclient import TestClient

import config
from app import app
from database.connection import Database
from database.models import (
    User, UserRole, Department, DepartmentStatus, Requirement, RequirementStatus
)
from services.auth_service import AuthService
from services.email_service import EmailService, create_mail_client

DEFAULT_PASSWORD = "Clearance2024"

_sequence = itertools.count(1)


def recipient(message):
    """Bare address of a captured message's To header."""
    return parseaddr(message["To"])[1]


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite database with documents stored under tmp_path."""
    monkeypatch.setattr(config, "UPLOADS_DIR", tmp_path)
    monkeypatch.setattr(config, "s3_client", None)
    test_db = Database("sqlite://")
    test_db.create_tables()
    monkeypatch.setattr(config, "db", test_db)
    yield test_db
    test_db.engine.dispose()


@pytest.fixture
def client(database):
    # Lifespan is not run; the fixtures above stand in for it
    app.state.email_service = EmailService(create_mail_client(suppress_send=True))
    return TestClient(app)


@pytest.fixture
def outbox(client):
    """Emails sent during the test."""
    with app.state.email_service.mail.record_messages() as messages:
        yield messages


@pytest.fixture
def make_department(database):
    def _make_department(code=None, name=None, **fields):
        number = next(_sequence)
        with database.get_session() as db:
            department = Department(
                name=name or f"Department {number}",
                code=code or f"D{number}",
                status=fields.pop("status", DepartmentStatus.ACTIVE),
                clearance_order=fields.pop("clearance_order", 1),
                can_add_officers=fields.pop("can_add_officers", False),
                officers_created=fields.pop("officers_created", 0),
                **fields,
            )
            db.add(department)
            db.commit()
            db.refresh(department)
            db.expunge(department)
        return department
    return _make_department


@pytest.fixture
def make_requirement(database):
    def _make_requirement(*departments, code=None, name=None, **fields):
        number = next(_sequence)
        with database.get_session() as db:
            requirement = Requirement(
                name=name or f"Requirement {number}",
                code=code or f"REQ_{number}",
                status=fields.pop("status", RequirementStatus.ACTIVE),
                file_types=fields.pop("file_types", ["pdf", "docx"]),
                max_file_size_mb=fields.pop("max_file_size_mb", 5),
                display_order=fields.pop("display_order", 1),
                is_required=True,
                **fields,
            )
            requirement.departments = [db.get(Department, dept.id) for dept in departments]
            db.add(requirement)
            db.commit()
            db.refresh(requirement)
            db.expunge(requirement)
        return requirement
    return _make_requirement


@pytest.fixture
def make_user(database):
    def _make_user(role=UserRole.STUDENT, department=None, email=None, name=None,
                   matric_no=None, password=DEFAULT_PASSWORD):
        number = next(_sequence)
        if role == UserRole.STUDENT and matric_no is None:
            matric_no = f"EKSU/2020/{number:04d}"
        with database.get_session() as db:
            user = AuthService.create_user(
                db,
                email=email or f"{role.value}{number}@eksu.edu.ng",
                name=name or f"{role.value.title()} {number}",
                role=role,
                department_id=department.id if department else None,
                matric_no=matric_no,
                password=password,
            )
            db.expunge(user)
        return user
    return _make_user


@pytest.fixture
def auth_headers(database):
    """Bearer header for a fresh session of the given user."""
    def _auth_headers(user):
        with database.get_session() as db:
            token, _ = AuthService.create_session(db, db.get(User, user.id))
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@eksu.edu.ng", name="System Administrator")
