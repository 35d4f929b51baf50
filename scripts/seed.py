#!/usr/bin/env python3
"""
Seed departments, requirements and starter accounts.

Safe to run repeatedly: rows that already exist (matched by code or email)
are left alone. Accounts are created without passwords; a magic link is
printed for each new one.
"""
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import (
    Department, DepartmentStatus, Requirement, DocumentType, UserRole, TokenPurpose
)
from services.auth_service import AuthService
import config


DEPARTMENTS = [
    ("Computer Science", "CS", "Department of Computer Science"),
    ("Mathematics", "MAT", "Department of Mathematics"),
    ("Physics", "PHY", "Department of Physics"),
    ("Chemistry", "CHEM", "Department of Chemistry"),
    ("Library", "LIB", "University Library"),
    ("Bursary", "BUR", "Bursary Department"),
    ("Student Affairs", "SA", "Student Affairs Office"),
    ("Registry", "REG", "Registry Department"),
]

REQUIREMENTS = [
    {
        "name": "Academic Transcript",
        "code": "TRANSCRIPT",
        "description": "Official academic transcript showing all courses and grades",
        "department": "CS",
        "document_type": DocumentType.TRANSCRIPT,
        "file_types": ["pdf"],
        "max_file_size_mb": 5,
        "display_order": 1,
    },
    {
        "name": "Project Report",
        "code": "PROJECT_REPORT",
        "description": "Final year project report",
        "department": "CS",
        "document_type": DocumentType.PROJECT_REPORT,
        "file_types": ["pdf", "docx"],
        "max_file_size_mb": 10,
        "display_order": 2,
    },
    {
        "name": "Payment Receipt",
        "code": "PAYMENT_RECEIPT",
        "description": "Receipt for all outstanding fees",
        "department": "BUR",
        "document_type": DocumentType.PAYMENT_RECEIPT,
        "file_types": ["pdf", "jpg", "png"],
        "max_file_size_mb": 5,
        "display_order": 1,
    },
    {
        "name": "Library Clearance",
        "code": "LIBRARY_CLEARANCE",
        "description": "Library clearance certificate",
        "department": "LIB",
        "document_type": DocumentType.LIBRARY_CLEARANCE,
        "file_types": ["pdf", "jpg", "png"],
        "max_file_size_mb": 5,
        "display_order": 1,
    },
    {
        "name": "Student ID Card",
        "code": "STUDENT_ID",
        "description": "Current student ID card",
        "department": "REG",
        "document_type": DocumentType.STUDENT_ID,
        "file_types": ["jpg", "png", "pdf"],
        "max_file_size_mb": 5,
        "display_order": 1,
    },
    {
        "name": "Medical Certificate",
        "code": "MEDICAL_CERT",
        "description": "Medical fitness certificate",
        "department": "SA",
        "document_type": DocumentType.MEDICAL_CERTIFICATE,
        "file_types": ["pdf", "jpg", "png"],
        "max_file_size_mb": 5,
        "display_order": 1,
    },
]

ADMIN = {"name": "System Administrator", "email": "admin@eksu.edu.ng"}

OFFICERS = [
    {"name": "Dr. Sarah Johnson", "email": "s.johnson@eksu.edu.ng", "role": UserRole.OFFICER, "department": "CS"},
    {"name": "Prof. Michael Brown", "email": "m.brown@eksu.edu.ng", "role": UserRole.OFFICER, "department": "MAT"},
    {"name": "Dr. Emily Davis", "email": "e.davis@eksu.edu.ng", "role": UserRole.STUDENT_AFFAIRS, "department": "SA"},
]

STUDENT = {
    "name": "Adebayo Ogunleye",
    "email": "a.ogunleye@eksu.edu.ng",
    "matric_no": "CSC/2019/001",
    "department": "CS",
}


def seed_departments(db) -> dict:
    departments = {}
    for order, (name, code, description) in enumerate(DEPARTMENTS, start=1):
        department = db.query(Department).filter(Department.code == code).first()
        if department:
            print(f"  - Department already exists: {name}")
        else:
            department = Department(
                name=name,
                code=code,
                description=description,
                status=DepartmentStatus.ACTIVE,
                clearance_order=order,
            )
            db.add(department)
            db.flush()
            print(f"  ✓ Created department: {name}")
        departments[code] = department
    db.commit()
    return departments


def seed_requirements(db, departments: dict):
    for item in REQUIREMENTS:
        data = dict(item)
        department = departments[data.pop("department")]
        requirement = db.query(Requirement).filter(Requirement.code == data["code"]).first()
        if requirement:
            print(f"  - Requirement already exists: {data['name']}")
        else:
            requirement = Requirement(is_required=True, **data)
            db.add(requirement)
            print(f"  ✓ Created requirement: {data['name']}")
        if department not in requirement.departments:
            requirement.departments.append(department)
    db.commit()


def seed_user(db, links: list, **fields):
    """Create a password-less account unless the email is taken."""
    existing = AuthService.get_user_by_email(db, fields["email"])
    if existing:
        print(f"  - User already exists: {fields['email']}")
        return existing
    user = AuthService.create_user(db=db, **fields)
    token = AuthService.issue_token(db, user, TokenPurpose.MAGIC_LINK)
    links.append((user.email, AuthService.build_link(token, TokenPurpose.MAGIC_LINK)))
    print(f"  ✓ Created {user.role.value}: {user.name}")
    return user


def seed():
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Seeding database...")
    print("=" * 50)

    links = []
    try:
        with config.db.get_session() as db:
            print("Departments:")
            departments = seed_departments(db)

            print("Requirements:")
            seed_requirements(db, departments)

            print("Users:")
            seed_user(db, links, role=UserRole.ADMIN, **ADMIN)
            for officer in OFFICERS:
                department = departments[officer["department"]]
                user = seed_user(
                    db, links,
                    name=officer["name"],
                    email=officer["email"],
                    role=officer["role"],
                    department_id=department.id,
                )
                if officer["role"] == UserRole.OFFICER and department.officer_id is None:
                    department.officer_id = user.id
                elif officer["role"] == UserRole.STUDENT_AFFAIRS and department.student_affairs_officer_id is None:
                    department.student_affairs_officer_id = user.id
            seed_user(
                db, links,
                name=STUDENT["name"],
                email=STUDENT["email"],
                role=UserRole.STUDENT,
                matric_no=STUDENT["matric_no"],
                department_id=departments[STUDENT["department"]].id,
            )
    except ValueError as e:
        print(f"\n✗ Seeding failed: {e}")
        sys.exit(1)

    print("\n✓ Database seeding completed")
    if links:
        print("\nPassword setup links:")
        for email, link in links:
            print(f"  {email}: {link}")


if __name__ == "__main__":
    seed()
