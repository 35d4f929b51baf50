"""
Department APIs.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel, Field
from typing import Optional, List

from database.models import (
    User, UserRole, Department, DepartmentStatus, Requirement, Document, DocumentStatus
)
from auth.dependencies import get_db_session, get_current_user, require_admin, require_staff
from auth.permissions import can_view_department_scope
from services.user_service import UserService
from services.audit_service import AuditService
from services.serializers import serialize_department
from core.validators import normalize_code, DEPARTMENT_CODE_PATTERN
from core.utils import paginate, page_response, percentage
from core.logger import logger


router = APIRouter(prefix="/api/departments", tags=["departments"])

OFFICER_ROLES = (UserRole.OFFICER, UserRole.STUDENT_AFFAIRS, UserRole.ADMIN)


# Request Models
class DepartmentCreate(BaseModel):
    """Create department request."""
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=2, max_length=10)
    description: Optional[str] = None
    status: DepartmentStatus = DepartmentStatus.ACTIVE
    clearanceOrder: int = Field(1, ge=1)
    officer: Optional[int] = None
    studentAffairsOfficer: Optional[int] = None
    requirements: List[int] = []
    canAddOfficers: bool = False
    officerCreationLimit: Optional[int] = Field(None, ge=0)


class DepartmentUpdate(BaseModel):
    """Update department request."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=2, max_length=10)
    description: Optional[str] = None
    status: Optional[DepartmentStatus] = None
    clearanceOrder: Optional[int] = Field(None, ge=1)
    officer: Optional[int] = None
    studentAffairsOfficer: Optional[int] = None
    requirements: Optional[List[int]] = None
    canAddOfficers: Optional[bool] = None
    officerCreationLimit: Optional[int] = Field(None, ge=0)


def get_department_or_404(db: Session, department_id: int) -> Department:
    department = db.get(Department, department_id)
    if not department:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return department


def checked_code(db: Session, code: str, department_id: Optional[int] = None) -> str:
    """Upper-cased code, rejected if malformed or taken by another department."""
    code = normalize_code(code)
    if not DEPARTMENT_CODE_PATTERN.match(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Department code must be 2-10 uppercase letters or digits"
        )
    query = db.query(Department).filter(Department.code == code)
    if department_id is not None:
        query = query.filter(Department.id != department_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Department code {code} already exists")
    return code


def checked_officer(db: Session, user_id: Optional[int]) -> Optional[int]:
    if user_id is None:
        return None
    user = db.get(User, user_id)
    if not user or user.role not in OFFICER_ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"User {user_id} is not an officer")
    return user.id


def checked_requirements(db: Session, requirement_ids: List[int]) -> List[Requirement]:
    requirements = db.query(Requirement).filter(Requirement.id.in_(requirement_ids)).all() if requirement_ids else []
    missing = set(requirement_ids) - {req.id for req in requirements}
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown requirements: {', '.join(str(i) for i in sorted(missing))}"
        )
    return requirements


@router.get("")
async def list_departments(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search by name or code"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """List departments (cursor paginated)."""
    query = db.query(Department)
    if status_filter:
        try:
            query = query.filter(Department.status == DepartmentStatus(status_filter))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Department.name.ilike(pattern), Department.code.ilike(pattern)))

    try:
        departments, next_cursor, has_more = paginate(query, Department, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return page_response(departments, next_cursor, has_more, limit, lambda d: serialize_department(d, current_user))


@router.get("/officer-creation-enabled")
async def list_officer_creation_enabled(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Departments that allow officers to create other officers."""
    departments = db.query(Department).filter(
        Department.can_add_officers == True
    ).order_by(Department.clearance_order, Department.name).all()
    return {"docs": [serialize_department(d, current_user) for d in departments], "totalDocs": len(departments)}


@router.get("/{department_id}")
async def get_department(
    department_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Get department by ID."""
    return serialize_department(get_department_or_404(db, department_id), current_user)


@router.get("/{department_id}/stats")
async def get_department_stats(
    department_id: int,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Student and document counts for a department."""
    department = get_department_or_404(db, department_id)
    if not can_view_department_scope(current_user, department.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")

    total_students = db.query(func.count(User.id)).filter(
        User.role == UserRole.STUDENT,
        User.department_id == department.id
    ).scalar() or 0
    counts = dict(
        db.query(Document.status, func.count(Document.id))
        .filter(Document.department_id == department.id, Document.is_latest == True)
        .group_by(Document.status)
        .all()
    )
    total_documents = sum(counts.values())
    approved = counts.get(DocumentStatus.APPROVED, 0)

    return {
        "department": {"id": department.id, "name": department.name, "code": department.code},
        "statistics": {
            "totalStudents": total_students,
            "totalDocuments": total_documents,
            "pendingDocuments": counts.get(DocumentStatus.PENDING, 0),
            "underReviewDocuments": counts.get(DocumentStatus.UNDER_REVIEW, 0),
            "approvedDocuments": approved,
            "rejectedDocuments": counts.get(DocumentStatus.REJECTED, 0),
            "completionRate": percentage(approved, total_documents),
        },
    }


@router.get("/{department_id}/can-create-officer")
async def can_create_officer(
    department_id: int,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Whether the department can still self-provision officers."""
    department = get_department_or_404(db, department_id)
    return UserService.officer_creation_status(db, department)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_department(
    department_data: DepartmentCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Create a department.
    Admin only.
    """
    code = checked_code(db, department_data.code)
    if db.query(Department).filter(func.lower(Department.name) == department_data.name.strip().lower()).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department name already exists")

    department = Department(
        name=department_data.name.strip(),
        code=code,
        description=department_data.description,
        status=department_data.status,
        clearance_order=department_data.clearanceOrder,
        officer_id=checked_officer(db, department_data.officer),
        student_affairs_officer_id=checked_officer(db, department_data.studentAffairsOfficer),
        can_add_officers=department_data.canAddOfficers,
        officer_creation_limit=department_data.officerCreationLimit,
        officers_created=0,
    )
    department.requirements = checked_requirements(db, department_data.requirements)
    db.add(department)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Department code {code} already exists")
    db.refresh(department)

    AuditService.log(db, action="department_create", request=request, user_id=current_user.id,
                     resource_type="department", resource_id=department.id)
    logger.info(f"Department {department.code} created by {current_user.id}")
    return serialize_department(department, current_user)


@router.patch("/{department_id}")
async def update_department(
    department_id: int,
    update_data: DepartmentUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Update a department.
    Admin only.
    """
    department = get_department_or_404(db, department_id)
    provided = update_data.model_dump(exclude_unset=True)

    if provided.get("code") is not None:
        department.code = checked_code(db, provided["code"], department.id)
    if provided.get("name") is not None:
        name = provided["name"].strip()
        clash = db.query(Department).filter(
            func.lower(Department.name) == name.lower(),
            Department.id != department.id
        ).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department name already exists")
        department.name = name
    if "description" in provided:
        department.description = provided["description"]
    if provided.get("status") is not None:
        department.status = provided["status"]
    if provided.get("clearanceOrder") is not None:
        department.clearance_order = provided["clearanceOrder"]
    if "officer" in provided:
        department.officer_id = checked_officer(db, provided["officer"])
    if "studentAffairsOfficer" in provided:
        department.student_affairs_officer_id = checked_officer(db, provided["studentAffairsOfficer"])
    if provided.get("requirements") is not None:
        department.requirements = checked_requirements(db, provided["requirements"])
    if provided.get("canAddOfficers") is not None:
        department.can_add_officers = provided["canAddOfficers"]
    if "officerCreationLimit" in provided:
        department.officer_creation_limit = provided["officerCreationLimit"]

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department name or code already exists")
    db.refresh(department)

    AuditService.log(db, action="department_update", request=request, user_id=current_user.id,
                     resource_type="department", resource_id=department.id, details={"fields": sorted(provided)})
    return serialize_department(department, current_user)


@router.delete("/{department_id}")
async def delete_department(
    department_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Delete a department that has no members and no documents.
    Admin only.
    """
    department = get_department_or_404(db, department_id)
    member_count = db.query(func.count(User.id)).filter(User.department_id == department.id).scalar() or 0
    document_count = db.query(func.count(Document.id)).filter(Document.department_id == department.id).scalar() or 0
    if member_count or document_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Department has {member_count} members and {document_count} documents; reassign or remove them first"
        )

    code = department.code
    db.delete(department)
    db.commit()

    AuditService.log(db, action="department_delete", request=request, user_id=current_user.id,
                     resource_type="department", resource_id=department_id, details={"code": code})
    logger.info(f"Department {code} deleted by {current_user.id}")
    return {"success": True, "message": "Department deleted successfully"}
