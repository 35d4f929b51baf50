"""
Dashboard APIs for all roles.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import (
    User, Department, DepartmentStatus, Requirement, RequirementStatus,
    Document, DocumentStatus, ClearanceRecord
)
from auth.dependencies import get_db_session, require_student, require_staff, require_admin
from auth.permissions import is_admin
from services.clearance_service import ClearanceService
from services.clearance_record_service import ClearanceRecordService
from services.document_service import DocumentService
from services.user_service import UserService
from services.serializers import (
    serialize_user, serialize_department, serialize_document, serialize_requirement, serialize_record
)


router = APIRouter(prefix="/api/dashboard", tags=["dashboards"])

RECENT_LIMIT = 10


@router.get("/student")
async def student_dashboard(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """
    Student dashboard: clearance progress, requirements and recent activity.
    """
    requirements = ClearanceService.active_requirements(db, current_user.department_id)
    documents = ClearanceService.latest_documents(db, current_user.id)
    by_requirement = {doc.requirement_id: doc for doc in documents}
    checklist = [
        {
            "requirement": serialize_requirement(req),
            "document": serialize_document(by_requirement[req.id]) if req.id in by_requirement else None,
        }
        for req in requirements
    ]
    timeline = ClearanceRecordService.timeline(db, current_user.id)[:RECENT_LIMIT]

    return {
        "user": serialize_user(current_user, current_user),
        "department": serialize_department(current_user.department, current_user) if current_user.department else None,
        "statistics": ClearanceService.summarize(db, current_user).to_dict(),
        "checklist": checklist,
        "recentActivity": [serialize_record(r) for r in timeline],
    }


@router.get("/officer")
async def officer_dashboard(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """
    Officer dashboard: department document counts and the review queue.
    """
    if current_user.department_id is None and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You are not assigned to a department"
        )
    department_id = current_user.department_id

    queue = db.query(Document).filter(
        Document.is_latest == True,
        Document.status.in_([DocumentStatus.PENDING, DocumentStatus.UNDER_REVIEW])
    )
    if department_id is not None:
        queue = queue.filter(Document.department_id == department_id)
    queue = queue.order_by(Document.uploaded_at.asc(), Document.id.asc()).limit(RECENT_LIMIT).all()

    return {
        "user": serialize_user(current_user, current_user),
        "department": serialize_department(current_user.department, current_user) if current_user.department else None,
        "documentStats": DocumentService.stats(db, department_id=department_id),
        "clearanceStats": ClearanceService.stats(db, department_id),
        "reviewQueue": [serialize_document(doc) for doc in queue],
        "officerCreation": (
            UserService.officer_creation_status(db, current_user.department) if current_user.department else None
        ),
    }


@router.get("/admin")
async def admin_dashboard(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Admin dashboard: system-wide counts and recent clearance activity.
    """
    department_counts = dict(
        db.query(Department.status, func.count(Department.id)).group_by(Department.status).all()
    )
    active_requirements = db.query(func.count(Requirement.id)).filter(
        Requirement.status == RequirementStatus.ACTIVE
    ).scalar() or 0
    recent = db.query(ClearanceRecord).order_by(
        ClearanceRecord.created_at.desc(), ClearanceRecord.id.desc()
    ).limit(RECENT_LIMIT).all()

    return {
        "userStats": UserService.stats(db),
        "documentStats": DocumentService.stats(db),
        "clearanceStats": ClearanceService.stats(db),
        "departments": {
            "total": sum(department_counts.values()),
            "active": department_counts.get(DepartmentStatus.ACTIVE, 0),
        },
        "activeRequirements": active_requirements,
        "recentActivity": [serialize_record(r) for r in recent],
    }
