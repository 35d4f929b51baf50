"""
Clearance APIs: per-student progress, completion and the clearance trail.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any

from database.models import User, UserRole, ClearanceStatus, RecordType, RecordStatus, Department
from auth.dependencies import get_db_session, get_current_user, require_staff, get_email_service
from auth.permissions import is_admin, can_view_student, can_view_department_scope
from services.clearance_service import ClearanceService
from services.clearance_record_service import ClearanceRecordService
from services.email_service import EmailService
from services.email_templates import ClearanceCompletionData
from services.serializers import serialize_document, serialize_requirement, serialize_record
from core.utils import paginate, page_response
import config


router = APIRouter(prefix="/api/clearance", tags=["clearance"])


class ClearanceStatusUpdate(BaseModel):
    """Manual clearance status change."""
    status: ClearanceStatus
    notes: Optional[str] = Field(None, max_length=2000)


class CompleteClearanceRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class ClearanceActionCreate(BaseModel):
    """Manual entry in a student's clearance trail."""
    student: int
    recordType: RecordType = RecordType.SYSTEM_ACTION
    status: RecordStatus = RecordStatus.SUCCESS
    department: Optional[int] = None
    document: Optional[int] = None
    requirement: Optional[int] = None
    description: Optional[str] = Field(None, max_length=2000)
    metadata: Dict[str, Any] = {}


def get_student_or_404(db: Session, student_id: int) -> User:
    student = db.get(User, student_id)
    if not student or student.role != UserRole.STUDENT:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return student


def student_summary(student: User) -> Dict[str, Any]:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "matricNo": student.matric_no,
        "department": student.department_id,
        "departmentName": student.department.name if student.department else None,
        "clearanceStatus": student.clearance_status.value if student.clearance_status else None,
    }


@router.get("/students/{student_id}")
async def get_student_clearance(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Clearance statistics, latest documents and requirements for one student."""
    student = get_student_or_404(db, student_id)
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    requirements = ClearanceService.active_requirements(db, student.department_id)
    documents = ClearanceService.latest_documents(db, student.id)
    summary = ClearanceService.summarize(db, student)
    return {
        "student": student_summary(student),
        "statistics": summary.to_dict(),
        "documents": [serialize_document(doc) for doc in documents],
        "requirements": [serialize_requirement(req) for req in requirements],
    }


@router.get("/progress")
async def get_all_clearance_progress(
    department: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """
    Students with their clearance statistics (cursor paginated).
    Officers are limited to their own department.
    """
    if not is_admin(current_user):
        requested = current_user.department_id if department is None else department
        if not can_view_department_scope(current_user, requested):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")
        department = current_user.department_id

    query = db.query(User).filter(User.role == UserRole.STUDENT)
    if department is not None:
        query = query.filter(User.department_id == department)
    if status_filter:
        try:
            query = query.filter(User.clearance_status == ClearanceStatus(status_filter))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(User.name.ilike(pattern) | User.matric_no.ilike(pattern))

    try:
        students, next_cursor, has_more = paginate(query, User, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    def with_progress(student: User) -> Dict[str, Any]:
        return {**student_summary(student), "progress": ClearanceService.summarize(db, student).to_dict()}

    return page_response(students, next_cursor, has_more, limit, with_progress)


@router.get("/stats")
async def get_clearance_stats(
    department: Optional[int] = Query(None),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Student counts per clearance status."""
    if not is_admin(current_user):
        requested = current_user.department_id if department is None else department
        if not can_view_department_scope(current_user, requested):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")
        department = current_user.department_id
    return ClearanceService.stats(db, department)


@router.patch("/students/{student_id}/status")
async def update_clearance_status(
    student_id: int,
    status_update: ClearanceStatusUpdate,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Set a student's clearance status. Completion goes through the /complete endpoint."""
    student = get_student_or_404(db, student_id)
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    try:
        student = ClearanceService.update_status(
            db, student, status_update.status, current_user, status_update.notes, request
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return student_summary(student)


@router.post("/students/{student_id}/complete")
async def mark_clearance_completed(
    student_id: int,
    request: Request,
    body: Optional[CompleteClearanceRequest] = None,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """Complete a student's clearance and email them."""
    student = get_student_or_404(db, student_id)
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    try:
        summary = ClearanceService.mark_completed(
            db, student, current_user, body.notes if body else None, request
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    email_sent = await email_service.send_clearance_completed_email(ClearanceCompletionData(
        student_name=student.name,
        student_email=student.email,
        matric_no=student.matric_no or "",
        department=student.department.name if student.department else "",
        completion_date=datetime.utcnow().strftime("%Y-%m-%d"),
        total_documents=summary.total_requirements,
        completed_documents=summary.completed_documents,
        login_url=f"{config.APP_URL}/dashboard/student",
    ))
    return {
        "success": True,
        "student": student_summary(student),
        "statistics": summary.to_dict(),
        "emailSent": email_sent,
    }


@router.get("/students/{student_id}/timeline")
async def get_clearance_timeline(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Every clearance record of a student, newest first."""
    student = get_student_or_404(db, student_id)
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    records = ClearanceRecordService.timeline(db, student.id)
    return {"student": student_summary(student), "records": [serialize_record(r) for r in records]}


@router.post("/records", status_code=status.HTTP_201_CREATED)
async def log_clearance_action(
    action: ClearanceActionCreate,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Append a manual entry to a student's clearance trail."""
    student = get_student_or_404(db, action.student)
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if action.recordType in (RecordType.FINAL_CLEARANCE, RecordType.DEPARTMENT_CLEARANCE):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{action.recordType.value} records are created by the clearance workflow"
        )
    department_id = action.department if action.department is not None else current_user.department_id
    if department_id is not None and not db.get(Department, department_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

    record = ClearanceRecordService.append(
        db,
        student_id=student.id,
        record_type=action.recordType,
        department_id=department_id,
        action_by_id=current_user.id,
        document_id=action.document,
        requirement_id=action.requirement,
        description=action.description,
        details=action.metadata,
        status=action.status,
        request=request,
    )
    db.commit()
    db.refresh(record)
    return serialize_record(record)
