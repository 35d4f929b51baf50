"""
Document APIs: upload, review, download and listing.
"""
import io
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status, Query, Request, File, UploadFile, Form
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy.orm import Session, Query as OrmQuery
from pydantic import BaseModel, Field
from typing import Optional

from database.models import (
    User, UserRole, Department, Requirement, Document, DocumentStatus, RejectionReason
)
from auth.dependencies import get_db_session, get_current_user, get_active_user, require_staff, get_email_service
from auth.permissions import (
    is_admin, is_staff, can_view_documents, can_upload_documents, can_upload_for, can_review_document,
    can_view_document, can_delete_document, can_view_student, can_view_department_scope
)
from services.document_service import DocumentService
from services.email_service import EmailService
from services.email_templates import DocumentNotificationData, NewDocumentNotificationData
from services.serializers import serialize_document
from storage.document_store import local_document_path, presigned_document_url, is_s3_path
from core.utils import paginate, page_response
from core.logger import logger
import config


router = APIRouter(prefix="/api/documents", tags=["documents"])


class DocumentReview(BaseModel):
    """Review decision."""
    status: DocumentStatus
    reviewNotes: Optional[str] = Field(None, max_length=2000)
    rejectionReason: Optional[RejectionReason] = None
    customRejectionReason: Optional[str] = Field(None, max_length=500)


def get_document_or_404(db: Session, document_id: int) -> Document:
    document = db.get(Document, document_id)
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


def parse_status(value: Optional[str]) -> Optional[DocumentStatus]:
    if value is None:
        return None
    try:
        return DocumentStatus(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {value}")


def scoped_query(db: Session, current_user: User) -> OrmQuery:
    """Documents the user may list: admins all, staff their department, students their own."""
    if not can_view_documents(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please set your password before accessing this feature"
        )
    query = db.query(Document)
    if is_admin(current_user):
        return query
    if is_staff(current_user):
        return query.filter(Document.department_id == current_user.department_id)
    return query.filter(Document.student_id == current_user.id)


def page_of(query: OrmQuery, cursor: Optional[str], limit: int):
    try:
        documents, next_cursor, has_more = paginate(query, Document, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return page_response(documents, next_cursor, has_more, limit, serialize_document)


def review_email_data(document: Document, reviewer: User) -> DocumentNotificationData:
    student = document.student
    return DocumentNotificationData(
        student_name=student.name,
        student_email=student.email,
        document_name=document.file_name,
        department=document.department.name,
        requirement=document.requirement.name,
        reviewed_at=(document.reviewed_at or datetime.utcnow()).strftime("%Y-%m-%d %H:%M UTC"),
        login_url=f"{config.APP_URL}/dashboard/student",
        review_notes=document.review_notes,
        rejection_reason=document.custom_rejection_reason or (
            document.rejection_reason.value if document.rejection_reason else None
        ),
        reviewed_by=reviewer.name,
    )


def department_reviewer(db: Session, department: Department) -> Optional[User]:
    """Assigned officer, else any active officer of the department."""
    if department.officer is not None and department.officer.is_active:
        return department.officer
    return db.query(User).filter(
        User.department_id == department.id,
        User.role == UserRole.OFFICER,
        User.is_active == True
    ).order_by(User.id).first()


@router.get("")
async def list_documents(
    status_filter: Optional[str] = Query(None, alias="status"),
    department: Optional[int] = Query(None),
    student: Optional[int] = Query(None),
    requirement: Optional[int] = Query(None),
    latestOnly: bool = Query(True, description="Only the latest version per requirement"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """List documents visible to the caller (cursor paginated)."""
    query = scoped_query(db, current_user)
    doc_status = parse_status(status_filter)
    if doc_status:
        query = query.filter(Document.status == doc_status)
    if department is not None:
        query = query.filter(Document.department_id == department)
    if student is not None:
        query = query.filter(Document.student_id == student)
    if requirement is not None:
        query = query.filter(Document.requirement_id == requirement)
    if latestOnly:
        query = query.filter(Document.is_latest == True)
    return page_of(query, cursor, limit)


@router.get("/stats")
async def get_document_stats(
    department: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Latest-document counts per status for the caller's scope."""
    if is_admin(current_user):
        return DocumentService.stats(db, department_id=department)
    if is_staff(current_user):
        requested = current_user.department_id if department is None else department
        if not can_view_department_scope(current_user, requested):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")
        return DocumentService.stats(db, department_id=current_user.department_id)
    return DocumentService.stats(db, student_id=current_user.id)


@router.get("/student/{student_id}")
async def list_student_documents(
    student_id: int,
    latestOnly: bool = Query(False),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """All document versions of one student."""
    student = db.get(User, student_id)
    if not student or student.role != UserRole.STUDENT:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    if not can_view_student(current_user, student):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    query = db.query(Document).filter(Document.student_id == student.id)
    if is_staff(current_user):
        query = query.filter(Document.department_id == current_user.department_id)
    if latestOnly:
        query = query.filter(Document.is_latest == True)
    return page_of(query, cursor, limit)


@router.get("/department/{department_id}")
async def list_department_documents(
    department_id: int,
    status_filter: Optional[str] = Query(None, alias="status"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Latest documents submitted to a department, e.g. its review queue."""
    if not can_view_department_scope(current_user, department_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")
    query = db.query(Document).filter(Document.department_id == department_id, Document.is_latest == True)
    doc_status = parse_status(status_filter)
    if doc_status:
        query = query.filter(Document.status == doc_status)
    return page_of(query, cursor, limit)


@router.get("/{document_id}")
async def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    document = get_document_or_404(db, document_id)
    if not can_view_document(current_user, document):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return serialize_document(document)


@router.get("/{document_id}/download")
async def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Stream a local file or redirect to a short-lived S3 URL."""
    document = get_document_or_404(db, document_id)
    if not can_view_document(current_user, document):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    if is_s3_path(document.storage_path):
        url = presigned_document_url(document.storage_path)
        if not url:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File storage unavailable")
        return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    path = local_document_path(document.storage_path)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path, filename=document.file_name)


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: Request,
    department: int = Form(...),
    requirement: int = Form(...),
    student: Optional[int] = Form(None, description="Defaults to the caller"),
    file: UploadFile = File(...),
    current_user: User = Depends(get_active_user),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Upload a document for a requirement. Students upload only for themselves;
    re-uploading creates a new version.
    """
    student_id = student if student is not None else current_user.id
    if not can_upload_documents(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students can upload documents")
    if not can_upload_for(current_user, student_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only upload your own documents")

    department_row = db.get(Department, department)
    if not department_row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    requirement_row = db.get(Requirement, requirement)
    if not requirement_row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Requirement not found")
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    content = await file.read()
    try:
        document = DocumentService.upload(
            db,
            student=current_user,
            department=department_row,
            requirement=requirement_row,
            file_obj=io.BytesIO(content),
            filename=file.filename,
            file_size=len(content),
            content_type=file.content_type,
            request=request,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    reviewer = department_reviewer(db, department_row)
    if reviewer is not None:
        await email_service.send_new_document_notification(reviewer.email, NewDocumentNotificationData(
            officer_name=reviewer.name,
            student_name=current_user.name,
            matric_no=current_user.matric_no or "",
            document_name=document.file_name,
            requirement=requirement_row.name,
            department=department_row.name,
            uploaded_at=document.uploaded_at.strftime("%Y-%m-%d %H:%M UTC"),
            review_url=f"{config.APP_URL}/dashboard/officer",
        ))
    else:
        logger.warning(f"No officer to notify for department {department_row.id}")

    return serialize_document(document)


@router.post("/{document_id}/review")
async def review_document(
    document_id: int,
    review: DocumentReview,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Mark a document under review, approved or rejected and email the student.
    Reviewers are limited to their own department unless admin.
    """
    document = get_document_or_404(db, document_id)
    if not can_review_document(current_user, document):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only review documents for your department")

    try:
        document = DocumentService.review(
            db,
            document,
            reviewer=current_user,
            new_status=review.status,
            review_notes=review.reviewNotes,
            rejection_reason=review.rejectionReason,
            custom_rejection_reason=review.customRejectionReason,
            request=request,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    data = review_email_data(document, current_user)
    if document.status == DocumentStatus.APPROVED:
        email_sent = await email_service.send_document_approved_email(data)
    elif document.status == DocumentStatus.REJECTED:
        email_sent = await email_service.send_document_rejected_email(data)
    else:
        email_sent = await email_service.send_document_under_review_email(data)

    return {**serialize_document(document), "emailSent": email_sent}


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    request: Request,
    current_user: User = Depends(get_active_user),
    db: Session = Depends(get_db_session)
):
    """Delete a document version. Admins, or the owning student while it is pending."""
    document = get_document_or_404(db, document_id)
    if not can_delete_document(current_user, document):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this document")
    DocumentService.delete(db, document, current_user, request)
    return {"success": True, "message": "Document deleted successfully"}
