"""
Document upload, review and removal.
"""
from datetime import datetime
from typing import Optional, BinaryIO, Dict, Any

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import (
    User, Department, DepartmentStatus, Requirement, RequirementStatus,
    Document, DocumentStatus, RejectionReason, RecordType
)
from services.clearance_record_service import ClearanceRecordService
from services.clearance_service import ClearanceService
from storage.document_store import save_document, delete_document_file
from core.validators import file_extension, validate_document_extension, validate_file_size, sanitize_filename
from core.utils import percentage
from core.logger import logger
import config

REVIEW_TARGETS = {DocumentStatus.UNDER_REVIEW, DocumentStatus.APPROVED, DocumentStatus.REJECTED}
REVIEWABLE_STATES = {DocumentStatus.PENDING, DocumentStatus.UNDER_REVIEW, DocumentStatus.PROCESSING}

REVIEW_RECORD_TYPES = {
    DocumentStatus.UNDER_REVIEW: RecordType.DOCUMENT_REVIEW,
    DocumentStatus.APPROVED: RecordType.DOCUMENT_APPROVAL,
    DocumentStatus.REJECTED: RecordType.DOCUMENT_REJECTION,
}


class DocumentService:
    """Service for the document lifecycle."""

    @staticmethod
    def allowed_file_types(requirement: Requirement) -> set:
        requested = {str(ext).lower().lstrip(".") for ext in (requirement.file_types or config.DEFAULT_REQUIREMENT_FILE_TYPES)}
        return requested & config.ALLOWED_DOCUMENT_EXTENSIONS

    @staticmethod
    def next_version(db: Session, student_id: int, requirement_id: int) -> int:
        latest = db.query(func.max(Document.version)).filter(
            Document.student_id == student_id,
            Document.requirement_id == requirement_id
        ).scalar()
        return (latest or 0) + 1

    @staticmethod
    def upload(
        db: Session,
        student: User,
        department: Department,
        requirement: Requirement,
        file_obj: BinaryIO,
        filename: str,
        file_size: int,
        content_type: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Document:
        """
        Store a new version of a student's document for a requirement.

        The previous latest version (if any) stops being latest and the new
        row gets version = highest existing version + 1.

        Raises:
            ValueError: Inactive department/requirement, requirement not in the
                department, disallowed file type or oversized file
        """
        if department.status != DepartmentStatus.ACTIVE:
            raise ValueError(f"Department {department.name} is not accepting documents")
        if requirement.status != RequirementStatus.ACTIVE:
            raise ValueError(f"Requirement {requirement.name} is not active")
        if department.id not in {dept.id for dept in requirement.departments}:
            raise ValueError(f"Requirement {requirement.name} does not belong to department {department.name}")

        safe_name = sanitize_filename(filename)
        allowed = DocumentService.allowed_file_types(requirement)
        if not validate_document_extension(safe_name, allowed):
            raise ValueError(
                f"File type .{file_extension(safe_name) or '?'} is not allowed. Allowed: {', '.join(sorted(allowed))}"
            )

        max_mb = requirement.max_file_size_mb or config.MAX_UPLOAD_SIZE_MB
        is_valid, error_message = validate_file_size(file_size, max_mb * 1024 * 1024)
        if not is_valid:
            raise ValueError(error_message)

        storage_path = save_document(file_obj, student.id, requirement.id, safe_name, content_type)
        try:
            version = DocumentService.next_version(db, student.id, requirement.id)

            db.query(Document).filter(
                Document.student_id == student.id,
                Document.requirement_id == requirement.id,
                Document.is_latest == True
            ).update({Document.is_latest: False}, synchronize_session="fetch")

            now = datetime.utcnow()
            document = Document(
                file_name=safe_name,
                student_id=student.id,
                department_id=department.id,
                requirement_id=requirement.id,
                storage_path=storage_path,
                file_size=file_size,
                file_type=file_extension(safe_name),
                status=DocumentStatus.PENDING,
                version=version,
                is_latest=True,
                uploaded_at=now,
            )
            db.add(document)
            db.flush()

            ClearanceRecordService.append(
                db,
                student_id=student.id,
                record_type=RecordType.DOCUMENT_UPLOAD,
                department_id=department.id,
                action_by_id=student.id,
                document_id=document.id,
                requirement_id=requirement.id,
                description=f"Uploaded {safe_name} for {requirement.name}",
                details={"version": document.version, "fileSize": file_size},
                request=request,
            )
            ClearanceService.mark_started(student)
            db.commit()
        except IntegrityError:
            db.rollback()
            delete_document_file(storage_path)
            raise ValueError(f"Another upload for {requirement.name} was saved first; please try again")
        except Exception:
            db.rollback()
            delete_document_file(storage_path)
            raise

        db.refresh(document)
        logger.info(
            f"Student {student.id} uploaded document {document.id} "
            f"(requirement {requirement.id}, version {document.version})"
        )
        return document

    @staticmethod
    def review(
        db: Session,
        document: Document,
        reviewer: User,
        new_status: DocumentStatus,
        review_notes: Optional[str] = None,
        rejection_reason: Optional[RejectionReason] = None,
        custom_rejection_reason: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Document:
        """
        Move a document to under-review, approved or rejected.

        The status change is a conditional UPDATE on the status the reviewer
        saw, so of two concurrent reviews only one wins.

        Raises:
            ValueError: Invalid target status, document already decided, missing
                rejection reason, or a concurrent review won the race
        """
        if new_status not in REVIEW_TARGETS:
            raise ValueError(f"Cannot set document status to {new_status.value}")
        observed = document.status
        if observed not in REVIEWABLE_STATES:
            raise ValueError(f"Document has already been {observed.value}")
        if observed == new_status:
            raise ValueError(f"Document is already {new_status.value}")
        if not document.is_latest:
            raise ValueError("Only the latest version of a document can be reviewed")
        if new_status == DocumentStatus.REJECTED:
            if rejection_reason is None:
                raise ValueError("A rejection reason is required")
            if rejection_reason == RejectionReason.OTHER and not (custom_rejection_reason or "").strip():
                raise ValueError("Please describe the rejection reason")
        else:
            rejection_reason = None
            custom_rejection_reason = None

        now = datetime.utcnow()
        updated = db.query(Document).filter(
            Document.id == document.id,
            Document.status == observed
        ).update({
            Document.status: new_status,
            Document.reviewed_at: now,
            Document.reviewed_by_id: reviewer.id,
            Document.review_notes: review_notes,
            Document.rejection_reason: rejection_reason,
            Document.custom_rejection_reason: custom_rejection_reason,
            Document.updated_at: now,
        }, synchronize_session=False)
        if updated == 0:
            db.rollback()
            raise ValueError("Document was modified by another reviewer")

        ClearanceRecordService.append(
            db,
            student_id=document.student_id,
            record_type=REVIEW_RECORD_TYPES[new_status],
            department_id=document.department_id,
            action_by_id=reviewer.id,
            document_id=document.id,
            requirement_id=document.requirement_id,
            description=f"Document {document.file_name} marked {new_status.value}",
            details={
                "previousStatus": observed.value,
                "newStatus": new_status.value,
                "reviewNotes": review_notes,
                "rejectionReason": rejection_reason.value if rejection_reason else None,
            },
            request=request,
        )
        db.commit()
        db.refresh(document)
        logger.info(f"Document {document.id} reviewed by {reviewer.id}: {observed.value} -> {new_status.value}")

        if new_status == DocumentStatus.APPROVED:
            DocumentService.record_department_clearance(db, document, reviewer, request)
        return document

    @staticmethod
    def record_department_clearance(
        db: Session,
        document: Document,
        reviewer: User,
        request: Optional[Request] = None,
    ) -> bool:
        """
        Append a department-clearance record once every active requirement of
        the document's department is approved for the student.
        """
        summary = ClearanceService.summarize_for_department(db, document.student_id, document.department_id)
        if not summary.is_completed:
            return False
        if ClearanceRecordService.has_record(
            db, document.student_id, RecordType.DEPARTMENT_CLEARANCE, document.department_id
        ):
            return False

        ClearanceRecordService.append(
            db,
            student_id=document.student_id,
            record_type=RecordType.DEPARTMENT_CLEARANCE,
            department_id=document.department_id,
            action_by_id=reviewer.id,
            description="All department requirements approved",
            details={"totalRequirements": summary.total_requirements},
            request=request,
        )
        student = db.get(User, document.student_id)
        if student is not None:
            ClearanceService.mark_started(student)
        db.commit()
        logger.info(f"Department {document.department_id} cleared student {document.student_id}")
        return True

    @staticmethod
    def delete(db: Session, document: Document, actor: User, request: Optional[Request] = None) -> None:
        """
        Delete a document version. Deleting the latest version makes the
        previous version latest again.
        """
        document_id = document.id
        student_id = document.student_id
        requirement_id = document.requirement_id
        storage_path = document.storage_path
        was_latest = document.is_latest

        ClearanceRecordService.append(
            db,
            student_id=document.student_id,
            record_type=RecordType.SYSTEM_ACTION,
            department_id=document.department_id,
            action_by_id=actor.id,
            requirement_id=document.requirement_id,
            description=f"Document {document.file_name} deleted",
            details={"documentId": document_id, "version": document.version},
            request=request,
        )
        db.delete(document)
        db.flush()

        if was_latest:
            previous = db.query(Document).filter(
                Document.student_id == student_id,
                Document.requirement_id == requirement_id
            ).order_by(Document.version.desc()).first()
            if previous is not None:
                previous.is_latest = True
        db.commit()

        delete_document_file(storage_path)
        logger.info(f"Document {document_id} deleted by {actor.id}")

    @staticmethod
    def stats(
        db: Session,
        department_id: Optional[int] = None,
        student_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Counts of latest documents per status."""
        query = db.query(Document.status, func.count(Document.id)).filter(Document.is_latest == True)
        if department_id is not None:
            query = query.filter(Document.department_id == department_id)
        if student_id is not None:
            query = query.filter(Document.student_id == student_id)
        counts = {doc_status: count for doc_status, count in query.group_by(Document.status).all()}

        total = sum(counts.values())
        approved = counts.get(DocumentStatus.APPROVED, 0)
        rejected = counts.get(DocumentStatus.REJECTED, 0)
        return {
            "total": total,
            "pending": counts.get(DocumentStatus.PENDING, 0),
            "underReview": counts.get(DocumentStatus.UNDER_REVIEW, 0),
            "approved": approved,
            "rejected": rejected,
            "processing": counts.get(DocumentStatus.PROCESSING, 0),
            "approvalRate": percentage(approved, total),
            "rejectionRate": percentage(rejected, total),
        }
