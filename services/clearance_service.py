"""
Clearance aggregation: how far a student is through their department's requirements.
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from database.models import (
    User, UserRole, ClearanceStatus, Requirement, RequirementStatus, Document, DocumentStatus,
    RecordType, department_requirements
)
from services.clearance_record_service import ClearanceRecordService
from core.utils import percentage
from core.logger import logger


@dataclass
class ClearanceSummary:
    total_requirements: int
    completed_documents: int
    pending_documents: int
    under_review_documents: int
    rejected_documents: int

    @property
    def completion_rate(self) -> float:
        return percentage(self.completed_documents, self.total_requirements)

    @property
    def is_completed(self) -> bool:
        return self.total_requirements > 0 and self.completed_documents == self.total_requirements

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequirements": self.total_requirements,
            "completedDocuments": self.completed_documents,
            "pendingDocuments": self.pending_documents,
            "underReviewDocuments": self.under_review_documents,
            "rejectedDocuments": self.rejected_documents,
            "completionRate": self.completion_rate,
            "isCompleted": self.is_completed,
        }


class ClearanceService:
    """Computes clearance progress and moves students through clearance states."""

    @staticmethod
    def active_requirements(db: Session, department_id: Optional[int]) -> List[Requirement]:
        """Active requirements attached to a department, in display order."""
        if department_id is None:
            return []
        return db.query(Requirement).join(
            department_requirements, department_requirements.c.requirement_id == Requirement.id
        ).filter(
            department_requirements.c.department_id == department_id,
            Requirement.status == RequirementStatus.ACTIVE
        ).order_by(Requirement.display_order, Requirement.id).all()

    @staticmethod
    def latest_documents(db: Session, student_id: int, requirement_ids: Optional[List[int]] = None) -> List[Document]:
        query = db.query(Document).filter(
            Document.student_id == student_id,
            Document.is_latest == True
        )
        if requirement_ids is not None:
            if not requirement_ids:
                return []
            query = query.filter(Document.requirement_id.in_(requirement_ids))
        return query.order_by(Document.created_at.desc()).all()

    @staticmethod
    def summarize_for_department(db: Session, student_id: int, department_id: Optional[int]) -> ClearanceSummary:
        """
        Count the student's latest documents against a department's active requirements.

        Approved documents are counted per distinct requirement, so the
        completed count never exceeds the requirement count.
        """
        requirements = ClearanceService.active_requirements(db, department_id)
        requirement_ids = [req.id for req in requirements]
        documents = ClearanceService.latest_documents(db, student_id, requirement_ids)

        approved = {doc.requirement_id for doc in documents if doc.status == DocumentStatus.APPROVED}
        return ClearanceSummary(
            total_requirements=len(requirements),
            completed_documents=len(approved),
            pending_documents=sum(1 for doc in documents if doc.status == DocumentStatus.PENDING),
            under_review_documents=sum(1 for doc in documents if doc.status == DocumentStatus.UNDER_REVIEW),
            rejected_documents=sum(1 for doc in documents if doc.status == DocumentStatus.REJECTED),
        )

    @staticmethod
    def summarize(db: Session, student: User) -> ClearanceSummary:
        """Clearance summary against the student's own department."""
        return ClearanceService.summarize_for_department(db, student.id, student.department_id)

    @staticmethod
    def mark_started(student: User) -> bool:
        """Move a not-started student to in-progress; True if the status changed."""
        if student.role == UserRole.STUDENT and student.clearance_status in (None, ClearanceStatus.NOT_STARTED):
            student.clearance_status = ClearanceStatus.IN_PROGRESS
            return True
        return False

    @staticmethod
    def update_status(
        db: Session,
        student: User,
        new_status: ClearanceStatus,
        actor: User,
        notes: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> User:
        """
        Set a student's clearance status by hand.

        Raises:
            ValueError: Asked to set completed; completion goes through mark_completed
        """
        if new_status == ClearanceStatus.COMPLETED:
            raise ValueError("Use the clearance completion endpoint to complete a clearance")

        previous = student.clearance_status
        student.clearance_status = new_status
        ClearanceRecordService.append(
            db,
            student_id=student.id,
            record_type=RecordType.SYSTEM_ACTION,
            department_id=student.department_id,
            action_by_id=actor.id,
            description=f"Clearance status changed to {new_status.value}",
            details={
                "previousStatus": previous.value if previous else None,
                "newStatus": new_status.value,
                "notes": notes,
            },
            request=request,
        )
        db.commit()
        db.refresh(student)
        logger.info(f"Clearance status of student {student.id} set to {new_status.value} by {actor.id}")
        return student

    @staticmethod
    def mark_completed(
        db: Session,
        student: User,
        actor: User,
        notes: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> ClearanceSummary:
        """
        Complete a student's clearance.

        Raises:
            ValueError: Not every active requirement has an approved latest document
        """
        summary = ClearanceService.summarize(db, student)
        if not summary.is_completed:
            raise ValueError(
                f"Clearance cannot be completed: {summary.completed_documents} of "
                f"{summary.total_requirements} requirements approved"
            )
        if student.clearance_status == ClearanceStatus.COMPLETED:
            raise ValueError("Clearance is already completed")

        student.clearance_status = ClearanceStatus.COMPLETED
        ClearanceRecordService.append(
            db,
            student_id=student.id,
            record_type=RecordType.FINAL_CLEARANCE,
            department_id=student.department_id,
            action_by_id=actor.id,
            description="Final clearance completed",
            details={
                "notes": notes,
                "completedDocuments": summary.completed_documents,
                "totalRequirements": summary.total_requirements,
            },
            request=request,
        )
        db.commit()
        db.refresh(student)
        logger.info(f"Clearance completed for student {student.id} by {actor.id}")
        return summary

    @staticmethod
    def stats(db: Session, department_id: Optional[int] = None) -> Dict[str, Any]:
        """Student counts per clearance status."""
        query = db.query(User.clearance_status, func.count(User.id)).filter(User.role == UserRole.STUDENT)
        if department_id is not None:
            query = query.filter(User.department_id == department_id)
        counts = {clearance_status: count for clearance_status, count in query.group_by(User.clearance_status).all()}

        total = sum(counts.values())
        completed = counts.get(ClearanceStatus.COMPLETED, 0)
        return {
            "totalStudents": total,
            "notStarted": counts.get(ClearanceStatus.NOT_STARTED, 0) + counts.get(None, 0),
            "inProgress": counts.get(ClearanceStatus.IN_PROGRESS, 0),
            "completed": completed,
            "onHold": counts.get(ClearanceStatus.ON_HOLD, 0),
            "completionRate": percentage(completed, total),
        }
