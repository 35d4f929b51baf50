"""
Append-only clearance trail.
"""
from typing import Optional, Dict, Any, List

from fastapi import Request
from sqlalchemy.orm import Session

from database.models import ClearanceRecord, RecordType, RecordStatus
from services.audit_service import client_info


class ClearanceRecordService:
    """Writes and reads ClearanceRecord rows. Rows are never updated or deleted."""

    @staticmethod
    def append(
        db: Session,
        student_id: int,
        record_type: RecordType,
        department_id: Optional[int] = None,
        action_by_id: Optional[int] = None,
        document_id: Optional[int] = None,
        requirement_id: Optional[int] = None,
        description: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status: RecordStatus = RecordStatus.SUCCESS,
        request: Optional[Request] = None,
    ) -> ClearanceRecord:
        """
        Add a record to the session. The caller commits, so the record lands
        in the same transaction as the change it describes.
        """
        ip_address, user_agent = client_info(request)
        record = ClearanceRecord(
            student_id=student_id,
            department_id=department_id,
            record_type=record_type,
            status=status,
            action_by_id=action_by_id,
            document_id=document_id,
            requirement_id=requirement_id,
            description=description,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(record)
        return record

    @staticmethod
    def timeline(db: Session, student_id: int) -> List[ClearanceRecord]:
        """All records of a student, newest first."""
        return db.query(ClearanceRecord).filter(
            ClearanceRecord.student_id == student_id
        ).order_by(ClearanceRecord.created_at.desc(), ClearanceRecord.id.desc()).all()

    @staticmethod
    def has_record(db: Session, student_id: int, record_type: RecordType, department_id: Optional[int] = None) -> bool:
        query = db.query(ClearanceRecord.id).filter(
            ClearanceRecord.student_id == student_id,
            ClearanceRecord.record_type == record_type,
        )
        if department_id is not None:
            query = query.filter(ClearanceRecord.department_id == department_id)
        return query.first() is not None
