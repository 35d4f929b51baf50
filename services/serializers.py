"""
camelCase JSON views of ORM rows.
"""
from typing import Any, Dict, Optional

from database.models import User, Department, Requirement, Document, ClearanceRecord
from auth.permissions import filter_user_fields, filter_department_fields
from core.utils import isoformat


def _value(enum_value) -> Optional[str]:
    if enum_value is None:
        return None
    return getattr(enum_value, "value", enum_value)


def serialize_user(user: User, actor: Optional[User] = None) -> Dict[str, Any]:
    """User payload with password fields stripped for actors other than admin/self."""
    data = {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": _value(user.role),
        "department": user.department_id,
        "departmentName": user.department.name if user.department else None,
        "matricNo": user.matric_no,
        "phone": user.phone,
        "status": _value(user.status),
        "isActive": user.is_active,
        "clearanceStatus": _value(user.clearance_status),
        "hasSetPassword": user.has_set_password,
        "passwordSetAt": isoformat(user.password_set_at),
        "lastLogin": isoformat(user.last_login),
        "createdBy": user.created_by,
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }
    return filter_user_fields(data, actor, user.id)


def serialize_user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "role": _value(user.role)}


def serialize_department(department: Department, actor: Optional[User] = None) -> Dict[str, Any]:
    data = {
        "id": department.id,
        "name": department.name,
        "code": department.code,
        "description": department.description,
        "status": _value(department.status),
        "clearanceOrder": department.clearance_order,
        "officer": serialize_user_summary(department.officer),
        "studentAffairsOfficer": serialize_user_summary(department.student_affairs_officer),
        "requirements": [req.id for req in department.requirements],
        "canAddOfficers": department.can_add_officers,
        "officerCreationLimit": department.officer_creation_limit,
        "officersCreated": department.officers_created,
        "createdAt": isoformat(department.created_at),
        "updatedAt": isoformat(department.updated_at),
    }
    return filter_department_fields(data, actor)


def serialize_requirement(requirement: Requirement) -> Dict[str, Any]:
    return {
        "id": requirement.id,
        "name": requirement.name,
        "code": requirement.code,
        "description": requirement.description,
        "documentType": _value(requirement.document_type),
        "isRequired": requirement.is_required,
        "status": _value(requirement.status),
        "fileTypes": list(requirement.file_types or []),
        "maxFileSize": requirement.max_file_size_mb,
        "order": requirement.display_order,
        "instructions": requirement.instructions,
        "departments": [dept.id for dept in requirement.departments],
        "createdAt": isoformat(requirement.created_at),
        "updatedAt": isoformat(requirement.updated_at),
    }


def serialize_document(document: Document) -> Dict[str, Any]:
    student = document.student
    return {
        "id": document.id,
        "fileName": document.file_name,
        "student": document.student_id,
        "studentName": student.name if student else None,
        "matricNo": student.matric_no if student else None,
        "department": document.department_id,
        "departmentName": document.department.name if document.department else None,
        "requirement": document.requirement_id,
        "requirementName": document.requirement.name if document.requirement else None,
        "status": _value(document.status),
        "fileSize": document.file_size,
        "fileType": document.file_type,
        "version": document.version,
        "isLatest": document.is_latest,
        "uploadedAt": isoformat(document.uploaded_at),
        "reviewedAt": isoformat(document.reviewed_at),
        "reviewedBy": serialize_user_summary(document.reviewed_by),
        "reviewNotes": document.review_notes,
        "rejectionReason": _value(document.rejection_reason),
        "customRejectionReason": document.custom_rejection_reason,
        "createdAt": isoformat(document.created_at),
        "updatedAt": isoformat(document.updated_at),
    }


def serialize_record(record: ClearanceRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "student": record.student_id,
        "department": record.department_id,
        "departmentName": record.department.name if record.department else None,
        "recordType": _value(record.record_type),
        "status": _value(record.status),
        "actionBy": serialize_user_summary(record.action_by),
        "document": record.document_id,
        "requirement": record.requirement_id,
        "description": record.description,
        "metadata": record.details or {},
        "ipAddress": record.ip_address,
        "userAgent": record.user_agent,
        "createdAt": isoformat(record.created_at),
    }
