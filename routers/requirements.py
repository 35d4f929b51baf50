"""
Requirement APIs: the documents each department asks for.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel, Field
from typing import Optional, List

from database.models import (
    User, Department, Requirement, RequirementStatus, DocumentType, Document, department_requirements
)
from auth.dependencies import get_db_session, get_current_user, require_admin
from services.audit_service import AuditService
from services.serializers import serialize_requirement
from core.validators import normalize_code
from core.utils import paginate, page_response
import config


router = APIRouter(prefix="/api/requirements", tags=["requirements"])


class RequirementCreate(BaseModel):
    """Create requirement request."""
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = None
    documentType: DocumentType = DocumentType.OTHER
    isRequired: bool = True
    status: RequirementStatus = RequirementStatus.ACTIVE
    fileTypes: List[str] = Field(default_factory=lambda: list(config.DEFAULT_REQUIREMENT_FILE_TYPES))
    maxFileSize: int = Field(config.MAX_UPLOAD_SIZE_MB, ge=1, le=100)
    order: int = Field(1, ge=1)
    instructions: Optional[str] = None
    departments: List[int] = []


class RequirementUpdate(BaseModel):
    """Update requirement request."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = None
    documentType: Optional[DocumentType] = None
    isRequired: Optional[bool] = None
    status: Optional[RequirementStatus] = None
    fileTypes: Optional[List[str]] = None
    maxFileSize: Optional[int] = Field(None, ge=1, le=100)
    order: Optional[int] = Field(None, ge=1)
    instructions: Optional[str] = None
    departments: Optional[List[int]] = None


def checked_file_types(file_types: List[str]) -> List[str]:
    normalized = []
    for ext in file_types:
        ext = ext.strip().lower().lstrip(".")
        if ext not in config.ALLOWED_DOCUMENT_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported file type: {ext}. Allowed: {', '.join(sorted(config.ALLOWED_DOCUMENT_EXTENSIONS))}"
            )
        if ext not in normalized:
            normalized.append(ext)
    if not normalized:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one file type is required")
    return normalized


def checked_departments(db: Session, department_ids: List[int]) -> List[Department]:
    departments = db.query(Department).filter(Department.id.in_(department_ids)).all() if department_ids else []
    missing = set(department_ids) - {dept.id for dept in departments}
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown departments: {', '.join(str(i) for i in sorted(missing))}"
        )
    return departments


def get_requirement_or_404(db: Session, requirement_id: int) -> Requirement:
    requirement = db.get(Requirement, requirement_id)
    if not requirement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Requirement not found")
    return requirement


@router.get("")
async def list_requirements(
    department: Optional[int] = Query(None, description="Filter by department"),
    status_filter: Optional[str] = Query(None, alias="status"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """List requirements (cursor paginated)."""
    query = db.query(Requirement)
    if department is not None:
        query = query.join(
            department_requirements, department_requirements.c.requirement_id == Requirement.id
        ).filter(department_requirements.c.department_id == department)
    if status_filter:
        try:
            query = query.filter(Requirement.status == RequirementStatus(status_filter))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}")

    try:
        requirements, next_cursor, has_more = paginate(query, Requirement, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return page_response(requirements, next_cursor, has_more, limit, serialize_requirement)


@router.get("/{requirement_id}")
async def get_requirement(
    requirement_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return serialize_requirement(get_requirement_or_404(db, requirement_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_requirement(
    requirement_data: RequirementCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Create a requirement and attach it to departments.
    Admin only.
    """
    code = normalize_code(requirement_data.code)
    if db.query(Requirement).filter(Requirement.code == code).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Requirement code {code} already exists")

    requirement = Requirement(
        name=requirement_data.name.strip(),
        code=code,
        description=requirement_data.description,
        document_type=requirement_data.documentType,
        is_required=requirement_data.isRequired,
        status=requirement_data.status,
        file_types=checked_file_types(requirement_data.fileTypes),
        max_file_size_mb=requirement_data.maxFileSize,
        display_order=requirement_data.order,
        instructions=requirement_data.instructions,
    )
    requirement.departments = checked_departments(db, requirement_data.departments)
    db.add(requirement)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Requirement code {code} already exists")
    db.refresh(requirement)

    AuditService.log(db, action="requirement_create", request=request, user_id=current_user.id,
                     resource_type="requirement", resource_id=requirement.id)
    return serialize_requirement(requirement)


@router.patch("/{requirement_id}")
async def update_requirement(
    requirement_id: int,
    update_data: RequirementUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Update a requirement.
    Admin only.
    """
    requirement = get_requirement_or_404(db, requirement_id)
    provided = update_data.model_dump(exclude_unset=True)

    if provided.get("code") is not None:
        code = normalize_code(provided["code"])
        clash = db.query(Requirement).filter(Requirement.code == code, Requirement.id != requirement.id).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Requirement code {code} already exists")
        requirement.code = code
    if provided.get("name") is not None:
        requirement.name = provided["name"].strip()
    if "description" in provided:
        requirement.description = provided["description"]
    if provided.get("documentType") is not None:
        requirement.document_type = provided["documentType"]
    if provided.get("isRequired") is not None:
        requirement.is_required = provided["isRequired"]
    if provided.get("status") is not None:
        requirement.status = provided["status"]
    if provided.get("fileTypes") is not None:
        requirement.file_types = checked_file_types(provided["fileTypes"])
    if provided.get("maxFileSize") is not None:
        requirement.max_file_size_mb = provided["maxFileSize"]
    if provided.get("order") is not None:
        requirement.display_order = provided["order"]
    if "instructions" in provided:
        requirement.instructions = provided["instructions"]
    if provided.get("departments") is not None:
        requirement.departments = checked_departments(db, provided["departments"])

    db.commit()
    db.refresh(requirement)
    AuditService.log(db, action="requirement_update", request=request, user_id=current_user.id,
                     resource_type="requirement", resource_id=requirement.id, details={"fields": sorted(provided)})
    return serialize_requirement(requirement)


@router.delete("/{requirement_id}")
async def delete_requirement(
    requirement_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Delete a requirement no document refers to. Requirements with uploads
    should be set inactive instead.
    Admin only.
    """
    requirement = get_requirement_or_404(db, requirement_id)
    if db.query(Document.id).filter(Document.requirement_id == requirement.id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Requirement has uploaded documents; set it inactive instead"
        )
    db.delete(requirement)
    db.commit()
    AuditService.log(db, action="requirement_delete", request=request, user_id=current_user.id,
                     resource_type="requirement", resource_id=requirement_id)
    return {"success": True, "message": "Requirement deleted successfully"}
