"""
User management APIs: listing, provisioning and account lifecycle.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

from database.models import User, UserRole, UserStatus, ClearanceStatus
from auth.dependencies import get_db_session, get_active_user, get_current_user, require_admin, require_staff, get_email_service
from auth.permissions import (
    is_admin, is_admin_or_self, can_view_student, can_view_department_scope, can_create_users_in_department,
    has_set_password, can_access_student_features, can_access_officer_features
)
from services.user_service import UserService, send_account_email, bulk_create_students
from services.audit_service import AuditService
from services.email_service import EmailService
from services.serializers import serialize_user
from core.utils import paginate, page_response


router = APIRouter(prefix="/api/users", tags=["users"])


# Request Models
class StudentCreate(BaseModel):
    """Create student request."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    matricNo: str = Field(..., min_length=1)
    department: int
    phone: Optional[str] = None


class OfficerCreate(BaseModel):
    """Create officer request."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    role: UserRole = UserRole.OFFICER
    department: int
    phone: Optional[str] = None


class BulkStudentCreate(BaseModel):
    """Bulk student import."""
    students: List[StudentCreate] = Field(..., min_length=1, max_length=500)


class UserUpdate(BaseModel):
    """Update user request."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    status: Optional[UserStatus] = None
    department: Optional[int] = None
    matricNo: Optional[str] = None
    clearanceStatus: Optional[ClearanceStatus] = None


ADMIN_ONLY_FIELDS = {"email", "status", "department", "matricNo", "clearanceStatus"}
UPDATE_FIELD_MAP = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "status": "status",
    "department": "department_id",
    "matricNo": "matric_no",
    "clearanceStatus": "clearance_status",
}


def parse_enum(enum_class, value: Optional[str], label: str):
    if value is None:
        return None
    try:
        return enum_class(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label}: {value}")


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/stats")
async def get_user_stats(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    User counts by role and student clearance counts.
    Admin only.
    """
    return UserService.stats(db)


@router.get("")
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    department: Optional[int] = Query(None, description="Filter by department"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    search: Optional[str] = Query(None, description="Search by name, email or matric number"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """
    List users (cursor paginated, filterable).
    Admins see everyone; officers see their own department.
    """
    query = db.query(User)

    if not is_admin(current_user):
        requested = current_user.department_id if department is None else department
        if not can_view_department_scope(current_user, requested):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")
        department = current_user.department_id

    if role:
        query = query.filter(User.role == parse_enum(UserRole, role, "role"))
    if department is not None:
        query = query.filter(User.department_id == department)
    if status_filter:
        query = query.filter(User.status == parse_enum(UserStatus, status_filter, "status"))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                User.matric_no.ilike(pattern)
            )
        )

    try:
        users, next_cursor, has_more = paginate(query, User, cursor, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return page_response(users, next_cursor, has_more, limit, lambda u: serialize_user(u, current_user))


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Get user by ID. Admins, the user themself, or staff of the user's department."""
    user = get_user_or_404(db, user_id)
    if not can_view_student(current_user, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return serialize_user(user, current_user)


@router.get("/{user_id}/can-access-features")
async def can_access_features(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Whether a user has finished password setup (admins always can), per feature area."""
    if not is_admin_or_self(current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = get_user_or_404(db, user_id)
    return {
        "canAccess": has_set_password(user),
        "hasSetPassword": bool(user.has_set_password),
        "studentFeatures": can_access_student_features(user),
        "officerFeatures": can_access_officer_features(user),
    }


@router.post("/students", status_code=status.HTTP_201_CREATED)
async def create_student(
    student_data: StudentCreate,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Create a student and email them a password-setup link.
    Admins anywhere; officers for their own department.
    """
    if not can_create_users_in_department(current_user, student_data.department):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot create students in this department")

    try:
        user, link = UserService.create_student(
            db,
            name=student_data.name,
            email=student_data.email,
            matric_no=student_data.matricNo,
            department_id=student_data.department,
            actor=current_user,
            phone=student_data.phone,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    email_sent = await send_account_email(email_service, user, link, current_user)
    AuditService.log(db, action="student_create", request=request, user_id=current_user.id,
                     resource_type="user", resource_id=user.id)
    return {**serialize_user(user, current_user), "emailSent": email_sent}


@router.post("/officers", status_code=status.HTTP_201_CREATED)
async def create_officer(
    officer_data: OfficerCreate,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Create an officer and email them a password-setup link.
    Admins anywhere; officers for their own department within its officer limit.
    """
    try:
        user, link = UserService.create_officer(
            db,
            name=officer_data.name,
            email=officer_data.email,
            role=officer_data.role,
            department_id=officer_data.department,
            actor=current_user,
            phone=officer_data.phone,
        )
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    email_sent = await send_account_email(email_service, user, link, current_user)
    AuditService.log(db, action="officer_create", request=request, user_id=current_user.id,
                     resource_type="user", resource_id=user.id, details={"department": officer_data.department})
    return {**serialize_user(user, current_user), "emailSent": email_sent}


@router.post("/students/bulk")
async def bulk_create(
    bulk_data: BulkStudentCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Create many students at once. Rows fail independently.
    Admin only.
    """
    rows = [student.model_dump() for student in bulk_data.students]
    result = await bulk_create_students(db, email_service, rows, current_user)
    AuditService.log(db, action="student_bulk_create", request=request, user_id=current_user.id,
                     resource_type="user", details=result["summary"])
    return result


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    update_data: UserUpdate,
    request: Request,
    current_user: User = Depends(get_active_user),
    db: Session = Depends(get_db_session)
):
    """
    Update a user. Admins may change any field; users may change their own
    name and phone.
    """
    if not is_admin_or_self(current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = get_user_or_404(db, user_id)

    provided = update_data.model_dump(exclude_unset=True)
    if not is_admin(current_user):
        forbidden = ADMIN_ONLY_FIELDS & provided.keys()
        if forbidden:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only administrators can change: {', '.join(sorted(forbidden))}"
            )
    if provided.get("clearanceStatus") == ClearanceStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Use the clearance completion endpoint to complete a clearance"
        )

    changes = {UPDATE_FIELD_MAP[key]: value for key, value in provided.items()}
    try:
        user = UserService.update(db, user, changes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email or matric number already in use")

    AuditService.log(db, action="user_update", request=request, user_id=current_user.id,
                     resource_type="user", resource_id=user.id, details={"fields": sorted(provided)})
    return serialize_user(user, current_user)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Deactivate a user (soft delete; the account is suspended).
    Admin only.
    """
    user = get_user_or_404(db, user_id)
    try:
        UserService.deactivate(db, user, current_user, request)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"success": True, "message": "User deleted successfully"}
