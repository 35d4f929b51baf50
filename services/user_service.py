"""
User provisioning: students, officers, bulk imports and account lifecycle.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import (
    User, UserRole, UserStatus, ClearanceStatus, Department, DepartmentStatus, TokenPurpose
)
from auth.permissions import is_admin, can_department_create_officers
from services.auth_service import AuthService
from services.audit_service import AuditService
from services.email_service import EmailService
from services.email_templates import WelcomeEmailData, OfficerWelcomeEmailData, BulkImportSummaryData
from core.validators import validate_matric_no
from core.logger import logger

STAFF_ROLES = (UserRole.OFFICER, UserRole.STUDENT_AFFAIRS)


class UserService:
    """Service for creating and managing accounts."""

    @staticmethod
    def get_department(db: Session, department_id: int) -> Department:
        """
        Raises:
            ValueError: Unknown department
        """
        department = db.get(Department, department_id)
        if department is None:
            raise ValueError(f"Department {department_id} not found")
        return department

    @staticmethod
    def create_student(
        db: Session,
        name: str,
        email: str,
        matric_no: str,
        department_id: int,
        actor: User,
        phone: Optional[str] = None,
    ) -> Tuple[User, str]:
        """
        Create a student without a password and issue their magic link.

        Returns:
            Tuple of (user, magic link URL)

        Raises:
            ValueError: Unknown department, malformed matric number or duplicate user
        """
        department = UserService.get_department(db, department_id)
        if department.status != DepartmentStatus.ACTIVE:
            raise ValueError(f"Department {department.name} is not active")
        if not validate_matric_no(matric_no):
            raise ValueError(f"Invalid matric number: {matric_no}")

        user = AuthService.create_user(
            db,
            email=email,
            name=name,
            role=UserRole.STUDENT,
            department_id=department.id,
            matric_no=matric_no,
            phone=phone,
            created_by=actor.id,
            created_by_department_id=actor.department_id,
        )
        token = AuthService.issue_token(db, user, TokenPurpose.MAGIC_LINK)
        return user, AuthService.build_link(token, TokenPurpose.MAGIC_LINK)

    @staticmethod
    def reserve_officer_slot(db: Session, department: Department) -> bool:
        """
        Increment the department's officers_created counter if it is below the
        limit. The check and the increment are one conditional UPDATE, so
        concurrent creations cannot overshoot the limit. Not committed here.
        """
        query = db.query(Department).filter(
            Department.id == department.id,
            Department.can_add_officers == True,
            Department.status == DepartmentStatus.ACTIVE
        )
        if department.officer_creation_limit and department.officer_creation_limit > 0:
            query = query.filter(Department.officers_created < Department.officer_creation_limit)
        updated = query.update(
            {Department.officers_created: Department.officers_created + 1},
            synchronize_session=False
        )
        return updated == 1

    @staticmethod
    def create_officer(
        db: Session,
        name: str,
        email: str,
        role: UserRole,
        department_id: int,
        actor: User,
        phone: Optional[str] = None,
    ) -> Tuple[User, str]:
        """
        Create an officer or student-affairs officer and issue their magic link.

        Admins may create officers anywhere. Other staff may only create
        officers for their own department, and only while the department
        allows it and is under its officer limit.

        Raises:
            ValueError: Bad role, unknown department, duplicate user or officer limit reached
            PermissionError: Actor may not create officers for this department
        """
        if role not in STAFF_ROLES:
            raise ValueError(f"Invalid officer role: {role.value}")
        department = UserService.get_department(db, department_id)

        self_provisioned = not is_admin(actor)
        if self_provisioned:
            if actor.department_id != department.id:
                raise PermissionError("You can only create officers for your own department")
            if not can_department_create_officers(department):
                raise PermissionError("Department not enabled for officer creation")
            if not UserService.reserve_officer_slot(db, department):
                db.rollback()
                raise ValueError("Officer creation limit reached")

        try:
            user = AuthService.create_user(
                db,
                email=email,
                name=name,
                role=role,
                department_id=department.id,
                phone=phone,
                created_by=actor.id,
                created_by_department_id=department.id if self_provisioned else actor.department_id,
            )
        except (ValueError, IntegrityError):
            db.rollback()
            raise

        token = AuthService.issue_token(db, user, TokenPurpose.MAGIC_LINK)
        return user, AuthService.build_link(token, TokenPurpose.MAGIC_LINK)

    @staticmethod
    def officer_creation_status(db: Session, department: Department) -> Dict[str, Any]:
        """Whether the department can still self-provision officers."""
        if not can_department_create_officers(department):
            return {"canCreate": False, "reason": "Department not enabled for officer creation"}

        limit = department.officer_creation_limit
        current = department.officers_created or 0
        if limit and limit > 0 and current >= limit:
            return {
                "canCreate": False,
                "reason": "Officer creation limit reached",
                "currentCount": current,
                "limit": limit,
            }
        return {"canCreate": True, "currentCount": current, "limit": limit}

    @staticmethod
    def update(db: Session, user: User, changes: Dict[str, Any]) -> User:
        """
        Apply field changes. Keys are model attribute names.

        Raises:
            ValueError: Duplicate email/matric number or unknown department
        """
        if "email" in changes and changes["email"]:
            email = changes["email"].strip().lower()
            existing = AuthService.get_user_by_email(db, email)
            if existing and existing.id != user.id:
                raise ValueError("User with this email already exists")
            changes["email"] = email

        if "matric_no" in changes and changes["matric_no"]:
            matric_no = changes["matric_no"].strip().upper()
            if not validate_matric_no(matric_no):
                raise ValueError(f"Invalid matric number: {matric_no}")
            existing = db.query(User).filter(User.matric_no == matric_no, User.id != user.id).first()
            if existing:
                raise ValueError(f"Matric number {matric_no} is already registered")
            changes["matric_no"] = matric_no

        if changes.get("department_id") is not None:
            UserService.get_department(db, changes["department_id"])

        if "status" in changes and changes["status"] is not None:
            changes["is_active"] = changes["status"] == UserStatus.ACTIVE

        for field, value in changes.items():
            setattr(user, field, value)
        db.commit()
        db.refresh(user)
        logger.info(f"Updated user {user.id}: {', '.join(sorted(changes))}")
        return user

    @staticmethod
    def deactivate(db: Session, user: User, actor: User, request: Optional[Request] = None) -> User:
        """
        Soft delete: suspend the account and close its sessions. Documents and
        clearance records stay in place.
        """
        if user.id == actor.id:
            raise ValueError("You cannot delete your own account")
        user.status = UserStatus.SUSPENDED
        user.is_active = False
        db.commit()
        revoked = AuthService.revoke_user_sessions(db, user.id)
        AuditService.log(
            db,
            action="user_delete",
            request=request,
            user_id=actor.id,
            resource_type="user",
            resource_id=user.id,
            details={"sessionsRevoked": revoked},
        )
        logger.info(f"User {user.id} suspended by {actor.id}")
        return user

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        """Account counts per role and student clearance counts."""
        role_counts = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
        without_password = db.query(func.count(User.id)).filter(User.has_set_password == False).scalar() or 0
        clearance_counts = dict(
            db.query(User.clearance_status, func.count(User.id))
            .filter(User.role == UserRole.STUDENT)
            .group_by(User.clearance_status)
            .all()
        )
        return {
            "total": sum(role_counts.values()),
            "students": role_counts.get(UserRole.STUDENT, 0),
            "officers": role_counts.get(UserRole.OFFICER, 0) + role_counts.get(UserRole.STUDENT_AFFAIRS, 0),
            "admins": role_counts.get(UserRole.ADMIN, 0),
            "usersWithoutPassword": without_password,
            "clearanceStats": {
                "notStarted": clearance_counts.get(ClearanceStatus.NOT_STARTED, 0),
                "inProgress": clearance_counts.get(ClearanceStatus.IN_PROGRESS, 0),
                "completed": clearance_counts.get(ClearanceStatus.COMPLETED, 0),
                "onHold": clearance_counts.get(ClearanceStatus.ON_HOLD, 0),
            },
        }


async def send_account_email(email_service: EmailService, user: User, link: str, actor: Optional[User] = None) -> bool:
    """Welcome email with the password-setup link, worded for the user's role."""
    department = user.department.name if user.department else ""
    admin_name = actor.name if actor else None
    if user.role == UserRole.STUDENT:
        return await email_service.send_welcome_email(WelcomeEmailData(
            student_name=user.name,
            student_email=user.email,
            matric_no=user.matric_no or "",
            department=department,
            magic_link=link,
            admin_name=admin_name,
        ))
    return await email_service.send_officer_welcome_email(OfficerWelcomeEmailData(
        officer_name=user.name,
        officer_email=user.email,
        department=department,
        magic_link=link,
        role=user.role.value,
        admin_name=admin_name,
    ))


async def bulk_create_students(
    db: Session,
    email_service: EmailService,
    rows: List[Dict[str, Any]],
    actor: User,
) -> Dict[str, Any]:
    """
    Create students one by one. A failing row is reported and skipped; the
    rows before and after it are unaffected.

    Args:
        rows: Dicts with name, email, matricNo, department and optional phone

    Returns:
        {"results": [...], "summary": {"total", "success", "error"}}
    """
    results = []
    errors = []
    for row in rows:
        try:
            user, link = UserService.create_student(
                db,
                name=row["name"],
                email=row["email"],
                matric_no=row["matricNo"],
                department_id=row["department"],
                actor=actor,
                phone=row.get("phone"),
            )
        except (ValueError, IntegrityError) as e:
            db.rollback()
            message = str(e.orig) if isinstance(e, IntegrityError) else str(e)
            results.append({"success": False, "error": message, "data": row})
            errors.append(f"{row.get('email')}: {message}")
            continue

        email_sent = await send_account_email(email_service, user, link, actor)
        results.append({
            "success": True,
            "user": {"id": user.id, "email": user.email, "name": user.name, "matricNo": user.matric_no},
            "emailSent": email_sent,
        })

    summary = {"total": len(rows), "success": len(rows) - len(errors), "error": len(errors)}
    logger.info(f"Bulk student import by {actor.id}: {summary['success']}/{summary['total']} created")
    await email_service.send_bulk_import_summary(actor.email, BulkImportSummaryData(
        admin_name=actor.name,
        total=summary["total"],
        success=summary["success"],
        error=summary["error"],
        errors=errors,
    ))
    return {"results": results, "summary": summary, "completedAt": datetime.utcnow().isoformat()}
