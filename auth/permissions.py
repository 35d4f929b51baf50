"""
Access-control predicates.

Every function here is pure: it looks only at the actor and the target it is
handed and never touches the database. Routers call these before any read or
write and raise 403 on a False answer.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from database.models import (
    User, UserRole, UserStatus, Department, DepartmentStatus, Document, DocumentStatus
)


@dataclass(frozen=True)
class Capabilities:
    """What a role may do, independent of any particular resource."""
    upload_documents: bool
    review_documents: bool
    manage_users: bool
    manage_departments: bool
    view_clearance_progress: bool
    department_scoped: bool
    dashboard: str


ROLE_CAPABILITIES: Dict[UserRole, Capabilities] = {
    UserRole.STUDENT: Capabilities(
        upload_documents=True,
        review_documents=False,
        manage_users=False,
        manage_departments=False,
        view_clearance_progress=False,
        department_scoped=False,
        dashboard="/dashboard/student",
    ),
    UserRole.OFFICER: Capabilities(
        upload_documents=False,
        review_documents=True,
        manage_users=False,
        manage_departments=False,
        view_clearance_progress=True,
        department_scoped=True,
        dashboard="/dashboard/officer",
    ),
    UserRole.STUDENT_AFFAIRS: Capabilities(
        upload_documents=False,
        review_documents=True,
        manage_users=False,
        manage_departments=False,
        view_clearance_progress=True,
        department_scoped=True,
        dashboard="/dashboard/officer",
    ),
    UserRole.ADMIN: Capabilities(
        upload_documents=False,
        review_documents=True,
        manage_users=True,
        manage_departments=True,
        view_clearance_progress=True,
        department_scoped=False,
        dashboard="/dashboard/admin",
    ),
}

NO_CAPABILITIES = Capabilities(
    upload_documents=False,
    review_documents=False,
    manage_users=False,
    manage_departments=False,
    view_clearance_progress=False,
    department_scoped=True,
    dashboard="/login",
)

PASSWORD_FIELDS = ("hasSetPassword", "passwordSetAt")
DEPARTMENT_CREATION_FIELDS = ("canAddOfficers", "officerCreationLimit", "officersCreated")


def capabilities_for(user: Optional[User]) -> Capabilities:
    if user is None:
        return NO_CAPABILITIES
    return ROLE_CAPABILITIES.get(user.role, NO_CAPABILITIES)


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.ADMIN


def is_admin_or_self(user: Optional[User], target_user_id: Optional[int]) -> bool:
    return is_admin(user) or (user is not None and target_user_id is not None and user.id == target_user_id)


def is_officer(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.OFFICER


def is_student_affairs(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.STUDENT_AFFAIRS


def is_staff(user: Optional[User]) -> bool:
    """Officers and student-affairs officers."""
    return is_officer(user) or is_student_affairs(user)


def is_student(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.STUDENT


def has_set_password(user: Optional[User]) -> bool:
    """Admins are never blocked on password setup."""
    if user is None:
        return False
    return is_admin(user) or bool(user.has_set_password)


def is_account_usable(user: Optional[User]) -> bool:
    return user is not None and bool(user.is_active) and user.status == UserStatus.ACTIVE


def can_access_features(user: Optional[User]) -> bool:
    return is_account_usable(user) and has_set_password(user)


def can_access_student_features(user: Optional[User]) -> bool:
    return is_student(user) and can_access_features(user)


def can_access_officer_features(user: Optional[User]) -> bool:
    return (is_staff(user) or is_admin(user)) and can_access_features(user)


def same_department(user: Optional[User], department_id: Optional[int]) -> bool:
    return user is not None and department_id is not None and user.department_id == department_id


def can_view_documents(user: Optional[User]) -> bool:
    """Document listings need a usable account; scoping happens per query."""
    return can_access_features(user)


def can_upload_documents(user: Optional[User]) -> bool:
    return capabilities_for(user).upload_documents and can_access_features(user)


def can_upload_for(user: Optional[User], student_id: int) -> bool:
    """Students upload only for themselves."""
    return can_upload_documents(user) and user.id == student_id


def can_review_documents(user: Optional[User]) -> bool:
    return capabilities_for(user).review_documents and can_access_features(user)


def can_review_document(user: Optional[User], document: Document) -> bool:
    """Reviewers are confined to their own department unless admin."""
    if not can_review_documents(user):
        return False
    return is_admin(user) or same_department(user, document.department_id)


def can_view_document(user: Optional[User], document: Document) -> bool:
    if user is None:
        return False
    if is_admin(user) or user.id == document.student_id:
        return True
    return is_staff(user) and same_department(user, document.department_id)


def can_delete_document(user: Optional[User], document: Document) -> bool:
    if is_admin(user):
        return True
    return (
        user is not None
        and user.id == document.student_id
        and document.status == DocumentStatus.PENDING
    )


def can_view_student(user: Optional[User], student: User) -> bool:
    if user is None:
        return False
    if is_admin_or_self(user, student.id):
        return True
    return is_staff(user) and same_department(user, student.department_id)


def can_view_department_scope(user: Optional[User], department_id: Optional[int]) -> bool:
    """Department-wide listings: admins anywhere, staff only their own department."""
    if is_admin(user):
        return True
    return is_staff(user) and same_department(user, department_id)


def can_department_create_officers(department: Department) -> bool:
    return bool(department.can_add_officers) and department.status == DepartmentStatus.ACTIVE


def can_create_users_in_department(user: Optional[User], department_id: Optional[int]) -> bool:
    if is_admin(user):
        return True
    return is_staff(user) and can_access_features(user) and same_department(user, department_id)


# Field-level access
def can_view_password_fields(user: Optional[User], target_user_id: Optional[int]) -> bool:
    return is_admin_or_self(user, target_user_id)


def can_view_department_creation_fields(user: Optional[User]) -> bool:
    return is_admin(user) or is_officer(user)


def filter_user_fields(data: Dict[str, Any], actor: Optional[User], target_user_id: Optional[int]) -> Dict[str, Any]:
    """Strip password-related fields the actor may not see."""
    if can_view_password_fields(actor, target_user_id):
        return data
    return {k: v for k, v in data.items() if k not in PASSWORD_FIELDS}


def filter_department_fields(data: Dict[str, Any], actor: Optional[User]) -> Dict[str, Any]:
    """Strip officer-creation settings the actor may not see."""
    if can_view_department_creation_fields(actor):
        return data
    return {k: v for k, v in data.items() if k not in DEPARTMENT_CREATION_FIELDS}
